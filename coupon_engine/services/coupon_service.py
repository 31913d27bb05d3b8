"""Apply-coupon orchestration: the read-only validation path."""

import logging
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from coupon_engine.models.coupon import Coupon, DiscountType, normalize_code
from coupon_engine.models.shared import utc_now
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository
from coupon_engine.schemas.coupon import (
    ApplyCouponRequest,
    ApplyCouponResponse,
    CouponPublicView,
    FreeItem,
)
from coupon_engine.services.cart_scoping import applicable_subtotal, total_item_count
from coupon_engine.services.coupon_eligibility import effective_start, evaluate_eligibility
from coupon_engine.services.coupon_errors import CouponErrorCode
from coupon_engine.services.discount_calculator import DiscountResult, calculate_discount
from coupon_engine.services.first_order import (
    FirstOrderDetector,
    FirstOrderStatus,
    requires_first_order,
)

logger = logging.getLogger(__name__)

_STATIC_MESSAGES = {
    CouponErrorCode.MISSING_CODE: "Please enter a coupon code",
    CouponErrorCode.INVALID_CODE: "Invalid coupon code",
    CouponErrorCode.INACTIVE: "This coupon is currently inactive",
    CouponErrorCode.EXPIRED: "This coupon has expired",
    CouponErrorCode.USAGE_LIMIT_REACHED: "This coupon has reached its usage limit",
    CouponErrorCode.FIRST_ORDER_ONLY: "This coupon is only valid for first-time customers",
    CouponErrorCode.REQUIRES_AUTH: "Please log in to use this coupon",
    CouponErrorCode.MAX_ORDER_EXCEEDED: "Order value exceeds coupon limit",
    CouponErrorCode.CUSTOMER_RESTRICTED: "This coupon is not available for your account",
    CouponErrorCode.NO_ELIGIBLE_PRODUCTS: "No eligible products in cart for this coupon",
    CouponErrorCode.SERVER_ERROR: "Failed to apply coupon. Please try again.",
}


def rejection_message(
    error_code: CouponErrorCode, coupon: Coupon | None = None, customer_uses: int = 0
) -> str:
    """Ready-to-display text for a rejection."""
    if coupon is not None:
        if error_code == CouponErrorCode.NOT_STARTED:
            start = effective_start(coupon)
            return f"This coupon is not active yet. It starts on {start:%Y-%m-%d}"
        if error_code == CouponErrorCode.CUSTOMER_USAGE_LIMIT:
            return f"You have already used this coupon {customer_uses} time(s)"
        if error_code == CouponErrorCode.MIN_ORDER_NOT_MET:
            return f"Minimum order value of {coupon.min_order_value} required"
        if error_code == CouponErrorCode.MIN_ITEMS_NOT_MET:
            return f"Minimum {coupon.min_items} items required in cart"
    return _STATIC_MESSAGES.get(error_code, "This coupon cannot be applied")


def success_message(coupon: Coupon, result: DiscountResult) -> str:
    value = Decimal(str(coupon.discount_value or 0)).normalize()
    discount_type = DiscountType(coupon.discount_type)
    if discount_type == DiscountType.PERCENTAGE:
        return f"{value:f}% off applied! You save {result.discount:.2f}"
    if discount_type == DiscountType.FIXED_AMOUNT:
        return f"{result.discount:.2f} off applied!"
    if discount_type == DiscountType.FREE_SHIPPING:
        return "Free shipping applied!"
    if discount_type == DiscountType.BUY_X_GET_Y:
        config = coupon.buy_x_get_y or {}
        return f"Buy {config.get('buy_quantity')} Get {config.get('get_quantity')} Free applied!"
    return f"First order discount of {value:f}% applied! You save {result.discount:.2f}"


class CouponValidationService:
    """Decides whether a code applies to a cart and what it is worth.

    Performs no writes: redemptions are recorded separately at order
    finalization by ``CouponUsageService``.
    """

    def __init__(self, db: Session):
        self.db = db
        self.coupon_repo = CouponRepository(db)
        self.usage_repo = CouponUsageRepository(db)
        self.first_order = FirstOrderDetector(db)

    def apply_coupon(
        self,
        organization_id: UUID,
        request: ApplyCouponRequest,
        now: datetime | None = None,
    ) -> ApplyCouponResponse:
        """Validate ``request.code`` against the cart and compute the discount.

        Business-rule failures come back as ``success=False`` responses with an
        ``error_code``; store failures come back as ``server_error``.
        """
        code = normalize_code(request.code)
        if not code:
            return self._reject(CouponErrorCode.MISSING_CODE)

        try:
            return self._apply(organization_id, code, request, now or utc_now())
        except SQLAlchemyError:
            logger.exception("Failed to apply coupon %s for organization %s", code, organization_id)
            return self._reject(CouponErrorCode.SERVER_ERROR)

    def _apply(
        self,
        organization_id: UUID,
        code: str,
        request: ApplyCouponRequest,
        now: datetime,
    ) -> ApplyCouponResponse:
        coupon = self.coupon_repo.get_by_code(code, organization_id)
        if not coupon:
            return self._reject(CouponErrorCode.INVALID_CODE)

        verdict = evaluate_eligibility(coupon, now)
        if not verdict.ok:
            return self._reject(verdict.reason_code, coupon)  # type: ignore[arg-type]

        has_identifier = bool(request.customer_email or request.customer_phone)
        if coupon.uses_per_customer_limit is not None and has_identifier:
            customer_uses = self.usage_repo.count_by_customer(
                organization_id,
                coupon.id,  # type: ignore[arg-type]
                email=request.customer_email,
                phone=request.customer_phone,
            )
            verdict = evaluate_eligibility(
                coupon, now, customer_usage_count=customer_uses, has_customer_identifier=True
            )
            if not verdict.ok:
                return self._reject(
                    verdict.reason_code, coupon, customer_uses  # type: ignore[arg-type]
                )

        item_count = total_item_count(request.cart_items)
        failed = self._check_conditions(organization_id, coupon, request, item_count)
        if failed is not None:
            return self._reject(failed, coupon)

        eligible_subtotal = applicable_subtotal(coupon, request.cart_subtotal, request.cart_items)
        if eligible_subtotal <= 0:
            return self._reject(CouponErrorCode.NO_ELIGIBLE_PRODUCTS, coupon)

        result = calculate_discount(
            coupon,
            cart_subtotal=request.cart_subtotal,
            applicable_subtotal=eligible_subtotal,
            shipping_cost=request.shipping_cost,
            total_item_count=item_count,
        )
        logger.info(
            "Coupon %s applied for organization %s: discount=%s",
            coupon.code,
            organization_id,
            result.discount,
        )
        return ApplyCouponResponse(
            success=True,
            discount=result.discount,
            discount_type=str(coupon.discount_type),
            message=success_message(coupon, result),
            free_shipping=result.free_shipping,
            free_items=[
                FreeItem(product_id=g.product_id, quantity=g.quantity) for g in result.free_items
            ]
            or None,
            coupon=CouponPublicView.model_validate(coupon),
        )

    def _check_conditions(
        self,
        organization_id: UUID,
        coupon: Coupon,
        request: ApplyCouponRequest,
        item_count: int,
    ) -> CouponErrorCode | None:
        """Cart and customer conditions, in order; returns the first failure."""
        subtotal = request.cart_subtotal

        if coupon.min_order_value is not None and subtotal < coupon.min_order_value:
            return CouponErrorCode.MIN_ORDER_NOT_MET
        if coupon.max_order_value is not None and subtotal > coupon.max_order_value:
            return CouponErrorCode.MAX_ORDER_EXCEEDED
        if coupon.min_items is not None and item_count < coupon.min_items:
            return CouponErrorCode.MIN_ITEMS_NOT_MET

        email = request.customer_email
        if coupon.requires_authentication and not email:
            return CouponErrorCode.REQUIRES_AUTH

        allowed = coupon.allowed_customer_emails or []
        if allowed and (not email or email.lower() not in {e.lower() for e in allowed}):
            return CouponErrorCode.CUSTOMER_RESTRICTED

        if requires_first_order(coupon):
            status = self.first_order.is_first_order(
                organization_id, email=email, phone=request.customer_phone
            )
            # UNKNOWN is allowed here and re-checked when usage is recorded.
            if status == FirstOrderStatus.FALSE:
                return CouponErrorCode.FIRST_ORDER_ONLY

        return None

    @staticmethod
    def _reject(
        error_code: CouponErrorCode, coupon: Coupon | None = None, customer_uses: int = 0
    ) -> ApplyCouponResponse:
        return ApplyCouponResponse(
            success=False,
            discount=Decimal("0"),
            discount_type=str(coupon.discount_type) if coupon else DiscountType.PERCENTAGE.value,
            message=rejection_message(error_code, coupon, customer_uses),
            error_code=error_code.value,
        )
