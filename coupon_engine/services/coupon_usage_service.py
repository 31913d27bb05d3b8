"""Coupon usage recording: the only place a coupon's used_count changes."""

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from coupon_engine.models.coupon_usage import CouponUsageRecord
from coupon_engine.repositories.coupon_repository import CouponRepository
from coupon_engine.repositories.coupon_usage_repository import CouponUsageRepository
from coupon_engine.schemas.coupon import RecordCouponUsageRequest
from coupon_engine.services.coupon_errors import (
    CouponFirstOrderError,
    CouponNotFoundError,
    CouponUsageLimitError,
)
from coupon_engine.services.first_order import (
    FirstOrderDetector,
    FirstOrderStatus,
    requires_first_order,
)

logger = logging.getLogger(__name__)


@dataclass
class UsageOutcome:
    """Result of a usage recording call."""

    record: CouponUsageRecord
    replayed: bool


class CouponUsageService:
    """Records redemptions idempotently per (organization, coupon, order)."""

    def __init__(self, db: Session):
        self.db = db
        self.coupon_repo = CouponRepository(db)
        self.usage_repo = CouponUsageRepository(db)
        self.first_order = FirstOrderDetector(db)

    def record_usage(
        self, organization_id: UUID, data: RecordCouponUsageRequest
    ) -> UsageOutcome:
        """Write one usage record and bump ``used_count`` by one, atomically.

        A second call for the same order returns the original record without
        incrementing again. The usage record insert and the conditional
        increment share one transaction; if the increment is refused because
        the coupon is exhausted, both are rolled back.

        Raises:
            CouponNotFoundError: The coupon does not exist in this organization.
            CouponFirstOrderError: A first-order-only coupon is used by a
                customer who already has another order.
            CouponUsageLimitError: ``total_uses_limit`` is already reached.
        """
        existing = self.usage_repo.get_by_coupon_and_order(
            organization_id, data.coupon_id, data.order_id
        )
        if existing:
            logger.info(
                "Usage of coupon %s for order %s already recorded", data.coupon_id, data.order_id
            )
            return UsageOutcome(record=existing, replayed=True)

        coupon = self.coupon_repo.get_by_id(data.coupon_id, organization_id)
        if not coupon:
            raise CouponNotFoundError()

        if requires_first_order(coupon):
            status = self.first_order.is_first_order(
                organization_id,
                email=data.customer_email,
                phone=data.customer_phone,
                exclude_order_id=data.order_id,
            )
            if status == FirstOrderStatus.FALSE:
                logger.warning(
                    "First-order coupon %s refused for order %s: customer has prior orders",
                    coupon.code,
                    data.order_id,
                )
                raise CouponFirstOrderError()

        try:
            record = self.usage_repo.add(
                organization_id=organization_id,
                coupon_id=coupon.id,  # type: ignore[arg-type]
                coupon_code=data.coupon_code or str(coupon.code),
                order_id=data.order_id,
                customer_id=data.customer_id,
                customer_email=data.customer_email,
                customer_phone=data.customer_phone,
                discount_applied=data.discount_applied,
                order_total=data.order_total,
            )
            new_count, accepted = self.coupon_repo.increment_used_count(
                coupon.id,  # type: ignore[arg-type]
                organization_id,
                order_total=data.order_total,
            )
            if not accepted:
                logger.warning(
                    "Usage of coupon %s for order %s refused: limit %s reached",
                    data.coupon_id,
                    data.order_id,
                    coupon.total_uses_limit,
                )
                raise CouponUsageLimitError()
            self.db.commit()
        except IntegrityError:
            # A concurrent call recorded the same order first.
            self.db.rollback()
            existing = self.usage_repo.get_by_coupon_and_order(
                organization_id, data.coupon_id, data.order_id
            )
            if existing is None:
                raise
            return UsageOutcome(record=existing, replayed=True)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(record)
        logger.info(
            "Recorded usage of coupon %s for order %s (used_count=%d)",
            data.coupon_id,
            data.order_id,
            new_count,
        )
        return UsageOutcome(record=record, replayed=False)
