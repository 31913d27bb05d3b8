"""Discount arithmetic for each coupon payout mode."""

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from coupon_engine.models.coupon import Coupon, DiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round_money(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class FreeItemGrant:
    product_id: str
    quantity: int


@dataclass
class DiscountResult:
    """Result of a discount calculation."""

    discount: Decimal
    free_shipping: bool = False
    free_items: list[FreeItemGrant] = field(default_factory=list)


def _percentage_discount(coupon: Coupon, applicable_subtotal: Decimal) -> Decimal:
    discount = applicable_subtotal * Decimal(str(coupon.discount_value or 0)) / Decimal("100")
    if coupon.max_discount_amount is not None:
        discount = min(discount, Decimal(str(coupon.max_discount_amount)))
    return discount


def _buy_x_get_y_grants(coupon: Coupon, total_item_count: int) -> list[FreeItemGrant]:
    config = coupon.buy_x_get_y or {}
    buy_quantity = int(config.get("buy_quantity") or 0)
    get_quantity = int(config.get("get_quantity") or 0)
    if buy_quantity <= 0 or get_quantity <= 0:
        return []

    eligible_sets = total_item_count // buy_quantity
    max_sets = config.get("max_sets")
    actual_sets = min(eligible_sets, int(max_sets)) if max_sets else eligible_sets
    if actual_sets <= 0:
        return []

    return [
        FreeItemGrant(product_id=product_id, quantity=get_quantity * actual_sets)
        for product_id in config.get("eligible_product_ids") or []
    ]


def calculate_discount(
    coupon: Coupon,
    cart_subtotal: Decimal,
    applicable_subtotal: Decimal,
    shipping_cost: Decimal = ZERO,
    total_item_count: int = 0,
) -> DiscountResult:
    """Compute the monetary discount and side effects of a coupon on a cart.

    Percentage-style and fixed discounts are clamped to
    ``[0, applicable_subtotal]``. Free shipping and buy-X-get-Y never reduce
    the cart total here: they are reported as a flag and as free-item grants
    for checkout to fulfil. Only the final amount is rounded.

    Args:
        coupon: The coupon being applied.
        cart_subtotal: Full cart subtotal.
        applicable_subtotal: Portion of the subtotal the coupon may discount.
        shipping_cost: Shipping fee for the cart, if known.
        total_item_count: Total units in the cart.

    Returns:
        DiscountResult with the rounded discount, free-shipping flag and grants.
    """
    applicable = max(Decimal(str(applicable_subtotal)), ZERO)
    discount_type = DiscountType(coupon.discount_type)

    if discount_type in (DiscountType.PERCENTAGE, DiscountType.FIRST_ORDER):
        discount = _percentage_discount(coupon, applicable)
    elif discount_type == DiscountType.FIXED_AMOUNT:
        discount = min(Decimal(str(coupon.discount_value or 0)), applicable)
    elif discount_type == DiscountType.FREE_SHIPPING:
        return DiscountResult(discount=round_money(ZERO), free_shipping=True)
    else:
        return DiscountResult(
            discount=round_money(ZERO),
            free_items=_buy_x_get_y_grants(coupon, total_item_count),
        )

    discount = min(max(discount, ZERO), applicable)
    return DiscountResult(discount=round_money(discount))
