"""Which part of a cart a coupon is allowed to discount."""

from collections.abc import Iterable
from decimal import Decimal

from coupon_engine.models.coupon import Coupon, CouponApplicability
from coupon_engine.schemas.coupon import CartItem


def total_item_count(items: Iterable[CartItem]) -> int:
    return sum(item.quantity for item in items)


def _sum_lines(items: Iterable[CartItem]) -> Decimal:
    return sum((item.line_total for item in items), start=Decimal("0"))


def applicable_subtotal(coupon: Coupon, cart_subtotal: Decimal, items: list[CartItem]) -> Decimal:
    """Cart value the coupon's product/category scope covers, minus exclusions.

    ``all`` scope, or a ``products``/``categories`` scope with an empty id
    set, starts from ``cart_subtotal`` as reported by the cart; otherwise the
    matching lines are summed. Excluded products and excluded categories are
    then subtracted whatever the scope, each line at most once.
    """
    scope = CouponApplicability(coupon.applicable_to or CouponApplicability.ALL.value)
    product_ids = set(coupon.product_ids or [])
    category_ids = set(coupon.category_ids or [])

    if scope == CouponApplicability.PRODUCTS and product_ids:
        subtotal = _sum_lines(i for i in items if i.product_id in product_ids)
    elif scope == CouponApplicability.CATEGORIES and category_ids:
        subtotal = _sum_lines(i for i in items if i.category_id and i.category_id in category_ids)
    else:
        subtotal = Decimal(str(cart_subtotal))

    excluded_products = set(coupon.excluded_product_ids or [])
    excluded_categories = set(coupon.excluded_category_ids or [])
    if excluded_products or excluded_categories:
        subtotal -= _sum_lines(
            i
            for i in items
            if i.product_id in excluded_products
            or (i.category_id is not None and i.category_id in excluded_categories)
        )

    return subtotal
