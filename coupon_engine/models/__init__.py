from coupon_engine.models.coupon import Coupon, CouponApplicability, DiscountType
from coupon_engine.models.coupon_usage import CouponUsageRecord
from coupon_engine.models.order import Order
from coupon_engine.models.organization import Organization

__all__ = [
    "Coupon",
    "CouponApplicability",
    "CouponUsageRecord",
    "DiscountType",
    "Order",
    "Organization",
]
