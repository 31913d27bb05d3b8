"""Rejection codes and exceptions shared by the coupon services."""

from enum import Enum


class CouponErrorCode(str, Enum):
    MISSING_CODE = "missing_code"
    INVALID_CODE = "invalid_code"
    INACTIVE = "inactive"
    NOT_STARTED = "not_started"
    EXPIRED = "expired"
    USAGE_LIMIT_REACHED = "usage_limit_reached"
    CUSTOMER_USAGE_LIMIT = "customer_usage_limit"
    FIRST_ORDER_ONLY = "first_order_only"
    REQUIRES_AUTH = "requires_auth"
    MIN_ORDER_NOT_MET = "min_order_not_met"
    MAX_ORDER_EXCEEDED = "max_order_exceeded"
    MIN_ITEMS_NOT_MET = "min_items_not_met"
    CUSTOMER_RESTRICTED = "customer_restricted"
    NO_ELIGIBLE_PRODUCTS = "no_eligible_products"
    SERVER_ERROR = "server_error"


class CouponError(ValueError):
    """A coupon operation that mutates state was refused."""

    error_code: CouponErrorCode

    def __init__(self, message: str, error_code: CouponErrorCode):
        super().__init__(message)
        self.error_code = error_code


class CouponNotFoundError(CouponError):
    def __init__(self, message: str = "Coupon not found"):
        super().__init__(message, CouponErrorCode.INVALID_CODE)


class CouponUsageLimitError(CouponError):
    def __init__(self, message: str = "This coupon has reached its usage limit"):
        super().__init__(message, CouponErrorCode.USAGE_LIMIT_REACHED)


class CouponFirstOrderError(CouponError):
    def __init__(self, message: str = "This coupon is only valid for first-time customers"):
        super().__init__(message, CouponErrorCode.FIRST_ORDER_ONLY)
