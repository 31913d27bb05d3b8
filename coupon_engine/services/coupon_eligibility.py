"""Time-window and usage-cap eligibility for a coupon.

Pure functions over a coupon snapshot: no I/O. The orchestrator supplies the
point in time and the customer's redemption count it looked up.
"""

from dataclasses import dataclass
from datetime import datetime

from coupon_engine.models.coupon import Coupon
from coupon_engine.models.shared import as_utc
from coupon_engine.services.coupon_errors import CouponErrorCode


@dataclass(frozen=True)
class EligibilityVerdict:
    ok: bool
    reason_code: CouponErrorCode | None = None

    @classmethod
    def allow(cls) -> "EligibilityVerdict":
        return cls(ok=True)

    @classmethod
    def reject(cls, reason_code: CouponErrorCode) -> "EligibilityVerdict":
        return cls(ok=False, reason_code=reason_code)


def effective_start(coupon: Coupon) -> datetime | None:
    """``start_at``, or the creation time when no start was configured."""
    return as_utc(coupon.start_at) or as_utc(coupon.created_at)


def evaluate_eligibility(
    coupon: Coupon,
    now: datetime,
    customer_usage_count: int = 0,
    has_customer_identifier: bool = False,
) -> EligibilityVerdict:
    """Run the eligibility checks in precedence order; the first failure wins.

    1. administrative switch off             -> inactive
    2. ``now`` before the start              -> not_started
    3. ``now`` strictly after ``expires_at`` -> expired
    4. aggregate cap reached                 -> usage_limit_reached
    5. per-customer cap reached              -> customer_usage_limit
       (only when the caller identified the customer)
    """
    now = as_utc(now)  # type: ignore[assignment]

    if not coupon.is_active:
        return EligibilityVerdict.reject(CouponErrorCode.INACTIVE)

    start = effective_start(coupon)
    if start is not None and now < start:
        return EligibilityVerdict.reject(CouponErrorCode.NOT_STARTED)

    expires_at = as_utc(coupon.expires_at)
    if expires_at is not None and now > expires_at:
        return EligibilityVerdict.reject(CouponErrorCode.EXPIRED)

    if coupon.total_uses_limit is not None and (coupon.used_count or 0) >= coupon.total_uses_limit:
        return EligibilityVerdict.reject(CouponErrorCode.USAGE_LIMIT_REACHED)

    if (
        coupon.uses_per_customer_limit is not None
        and has_customer_identifier
        and customer_usage_count >= coupon.uses_per_customer_limit
    ):
        return EligibilityVerdict.reject(CouponErrorCode.CUSTOMER_USAGE_LIMIT)

    return EligibilityVerdict.allow()
