"""First-order detection against the order store."""

from enum import Enum
from uuid import UUID

from sqlalchemy.orm import Session

from coupon_engine.models.coupon import Coupon, DiscountType
from coupon_engine.repositories.order_repository import OrderRepository


class FirstOrderStatus(str, Enum):
    """Three-valued answer to "is this the customer's first order?"."""

    TRUE = "true"
    FALSE = "false"
    UNKNOWN = "unknown"


def requires_first_order(coupon: Coupon) -> bool:
    return bool(coupon.is_first_order_only) or coupon.discount_type == DiscountType.FIRST_ORDER.value


class FirstOrderDetector:
    """Looks for prior orders by email or phone within one organization."""

    def __init__(self, db: Session):
        self.order_repo = OrderRepository(db)

    def is_first_order(
        self,
        organization_id: UUID,
        email: str | None = None,
        phone: str | None = None,
        exclude_order_id: str | None = None,
    ) -> FirstOrderStatus:
        """Return UNKNOWN without an identifier, FALSE if any prior order matches, else TRUE.

        ``exclude_order_id`` leaves the order being finalized out of the search.
        """
        if not email and not phone:
            return FirstOrderStatus.UNKNOWN

        exists = self.order_repo.any_order_exists(
            organization_id, email=email, phone=phone, exclude_order_id=exclude_order_id
        )
        return FirstOrderStatus.FALSE if exists else FirstOrderStatus.TRUE
