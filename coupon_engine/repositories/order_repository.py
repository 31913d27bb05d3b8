"""Order repository: the order store consulted by first-order detection."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from coupon_engine.models.order import Order

PHONE_SUFFIX_LENGTH = 10


def phone_suffix(phone: str | None) -> str | None:
    """Last ten digits of a phone number, ignoring formatting and country code."""
    digits = "".join(ch for ch in (phone or "") if ch.isdigit())
    if not digits:
        return None
    return digits[-PHONE_SUFFIX_LENGTH:]


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def any_order_exists(
        self,
        organization_id: UUID,
        email: str | None = None,
        phone: str | None = None,
        exclude_order_id: str | None = None,
    ) -> bool:
        """Whether any order in the organization matches the customer's email or phone.

        Phones match exactly, on their normalized ten-digit suffix, or on any
        stored phone ending with that suffix.
        """
        conditions = []
        if email:
            conditions.append(Order.customer_email == email.strip().lower())
        if phone:
            conditions.append(Order.customer_phone == phone.strip())
            suffix = phone_suffix(phone)
            if suffix:
                conditions.append(Order.customer_phone == suffix)
                conditions.append(Order.customer_phone.like(f"%{suffix}"))
        if not conditions:
            return False

        query = self.db.query(Order.id).filter(
            Order.organization_id == organization_id, or_(*conditions)
        )
        if exclude_order_id:
            query = query.filter(self._not_order(exclude_order_id))
        return query.first() is not None

    @staticmethod
    def _not_order(order_ref: str):  # type: ignore[no-untyped-def]
        try:
            order_uuid = UUID(order_ref)
        except ValueError:
            return Order.order_number != order_ref
        return and_(Order.order_number != order_ref, Order.id != order_uuid)

    def create(
        self,
        organization_id: UUID,
        order_number: str,
        customer_email: str | None = None,
        customer_phone: str | None = None,
        total: Decimal = Decimal("0"),
    ) -> Order:
        order = Order(
            organization_id=organization_id,
            order_number=order_number,
            customer_email=customer_email.strip().lower() if customer_email else None,
            customer_phone=customer_phone.strip() if customer_phone else None,
            total=total,
        )
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order
