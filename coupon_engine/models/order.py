"""Order model, read by first-order detection."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, func

from coupon_engine.core.database import Base
from coupon_engine.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class Order(Base):
    __tablename__ = "orders"

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    order_number = Column(String(255), nullable=False, index=True)
    customer_email = Column(String(255), nullable=True, index=True)
    customer_phone = Column(String(50), nullable=True, index=True)
    total = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
