"""CouponUsageRecord model: the append-only redemption ledger."""

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint, func

from coupon_engine.core.database import Base
from coupon_engine.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class CouponUsageRecord(Base):
    """One successful redemption of a coupon by an order. Never updated."""

    __tablename__ = "coupon_usage_records"
    __table_args__ = (
        UniqueConstraint(
            "organization_id", "coupon_id", "order_id", name="uq_coupon_usage_org_coupon_order"
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    coupon_id = Column(
        UUIDType, ForeignKey("coupons.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    coupon_code_snapshot = Column(String(255), nullable=False)
    order_id = Column(String(255), nullable=False, index=True)

    customer_id = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True, index=True)
    customer_phone = Column(String(50), nullable=True, index=True)

    discount_applied = Column(Numeric(12, 2), nullable=False, default=0)
    order_total = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
