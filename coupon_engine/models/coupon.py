"""Coupon model for promotional discount codes."""

from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)

from coupon_engine.core.database import Base
from coupon_engine.models.shared import DEFAULT_ORGANIZATION_ID, UUIDType, generate_uuid


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_SHIPPING = "free_shipping"
    BUY_X_GET_Y = "buy_x_get_y"
    FIRST_ORDER = "first_order"


class CouponApplicability(str, Enum):
    ALL = "all"
    PRODUCTS = "products"
    CATEGORIES = "categories"


def normalize_code(code: str | None) -> str:
    """Coupon codes are compared and stored trimmed and upper-cased."""
    return (code or "").strip().upper()


class Coupon(Base):
    """A tenant-owned promotional code.

    ``discount_type`` is the discriminant: ``max_discount_amount`` only applies
    to the percentage-style types and ``buy_x_get_y`` only to ``buy_x_get_y``.
    ``used_count`` is only ever changed by the usage recorder.
    """

    __tablename__ = "coupons"
    __table_args__ = (UniqueConstraint("organization_id", "code", name="uq_coupons_org_code"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    organization_id = Column(
        UUIDType,
        ForeignKey("organizations.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        default=DEFAULT_ORGANIZATION_ID,
    )
    code = Column(String(255), index=True, nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    # {"buy_quantity", "get_quantity", "eligible_product_ids", "max_sets"}
    buy_x_get_y = Column(JSON, nullable=True)

    min_order_value = Column(Numeric(12, 2), nullable=True)
    max_order_value = Column(Numeric(12, 2), nullable=True)
    min_items = Column(Integer, nullable=True)

    start_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    total_uses_limit = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=False, default=0)
    uses_per_customer_limit = Column(Integer, nullable=True)

    applicable_to = Column(String(20), nullable=False, default=CouponApplicability.ALL.value)
    product_ids = Column(JSON, nullable=False, default=list)
    category_ids = Column(JSON, nullable=False, default=list)
    excluded_product_ids = Column(JSON, nullable=False, default=list)
    excluded_category_ids = Column(JSON, nullable=False, default=list)

    requires_authentication = Column(Boolean, nullable=False, default=False)
    is_first_order_only = Column(Boolean, nullable=False, default=False)
    allowed_customer_emails = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)

    total_revenue = Column(Numeric(14, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
