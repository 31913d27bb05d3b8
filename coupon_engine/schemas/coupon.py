"""Coupon administration, apply and usage schemas."""

import re
from datetime import datetime
from decimal import Decimal
from typing import Self
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from coupon_engine.core.config import settings
from coupon_engine.models.coupon import CouponApplicability, DiscountType, normalize_code
from coupon_engine.models.shared import as_utc

_CODE_PATTERN = re.compile(
    rf"^[A-Z0-9_-]{{{settings.COUPON_CODE_MIN_LENGTH},{settings.COUPON_CODE_MAX_LENGTH}}}$"
)


def validate_code_format(value: str) -> str:
    code = normalize_code(value)
    if not _CODE_PATTERN.match(code):
        msg = (
            f"Invalid coupon code format. Use {settings.COUPON_CODE_MIN_LENGTH}-"
            f"{settings.COUPON_CODE_MAX_LENGTH} alphanumeric characters, dashes, or underscores."
        )
        raise ValueError(msg)
    return code


def _lower_emails(values: list[str]) -> list[str]:
    return [v.strip().lower() for v in values if v and v.strip()]


class BuyXGetYConfig(BaseModel):
    buy_quantity: int = Field(ge=1)
    get_quantity: int = Field(ge=1)
    eligible_product_ids: list[str] = Field(default_factory=list)
    max_sets: int | None = Field(default=None, ge=1)


class CouponBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    discount_type: DiscountType
    discount_value: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)
    buy_x_get_y: BuyXGetYConfig | None = None
    min_order_value: Decimal | None = Field(default=None, ge=0)
    max_order_value: Decimal | None = Field(default=None, ge=0)
    min_items: int | None = Field(default=None, ge=0)
    start_at: datetime | None = None
    expires_at: datetime | None = None
    total_uses_limit: int | None = Field(default=None, ge=0)
    uses_per_customer_limit: int | None = Field(default=None, ge=0)
    applicable_to: CouponApplicability = CouponApplicability.ALL
    product_ids: list[str] = Field(default_factory=list)
    category_ids: list[str] = Field(default_factory=list)
    excluded_product_ids: list[str] = Field(default_factory=list)
    excluded_category_ids: list[str] = Field(default_factory=list)
    requires_authentication: bool = False
    is_first_order_only: bool = False
    allowed_customer_emails: list[str] = Field(default_factory=list)
    is_active: bool = True


class CouponCreate(CouponBase):
    code: str = Field(max_length=255)

    @field_validator("code")
    @classmethod
    def normalize_and_validate_code(cls, value: str) -> str:
        return validate_code_format(value)

    @field_validator("allowed_customer_emails")
    @classmethod
    def lower_allowed_emails(cls, value: list[str]) -> list[str]:
        return _lower_emails(value)

    @model_validator(mode="after")
    def validate_discount_value(self) -> Self:
        """Percentage-style values are percentage points between 0 and 100."""
        percentage_types = (DiscountType.PERCENTAGE, DiscountType.FIRST_ORDER)
        if self.discount_type in percentage_types and self.discount_value > 100:
            msg = "Percentage discount must be between 0 and 100"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_buy_x_get_y(self) -> Self:
        if self.discount_type == DiscountType.BUY_X_GET_Y and self.buy_x_get_y is None:
            msg = "buy_x_get_y is required for discount_type 'buy_x_get_y'"
            raise ValueError(msg)
        if self.discount_type != DiscountType.BUY_X_GET_Y and self.buy_x_get_y is not None:
            msg = "buy_x_get_y is only allowed for discount_type 'buy_x_get_y'"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_window(self) -> Self:
        start_at, expires_at = as_utc(self.start_at), as_utc(self.expires_at)
        if start_at and expires_at and expires_at <= start_at:
            msg = "expires_at must be after start_at"
            raise ValueError(msg)
        return self


_UPDATE_NON_NULLABLE = frozenset(
    {
        "code",
        "name",
        "discount_value",
        "applicable_to",
        "product_ids",
        "category_ids",
        "excluded_product_ids",
        "excluded_category_ids",
        "requires_authentication",
        "is_first_order_only",
        "allowed_customer_emails",
        "is_active",
    }
)


class CouponUpdate(BaseModel):
    code: str | None = Field(default=None, max_length=255)
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    discount_value: Decimal | None = Field(default=None, ge=0)
    max_discount_amount: Decimal | None = Field(default=None, ge=0)
    buy_x_get_y: BuyXGetYConfig | None = None
    min_order_value: Decimal | None = Field(default=None, ge=0)
    max_order_value: Decimal | None = Field(default=None, ge=0)
    min_items: int | None = Field(default=None, ge=0)
    start_at: datetime | None = None
    expires_at: datetime | None = None
    total_uses_limit: int | None = Field(default=None, ge=0)
    uses_per_customer_limit: int | None = Field(default=None, ge=0)
    applicable_to: CouponApplicability | None = None
    product_ids: list[str] | None = None
    category_ids: list[str] | None = None
    excluded_product_ids: list[str] | None = None
    excluded_category_ids: list[str] | None = None
    requires_authentication: bool | None = None
    is_first_order_only: bool | None = None
    allowed_customer_emails: list[str] | None = None
    is_active: bool | None = None

    @field_validator("code")
    @classmethod
    def normalize_and_validate_code(cls, value: str | None) -> str | None:
        if value is None:
            return value
        return validate_code_format(value)

    @field_validator("allowed_customer_emails")
    @classmethod
    def lower_allowed_emails(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        return _lower_emails(value)

    @model_validator(mode="after")
    def reject_null_required_fields(self) -> Self:
        """Omitting a field leaves it unchanged; only nullable columns accept ``null``."""
        nulled = sorted(
            name
            for name in self.model_fields_set & _UPDATE_NON_NULLABLE
            if getattr(self, name) is None
        )
        if nulled:
            msg = f"Fields cannot be null: {', '.join(nulled)}"
            raise ValueError(msg)
        return self


class CouponResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    discount_type: str
    discount_value: Decimal
    max_discount_amount: Decimal | None = None
    buy_x_get_y: BuyXGetYConfig | None = None
    min_order_value: Decimal | None = None
    max_order_value: Decimal | None = None
    min_items: int | None = None
    start_at: datetime | None = None
    expires_at: datetime | None = None
    total_uses_limit: int | None = None
    used_count: int
    uses_per_customer_limit: int | None = None
    applicable_to: str
    product_ids: list[str]
    category_ids: list[str]
    excluded_product_ids: list[str]
    excluded_category_ids: list[str]
    requires_authentication: bool
    is_first_order_only: bool
    allowed_customer_emails: list[str]
    is_active: bool
    total_revenue: Decimal
    created_at: datetime
    updated_at: datetime


class CouponPublicView(BaseModel):
    """The subset of a coupon that is safe to show to shoppers."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    discount_type: str
    discount_value: Decimal
    max_discount_amount: Decimal | None = None
    expires_at: datetime | None = None

    @field_serializer("discount_value", "max_discount_amount", when_used="json")
    def serialize_money(self, value: Decimal | None) -> float | None:
        return None if value is None else float(value)


class CartItem(BaseModel):
    product_id: str
    category_id: str | None = None
    price: Decimal = Field(ge=0)
    quantity: int = Field(ge=0)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class ApplyCouponRequest(BaseModel):
    code: str | None = None
    cart_subtotal: Decimal = Field(ge=0)
    cart_items: list[CartItem] = Field(default_factory=list)
    customer_email: str | None = None
    customer_phone: str | None = None
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("customer_email", "customer_phone")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return value.strip() or None


class FreeItem(BaseModel):
    product_id: str
    quantity: int


class ApplyCouponResponse(BaseModel):
    success: bool
    discount: Decimal = Decimal("0")
    discount_type: str = DiscountType.PERCENTAGE.value
    message: str
    error_code: str | None = None
    free_shipping: bool = False
    free_items: list[FreeItem] | None = None
    coupon: CouponPublicView | None = None

    @field_serializer("discount", when_used="json")
    def serialize_discount(self, value: Decimal) -> float:
        return float(value)


class RecordCouponUsageRequest(BaseModel):
    coupon_id: UUID
    order_id: str = Field(min_length=1, max_length=255)
    coupon_code: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    discount_applied: Decimal = Field(default=Decimal("0"), ge=0)
    order_total: Decimal = Field(default=Decimal("0"), ge=0)


class CouponUsageRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    organization_id: UUID
    coupon_id: UUID
    coupon_code_snapshot: str
    order_id: str
    customer_id: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None
    discount_applied: Decimal
    order_total: Decimal
    created_at: datetime


class RecordCouponUsageResponse(BaseModel):
    success: bool
    replayed: bool
    usage_record: CouponUsageRecordResponse


class CouponAnalyticsResponse(BaseModel):
    """Usage analytics for a coupon."""

    times_used: int
    total_discount_applied: Decimal
    total_revenue: Decimal
    average_order_value: Decimal
    unique_customers: int
    remaining_uses: int | None = None
