"""CouponUsageRecord repository for data access."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from coupon_engine.core.sorting import apply_order_by
from coupon_engine.models.coupon_usage import CouponUsageRecord


class CouponUsageRepository:
    """Repository for the coupon usage ledger."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_coupon_and_order(
        self, organization_id: UUID, coupon_id: UUID, order_id: str
    ) -> CouponUsageRecord | None:
        return (
            self.db.query(CouponUsageRecord)
            .filter(
                CouponUsageRecord.organization_id == organization_id,
                CouponUsageRecord.coupon_id == coupon_id,
                CouponUsageRecord.order_id == order_id,
            )
            .first()
        )

    def count_by_customer(
        self,
        organization_id: UUID,
        coupon_id: UUID,
        email: str | None = None,
        phone: str | None = None,
    ) -> int:
        """Count redemptions of a coupon by a customer identified by email or phone."""
        conditions = []
        if email:
            conditions.append(CouponUsageRecord.customer_email == email.strip().lower())
        if phone:
            conditions.append(CouponUsageRecord.customer_phone == phone.strip())
        if not conditions:
            return 0

        return (
            self.db.query(func.count(CouponUsageRecord.id))
            .filter(
                CouponUsageRecord.organization_id == organization_id,
                CouponUsageRecord.coupon_id == coupon_id,
                or_(*conditions),
            )
            .scalar()
            or 0
        )

    def add(
        self,
        *,
        organization_id: UUID,
        coupon_id: UUID,
        coupon_code: str,
        order_id: str,
        discount_applied: Decimal,
        order_total: Decimal,
        customer_id: str | None = None,
        customer_email: str | None = None,
        customer_phone: str | None = None,
    ) -> CouponUsageRecord:
        """Stage a usage record in the current transaction (flush, no commit)."""
        record = CouponUsageRecord(
            organization_id=organization_id,
            coupon_id=coupon_id,
            coupon_code_snapshot=coupon_code.strip().upper(),
            order_id=order_id,
            customer_id=customer_id,
            customer_email=customer_email.strip().lower() if customer_email else None,
            customer_phone=customer_phone.strip() if customer_phone else None,
            discount_applied=discount_applied,
            order_total=order_total,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def get_all_by_coupon_id(
        self,
        organization_id: UUID,
        coupon_id: UUID,
        skip: int = 0,
        limit: int = 100,
        order_by: str | None = None,
    ) -> list[CouponUsageRecord]:
        query = self.db.query(CouponUsageRecord).filter(
            CouponUsageRecord.organization_id == organization_id,
            CouponUsageRecord.coupon_id == coupon_id,
        )
        query = apply_order_by(query, CouponUsageRecord, order_by)
        return query.offset(skip).limit(limit).all()

    def count_by_coupon_id(self, organization_id: UUID, coupon_id: UUID) -> int:
        return (
            self.db.query(func.count(CouponUsageRecord.id))
            .filter(
                CouponUsageRecord.organization_id == organization_id,
                CouponUsageRecord.coupon_id == coupon_id,
            )
            .scalar()
            or 0
        )

    def sum_discount_by_coupon_id(self, organization_id: UUID, coupon_id: UUID) -> Decimal:
        total = (
            self.db.query(func.sum(CouponUsageRecord.discount_applied))
            .filter(
                CouponUsageRecord.organization_id == organization_id,
                CouponUsageRecord.coupon_id == coupon_id,
            )
            .scalar()
        )
        return Decimal(str(total or 0))

    def count_distinct_customers(self, organization_id: UUID, coupon_id: UUID) -> int:
        """Distinct customers, keyed by email, falling back to phone."""
        identity = func.coalesce(CouponUsageRecord.customer_email, CouponUsageRecord.customer_phone)
        return (
            self.db.query(func.count(func.distinct(identity)))
            .filter(
                CouponUsageRecord.organization_id == organization_id,
                CouponUsageRecord.coupon_id == coupon_id,
            )
            .scalar()
            or 0
        )
