"""Coupon repository for data access."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Query, Session

from coupon_engine.core.sorting import apply_order_by
from coupon_engine.models.coupon import Coupon, DiscountType, normalize_code
from coupon_engine.schemas.coupon import CouponCreate, CouponUpdate


class CouponRepository:
    """Repository for Coupon model. Every lookup is scoped to one organization."""

    def __init__(self, db: Session):
        self.db = db

    def _filtered(
        self,
        organization_id: UUID,
        search: str | None = None,
        is_active: bool | None = None,
        discount_type: DiscountType | None = None,
    ) -> Query:  # type: ignore[type-arg]
        query = self.db.query(Coupon).filter(Coupon.organization_id == organization_id)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Coupon.code.ilike(pattern),
                    Coupon.name.ilike(pattern),
                    Coupon.description.ilike(pattern),
                )
            )
        if is_active is not None:
            query = query.filter(Coupon.is_active == is_active)
        if discount_type:
            query = query.filter(Coupon.discount_type == discount_type.value)
        return query

    def get_all(
        self,
        organization_id: UUID,
        skip: int = 0,
        limit: int = 100,
        order_by: str | None = None,
        search: str | None = None,
        is_active: bool | None = None,
        discount_type: DiscountType | None = None,
    ) -> list[Coupon]:
        """Get coupons with optional search and filters."""
        query = self._filtered(organization_id, search, is_active, discount_type)
        query = apply_order_by(query, Coupon, order_by)
        return query.offset(skip).limit(limit).all()

    def count(
        self,
        organization_id: UUID,
        search: str | None = None,
        is_active: bool | None = None,
        discount_type: DiscountType | None = None,
    ) -> int:
        """Count coupons matching the same filters as get_all."""
        query = self._filtered(organization_id, search, is_active, discount_type)
        return query.with_entities(func.count(Coupon.id)).scalar() or 0

    def get_by_id(self, coupon_id: UUID, organization_id: UUID) -> Coupon | None:
        """Get a coupon by ID."""
        return (
            self.db.query(Coupon)
            .filter(Coupon.id == coupon_id, Coupon.organization_id == organization_id)
            .first()
        )

    def get_by_code(self, code: str, organization_id: UUID) -> Coupon | None:
        """Get a coupon by code, ignoring case and surrounding whitespace."""
        normalized = normalize_code(code)
        if not normalized:
            return None
        return (
            self.db.query(Coupon)
            .filter(Coupon.code == normalized, Coupon.organization_id == organization_id)
            .first()
        )

    def get_by_id_or_code(self, id_or_code: str, organization_id: UUID) -> Coupon | None:
        """Resolve an admin path parameter that may be either a UUID or a code."""
        try:
            coupon_id = UUID(id_or_code)
        except ValueError:
            return self.get_by_code(id_or_code, organization_id)
        return self.get_by_id(coupon_id, organization_id) or self.get_by_code(
            id_or_code, organization_id
        )

    def create(self, data: CouponCreate, organization_id: UUID) -> Coupon:
        """Create a new coupon. ``data.code`` is already normalized."""
        values = data.model_dump(exclude={"discount_type", "applicable_to", "buy_x_get_y"})
        coupon = Coupon(
            **values,
            discount_type=data.discount_type.value,
            applicable_to=data.applicable_to.value,
            buy_x_get_y=data.buy_x_get_y.model_dump() if data.buy_x_get_y else None,
            used_count=0,
            total_revenue=Decimal("0"),
            organization_id=organization_id,
        )
        self.db.add(coupon)
        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def update(self, coupon: Coupon, data: CouponUpdate) -> Coupon:
        """Apply a partial update to a coupon."""
        update_data = data.model_dump(exclude_unset=True)

        if "applicable_to" in update_data and update_data["applicable_to"]:
            update_data["applicable_to"] = update_data["applicable_to"].value

        for key, value in update_data.items():
            setattr(coupon, key, value)

        self.db.commit()
        self.db.refresh(coupon)
        return coupon

    def delete(self, coupon: Coupon) -> None:
        """Delete a coupon."""
        self.db.delete(coupon)
        self.db.commit()

    def increment_used_count(
        self,
        coupon_id: UUID,
        organization_id: UUID,
        order_total: Decimal = Decimal("0"),
        enforce_limit: bool = True,
    ) -> tuple[int, bool]:
        """Atomically add one redemption to a coupon.

        Issues a single conditional UPDATE so concurrent callers cannot lose
        updates or push ``used_count`` past ``total_uses_limit``. Returns the
        observed count and whether the increment was accepted. Does not commit:
        the caller owns the unit of work.
        """
        stmt = (
            update(Coupon)
            .where(Coupon.id == coupon_id, Coupon.organization_id == organization_id)
            .values(
                used_count=Coupon.used_count + 1,
                total_revenue=Coupon.total_revenue + order_total,
            )
            .execution_options(synchronize_session=False)
        )
        if enforce_limit:
            stmt = stmt.where(
                or_(
                    Coupon.total_uses_limit.is_(None),
                    Coupon.used_count < Coupon.total_uses_limit,
                )
            )

        accepted = self.db.execute(stmt).rowcount == 1
        current = (
            self.db.query(Coupon.used_count)
            .filter(Coupon.id == coupon_id, Coupon.organization_id == organization_id)
            .scalar()
        )
        return int(current or 0), accepted
