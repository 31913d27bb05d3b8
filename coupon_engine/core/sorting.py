"""Ordering helper shared by the list endpoints."""

from __future__ import annotations

from sqlalchemy import asc, desc
from sqlalchemy.orm import Query

from coupon_engine.core.database import Base


def parse_order_by(order_by: str | None) -> tuple[str | None, str | None]:
    """Split a ``field:direction`` string; direction defaults to ``asc``."""
    if not order_by:
        return None, None
    field, _, direction = order_by.partition(":")
    return field.strip() or None, (direction.strip().lower() or "asc")


def apply_order_by(
    query: Query,  # type: ignore[type-arg]
    model: type[Base],
    order_by: str | None,
    default_field: str = "created_at",
    default_direction: str = "desc",
) -> Query:  # type: ignore[type-arg]
    """Order ``query`` by a ``field:direction`` string such as ``"code:asc"``.

    Unknown columns fall back to ``default_field``; unknown directions fall
    back to ``default_direction``. The primary key is appended as a tie-breaker
    so that offset pagination is stable across pages.
    """
    field, direction = parse_order_by(order_by)
    if field is None or field.startswith("_") or field not in model.__table__.columns:
        field = default_field
    if direction not in ("asc", "desc"):
        direction = default_direction

    order_func = asc if direction == "asc" else desc
    return query.order_by(order_func(getattr(model, field)), order_func(model.id))
