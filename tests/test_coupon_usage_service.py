"""Tests for CouponUsageService: idempotent, limit-enforcing usage recording."""

import logging
from decimal import Decimal

import pytest

from coupon_engine.models.coupon import Coupon
from coupon_engine.models.coupon_usage import CouponUsageRecord
from coupon_engine.models.shared import generate_uuid
from coupon_engine.repositories.order_repository import OrderRepository
from coupon_engine.schemas.coupon import RecordCouponUsageRequest
from coupon_engine.services.coupon_errors import (
    CouponErrorCode,
    CouponFirstOrderError,
    CouponNotFoundError,
    CouponUsageLimitError,
)
from coupon_engine.services.coupon_usage_service import CouponUsageService


def _usage(coupon, order_id="ORD-1", **overrides):
    fields = {
        "coupon_id": coupon.id,
        "order_id": order_id,
        "coupon_code": coupon.code,
        "customer_email": "buyer@example.com",
        "discount_applied": Decimal("20.00"),
        "order_total": Decimal("180.00"),
    }
    fields.update(overrides)
    return RecordCouponUsageRequest(**fields)


def _used_count(db_session, coupon_id) -> int:
    db_session.expire_all()
    return db_session.get(Coupon, coupon_id).used_count


def _record_count(db_session, coupon_id) -> int:
    return db_session.query(CouponUsageRecord).filter(CouponUsageRecord.coupon_id == coupon_id).count()


class TestRecordUsage:
    def test_new_usage_increments_once(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("SAVE10")
        outcome = CouponUsageService(db_session).record_usage(default_org_id, _usage(coupon))

        assert outcome.replayed is False
        assert outcome.record.order_id == "ORD-1"
        assert outcome.record.discount_applied == Decimal("20.00")
        assert _used_count(db_session, coupon.id) == 1
        assert db_session.get(Coupon, coupon.id).total_revenue == Decimal("180.00")

    def test_replay_returns_original_record(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("SAVE10")
        service = CouponUsageService(db_session)
        first = service.record_usage(default_org_id, _usage(coupon))
        second = service.record_usage(default_org_id, _usage(coupon))

        assert second.replayed is True
        assert second.record.id == first.record.id
        assert _used_count(db_session, coupon.id) == 1
        assert _record_count(db_session, coupon.id) == 1

    def test_snapshot_fields_are_normalized(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("SAVE10")
        outcome = CouponUsageService(db_session).record_usage(
            default_org_id,
            _usage(coupon, coupon_code=" save10 ", customer_email=" Buyer@Example.COM "),
        )
        assert outcome.record.coupon_code_snapshot == "SAVE10"
        assert outcome.record.customer_email == "buyer@example.com"

    def test_code_snapshot_defaults_to_coupon_code(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("SAVE10")
        outcome = CouponUsageService(db_session).record_usage(
            default_org_id, _usage(coupon, coupon_code=None)
        )
        assert outcome.record.coupon_code_snapshot == "SAVE10"

    def test_limit_is_never_exceeded(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("LIMIT3", total_uses_limit=3)
        service = CouponUsageService(db_session)

        accepted, refused = 0, 0
        for n in range(5):
            try:
                service.record_usage(default_org_id, _usage(coupon, order_id=f"ORD-{n}"))
                accepted += 1
            except CouponUsageLimitError as exc:
                assert exc.error_code == CouponErrorCode.USAGE_LIMIT_REACHED
                refused += 1

        assert (accepted, refused) == (3, 2)
        assert _used_count(db_session, coupon.id) == 3
        assert _record_count(db_session, coupon.id) == 3

    def test_refused_usage_leaves_no_record(self, db_session, make_coupon, default_org_id, caplog):
        coupon = make_coupon("LAST1", total_uses_limit=1)
        service = CouponUsageService(db_session)
        service.record_usage(default_org_id, _usage(coupon, order_id="ORD-1"))

        with caplog.at_level(logging.WARNING), pytest.raises(CouponUsageLimitError):
            service.record_usage(default_org_id, _usage(coupon, order_id="ORD-2"))

        assert "limit 1 reached" in caplog.text
        assert _record_count(db_session, coupon.id) == 1
        assert service.usage_repo.get_by_coupon_and_order(default_org_id, coupon.id, "ORD-2") is None

    def test_replay_after_limit_reached_still_succeeds(
        self, db_session, make_coupon, default_org_id
    ):
        coupon = make_coupon("LAST1", total_uses_limit=1)
        service = CouponUsageService(db_session)
        service.record_usage(default_org_id, _usage(coupon, order_id="ORD-1"))

        outcome = service.record_usage(default_org_id, _usage(coupon, order_id="ORD-1"))
        assert outcome.replayed is True
        assert _used_count(db_session, coupon.id) == 1

    def test_unknown_coupon(self, db_session, default_org_id, make_coupon):
        coupon = make_coupon("SAVE10")
        request = _usage(coupon, coupon_id=generate_uuid())
        with pytest.raises(CouponNotFoundError):
            CouponUsageService(db_session).record_usage(default_org_id, request)

    def test_coupon_from_other_organization(self, db_session, make_coupon, other_org_id):
        coupon = make_coupon("SAVE10")
        with pytest.raises(CouponNotFoundError):
            CouponUsageService(db_session).record_usage(other_org_id, _usage(coupon))
        assert _used_count(db_session, coupon.id) == 0


class TestFirstOrderReverification:
    def test_refused_when_customer_has_prior_order(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("WELCOME", discount_type="first_order", discount_value=Decimal("15"))
        OrderRepository(db_session).create(
            default_org_id, "ORD-OLD", customer_email="buyer@example.com"
        )

        with pytest.raises(CouponFirstOrderError) as exc_info:
            CouponUsageService(db_session).record_usage(
                default_org_id, _usage(coupon, order_id="ORD-NEW")
            )
        assert exc_info.value.error_code == CouponErrorCode.FIRST_ORDER_ONLY
        assert _used_count(db_session, coupon.id) == 0

    def test_current_order_does_not_count(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("WELCOME", is_first_order_only=True)
        OrderRepository(db_session).create(
            default_org_id, "ORD-NEW", customer_email="buyer@example.com"
        )

        outcome = CouponUsageService(db_session).record_usage(
            default_org_id, _usage(coupon, order_id="ORD-NEW")
        )
        assert outcome.replayed is False
        assert _used_count(db_session, coupon.id) == 1

    def test_allowed_without_identifiers(self, db_session, make_coupon, default_org_id):
        coupon = make_coupon("WELCOME", is_first_order_only=True)
        OrderRepository(db_session).create(default_org_id, "ORD-OLD", customer_email="a@b.com")

        outcome = CouponUsageService(db_session).record_usage(
            default_org_id, _usage(coupon, customer_email=None)
        )
        assert outcome.replayed is False
