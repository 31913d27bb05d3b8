"""Tests for the discount calculator."""

from decimal import Decimal

import pytest

from coupon_engine.models.coupon import Coupon
from coupon_engine.services.discount_calculator import (
    DiscountResult,
    FreeItemGrant,
    calculate_discount,
    round_money,
)


def _coupon(discount_type: str, value: str = "10", **overrides) -> Coupon:
    return Coupon(
        code="CALC",
        name="Calc",
        discount_type=discount_type,
        discount_value=Decimal(value),
        **overrides,
    )


class TestPercentage:
    def test_scenario_a_ten_percent_of_200(self):
        result = calculate_discount(_coupon("percentage"), Decimal("200.00"), Decimal("200.00"))
        assert result.discount == Decimal("20.00")
        assert result.free_shipping is False
        assert result.free_items == []

    def test_scenario_b_capped(self):
        coupon = _coupon("percentage", max_discount_amount=Decimal("15"))
        result = calculate_discount(coupon, Decimal("500.00"), Decimal("500.00"))
        assert result.discount == Decimal("15.00")

    def test_cap_above_discount_has_no_effect(self):
        coupon = _coupon("percentage", max_discount_amount=Decimal("100"))
        assert calculate_discount(coupon, Decimal("50"), Decimal("50")).discount == Decimal("5.00")

    def test_uses_applicable_subtotal_not_cart_subtotal(self):
        result = calculate_discount(_coupon("percentage"), Decimal("300"), Decimal("100"))
        assert result.discount == Decimal("10.00")

    def test_rounds_half_up_on_final_amount(self):
        coupon = _coupon("percentage", value="50")
        assert calculate_discount(coupon, Decimal("5.35"), Decimal("5.35")).discount == Decimal("2.68")

    def test_small_amount_rounds_up(self):
        result = calculate_discount(_coupon("percentage"), Decimal("0.05"), Decimal("0.05"))
        assert result.discount == Decimal("0.01")

    def test_first_order_uses_percentage_arithmetic(self):
        coupon = _coupon("first_order", value="15", max_discount_amount=Decimal("20"))
        assert calculate_discount(coupon, Decimal("100"), Decimal("100")).discount == Decimal("15.00")
        assert calculate_discount(coupon, Decimal("400"), Decimal("400")).discount == Decimal("20.00")


class TestFixedAmount:
    def test_fixed_discount(self):
        result = calculate_discount(_coupon("fixed_amount", "20"), Decimal("130"), Decimal("100"))
        assert result.discount == Decimal("20.00")

    def test_fixed_never_exceeds_applicable_subtotal(self):
        result = calculate_discount(_coupon("fixed_amount", "50"), Decimal("30"), Decimal("30"))
        assert result.discount == Decimal("30.00")

    def test_negative_applicable_subtotal_gives_zero(self):
        result = calculate_discount(_coupon("fixed_amount", "50"), Decimal("30"), Decimal("-5"))
        assert result.discount == Decimal("0.00")


class TestFreeShipping:
    def test_free_shipping_flag_and_zero_discount(self):
        result = calculate_discount(
            _coupon("free_shipping", "0"), Decimal("80"), Decimal("80"), shipping_cost=Decimal("60")
        )
        assert result == DiscountResult(discount=Decimal("0.00"), free_shipping=True)


class TestBuyXGetY:
    def _bxgy(self, **config) -> Coupon:
        defaults = {
            "buy_quantity": 2,
            "get_quantity": 1,
            "eligible_product_ids": ["p1"],
            "max_sets": 3,
        }
        defaults.update(config)
        return _coupon("buy_x_get_y", "0", buy_x_get_y=defaults)

    def test_scenario_e(self):
        result = calculate_discount(
            self._bxgy(), Decimal("70"), Decimal("70"), total_item_count=7
        )
        assert result.discount == Decimal("0.00")
        assert result.free_items == [FreeItemGrant(product_id="p1", quantity=3)]

    def test_max_sets_caps_grants(self):
        result = calculate_discount(
            self._bxgy(max_sets=2), Decimal("100"), Decimal("100"), total_item_count=10
        )
        assert result.free_items == [FreeItemGrant(product_id="p1", quantity=2)]

    def test_without_max_sets(self):
        result = calculate_discount(
            self._bxgy(max_sets=None, get_quantity=2), Decimal("100"), Decimal("100"), total_item_count=9
        )
        assert result.free_items == [FreeItemGrant(product_id="p1", quantity=8)]

    def test_one_grant_per_eligible_product(self):
        result = calculate_discount(
            self._bxgy(eligible_product_ids=["p1", "p2"]), Decimal("40"), Decimal("40"), total_item_count=4
        )
        assert [g.product_id for g in result.free_items] == ["p1", "p2"]
        assert all(g.quantity == 2 for g in result.free_items)

    def test_not_enough_items(self):
        result = calculate_discount(self._bxgy(), Decimal("10"), Decimal("10"), total_item_count=1)
        assert result.free_items == []

    def test_no_eligible_products(self):
        result = calculate_discount(
            self._bxgy(eligible_product_ids=[]), Decimal("70"), Decimal("70"), total_item_count=7
        )
        assert result.free_items == []


@pytest.mark.parametrize("discount_type", ["percentage", "fixed_amount", "first_order"])
@pytest.mark.parametrize("value", ["0", "7.5", "33", "100", "250"])
@pytest.mark.parametrize("applicable", ["0.01", "0.99", "19.99", "1000"])
def test_discount_stays_within_applicable_subtotal(discount_type, value, applicable):
    if discount_type != "fixed_amount" and Decimal(value) > 100:
        pytest.skip("percentage values are at most 100")
    applicable_subtotal = Decimal(applicable)
    result = calculate_discount(
        _coupon(discount_type, value), applicable_subtotal, applicable_subtotal
    )
    assert Decimal("0") <= result.discount <= applicable_subtotal


def test_round_money():
    assert round_money(Decimal("1.005")) == Decimal("1.01")
    assert round_money(Decimal("1.004")) == Decimal("1.00")
