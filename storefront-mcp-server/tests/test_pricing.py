"""Tests for money handling and checkout totals."""

import asyncio
from decimal import Decimal

import pytest

from storefront_server.exceptions import CurrencyBasisError, DataServiceError
from storefront_server.models import AmountBasis, Money, ResolvedMethod, round_money
from storefront_server.pricing import ShippingCostLookup, compute_totals


def usd(amount):
    return Money(amount=Decimal(amount), currency="USD")


def method(multiplier, currency="CUP"):
    return ResolvedMethod(
        payment_method_id="pm-1",
        display_name="Cash",
        multiplier=Decimal(multiplier),
        destination_currency=currency,
    )


class TestComputeTotals:
    def test_converts_with_multiplier(self):
        totals = compute_totals(usd("100"), usd("10"), 1, method("1.25"))

        assert totals.subtotal_display.amount == Decimal("125")
        assert totals.shipping_display.amount == Decimal("12.5")
        assert totals.total_display.amount == Decimal("137.5")
        assert totals.total_display.currency == "CUP"
        assert totals.total_display.basis == AmountBasis.DISPLAY

    def test_native_amounts_unchanged(self):
        totals = compute_totals(usd("100"), usd("10"), 1, method("1.25"))

        assert totals.subtotal_native == usd("100")
        assert totals.shipping_native == usd("10")
        assert totals.total_native == usd("110")

    def test_multiplier_one_display_equals_native(self):
        totals = compute_totals(usd("19.99"), usd("3.01"), 1, method("1", currency="USD"))

        assert totals.total_display.amount == totals.total_native.amount
        assert totals.subtotal_display.amount == totals.subtotal_native.amount

    def test_no_method_falls_back_to_native(self):
        totals = compute_totals(usd("40"), usd("5"))

        assert totals.multiplier is None
        assert not totals.converted
        assert totals.total_display.amount == Decimal("45")
        assert totals.total_display.currency == "USD"

    def test_quantity_multiplier_scales_subtotal(self):
        totals = compute_totals(usd("10"), usd("5"), 3, method("2"))

        assert totals.subtotal_native.amount == Decimal("30")
        assert totals.total_native.amount == Decimal("35")
        assert totals.total_display.amount == Decimal("70")

    def test_rejects_display_input(self):
        with pytest.raises(ValueError):
            compute_totals(usd("10").as_display(), usd("0"))

    def test_display_rounding_only_at_render(self):
        totals = compute_totals(usd("0.333"), usd("0"), 3, method("1", currency="USD"))

        assert totals.total_display.amount == Decimal("0.999")
        assert totals.total_display.format(2) == "1.00 USD"


class TestMoney:
    def test_cannot_mix_basis(self):
        with pytest.raises(CurrencyBasisError):
            usd("1") + usd("1").as_display()

    def test_cannot_mix_currency(self):
        with pytest.raises(CurrencyBasisError):
            usd("1") + Money(amount=Decimal("1"), currency="CUP")

    def test_display_cannot_be_converted_again(self):
        with pytest.raises(CurrencyBasisError):
            usd("1").to_display(Decimal("2"), "CUP").to_display(Decimal("2"), "EUR")

    def test_sum(self):
        assert sum([usd("1.10"), usd("2.20")]).amount == Decimal("3.30")

    def test_ordering(self):
        assert usd("1") < usd("2")
        with pytest.raises(CurrencyBasisError):
            usd("1") < usd("2").as_display()

    def test_round_money_is_bankers(self):
        assert round_money(Decimal("2.345")) == Decimal("2.34")
        assert round_money(Decimal("2.355")) == Decimal("2.36")
        assert round_money(Decimal("7.5"), 0) == Decimal("8")
        assert round_money(Decimal("6.5"), 0) == Decimal("6")


class TestShippingCostLookup:
    def test_known_cost(self, data):
        cost = asyncio.run(ShippingCostLookup(data).cost_for("p1", "mun-1", "USD"))

        assert cost == usd("5")

    def test_missing_row_is_free(self, data):
        cost = asyncio.run(ShippingCostLookup(data).cost_for("p1", "mun-9", "USD"))

        assert cost.amount == Decimal("0")

    def test_missing_ids_skip_lookup(self, data):
        cost = asyncio.run(ShippingCostLookup(data).cost_for(None, "mun-1", "USD"))

        assert cost.amount == Decimal("0")
        assert data.calls == []

    def test_failure_propagates(self, data):
        data.fail.add("get_shipping_cost")

        with pytest.raises(DataServiceError):
            asyncio.run(ShippingCostLookup(data).cost_for("p1", "mun-1", "USD"))

    def test_costs_for_provider(self, data):
        costs = asyncio.run(ShippingCostLookup(data).costs_for_provider("p1"))

        assert costs == {"mun-1": Decimal("5")}
