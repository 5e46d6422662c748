"""Tests for the checkout flow."""

import asyncio
import itertools
from decimal import Decimal

import pytest

from storefront_server.exceptions import CheckoutError
from storefront_server.models import CheckoutRequest, OrderStatus
from storefront_server.storefront import Storefront

from conftest import make_order


def checkout_request(**kwargs):
    values = dict(
        client_name=" Ana Perez ",
        client_phone="5551234",
        municipality_id="mun-1",
        address="Calle 1 #2",
        currency_code="CUP",
        payment_method_id="pm-transfer",
    )
    values.update(kwargs)
    return CheckoutRequest(**values)


def fill_cart(storefront):
    storefront.cart.add_line(storefront.data.products["prod-1"])
    storefront.cart.add_line(storefront.data.products["prod-1"])


def place(storefront, request=None):
    return asyncio.run(storefront.checkout.place_order(storefront.cart, request or checkout_request()))


class TestPreview:
    def test_priced_in_selected_method(self, storefront):
        fill_cart(storefront)

        preview = asyncio.run(
            storefront.checkout.preview(storefront.cart, "CUP", "pm-transfer", "mun-1")
        )

        assert preview.can_submit
        assert preview.selected_method.payment_method_id == "pm-transfer"
        assert preview.totals.total_native.amount == Decimal("25")
        assert preview.totals.total_display.amount == Decimal("7500")
        assert preview.notice is None

    def test_single_method_is_selected(self, storefront):
        fill_cart(storefront)

        preview = asyncio.run(storefront.checkout.preview(storefront.cart, "USD"))

        assert preview.selected_method.payment_method_id == "pm-cash"
        assert preview.totals.multiplier == Decimal("1")

    def test_no_methods_disables_submit(self, storefront):
        fill_cart(storefront)

        preview = asyncio.run(storefront.checkout.preview(storefront.cart, "EUR"))

        assert not preview.can_submit
        assert preview.notice == "No payment methods available for this currency"
        assert preview.totals.total_display.currency == "USD"

    def test_shipping_failure_shows_notice(self, storefront, data):
        fill_cart(storefront)
        data.fail.add("get_shipping_cost")

        preview = asyncio.run(
            storefront.checkout.preview(storefront.cart, "USD", "pm-cash", "mun-1")
        )

        assert preview.totals.shipping_native.amount == Decimal("0")
        assert preview.notice == "Shipping cost unavailable"

    def test_empty_cart_cannot_submit(self, storefront):
        preview = asyncio.run(storefront.checkout.preview(storefront.cart, "USD"))

        assert not preview.can_submit


class TestPlaceOrder:
    def test_success(self, storefront, data):
        fill_cart(storefront)

        placed = place(storefront)

        order = placed.order
        assert order.id in data.orders
        assert order.status == OrderStatus.PENDING
        assert order.client_name == "Ana Perez"
        assert order.currency_id == "cur-cup"
        assert order.payment_method_id == "pm-transfer"
        assert order.provider_id == "p1"
        assert order.product_subtotal == Decimal("20")
        assert order.shipping_cost == Decimal("5")
        assert len(order.tracking_code) == 8
        assert [(line.product_id, line.quantity) for line in order.lines] == [("prod-1", 2)]
        assert placed.totals.total_display.amount == Decimal("7500")
        assert placed.payment_method_name == "Transfer"

        assert storefront.cart.is_empty()
        assert storefront.history.order_ids == [order.id]

    def test_empty_cart(self, storefront):
        with pytest.raises(CheckoutError) as exc_info:
            place(storefront)

        assert exc_info.value.code == "EMPTY_CART"

    def test_no_methods(self, storefront):
        fill_cart(storefront)

        with pytest.raises(CheckoutError) as exc_info:
            place(storefront, checkout_request(currency_code="EUR"))

        assert exc_info.value.code == "NO_PAYMENT_METHODS"

    def test_method_not_allowed(self, storefront):
        fill_cart(storefront)

        with pytest.raises(CheckoutError) as exc_info:
            place(storefront, checkout_request(currency_code="USD"))

        assert exc_info.value.code == "METHOD_NOT_ALLOWED"

    def test_resolution_failure(self, storefront, data):
        fill_cart(storefront)
        data.fail.add("list_provider_payment_methods")

        with pytest.raises(CheckoutError) as exc_info:
            place(storefront)

        assert exc_info.value.code == "NO_PAYMENT_METHODS"
        assert not storefront.cart.is_empty()

    def test_tracking_exhausted_writes_nothing(self, storefront, data):
        fill_cart(storefront)
        data.fail.add("find_order_by_tracking_code")

        with pytest.raises(CheckoutError) as exc_info:
            place(storefront)

        assert exc_info.value.code == "TRACKING_CODE_EXHAUSTED"
        assert "insert_order" not in data.calls
        assert data.orders == {}

    def test_conflict_at_insert(self, storefront, data, monkeypatch):
        fill_cart(storefront)
        data.orders["o1"] = make_order("AAAAAAAA", order_id="o1")
        chars = itertools.cycle("A")
        storefront.tracking.choice = lambda alphabet: next(chars)

        async def never_found(code):
            return None

        # the pre-check misses a code another client just stored
        monkeypatch.setattr(data, "find_order_by_tracking_code", never_found)

        with pytest.raises(CheckoutError) as exc_info:
            place(storefront)

        assert exc_info.value.code == "TRACKING_CODE_CONFLICT"
        assert list(data.orders) == ["o1"]

    def test_failed_lines_delete_order(self, storefront, data):
        fill_cart(storefront)
        data.fail.add("insert_order_lines")

        with pytest.raises(CheckoutError) as exc_info:
            place(storefront)

        assert exc_info.value.code == "ORDER_INSERT_FAILED"
        assert data.orders == {}
        assert len(data.deleted_orders) == 1
        assert storefront.history.order_ids == []
        assert not storefront.cart.is_empty()

    def test_blank_name_rejected(self):
        with pytest.raises(ValueError):
            checkout_request(client_name="   ")

    def test_unwritable_history_still_returns_order(self, data, tmp_path):
        storefront = Storefront(data, history_file=str(tmp_path / "missing" / "orders.json"))
        fill_cart(storefront)

        placed = place(storefront)

        assert placed.order.id in data.orders
        assert storefront.history.order_ids == [placed.order.id]
        assert storefront.cart.is_empty()
