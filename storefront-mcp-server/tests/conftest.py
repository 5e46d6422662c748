"""Shared pytest fixtures for storefront tests."""

import itertools
from decimal import Decimal
from typing import Iterable, Optional

import pytest

from storefront_server.exceptions import DataServiceError, UniqueViolationError
from storefront_server.models import (
    BaseConfig,
    Currency,
    ExchangeRate,
    Order,
    OrderLine,
    OrderStatus,
    Product,
    ProviderPaymentMethod,
    ShippingCost,
)
from storefront_server.storefront import Storefront


class FakeDataService:
    """In-memory stand-in for StoreDataClient.

    Method names listed in ``fail`` raise DataServiceError when called.
    Inserting an order whose tracking code is taken raises
    UniqueViolationError, like the storage unique constraint.
    """

    def __init__(self):
        self.fail: set[str] = set()
        self.calls: list[str] = []
        self.base_config: Optional[BaseConfig] = None
        self.currencies: dict[str, Currency] = {}
        self.payment_method_names: dict[str, str] = {}
        self.accepted: list[ProviderPaymentMethod] = []
        self.rates: list[ExchangeRate] = []
        self.shipping: list[ShippingCost] = []
        self.products: dict[str, Product] = {}
        self.orders: dict[str, Order] = {}
        self.deleted_orders: list[str] = []
        self._ids = itertools.count(1)

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if name in self.fail:
            raise DataServiceError(name, "service down", 503)

    # Setup helpers

    def add_currency(self, currency_id: str, code: str) -> None:
        self.currencies[currency_id] = Currency(id=currency_id, code=code)

    def accept(self, provider_id: str, currency_code: str, method_id: str) -> None:
        self.accepted.append(
            ProviderPaymentMethod(
                provider_id=provider_id,
                currency_code=currency_code,
                payment_method_id=method_id,
                payment_method_name=self.payment_method_names.get(method_id),
            )
        )

    def add_rate(self, destination_currency_id: str, method_id: str, multiplier: str) -> ExchangeRate:
        """Add a rate from the base pair to a destination pair."""
        rate = ExchangeRate(
            id=f"rate-{next(self._ids)}",
            source_currency_id=self.base_config.currency_id,
            source_payment_method_id=self.base_config.payment_method_id,
            destination_currency_id=destination_currency_id,
            destination_payment_method_id=method_id,
            multiplier=Decimal(multiplier),
            source_currency_code=self.currencies[self.base_config.currency_id].code,
            destination_currency_code=self.currencies[destination_currency_id].code,
            destination_payment_method_name=self.payment_method_names.get(method_id),
        )
        self.rates.append(rate)
        return rate

    # Reference data

    async def get_base_config(self):
        self._check("get_base_config")
        return self.base_config

    async def upsert_base_config(self, config):
        self._check("upsert_base_config")
        self.base_config = config
        return config

    async def get_currency(self, currency_id):
        self._check("get_currency")
        return self.currencies.get(currency_id)

    async def get_currency_by_code(self, code):
        self._check("get_currency_by_code")
        for currency in self.currencies.values():
            if currency.code == code:
                return currency
        return None

    async def list_provider_payment_methods(self, provider_id, currency_code):
        self._check("list_provider_payment_methods")
        return [
            a for a in self.accepted
            if a.provider_id == provider_id and a.currency_code == currency_code
        ]

    async def list_exchange_rates(
        self,
        source_currency_id=None,
        source_payment_method_id=None,
        destination_payment_method_ids: Optional[Iterable[str]] = None,
    ):
        self._check("list_exchange_rates")
        ids = None if destination_payment_method_ids is None else set(destination_payment_method_ids)
        rates = [
            r for r in self.rates
            if (source_currency_id is None or r.source_currency_id == source_currency_id)
            and (source_payment_method_id is None or r.source_payment_method_id == source_payment_method_id)
            and (ids is None or r.destination_payment_method_id in ids)
        ]
        # newest first
        return list(reversed(rates))

    async def insert_exchange_rate(self, rate):
        self._check("insert_exchange_rate")
        created = rate.model_copy(update={"id": f"rate-{next(self._ids)}"})
        self.rates.append(created)
        return created

    async def update_exchange_rate(self, rate_id, multiplier):
        self._check("update_exchange_rate")
        for index, rate in enumerate(self.rates):
            if rate.id == rate_id:
                self.rates[index] = rate.model_copy(update={"multiplier": multiplier})
                return self.rates[index]
        return None

    async def delete_exchange_rate(self, rate_id):
        self._check("delete_exchange_rate")
        self.rates = [r for r in self.rates if r.id != rate_id]

    async def get_shipping_cost(self, provider_id, municipality_id):
        self._check("get_shipping_cost")
        for cost in self.shipping:
            if cost.provider_id == provider_id and cost.municipality_id == municipality_id:
                return cost.cost
        return None

    async def list_shipping_costs(self, provider_id):
        self._check("list_shipping_costs")
        return [c for c in self.shipping if c.provider_id == provider_id]

    async def get_product(self, product_id):
        self._check("get_product")
        return self.products.get(product_id)

    # Orders

    async def get_orders(self, order_ids):
        self._check("get_orders")
        return [self.orders[i] for i in order_ids if i in self.orders]

    async def find_order_by_tracking_code(self, code):
        self._check("find_order_by_tracking_code")
        for order in self.orders.values():
            if order.tracking_code == code:
                return order
        return None

    async def list_orders(self, status=None, limit=50, offset=0):
        self._check("list_orders")
        orders = [o for o in self.orders.values() if status is None or o.status == status]
        return orders[offset:offset + limit]

    async def insert_order(self, order):
        self._check("insert_order")
        if any(o.tracking_code == order.tracking_code for o in self.orders.values()):
            raise UniqueViolationError("pedidos", "duplicate key value", 409, {"code": "23505"})
        created = order.model_copy(update={"id": f"order-{next(self._ids)}"})
        self.orders[created.id] = created
        return created

    async def insert_order_lines(self, lines):
        self._check("insert_order_lines")
        created = [line.model_copy(update={"id": f"line-{next(self._ids)}"}) for line in lines]
        for line in created:
            order = self.orders[line.order_id]
            self.orders[line.order_id] = order.model_copy(update={"lines": order.lines + [line]})
        return created

    async def delete_order(self, order_id):
        self._check("delete_order")
        self.deleted_orders.append(order_id)
        self.orders.pop(order_id, None)

    async def update_order_status(self, order_id, status):
        self._check("update_order_status")
        order = self.orders.get(order_id)
        if order is None:
            return None
        self.orders[order_id] = order.model_copy(update={"status": status})
        return self.orders[order_id]


def make_product(product_id: str, price: str, provider_id: str = "p1", currency: str = "USD") -> Product:
    return Product(
        id=product_id,
        name=f"Product {product_id}",
        price=Decimal(price),
        currency=currency,
        provider_id=provider_id,
    )


def make_order(tracking_code: str, order_id: str = "order-x", **kwargs) -> Order:
    values = dict(
        id=order_id,
        client_name="Ana",
        client_phone="5551234",
        municipality_id="mun-1",
        address="Calle 1",
        provider_id="p1",
        product_subtotal=Decimal("20"),
        shipping_cost=Decimal("5"),
        status=OrderStatus.PENDING,
        tracking_code=tracking_code,
        lines=[OrderLine(order_id=order_id, product_id="prod-1", quantity=2, unit_price=Decimal("10"))],
    )
    values.update(kwargs)
    return Order(**values)


@pytest.fixture
def data():
    """Store with USD/Cash as base, and provider p1 accepting Cash in USD
    and Cash or Transfer in CUP."""
    fake = FakeDataService()
    fake.add_currency("cur-usd", "USD")
    fake.add_currency("cur-cup", "CUP")
    fake.payment_method_names = {"pm-cash": "Cash", "pm-transfer": "Transfer"}
    fake.base_config = BaseConfig(currency_id="cur-usd", payment_method_id="pm-cash")
    fake.accept("p1", "USD", "pm-cash")
    fake.accept("p1", "CUP", "pm-cash")
    fake.accept("p1", "CUP", "pm-transfer")
    fake.add_rate("cur-cup", "pm-cash", "320")
    fake.add_rate("cur-cup", "pm-transfer", "300")
    fake.shipping.append(ShippingCost(provider_id="p1", municipality_id="mun-1", cost=Decimal("5")))
    for product in (
        make_product("prod-1", "10"),
        make_product("prod-2", "2.50"),
        make_product("prod-3", "7", provider_id="p2"),
    ):
        fake.products[product.id] = product
    return fake


@pytest.fixture
def history_file(tmp_path):
    return str(tmp_path / "orders.json")


@pytest.fixture
def storefront(data, history_file):
    return Storefront(data, history_file=history_file)
