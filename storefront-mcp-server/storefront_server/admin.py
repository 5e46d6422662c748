"""Administrator operations on pricing reference data and orders."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional, Union

from .models import BaseConfig, ExchangeRate, Order, OrderStatus

logger = logging.getLogger(__name__)


def latest_rates(rates: Iterable[ExchangeRate]) -> list[ExchangeRate]:
    """
    Collapse duplicate rates, keeping the last one per (source, destination).

    The result keeps the position of the first occurrence of each pair.
    """
    by_pair: dict[tuple[str, str, str, str], ExchangeRate] = {}
    for rate in rates:
        key = (
            rate.source_currency_id,
            rate.source_payment_method_id,
            rate.destination_currency_id,
            rate.destination_payment_method_id,
        )
        by_pair[key] = rate
    return list(by_pair.values())


def _parse_multiplier(value: Union[str, int, float, Decimal]) -> Decimal:
    try:
        multiplier = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid exchange rate: {value}") from e
    if not multiplier.is_finite() or multiplier <= 0:
        raise ValueError(f"Exchange rate must be positive: {value}")
    return multiplier


class AdminService:
    """Base configuration, exchange rates and order status management."""

    def __init__(self, data) -> None:
        self.data = data

    async def get_base_config(self) -> Optional[BaseConfig]:
        return await self.data.get_base_config()

    async def set_base_config(self, currency_id: str, payment_method_id: str) -> BaseConfig:
        """Designate the base (currency, payment method) pair."""
        if not currency_id or not payment_method_id:
            raise ValueError("Both currency and payment method are required")
        config = BaseConfig(currency_id=currency_id, payment_method_id=payment_method_id)
        await self.data.upsert_base_config(config)
        logger.info(f"Base configuration set to {currency_id}/{payment_method_id}")
        return config

    async def list_exchange_rates(self) -> list[ExchangeRate]:
        """All exchange rates, newest first."""
        return await self.data.list_exchange_rates()

    async def add_exchange_rate(
        self,
        source_currency_id: str,
        source_payment_method_id: str,
        destination_currency_id: str,
        destination_payment_method_id: str,
        multiplier: Union[str, int, float, Decimal],
    ) -> ExchangeRate:
        rate = ExchangeRate(
            source_currency_id=source_currency_id,
            source_payment_method_id=source_payment_method_id,
            destination_currency_id=destination_currency_id,
            destination_payment_method_id=destination_payment_method_id,
            multiplier=_parse_multiplier(multiplier),
        )
        created = await self.data.insert_exchange_rate(rate)
        logger.info(f"Exchange rate {created.id} added")
        return created

    async def update_exchange_rate(
        self, rate_id: str, multiplier: Union[str, int, float, Decimal]
    ) -> Optional[ExchangeRate]:
        return await self.data.update_exchange_rate(rate_id, _parse_multiplier(multiplier))

    async def delete_exchange_rate(self, rate_id: str) -> None:
        await self.data.delete_exchange_rate(rate_id)
        logger.info(f"Exchange rate {rate_id} deleted")

    async def list_orders(
        self, status: Optional[Union[str, OrderStatus]] = None, limit: int = 50, offset: int = 0
    ) -> list[Order]:
        if isinstance(status, str):
            status = OrderStatus.parse(status)
        return await self.data.list_orders(status=status, limit=limit, offset=offset)

    async def update_order_status(
        self, order_id: str, status: Union[str, OrderStatus]
    ) -> Optional[Order]:
        """Change an order's status, the only field mutable after creation."""
        if isinstance(status, str):
            status = OrderStatus.parse(status)
        order = await self.data.update_order_status(order_id, status)
        if order is None:
            logger.warning(f"Order {order_id} not found for status update")
        else:
            logger.info(f"Order {order_id} status set to {status.value}")
        return order
