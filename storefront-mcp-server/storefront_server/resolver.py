"""Payment method resolution for a provider and a target currency."""

import logging
from decimal import Decimal
from typing import Iterable, Optional

from .exceptions import DataServiceError
from .models import (
    BaseConfig,
    ExchangeRate,
    ProviderPaymentMethod,
    Resolution,
    ResolvedMethod,
)

logger = logging.getLogger(__name__)

IDENTITY_MULTIPLIER = Decimal("1")
UNKNOWN_METHOD_NAME = "Unknown"


class PaymentMethodResolver:
    """Decides which payment methods a customer may use, and at what rate."""

    def __init__(self, data) -> None:
        """
        Initialize the resolver.

        Args:
            data: Data service client (see StoreDataClient)
        """
        self.data = data

    async def resolve(self, provider_id: Optional[str], currency_code: Optional[str]) -> Resolution:
        """
        Resolve the eligible payment methods for a provider and currency.

        An empty result is a normal outcome. A failed read is reported
        through ``Resolution.error`` and also yields no methods.
        """
        if not provider_id or not currency_code:
            return Resolution()

        try:
            base = await self.data.get_base_config()
            if base is None:
                logger.info("No base configuration set; no payment methods resolvable")
                return Resolution()

            base_currency = await self.data.get_currency(base.currency_id)
            base_code = base_currency.code if base_currency else None

            accepted = await self.data.list_provider_payment_methods(provider_id, currency_code)
            if not accepted:
                logger.info(f"Provider {provider_id} accepts no methods in {currency_code}")
                return Resolution()

            rates = await self.data.list_exchange_rates(
                source_currency_id=base.currency_id,
                source_payment_method_id=base.payment_method_id,
                destination_payment_method_ids=[a.payment_method_id for a in accepted],
            )
        except DataServiceError as e:
            logger.error(f"Payment methods unavailable for provider {provider_id}: {e}")
            return Resolution(error=f"Payment methods unavailable: {e.message}")

        # oldest first, so the newest duplicate wins
        methods = select_methods(base, base_code, currency_code, accepted, reversed(rates))
        if not methods:
            logger.info(f"No payment method resolved for provider {provider_id} in {currency_code}")
        return Resolution(methods=methods)


def select_methods(
    base: BaseConfig,
    base_currency_code: Optional[str],
    currency_code: str,
    accepted: Iterable[ProviderPaymentMethod],
    rates: Iterable[ExchangeRate],
) -> list[ResolvedMethod]:
    """
    Combine accepted methods and exchange rates into resolved methods.

    Rates must start at the base pair and end at an accepted method and
    are given oldest first. Duplicate rows for the same destination keep
    the last one seen, i.e. the newest.
    When paying in the base currency with the base method, the multiplier
    is always 1. Only methods ending in ``currency_code`` are returned.
    """
    names = {a.payment_method_id: a.payment_method_name for a in accepted}

    resolved: dict[tuple[str, str], ResolvedMethod] = {}
    for rate in rates:
        if rate.source_currency_id != base.currency_id:
            continue
        if rate.source_payment_method_id != base.payment_method_id:
            continue
        method_id = rate.destination_payment_method_id
        if method_id not in names:
            continue
        destination = rate.destination_currency_code or ""
        resolved[(method_id, destination)] = ResolvedMethod(
            payment_method_id=method_id,
            display_name=rate.destination_payment_method_name
            or names[method_id]
            or UNKNOWN_METHOD_NAME,
            multiplier=rate.multiplier,
            destination_currency=destination,
        )

    if base_currency_code and currency_code == base_currency_code and base.payment_method_id in names:
        key = (base.payment_method_id, base_currency_code)
        existing = resolved.get(key)
        if existing is None:
            resolved[key] = ResolvedMethod(
                payment_method_id=base.payment_method_id,
                display_name=names[base.payment_method_id] or UNKNOWN_METHOD_NAME,
                multiplier=IDENTITY_MULTIPLIER,
                destination_currency=base_currency_code,
            )
        else:
            resolved[key] = existing.model_copy(update={"multiplier": IDENTITY_MULTIPLIER})

    return [m for m in resolved.values() if m.destination_currency == currency_code]
