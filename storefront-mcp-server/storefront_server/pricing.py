"""Order pricing: native totals, display conversion and shipping lookup.

Stored amounts are always native. Display amounts are native amounts
multiplied by the resolved rate and are only rounded when rendered.
"""

import logging
from decimal import Decimal
from typing import Optional, Union

from .models import AmountBasis, Money, PricingTotals, ResolvedMethod

logger = logging.getLogger(__name__)


def compute_totals(
    cart_total: Money,
    shipping_cost: Money,
    quantity_multiplier: Union[int, Decimal] = 1,
    resolved: Optional[ResolvedMethod] = None,
) -> PricingTotals:
    """
    Compute native and display totals.

    Args:
        cart_total: Products subtotal (native)
        shipping_cost: Shipping cost (native, same currency)
        quantity_multiplier: Scales the products subtotal (e.g. a quantity
            picked on a single product page)
        resolved: Chosen payment method; when None the display amounts
            fall back to the native amounts and currency

    Returns:
        PricingTotals with native and display amounts
    """
    if cart_total.basis != AmountBasis.NATIVE or shipping_cost.basis != AmountBasis.NATIVE:
        raise ValueError("compute_totals expects native amounts")

    subtotal_native = cart_total * quantity_multiplier
    total_native = subtotal_native + shipping_cost

    if resolved is None:
        return PricingTotals(
            subtotal_native=subtotal_native,
            shipping_native=shipping_cost,
            total_native=total_native,
            subtotal_display=subtotal_native.as_display(),
            shipping_display=shipping_cost.as_display(),
            total_display=total_native.as_display(),
        )

    currency = resolved.destination_currency
    multiplier = resolved.multiplier
    return PricingTotals(
        subtotal_native=subtotal_native,
        shipping_native=shipping_cost,
        total_native=total_native,
        subtotal_display=subtotal_native.to_display(multiplier, currency),
        shipping_display=shipping_cost.to_display(multiplier, currency),
        total_display=total_native.to_display(multiplier, currency),
        multiplier=multiplier,
    )


class ShippingCostLookup:
    """Provider and municipality to shipping cost. No row means free shipping."""

    def __init__(self, data) -> None:
        self.data = data

    async def cost_for(
        self, provider_id: Optional[str], municipality_id: Optional[str], currency: str
    ) -> Money:
        """Native shipping cost; zero when either id is missing or no row exists."""
        if not provider_id or not municipality_id:
            return Money.zero(currency)
        cost = await self.data.get_shipping_cost(provider_id, municipality_id)
        if cost is None:
            logger.info(
                f"No shipping cost for provider {provider_id} to {municipality_id}; free shipping"
            )
            return Money.zero(currency)
        return Money(amount=cost, currency=currency)

    async def costs_for_provider(self, provider_id: str) -> dict[str, Decimal]:
        """Municipality id to cost for every municipality the provider lists."""
        costs = await self.data.list_shipping_costs(provider_id)
        return {c.municipality_id: c.cost for c in costs}
