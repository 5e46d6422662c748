"""Wiring of the storefront services around one data service client."""

import logging
from typing import Callable, Optional

from .admin import AdminService
from .cart import Cart
from .checkout import CheckoutService
from .config import Settings
from .data_client import StoreDataClient
from .history import OrderHistory
from .pricing import ShippingCostLookup
from .resolver import PaymentMethodResolver
from .tracking import TrackingCodeGenerator

logger = logging.getLogger(__name__)


class Storefront:
    """Services for one storefront client, constructed once at startup."""

    def __init__(
        self,
        data,
        history_file: Optional[str] = None,
        default_currency: str = "USD",
        display_places: int = 2,
        choice: Optional[Callable[[str], str]] = None,
    ) -> None:
        self.data = data
        self.display_places = display_places
        self.cart = Cart(default_currency=default_currency)
        self.resolver = PaymentMethodResolver(data)
        self.shipping = ShippingCostLookup(data)
        if choice is None:
            self.tracking = TrackingCodeGenerator(data)
        else:
            self.tracking = TrackingCodeGenerator(data, choice=choice)
        self.history = OrderHistory(data, history_file)
        self.checkout = CheckoutService(
            data, self.resolver, self.shipping, self.tracking, self.history
        )
        self.admin = AdminService(data)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Storefront":
        if not settings.is_configured:
            raise ValueError(
                "Data service not configured. Set STOREFRONT_DATA_URL and STOREFRONT_DATA_KEY."
            )
        data = StoreDataClient(settings.data_url, settings.data_key, timeout=settings.timeout)
        logger.info(f"Using data service at {settings.data_url}")
        return cls(
            data,
            history_file=settings.history_file,
            default_currency=settings.default_currency,
            display_places=settings.display_places,
        )

    async def close(self) -> None:
        close = getattr(self.data, "close", None)
        if close is not None:
            await close()
