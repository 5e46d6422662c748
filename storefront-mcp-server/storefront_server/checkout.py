"""Checkout: price a cart, then place the order with a tracking code."""

import logging
from typing import Optional

from .cart import Cart
from .exceptions import (
    CheckoutError,
    DataServiceError,
    TrackingCodeExhaustedError,
    UniqueViolationError,
)
from .history import OrderHistory
from .models import (
    CheckoutPreview,
    CheckoutRequest,
    Money,
    Order,
    OrderLine,
    OrderStatus,
    PlacedOrder,
)
from .pricing import ShippingCostLookup, compute_totals
from .resolver import PaymentMethodResolver
from .tracking import TrackingCodeGenerator

logger = logging.getLogger(__name__)


class CheckoutService:
    """Runs the checkout flow: resolve, price, allocate, persist, record."""

    def __init__(
        self,
        data,
        resolver: PaymentMethodResolver,
        shipping: ShippingCostLookup,
        tracking: TrackingCodeGenerator,
        history: OrderHistory,
    ) -> None:
        self.data = data
        self.resolver = resolver
        self.shipping = shipping
        self.tracking = tracking
        self.history = history

    async def preview(
        self,
        cart: Cart,
        currency_code: str,
        payment_method_id: Optional[str] = None,
        municipality_id: Optional[str] = None,
    ) -> CheckoutPreview:
        """
        Price the cart for the checkout page.

        Never raises for data failures: unavailable methods disable
        submission and an unknown shipping cost is shown as free with a
        notice.
        """
        resolution = await self.resolver.resolve(cart.provider_id, currency_code)
        selected = resolution.find(payment_method_id) if payment_method_id else None
        if selected is None and len(resolution.methods) == 1:
            selected = resolution.methods[0]

        notice = resolution.error
        try:
            shipping = await self.shipping.cost_for(cart.provider_id, municipality_id, cart.currency)
        except DataServiceError as e:
            logger.error(f"Shipping cost unavailable: {e}")
            shipping = Money.zero(cart.currency)
            notice = notice or "Shipping cost unavailable"

        if not resolution.available and notice is None:
            notice = "No payment methods available for this currency"

        totals = compute_totals(cart.total_price(), shipping, 1, selected)
        return CheckoutPreview(
            resolution=resolution,
            selected_method=selected,
            totals=totals,
            can_submit=not cart.is_empty() and resolution.available and selected is not None,
            notice=notice,
        )

    async def place_order(self, cart: Cart, request: CheckoutRequest) -> PlacedOrder:
        """
        Persist the cart as an order.

        The order is only written with a verified unused tracking code. If
        the order lines cannot be written the order is deleted again.

        Raises:
            CheckoutError: With a code describing what the customer can retry
        """
        if cart.is_empty():
            raise CheckoutError("EMPTY_CART", "Your cart is empty")

        provider_id = cart.provider_id
        resolution = await self.resolver.resolve(provider_id, request.currency_code)
        if resolution.error:
            raise CheckoutError("NO_PAYMENT_METHODS", resolution.error)
        if not resolution.available:
            raise CheckoutError(
                "NO_PAYMENT_METHODS",
                f"No payment methods available in {request.currency_code} for this provider",
            )
        method = resolution.find(request.payment_method_id)
        if method is None:
            raise CheckoutError(
                "METHOD_NOT_ALLOWED",
                f"Payment method {request.payment_method_id} is not available in {request.currency_code}",
            )

        try:
            currency = await self.data.get_currency_by_code(request.currency_code)
            shipping = await self.shipping.cost_for(
                provider_id, request.municipality_id, cart.currency
            )
        except DataServiceError as e:
            raise CheckoutError("DATA_UNAVAILABLE", f"Could not load checkout data: {e.message}") from e

        totals = compute_totals(cart.total_price(), shipping, 1, method)

        try:
            tracking_code = await self.tracking.ensure_unique()
        except TrackingCodeExhaustedError as e:
            raise CheckoutError("TRACKING_CODE_EXHAUSTED", str(e)) from e

        new_order = Order(
            client_name=request.client_name,
            client_phone=request.client_phone,
            client_id=request.client_id,
            municipality_id=request.municipality_id,
            address=request.address,
            currency_id=currency.id if currency else None,
            payment_method_id=method.payment_method_id,
            provider_id=provider_id,
            product_subtotal=totals.subtotal_native.amount,
            shipping_cost=totals.shipping_native.amount,
            status=OrderStatus.PENDING,
            tracking_code=tracking_code,
        )

        try:
            order = await self.data.insert_order(new_order)
        except UniqueViolationError as e:
            logger.warning(f"Tracking code {tracking_code} taken at insert time: {e}")
            raise CheckoutError(
                "TRACKING_CODE_CONFLICT", "Tracking code already in use, please try again"
            ) from e
        except DataServiceError as e:
            logger.error(f"Error creating order: {e}")
            raise CheckoutError("ORDER_INSERT_FAILED", "Could not create the order") from e

        lines = [
            OrderLine(
                order_id=order.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
            )
            for line in cart.lines
        ]
        try:
            order.lines = await self.data.insert_order_lines(lines)
        except DataServiceError as e:
            logger.error(f"Error creating order lines for {order.id}: {e}")
            await self._discard(order)
            raise CheckoutError("ORDER_INSERT_FAILED", "Could not create the order items") from e

        logger.info(f"Order {order.id} placed with tracking code {order.tracking_code}")
        self.history.record(order.id)
        cart.clear()
        return PlacedOrder(order=order, totals=totals, payment_method_name=method.display_name)

    async def _discard(self, order: Order) -> None:
        try:
            await self.data.delete_order(order.id)
        except DataServiceError as e:
            logger.error(f"Could not delete incomplete order {order.id}: {e}")
