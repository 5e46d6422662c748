"""MCP Server for the storefront checkout and order tracking."""

import asyncio
import json
import logging
from typing import Any, Optional

from mcp.server import Server
from mcp.types import Resource, TextContent, Tool
from pydantic import AnyUrl, ValidationError

from .config import Settings
from .exceptions import CheckoutError, DataServiceError
from .models import CheckoutPreview, CheckoutRequest, Order, PlacedOrder, PricingTotals, Resolution
from .storefront import Storefront
from .tracking import is_valid_tracking_code, normalize_tracking_code

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-mcp-server")

# Initialize server
app = Server("storefront-mcp-server")

# Global state
storefront: Optional[Storefront] = None

NOT_CONFIGURED = (
    "Error: Data service not configured. Please set STOREFRONT_DATA_URL and "
    "STOREFRONT_DATA_KEY in the MCP settings."
)


@app.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    if storefront is None:
        return []
    return [
        Resource(
            uri=AnyUrl("storefront://cart"),
            name="Shopping Cart",
            mimeType="application/json",
            description="Current shopping cart contents",
        ),
        Resource(
            uri=AnyUrl("storefront://orders"),
            name="Orders",
            mimeType="application/json",
            description="Orders placed from this client",
        ),
    ]


@app.read_resource()
async def read_resource(uri: AnyUrl) -> str:
    """Read a resource by URI."""
    uri_str = str(uri)
    if storefront is None:
        return NOT_CONFIGURED

    if uri_str == "storefront://cart":
        return storefront.cart.summary().model_dump_json(indent=2)

    elif uri_str == "storefront://orders":
        await storefront.history.refresh()
        result = [order.model_dump() for order in storefront.history.orders]
        return json.dumps(result, indent=2, default=str)

    raise ValueError(f"Unknown resource: {uri}")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available tools."""
    return [
        Tool(
            name="storefront_resolve_payment_methods",
            description="List the payment methods (and exchange rate) a provider accepts for a currency",
            inputSchema={
                "type": "object",
                "properties": {
                    "provider_id": {"type": "string", "description": "Provider ID"},
                    "currency": {"type": "string", "description": "Currency code, e.g. USD"},
                },
                "required": ["provider_id", "currency"],
            },
        ),
        Tool(
            name="storefront_add_to_cart",
            description="Add one unit of a product to the cart. Products from another provider replace the cart.",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to add to cart"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_remove_from_cart",
            description="Remove a product from the cart",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to remove"},
                },
                "required": ["product_id"],
            },
        ),
        Tool(
            name="storefront_update_cart_quantity",
            description="Set the quantity of a product in the cart (0 removes it)",
            inputSchema={
                "type": "object",
                "properties": {
                    "product_id": {"type": "string", "description": "Product ID to update"},
                    "quantity": {"type": "integer", "description": "New quantity to set"},
                },
                "required": ["product_id", "quantity"],
            },
        ),
        Tool(
            name="storefront_get_cart",
            description="Get current cart contents and native total",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_checkout_preview",
            description="Price the cart in a currency: available payment methods, shipping and totals",
            inputSchema={
                "type": "object",
                "properties": {
                    "currency": {"type": "string", "description": "Currency code to pay in"},
                    "payment_method_id": {"type": "string", "description": "Chosen payment method (optional)"},
                    "municipality_id": {"type": "string", "description": "Delivery municipality (optional)"},
                },
                "required": ["currency"],
            },
        ),
        Tool(
            name="storefront_place_order",
            description="Place an order for the cart. Payment happens directly with the provider.",
            inputSchema={
                "type": "object",
                "properties": {
                    "client_name": {"type": "string", "description": "Full name"},
                    "client_phone": {"type": "string", "description": "Mobile phone"},
                    "client_id": {"type": "string", "description": "Identity document (optional)"},
                    "municipality_id": {"type": "string", "description": "Delivery municipality"},
                    "address": {"type": "string", "description": "Detailed delivery address"},
                    "currency": {"type": "string", "description": "Currency code to pay in"},
                    "payment_method_id": {"type": "string", "description": "Payment method ID"},
                },
                "required": [
                    "client_name",
                    "client_phone",
                    "municipality_id",
                    "address",
                    "currency",
                    "payment_method_id",
                ],
            },
        ),
        Tool(
            name="storefront_get_orders",
            description="Get orders placed from this client",
            inputSchema={"type": "object", "properties": {}},
        ),
        Tool(
            name="storefront_track_order",
            description="Find an order by its 8-character tracking code",
            inputSchema={
                "type": "object",
                "properties": {
                    "tracking_code": {"type": "string", "description": "Tracking code, e.g. A3B7K9M2"},
                },
                "required": ["tracking_code"],
            },
        ),
    ]


def _format_resolution(resolution: Resolution, currency: str) -> str:
    if resolution.error:
        return resolution.error
    if not resolution.methods:
        return f"No payment methods available in {currency}"
    result_lines = [f"Found {len(resolution.methods)} payment method(s) in {currency}:\n"]
    for i, method in enumerate(resolution.methods, 1):
        result_lines.append(f"\n{i}. {method.display_name}")
        result_lines.append(f"   ID: {method.payment_method_id}")
        result_lines.append(f"   Rate: {method.multiplier}")
    return "\n".join(result_lines)


def _format_totals(totals: PricingTotals, places: int) -> list[str]:
    lines = [
        f"Subtotal: {totals.subtotal_display.format(places)}",
        f"Shipping: {totals.shipping_display.format(places)}",
        f"Total: {totals.total_display.format(places)}",
    ]
    if totals.converted:
        lines.append(f"(Rate {totals.multiplier} applied to {totals.total_native.format(places)})")
    return lines


def _format_order(order: Order, places: int) -> list[str]:
    lines = [f"Order {order.tracking_code or order.id}", f"   Status: {order.status.name.lower()}"]
    if order.created_at:
        lines.append(f"   Date: {order.created_at.strftime('%Y-%m-%d %H:%M')}")
    lines.append(f"   Total: {order.total:.{places}f}")
    if order.lines:
        lines.append(f"   Items ({len(order.lines)}):")
        for item in order.lines:
            lines.append(f"     - {item.product_id} x{item.quantity} ({item.unit_price})")
    return lines


def _format_preview(preview: CheckoutPreview, currency: str, places: int) -> str:
    result_lines = [_format_resolution(preview.resolution, currency), ""]
    if preview.selected_method:
        result_lines.append(f"Selected: {preview.selected_method.display_name}")
    result_lines.extend(_format_totals(preview.totals, places))
    if preview.notice:
        result_lines.append(f"Notice: {preview.notice}")
    result_lines.append("Ready to order" if preview.can_submit else "Ordering is disabled")
    return "\n".join(result_lines)


def _format_placed(placed: PlacedOrder, places: int) -> str:
    result_lines = [
        "Order placed!",
        f"Tracking code: {placed.order.tracking_code}",
        f"Payment method: {placed.payment_method_name}",
    ]
    result_lines.extend(_format_totals(placed.totals, places))
    result_lines.append("Payment is made directly with the provider.")
    return "\n".join(result_lines)


async def handle_tool(sf: Storefront, name: str, arguments: dict[str, Any]) -> str:
    """Run a tool against a storefront and return its text result."""
    places = sf.display_places

    if name == "storefront_resolve_payment_methods":
        currency = arguments["currency"]
        resolution = await sf.resolver.resolve(arguments["provider_id"], currency)
        return _format_resolution(resolution, currency)

    elif name == "storefront_add_to_cart":
        product_id = arguments["product_id"]
        product = await sf.data.get_product(product_id)
        if product is None or not product.active:
            return f"Product {product_id} not found"
        replaced = sf.cart.would_replace(product)
        line = sf.cart.add_line(product)
        text = f"Added {product.name or product_id} to cart (quantity: {line.quantity})"
        if replaced:
            text += "\nThe cart held products from another provider or currency and was replaced."
        return text

    elif name == "storefront_remove_from_cart":
        sf.cart.remove_line(arguments["product_id"])
        return f"Removed product {arguments['product_id']} from cart"

    elif name == "storefront_update_cart_quantity":
        product_id = arguments["product_id"]
        quantity = int(arguments["quantity"])
        sf.cart.set_quantity(product_id, quantity)
        if quantity <= 0:
            return f"Removed product {product_id} from cart"
        return f"Updated product {product_id} to quantity {quantity}"

    elif name == "storefront_get_cart":
        if sf.cart.is_empty():
            return "Your cart is empty"
        summary = sf.cart.summary()
        result_lines = [f"Shopping Cart ({summary.item_count} items):\n"]
        for i, item in enumerate(summary.items, 1):
            result_lines.append(f"\n{i}. {item.name or item.product_id}")
            result_lines.append(f"   Product ID: {item.product_id}")
            result_lines.append(f"   Price: {item.unit_price} {item.currency}")
            result_lines.append(f"   Quantity: {item.quantity}")
            result_lines.append(f"   Subtotal: {item.subtotal.format(places)}")
        result_lines.append(f"\n{'=' * 50}")
        result_lines.append(f"Total: {summary.total.format(places)}")
        return "\n".join(result_lines)

    elif name == "storefront_checkout_preview":
        currency = arguments["currency"]
        preview = await sf.checkout.preview(
            sf.cart,
            currency,
            payment_method_id=arguments.get("payment_method_id"),
            municipality_id=arguments.get("municipality_id"),
        )
        return _format_preview(preview, currency, places)

    elif name == "storefront_place_order":
        request = _checkout_request(arguments)
        try:
            placed = await sf.checkout.place_order(sf.cart, request)
        except CheckoutError as e:
            return f"Checkout failed ({e.code}): {e.message}. Please try again."
        return _format_placed(placed, places)

    elif name == "storefront_get_orders":
        refreshed = await sf.history.refresh()
        orders = sf.history.orders
        if not orders:
            return "No orders found" if refreshed else f"Orders unavailable: {sf.history.last_error}"
        result_lines = [f"Found {len(orders)} order(s):"]
        if not refreshed:
            result_lines.append(f"(Showing saved results: {sf.history.last_error})")
        for i, order in enumerate(orders, 1):
            result_lines.append("")
            result_lines.append(f"{i}. " + "\n".join(_format_order(order, places)))
        return "\n".join(result_lines)

    elif name == "storefront_track_order":
        code = normalize_tracking_code(arguments["tracking_code"])
        if not is_valid_tracking_code(code):
            return f"Invalid tracking code: {arguments['tracking_code']}"
        order = sf.history.find_by_tracking_code(code)
        if order is None:
            order = await sf.data.find_order_by_tracking_code(code)
        if order is None:
            return f"Order {code} not found"
        return "\n".join(_format_order(order, places))

    return f"Unknown tool: {name}"


def _checkout_request(arguments: dict[str, Any]) -> CheckoutRequest:
    return CheckoutRequest(
        client_name=arguments.get("client_name", ""),
        client_phone=arguments.get("client_phone", ""),
        client_id=arguments.get("client_id"),
        municipality_id=arguments.get("municipality_id", ""),
        address=arguments.get("address", ""),
        currency_code=arguments.get("currency", ""),
        payment_method_id=arguments.get("payment_method_id", ""),
    )


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle tool calls."""
    if storefront is None:
        return [TextContent(type="text", text=NOT_CONFIGURED)]
    try:
        text = await handle_tool(storefront, name, arguments or {})
        return [TextContent(type="text", text=text)]
    except ValidationError as e:
        return [TextContent(type="text", text=f"Error: invalid input: {e}")]
    except DataServiceError as e:
        logger.error(f"Data service error in tool {name}: {e}")
        return [TextContent(type="text", text=f"Error: data unavailable ({e.message}). Please try again.")]
    except Exception as e:
        logger.error(f"Error executing tool {name}: {e}", exc_info=True)
        return [TextContent(type="text", text=f"Error: {str(e)}")]


async def main() -> None:
    """Main entry point for the MCP server."""
    global storefront

    settings = Settings.from_env()
    if settings.is_configured:
        storefront = Storefront.from_settings(settings)
    else:
        logger.warning("Tools will report an error until the data service is configured")

    logger.info("Starting Storefront MCP Server...")

    # Import and run the server
    from mcp.server.stdio import stdio_server

    try:
        async with stdio_server() as (read_stream, write_stream):
            await app.run(
                read_stream,
                write_stream,
                app.create_initialization_options(),
            )
    finally:
        if storefront is not None:
            await storefront.close()


if __name__ == "__main__":
    asyncio.run(main())
