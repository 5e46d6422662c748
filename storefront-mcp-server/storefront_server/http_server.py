"""HTTP server exposing the storefront checkout, tracking and admin API."""

import logging
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .admin import latest_rates
from .config import Settings
from .exceptions import CheckoutError, DataServiceError
from .models import CheckoutRequest
from .storefront import Storefront
from .tracking import is_valid_tracking_code, normalize_tracking_code

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("storefront-http-server")

# Global state
storefront: Optional[Storefront] = None

# CheckoutError code -> HTTP status; anything else is a retryable conflict
CHECKOUT_ERROR_STATUS = {
    "EMPTY_CART": 400,
    "METHOD_NOT_ALLOWED": 400,
    "DATA_UNAVAILABLE": 502,
    "ORDER_INSERT_FAILED": 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    global storefront

    # Startup
    logger.info("Starting Storefront HTTP Server...")
    settings = Settings.from_env()
    if settings.is_configured:
        storefront = Storefront.from_settings(settings)

    yield

    # Shutdown
    logger.info("Shutting down Storefront HTTP Server...")
    if storefront is not None:
        await storefront.close()


app = FastAPI(
    title="Storefront MCP Server",
    description="HTTP API for storefront checkout pricing and order tracking",
    version="0.1.0",
    lifespan=lifespan,
)


# Request/Response Models
class AddToCartRequest(BaseModel):
    product_id: str


class RemoveFromCartRequest(BaseModel):
    product_id: str


class UpdateQuantityRequest(BaseModel):
    product_id: str
    quantity: int


class PreviewRequest(BaseModel):
    currency: str
    payment_method_id: Optional[str] = None
    municipality_id: Optional[str] = None


class BaseConfigRequest(BaseModel):
    currency_id: str
    payment_method_id: str


class ExchangeRateRequest(BaseModel):
    source_currency_id: str
    source_payment_method_id: str
    destination_currency_id: str
    destination_payment_method_id: str
    multiplier: Decimal


class ExchangeRateUpdateRequest(BaseModel):
    multiplier: Decimal


class StatusRequest(BaseModel):
    status: str


def _require_storefront() -> Storefront:
    if storefront is None:
        raise HTTPException(status_code=503, detail="Data service not configured")
    return storefront


def _data_error(e: DataServiceError) -> HTTPException:
    logger.error(f"Data service error: {e}")
    return HTTPException(status_code=502, detail=f"Data unavailable: {e.message}")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": "Storefront MCP Server",
        "version": "0.1.0",
        "description": "HTTP API for storefront checkout pricing and order tracking",
        "mcp_compatible": True,
        "endpoints": {
            "docs": "/docs",
            "health": "/health",
            "payment_methods": "GET /payment-methods?provider_id=&currency=",
            "cart": {
                "get": "GET /cart",
                "add": "POST /cart/add",
                "remove": "POST /cart/remove",
                "update": "POST /cart/update",
            },
            "checkout": {"preview": "POST /checkout/preview", "place": "POST /checkout"},
            "orders": {"list": "GET /orders", "track": "GET /orders/track/{code}"},
            "admin": {
                "base_config": "GET|PUT /admin/base-config",
                "exchange_rates": "GET|POST /admin/exchange-rates",
                "exchange_rate": "PATCH|DELETE /admin/exchange-rates/{id}",
                "orders": "GET /admin/orders",
                "order_status": "PATCH /admin/orders/{id}/status",
            },
        },
        "configured": storefront is not None,
    }


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "configured": storefront is not None}


# Payment methods
@app.get("/payment-methods")
async def resolve_payment_methods(provider_id: str, currency: str):
    """Payment methods a provider accepts for a currency, with their rates."""
    sf = _require_storefront()
    resolution = await sf.resolver.resolve(provider_id, currency)
    return {
        "available": resolution.available,
        "error": resolution.error,
        "methods": [method.model_dump(mode="json") for method in resolution.methods],
    }


# Cart endpoints
@app.get("/cart")
async def get_cart():
    """Get current shopping cart."""
    sf = _require_storefront()
    return sf.cart.summary().model_dump(mode="json")


@app.post("/cart/add")
async def add_to_cart(request: AddToCartRequest):
    """Add one unit of a product to the cart."""
    sf = _require_storefront()
    try:
        product = await sf.data.get_product(request.product_id)
    except DataServiceError as e:
        raise _data_error(e)
    if product is None or not product.active:
        raise HTTPException(status_code=404, detail=f"Product {request.product_id} not found")

    replaced = sf.cart.would_replace(product)
    line = sf.cart.add_line(product)
    return {
        "success": True,
        "message": f"Added product {request.product_id} (quantity: {line.quantity}) to cart",
        "cart_replaced": replaced,
    }


@app.post("/cart/remove")
async def remove_from_cart(request: RemoveFromCartRequest):
    """Remove a product from the cart."""
    sf = _require_storefront()
    sf.cart.remove_line(request.product_id)
    return {"success": True, "message": f"Removed product {request.product_id} from cart"}


@app.post("/cart/update")
async def update_cart_quantity(request: UpdateQuantityRequest):
    """Set a product's quantity; 0 removes it."""
    sf = _require_storefront()
    sf.cart.set_quantity(request.product_id, request.quantity)
    return {"success": True, "cart": sf.cart.summary().model_dump(mode="json")}


# Checkout endpoints
@app.post("/checkout/preview")
async def checkout_preview(request: PreviewRequest):
    """Price the cart in a currency."""
    sf = _require_storefront()
    preview = await sf.checkout.preview(
        sf.cart,
        request.currency,
        payment_method_id=request.payment_method_id,
        municipality_id=request.municipality_id,
    )
    return preview.model_dump(mode="json")


@app.post("/checkout")
async def place_order(request: CheckoutRequest):
    """Place an order for the cart."""
    sf = _require_storefront()
    try:
        placed = await sf.checkout.place_order(sf.cart, request)
    except CheckoutError as e:
        status_code = CHECKOUT_ERROR_STATUS.get(e.code, 409)
        raise HTTPException(status_code=status_code, detail={"code": e.code, "message": e.message})
    return placed.model_dump(mode="json")


# Order endpoints
@app.get("/orders")
async def get_orders():
    """Orders placed from this client."""
    sf = _require_storefront()
    refreshed = await sf.history.refresh()
    orders = sf.history.orders
    return {
        "count": len(orders),
        "stale": not refreshed,
        "error": sf.history.last_error,
        "orders": [order.model_dump(mode="json") for order in orders],
    }


@app.get("/orders/track/{code}")
async def track_order(code: str):
    """Find an order by tracking code."""
    sf = _require_storefront()
    code = normalize_tracking_code(code)
    if not is_valid_tracking_code(code):
        raise HTTPException(status_code=400, detail=f"Invalid tracking code: {code}")

    order = sf.history.find_by_tracking_code(code)
    if order is None:
        try:
            order = await sf.data.find_order_by_tracking_code(code)
        except DataServiceError as e:
            raise _data_error(e)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {code} not found")
    return order.model_dump(mode="json")


# Admin endpoints
@app.get("/admin/base-config")
async def get_base_config():
    sf = _require_storefront()
    try:
        config = await sf.admin.get_base_config()
    except DataServiceError as e:
        raise _data_error(e)
    return {"base_config": config.model_dump() if config else None}


@app.put("/admin/base-config")
async def set_base_config(request: BaseConfigRequest):
    sf = _require_storefront()
    try:
        config = await sf.admin.set_base_config(request.currency_id, request.payment_method_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataServiceError as e:
        raise _data_error(e)
    return {"success": True, "base_config": config.model_dump()}


@app.get("/admin/exchange-rates")
async def list_exchange_rates(latest: bool = False):
    """All exchange rates, newest first; ``latest`` collapses duplicates."""
    sf = _require_storefront()
    try:
        rates = await sf.admin.list_exchange_rates()
    except DataServiceError as e:
        raise _data_error(e)
    if latest:
        rates = list(reversed(latest_rates(reversed(rates))))
    return {"count": len(rates), "rates": [rate.model_dump(mode="json") for rate in rates]}


@app.post("/admin/exchange-rates")
async def add_exchange_rate(request: ExchangeRateRequest):
    sf = _require_storefront()
    try:
        rate = await sf.admin.add_exchange_rate(
            request.source_currency_id,
            request.source_payment_method_id,
            request.destination_currency_id,
            request.destination_payment_method_id,
            request.multiplier,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataServiceError as e:
        raise _data_error(e)
    return rate.model_dump(mode="json")


@app.patch("/admin/exchange-rates/{rate_id}")
async def update_exchange_rate(rate_id: str, request: ExchangeRateUpdateRequest):
    sf = _require_storefront()
    try:
        rate = await sf.admin.update_exchange_rate(rate_id, request.multiplier)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataServiceError as e:
        raise _data_error(e)
    if rate is None:
        raise HTTPException(status_code=404, detail=f"Exchange rate {rate_id} not found")
    return rate.model_dump(mode="json")


@app.delete("/admin/exchange-rates/{rate_id}")
async def delete_exchange_rate(rate_id: str):
    sf = _require_storefront()
    try:
        await sf.admin.delete_exchange_rate(rate_id)
    except DataServiceError as e:
        raise _data_error(e)
    return {"success": True}


@app.get("/admin/orders")
async def admin_list_orders(status: Optional[str] = None, limit: int = 50, offset: int = 0):
    sf = _require_storefront()
    try:
        orders = await sf.admin.list_orders(status=status, limit=limit, offset=offset)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataServiceError as e:
        raise _data_error(e)
    return {"count": len(orders), "orders": [order.model_dump(mode="json") for order in orders]}


@app.patch("/admin/orders/{order_id}/status")
async def update_order_status(order_id: str, request: StatusRequest):
    sf = _require_storefront()
    try:
        order = await sf.admin.update_order_status(order_id, request.status)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except DataServiceError as e:
        raise _data_error(e)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")
    return order.model_dump(mode="json")


def run_http_server(host: str = "0.0.0.0", port: int = 8000):
    """Run the HTTP server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)
