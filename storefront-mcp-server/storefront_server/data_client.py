"""Async client for the storefront's remote data service (PostgREST API)."""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Iterator, Optional

import httpx

from .exceptions import DataServiceError, DataServiceUnavailable, UniqueViolationError
from .models import (
    BaseConfig,
    Currency,
    ExchangeRate,
    Municipality,
    Order,
    OrderLine,
    OrderStatus,
    PaymentMethod,
    Product,
    Provider,
    ProviderPaymentMethod,
    ShippingCost,
)

logger = logging.getLogger(__name__)

BASE_CONFIG_KEY = "base_exchange_source"

RATE_COLUMNS = (
    "*,"
    "moneda_origen:monedas!moneda_origen_id(codigo),"
    "metodo_pago_origen:metodos_pago!metodo_pago_origen_id(nombre),"
    "moneda_destino:monedas!moneda_destino_id(codigo),"
    "metodo_pago_destino:metodos_pago!metodo_pago_destino_id(nombre)"
)

ORDER_COLUMNS = "*,detalles_pedido(*)"

# data service column -> Order field
ORDER_FIELDS = {
    "id": "id",
    "cliente_nombre": "client_name",
    "cliente_telefono": "client_phone",
    "cliente_ci": "client_id",
    "municipio_id": "municipality_id",
    "direccion_detalle": "address",
    "moneda_id": "currency_id",
    "metodo_pago_id": "payment_method_id",
    "proveedor_id": "provider_id",
    "total_productos": "product_subtotal",
    "total_envio": "shipping_cost",
    "estado": "status",
    "codigo_tracking": "tracking_code",
    "created_at": "created_at",
}


class StoreDataClient:
    """Client for the tables backing the storefront."""

    REST_PATH = "/rest/v1"

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize the data service client.

        Args:
            base_url: Project URL of the data service
            api_key: Anonymous or service API key
            timeout: Request timeout in seconds
            transport: Optional transport override (used by tests)
        """
        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + self.REST_PATH,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
        )

    # Generic table access

    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        columns: str = "*",
        order: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[dict]:
        """Read rows from a table."""
        params = [("select", columns)] + _render_filters(filters)
        if order:
            params.append(("order", order))
        if limit is not None:
            params.append(("limit", str(limit)))
        if offset:
            params.append(("offset", str(offset)))
        return await self._request("GET", table, params=params)

    async def insert(
        self, table: str, rows: Any, columns: str = "*", upsert: bool = False
    ) -> list[dict]:
        """Insert one row (dict) or many rows (list) and return them."""
        prefer = "return=representation"
        if upsert:
            prefer = "resolution=merge-duplicates," + prefer
        return await self._request(
            "POST",
            table,
            params=[("select", columns)],
            json=rows,
            headers={"Prefer": prefer},
        )

    async def update(
        self, table: str, values: dict[str, Any], filters: dict[str, Any], columns: str = "*"
    ) -> list[dict]:
        """Update matching rows and return them."""
        return await self._request(
            "PATCH",
            table,
            params=[("select", columns)] + _render_filters(filters),
            json=values,
            headers={"Prefer": "return=representation"},
        )

    async def delete(self, table: str, filters: dict[str, Any]) -> None:
        """Delete matching rows."""
        await self._request("DELETE", table, params=_render_filters(filters))

    async def _request(self, method: str, table: str, **kwargs: Any) -> list[dict]:
        try:
            response = await self.client.request(method, f"/{table}", **kwargs)
        except httpx.RequestError as e:
            logger.error(f"Data service unavailable ({method} {table}): {e}")
            raise DataServiceUnavailable(table, str(e)) from e
        return _handle_response(table, response)

    # Reference data

    async def get_base_config(self) -> Optional[BaseConfig]:
        """Get the base (currency, payment method) pair, or None if unset."""
        rows = await self.select("configuraciones", {"key": BASE_CONFIG_KEY}, columns="key,value")
        if not rows:
            return None
        value = rows[0].get("value") or {}
        if not isinstance(value, dict):
            return None
        currency_id = value.get("moneda_id")
        payment_method_id = value.get("metodo_pago_id")
        if not currency_id or not payment_method_id:
            return None
        with _parsing("configuraciones"):
            return BaseConfig(currency_id=str(currency_id), payment_method_id=str(payment_method_id))

    async def upsert_base_config(self, config: BaseConfig) -> BaseConfig:
        """Create or replace the base pair."""
        await self.insert(
            "configuraciones",
            {
                "key": BASE_CONFIG_KEY,
                "value": {
                    "moneda_id": config.currency_id,
                    "metodo_pago_id": config.payment_method_id,
                },
                "updated_at": _now_iso(),
            },
            upsert=True,
        )
        return config

    async def get_currency(self, currency_id: str) -> Optional[Currency]:
        rows = await self.select("monedas", {"id": currency_id}, limit=1)
        with _parsing("monedas"):
            return _parse_currency(rows[0]) if rows else None

    async def get_currency_by_code(self, code: str) -> Optional[Currency]:
        rows = await self.select("monedas", {"codigo": code}, limit=1)
        with _parsing("monedas"):
            return _parse_currency(rows[0]) if rows else None

    async def list_currencies(self) -> list[Currency]:
        rows = await self.select("monedas", order="codigo.asc")
        with _parsing("monedas"):
            return [_parse_currency(row) for row in rows]

    async def list_payment_methods(self) -> list[PaymentMethod]:
        rows = await self.select("metodos_pago", order="nombre.asc")
        with _parsing("metodos_pago"):
            return [PaymentMethod(id=str(row["id"]), name=row.get("nombre", "")) for row in rows]

    async def get_provider(self, provider_id: str) -> Optional[Provider]:
        rows = await self.select("proveedores", {"id": provider_id}, limit=1)
        if not rows:
            return None
        row = rows[0]
        with _parsing("proveedores"):
            return Provider(
                id=str(row["id"]), name=row.get("nombre", ""), active=row.get("activo", True)
            )

    async def list_provider_payment_methods(
        self, provider_id: str, currency_code: str
    ) -> list[ProviderPaymentMethod]:
        """Payment methods a provider accepts for a currency."""
        rows = await self.select(
            "proveedor_moneda_metodos_pago",
            {"proveedor_id": provider_id, "moneda": currency_code},
            columns="proveedor_id,moneda,metodo_pago_id,metodos_pago(id,nombre)",
        )
        with _parsing("proveedor_moneda_metodos_pago"):
            return [
                ProviderPaymentMethod(
                    provider_id=str(row.get("proveedor_id", provider_id)),
                    currency_code=row.get("moneda", currency_code),
                    payment_method_id=str(row["metodo_pago_id"]),
                    payment_method_name=_embedded(row, "metodos_pago", "nombre"),
                )
                for row in rows
            ]

    async def list_exchange_rates(
        self,
        source_currency_id: Optional[str] = None,
        source_payment_method_id: Optional[str] = None,
        destination_payment_method_ids: Optional[Iterable[str]] = None,
    ) -> list[ExchangeRate]:
        """List exchange rates, newest first, optionally filtered."""
        filters: dict[str, Any] = {}
        if source_currency_id:
            filters["moneda_origen_id"] = source_currency_id
        if source_payment_method_id:
            filters["metodo_pago_origen_id"] = source_payment_method_id
        if destination_payment_method_ids is not None:
            ids = list(destination_payment_method_ids)
            if not ids:
                return []
            filters["metodo_pago_destino_id"] = ids
        rows = await self.select(
            "tasas_cambio", filters, columns=RATE_COLUMNS, order="created_at.desc"
        )
        with _parsing("tasas_cambio"):
            return [_parse_rate(row) for row in rows]

    async def insert_exchange_rate(self, rate: ExchangeRate) -> ExchangeRate:
        rows = await self.insert(
            "tasas_cambio",
            {
                "moneda_origen_id": rate.source_currency_id,
                "metodo_pago_origen_id": rate.source_payment_method_id,
                "moneda_destino_id": rate.destination_currency_id,
                "metodo_pago_destino_id": rate.destination_payment_method_id,
                "tasa": str(rate.multiplier),
            },
            columns=RATE_COLUMNS,
        )
        with _parsing("tasas_cambio"):
            return _parse_rate(rows[0]) if rows else rate

    async def update_exchange_rate(
        self, rate_id: str, multiplier: Decimal
    ) -> Optional[ExchangeRate]:
        rows = await self.update(
            "tasas_cambio",
            {"tasa": str(multiplier), "actualizado_en": _now_iso()},
            {"id": rate_id},
            columns=RATE_COLUMNS,
        )
        with _parsing("tasas_cambio"):
            return _parse_rate(rows[0]) if rows else None

    async def delete_exchange_rate(self, rate_id: str) -> None:
        await self.delete("tasas_cambio", {"id": rate_id})

    async def list_municipalities(self) -> list[Municipality]:
        rows = await self.select("municipios", columns="id,nombre", order="nombre.asc")
        with _parsing("municipios"):
            return [Municipality(id=str(row["id"]), name=row.get("nombre", "")) for row in rows]

    async def get_shipping_cost(
        self, provider_id: str, municipality_id: str
    ) -> Optional[Decimal]:
        """Shipping cost for a provider and municipality, None if no row exists."""
        rows = await self.select(
            "costos_envio",
            {"proveedor_id": provider_id, "municipio_id": municipality_id},
            columns="proveedor_id,municipio_id,costo",
            limit=1,
        )
        if not rows:
            return None
        with _parsing("costos_envio"):
            return _parse_amount(rows[0].get("costo"))

    async def list_shipping_costs(self, provider_id: str) -> list[ShippingCost]:
        rows = await self.select(
            "costos_envio",
            {"proveedor_id": provider_id},
            columns="proveedor_id,municipio_id,costo",
        )
        with _parsing("costos_envio"):
            return [
                ShippingCost(
                    provider_id=str(row["proveedor_id"]),
                    municipality_id=str(row["municipio_id"]),
                    cost=_parse_amount(row.get("costo")),
                )
                for row in rows
            ]

    async def get_product(self, product_id: str) -> Optional[Product]:
        rows = await self.select("productos", {"id": product_id}, limit=1)
        if not rows:
            return None
        row = rows[0]
        with _parsing("productos"):
            return Product(
                id=str(row["id"]),
                name=row.get("nombre", ""),
                price=_parse_amount(row.get("precio_final")),
                currency=row.get("moneda") or "USD",
                provider_id=_str_or_none(row.get("proveedor_id")),
                active=row.get("activo", True),
            )

    # Orders

    async def get_order(self, order_id: str) -> Optional[Order]:
        rows = await self.select("pedidos", {"id": order_id}, columns=ORDER_COLUMNS, limit=1)
        with _parsing("pedidos"):
            return _parse_order(rows[0]) if rows else None

    async def get_orders(self, order_ids: Iterable[str]) -> list[Order]:
        """Fetch orders (with lines) for the given ids, newest first."""
        ids = list(order_ids)
        if not ids:
            return []
        rows = await self.select(
            "pedidos", {"id": ids}, columns=ORDER_COLUMNS, order="created_at.desc"
        )
        with _parsing("pedidos"):
            return [_parse_order(row) for row in rows]

    async def find_order_by_tracking_code(self, code: str) -> Optional[Order]:
        """Point lookup of an order by its tracking code."""
        rows = await self.select(
            "pedidos", {"codigo_tracking": code}, columns=ORDER_COLUMNS, limit=1
        )
        with _parsing("pedidos"):
            return _parse_order(rows[0]) if rows else None

    async def list_orders(
        self, status: Optional[OrderStatus] = None, limit: int = 50, offset: int = 0
    ) -> list[Order]:
        filters: dict[str, Any] = {}
        if status is not None:
            filters["estado"] = status.value
        rows = await self.select(
            "pedidos",
            filters,
            columns=ORDER_COLUMNS,
            order="created_at.desc",
            limit=limit,
            offset=offset,
        )
        with _parsing("pedidos"):
            return [_parse_order(row) for row in rows]

    async def insert_order(self, order: Order) -> Order:
        """Insert an order row (without lines)."""
        rows = await self.insert("pedidos", _order_row(order))
        if not rows:
            raise DataServiceError("pedidos", "Insert returned no rows")
        with _parsing("pedidos"):
            return _parse_order(rows[0])

    async def insert_order_lines(self, lines: list[OrderLine]) -> list[OrderLine]:
        rows = await self.insert(
            "detalles_pedido",
            [
                {
                    "pedido_id": line.order_id,
                    "producto_id": line.product_id,
                    "cantidad": line.quantity,
                    "precio_unitario": str(line.unit_price),
                }
                for line in lines
            ],
        )
        with _parsing("detalles_pedido"):
            return [_parse_order_line(row) for row in rows]

    async def delete_order(self, order_id: str) -> None:
        await self.delete("pedidos", {"id": order_id})

    async def update_order_status(
        self, order_id: str, status: OrderStatus
    ) -> Optional[Order]:
        rows = await self.update("pedidos", {"estado": status.value}, {"id": order_id})
        with _parsing("pedidos"):
            return _parse_order(rows[0]) if rows else None

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()


# Helpers for rendering requests and parsing rows


def _quote(value: Any) -> str:
    text = str(value)
    if any(ch in text for ch in ',()"'):
        return '"' + text.replace('"', '\\"') + '"'
    return text


def _render_filters(filters: Optional[dict[str, Any]]) -> list[tuple[str, str]]:
    """Render filters as PostgREST operators (eq, in, is)."""
    params = []
    for column, value in (filters or {}).items():
        if value is None:
            params.append((column, "is.null"))
        elif isinstance(value, (list, tuple, set, frozenset)):
            params.append((column, "in.(" + ",".join(_quote(v) for v in value) + ")"))
        elif isinstance(value, bool):
            params.append((column, f"is.{str(value).lower()}"))
        else:
            params.append((column, f"eq.{value}"))
    return params


def _handle_response(table: str, response: httpx.Response) -> list[dict]:
    """Return the JSON rows of a successful response or raise."""
    if response.is_success:
        if response.status_code == 204 or not response.content:
            return []
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Malformed response from {table}: {e}")
            raise DataServiceError(table, "Malformed response body", response.status_code) from e
        if isinstance(data, dict):
            return [data]
        if not isinstance(data, list):
            raise DataServiceError(table, "Unexpected response body", response.status_code)
        return data

    try:
        error_data = response.json()
    except ValueError:
        error_data = {}
    if not isinstance(error_data, dict):
        error_data = {}
    message = error_data.get("message") or response.reason_phrase or "Unknown error"

    if response.status_code == 409 or error_data.get("code") == "23505":
        raise UniqueViolationError(table, message, response.status_code, error_data)
    logger.error(f"Data service error on {table}: status={response.status_code}, message={message}")
    raise DataServiceError(table, message, response.status_code, error_data)


def _embedded(row: dict, key: str, field: str) -> Optional[str]:
    value = row.get(key)
    if isinstance(value, dict):
        return value.get(field)
    return None


@contextmanager
def _parsing(table: str) -> Iterator[None]:
    """Report rows that do not fit the models as data service errors."""
    try:
        yield
    except (ValueError, TypeError, KeyError, AttributeError, ArithmeticError) as e:
        logger.error(f"Unreadable row from {table}: {e}")
        raise DataServiceError(table, f"Unreadable row: {e}") from e


def _parse_amount(value: Any) -> Decimal:
    if value is None:
        raise ValueError("missing amount")
    return Decimal(str(value))


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_currency(row: dict) -> Currency:
    return Currency(id=str(row["id"]), code=row.get("codigo", ""), symbol=row.get("simbolo"))


def _parse_rate(row: dict) -> ExchangeRate:
    return ExchangeRate(
        id=str(row["id"]) if row.get("id") is not None else None,
        source_currency_id=str(row["moneda_origen_id"]),
        source_payment_method_id=str(row["metodo_pago_origen_id"]),
        destination_currency_id=str(row["moneda_destino_id"]),
        destination_payment_method_id=str(row["metodo_pago_destino_id"]),
        multiplier=_parse_amount(row.get("tasa")),
        last_updated=row.get("actualizado_en"),
        created_at=row.get("created_at"),
        source_currency_code=_embedded(row, "moneda_origen", "codigo"),
        source_payment_method_name=_embedded(row, "metodo_pago_origen", "nombre"),
        destination_currency_code=_embedded(row, "moneda_destino", "codigo"),
        destination_payment_method_name=_embedded(row, "metodo_pago_destino", "nombre"),
    )


def _parse_order_line(row: dict) -> OrderLine:
    return OrderLine(
        id=str(row["id"]) if row.get("id") is not None else None,
        order_id=_str_or_none(row.get("pedido_id")),
        product_id=_str_or_none(row.get("producto_id")),
        quantity=row.get("cantidad", 1),
        unit_price=_parse_amount(row.get("precio_unitario")),
    )


def _parse_order(row: dict) -> Order:
    values: dict[str, Any] = {}
    for column, field in ORDER_FIELDS.items():
        value = row.get(column)
        if value is None:
            continue
        if field in ("product_subtotal", "shipping_cost"):
            value = Decimal(str(value))
        elif field == "id" or field.endswith("_id"):
            value = str(value)
        values[field] = value
    values["lines"] = [_parse_order_line(line) for line in row.get("detalles_pedido") or []]
    return Order(**values)


def _order_row(order: Order) -> dict[str, Any]:
    row: dict[str, Any] = {}
    for column, field in ORDER_FIELDS.items():
        if field in ("id", "created_at"):
            continue
        value = getattr(order, field)
        if isinstance(value, OrderStatus):
            value = value.value
        elif isinstance(value, Decimal):
            value = str(value)
        row[column] = value
    return row
