"""Data models for storefront catalog, pricing and order entities."""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_EVEN
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import CurrencyBasisError


def round_money(amount: Decimal, places: int = 2) -> Decimal:
    """Round to specified decimal places using banker's rounding."""
    quantize_str = "0." + "0" * places if places > 0 else "1"
    return amount.quantize(Decimal(quantize_str), rounding=ROUND_HALF_EVEN)


class AmountBasis(str, Enum):
    """Whether an amount is stored (native) or converted for presentation."""

    NATIVE = "native"
    DISPLAY = "display"


class Money(BaseModel):
    """An amount tagged with its currency and basis.

    Amounts of different basis or currency cannot be added or ordered;
    doing so raises CurrencyBasisError. Rounding only happens through
    ``rounded``/``format`` at render time.
    """

    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(description="Unrounded amount")
    currency: str = Field(description="Currency code, e.g. USD")
    basis: AmountBasis = Field(default=AmountBasis.NATIVE, description="Native or display basis")

    @classmethod
    def zero(cls, currency: str, basis: AmountBasis = AmountBasis.NATIVE) -> "Money":
        return cls(amount=Decimal("0"), currency=currency, basis=basis)

    def _check_compatible(self, other: Any) -> "Money":
        if not isinstance(other, Money):
            raise CurrencyBasisError(f"Cannot combine Money with {type(other).__name__}")
        if other.basis != self.basis:
            raise CurrencyBasisError(
                f"Cannot combine {self.basis.value} and {other.basis.value} amounts"
            )
        if other.currency != self.currency:
            raise CurrencyBasisError(
                f"Cannot combine {self.currency} and {other.currency} amounts"
            )
        return other

    def __add__(self, other: Any) -> "Money":
        other = self._check_compatible(other)
        return Money(amount=self.amount + other.amount, currency=self.currency, basis=self.basis)

    def __radd__(self, other: Any) -> "Money":
        # sum() starts from int 0
        if isinstance(other, int) and other == 0:
            return self
        return self.__add__(other)

    def __mul__(self, factor: Any) -> "Money":
        if isinstance(factor, Money):
            raise CurrencyBasisError("Cannot multiply two amounts")
        return Money(
            amount=self.amount * Decimal(str(factor)),
            currency=self.currency,
            basis=self.basis,
        )

    __rmul__ = __mul__

    def __lt__(self, other: Any) -> bool:
        return self.amount < self._check_compatible(other).amount

    def __le__(self, other: Any) -> bool:
        return self.amount <= self._check_compatible(other).amount

    def __gt__(self, other: Any) -> bool:
        return self.amount > self._check_compatible(other).amount

    def __ge__(self, other: Any) -> bool:
        return self.amount >= self._check_compatible(other).amount

    def to_display(self, multiplier: Decimal, currency: str) -> "Money":
        """Convert a native amount into a display amount."""
        if self.basis != AmountBasis.NATIVE:
            raise CurrencyBasisError("Only native amounts can be converted")
        return Money(
            amount=self.amount * Decimal(str(multiplier)),
            currency=currency,
            basis=AmountBasis.DISPLAY,
        )

    def as_display(self) -> "Money":
        """Present a native amount unconverted, keeping its own currency."""
        if self.basis != AmountBasis.NATIVE:
            raise CurrencyBasisError("Only native amounts can be presented")
        return Money(amount=self.amount, currency=self.currency, basis=AmountBasis.DISPLAY)

    def rounded(self, places: int = 2) -> Decimal:
        return round_money(self.amount, places)

    def format(self, places: int = 2) -> str:
        return f"{self.rounded(places)} {self.currency}"


class Currency(BaseModel):
    """Represents a currency accepted by the store."""

    id: str = Field(description="Currency ID")
    code: str = Field(description="ISO-like currency code, e.g. USD")
    symbol: Optional[str] = Field(None, description="Display symbol")


class PaymentMethod(BaseModel):
    """Represents a payment method (cash, transfer, ...)."""

    id: str = Field(description="Payment method ID")
    name: str = Field(description="Display name")


class Provider(BaseModel):
    """Represents a provider that fulfils orders."""

    id: str = Field(description="Provider ID")
    name: str = Field(default="", description="Provider name")
    active: bool = Field(default=True, description="Whether the provider is active")


class ProviderPaymentMethod(BaseModel):
    """A payment method a provider accepts when the customer pays in a currency."""

    provider_id: str
    currency_code: str
    payment_method_id: str
    payment_method_name: Optional[str] = None


class ExchangeRate(BaseModel):
    """Directional rate from a (currency, method) pair to another pair."""

    id: Optional[str] = Field(None, description="Exchange rate ID")
    source_currency_id: str
    source_payment_method_id: str
    destination_currency_id: str
    destination_payment_method_id: str
    multiplier: Decimal = Field(default=Decimal("1"), gt=0, description="Rate multiplier")
    last_updated: Optional[datetime] = Field(None, description="Last update timestamp")
    created_at: Optional[datetime] = None
    source_currency_code: Optional[str] = None
    source_payment_method_name: Optional[str] = None
    destination_currency_code: Optional[str] = None
    destination_payment_method_name: Optional[str] = None


class BaseConfig(BaseModel):
    """The store's canonical pricing reference pair."""

    currency_id: str
    payment_method_id: str


class Municipality(BaseModel):
    """Represents a delivery municipality."""

    id: str
    name: str


class ShippingCost(BaseModel):
    """Shipping cost for a provider delivering to a municipality."""

    provider_id: str
    municipality_id: str
    cost: Decimal = Field(default=Decimal("0"), ge=0)


class Product(BaseModel):
    """Represents a catalog product."""

    id: str = Field(description="Product ID")
    name: str = Field(default="", description="Product name")
    price: Decimal = Field(description="Final unit price in the product's native currency")
    currency: str = Field(default="USD", description="Native currency code")
    provider_id: Optional[str] = Field(None, description="Owning provider ID")
    active: bool = Field(default=True, description="Product availability")


class CartLine(BaseModel):
    """Represents a line in the shopping cart."""

    product_id: str
    name: str = ""
    unit_price: Decimal = Field(description="Unit price in the native currency")
    currency: str = "USD"
    quantity: int = Field(default=1, ge=1)
    provider_id: Optional[str] = None

    @property
    def subtotal(self) -> Money:
        return Money(amount=self.unit_price, currency=self.currency) * self.quantity


class CartSummary(BaseModel):
    """Snapshot of the cart for presentation."""

    items: list[CartLine] = Field(default_factory=list, description="Cart lines")
    provider_id: Optional[str] = Field(None, description="Provider all lines belong to")
    item_count: int = Field(default=0, description="Total quantity")
    total: Money = Field(description="Total price in the native currency")


class ResolvedMethod(BaseModel):
    """A payment method that passed eligibility and rate lookup."""

    payment_method_id: str
    display_name: str
    multiplier: Decimal
    destination_currency: str


class Resolution(BaseModel):
    """Result of resolving payment methods for a provider and currency."""

    methods: list[ResolvedMethod] = Field(default_factory=list)
    error: Optional[str] = Field(None, description="Set when methods are unavailable")

    @property
    def available(self) -> bool:
        return bool(self.methods)

    def find(self, payment_method_id: str) -> Optional[ResolvedMethod]:
        for method in self.methods:
            if method.payment_method_id == payment_method_id:
                return method
        return None


class PricingTotals(BaseModel):
    """Native and display totals for a checkout."""

    subtotal_native: Money
    shipping_native: Money
    total_native: Money
    subtotal_display: Money
    shipping_display: Money
    total_display: Money
    multiplier: Optional[Decimal] = Field(None, description="Applied rate, None if unconverted")

    @property
    def converted(self) -> bool:
        return self.multiplier is not None


class OrderStatus(str, Enum):
    """Order lifecycle states, valued as stored by the data service."""

    PENDING = "pendiente"
    PAID = "pagado"
    SHIPPED = "enviado"
    DELIVERED = "entregado"
    COMPLETED = "completado"
    CANCELLED = "cancelado"

    @classmethod
    def parse(cls, value: str) -> "OrderStatus":
        """Accept stored values, English names and the 'confirmado' alias."""
        normalized = (value or "").strip().lower()
        if normalized in ("confirmado", "confirmed"):
            return cls.PAID
        for status in cls:
            if normalized in (status.value, status.name.lower()):
                return status
        raise ValueError(f"Unknown order status: {value}")


class OrderLine(BaseModel):
    """Represents a line of a placed order."""

    id: Optional[str] = None
    order_id: Optional[str] = None
    product_id: Optional[str] = None
    quantity: int = Field(ge=1)
    unit_price: Decimal = Field(description="Unit price snapshot at purchase time")


class Order(BaseModel):
    """Represents a placed order. Amounts are native."""

    id: Optional[str] = Field(None, description="Internal order ID")
    client_name: str
    client_phone: str
    client_id: Optional[str] = Field(None, description="Customer identity document")
    municipality_id: Optional[str] = None
    address: str = ""
    currency_id: Optional[str] = None
    payment_method_id: Optional[str] = None
    provider_id: Optional[str] = None
    product_subtotal: Decimal = Field(default=Decimal("0"), description="Native products total")
    shipping_cost: Decimal = Field(default=Decimal("0"), description="Native shipping total")
    status: OrderStatus = OrderStatus.PENDING
    tracking_code: Optional[str] = Field(None, description="8-character public code")
    created_at: Optional[datetime] = None
    lines: list[OrderLine] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        if value is None:
            return OrderStatus.PENDING
        if isinstance(value, str):
            return OrderStatus.parse(value)
        return value

    @property
    def total(self) -> Decimal:
        return self.product_subtotal + self.shipping_cost


class CheckoutRequest(BaseModel):
    """Customer input submitted at checkout."""

    client_name: str = Field(min_length=1)
    client_phone: str = Field(min_length=1)
    client_id: Optional[str] = None
    municipality_id: str = Field(min_length=1)
    address: str = Field(min_length=1)
    currency_code: str = Field(min_length=1)
    payment_method_id: str = Field(min_length=1)

    @field_validator("client_name", "client_phone", "address", mode="after")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class CheckoutPreview(BaseModel):
    """What the checkout page shows before submission."""

    resolution: Resolution
    selected_method: Optional[ResolvedMethod] = None
    totals: PricingTotals
    can_submit: bool = False
    notice: Optional[str] = None


class PlacedOrder(BaseModel):
    """A persisted order together with its display totals."""

    order: Order
    totals: PricingTotals
    payment_method_name: str


class HistoryData(BaseModel):
    """Order ids placed from this client."""

    order_ids: list[str] = Field(default_factory=list, description="Recorded order IDs")
