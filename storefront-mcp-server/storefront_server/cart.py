"""Client-side shopping cart holding lines from a single provider."""

import logging
from typing import Optional

from .models import CartLine, CartSummary, Money, Product

logger = logging.getLogger(__name__)


class Cart:
    """
    In-memory cart. All lines always share one provider.

    Adding a product from another provider, or priced in another native
    currency, replaces the whole cart with that product. Shipping costs and
    payment methods are provider scoped and totals are in one currency.
    """

    def __init__(self, default_currency: str = "USD") -> None:
        self.default_currency = default_currency
        self.lines: list[CartLine] = []

    @property
    def provider_id(self) -> Optional[str]:
        """Provider of the current lines, None when empty."""
        return self.lines[0].provider_id if self.lines else None

    @property
    def currency(self) -> str:
        return self.lines[0].currency if self.lines else self.default_currency

    def is_empty(self) -> bool:
        return not self.lines

    def would_replace(self, product: Product) -> bool:
        """Whether adding the product starts a new cart.

        Lines must share one provider and one native currency.
        """
        return any(
            line.provider_id != product.provider_id or line.currency != product.currency
            for line in self.lines
        )

    def add_line(self, product: Product) -> CartLine:
        """Add one unit of a product."""
        new_line = CartLine(
            product_id=product.id,
            name=product.name,
            unit_price=product.price,
            currency=product.currency,
            quantity=1,
            provider_id=product.provider_id,
        )

        if self.would_replace(product):
            logger.info(
                f"Product {product.id} is from provider {product.provider_id} in {product.currency}; "
                f"replacing cart from provider {self.provider_id} in {self.currency}"
            )
            self.lines = [new_line]
            return new_line

        for index, line in enumerate(self.lines):
            if line.product_id == product.id:
                updated = line.model_copy(update={"quantity": line.quantity + 1})
                self.lines[index] = updated
                return updated

        self.lines.append(new_line)
        return new_line

    def remove_line(self, product_id: str) -> None:
        self.lines = [line for line in self.lines if line.product_id != product_id]

    def set_quantity(self, product_id: str, quantity: int) -> None:
        """Set a line's quantity; zero or less removes the line."""
        if quantity <= 0:
            self.remove_line(product_id)
            return
        self.lines = [
            line.model_copy(update={"quantity": quantity}) if line.product_id == product_id else line
            for line in self.lines
        ]

    def clear(self) -> None:
        self.lines = []

    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.lines)

    def total_price(self) -> Money:
        """Sum of unit price times quantity, in the lines' native currency."""
        return sum((line.subtotal for line in self.lines), Money.zero(self.currency))

    def summary(self) -> CartSummary:
        return CartSummary(
            items=list(self.lines),
            provider_id=self.provider_id,
            item_count=self.total_quantity(),
            total=self.total_price(),
        )
