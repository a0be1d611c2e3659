"""
Checkout cart.

A Cart belongs to one checkout session; callers create it, keep it, and hand
it to order_service.place_order_from_cart(). Nothing here touches the
database and nothing is reserved. A browsing cart clamps quantities to the
stock seen when a line is edited; a checkout cart built with
clamp_to_stock=False keeps what was asked for. Either way the order ledger
re-checks live stock at commit.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass

from ..errors import ValidationError
from ..money import apply_rate


@dataclass(frozen=True)
class OrderItemInput:
    """One requested line for order_service.place_order()."""
    product_id: int
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0

    @classmethod
    def from_dict(cls, data: dict) -> "OrderItemInput":
        return cls(
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            unit_price_cents=data.get("unit_price_cents"),
            discount_cents=data.get("discount_cents", 0) or 0,
        )


@dataclass
class CartLine:
    product_id: int
    name: str
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0

    @property
    def subtotal_cents(self) -> int:
        return self.quantity * self.unit_price_cents

    @property
    def total_cents(self) -> int:
        return self.subtotal_cents - self.discount_cents

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


@dataclass(frozen=True)
class CartTotals:
    subtotal_cents: int
    discount_cents: int
    tax_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
        }


def _clamp(value: int, low: int, high: int | None) -> int:
    if high is None:
        return max(low, value)
    return max(low, min(value, high))


def _require_cents(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer (cents)", details={"field": name})
    return value


class Cart:
    """Ordered product_id -> CartLine mapping, clamped to stock unless told not to."""

    def __init__(self, clamp_to_stock: bool = True):
        self.clamp_to_stock = clamp_to_stock
        self._lines: OrderedDict[int, CartLine] = OrderedDict()

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self):
        return iter(self._lines.values())

    def __contains__(self, product_id) -> bool:
        return product_id in self._lines

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get(self, product_id: int) -> CartLine | None:
        return self._lines.get(product_id)

    def _ceiling(self, product) -> int | None:
        if not self.clamp_to_stock:
            return None
        return max(product.stock_quantity, 0)

    def add_item(self, product, qty: int = 1) -> CartLine | None:
        """
        Add qty of product, merging with an existing line.

        When clamping, the line quantity is capped at product.stock_quantity
        and the excess is dropped silently. The unit price is snapshotted on first add.
        """
        if qty <= 0:
            return self._lines.get(product.id)

        line = self._lines.get(product.id)
        current = line.quantity if line else 0
        wanted = _clamp(current + qty, 0, self._ceiling(product))
        if wanted == 0:
            self._lines.pop(product.id, None)
            return None

        if line is None:
            line = CartLine(
                product_id=product.id,
                name=product.name,
                quantity=wanted,
                unit_price_cents=product.price_cents,
            )
            self._lines[product.id] = line
        else:
            line.quantity = wanted
            line.discount_cents = min(line.discount_cents, line.subtotal_cents)
        return line

    def set_quantity(self, product, qty: int) -> CartLine | None:
        """Clamp qty to [0, stock]; 0 removes the line."""
        wanted = _clamp(qty, 0, self._ceiling(product))
        if wanted == 0:
            self._lines.pop(product.id, None)
            return None

        line = self._lines.get(product.id)
        if line is None:
            line = CartLine(
                product_id=product.id,
                name=product.name,
                quantity=wanted,
                unit_price_cents=product.price_cents,
            )
            self._lines[product.id] = line
        else:
            line.quantity = wanted
            line.discount_cents = min(line.discount_cents, line.subtotal_cents)
        return line

    def set_discount(self, product_id: int, discount_cents: int) -> CartLine | None:
        """Per-line discount, clamped to [0, line subtotal]."""
        _require_cents("discount_cents", discount_cents)
        line = self._lines.get(product_id)
        if line is None:
            return None
        line.discount_cents = _clamp(discount_cents, 0, line.subtotal_cents)
        return line

    def remove_item(self, product_id: int) -> None:
        self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    def compute_totals(self, tax_rate=0, discount_cents: int = 0) -> CartTotals:
        """
        subtotal = sum(qty * price - line discount)
        total = subtotal - discount + subtotal * tax_rate

        Pure: reads the lines, changes nothing.
        """
        _require_cents("discount_amount_cents", discount_cents)
        subtotal = sum(line.total_cents for line in self._lines.values())
        tax = apply_rate(subtotal, tax_rate)
        return CartTotals(
            subtotal_cents=subtotal,
            discount_cents=discount_cents,
            tax_cents=tax,
            total_cents=subtotal - discount_cents + tax,
        )

    def to_order_items(self) -> list[OrderItemInput]:
        return [
            OrderItemInput(
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
            )
            for line in self._lines.values()
        ]

    def to_dict(self) -> dict:
        return {"items": [line.to_dict() for line in self._lines.values()]}
