from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, Iterator, List, Optional, Tuple

from db.models import Product
from shop.pricing import effective_price
from utils.logger import get_logger

_logger = get_logger(__name__)


@dataclass(frozen=True)
class CartLine:
    product: Product
    quantity: int

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def unit_price(self) -> Decimal:
        return effective_price(self.product)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class CartEngine:
    """
    In-memory shopping cart for one browsing session.

    Holds at most one line per product id, and never a line with quantity
    below 1. Lines keep the order in which products were first added.
    Stock is not checked here; callers clamp with `remaining_stock`.
    """

    def __init__(self) -> None:
        self._lines: Dict[str, CartLine] = {}

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines.values()))

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._lines

    def __repr__(self) -> str:
        return f"<CartEngine lines={len(self._lines)} items={self.items_count()}>"

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    def snapshot(self) -> Tuple[CartLine, ...]:
        """Immutable copy of the current lines, used by checkout."""
        return tuple(self._lines.values())

    def get(self, product_id: str) -> Optional[CartLine]:
        return self._lines.get(product_id)

    def quantity_of(self, product_id: str) -> int:
        line = self._lines.get(product_id)
        return line.quantity if line else 0

    def remaining_stock(self, product: Product) -> int:
        """How many more units of `product` fit within its stock."""
        return max(product.stock_quantity - self.quantity_of(product.id), 0)

    # ---------------------------
    # Mutations
    # ---------------------------

    def add_to_cart(self, product: Product, quantity: int = 1) -> CartLine:
        """
        Add `quantity` units of `product`. An existing line is incremented
        and takes the newer product snapshot; otherwise a line is appended.
        """
        if quantity < 1:
            raise ValueError("Quantity must be at least 1.")
        existing = self._lines.get(product.id)
        if existing:
            line = replace(existing, product=product, quantity=existing.quantity + quantity)
        else:
            line = CartLine(product=product, quantity=quantity)
        self._lines[product.id] = line
        _logger.debug(f"Cart: {product.id} -> qty {line.quantity}")
        return line

    def update_quantity(self, product_id: str, quantity: int) -> Optional[CartLine]:
        """
        Set the absolute quantity of a line. quantity <= 0 removes it.
        Returns the updated line, or None if the line is gone / was never there.
        """
        if quantity <= 0:
            self.remove_from_cart(product_id)
            return None
        existing = self._lines.get(product_id)
        if existing is None:
            return None
        line = replace(existing, quantity=quantity)
        self._lines[product_id] = line
        return line

    def remove_from_cart(self, product_id: str) -> bool:
        """Drop a line; removing an absent product is a no-op (returns False)."""
        return self._lines.pop(product_id, None) is not None

    def clear_cart(self) -> None:
        self._lines.clear()

    # ---------------------------
    # Aggregates
    # ---------------------------

    def items_count(self) -> int:
        """Total units across lines (not the number of lines)."""
        return sum(line.quantity for line in self._lines.values())

    def cart_total(self) -> Decimal:
        """Sum of effective unit price x quantity over all lines."""
        return sum((line.line_total for line in self._lines.values()), Decimal("0"))
