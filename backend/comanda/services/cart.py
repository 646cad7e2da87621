# Overview: Per-operator cart; the not-yet-submitted selection of a PDV interaction.

from __future__ import annotations

from dataclasses import dataclass

from ..models import Product, TargetType
from ..validation import NotFoundError, to_amount
from .order_store import LineItem
from .tab_service import Tab


@dataclass
class CartItem:
    product: Product
    quantity: int = 1

    @property
    def line_total_cents(self) -> int:
        return self.product.price_cents * self.quantity

    def to_line_item(self, status=None) -> LineItem:
        return LineItem.from_product(self.product, self.quantity, status)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product.id,
            "name": self.product.name,
            "price_cents": self.product.price_cents,
            "quantity": self.quantity,
            "line_total_cents": self.line_total_cents,
        }


class CartSession:
    """
    In-memory cart for the active operator.

    Never persisted: items only reach the Order Store when they are sent to a
    tab or paid at checkout. Discarding the object discards the cart.
    """

    def __init__(self) -> None:
        self._items: list[CartItem] = []

    def __iter__(self):
        return iter(list(self._items))

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> list[CartItem]:
        return list(self._items)

    @property
    def is_empty(self) -> bool:
        return not self._items

    def _find(self, product_id: int) -> CartItem | None:
        for item in self._items:
            if item.product.id == product_id:
                return item
        return None

    def add_to_cart(self, product: Product) -> CartItem:
        existing = self._find(product.id)
        if existing is not None:
            existing.quantity += 1
            return existing
        item = CartItem(product=product, quantity=1)
        self._items.append(item)
        return item

    def update_quantity(self, product_id: int, delta: int) -> CartItem:
        """Quantity never drops below 1 on this path; use remove_from_cart."""
        item = self._find(product_id)
        if item is None:
            raise NotFoundError(f"Product {product_id} is not in the cart")
        item.quantity = max(1, item.quantity + delta)
        return item

    def remove_from_cart(self, product_id: int) -> None:
        self._items = [item for item in self._items if item.product.id != product_id]

    def clear(self) -> None:
        self._items = []

    @property
    def total_cents(self) -> int:
        return sum(item.line_total_cents for item in self._items)

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self._items)

    def grand_total_cents(self, target_type: TargetType, tab: Tab | None = None) -> int:
        """
        Cart total for counter sales; cart plus the current tab otherwise.

        Callers pass a freshly read tab so another terminal's additions show up.
        """
        if TargetType(target_type) is TargetType.COUNTER or tab is None:
            return self.total_cents
        return self.total_cents + tab.total_cents

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self._items],
            "item_count": self.item_count,
            "total_cents": self.total_cents,
            "total": to_amount(self.total_cents),
        }
