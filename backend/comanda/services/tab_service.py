# Overview: Tab Aggregator; derives open tabs from the Order Store on every read.

"""
Tab Aggregator

A tab is a pure function of Order Store state: all non-archived orders that
share (company_id, target_type, target_number). Nothing here is cached or
persisted, so every read reflects whatever the store holds at call time.

ORDERING: contributing orders are taken in ascending (timestamp, id); their
items are concatenated in that order, then by position within each order.
This is the display order of the tab history and is stable.

TOTALS: exact integer-cent sums of price * quantity; `total` is the same
value as a 2-decimal currency amount.
"""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass

from ..models import Order, TargetType, OrderStatus
from ..validation import to_amount
from .concurrency import TabKey
from .order_store import OrderRepository, order_store, parse_target


class TabStatus(str, enum.Enum):
    AVAILABLE = "available"
    OCCUPIED = "occupied"
    READY_TO_PAY = "ready_to_pay"


TARGET_LABELS = {
    TargetType.TABLE: "Mesa",
    TargetType.ROOM: "Quarto",
    TargetType.APPOINTMENT: "Agendamento",
    TargetType.COUNTER: "Balcão",
}


def target_label(target_type: TargetType, target_number: str) -> str:
    """Human label used on orders and transactions ("Mesa 5", "Balcão")."""
    if target_type is TargetType.COUNTER:
        return TARGET_LABELS[TargetType.COUNTER]
    return f"{TARGET_LABELS[target_type]} {target_number}"


@dataclass(frozen=True)
class TabLine:
    order_id: int
    position: int
    product_id: int
    product_name: str
    price_cents: int
    quantity: int
    status: str
    ordered_at: int
    requires_preparation: bool = False

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "order_id": self.order_id,
            "position": self.position,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "price_cents": self.price_cents,
            "price": to_amount(self.price_cents),
            "quantity": self.quantity,
            "status": self.status,
            "ordered_at": self.ordered_at,
            "requires_preparation": self.requires_preparation,
        }


@dataclass(frozen=True)
class Tab:
    company_id: int
    target_type: TargetType
    target_number: str
    status: TabStatus
    history: tuple[TabLine, ...]
    order_ids: tuple[int, ...]
    customer_name: str | None = None

    @property
    def total_cents(self) -> int:
        return sum(line.line_total_cents for line in self.history)

    @property
    def total(self) -> float:
        return to_amount(self.total_cents)

    @property
    def is_empty(self) -> bool:
        return not self.history

    def to_dict(self) -> dict:
        return {
            "type": self.target_type.value,
            "number": self.target_number,
            "status": self.status.value,
            "customer_name": self.customer_name,
            "history": [line.to_dict() for line in self.history],
            "order_ids": list(self.order_ids),
            "total_cents": self.total_cents,
            "total": self.total,
        }


@dataclass(frozen=True)
class TabSummary:
    """Monitor-board cell."""
    target_type: TargetType
    target_number: str
    status: TabStatus
    total_cents: int
    order_count: int
    opened_at: int
    customer_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.target_type.value,
            "number": self.target_number,
            "status": self.status.value,
            "total_cents": self.total_cents,
            "total": to_amount(self.total_cents),
            "order_count": self.order_count,
            "opened_at": self.opened_at,
            "customer_name": self.customer_name,
        }


class CheckoutPresence:
    """
    Transient "an operator has this tab's checkout open" flags.

    Process-local and never persisted: a restart forgets them, and every
    viewer served by this process sees them through tab status.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._open: dict[TabKey, int | None] = {}

    def mark(self, key: TabKey, user_id: int | None = None) -> None:
        with self._guard:
            self._open[key] = user_id

    def clear(self, key: TabKey) -> None:
        with self._guard:
            self._open.pop(key, None)

    def is_open(self, key: TabKey) -> bool:
        with self._guard:
            return key in self._open

    def clear_all(self) -> None:
        with self._guard:
            self._open.clear()


checkout_presence = CheckoutPresence()


def _first_customer_name(orders: list[Order]) -> str | None:
    for order in orders:
        if order.customer_name:
            return order.customer_name
    return None


class TabAggregator:
    def __init__(self, repository: OrderRepository, presence: CheckoutPresence):
        self.repository = repository
        self.presence = presence

    def _status(self, key: TabKey, orders: list[Order]) -> TabStatus:
        if not orders:
            return TabStatus.AVAILABLE
        if self.presence.is_open(key):
            return TabStatus.READY_TO_PAY
        # Everything served and confirmed: the table is only waiting for the bill
        if all(order.status is OrderStatus.COMPLETED for order in orders):
            return TabStatus.READY_TO_PAY
        return TabStatus.OCCUPIED

    def get_tab(self, target_type, target_number, company_id: int) -> Tab:
        """
        Merged view of one tab. A never-opened key is a valid, empty tab.
        """
        ttype, number = parse_target(target_type, target_number)
        key = TabKey(company_id, ttype.value, number)

        if ttype is TargetType.COUNTER:
            orders: list[Order] = []
        else:
            orders = self.repository.find_open_orders(company_id, ttype, number)

        history = tuple(
            TabLine(
                order_id=order.id,
                position=item.position,
                product_id=item.product_id,
                product_name=item.name,
                price_cents=item.price_cents,
                quantity=item.quantity,
                status=item.status.value,
                ordered_at=order.timestamp,
                requires_preparation=bool(item.requires_preparation),
            )
            for order in orders
            for item in order.items
        )
        return Tab(
            company_id=company_id,
            target_type=ttype,
            target_number=number,
            status=self._status(key, orders),
            history=history,
            order_ids=tuple(order.id for order in orders),
            customer_name=_first_customer_name(orders),
        )

    def get_all_tabs(self, company_id: int) -> list[TabSummary]:
        """One summary per key with open orders, ordered by when the tab was opened."""
        grouped: dict[tuple[TargetType, str], list[Order]] = {}
        for order in self.repository.find_open_orders(company_id):
            grouped.setdefault((order.target_type, order.target_number), []).append(order)

        summaries = []
        for (ttype, number), orders in grouped.items():
            key = TabKey(company_id, ttype.value, number)
            summaries.append(TabSummary(
                target_type=ttype,
                target_number=number,
                status=self._status(key, orders),
                total_cents=sum(order.total_cents for order in orders),
                order_count=len(orders),
                opened_at=orders[0].timestamp,
                customer_name=_first_customer_name(orders),
            ))
        return summaries


tab_aggregator = TabAggregator(order_store, checkout_presence)


def get_tab(target_type, target_number, company_id: int) -> Tab:
    return tab_aggregator.get_tab(target_type, target_number, company_id)


def get_all_tabs(company_id: int) -> list[TabSummary]:
    return tab_aggregator.get_all_tabs(company_id)
