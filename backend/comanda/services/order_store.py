# Overview: Order Store; canonical, tenant-scoped collection of orders behind a repository interface.

"""
Order Store

WHY: Tabs are never stored. Every screen (PDV terminals, public ordering page,
kitchen monitor) reads the same collection of orders and derives tabs from
it, so this module is the only place orders are written.

INVARIANTS:
- Items are immutable after creation except for per-item status.
- history (OrderEvent) is append-only.
- Archiving is a flag, never a delete; archived orders stay queryable.
- Every committed mutation fires `orders_changed` for the company.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Sequence

from flask import current_app

from ..extensions import db, tab_signals
from ..models import (
    Company, Product, Order, OrderItem, OrderEvent,
    TargetType, OrderStatus, OrderSource, ItemStatus,
)
from ..validation import (
    ValidationError, ConflictError, NotFoundError,
    require_quantity, require_price_cents,
)
from comanda.time_utils import now_ms
from .concurrency import lock_for_update, run_with_retry

logger = logging.getLogger(__name__)

orders_changed = tab_signals.signal("orders-changed")

MAX_TARGET_NUMBER_LENGTH = 32

SERVED_STATUSES = (ItemStatus.DELIVERED, ItemStatus.RECEIVED)


@dataclass(frozen=True)
class LineItem:
    """A line to be written on a new order."""
    product_id: int
    name: str
    price_cents: int
    quantity: int
    requires_preparation: bool = False
    status: ItemStatus = ItemStatus.PENDING

    @classmethod
    def from_product(cls, product: Product, quantity: int, status: ItemStatus | None = None) -> "LineItem":
        if status is None:
            status = ItemStatus.PENDING if product.requires_preparation else ItemStatus.DELIVERED
        return cls(
            product_id=product.id,
            name=product.name,
            price_cents=product.price_cents,
            quantity=quantity,
            requires_preparation=bool(product.requires_preparation),
            status=status,
        )

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity


@dataclass(frozen=True)
class HistoryEntry:
    status: str
    timestamp: int | None = None
    employee_name: str | None = None
    note: str | None = None


def parse_target_type(target_type) -> TargetType:
    try:
        return TargetType(target_type)
    except ValueError:
        allowed = ", ".join(t.value for t in TargetType)
        raise ValidationError(f"target_type must be one of: {allowed}")


def parse_target(target_type, target_number) -> tuple[TargetType, str]:
    """
    Validate a (type, number) target key.

    Counter sales have no persistent target: a missing number becomes the
    configured synthetic counter number.
    """
    ttype = parse_target_type(target_type)

    number = "" if target_number is None else str(target_number).strip()
    if not number:
        if ttype is TargetType.COUNTER:
            number = current_app.config.get("DEFAULT_COUNTER_NUMBER", "B")
        else:
            raise ValidationError(f"target_number is required for {ttype.value} orders")
    if len(number) > MAX_TARGET_NUMBER_LENGTH:
        raise ValidationError(f"target_number exceeds max length {MAX_TARGET_NUMBER_LENGTH}")
    return ttype, number


def parse_item_status(value) -> ItemStatus:
    try:
        return ItemStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ItemStatus)
        raise ValidationError(f"status must be one of: {allowed}")


def notify_orders_changed(company_id: int) -> None:
    """
    Tell listeners the company's orders changed. Called after commit only.

    The write is already durable here, so a failing listener is logged and
    never reported to the caller as a failed write.
    """
    try:
        orders_changed.send(current_app._get_current_object(), company_id=company_id)
    except Exception:
        logger.exception("orders_changed listener failed (company %s)", company_id)


class OrderRepository(ABC):
    """
    Contract between the tab engine and order persistence.

    The tab aggregator and checkout only ever talk to this interface, so a
    different store (or an in-memory fake) can be injected.
    """

    @abstractmethod
    def create_order(self, **fields) -> Order: ...

    @abstractmethod
    def get_order(self, order_id: int, company_id: int) -> Order: ...

    @abstractmethod
    def get_orders(self, company_id: int | None = None, user_id: int | None = None, *, include_archived: bool = True) -> list[Order]: ...

    @abstractmethod
    def find_open_orders(self, company_id: int, target_type: TargetType | None = None, target_number: str | None = None) -> list[Order]: ...

    @abstractmethod
    def archive_orders_by_target(self, company_id: int, target_type, target_number, *, commit: bool = True) -> int: ...


class SqlOrderRepository(OrderRepository):
    """SQLAlchemy-backed Order Store (the default)."""

    def create_order(
        self,
        *,
        company_id: int,
        target_type,
        target_number,
        items: Sequence[LineItem],
        source: OrderSource = OrderSource.INTERNAL,
        status: OrderStatus = OrderStatus.PENDING,
        timestamp: int | None = None,
        history: Iterable[HistoryEntry] | None = None,
        customer_name: str | None = None,
        user_id: int | None = None,
        waiter_id: int | None = None,
        finished_by: int | None = None,
        is_archived: bool = False,
        commit: bool = True,
    ) -> Order:
        """
        Insert a new order.

        Raises ValidationError (missing target number for non-counter sales,
        empty items, bad quantities) before anything is written.
        """
        ttype, number = parse_target(target_type, target_number)
        if not items:
            raise ValidationError("Order must contain at least one item")

        for item in items:
            require_quantity(item.quantity)
            require_price_cents(item.price_cents)

        company = db.session.query(Company).filter_by(id=company_id).first()
        if company is None or not company.is_active:
            raise NotFoundError(f"Company {company_id} not found")

        product_ids = {item.product_id for item in items}
        known = {
            pid for (pid,) in db.session.query(Product.id).filter(
                Product.company_id == company_id,
                Product.id.in_(product_ids),
            )
        }
        missing = sorted(product_ids - known)
        if missing:
            raise NotFoundError(f"Products not found: {missing}")

        ts = timestamp if timestamp is not None else now_ms()
        order = Order(
            company_id=company_id,
            target_type=ttype,
            target_number=number,
            status=OrderStatus(status),
            source=OrderSource(source),
            timestamp=ts,
            is_archived=is_archived,
            customer_name=customer_name,
            user_id=user_id,
            waiter_id=waiter_id,
            finished_by=finished_by,
            finalized_at=ts if OrderStatus(status) is OrderStatus.COMPLETED else None,
        )
        for position, item in enumerate(items):
            order.items.append(OrderItem(
                position=position,
                product_id=item.product_id,
                name=item.name,
                price_cents=item.price_cents,
                quantity=item.quantity,
                requires_preparation=item.requires_preparation,
                status=ItemStatus(item.status),
            ))

        entries = list(history) if history else [HistoryEntry("Pedido criado")]
        for entry in entries:
            order.history.append(OrderEvent(
                status=entry.status,
                timestamp=entry.timestamp if entry.timestamp is not None else ts,
                employee_name=entry.employee_name,
                note=entry.note,
            ))

        db.session.add(order)
        db.session.flush()  # ensures order.id is assigned without committing

        if commit:
            db.session.commit()
            notify_orders_changed(company_id)
        return order

    def get_order(self, order_id: int, company_id: int) -> Order:
        order = db.session.query(Order).filter_by(id=order_id, company_id=company_id).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def get_orders(
        self,
        company_id: int | None = None,
        user_id: int | None = None,
        *,
        include_archived: bool = True,
    ) -> list[Order]:
        """Insertion order; optionally scoped to a tenant and/or the customer who placed them."""
        q = db.session.query(Order)
        if company_id is not None:
            q = q.filter(Order.company_id == company_id)
        if user_id is not None:
            q = q.filter(Order.user_id == user_id)
        if not include_archived:
            q = q.filter(Order.is_archived.is_(False))
        return q.order_by(Order.id.asc()).all()

    def find_open_orders(
        self,
        company_id: int,
        target_type: TargetType | None = None,
        target_number: str | None = None,
    ) -> list[Order]:
        """
        Non-archived orders, ascending (timestamp, id).

        Without a target type, counter orders are excluded: they never form a tab.
        """
        q = db.session.query(Order).filter(
            Order.company_id == company_id,
            Order.is_archived.is_(False),
        )
        if target_type is None:
            q = q.filter(Order.target_type != TargetType.COUNTER)
        else:
            q = q.filter(Order.target_type == TargetType(target_type))
        if target_number is not None:
            q = q.filter(Order.target_number == target_number)
        return q.order_by(Order.timestamp.asc(), Order.id.asc()).all()

    def archive_orders_by_target(self, company_id: int, target_type, target_number, *, commit: bool = True) -> int:
        """
        Flag every open order on the key as archived.

        At checkout this must run BEFORE the consolidated order is created,
        otherwise the new order would be folded back into the tab it closes.
        """
        ttype, number = parse_target(target_type, target_number)
        orders = lock_for_update(
            db.session.query(Order).filter(
                Order.company_id == company_id,
                Order.target_type == ttype,
                Order.target_number == number,
                Order.is_archived.is_(False),
            )
        ).all()
        for order in orders:
            order.is_archived = True
        db.session.flush()

        if commit:
            db.session.commit()
            notify_orders_changed(company_id)
        logger.info("Archived %d order(s) on %s:%s (company %s)", len(orders), ttype.value, number, company_id)
        return len(orders)

    def archive_order(self, order_id: int, company_id: int) -> Order:
        def _op():
            order = lock_for_update(
                db.session.query(Order).filter_by(id=order_id, company_id=company_id)
            ).first()
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            order.is_archived = True
            db.session.commit()
            return order

        order = run_with_retry(_op)
        notify_orders_changed(company_id)
        return order

    def archive_completed_orders(self, company_id: int) -> int:
        """Clear finished orders off the monitor board."""
        orders = lock_for_update(
            db.session.query(Order).filter(
                Order.company_id == company_id,
                Order.is_archived.is_(False),
                Order.status == OrderStatus.COMPLETED,
            )
        ).all()
        for order in orders:
            order.is_archived = True
        db.session.commit()
        if orders:
            notify_orders_changed(company_id)
        return len(orders)

    def update_item_status(
        self,
        order_id: int,
        company_id: int,
        item_index: int,
        status,
        *,
        employee_name: str | None = None,
    ) -> Order:
        """
        Kitchen/staff marks one item.

        The order follows its items: completed once every item is delivered
        or received, accepted once any item has left pending.
        """
        new_status = parse_item_status(status)

        def _op():
            order = lock_for_update(
                db.session.query(Order).filter_by(id=order_id, company_id=company_id)
            ).first()
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            if order.is_archived:
                raise ConflictError("Cannot update items of an archived order")
            if item_index < 0 or item_index >= len(order.items):
                raise NotFoundError(f"Order {order_id} has no item {item_index}")

            item = order.items[item_index]
            item.status = new_status

            ts = now_ms()
            order.history.append(OrderEvent(
                status=f"{item.name}: {new_status.value}",
                timestamp=ts,
                employee_name=employee_name,
            ))

            if all(i.status in SERVED_STATUSES for i in order.items):
                order.status = OrderStatus.COMPLETED
                order.finalized_at = ts
            elif any(i.status is not ItemStatus.PENDING for i in order.items):
                order.status = OrderStatus.ACCEPTED

            db.session.commit()
            return order

        order = run_with_retry(_op)
        notify_orders_changed(company_id)
        return order

    def confirm_order_receipt(self, order_id: int, company_id: int) -> Order:
        """Customer confirms they received everything; the order is completed."""
        def _op():
            order = lock_for_update(
                db.session.query(Order).filter_by(id=order_id, company_id=company_id)
            ).first()
            if order is None:
                raise NotFoundError(f"Order {order_id} not found")
            if order.is_archived:
                raise ConflictError("Cannot confirm an archived order")

            ts = now_ms()
            for item in order.items:
                item.status = ItemStatus.RECEIVED
            order.status = OrderStatus.COMPLETED
            order.finalized_at = ts
            order.history.append(OrderEvent(
                status="Pedido recebido e finalizado pelo cliente",
                timestamp=ts,
            ))
            db.session.commit()
            return order

        order = run_with_retry(_op)
        notify_orders_changed(company_id)
        return order


order_store = SqlOrderRepository()
