from __future__ import annotations

import enum

from sqlalchemy import inspect

from ..extensions import db
from comanda.time_utils import to_utc_z
from comanda.validation import ConflictError, to_amount


class TargetType(str, enum.Enum):
    """Where a tab applies. COUNTER is synthetic: it never forms a tab."""
    TABLE = "table"
    ROOM = "room"
    APPOINTMENT = "appointment"
    COUNTER = "counter"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"


class OrderSource(str, enum.Enum):
    INTERNAL = "internal"  # staff PDV
    PUBLIC = "public"      # customer self-order


class ItemStatus(str, enum.Enum):
    """
    Per-line status.

    - PENDING: waiting for the kitchen / staff
    - DELIVERED: served by staff
    - RECEIVED: confirmed by the customer, or closed at checkout
    """
    PENDING = "pending"
    RECEIVED = "received"
    DELIVERED = "delivered"


def _enum_column(enum_cls, **kwargs):
    return db.Column(
        db.Enum(
            enum_cls,
            values_callable=lambda members: [m.value for m in members],
            native_enum=False,
            validate_strings=True,
            length=16,
        ),
        **kwargs,
    )


class Order(db.Model):
    """
    A single submission of one or more line items against a target.

    Orders are the only persisted side of a tab: the tab itself is derived
    from every non-archived order sharing (company_id, target_type, target_number).

    IMMUTABLE: items never change after creation except their status.
    history (OrderEvent) is append-only.
    """
    __tablename__ = "orders"
    __table_args__ = (
        # Open-tab lookups: company + target key, non-archived only
        db.Index(
            "ix_orders_company_target_open",
            "company_id", "target_type", "target_number", "is_archived",
        ),
        db.Index("ix_orders_company_timestamp", "company_id", "timestamp"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    target_type = _enum_column(TargetType, nullable=False)
    target_number = db.Column(db.String(32), nullable=False)

    status = _enum_column(OrderStatus, nullable=False, default=OrderStatus.PENDING, index=True)
    source = _enum_column(OrderSource, nullable=False, default=OrderSource.INTERNAL)

    # Epoch milliseconds; ordering key for tab history
    timestamp = db.Column(db.BigInteger, nullable=False)

    is_archived = db.Column(db.Boolean, nullable=False, default=False, index=True)

    customer_name = db.Column(db.String(255), nullable=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)  # customer placing a public order
    waiter_id = db.Column(db.Integer, nullable=True)  # employee who opened the order
    finished_by = db.Column(db.Integer, nullable=True)  # employee who closed the sale
    finalized_at = db.Column(db.BigInteger, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "OrderItem",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="order",
    )
    history = db.relationship(
        "OrderEvent",
        order_by="OrderEvent.id",
        cascade="all, delete-orphan",
        lazy="selectin",
        back_populates="order",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Order id={self.id} {self.target_type.value}:{self.target_number!r} "
            f"status={self.status.value} archived={self.is_archived}>"
        )

    @property
    def total_cents(self) -> int:
        return sum(item.line_total_cents for item in self.items)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "target_type": self.target_type.value,
            "target_number": self.target_number,
            "status": self.status.value,
            "source": self.source.value,
            "timestamp": self.timestamp,
            "is_archived": self.is_archived,
            "customer_name": self.customer_name,
            "user_id": self.user_id,
            "waiter_id": self.waiter_id,
            "finished_by": self.finished_by,
            "finalized_at": self.finalized_at,
            "items": [item.to_dict() for item in self.items],
            "history": [event.to_dict() for event in self.history],
            "total_cents": self.total_cents,
            "total": to_amount(self.total_cents),
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class OrderItem(db.Model):
    """Line item on an order. Only `status` may change after insert."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "position", name="uq_order_items_order_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    requires_preparation = db.Column(db.Boolean, nullable=False, default=False)

    status = _enum_column(ItemStatus, nullable=False, default=ItemStatus.PENDING)

    order = db.relationship("Order", back_populates="items")

    @property
    def line_total_cents(self) -> int:
        return self.price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "product_id": self.product_id,
            "name": self.name,
            "price_cents": self.price_cents,
            "price": to_amount(self.price_cents),
            "quantity": self.quantity,
            "requires_preparation": self.requires_preparation,
            "status": self.status.value,
        }


class OrderEvent(db.Model):
    """
    Append-only audit trail entry of an order.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "order_events"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    status = db.Column(db.String(255), nullable=False)
    timestamp = db.Column(db.BigInteger, nullable=False)
    employee_name = db.Column(db.String(255), nullable=True)
    note = db.Column(db.String(255), nullable=True)

    order = db.relationship("Order", back_populates="history")

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "timestamp": self.timestamp,
            "employee_name": self.employee_name,
            "note": self.note,
        }


_IMMUTABLE_ITEM_FIELDS = ("order_id", "position", "product_id", "name", "price_cents", "quantity", "requires_preparation")


@db.event.listens_for(OrderItem, "before_update")
def _guard_item_immutability(mapper, connection, target):
    state = inspect(target)
    for field in _IMMUTABLE_ITEM_FIELDS:
        if state.attrs[field].history.has_changes():
            raise ConflictError(f"Order item field '{field}' is immutable")


@db.event.listens_for(OrderEvent, "before_update")
def _guard_event_append_only(mapper, connection, target):
    raise ConflictError("Order history is append-only")
