"""
Checkout Service - tab submission and sale finalization

WHY: Closing a tab touches three ledgers (stock, money, orders). Doing it as
one unit of work under a per-tab lock means a sale is either fully recorded
(stock deducted, income recorded, tab archived, consolidated order written)
or not recorded at all.

STATES (per operator):
    BROWSING -> ADDING_TO_TAB -> BROWSING           (send cart to the tab)
    BROWSING -> CHECKOUT_OPEN -> PAYMENT_SELECTED -> FINALIZED
    CHECKOUT_OPEN / PAYMENT_SELECTED -> BROWSING    (cancel, no mutation)
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Sequence

from flask import current_app

from ..extensions import db
from ..models import Order, StockMovement, Transaction, TargetType, OrderStatus, OrderSource, ItemStatus
from ..validation import (
    ValidationError, ConflictError, NotFoundError, TotalChangedError, TransactionFailed,
    require_quantity, to_amount,
)
from . import stock_service, transaction_service
from .cart import CartSession
from .concurrency import TabKey, checkout_locks
from .order_store import (
    HistoryEntry, LineItem, OrderRepository, order_store, parse_target, parse_target_type,
    notify_orders_changed,
)
from .tab_service import Tab, TabAggregator, tab_aggregator, target_label

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("cash", "credit", "debit", "pix")


class CheckoutState(str, enum.Enum):
    BROWSING = "browsing"
    ADDING_TO_TAB = "adding_to_tab"
    CHECKOUT_OPEN = "checkout_open"
    PAYMENT_SELECTED = "payment_selected"
    FINALIZED = "finalized"


@dataclass(frozen=True)
class Operator:
    """Identity supplied by the session layer, used for attribution only."""
    user_id: int | None = None
    user_name: str | None = None


@dataclass
class CheckoutResult:
    order: Order
    transaction: Transaction
    movements: list[StockMovement] = field(default_factory=list)
    archived_count: int = 0

    @property
    def total_cents(self) -> int:
        return self.transaction.amount_cents

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(),
            "transaction": self.transaction.to_dict(),
            "stock_movements": [m.to_dict() for m in self.movements],
            "archived_count": self.archived_count,
            "total_cents": self.total_cents,
            "total": to_amount(self.total_cents),
        }


def require_payment_method(method) -> str:
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    return method


def add_to_tab(
    *,
    company_id: int,
    target_type,
    target_number,
    lines: Sequence[LineItem],
    operator: Operator,
    repository: OrderRepository | None = None,
) -> Order:
    """
    Send cart lines to a tab as a new pending internal order.

    Nothing is archived or finalized; the tab stays occupied.
    """
    repository = repository or order_store
    ttype, number = parse_target(target_type, target_number)
    if ttype is TargetType.COUNTER:
        raise ValidationError("Counter sales are paid immediately and cannot be added to a tab")
    if not lines:
        raise ValidationError("Cart is empty")

    return repository.create_order(
        company_id=company_id,
        target_type=ttype,
        target_number=number,
        items=list(lines),
        source=OrderSource.INTERNAL,
        status=OrderStatus.PENDING,
        history=[HistoryEntry("Pedido criado internamente", employee_name=operator.user_name)],
        customer_name=target_label(ttype, number),
        waiter_id=operator.user_id,
    )


def _finalize_locked(
    *,
    company_id: int,
    ttype: TargetType,
    number: str,
    cart_lines: Sequence[LineItem],
    payment_method: str,
    operator: Operator,
    expected_total_cents: int | None,
    repository: OrderRepository,
    aggregator: TabAggregator,
) -> CheckoutResult:
    is_counter = ttype is TargetType.COUNTER
    tab = None if is_counter else aggregator.get_tab(ttype, number, company_id)
    history = tab.history if tab is not None else ()

    if not cart_lines and not history:
        raise ValidationError("Nothing to pay: cart and tab are empty")

    total_cents = sum(line.line_total_cents for line in cart_lines)
    total_cents += sum(line.line_total_cents for line in history)

    if expected_total_cents is not None and expected_total_cents != total_cents:
        raise TotalChangedError(
            "Tab changed since checkout was opened",
            details={"expected_total_cents": expected_total_cents, "total_cents": total_cents},
        )

    movements = []
    for line in cart_lines:
        movements.append(stock_service.adjust_stock(
            company_id, line.product_id, -line.quantity, stock_service.SALE_REASON,
            user_id=operator.user_id, commit=False,
        ))
    for line in history:
        movements.append(stock_service.adjust_stock(
            company_id, line.product_id, -line.quantity, stock_service.CONSUMPTION_REASON,
            user_id=operator.user_id, commit=False,
        ))

    label = target_label(ttype, number)
    transaction = transaction_service.record_transaction(
        company_id=company_id,
        type="income",
        category=transaction_service.SALE_CATEGORY,
        description=f"Venda PDV - {label}",
        amount_cents=total_cents,
        status="completed",
        payment_method=payment_method,
        finished_by=operator.user_id,
        commit=False,
    )

    archived_count = 0
    if not is_counter:
        # Archive first so the consolidated order below is not folded back into this tab
        archived_count = repository.archive_orders_by_target(company_id, ttype, number, commit=False)
        if archived_count != len(tab.order_ids):
            # Another terminal added an order after the tab was read; it was not charged
            raise TotalChangedError(
                "Tab changed while checkout was running",
                details={"expected_orders": len(tab.order_ids), "archived_orders": archived_count},
            )

    items = [replace(line, status=ItemStatus.RECEIVED) for line in cart_lines]
    items += [
        LineItem(
            product_id=line.product_id,
            name=line.product_name,
            price_cents=line.price_cents,
            quantity=line.quantity,
            requires_preparation=line.requires_preparation,
            status=ItemStatus.RECEIVED,
        )
        for line in history
    ]

    order = repository.create_order(
        company_id=company_id,
        target_type=ttype,
        target_number=number,
        items=items,
        source=OrderSource.INTERNAL,
        status=OrderStatus.COMPLETED,
        history=[HistoryEntry(
            "Venda finalizada no PDV",
            employee_name=operator.user_name,
            note=f"payment_method={payment_method}",
        )],
        customer_name=label,
        finished_by=operator.user_id,
        is_archived=True,
        commit=False,
    )

    return CheckoutResult(order=order, transaction=transaction, movements=movements, archived_count=archived_count)


def finalize_checkout(
    *,
    company_id: int,
    target_type,
    target_number,
    cart_lines: Sequence[LineItem],
    payment_method: str,
    operator: Operator,
    expected_total_cents: int | None = None,
    repository: OrderRepository | None = None,
    aggregator: TabAggregator | None = None,
) -> CheckoutResult:
    """
    Close a sale: stock deductions, income transaction, tab archival and the
    consolidated order, committed together under the tab's checkout lock.

    Input problems raise ValidationError/NotFoundError/ConflictError after a
    rollback. Anything else rolls back and raises TransactionFailed.
    Counter sales never archive anything.
    """
    repository = repository or order_store
    aggregator = aggregator or tab_aggregator

    ttype, number = parse_target(target_type, target_number)
    method = require_payment_method(payment_method)
    for line in cart_lines:
        require_quantity(line.quantity)

    key = TabKey(company_id, ttype.value, number)
    timeout = current_app.config.get("CHECKOUT_LOCK_TIMEOUT_SECONDS", 5)

    with checkout_locks.hold(key, timeout=timeout):
        try:
            result = _finalize_locked(
                company_id=company_id,
                ttype=ttype,
                number=number,
                cart_lines=cart_lines,
                payment_method=method,
                operator=operator,
                expected_total_cents=expected_total_cents,
                repository=repository,
                aggregator=aggregator,
            )
            db.session.commit()
        except (ValidationError, ConflictError, NotFoundError):
            db.session.rollback()
            raise
        except Exception as exc:
            db.session.rollback()
            logger.exception("Checkout failed for %s (company %s)", key.label(), company_id)
            raise TransactionFailed(
                "Checkout could not be completed; nothing was recorded",
                details={"type": ttype.value, "number": number},
            ) from exc

    aggregator.presence.clear(key)
    notify_orders_changed(company_id)
    logger.info(
        "Checkout finalized for %s (company %s): %d cents, %d order(s) archived",
        key.label(), company_id, result.total_cents, result.archived_count,
    )
    return result


class CheckoutSession:
    """
    One operator's PDV interaction: target selection, cart and checkout dialog.

    Holds only in-memory state; every persistent change goes through
    add_to_tab() or finalize_checkout().
    """

    def __init__(
        self,
        *,
        company_id: int,
        operator: Operator | None = None,
        target_type=TargetType.COUNTER,
        target_number=None,
        repository: OrderRepository | None = None,
        aggregator: TabAggregator | None = None,
    ):
        self.company_id = company_id
        self.operator = operator or Operator()
        self.repository = repository or order_store
        self.aggregator = aggregator or tab_aggregator
        self.cart = CartSession()
        self.state = CheckoutState.BROWSING
        self.tab: Tab | None = None
        self.frozen_total_cents: int | None = None
        self.payment_method: str | None = None
        self.target_type = parse_target_type(target_type)
        self.target_number = target_number
        self.select_target(target_type, target_number)

    @property
    def is_counter(self) -> bool:
        return self.target_type is TargetType.COUNTER

    @property
    def key(self) -> TabKey:
        ttype, number = parse_target(self.target_type, self.target_number)
        return TabKey(self.company_id, ttype.value, number)

    def _require_state(self, action: str, *allowed: CheckoutState) -> None:
        if self.state not in allowed:
            raise ConflictError(f"Cannot {action} while {self.state.value}")

    def select_target(self, target_type, target_number=None) -> Tab | None:
        self._require_state("change target", CheckoutState.BROWSING)
        self.target_type = parse_target_type(target_type)
        self.target_number = None if target_number is None else str(target_number).strip() or None
        return self.refresh_tab()

    def refresh_tab(self) -> Tab | None:
        """Re-read the tab; polling calls this so concurrent additions show up."""
        if self.is_counter or not self.target_number:
            self.tab = None
        else:
            self.tab = self.aggregator.get_tab(self.target_type, self.target_number, self.company_id)
        return self.tab

    @property
    def grand_total_cents(self) -> int:
        return self.cart.grand_total_cents(self.target_type, self.refresh_tab())

    def add_to_tab(self) -> Order:
        self._require_state("add to tab", CheckoutState.BROWSING)
        if not self.is_counter and not self.target_number:
            raise ValidationError(f"target_number is required for {self.target_type.value} orders")

        self.state = CheckoutState.ADDING_TO_TAB
        try:
            order = add_to_tab(
                company_id=self.company_id,
                target_type=self.target_type,
                target_number=self.target_number,
                lines=[item.to_line_item() for item in self.cart],
                operator=self.operator,
                repository=self.repository,
            )
        finally:
            self.state = CheckoutState.BROWSING

        self.cart.clear()
        self.refresh_tab()
        return order

    def open_checkout(self) -> int:
        """Freeze the total for display. No persistent mutation."""
        self._require_state("open checkout", CheckoutState.BROWSING)
        if not self.is_counter and not self.target_number:
            raise ValidationError(f"target_number is required for {self.target_type.value} orders")

        total = self.grand_total_cents
        if self.cart.is_empty and (self.tab is None or self.tab.is_empty):
            raise ValidationError("Nothing to pay: cart and tab are empty")

        self.frozen_total_cents = total
        if not self.is_counter:
            self.aggregator.presence.mark(self.key, self.operator.user_id)
        self.state = CheckoutState.CHECKOUT_OPEN
        return total

    def cancel_checkout(self) -> None:
        self._require_state("cancel checkout", CheckoutState.CHECKOUT_OPEN, CheckoutState.PAYMENT_SELECTED)
        if not self.is_counter:
            self.aggregator.presence.clear(self.key)
        self.frozen_total_cents = None
        self.payment_method = None
        self.state = CheckoutState.BROWSING

    def select_payment(self, method: str) -> None:
        self._require_state("select payment", CheckoutState.CHECKOUT_OPEN, CheckoutState.PAYMENT_SELECTED)
        self.payment_method = require_payment_method(method)
        self.state = CheckoutState.PAYMENT_SELECTED

    def confirm_payment(self) -> CheckoutResult:
        self._require_state("confirm payment", CheckoutState.PAYMENT_SELECTED)
        try:
            result = finalize_checkout(
                company_id=self.company_id,
                target_type=self.target_type,
                target_number=self.target_number,
                cart_lines=[item.to_line_item() for item in self.cart],
                payment_method=self.payment_method,
                operator=self.operator,
                expected_total_cents=self.frozen_total_cents,
                repository=self.repository,
                aggregator=self.aggregator,
            )
        except TotalChangedError as exc:
            # Show the operator the new amount; confirming again charges it
            self.refresh_tab()
            self.frozen_total_cents = exc.details.get("total_cents", self.grand_total_cents)
            raise

        self.cart.clear()
        self.tab = None
        self.frozen_total_cents = None
        self.state = CheckoutState.FINALIZED
        return result

    def start_new_sale(self) -> None:
        self._require_state("start a new sale", CheckoutState.FINALIZED)
        self.payment_method = None
        self.state = CheckoutState.BROWSING
        self.refresh_tab()
