# Overview: Service-layer operations for the transaction ledger (money movements).

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Transaction
from ..validation import ValidationError
from comanda.time_utils import utcnow


TRANSACTION_TYPES = {"income", "expense"}
TRANSACTION_STATUSES = {"completed", "pending"}

SALE_CATEGORY = "Venda de Produto"


def record_transaction(
    *,
    company_id: int,
    type: str,
    category: str,
    description: str,
    amount_cents: int,
    status: str = "completed",
    payment_method: str | None = None,
    finished_by: int | None = None,
    on_date: date | None = None,
    commit: bool = True,
) -> Transaction:
    """
    Append-only money movement.

    - No updates/deletes of existing rows.
    - amount_cents is always positive; direction comes from type.
    """
    if type not in TRANSACTION_TYPES:
        raise ValidationError(f"Invalid transaction type: {type}")
    if status not in TRANSACTION_STATUSES:
        raise ValidationError(f"Invalid transaction status: {status}")
    if amount_cents is None or amount_cents < 0:
        raise ValidationError("amount_cents must be >= 0")

    tx = Transaction(
        company_id=company_id,
        type=type,
        category=category,
        description=description,
        amount_cents=amount_cents,
        date=on_date or utcnow().date(),
        status=status,
        payment_method=payment_method,
        finished_by=finished_by,
    )
    db.session.add(tx)
    db.session.flush()

    if commit:
        db.session.commit()
    return tx


def list_transactions(company_id: int, *, type: str | None = None, limit: int = 200) -> list[Transaction]:
    q = db.session.query(Transaction).filter(Transaction.company_id == company_id)
    if type is not None:
        q = q.filter(Transaction.type == type)
    return q.order_by(Transaction.id.desc()).limit(limit).all()
