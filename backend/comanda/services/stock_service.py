# Overview: Service-layer operations for the stock ledger; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import StockMovement
from ..validation import ValidationError, coerce_int
from .catalog_service import get_product
"""
Stock Ledger Invariants (authoritative)

- Stock is ledger-derived from StockMovement rows; never stored as a mutable quantity field.
- Quantity on hand is SUM(delta) over the company's movements for a product.
- Movements are append-only: one row per adjustment, no updates, no deletes.
- Every movement names a reason ("Venda PDV", "Venda PDV (Consumo)", manual corrections).
- Stock may go negative: the PDV never blocks a sale on stock, it records what was sold.
"""

SALE_REASON = "Venda PDV"
CONSUMPTION_REASON = "Venda PDV (Consumo)"


def get_stock_level(company_id: int, product_id: int) -> int:
    q = db.session.query(
        func.coalesce(func.sum(StockMovement.delta), 0)
    ).filter(
        StockMovement.company_id == company_id,
        StockMovement.product_id == product_id,
    )
    return int(q.scalar() or 0)


def adjust_stock(
    company_id: int,
    product_id: int,
    delta: int,
    reason: str,
    *,
    user_id: int | None = None,
    commit: bool = True,
) -> StockMovement:
    """
    Append one stock movement.

    Raises NotFoundError if the product is not in the company, so a checkout
    aborts instead of silently skipping the deduction.
    """
    delta = coerce_int("delta", delta)
    if delta == 0:
        raise ValidationError("delta must be non-zero")
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required")

    get_product(company_id, product_id)

    movement = StockMovement(
        company_id=company_id,
        product_id=product_id,
        delta=delta,
        reason=str(reason).strip(),
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()  # ensures movement.id is assigned without committing

    if commit:
        db.session.commit()
    return movement


def list_movements(company_id: int, product_id: int | None = None, *, limit: int = 200) -> list[StockMovement]:
    q = db.session.query(StockMovement).filter(StockMovement.company_id == company_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    return q.order_by(StockMovement.id.desc()).limit(limit).all()
