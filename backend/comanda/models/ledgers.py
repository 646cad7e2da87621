from __future__ import annotations

from ..extensions import db
from comanda.time_utils import to_utc_z
from comanda.validation import to_amount

class StockMovement(db.Model):
    """
    Append-only stock ledger row.

    Stock is ledger-derived: quantity on hand is SUM(delta) over movements,
    never a mutable field on Product.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_company_product", "company_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Negative for sales, positive for receipts and corrections
    delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "delta": self.delta,
            "type": "in" if self.delta > 0 else "out",
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Transaction(db.Model):
    """
    Append-only record of a money movement.

    TYPES:
    - income: sales closed at the PDV
    - expense: supplier payments and other outflows

    Transactions carry no back-reference to the order that produced them;
    traceability is by date and description only.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_company_date", "company_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # income, expense
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=False)

    # Always positive; direction comes from type
    amount_cents = db.Column(db.Integer, nullable=False)

    date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")  # completed, pending
    payment_method = db.Column(db.String(16), nullable=True)
    finished_by = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "type": self.type,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "amount": to_amount(self.amount_cents),
            "date": self.date.isoformat() if self.date else None,
            "status": self.status,
            "payment_method": self.payment_method,
            "finished_by": self.finished_by,
            "created_at": to_utc_z(self.created_at),
        }
