from __future__ import annotations

from ..extensions import db
from comanda.time_utils import to_utc_z
from comanda.validation import to_amount

class Product(db.Model):
    """
    Product master data, owned by the catalog.

    The tab engine only reads products (id, name, price, sku, barcode,
    requires_preparation); it never writes them. Stock is not a column here:
    it is the sum of StockMovement deltas.

    LOOKUP PATTERN:
    - SKU lookup: company-scoped, unique per company
    - Barcode lookup: company-scoped, scanned value as-is
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        db.Index("ix_products_company_barcode", "company_id", "barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    # Kitchen items start "pending" on a tab; everything else is served at once
    requires_preparation = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("products", lazy=True))

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "price_cents": self.price_cents,
            "price": to_amount(self.price_cents),
            "requires_preparation": self.requires_preparation,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
