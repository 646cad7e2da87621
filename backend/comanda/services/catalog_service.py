# Overview: Read-only product catalog lookups used by the tab engine.

"""
Catalog Service - product resolution for the PDV

The catalog is owned elsewhere; this module only reads it. A barcode scanner
(or keyboard-capture buffer) resolves raw keystrokes into a code, and the
code is matched here.

LOOKUP PRIORITY: barcode > SKU. SKUs are normalized (upper-case, no spaces);
barcodes are matched as scanned.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, ItemStatus
from ..validation import NotFoundError, ValidationError, coerce_int, require_quantity
from .order_store import LineItem


def normalize_sku(value: str) -> str:
    """Normalize to uppercase, no spaces."""
    return value.upper().strip().replace(" ", "")


def get_product(company_id: int, product_id: int, *, require_active: bool = False) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, company_id=company_id).first()
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    if require_active and not product.is_active:
        raise NotFoundError(f"Product {product_id} is inactive")
    return product


def lookup_product(company_id: int, code: str) -> Product:
    """
    Resolve a scanned or typed code to an active product in the company.

    Raises NotFoundError when nothing matches.
    """
    scanned = (code or "").strip()
    if not scanned:
        raise NotFoundError("Empty product code")

    base = db.session.query(Product).filter(
        Product.company_id == company_id,
        Product.is_active.is_(True),
    )

    product = base.filter(Product.barcode == scanned).first()
    if product is not None:
        return product

    product = base.filter(Product.sku == normalize_sku(scanned)).first()
    if product is not None:
        return product

    raise NotFoundError(f"No product matches code '{scanned}'")


def resolve_line_items(company_id: int, raw_items, *, status: ItemStatus | None = None) -> list[LineItem]:
    """
    Turn request lines ({product_id | code, quantity}) into order lines.

    Name and price always come from the catalog, never from the client.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        quantity = require_quantity(raw.get("quantity", 1), f"items[{idx}].quantity")
        if raw.get("product_id") is not None:
            product_id = coerce_int(f"items[{idx}].product_id", raw["product_id"])
            product = get_product(company_id, product_id, require_active=True)
        elif raw.get("code"):
            product = lookup_product(company_id, str(raw["code"]))
        else:
            raise ValidationError(f"items[{idx}] needs product_id or code")
        lines.append(LineItem.from_product(product, quantity, status))
    return lines
