# Overview: Flask API routes for the stock and transaction ledgers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_identity, translate_service_errors
from ..services import stock_service, transaction_service
from ..services.catalog_service import get_product
from ..validation import require_text


ledgers_bp = Blueprint("ledgers", __name__, url_prefix="/api")


@ledgers_bp.get("/stock/<int:product_id>")
@require_identity
@translate_service_errors("load stock")
def get_stock_route(product_id: int):
    product = get_product(g.company_id, product_id)
    limit = request.args.get("limit", default=50, type=int)
    limit = max(1, min(limit, 500))
    movements = stock_service.list_movements(g.company_id, product_id, limit=limit)
    return jsonify({
        "product": product.to_dict(),
        "quantity_on_hand": stock_service.get_stock_level(g.company_id, product_id),
        "movements": [m.to_dict() for m in movements],
    }), 200


@ledgers_bp.post("/stock/<int:product_id>/adjust")
@require_identity
@translate_service_errors("adjust stock")
def adjust_stock_route(product_id: int):
    """Body: {"delta": 24, "reason": "Recebimento fornecedor"}"""
    data = request.get_json(silent=True) or {}
    movement = stock_service.adjust_stock(
        g.company_id,
        product_id,
        data.get("delta"),
        require_text(data, "reason"),
        user_id=g.user_id,
    )
    return jsonify({
        "movement": movement.to_dict(),
        "quantity_on_hand": stock_service.get_stock_level(g.company_id, product_id),
    }), 201


@ledgers_bp.get("/transactions")
@require_identity
@translate_service_errors("list transactions")
def list_transactions_route():
    tx_type = request.args.get("type")
    limit = request.args.get("limit", default=100, type=int)
    limit = max(1, min(limit, 500))
    transactions = transaction_service.list_transactions(g.company_id, type=tx_type, limit=limit)
    return jsonify({"transactions": [t.to_dict() for t in transactions]}), 200
