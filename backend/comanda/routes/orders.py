# Overview: Flask API routes for orders (staff tracking, kitchen updates, public self-ordering).

from flask import Blueprint, request, jsonify, g

from ..decorators import require_identity, translate_service_errors
from ..extensions import db
from ..models import Company, ItemStatus, OrderSource, OrderStatus
from ..services.catalog_service import resolve_line_items
from ..services.order_store import HistoryEntry, order_store
from ..validation import NotFoundError, coerce_int


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_identity
@translate_service_errors("list orders")
def list_orders_route():
    """
    Query params:
    - mine=1: only orders placed by the calling user (customer order history)
    - active=1: exclude archived orders (tracking screens)
    """
    user_id = g.user_id if request.args.get("mine") == "1" else None
    include_archived = request.args.get("active") != "1"
    orders = order_store.get_orders(g.company_id, user_id, include_archived=include_archived)
    return jsonify({"orders": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/<int:order_id>")
@require_identity
@translate_service_errors("load order")
def get_order_route(order_id: int):
    order = order_store.get_order(order_id, g.company_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/public/<int:company_id>")
@translate_service_errors("place public order")
def place_public_order_route(company_id: int):
    """
    Customer self-order from the company's public page (QR code on the table).

    Body: {"target_type": "table", "target_number": "12",
           "items": [{"product_id": 3, "quantity": 1}], "customer_name": "Ana"}
    """
    company = db.session.query(Company).filter_by(id=company_id).first()
    if company is None or not company.is_active:
        raise NotFoundError("Company not found")

    data = request.get_json(silent=True) or {}
    lines = resolve_line_items(company_id, data.get("items"), status=ItemStatus.PENDING)

    user_id = data.get("user_id")
    order = order_store.create_order(
        company_id=company_id,
        target_type=data.get("target_type"),
        target_number=data.get("target_number"),
        items=lines,
        source=OrderSource.PUBLIC,
        status=OrderStatus.PENDING,
        history=[HistoryEntry("Pedido criado pelo cliente")],
        customer_name=(data.get("customer_name") or None),
        user_id=coerce_int("user_id", user_id) if user_id is not None else None,
    )
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.patch("/<int:order_id>/items/<int:item_index>")
@require_identity
@translate_service_errors("update order item")
def update_item_status_route(order_id: int, item_index: int):
    """Body: {"status": "delivered"}"""
    data = request.get_json(silent=True) or {}
    order = order_store.update_item_status(
        order_id,
        g.company_id,
        item_index,
        data.get("status"),
        employee_name=g.user_name,
    )
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/confirm")
@require_identity
@translate_service_errors("confirm order receipt")
def confirm_order_route(order_id: int):
    order = order_store.confirm_order_receipt(order_id, g.company_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/<int:order_id>/archive")
@require_identity
@translate_service_errors("archive order")
def archive_order_route(order_id: int):
    order = order_store.archive_order(order_id, g.company_id)
    return jsonify({"order": order.to_dict()}), 200


@orders_bp.post("/archive-completed")
@require_identity
@translate_service_errors("archive completed orders")
def archive_completed_route():
    count = order_store.archive_completed_orders(g.company_id)
    return jsonify({"archived": count}), 200
