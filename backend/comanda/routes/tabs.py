# Overview: Flask API routes for open tabs; parses input and returns JSON responses.

"""
Tab API

    GET    /api/tabs                                   monitor board
    GET    /api/tabs/<type>/<number>                   one tab
    POST   /api/tabs/<type>/<number>/items             send cart lines to the tab
    POST   /api/tabs/<type>/<number>/checkout/open     operator opened the payment dialog
    DELETE /api/tabs/<type>/<number>/checkout/open     dialog closed without paying
    POST   /api/tabs/<type>/<number>/checkout          confirm payment and close the sale

Counter sales use /api/tabs/counter/-/checkout.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_identity, translate_service_errors
from ..services import tab_service
from ..services.catalog_service import resolve_line_items
from ..services.checkout_service import Operator, add_to_tab, finalize_checkout
from ..services.concurrency import TabKey
from ..services.order_store import parse_target
from ..validation import ValidationError, coerce_int


tabs_bp = Blueprint("tabs", __name__, url_prefix="/api/tabs")

# Placeholder path segment for targets without a number (counter)
NO_NUMBER = "-"


def _target_number(number: str):
    return None if number == NO_NUMBER else number


def _operator() -> Operator:
    return Operator(user_id=g.user_id, user_name=g.user_name)


@tabs_bp.get("")
@require_identity
@translate_service_errors("list tabs")
def list_tabs_route():
    tabs = tab_service.get_all_tabs(g.company_id)
    return jsonify({"tabs": [t.to_dict() for t in tabs]}), 200


@tabs_bp.get("/<string:target_type>/<string:number>")
@require_identity
@translate_service_errors("load tab")
def get_tab_route(target_type: str, number: str):
    tab = tab_service.get_tab(target_type, _target_number(number), g.company_id)
    return jsonify({"tab": tab.to_dict()}), 200


@tabs_bp.post("/<string:target_type>/<string:number>/items")
@require_identity
@translate_service_errors("add items to tab")
def add_items_route(target_type: str, number: str):
    """
    Body: {"items": [{"product_id": 1, "quantity": 2}, {"code": "7891234", "quantity": 1}]}
    """
    data = request.get_json(silent=True) or {}
    lines = resolve_line_items(g.company_id, data.get("items"))

    order = add_to_tab(
        company_id=g.company_id,
        target_type=target_type,
        target_number=_target_number(number),
        lines=lines,
        operator=_operator(),
    )
    tab = tab_service.get_tab(target_type, _target_number(number), g.company_id)
    return jsonify({"order": order.to_dict(), "tab": tab.to_dict()}), 201


@tabs_bp.post("/<string:target_type>/<string:number>/checkout/open")
@require_identity
@translate_service_errors("open checkout")
def open_checkout_route(target_type: str, number: str):
    ttype, num = parse_target(target_type, _target_number(number))
    tab = tab_service.get_tab(ttype, num, g.company_id)
    if tab.is_empty:
        raise ValidationError("Nothing to pay: tab is empty")

    tab_service.checkout_presence.mark(TabKey(g.company_id, ttype.value, num), g.user_id)
    tab = tab_service.get_tab(ttype, num, g.company_id)
    return jsonify({"tab": tab.to_dict()}), 200


@tabs_bp.delete("/<string:target_type>/<string:number>/checkout/open")
@require_identity
@translate_service_errors("cancel checkout")
def cancel_checkout_route(target_type: str, number: str):
    ttype, num = parse_target(target_type, _target_number(number))
    tab_service.checkout_presence.clear(TabKey(g.company_id, ttype.value, num))
    tab = tab_service.get_tab(ttype, num, g.company_id)
    return jsonify({"tab": tab.to_dict()}), 200


@tabs_bp.post("/<string:target_type>/<string:number>/checkout")
@require_identity
@translate_service_errors("finalize checkout")
def checkout_route(target_type: str, number: str):
    """
    Body: {"payment_method": "pix", "items": [...optional cart lines...],
           "expected_total_cents": 2900}

    expected_total_cents is the total the operator was shown; when the tab
    changed meanwhile the request fails with 409 and the new total.
    """
    data = request.get_json(silent=True) or {}

    raw_items = data.get("items") or []
    cart_lines = resolve_line_items(g.company_id, raw_items) if raw_items else []

    expected = data.get("expected_total_cents")
    if expected is not None:
        expected = coerce_int("expected_total_cents", expected)

    result = finalize_checkout(
        company_id=g.company_id,
        target_type=target_type,
        target_number=_target_number(number),
        cart_lines=cart_lines,
        payment_method=data.get("payment_method"),
        operator=_operator(),
        expected_total_cents=expected,
    )
    return jsonify(result.to_dict()), 201
