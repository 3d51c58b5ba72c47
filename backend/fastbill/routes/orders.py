# Overview: Flask API routes for order history, cancellation and payments.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import order_service, payment_service
from ..errors import BillingError, error_response
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_terminal

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.get("")
@require_auth
@require_terminal
def list_orders():
    """
    Newest first. Orders still waiting to sync are included with
    is_offline=true and id=null.

    Query params:
    - limit: int (default DASHBOARD_ORDER_LIMIT)
    """
    limit = request.args.get("limit", type=int) or current_app.config["DASHBOARD_ORDER_LIMIT"]
    rows = order_service.list_orders(g.tenant_id, limit=limit, pending=g.terminal.pending.list())
    return jsonify({"items": rows, "count": len(rows)}), 200


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order(order_id: int):
    try:
        return jsonify({"order": order_service.get_order(g.tenant_id, order_id).to_dict()}), 200
    except BillingError as e:
        return error_response(e)


@orders_bp.post("/<order_id>/cancel")
@require_auth
@require_terminal
def cancel_order(order_id):
    """order_id may be a local id of a queued order, which is refused."""
    try:
        order = order_service.cancel_order(g.tenant_id, order_id, pending_store=g.terminal.pending)
        return jsonify({"order": order.to_dict(), "message": "Order cancelled and stock quantities restored"}), 200
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/payments")
@require_auth
def list_payments(order_id: int):
    try:
        return jsonify({"items": payment_service.payment_history(g.tenant_id, order_id)}), 200
    except BillingError as e:
        return error_response(e)


@orders_bp.post("/<int:order_id>/payments")
@require_auth
def record_payment(order_id: int):
    """Body: {"amount_cents": int, "notes": str?}"""
    data = request.get_json(silent=True) or {}
    try:
        order = payment_service.record_payment(
            g.tenant_id, order_id, data.get("amount_cents"), data.get("notes")
        )
        return jsonify({"order": order.to_dict()}), 201
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
