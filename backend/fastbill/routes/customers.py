# Overview: Flask API routes for customer ledgers; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import customer_service
from ..errors import BillingError, error_response
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers():
    """Query params: q (name or phone fragment)"""
    customers = customer_service.list_customers(g.tenant_id, request.args.get("q"))
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200


@customers_bp.post("")
@require_auth
def create_customer():
    try:
        customer = customer_service.create_customer(g.tenant_id, request.get_json(silent=True))
        return jsonify({"customer": customer.to_dict()}), 201
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer(customer_id: int):
    try:
        return jsonify({"customer": customer_service.get_customer(g.tenant_id, customer_id).to_dict()}), 200
    except BillingError as e:
        return error_response(e)


@customers_bp.patch("/<int:customer_id>")
@require_auth
def update_customer(customer_id: int):
    try:
        customer = customer_service.update_customer(g.tenant_id, customer_id, request.get_json(silent=True))
        return jsonify({"customer": customer.to_dict()}), 200
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer(customer_id: int):
    try:
        customer_service.delete_customer(g.tenant_id, customer_id)
        return jsonify({"deleted": True, "id": customer_id}), 200
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/bills")
@require_auth
def customer_bills(customer_id: int):
    """Query params: outstanding=1 to list only bills with a balance due"""
    outstanding = request.args.get("outstanding") in ("1", "true", "yes")
    try:
        bills = customer_service.customer_bills(g.tenant_id, customer_id, outstanding_only=outstanding)
        return jsonify({
            "items": [o.to_dict() for o in bills],
            "count": len(bills),
            "total_due_cents": sum(o.balance_due_cents for o in bills),
        }), 200
    except BillingError as e:
        return error_response(e)
