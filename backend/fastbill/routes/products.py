# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

MULTI-TENANT: All product operations are scoped to the caller (g.tenant_id,
set by @require_auth).
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..services import products_service
from ..services.inventory_service import adjust_stock, get_product
from ..errors import BillingError, error_response
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, CACHE_EXTENSION

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - include_archived: "1" to include archived products
    - limit: int (optional)
    """
    include_archived = request.args.get("include_archived") in ("1", "true", "yes")
    limit = request.args.get("limit", type=int)
    products = products_service.list_products(g.tenant_id, limit=limit, include_archived=include_archived)
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        return jsonify({"product": get_product(g.tenant_id, product_id).to_dict()}), 200
    except BillingError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
def create_product():
    try:
        product = products_service.create_product(
            g.tenant_id,
            request.get_json(silent=True),
            cache=current_app.extensions[CACHE_EXTENSION],
        )
        return jsonify({"product": product.to_dict()}), 201
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@products_bp.put("/<int:product_id>")
@require_auth
def update_product(product_id: int):
    try:
        product = products_service.update_product(g.tenant_id, product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 200
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/archive")
@require_auth
def archive_product(product_id: int):
    """Body: {"archived": true|false}; defaults to true."""
    data = request.get_json(silent=True) or {}
    try:
        product = products_service.set_archived(g.tenant_id, product_id, bool(data.get("archived", True)))
        return jsonify({"product": product.to_dict()}), 200
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to archive product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("/<int:product_id>/stock")
@require_auth
def adjust_product_stock(product_id: int):
    """Body: {"delta": int, "note": str}"""
    data = request.get_json(silent=True) or {}
    delta = data.get("delta")
    if isinstance(delta, bool) or not isinstance(delta, int):
        return jsonify({"error": "delta must be an integer"}), 400
    try:
        product = adjust_stock(g.tenant_id, product_id, delta, note=data.get("note"))
        return jsonify({"product": product.to_dict()}), 200
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product(product_id: int):
    try:
        products_service.delete_product(g.tenant_id, product_id)
        return jsonify({"deleted": True, "id": product_id}), 200
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
