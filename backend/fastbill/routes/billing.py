# Overview: Flask API routes for the till; cart, checkout, sync and connectivity.

"""
Billing (point of sale) routes.

Every route works on the caller's Terminal (g.terminal). Catalog reads
fall back to the terminal's cached snapshot when the database cannot be
reached, and checkout queues the order locally in that case.
"""

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import SQLAlchemyError

from ..records import CustomerInfo
from ..services import order_service, products_service
from ..services.inventory_service import get_product
from ..errors import BillingError, error_response
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_terminal

billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


def _cart_payload(terminal) -> dict:
    cart = terminal.cart
    return {
        "items": [item.to_dict() for item in cart.items],
        "total_retail_cents": cart.total("retail"),
        "total_wholesale_cents": cart.total("wholesale"),
        "saved": cart.last_persist_ok,
    }


def _catalog_product(terminal, product_id: int) -> dict:
    if terminal.connectivity.is_online:
        try:
            return get_product(g.tenant_id, product_id).to_dict()
        except SQLAlchemyError:
            current_app.logger.warning("Catalog read failed; using cached product %s", product_id)
            terminal.connectivity.report(False)
    cached = terminal.cached_product(product_id)
    if cached is None:
        raise ValidationError("Product is not available offline")
    return cached


@billing_bp.get("/products")
@require_auth
@require_terminal
def billing_products():
    """Sellable catalog; refreshes the terminal's offline snapshot when online."""
    terminal = g.terminal
    if terminal.connectivity.is_online:
        try:
            products = products_service.list_products(
                g.tenant_id, limit=current_app.config["PRODUCT_PAGE_SIZE"]
            )
            items = [p.to_dict() for p in products]
            terminal.refresh_catalog(items)
            return jsonify({"items": items, "source": "database"}), 200
        except SQLAlchemyError:
            current_app.logger.warning("Catalog fetch failed for tenant %s; serving cache", g.tenant_id)
            terminal.connectivity.report(False)

    snapshot = terminal.catalog()
    if snapshot is None:
        return jsonify({"error": "Catalog unavailable offline"}), 503
    items = [terminal.cached_product(pid) for pid in snapshot]
    return jsonify({"items": items, "source": "cache"}), 200


@billing_bp.get("/cart")
@require_auth
@require_terminal
def get_cart():
    return jsonify(_cart_payload(g.terminal)), 200


@billing_bp.post("/cart/items")
@require_auth
@require_terminal
def add_cart_item():
    """Body: {"product_id": int}; adds one unit."""
    data = request.get_json(silent=True) or {}
    product_id = data.get("product_id")
    if isinstance(product_id, bool) or not isinstance(product_id, int):
        return jsonify({"error": "product_id required"}), 400
    try:
        g.terminal.cart.add(_catalog_product(g.terminal, product_id))
        return jsonify(_cart_payload(g.terminal)), 200
    except (ValidationError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.patch("/cart/items/<int:product_id>")
@require_auth
@require_terminal
def set_cart_quantity(product_id: int):
    """Body: {"quantity": int}"""
    data = request.get_json(silent=True) or {}
    try:
        g.terminal.cart.set_quantity(product_id, data.get("quantity"))
        return jsonify(_cart_payload(g.terminal)), 200
    except ValidationError as e:
        return error_response(e)


@billing_bp.post("/cart/items/<int:product_id>/decrement")
@require_auth
@require_terminal
def decrement_cart_item(product_id: int):
    g.terminal.cart.remove_one(product_id)
    return jsonify(_cart_payload(g.terminal)), 200


@billing_bp.delete("/cart/items/<int:product_id>")
@require_auth
@require_terminal
def remove_cart_item(product_id: int):
    g.terminal.cart.remove(product_id)
    return jsonify(_cart_payload(g.terminal)), 200


@billing_bp.delete("/cart")
@require_auth
@require_terminal
def clear_cart():
    g.terminal.cart.clear()
    return jsonify(_cart_payload(g.terminal)), 200


@billing_bp.post("/cart/recover")
@require_auth
@require_terminal
def recover_cart():
    g.terminal.cart.recover()
    return jsonify(_cart_payload(g.terminal)), 200


@billing_bp.post("/checkout")
@require_auth
@require_terminal
def checkout_route():
    """
    Body:
    - customer: {"name", "phone", "email"?, "address"?} (required)
    - mode: "retail" | "wholesale" (default retail)
    - amount_paid_cents: int (optional; retail defaults to the total)
    - customer_id: int (optional, wholesale only)

    201 when committed, 202 when queued for sync.
    """
    data = request.get_json(silent=True) or {}
    terminal = g.terminal
    try:
        result = order_service.checkout(
            g.tenant_id,
            terminal.cart.items,
            CustomerInfo.from_dict(data.get("customer") or {}),
            mode=data.get("mode") or "retail",
            amount_paid_cents=data.get("amount_paid_cents"),
            customer_id=data.get("customer_id"),
            terminal=terminal,
        )
        body = result.to_dict()
        body["sync_status"] = terminal.sync.status
        return jsonify(body), 202 if result.queued else 201
    except (ValidationError, ConflictError, BillingError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to complete checkout")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.get("/sync")
@require_auth
@require_terminal
def sync_status():
    return jsonify(g.terminal.status()), 200


@billing_bp.post("/sync")
@require_auth
@require_terminal
def sync_now():
    """Drain the pending queue now (the manual sync button)."""
    terminal = g.terminal
    if not terminal.connectivity.is_online:
        return jsonify({"error": "Offline; orders will sync when the connection returns",
                        "status": terminal.status()}), 409
    report = terminal.sync.drain()
    return jsonify({"report": report.to_dict(), "status": terminal.status()}), 200


@billing_bp.delete("/sync/<local_id>")
@require_auth
@require_terminal
def discard_pending(local_id: str):
    removed = g.terminal.discard_pending(local_id)
    if removed is None:
        return jsonify({"error": "Pending order not found"}), 404
    return jsonify({"discarded": removed.to_dict(), "status": g.terminal.status()}), 200


@billing_bp.post("/connectivity")
@require_auth
@require_terminal
def connectivity_route():
    """
    Body: {"online": bool} to report a transition, or {} to probe the
    database. A reconnect drains every open terminal's queue.
    """
    data = request.get_json(silent=True) or {}
    monitor = g.terminal.connectivity
    if "online" in data:
        monitor.report(bool(data["online"]))
    else:
        monitor.check()
    return jsonify({"online": monitor.is_online, "status": g.terminal.status()}), 200
