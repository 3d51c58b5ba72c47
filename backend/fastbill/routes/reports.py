# Overview: Flask API routes for reports and subscription info; read-only JSON.

from flask import Blueprint, request, jsonify, current_app, g

from ..services import reporting_service, subscription_service
from ..errors import BillingError, error_response
from ..time_utils import parse_iso_datetime
from ..decorators import require_auth, CACHE_EXTENSION

reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.get("/reports/dashboard")
@require_auth
def dashboard():
    """
    Query params:
    - now: ISO-8601 override for the reference time (optional)
    - top: number of top products (default 5)
    """
    try:
        now = parse_iso_datetime(request.args.get("now"))
    except ValueError:
        return jsonify({"error": "now must be an ISO-8601 datetime"}), 400
    try:
        data = reporting_service.dashboard(
            g.tenant_id,
            now=now,
            order_limit=current_app.config["DASHBOARD_ORDER_LIMIT"],
            top_limit=request.args.get("top", default=5, type=int),
        )
        return jsonify(data), 200
    except Exception:
        current_app.logger.exception("Failed to build dashboard")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/subscription")
@require_auth
def subscription():
    try:
        summary = subscription_service.subscription_summary(
            g.tenant_id, cache=current_app.extensions[CACHE_EXTENSION]
        )
        return jsonify(summary), 200
    except BillingError as e:
        return error_response(e)
