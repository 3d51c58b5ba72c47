# backend/fastbill/routes/system.py
"""
System health endpoint.

Reports database reachability and the state of every open terminal
(pending orders, sync status) for deployment debugging.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import User, SessionToken
from ..decorators import TERMINALS_EXTENSION
from fastbill.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at > utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "active_sessions": active_sessions,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_sync_health() -> dict:
    """Degraded while any open terminal has orders that failed to sync."""
    registry = current_app.extensions[TERMINALS_EXTENSION]
    terminals = {}
    errors = 0
    for tenant_id in registry.tenant_ids():
        terminal = registry.get(tenant_id)
        if terminal is None:
            continue
        terminals[str(tenant_id)] = {
            "status": terminal.sync.status,
            "pending_count": len(terminal.pending),
        }
        if terminal.sync.status == "error":
            errors += 1

    return {
        "status": "degraded" if errors else "healthy",
        "online": registry.connectivity.is_online,
        "details": {"terminals": terminals},
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    sync_health = check_sync_health()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif sync_health["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200
    else:
        overall_status = "healthy"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sync": sync_health,
        }
    }

    return response, http_status
