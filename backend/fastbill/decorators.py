# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .services import session_service

TERMINALS_EXTENSION = "fastbill.terminals"
AUTH_EVENTS_EXTENSION = "fastbill.auth_events"
CACHE_EXTENSION = "fastbill.cache"


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1]


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.tenant_id: The user's id; every query is scoped by it
    - g.session_context: The full SessionContext object

    Returns 401 if the Authorization header is missing, or the token is
    invalid, expired, revoked or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.tenant_id = context.tenant_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_terminal(f):
    """
    Attach the caller's till state as g.terminal.

    Must be applied after @require_auth. A valid session whose terminal
    is not open (for example after a restart) gets it reopened here.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "tenant_id"):
            return jsonify({"error": "Authentication required"}), 401
        registry = current_app.extensions[TERMINALS_EXTENSION]
        g.terminal = registry.get(g.tenant_id) or registry.open(g.tenant_id)
        return f(*args, **kwargs)

    return decorated_function
