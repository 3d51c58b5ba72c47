# backend/fastbill/errors.py
"""
Error taxonomy shared by services, the offline layer and routes.

Input problems are ValidationError / ConflictError (see validation.py).
Everything here carries a details dict so routes can return it verbatim.
"""

from flask import jsonify

from .validation import ValidationError, ConflictError


class BillingError(Exception):
    """Base class for billing operation errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class NotFoundError(BillingError):
    """Referenced product, order or customer does not exist for the tenant."""
    status_code = 404


class InsufficientStockError(BillingError):
    """Requested quantity exceeds the stock read at validation time."""
    status_code = 409


class TransportError(BillingError):
    """The database could not be reached or rejected a batch commit."""
    status_code = 503


class LocalStorageError(BillingError):
    """Local durable storage could not be written."""
    status_code = 507


class QuotaExceededError(LocalStorageError):
    """Local durable storage is full."""


def error_response(exc: Exception):
    """(JSON body, HTTP status) for an expected service-layer failure."""
    if isinstance(exc, BillingError):
        return jsonify(exc.to_dict()), exc.status_code
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc), "details": {"errors": exc.errors}}), 400
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc), "details": {}}), 409
    return jsonify({"error": str(exc), "details": {}}), 400
