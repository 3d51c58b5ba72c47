from __future__ import annotations
from datetime import datetime
import re
from fastbill.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .constants import MAX_PRICE_CENTS, MAX_STOCK, MAX_PRODUCT_NAME_LENGTH, PRICING_MODES


PHONE_RE = re.compile(r"^\d{10}$")

PRICE_FIELDS = ("purchase_price_cents", "mrp_cents", "retail_price_cents", "wholesale_price_cents")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or [message]


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate phone)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be a whole number")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be a whole number")
        raise ValidationError(f"{col.key} must be an integer")

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(values: dict) -> None:
    """
    Cross-field product rules, checked against the merged (existing + patch)
    values. All violations are reported together.
    """
    errors: list[str] = []

    name = values.get("name")
    if not name or not str(name).strip():
        errors.append("Product name is required")
    elif len(name) > MAX_PRODUCT_NAME_LENGTH:
        errors.append(f"Product name must be less than {MAX_PRODUCT_NAME_LENGTH} characters")

    prices = {}
    for field in PRICE_FIELDS:
        value = values.get(field)
        if value is None:
            errors.append(f"{field} is required")
            continue
        if value < 0:
            errors.append(f"{field} cannot be negative")
        elif value > MAX_PRICE_CENTS:
            errors.append(f"{field} exceeds maximum allowed value")
        prices[field] = value

    if len(prices) == len(PRICE_FIELDS):
        purchase = prices["purchase_price_cents"]
        mrp = prices["mrp_cents"]
        retail = prices["retail_price_cents"]
        wholesale = prices["wholesale_price_cents"]
        if mrp < purchase:
            errors.append("MRP cannot be less than purchase price")
        if retail > mrp:
            errors.append("Retail price cannot be greater than MRP")
        if wholesale > mrp:
            errors.append("Wholesale price cannot be greater than MRP")
        elif wholesale > retail:
            errors.append("Wholesale price cannot be greater than retail price")

    stock_qty = values.get("stock_qty")
    min_stock = values.get("min_stock")
    if stock_qty is None:
        errors.append("stock_qty is required")
    elif stock_qty < 0:
        errors.append("stock_qty cannot be negative")
    elif stock_qty > MAX_STOCK:
        errors.append("stock_qty exceeds maximum allowed value")

    if min_stock is None:
        errors.append("min_stock is required")
    elif min_stock < 0:
        errors.append("min_stock cannot be negative")
    elif stock_qty is not None and min_stock > stock_qty:
        errors.append("min_stock cannot be greater than stock_qty")

    if errors:
        raise ValidationError(errors[0], errors=errors)


def validate_phone(phone: str | None) -> str:
    phone = (phone or "").strip()
    if not PHONE_RE.match(phone):
        raise ValidationError("Phone number must be 10 digits")
    return phone


def validate_customer_input(data: dict | None) -> dict:
    """Customer name and phone are required for every checkout."""
    data = data or {}
    name = (data.get("name") or "").strip()
    phone = (data.get("phone") or "").strip()
    if not name or not phone:
        raise ValidationError("Customer name and phone number are required")
    return {
        "name": name,
        "phone": phone,
        "email": (data.get("email") or "").strip() or None,
        "address": (data.get("address") or "").strip() or None,
    }


def validate_quantity(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        try:
            value = int(str(value).strip())
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number")
    if value <= 0:
        raise ValidationError("Quantity must be at least 1")
    return value


def validate_pricing_mode(mode: str | None) -> str:
    mode = (mode or PRICING_MODES[0]).lower()
    if mode not in PRICING_MODES:
        raise ValidationError(f"pricing mode must be one of: {', '.join(PRICING_MODES)}")
    return mode


def validate_payment_amount(amount: Any, balance_due_cents: int) -> int:
    """
    Payments are whole cents, strictly positive and never above the
    outstanding balance.
    """
    if isinstance(amount, bool):
        raise ValidationError("Please enter a valid payment amount")
    if isinstance(amount, float):
        raise ValidationError("Amount must be given in whole cents")
    try:
        amount = int(amount)
    except (TypeError, ValueError):
        raise ValidationError("Please enter a valid payment amount")
    if amount <= 0:
        raise ValidationError("Please enter a valid payment amount")
    if amount > balance_due_cents:
        raise ValidationError(
            f"Payment cannot exceed balance due ({balance_due_cents / 100:,.2f})"
        )
    return amount
