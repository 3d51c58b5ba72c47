# Overview: Service-layer operations for customer ledgers; validation, CRUD and bill lookup.

"""
Customer Service

MULTI-TENANT: every customer belongs to exactly one user. Phone numbers are
unique within that user's customers, not globally.

Running totals (spent / paid / due) are never written here; checkout,
payment recording and cancellation move them with atomic increments.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Customer, Order
from ..constants import PRICING_WHOLESALE
from ..errors import NotFoundError
from ..validation import ValidationError, ConflictError, validate_phone
from .concurrency import run_batch

CUSTOMER_MUTABLE_FIELDS = {"name", "phone", "email", "gst"}


def _clean_patch(data: dict | None, *, partial: bool) -> dict:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = sorted(k for k in data if k not in CUSTOMER_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")

    patch: dict = {}
    if not partial or "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Name and phone number are required")
        patch["name"] = name
    if not partial or "phone" in data:
        if not (data.get("phone") or "").strip():
            raise ValidationError("Name and phone number are required")
        patch["phone"] = validate_phone(data.get("phone"))
    for key in ("email", "gst"):
        if key in data:
            patch[key] = (data.get(key) or "").strip() or None
    return patch


def _phone_taken(tenant_id: int, phone: str, exclude_id: int | None = None) -> bool:
    query = db.session.query(Customer.id).filter(
        Customer.tenant_id == tenant_id, Customer.phone == phone
    )
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


def get_customer(tenant_id: int, customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id, tenant_id=tenant_id).first()
    if customer is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer


def create_customer(tenant_id: int, data: dict) -> Customer:
    """
    Create a ledger customer.

    Raises:
        ValidationError: name missing or phone not 10 digits
        ConflictError: phone already used by another of this user's customers
    """
    patch = _clean_patch(data, partial=False)

    def _op():
        if _phone_taken(tenant_id, patch["phone"]):
            raise ConflictError("Customer with this phone number already exists")
        customer = Customer(tenant_id=tenant_id, **patch)
        db.session.add(customer)
        return customer

    return run_batch(_op, description="customer creation")


def update_customer(tenant_id: int, customer_id: int, data: dict) -> Customer:
    patch = _clean_patch(data, partial=True)

    def _op():
        customer = get_customer(tenant_id, customer_id)
        if "phone" in patch and _phone_taken(tenant_id, patch["phone"], exclude_id=customer.id):
            raise ConflictError("Customer with this phone number already exists")
        for key, value in patch.items():
            setattr(customer, key, value)
        return customer

    return run_batch(_op, description=f"update of customer {customer_id}")


def delete_customer(tenant_id: int, customer_id: int) -> None:
    """Delete a customer. Their orders keep the customer snapshot but lose the ledger link."""
    def _op():
        customer = get_customer(tenant_id, customer_id)
        db.session.query(Order).filter(
            Order.tenant_id == tenant_id, Order.customer_id == customer.id
        ).update({Order.customer_id: None}, synchronize_session=False)
        db.session.delete(customer)

    run_batch(_op, description=f"deletion of customer {customer_id}")


def list_customers(tenant_id: int, search: str | None = None) -> list[Customer]:
    """Customers by name; search matches a name substring (case-insensitive) or a phone substring."""
    query = db.session.query(Customer).filter(Customer.tenant_id == tenant_id)
    term = (search or "").strip()
    if term:
        query = query.filter(
            db.or_(
                Customer.name.ilike(f"%{term}%"),
                Customer.phone.contains(term),
            )
        )
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def customer_bills(tenant_id: int, customer_id: int, *, outstanding_only: bool = False) -> list[Order]:
    """Wholesale orders billed to the customer, newest first."""
    customer = get_customer(tenant_id, customer_id)
    query = db.session.query(Order).filter(
        Order.tenant_id == tenant_id,
        Order.customer_id == customer.id,
        Order.pricing_mode == PRICING_WHOLESALE,
    )
    if outstanding_only:
        query = query.filter(Order.balance_due_cents > 0)
    return query.order_by(Order.created_at.desc(), Order.id.desc()).all()
