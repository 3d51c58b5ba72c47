# backend/fastbill/services/products_service.py
"""
Products Service

MULTI-TENANT: All product operations are scoped to the owning user.
- create_product is gated by the user's subscription tier
- the user's product_count moves with atomic increments in the same
  batch as the insert / delete
- stock_qty is writable here only as an absolute value set by the owner;
  sales and cancellations go through inventory_service
"""
from __future__ import annotations

from ..extensions import db
from ..models import Product, User
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
    enforce_rules_product,
)
from .concurrency import run_batch, increment
from .inventory_service import get_product
from .subscription_service import require_product_capacity

PRODUCT_MUTABLE_FIELDS = {
    "name",
    "description",
    "brand",
    "category",
    "purchase_price_cents",
    "mrp_cents",
    "retail_price_cents",
    "wholesale_price_cents",
    "stock_qty",
    "min_stock",
    "archived",
    "product_image",
}

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS,
    required_on_create={
        "name",
        "purchase_price_cents",
        "mrp_cents",
        "retail_price_cents",
        "wholesale_price_cents",
        "stock_qty",
        "min_stock",
    },
)

RULE_FIELDS = (
    "name",
    "purchase_price_cents",
    "mrp_cents",
    "retail_price_cents",
    "wholesale_price_cents",
    "stock_qty",
    "min_stock",
)


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _merged_rule_values(product: Product | None, patch: dict) -> dict:
    values = {}
    for field in RULE_FIELDS:
        if field in patch:
            values[field] = patch[field]
        elif product is not None:
            values[field] = getattr(product, field)
        else:
            values[field] = None
    return values


def list_products(tenant_id: int, *, limit: int | None = None, include_archived: bool = False) -> list[Product]:
    """Catalog by name; archived products are hidden unless asked for."""
    query = db.session.query(Product).filter(Product.tenant_id == tenant_id)
    if not include_archived:
        query = query.filter(Product.archived.is_(False))
    query = query.order_by(Product.name.asc(), Product.id.asc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def create_product(tenant_id: int, payload: dict, *, cache=None) -> Product:
    """
    Create a product from raw JSON input.

    Raises:
        ValidationError: payload shape or pricing / stock rules
        ConflictError: tier product limit reached
    """
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(_merged_rule_values(None, patch))
    require_product_capacity(tenant_id, cache)

    def _op():
        p = Product(tenant_id=tenant_id)
        apply_product_patch(p, patch)
        db.session.add(p)
        db.session.query(User).filter(User.id == tenant_id).update(
            {User.product_count: increment(User.product_count, 1)},
            synchronize_session=False,
        )
        return p

    return run_batch(_op, description="product creation")


def update_product(tenant_id: int, product_id: int, payload: dict) -> Product:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    if not patch:
        raise ValidationError("No fields to update")

    def _op():
        p = get_product(tenant_id, product_id)
        enforce_rules_product(_merged_rule_values(p, patch))
        apply_product_patch(p, patch)
        return p

    return run_batch(_op, description=f"update of product {product_id}")


def set_archived(tenant_id: int, product_id: int, archived: bool = True) -> Product:
    def _op():
        p = get_product(tenant_id, product_id)
        p.archived = bool(archived)
        return p

    return run_batch(_op, description=f"archive toggle of product {product_id}")


def delete_product(tenant_id: int, product_id: int) -> None:
    """
    Delete a product. Past order lines keep their snapshot; pending orders
    that still reference it will fail to sync until discarded.
    """
    def _op():
        p = get_product(tenant_id, product_id)
        db.session.delete(p)
        db.session.query(User).filter(User.id == tenant_id, User.product_count > 0).update(
            {User.product_count: increment(User.product_count, -1)},
            synchronize_session=False,
        )

    run_batch(_op, description=f"deletion of product {product_id}")
