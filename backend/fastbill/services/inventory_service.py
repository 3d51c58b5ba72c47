# Overview: Service-layer operations for stock; validates and applies stock movements.

"""
Stock invariants & time semantics

Stock model:
- Product.stock_qty is a mutable counter, changed only through atomic
  UPDATE ... SET stock_qty = stock_qty + delta statements.
- Product.last_stock_change holds the most recent signed delta, its type
  and a timestamp, for later reconciliation.

Sale validation:
- A sale is rejected if any requested quantity exceeds the stock read at
  validation time. Validation is all-or-nothing: nothing is written unless
  every line passes.
- The read is not locked. Two tills selling the last unit at the same time
  can both pass validation and both decrement, leaving stock negative.

Cancellation:
- Stock is restored additively on top of the current value, not reset to
  the value at sale time.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..extensions import db
from ..models import Product
from ..errors import NotFoundError, InsufficientStockError
from ..validation import ValidationError
from ..constants import STOCK_CHANGE_SALE, STOCK_CHANGE_CANCELLED
from fastbill.time_utils import utcnow, to_utc_z
from .concurrency import run_batch, increment

logger = logging.getLogger(__name__)


def aggregate_quantities(items: Iterable) -> dict[int, int]:
    """Sum requested quantities per product id, keeping first-seen order."""
    totals: dict[int, int] = {}
    for item in items:
        totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
    return totals


def _names_by_product(items: Iterable) -> dict[int, str]:
    names: dict[int, str] = {}
    for item in items:
        names.setdefault(item.product_id, getattr(item, "name", None) or str(item.product_id))
    return names


def get_product(tenant_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if product is None:
        raise NotFoundError("Product not found", details={"product_id": product_id})
    return product


def apply_stock_delta(tenant_id: int, product_id: int, delta: int, change: dict) -> int:
    """
    Stage an atomic stock increment plus its audit entry in the current batch.

    Returns the number of rows matched (0 if the product vanished).
    """
    return (
        db.session.query(Product)
        .filter(Product.id == product_id, Product.tenant_id == tenant_id)
        .update(
            {
                Product.stock_qty: increment(Product.stock_qty, delta),
                Product.last_stock_change: change,
                Product.updated_at: db.func.now(),
            },
            synchronize_session=False,
        )
    )


def validate_stock(tenant_id: int, items: list) -> dict[int, Product]:
    """
    Read every referenced product and check requested quantities.

    Raises NotFoundError or InsufficientStockError on the first bad line;
    nothing is staged.
    """
    totals = aggregate_quantities(items)
    names = _names_by_product(items)

    products: dict[int, Product] = {}
    for product_id, qty in totals.items():
        product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
        if product is None:
            raise NotFoundError(
                f"Product {names[product_id]} not found",
                details={"product_id": product_id},
            )
        current = product.stock_qty or 0
        if current < qty:
            raise InsufficientStockError(
                f"Insufficient stock for {product.name}",
                details={
                    "product_id": product_id,
                    "product_name": product.name,
                    "requested_quantity": qty,
                    "stock_qty": current,
                },
            )
        products[product_id] = product
    return products


def stage_sale_decrements(tenant_id: int, items: list, *, order_ref: str | None = None) -> None:
    """Stage one SALE decrement per product; no validation read."""
    timestamp = to_utc_z(utcnow())
    for product_id, qty in aggregate_quantities(items).items():
        apply_stock_delta(
            tenant_id,
            product_id,
            -qty,
            {
                "type": STOCK_CHANGE_SALE,
                "quantity": -qty,
                "order_ref": order_ref,
                "timestamp": timestamp,
            },
        )


def reserve_stock(tenant_id: int, items: list, *, order=None, extra=None):
    """
    Validate then decrement stock for a cart, as a single batch.

    Args:
        tenant_id: owning user
        items: objects with product_id, quantity and name
        order: optional Order document committed in the same batch
        extra: optional callable staging more writes in the same batch
               (e.g. customer ledger increments)

    Returns:
        dict of product_id -> Product as read at validation time

    Raises:
        ValidationError: empty cart
        NotFoundError / InsufficientStockError: nothing written
        TransportError: batch rolled back, nothing written
    """
    if not items:
        raise ValidationError("Cart is empty")

    def _op():
        products = validate_stock(tenant_id, items)
        order_ref = None
        if order is not None:
            db.session.add(order)
            order_ref = order.local_id
        stage_sale_decrements(tenant_id, items, order_ref=order_ref)
        if extra is not None:
            extra()
        return products

    return run_batch(_op, description="stock reservation")


def stage_stock_restore(tenant_id: int, lines: list, *, order_id: int) -> list[dict]:
    """
    Stage the additive restore of each line's quantity for a cancellation.

    Current stock is re-read so the audit entry records what the restore
    was applied on top of. Lines whose product no longer exists are skipped.
    """
    restored = []
    timestamp = to_utc_z(utcnow())
    for product_id, qty in aggregate_quantities(lines).items():
        product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
        if product is None:
            logger.warning("Skipping stock restore for missing product %s (order %s)", product_id, order_id)
            continue
        previous = product.stock_qty or 0
        apply_stock_delta(
            tenant_id,
            product_id,
            qty,
            {
                "type": STOCK_CHANGE_CANCELLED,
                "quantity": qty,
                "previous_stock": previous,
                "new_stock": previous + qty,
                "order_id": order_id,
                "timestamp": timestamp,
            },
        )
        restored.append({"product_id": product_id, "quantity": qty, "previous_stock": previous})
    return restored


def low_stock_products(tenant_id: int) -> list[Product]:
    """Products at or below their minimum stock, lowest stock first."""
    return (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.archived.is_(False),
            Product.stock_qty <= Product.min_stock,
        )
        .order_by(Product.stock_qty.asc(), Product.id.asc())
        .all()
    )


def adjust_stock(tenant_id: int, product_id: int, delta: int, note: str | None = None) -> Product:
    """Manual stock correction (receiving goods, shrinkage)."""
    if delta == 0:
        raise ValidationError("Adjustment quantity must be non-zero")

    def _op():
        product = get_product(tenant_id, product_id)
        if (product.stock_qty or 0) + delta < 0:
            raise InsufficientStockError(
                f"Adjustment would make stock negative for {product.name}",
                details={"product_id": product_id, "stock_qty": product.stock_qty, "delta": delta},
            )
        apply_stock_delta(
            tenant_id,
            product_id,
            delta,
            {"type": "ADJUST", "quantity": delta, "note": note, "timestamp": to_utc_z(utcnow())},
        )

    run_batch(_op, description="stock adjustment")
    return get_product(tenant_id, product_id)
