"""
Order Service - checkout, offline replay and cancellation

WHY: A sale must never be lost because the database is unreachable.
When the till is online, stock validation, the stock decrement and the
order document go out as one batch. When it is offline (or the batch fails
in transit) the order is queued locally and replayed by the sync drain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..extensions import db
from ..models import Order, OrderLine, Customer, Product
from ..constants import (
    PRICING_WHOLESALE,
    ORDER_STATUS_CANCELLED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_UNPAID,
)
from ..errors import NotFoundError, TransportError, LocalStorageError
from ..records import CartItem, CustomerInfo, LineItem, PendingOrder, new_local_id
from ..validation import (
    ValidationError,
    ConflictError,
    validate_customer_input,
    validate_pricing_mode,
    validate_quantity,
)
from fastbill.time_utils import utcnow, to_utc_z
from .concurrency import run_batch, increment
from .inventory_service import reserve_stock, stage_sale_decrements, stage_stock_restore

logger = logging.getLogger(__name__)


@dataclass
class CheckoutResult:
    """Outcome of a checkout: either a committed order or a queued one."""
    local_id: str
    queued: bool
    order: dict
    persisted: bool = True
    warning: str | None = None

    def to_dict(self) -> dict:
        data = {
            "local_id": self.local_id,
            "queued": self.queued,
            "order": self.order,
            "persisted": self.persisted,
        }
        if self.warning:
            data["warning"] = self.warning
        return data


def calculate_total(items: list[CartItem], mode: str = "retail") -> int:
    """Sum of unit price x quantity, using retail or wholesale prices."""
    return sum(item.unit_price(mode) * item.quantity for item in items)


def payment_status_for(total_cents: int, amount_paid_cents: int) -> str:
    if amount_paid_cents >= total_cents:
        return PAYMENT_STATUS_PAID
    if amount_paid_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_UNPAID


def _validate_cart(cart: list[CartItem]) -> None:
    if not cart:
        raise ValidationError("Cart is empty")
    for item in cart:
        item.quantity = validate_quantity(item.quantity)


def _resolve_amount_paid(mode: str, total_cents: int, amount_paid_cents) -> int:
    # Retail sales are settled at the counter unless told otherwise;
    # wholesale sales start on credit.
    if amount_paid_cents is None:
        return 0 if mode == PRICING_WHOLESALE else total_cents
    if isinstance(amount_paid_cents, bool) or not isinstance(amount_paid_cents, int):
        raise ValidationError("amount_paid_cents must be an integer")
    if amount_paid_cents < 0:
        raise ValidationError("amount_paid_cents cannot be negative")
    if amount_paid_cents > total_cents:
        raise ValidationError("amount_paid_cents cannot exceed the order total")
    return amount_paid_cents


def build_pending_order(
    *,
    local_id: str,
    cart: list[CartItem],
    customer: CustomerInfo,
    mode: str,
    amount_paid_cents: int | None = None,
    customer_id: int | None = None,
) -> PendingOrder:
    """Validate checkout input and snapshot it as a pending order record."""
    mode = validate_pricing_mode(mode)
    _validate_cart(cart)
    info = validate_customer_input(customer.to_dict())
    if customer_id is not None and mode != PRICING_WHOLESALE:
        raise ValidationError("Customer accounts can only be billed in wholesale mode")

    total = calculate_total(cart, mode)
    paid = _resolve_amount_paid(mode, total, amount_paid_cents)

    return PendingOrder(
        local_id=local_id,
        customer=CustomerInfo(**info),
        items=[item.to_line_item(mode) for item in cart],
        total_cents=total,
        pricing_mode=mode,
        amount_paid_cents=paid,
        customer_id=customer_id,
        created_at=utcnow(),
        created_offline=False,
    )


def _order_from_pending(tenant_id: int, pending: PendingOrder) -> Order:
    order = Order(
        tenant_id=tenant_id,
        local_id=pending.local_id,
        pricing_mode=pending.pricing_mode,
        customer_name=pending.customer.name,
        customer_phone=pending.customer.phone,
        customer_email=pending.customer.email,
        customer_address=pending.customer.address,
        customer_id=pending.customer_id,
        total_cents=pending.total_cents,
        amount_paid_cents=pending.amount_paid_cents,
        balance_due_cents=pending.balance_due_cents,
        payment_status=payment_status_for(pending.total_cents, pending.amount_paid_cents),
        status=pending.status,
        created_offline=pending.created_offline,
        created_at=pending.created_at,
    )
    for position, item in enumerate(pending.items):
        order.lines.append(
            OrderLine(
                position=position,
                product_id=item.product_id,
                name=item.name,
                quantity=item.quantity,
                unit_price_cents=item.unit_price_cents,
                brand=item.brand,
                category=item.category,
            )
        )
    return order


def _stage_customer_charge(tenant_id: int, pending: PendingOrder) -> int:
    if pending.customer_id is None:
        return 0
    return (
        db.session.query(Customer)
        .filter(Customer.id == pending.customer_id, Customer.tenant_id == tenant_id)
        .update(
            {
                Customer.total_spent_cents: increment(Customer.total_spent_cents, pending.total_cents),
                Customer.total_paid_cents: increment(Customer.total_paid_cents, pending.amount_paid_cents),
                Customer.total_due_cents: increment(Customer.total_due_cents, pending.balance_due_cents),
                Customer.updated_at: db.func.now(),
            },
            synchronize_session=False,
        )
    )


def _require_customer(tenant_id: int, customer_id: int | None) -> None:
    if customer_id is None:
        return
    exists = db.session.query(Customer.id).filter_by(id=customer_id, tenant_id=tenant_id).first()
    if exists is None:
        raise NotFoundError("Customer not found", details={"customer_id": customer_id})


def place_order(tenant_id: int, pending: PendingOrder) -> Order:
    """
    Online checkout: validate stock, decrement it and create the order in
    one batch. Raises NotFoundError / InsufficientStockError / TransportError.
    """
    order = _order_from_pending(tenant_id, pending)

    def _ledger():
        _require_customer(tenant_id, pending.customer_id)
        _stage_customer_charge(tenant_id, pending)

    reserve_stock(tenant_id, pending.items, order=order, extra=_ledger)
    return order


def checkout(
    tenant_id: int,
    cart: list[CartItem],
    customer: CustomerInfo,
    *,
    mode: str = "retail",
    amount_paid_cents: int | None = None,
    customer_id: int | None = None,
    terminal=None,
) -> CheckoutResult:
    """
    Complete a sale.

    With no terminal the sale must commit remotely or raise. With a
    terminal, an offline till (or a batch that fails in transit) queues the
    order locally instead; validation and stock errors are never queued.
    """
    local_id = new_local_id()
    pending = build_pending_order(
        local_id=local_id,
        cart=cart,
        customer=customer,
        mode=mode,
        amount_paid_cents=amount_paid_cents,
        customer_id=customer_id,
    )

    if terminal is None or terminal.connectivity.is_online:
        try:
            order = place_order(tenant_id, pending)
        except TransportError:
            if terminal is None:
                raise
            logger.warning("Checkout %s could not reach the database; queuing offline", local_id)
            terminal.connectivity.report(False)
        else:
            if terminal is not None:
                terminal.on_order_committed(pending)
            return CheckoutResult(local_id=local_id, queued=False, order=order.to_dict())

    pending.created_offline = True
    try:
        terminal.queue_offline_order(pending)
    except LocalStorageError as exc:
        # Queued in memory; it still syncs unless the till restarts first
        logger.warning("Order %s queued but not saved locally: %s", local_id, exc.message)
        return CheckoutResult(
            local_id=local_id,
            queued=True,
            order=pending_to_dict(pending),
            persisted=False,
            warning=exc.message,
        )
    return CheckoutResult(local_id=local_id, queued=True, order=pending_to_dict(pending))


def commit_pending_order(tenant_id: int, pending: PendingOrder) -> Order:
    """
    Replay a queued order: order document (server synced_at) plus the stock
    decrements, as one batch. Stock is not re-validated; the sale already
    happened at the till. A product or customer that no longer exists fails
    the whole batch, and the order stays queued.
    """
    order = _order_from_pending(tenant_id, pending)

    def _op():
        db.session.add(order)
        db.session.flush()
        for item in pending.items:
            _ensure_product_row(tenant_id, item)
        stage_sale_decrements(tenant_id, pending.items, order_ref=pending.local_id)
        if pending.customer_id is not None and _stage_customer_charge(tenant_id, pending) == 0:
            raise NotFoundError("Customer not found", details={"customer_id": pending.customer_id})
        return order

    return run_batch(_op, description=f"pending order {pending.local_id}")


def _ensure_product_row(tenant_id: int, item: LineItem) -> None:
    exists = db.session.query(Product.id).filter_by(id=item.product_id, tenant_id=tenant_id).first()
    if exists is None:
        raise NotFoundError(f"Product {item.name} not found", details={"product_id": item.product_id})


def get_order(tenant_id: int, order_id: int) -> Order:
    order = db.session.query(Order).filter_by(id=order_id, tenant_id=tenant_id).first()
    if order is None:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def pending_to_dict(pending: PendingOrder) -> dict:
    data = pending.to_dict()
    data.update({
        "id": None,
        "created_at": to_utc_z(pending.created_at),
        "balance_due_cents": pending.balance_due_cents,
        "payment_status": payment_status_for(pending.total_cents, pending.amount_paid_cents),
        "is_offline": True,
    })
    return data


def list_orders(tenant_id: int, *, limit: int = 100, pending: list[PendingOrder] | None = None) -> list[dict]:
    """
    Newest-first order history: committed orders (bounded by limit) merged
    with orders still waiting in the local queue.
    """
    orders = (
        db.session.query(Order)
        .filter_by(tenant_id=tenant_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )
    rows = [o.to_dict() for o in orders]
    rows.extend(pending_to_dict(p) for p in pending or [])
    rows.sort(key=lambda row: row["created_at"] or "", reverse=True)
    return rows


def cancel_order(tenant_id: int, order_id, *, pending_store=None) -> Order:
    """
    Cancel a committed order and put its quantities back on the shelf.

    Refuses orders still sitting in the local queue (nothing was committed,
    so there is nothing to reverse) and orders that are already cancelled.
    """
    if pending_store is not None and pending_store.get(str(order_id)) is not None:
        raise ConflictError("Cannot cancel offline orders. Please sync first")

    try:
        order_id = int(order_id)
    except (TypeError, ValueError):
        raise NotFoundError("Order not found", details={"order_id": order_id})

    def _op():
        order = get_order(tenant_id, order_id)
        if order.status == ORDER_STATUS_CANCELLED:
            raise ConflictError("Order is already cancelled")
        if not order.lines:
            raise ValidationError("No items found in order")

        stage_stock_restore(tenant_id, order.lines, order_id=order.id)

        if order.customer_id is not None:
            db.session.query(Customer).filter(
                Customer.id == order.customer_id, Customer.tenant_id == tenant_id
            ).update(
                {
                    Customer.total_spent_cents: increment(Customer.total_spent_cents, -order.total_cents),
                    Customer.total_due_cents: increment(Customer.total_due_cents, -order.balance_due_cents),
                    Customer.updated_at: db.func.now(),
                },
                synchronize_session=False,
            )

        order.previous_status = order.status
        order.status = ORDER_STATUS_CANCELLED
        order.cancelled_at = utcnow()
        return order

    return run_batch(_op, description=f"cancellation of order {order_id}")
