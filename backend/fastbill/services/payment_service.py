# Overview: Service-layer operations for order payments; keeps order balances and customer ledgers in step.

"""
Payment Recording Service

WHY: Wholesale orders are often settled in installments. Each installment
reduces the order's balance due and, when the order is linked to a ledger
customer, the customer's running totals.

DESIGN PRINCIPLES:
- Amounts are whole cents, strictly positive, never above the balance due
- One batch per payment: order balance, payment row and customer totals
  commit together or not at all
- Customer totals move with atomic increments only
- Cancelled orders take no payments
"""

from __future__ import annotations

from ..extensions import db
from ..models import Customer, OrderPayment
from ..constants import ORDER_STATUS_CANCELLED
from ..validation import ConflictError, validate_payment_amount
from fastbill.time_utils import utcnow
from .concurrency import run_batch, increment
from .order_service import get_order, payment_status_for


def record_payment(tenant_id: int, order_id: int, amount_cents, notes: str | None = None):
    """
    Record a payment against an order.

    Args:
        tenant_id: owning user
        order_id: committed order id
        amount_cents: payment amount in cents
        notes: optional free-text note kept with the payment

    Returns:
        The updated Order

    Raises:
        NotFoundError: order missing in this tenant
        ConflictError: order is cancelled
        ValidationError: amount not positive or above the balance due
        TransportError: batch rolled back
    """
    def _op():
        order = get_order(tenant_id, order_id)
        if order.status == ORDER_STATUS_CANCELLED:
            raise ConflictError("Cannot record a payment on a cancelled order")

        amount = validate_payment_amount(amount_cents, order.balance_due_cents)
        now = utcnow()

        order.amount_paid_cents = order.amount_paid_cents + amount
        order.balance_due_cents = order.total_cents - order.amount_paid_cents
        order.payment_status = payment_status_for(order.total_cents, order.amount_paid_cents)
        order.payments.append(
            OrderPayment(
                amount_cents=amount,
                balance_after_cents=order.balance_due_cents,
                notes=(notes or "").strip() or None,
                created_at=now,
            )
        )

        if order.customer_id is not None:
            db.session.query(Customer).filter(
                Customer.id == order.customer_id, Customer.tenant_id == tenant_id
            ).update(
                {
                    Customer.total_due_cents: increment(Customer.total_due_cents, -amount),
                    Customer.total_paid_cents: increment(Customer.total_paid_cents, amount),
                    Customer.last_payment_at: now,
                    Customer.updated_at: db.func.now(),
                },
                synchronize_session=False,
            )
        return order

    return run_batch(_op, description=f"payment for order {order_id}")


def payment_history(tenant_id: int, order_id: int) -> list[dict]:
    order = get_order(tenant_id, order_id)
    return [p.to_dict() for p in order.payments]
