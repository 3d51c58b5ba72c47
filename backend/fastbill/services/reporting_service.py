# Overview: Service-layer operations for reporting; read-only dashboard aggregates.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Order
from ..constants import ORDER_STATUS_CANCELLED
from fastbill.time_utils import utcnow, to_utc_z, rolling_windows
from .inventory_service import low_stock_products


def recent_orders(tenant_id: int, limit: int = 100) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.tenant_id == tenant_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .limit(limit)
        .all()
    )


def sales_totals(orders: list[Order], now: datetime) -> dict:
    """
    Non-cancelled sales within each rolling window. An order counts toward
    every window whose lower bound it is at or after.
    """
    windows = rolling_windows(now)
    totals = {name: 0 for name in windows}
    for order in orders:
        if order.status == ORDER_STATUS_CANCELLED or order.created_at is None:
            continue
        for name, lower in windows.items():
            if order.created_at >= lower:
                totals[name] += order.total_cents
    return {
        "today_sales_cents": totals["today"],
        "week_sales_cents": totals["week"],
        "month_sales_cents": totals["month"],
        "total_orders": sum(1 for o in orders if o.status != ORDER_STATUS_CANCELLED),
        "cancelled_orders": sum(1 for o in orders if o.status == ORDER_STATUS_CANCELLED),
    }


def daily_metrics(orders: list[Order], now: datetime) -> dict:
    """Average order value, distinct customer phones and cancellation share for today."""
    today = rolling_windows(now)["today"]
    todays = [o for o in orders if o.created_at is not None and o.created_at >= today]
    completed = [o for o in todays if o.status != ORDER_STATUS_CANCELLED]
    cancelled = len(todays) - len(completed)

    revenue = sum(o.total_cents for o in completed)
    return {
        "average_order_value_cents": (revenue // len(completed)) if completed else 0,
        "unique_customers": len({o.customer_phone for o in todays if o.customer_phone}),
        "cancelled_orders": cancelled,
        "return_rate": round(cancelled * 100.0 / len(todays), 1) if todays else 0.0,
    }


def top_products(orders: list[Order], limit: int = 5) -> list[dict]:
    """Quantity and revenue per product id over non-cancelled orders, highest revenue first."""
    stats: dict[int, dict] = {}
    for order in orders:
        if order.status == ORDER_STATUS_CANCELLED:
            continue
        for line in order.lines:
            entry = stats.setdefault(
                line.product_id,
                {
                    "product_id": line.product_id,
                    "name": line.name,
                    "quantity": 0,
                    "revenue_cents": 0,
                    "orders": 0,
                },
            )
            entry["quantity"] += line.quantity
            entry["revenue_cents"] += line.line_total_cents
            entry["orders"] += 1
    ranked = sorted(stats.values(), key=lambda s: (-s["revenue_cents"], -s["quantity"], s["product_id"]))
    return ranked[:limit]


def dashboard(tenant_id: int, *, now: datetime | None = None, order_limit: int = 100, top_limit: int = 5) -> dict:
    """
    Recomputed on every call from raw rows; nothing is stored.

    Only the newest order_limit orders are scanned, so totals for busy
    tenants cover that window and no more.
    """
    now = now or utcnow()
    orders = recent_orders(tenant_id, order_limit)

    low_stock = [
        {
            "id": p.id,
            "name": p.name,
            "stock_qty": p.stock_qty,
            "min_stock": p.min_stock,
        }
        for p in low_stock_products(tenant_id)
    ]

    return {
        "generated_at": to_utc_z(now),
        "scanned_orders": len(orders),
        "sales": sales_totals(orders, now),
        "daily": daily_metrics(orders, now),
        "low_stock": low_stock,
        "top_products": top_products(orders, top_limit),
    }
