# Overview: Pytest coverage for dashboard aggregates over a fixed reference time.

from datetime import datetime, timedelta

import pytest

from fastbill.models import Order, OrderLine
from fastbill.services import reporting_service

NOW = datetime(2026, 10, 19, 15, 0, 0)


@pytest.fixture
def add_order(db_session, user_a):
    def _add(created_at, lines, *, status="pending", phone="9000000001"):
        order = Order(
            tenant_id=user_a.id,
            local_id=str(int(created_at.timestamp() * 1000)),
            customer_name="Walk-in",
            customer_phone=phone,
            total_cents=sum(qty * price for _, _, qty, price in lines),
            status=status,
            created_at=created_at,
        )
        for position, (product_id, name, qty, price) in enumerate(lines):
            order.lines.append(OrderLine(position=position, product_id=product_id, name=name,
                                         quantity=qty, unit_price_cents=price))
        db_session.add(order)
        db_session.commit()
        return order
    return _add


class TestSalesTotals:

    def test_rolling_windows(self, user_a, add_order):
        add_order(NOW.replace(hour=10), [(1, "Pen", 5, 100)])
        add_order(NOW - timedelta(days=3), [(2, "Ink", 1, 300)])
        add_order(NOW - timedelta(days=20), [(1, "Pen", 2, 100)])
        add_order(NOW - timedelta(days=40), [(1, "Pen", 10, 100)])
        add_order(NOW.replace(hour=9), [(2, "Ink", 7, 100)], status="cancelled")

        totals = reporting_service.sales_totals(reporting_service.recent_orders(user_a.id), NOW)

        assert totals["today_sales_cents"] == 500
        assert totals["week_sales_cents"] == 800
        assert totals["month_sales_cents"] == 1000
        assert totals["total_orders"] == 4
        assert totals["cancelled_orders"] == 1

    def test_window_lower_bound_is_inclusive(self, user_a, add_order):
        add_order(datetime(2026, 10, 12, 0, 0, 0), [(1, "Pen", 1, 100)])
        add_order(datetime(2026, 10, 11, 23, 59, 59), [(1, "Pen", 1, 50)])

        totals = reporting_service.sales_totals(reporting_service.recent_orders(user_a.id), NOW)

        assert totals["week_sales_cents"] == 100
        assert totals["month_sales_cents"] == 150


class TestDailyMetrics:

    def test_today_only(self, user_a, add_order):
        add_order(NOW.replace(hour=8), [(1, "Pen", 3, 100)], phone="9000000001")
        add_order(NOW.replace(hour=9), [(1, "Pen", 1, 100)], phone="9000000001")
        add_order(NOW.replace(hour=10), [(2, "Ink", 2, 100)], phone="9000000002", status="cancelled")
        add_order(NOW - timedelta(days=1), [(1, "Pen", 9, 100)], phone="9000000003")

        daily = reporting_service.daily_metrics(reporting_service.recent_orders(user_a.id), NOW)

        assert daily["average_order_value_cents"] == 200
        assert daily["unique_customers"] == 2
        assert daily["cancelled_orders"] == 1
        assert daily["return_rate"] == 33.3

    def test_no_orders_today(self, user_a):
        daily = reporting_service.daily_metrics([], NOW)
        assert daily == {
            "average_order_value_cents": 0,
            "unique_customers": 0,
            "cancelled_orders": 0,
            "return_rate": 0.0,
        }


def test_top_products_by_revenue(user_a, add_order):
    add_order(NOW, [(1, "Pen", 10, 100), (2, "Ink", 1, 500)])
    add_order(NOW, [(2, "Ink", 2, 500), (3, "Pad", 4, 100)])
    add_order(NOW, [(3, "Pad", 50, 100)], status="cancelled")

    top = reporting_service.top_products(reporting_service.recent_orders(user_a.id), limit=2)

    assert [(t["product_id"], t["quantity"], t["revenue_cents"]) for t in top] == [(2, 3, 1500), (1, 10, 1000)]
    assert top[0]["orders"] == 2


def test_dashboard_scans_only_recent_orders(user_a, add_order, make_product):
    for hour in range(1, 6):
        add_order(NOW.replace(hour=hour), [(1, "Pen", 1, 100)])
    make_product(user_a.id, "Glue", stock_qty=1, min_stock=3)

    data = reporting_service.dashboard(user_a.id, now=NOW, order_limit=3)

    assert data["scanned_orders"] == 3
    assert data["sales"]["today_sales_cents"] == 300
    assert [p["name"] for p in data["low_stock"]] == ["Glue"]
    assert data["generated_at"] == "2026-10-19T15:00:00Z"
