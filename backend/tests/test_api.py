# Overview: Pytest coverage for the HTTP API, including the offline queue round trip.

"""
API Tests

Drives the till the way the frontend does: sign in, load the catalog,
build a cart and check out; then lose the connection, check out again,
and reconnect so the queued order syncs.
"""

import pytest

from conftest import get_auth_token, auth_headers, product_payload
from fastbill.extensions import db
from fastbill.models import Product

CUSTOMER = {"name": "Asha", "phone": "9000000001"}


@pytest.fixture
def headers(client, user_a):
    token = get_auth_token(client, user_a.username)
    assert token is not None
    return auth_headers(token)


@pytest.fixture
def product_id(client, headers):
    response = client.post('/api/products', json=product_payload(), headers=headers)
    assert response.status_code == 201
    return response.json["product"]["id"]


def stock_of(product_id):
    return db.session.get(Product, product_id).stock_qty


def load_catalog_and_add(client, headers, product_id, times=1):
    assert client.get('/api/billing/products', headers=headers).status_code == 200
    for _ in range(times):
        response = client.post('/api/billing/cart/items', json={"product_id": product_id}, headers=headers)
        assert response.status_code == 200
    return response


class TestAuthRoutes:

    def test_protected_route_requires_token(self, client):
        assert client.get('/api/billing/cart').status_code == 401
        assert client.get('/api/billing/cart', headers=auth_headers("bogus")).status_code == 401

    def test_bad_credentials(self, client, user_a):
        response = client.post('/api/auth/login', json={"username": user_a.username, "password": "Wrong0ne!"})
        assert response.status_code == 401

    def test_login_opens_and_logout_closes_terminal(self, client, user_a, registry, headers):
        assert registry.get(user_a.id) is not None

        me = client.get('/api/auth/me', headers=headers)
        assert me.json["user"]["username"] == user_a.username

        assert client.post('/api/auth/logout', headers=headers).status_code == 200
        assert registry.get(user_a.id) is None
        assert client.get('/api/auth/me', headers=headers).status_code == 401


class TestProductRoutes:

    def test_invalid_product_lists_all_errors(self, client, headers):
        response = client.post('/api/products', json=product_payload(retail_price_cents=1100, min_stock=30),
                               headers=headers)
        assert response.status_code == 400
        assert len(response.json["details"]["errors"]) == 2

    def test_stock_adjustment(self, client, headers, product_id):
        response = client.post(f'/api/products/{product_id}/stock', json={"delta": 5}, headers=headers)
        assert response.status_code == 200
        assert response.json["product"]["stock_qty"] == 25

    def test_tenant_isolation(self, client, headers, product_id, user_b):
        other = auth_headers(get_auth_token(client, user_b.username))
        assert client.get(f'/api/products/{product_id}', headers=other).status_code == 404
        assert client.get('/api/products', headers=other).json["count"] == 0


class TestCheckoutRoutes:

    def test_online_checkout(self, client, headers, product_id):
        cart = load_catalog_and_add(client, headers, product_id, times=2)
        assert cart.json["total_retail_cents"] == 1800

        response = client.post('/api/billing/checkout', json={"customer": CUSTOMER}, headers=headers)

        assert response.status_code == 201
        assert response.json["queued"] is False
        assert response.json["order"]["total_cents"] == 1800
        assert stock_of(product_id) == 18
        assert client.get('/api/billing/cart', headers=headers).json["items"] == []

    def test_cart_rejects_unknown_product(self, client, headers):
        response = client.post('/api/billing/cart/items', json={"product_id": 999}, headers=headers)
        assert response.status_code == 404

    def test_checkout_requires_customer(self, client, headers, product_id):
        load_catalog_and_add(client, headers, product_id)
        response = client.post('/api/billing/checkout', json={"customer": {"name": "Asha"}}, headers=headers)
        assert response.status_code == 400

    def test_insufficient_stock_is_409(self, client, headers, product_id):
        load_catalog_and_add(client, headers, product_id)
        client.post(f'/api/products/{product_id}/stock', json={"delta": -20}, headers=headers)

        response = client.post('/api/billing/checkout', json={"customer": CUSTOMER}, headers=headers)

        assert response.status_code == 409
        assert response.json["details"]["stock_qty"] == 0

    def test_offline_order_syncs_on_reconnect(self, client, headers, product_id):
        load_catalog_and_add(client, headers, product_id)
        assert client.post('/api/billing/connectivity', json={"online": False}, headers=headers).json["online"] is False

        # Offline: cart reads come from the cached catalog
        client.post('/api/billing/cart/items', json={"product_id": product_id}, headers=headers)
        response = client.post('/api/billing/checkout', json={"customer": CUSTOMER}, headers=headers)

        assert response.status_code == 202
        assert response.json["queued"] is True
        assert response.json["sync_status"] == "pending"
        local_id = response.json["local_id"]
        assert stock_of(product_id) == 20

        orders = client.get('/api/orders', headers=headers).json["items"]
        assert [(o["local_id"], o["is_offline"]) for o in orders] == [(local_id, True)]

        cancel = client.post(f'/api/orders/{local_id}/cancel', headers=headers)
        assert cancel.status_code == 409
        assert client.post('/api/billing/sync', headers=headers).status_code == 409

        reconnect = client.post('/api/billing/connectivity', json={"online": True}, headers=headers)

        assert reconnect.json["status"]["status"] == "synced"
        assert reconnect.json["status"]["pending_count"] == 0
        assert stock_of(product_id) == 18
        orders = client.get('/api/orders', headers=headers).json["items"]
        assert len(orders) == 1
        assert orders[0]["is_offline"] is False
        assert orders[0]["created_offline"] is True

    def test_offline_order_kept_when_local_storage_is_full(self, client, headers, product_id, registry, user_a):
        load_catalog_and_add(client, headers, product_id)
        client.post('/api/billing/connectivity', json={"online": False}, headers=headers)
        storage = registry.storage
        storage.quota_bytes = storage.used_bytes() + 20

        response = client.post('/api/billing/checkout', json={"customer": CUSTOMER}, headers=headers)

        assert response.status_code == 202
        assert response.json["queued"] is True
        assert response.json["persisted"] is False
        assert "Please sync or clear space" in response.json["warning"]
        terminal = registry.get(user_a.id)
        assert [o.local_id for o in terminal.pending.list()] == [response.json["local_id"]]
        assert client.get('/api/billing/cart', headers=headers).json["items"] == []

        reconnect = client.post('/api/billing/connectivity', json={"online": True}, headers=headers)

        assert reconnect.json["status"]["status"] == "synced"
        assert stock_of(product_id) == 19

    def test_manual_sync_reports_failures(self, client, headers, product_id):
        load_catalog_and_add(client, headers, product_id)
        client.post('/api/billing/connectivity', json={"online": False}, headers=headers)
        local_id = client.post('/api/billing/checkout', json={"customer": CUSTOMER}, headers=headers).json["local_id"]

        # The product disappears before the queue drains
        db.session.query(Product).filter_by(id=product_id).delete()
        db.session.commit()
        client.post('/api/billing/connectivity', json={"online": True}, headers=headers)

        response = client.post('/api/billing/sync', headers=headers)
        assert response.status_code == 200
        assert response.json["report"]["failed"] == [local_id]
        assert response.json["status"]["status"] == "error"
        assert response.json["status"]["pending"][0]["attempts"] == 2

        health = client.get('/health')
        assert health.json["checks"]["sync"]["status"] == "degraded"

        discard = client.delete(f'/api/billing/sync/{local_id}', headers=headers)
        assert discard.status_code == 200
        assert discard.json["status"]["status"] == "synced"

    def test_cancel_restores_stock(self, client, headers, product_id):
        load_catalog_and_add(client, headers, product_id, times=3)
        order_id = client.post('/api/billing/checkout', json={"customer": CUSTOMER}, headers=headers).json["order"]["id"]

        response = client.post(f'/api/orders/{order_id}/cancel', headers=headers)

        assert response.status_code == 200
        assert response.json["order"]["status"] == "cancelled"
        assert stock_of(product_id) == 20
        assert client.post(f'/api/orders/{order_id}/cancel', headers=headers).status_code == 409


class TestLedgerRoutes:

    def test_wholesale_bill_and_installment(self, client, headers, product_id):
        customer = client.post('/api/customers', json={"name": "Ravi Traders", "phone": "9876543210"},
                               headers=headers)
        assert customer.status_code == 201
        customer_id = customer.json["customer"]["id"]
        duplicate = client.post('/api/customers', json={"name": "Ravi", "phone": "9876543210"}, headers=headers)
        assert duplicate.status_code == 409

        load_catalog_and_add(client, headers, product_id, times=2)
        checkout = client.post('/api/billing/checkout', json={
            "customer": {"name": "Ravi Traders", "phone": "9876543210"},
            "mode": "wholesale",
            "customer_id": customer_id,
        }, headers=headers)
        assert checkout.status_code == 201
        order_id = checkout.json["order"]["id"]
        assert checkout.json["order"]["balance_due_cents"] == 1400

        paid = client.post(f'/api/orders/{order_id}/payments', json={"amount_cents": 400}, headers=headers)
        assert paid.status_code == 201
        assert paid.json["order"]["payment_status"] == "partial"

        over = client.post(f'/api/orders/{order_id}/payments', json={"amount_cents": 5000}, headers=headers)
        assert over.status_code == 400

        bills = client.get(f'/api/customers/{customer_id}/bills?outstanding=1', headers=headers)
        assert bills.json["total_due_cents"] == 1000


class TestSystemRoutes:

    def test_dashboard(self, client, headers, product_id):
        load_catalog_and_add(client, headers, product_id)
        client.post('/api/billing/checkout', json={"customer": CUSTOMER}, headers=headers)

        response = client.get('/api/reports/dashboard', headers=headers)

        assert response.status_code == 200
        assert response.json["sales"]["today_sales_cents"] == 900
        assert response.json["top_products"][0]["product_id"] == product_id

    def test_dashboard_bad_reference_time(self, client, headers):
        assert client.get('/api/reports/dashboard?now=yesterday', headers=headers).status_code == 400

    def test_subscription(self, client, headers, product_id):
        response = client.get('/api/subscription', headers=headers)
        assert response.json["usage"]["products"] == 1
        assert response.json["limits"]["max_products"] == 100

    def test_health(self, client, user_a):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.json["status"] == "healthy"
        assert response.json["checks"]["database"]["details"]["users"] == 1
