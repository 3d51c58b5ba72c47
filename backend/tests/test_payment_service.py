# Overview: Pytest coverage for installment payments against wholesale bills.

import pytest

from fastbill.extensions import db
from fastbill.models import Customer
from fastbill.records import CartItem, CustomerInfo
from fastbill.errors import NotFoundError
from fastbill.validation import ValidationError, ConflictError
from fastbill.services.order_service import checkout, cancel_order
from fastbill.services.payment_service import record_payment, payment_history


@pytest.fixture
def wholesale_bill(user_a, make_product, customer_a):
    """A 1000-cent wholesale bill on account, nothing paid."""
    crate = make_product(user_a.id, "Crate", stock_qty=20, retail=250, wholesale=200, mrp=300, purchase=100)
    result = checkout(
        user_a.id,
        [CartItem.from_product(crate.to_dict(), quantity=5)],
        CustomerInfo(name=customer_a.name, phone=customer_a.phone),
        mode="wholesale",
        customer_id=customer_a.id,
    )
    return result.order["id"]


class TestRecordPayment:

    def test_installments_reduce_balance(self, user_a, customer_a, wholesale_bill):
        order = record_payment(user_a.id, wholesale_bill, 400, notes="  cash ")

        assert order.amount_paid_cents == 400
        assert order.balance_due_cents == 600
        assert order.payment_status == "partial"
        assert order.payments[0].notes == "cash"
        assert order.payments[0].balance_after_cents == 600

        order = record_payment(user_a.id, wholesale_bill, 600)

        assert order.balance_due_cents == 0
        assert order.payment_status == "paid"

        customer = db.session.get(Customer, customer_a.id)
        assert customer.total_spent_cents == 1000
        assert customer.total_paid_cents == 1000
        assert customer.total_due_cents == 0
        assert customer.last_payment_at is not None

    def test_history(self, user_a, wholesale_bill):
        record_payment(user_a.id, wholesale_bill, 100)
        record_payment(user_a.id, wholesale_bill, 250)

        history = payment_history(user_a.id, wholesale_bill)

        assert [p["amount_cents"] for p in history] == [100, 250]
        assert [p["balance_after_cents"] for p in history] == [900, 650]

    @pytest.mark.parametrize("amount", [0, -5, 1001, 10.5, "abc", None, True])
    def test_invalid_amounts(self, user_a, wholesale_bill, amount):
        with pytest.raises(ValidationError):
            record_payment(user_a.id, wholesale_bill, amount)
        assert payment_history(user_a.id, wholesale_bill) == []

    def test_paid_bill_takes_no_more(self, user_a, wholesale_bill):
        record_payment(user_a.id, wholesale_bill, 1000)
        with pytest.raises(ValidationError):
            record_payment(user_a.id, wholesale_bill, 1)

    def test_cancelled_order(self, user_a, wholesale_bill):
        cancel_order(user_a.id, wholesale_bill)
        with pytest.raises(ConflictError):
            record_payment(user_a.id, wholesale_bill, 100)

    def test_other_tenant(self, user_b, wholesale_bill):
        with pytest.raises(NotFoundError):
            record_payment(user_b.id, wholesale_bill, 100)
