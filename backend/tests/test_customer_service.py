# Overview: Pytest coverage for customer ledger CRUD and bill listing.

import pytest

from fastbill.extensions import db
from fastbill.models import Order
from fastbill.records import CartItem, CustomerInfo
from fastbill.errors import NotFoundError
from fastbill.validation import ValidationError, ConflictError
from fastbill.services import customer_service
from fastbill.services.order_service import checkout
from fastbill.services.payment_service import record_payment


class TestCreateCustomer:

    def test_create(self, user_a):
        customer = customer_service.create_customer(
            user_a.id, {"name": " Ravi Traders ", "phone": "9876543210", "gst": "29ABCDE1234F1Z5"}
        )
        assert customer.name == "Ravi Traders"
        assert customer.total_due_cents == 0
        assert customer.gst == "29ABCDE1234F1Z5"

    def test_duplicate_phone_rejected(self, user_a):
        customer_service.create_customer(user_a.id, {"name": "Ravi", "phone": "9876543210"})
        with pytest.raises(ConflictError) as exc:
            customer_service.create_customer(user_a.id, {"name": "Other", "phone": "9876543210"})
        assert str(exc.value) == "Customer with this phone number already exists"

    def test_same_phone_in_another_tenant(self, user_a, user_b):
        customer_service.create_customer(user_a.id, {"name": "Ravi", "phone": "9876543210"})
        customer = customer_service.create_customer(user_b.id, {"name": "Ravi", "phone": "9876543210"})
        assert customer.tenant_id == user_b.id

    @pytest.mark.parametrize("data", [
        {"name": "", "phone": "9876543210"},
        {"name": "Ravi"},
        {"name": "Ravi", "phone": "12345"},
        {"name": "Ravi", "phone": "98765432ab"},
        {"name": "Ravi", "phone": "9876543210", "balance": 5},
    ])
    def test_invalid_input(self, user_a, data):
        with pytest.raises(ValidationError):
            customer_service.create_customer(user_a.id, data)


class TestUpdateAndDelete:

    def test_update_phone_conflict(self, user_a, customer_a):
        other = customer_service.create_customer(user_a.id, {"name": "Meena", "phone": "9123456780"})
        with pytest.raises(ConflictError):
            customer_service.update_customer(user_a.id, other.id, {"phone": customer_a.phone})

    def test_update_keeps_own_phone(self, user_a, customer_a):
        customer = customer_service.update_customer(
            user_a.id, customer_a.id, {"phone": customer_a.phone, "email": "ravi@example.com"}
        )
        assert customer.email == "ravi@example.com"

    def test_delete_detaches_orders(self, user_a, customer_a, make_product):
        crate = make_product(user_a.id, "Crate")
        result = checkout(user_a.id, [CartItem.from_product(crate.to_dict())],
                          CustomerInfo(name="Ravi", phone=customer_a.phone),
                          mode="wholesale", customer_id=customer_a.id)

        customer_service.delete_customer(user_a.id, customer_a.id)

        order = db.session.get(Order, result.order["id"])
        assert order.customer_id is None
        assert order.customer_phone == customer_a.phone
        with pytest.raises(NotFoundError):
            customer_service.get_customer(user_a.id, customer_a.id)


def test_search_by_name_or_phone(user_a):
    customer_service.create_customer(user_a.id, {"name": "Ravi Traders", "phone": "9876543210"})
    customer_service.create_customer(user_a.id, {"name": "Meena Stores", "phone": "9123456780"})

    assert [c.name for c in customer_service.list_customers(user_a.id, "ravi")] == ["Ravi Traders"]
    assert [c.name for c in customer_service.list_customers(user_a.id, "91234")] == ["Meena Stores"]
    assert len(customer_service.list_customers(user_a.id)) == 2


def test_outstanding_bills(user_a, customer_a, make_product):
    crate = make_product(user_a.id, "Crate", stock_qty=10, wholesale=80)
    info = CustomerInfo(name="Ravi", phone=customer_a.phone)
    first = checkout(user_a.id, [CartItem.from_product(crate.to_dict())], info,
                     mode="wholesale", customer_id=customer_a.id)
    second = checkout(user_a.id, [CartItem.from_product(crate.to_dict(), quantity=2)], info,
                      mode="wholesale", customer_id=customer_a.id)
    record_payment(user_a.id, first.order["id"], 80)

    all_bills = customer_service.customer_bills(user_a.id, customer_a.id)
    outstanding = customer_service.customer_bills(user_a.id, customer_a.id, outstanding_only=True)

    assert {o.id for o in all_bills} == {first.order["id"], second.order["id"]}
    assert [o.id for o in outstanding] == [second.order["id"]]
