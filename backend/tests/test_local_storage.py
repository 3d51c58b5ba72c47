# Overview: Pytest coverage for local storage quotas, the pending queue mirror and the cart mirror.

import json
import os

import pytest

from fastbill.errors import LocalStorageError, QuotaExceededError
from fastbill.records import CustomerInfo, LineItem, PendingOrder, new_local_id
from fastbill.validation import ValidationError
from fastbill.offline.storage import MemoryStorage, JsonFileStorage
from fastbill.offline.pending_store import PendingOrderStore, storage_key
from fastbill.offline.cart import Cart, cart_key, image_cache_key


def product(product_id=1, stock_qty=10, image=None):
    return {
        "id": product_id,
        "name": "Pen",
        "brand": "Acme",
        "category": "Stationery",
        "retail_price_cents": 100,
        "wholesale_price_cents": 80,
        "mrp_cents": 120,
        "stock_qty": stock_qty,
        "product_image": image,
    }


class TestMemoryStorage:

    def test_quota_counts_keys_and_values(self):
        storage = MemoryStorage(quota_bytes=10)
        storage.set_item("ab", "12345678")
        assert storage.used_bytes() == 10

        with pytest.raises(QuotaExceededError):
            storage.set_item("c", "1")

    def test_failed_write_keeps_previous_value(self):
        storage = MemoryStorage(quota_bytes=20)
        storage.set_item("k", "small")

        with pytest.raises(QuotaExceededError) as exc:
            storage.set_item("k", "x" * 50)

        assert storage.get_item("k") == "small"
        assert exc.value.details["key"] == "k"

    def test_overwrite_reuses_own_space(self):
        storage = MemoryStorage(quota_bytes=12)
        storage.set_item("k", "x" * 11)
        storage.set_item("k", "y" * 11)
        assert storage.get_item("k") == "y" * 11

    def test_values_must_be_strings(self):
        with pytest.raises(TypeError):
            MemoryStorage().set_item("k", {"a": 1})


class TestJsonFileStorage:

    def test_survives_restart(self, tmp_path):
        path = tmp_path / "till" / "local.json"
        JsonFileStorage(str(path)).set_item("pendingOrders:1", "[]")

        assert JsonFileStorage(str(path)).get_item("pendingOrders:1") == "[]"

    def test_remove_is_persisted(self, tmp_path):
        path = tmp_path / "local.json"
        storage = JsonFileStorage(str(path))
        storage.set_item("k", "v")
        storage.remove_item("k")

        assert JsonFileStorage(str(path)).get_item("k") is None

    def test_unreadable_file_starts_empty(self, tmp_path):
        path = tmp_path / "local.json"
        path.write_text("{not json", encoding="utf-8")

        storage = JsonFileStorage(str(path))

        assert storage.keys() == []

    def test_failed_write_leaves_memory_and_file_unchanged(self, tmp_path, monkeypatch):
        path = tmp_path / "local.json"
        storage = JsonFileStorage(str(path))
        storage.set_item("k", "old")

        def _disk_full(src, dst):
            raise OSError(28, "No space left on device")

        monkeypatch.setattr(os, "replace", _disk_full)
        with pytest.raises(LocalStorageError):
            storage.set_item("k", "new")
        with pytest.raises(LocalStorageError):
            storage.remove_item("k")
        monkeypatch.undo()

        assert storage.get_item("k") == "old"
        assert JsonFileStorage(str(path)).get_item("k") == "old"
        assert [p.name for p in tmp_path.iterdir()] == ["local.json"]


def order_with_long_address(local_id="1"):
    return PendingOrder(
        local_id=local_id,
        customer=CustomerInfo(name="Asha", phone="9000000001", email="asha@example.com", address="x" * 1500),
        items=[LineItem(product_id=1, name="Pen", quantity=1, unit_price_cents=100,
                        brand="Acme", category="Stationery")],
        total_cents=100,
        amount_paid_cents=100,
    )


class TestPendingStoreQuota:

    def test_full_queue_fits(self):
        storage = MemoryStorage()
        store = PendingOrderStore(storage, 7)
        store.add(order_with_long_address())

        assert store.degraded is False
        stored = json.loads(storage.get_item(storage_key(7)))
        assert stored[0]["customer"]["address"] == "x" * 1500

    def test_degrades_to_essential_fields(self):
        storage = MemoryStorage(quota_bytes=1200)
        store = PendingOrderStore(storage, 7)

        store.add(order_with_long_address())

        assert store.degraded is True
        stored = json.loads(storage.get_item(storage_key(7)))
        assert stored[0]["customer"] == {"name": "Asha", "phone": "9000000001", "email": None, "address": None}
        assert stored[0]["items"][0]["brand"] is None
        assert stored[0]["items"][0]["quantity"] == 1
        # Memory keeps the full record
        assert store.get("1").customer.address == "x" * 1500

    def test_nothing_fits(self):
        storage = MemoryStorage(quota_bytes=200)
        store = PendingOrderStore(storage, 7)

        with pytest.raises(QuotaExceededError) as exc:
            store.add(order_with_long_address())

        assert "Please sync or clear space" in exc.value.message
        assert len(store) == 1
        assert storage.get_item(storage_key(7)) is None

    def test_empty_queue_removes_key(self):
        storage = MemoryStorage()
        store = PendingOrderStore(storage, 7)
        store.add(order_with_long_address())
        store.remove("1")
        assert storage.get_item(storage_key(7)) is None

    def test_malformed_entries_skipped_on_load(self):
        storage = MemoryStorage()
        good = order_with_long_address("2").to_dict()
        storage.set_item(storage_key(7), json.dumps([{"customer": {}}, good]))

        store = PendingOrderStore(storage, 7)

        assert [o.local_id for o in store.load()] == ["2"]

    def test_local_ids_increase(self):
        ids = [int(new_local_id()) for _ in range(5)]
        assert ids == sorted(ids)
        assert len(set(ids)) == 5


class TestCartRules:

    def test_add_increments_existing_line(self):
        cart = Cart(MemoryStorage(), 7)
        cart.add(product())
        cart.add(product())

        assert len(cart) == 1
        assert cart.items[0].quantity == 2

    def test_out_of_stock(self):
        cart = Cart(MemoryStorage(), 7)
        with pytest.raises(ValidationError) as exc:
            cart.add(product(stock_qty=0))
        assert str(exc.value) == "Product is out of stock"

    def test_cannot_exceed_stock(self):
        cart = Cart(MemoryStorage(), 7)
        cart.add(product(stock_qty=1))
        with pytest.raises(ValidationError) as exc:
            cart.add(product(stock_qty=1))
        assert str(exc.value) == "Cannot add more than available stock"

    def test_stock_lookup_wins_over_product_dict(self):
        cart = Cart(MemoryStorage(), 7, stock_lookup=lambda product_id: 0)
        with pytest.raises(ValidationError):
            cart.add(product(stock_qty=50))

    @pytest.mark.parametrize("bad", ["abc", 0, -2, None])
    def test_invalid_quantity_keeps_previous(self, bad):
        cart = Cart(MemoryStorage(), 7)
        cart.add(product())
        cart.set_quantity(1, 3)

        with pytest.raises(ValidationError):
            cart.set_quantity(1, bad)
        assert cart.items[0].quantity == 3

    def test_quantity_above_cached_stock(self):
        cart = Cart(MemoryStorage(), 7, stock_lookup=lambda product_id: 4)
        cart.add(product())
        with pytest.raises(ValidationError):
            cart.set_quantity(1, 5)
        assert cart.set_quantity(1, 4).quantity == 4

    def test_remove_one_drops_line_at_one(self):
        cart = Cart(MemoryStorage(), 7)
        cart.add(product())
        cart.add(product())
        cart.remove_one(1)
        assert cart.items[0].quantity == 1
        cart.remove_one(1)
        assert len(cart) == 0

    def test_totals(self):
        cart = Cart(MemoryStorage(), 7)
        cart.add(product())
        cart.add(product())
        assert cart.total("retail") == 200
        assert cart.total("wholesale") == 160

    def test_recover_after_restart(self):
        storage = MemoryStorage()
        cart = Cart(storage, 7)
        cart.add(product())
        cart.add(product(product_id=2))

        restored = Cart(storage, 7).recover()

        assert [i.to_dict() for i in restored] == [i.to_dict() for i in cart.items]

    def test_clear_removes_mirror(self):
        storage = MemoryStorage()
        cart = Cart(storage, 7)
        cart.add(product())
        cart.clear()
        assert storage.get_item(cart_key(7)) is None


class TestCartQuota:

    def test_drops_images_first(self):
        storage = MemoryStorage(quota_bytes=600)
        cart = Cart(storage, 7)

        cart.add(product(image="data:image/png;base64," + "A" * 1000))

        assert cart.last_persist_ok is True
        stored = json.loads(storage.get_item(cart_key(7)))
        assert "product_image" not in stored[0]
        assert cart.items[0].product_image is not None

    def test_evicts_image_map_before_giving_up(self):
        storage = MemoryStorage(quota_bytes=1500)
        storage.set_item(image_cache_key(7), json.dumps({"1": "y" * 1380}))
        cart = Cart(storage, 7)

        cart.add(product(image="data:image/png;base64," + "A" * 1000))

        assert cart.last_persist_ok is True
        assert storage.get_item(image_cache_key(7)) is None
        stored = json.loads(storage.get_item(cart_key(7)))
        assert stored[0]["product_image"].startswith("data:image/png")

    def test_unsaveable_cart_stays_in_memory(self):
        storage = MemoryStorage(quota_bytes=100)
        cart = Cart(storage, 7)

        cart.add(product())

        assert cart.last_persist_ok is False
        assert cart.persist() is False
        assert len(cart) == 1
        assert storage.get_item(cart_key(7)) is None
