# Overview: Till cart; quantities bounded by cached stock, mirrored to local storage.

"""
Cart

Every change is mirrored to local storage under currentCart:{tenant}. A
mirror that does not fit falls back in order:

1. the full cart
2. the cart without product images
3. the full cart again, after evicting the cached product image map
4. give up: persist() returns False and the cart stays in memory

The cart is never emptied because it could not be saved.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Callable, Optional

from ..errors import QuotaExceededError
from ..records import CartItem
from ..validation import ValidationError, validate_pricing_mode

logger = logging.getLogger(__name__)


def cart_key(tenant_id) -> str:
    return f"currentCart:{tenant_id}"


def image_cache_key(tenant_id) -> str:
    return f"productImages:{tenant_id}"


class Cart:
    def __init__(self, storage, tenant_id, stock_lookup: Optional[Callable[[int], Optional[int]]] = None):
        self.storage = storage
        self.tenant_id = tenant_id
        self.key = cart_key(tenant_id)
        self._stock_lookup = stock_lookup
        self._items: list[CartItem] = []
        self._lock = threading.RLock()
        self.last_persist_ok = True

    @property
    def items(self) -> list[CartItem]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _find(self, product_id: int) -> Optional[CartItem]:
        for item in self._items:
            if item.product_id == product_id:
                return item
        return None

    def _available(self, product_id: int, fallback: Optional[int] = None) -> Optional[int]:
        if self._stock_lookup is not None:
            stock = self._stock_lookup(product_id)
            if stock is not None:
                return stock
        return fallback

    def add(self, product: dict) -> CartItem:
        """Add one unit of a catalog product (a Product.to_dict() shaped dict)."""
        product_id = int(product["id"])
        stock = self._available(product_id, product.get("stock_qty"))
        if stock is not None and stock <= 0:
            raise ValidationError("Product is out of stock")

        with self._lock:
            existing = self._find(product_id)
            if existing is not None:
                if stock is not None and existing.quantity >= stock:
                    raise ValidationError("Cannot add more than available stock")
                existing.quantity += 1
                item = existing
            else:
                item = CartItem.from_product(product, quantity=1)
                self._items.append(item)
            self.persist()
            return item

    def remove_one(self, product_id: int) -> None:
        """Decrease by one; a line at quantity 1 is removed."""
        with self._lock:
            item = self._find(product_id)
            if item is None:
                return
            if item.quantity <= 1:
                self._items.remove(item)
            else:
                item.quantity -= 1
            self.persist()

    def remove(self, product_id: int) -> None:
        with self._lock:
            item = self._find(product_id)
            if item is None:
                return
            self._items.remove(item)
            self.persist()

    def set_quantity(self, product_id: int, quantity) -> CartItem:
        """
        Set a line's quantity. Non-numeric, zero or negative input and
        quantities above stock are rejected and the previous quantity kept.
        """
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise ValidationError("Quantity must be a whole number")
        if quantity <= 0:
            raise ValidationError("Quantity must be at least 1")

        with self._lock:
            item = self._find(product_id)
            if item is None:
                raise ValidationError("Product is not in the cart")
            stock = self._available(product_id)
            if stock is not None and quantity > stock:
                raise ValidationError("Cannot add more than available stock")
            item.quantity = quantity
            self.persist()
            return item

    def clear(self) -> None:
        with self._lock:
            self._items = []
            self.persist()

    def total(self, mode: str = "retail") -> int:
        mode = validate_pricing_mode(mode)
        with self._lock:
            return sum(item.unit_price(mode) * item.quantity for item in self._items)

    def _write(self, include_images: bool) -> None:
        payload = json.dumps([item.to_dict(include_image=include_images) for item in self._items])
        self.storage.set_item(self.key, payload)

    def persist(self) -> bool:
        """Mirror the cart to local storage. Returns False if every fallback failed."""
        with self._lock:
            if not self._items:
                self.storage.remove_item(self.key)
                self.last_persist_ok = True
                return True

            try:
                self._write(include_images=True)
                self.last_persist_ok = True
                return True
            except QuotaExceededError:
                pass

            try:
                self._write(include_images=False)
                logger.warning("Stored cart for tenant %s without images due to storage limits", self.tenant_id)
                self.last_persist_ok = True
                return True
            except QuotaExceededError:
                pass

            self.storage.remove_item(image_cache_key(self.tenant_id))
            try:
                self._write(include_images=True)
                logger.warning("Evicted cached product images to store cart for tenant %s", self.tenant_id)
                self.last_persist_ok = True
                return True
            except QuotaExceededError:
                logger.warning("Unable to save cart locally for tenant %s due to storage limits", self.tenant_id)
                self.last_persist_ok = False
                return False

    def recover(self) -> list[CartItem]:
        """Reload the persisted cart, replacing the in-memory one. An unreadable mirror is ignored."""
        raw = self.storage.get_item(self.key)
        items: list[CartItem] = []
        if raw:
            try:
                items = [CartItem.from_dict(entry) for entry in json.loads(raw)]
            except (KeyError, TypeError, ValueError):
                logger.warning("Error loading saved cart for tenant %s", self.tenant_id)
                items = []
        with self._lock:
            self._items = items
        return list(items)
