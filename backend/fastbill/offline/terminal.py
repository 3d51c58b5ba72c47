# Overview: Per-user till state (pending queue, cart, sync, catalog snapshot) and its registry.

"""
Terminal

One Terminal per signed-in user. All terminals share the app's local
storage (keys carry the tenant id), its connectivity monitor and its
TTL cache.

The catalog snapshot is what an offline checkout validates against. It
lives in the TTL cache; once it expires an offline sale is queued without
a stock check.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Optional

from ..errors import NotFoundError, InsufficientStockError, QuotaExceededError
from ..records import PendingOrder
from ..services.inventory_service import aggregate_quantities
from ..services.order_service import commit_pending_order
from ..services.auth_service import SIGNED_IN, SIGNED_OUT
from .cart import Cart, image_cache_key
from .pending_store import PendingOrderStore
from .sync import SyncCoordinator

logger = logging.getLogger(__name__)


def catalog_key(tenant_id) -> str:
    return f"catalog:{tenant_id}"


class Terminal:
    def __init__(self, tenant_id: int, storage, connectivity, cache, commit=None):
        self.tenant_id = tenant_id
        self.storage = storage
        self.connectivity = connectivity
        self.cache = cache
        self.pending = PendingOrderStore(storage, tenant_id)
        self.cart = Cart(storage, tenant_id, stock_lookup=self.cached_stock)
        self.sync = SyncCoordinator(
            self.pending,
            commit or (lambda order: commit_pending_order(self.tenant_id, order)),
        )
        self._catalog_lock = threading.Lock()
        self._unsubscribe = None

    def start(self) -> "Terminal":
        """Reload queue and cart from storage and listen for reconnects."""
        self.sync.on_load()
        self.cart.recover()
        if self._unsubscribe is None:
            self._unsubscribe = self.connectivity.subscribe(self.sync.on_reconnect)
        return self

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # Catalog snapshot

    def refresh_catalog(self, products: list[dict]) -> None:
        """Replace the cached catalog; images go to the local image map."""
        snapshot = {}
        images = {}
        for product in products:
            data = dict(product)
            image = data.pop("product_image", None)
            if image:
                images[str(data["id"])] = image
            snapshot[int(data["id"])] = data
        with self._catalog_lock:
            self.cache.set(catalog_key(self.tenant_id), snapshot)
        self._store_images(images)

    def _store_images(self, images: dict) -> None:
        key = image_cache_key(self.tenant_id)
        if not images:
            self.storage.remove_item(key)
            return
        try:
            self.storage.set_item(key, json.dumps(images))
        except QuotaExceededError:
            logger.warning("Product images for tenant %s do not fit in local storage; not cached", self.tenant_id)

    def cached_images(self) -> dict:
        raw = self.storage.get_item(image_cache_key(self.tenant_id))
        if not raw:
            return {}
        try:
            return json.loads(raw)
        except ValueError:
            return {}

    def catalog(self) -> Optional[dict]:
        return self.cache.get(catalog_key(self.tenant_id))

    def cached_product(self, product_id: int) -> Optional[dict]:
        snapshot = self.catalog()
        if snapshot is None:
            return None
        product = snapshot.get(int(product_id))
        if product is None:
            return None
        image = self.cached_images().get(str(product_id))
        if image:
            product = dict(product, product_image=image)
        return product

    def cached_stock(self, product_id: int) -> Optional[int]:
        snapshot = self.catalog()
        if snapshot is None or int(product_id) not in snapshot:
            return None
        return snapshot[int(product_id)].get("stock_qty")

    def _apply_cached_sale(self, order: PendingOrder, *, validate: bool) -> None:
        with self._catalog_lock:
            snapshot = self.catalog()
            if snapshot is None:
                if validate:
                    logger.warning(
                        "No catalog snapshot for tenant %s; queuing order %s without a stock check",
                        self.tenant_id, order.local_id,
                    )
                return

            totals = aggregate_quantities(order.items)
            names = {item.product_id: item.name for item in order.items}
            if validate:
                for product_id, qty in totals.items():
                    product = snapshot.get(product_id)
                    if product is None:
                        raise NotFoundError(f"Product {names[product_id]} not found", details={"product_id": product_id})
                    stock = product.get("stock_qty") or 0
                    if stock < qty:
                        raise InsufficientStockError(
                            f"Insufficient stock for {product.get('name') or names[product_id]}",
                            details={
                                "product_id": product_id,
                                "product_name": product.get("name"),
                                "requested_quantity": qty,
                                "stock_qty": stock,
                            },
                        )
            for product_id, qty in totals.items():
                if product_id in snapshot:
                    snapshot[product_id]["stock_qty"] = (snapshot[product_id].get("stock_qty") or 0) - qty

    # Checkout hooks

    def queue_offline_order(self, order: PendingOrder) -> None:
        """
        Check the order against the cached catalog, decrement cached stock
        and append it to the pending queue.

        Raises NotFoundError / InsufficientStockError before anything
        changes. LocalStorageError (quota included) means the order is
        queued in memory only.
        """
        self._apply_cached_sale(order, validate=True)
        self.sync.on_order_queued()
        try:
            self.pending.add(order)
        finally:
            self.cart.clear()

    def on_order_committed(self, order: PendingOrder) -> None:
        self._apply_cached_sale(order, validate=False)
        self.cart.clear()

    def discard_pending(self, local_id: str) -> Optional[PendingOrder]:
        removed = self.pending.discard(local_id)
        if removed is not None and not len(self.pending):
            self.sync.on_load()
        return removed

    def status(self) -> dict:
        data = self.sync.snapshot()
        data.update({
            "online": self.connectivity.is_online,
            "pending_count": len(self.pending),
            "storage_degraded": self.pending.degraded,
            "cart_saved": self.cart.last_persist_ok,
        })
        return data


class TerminalRegistry:
    """Terminals by tenant id; opened on sign-in, closed on sign-out."""

    def __init__(self, storage, connectivity, cache):
        self.storage = storage
        self.connectivity = connectivity
        self.cache = cache
        self._terminals: dict[int, Terminal] = {}
        self._lock = threading.Lock()

    def get(self, tenant_id: int) -> Optional[Terminal]:
        with self._lock:
            return self._terminals.get(tenant_id)

    def open(self, tenant_id: int) -> Terminal:
        with self._lock:
            terminal = self._terminals.get(tenant_id)
            if terminal is None:
                terminal = Terminal(tenant_id, self.storage, self.connectivity, self.cache)
                self._terminals[tenant_id] = terminal
            else:
                return terminal
        terminal.start()
        logger.info("Opened terminal for tenant %s (%d pending orders)", tenant_id, len(terminal.pending))
        return terminal

    def close(self, tenant_id: int) -> None:
        with self._lock:
            terminal = self._terminals.pop(tenant_id, None)
        if terminal is not None:
            terminal.stop()
            self.cache.delete(catalog_key(tenant_id))
            logger.info("Closed terminal for tenant %s", tenant_id)

    def tenant_ids(self) -> list[int]:
        with self._lock:
            return list(self._terminals)

    def handle_auth_event(self, event: str, user_id: int) -> None:
        if event == SIGNED_IN:
            self.open(user_id)
        elif event == SIGNED_OUT:
            self.close(user_id)
