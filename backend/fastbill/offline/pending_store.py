# Overview: Durable queue of orders waiting to be committed, keyed by local id.

"""
Pending-order store

The in-memory list is the source of truth for the running till; local
storage is a mirror rewritten after every add and remove so a restart
(load()) sees the same queue.

When the mirror no longer fits in storage, the store retries with every
order reduced to its essential fields (no item images, brand or category,
no customer email or address). If even that does not fit the write raises
QuotaExceededError; the in-memory queue keeps the order either way.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Optional

from ..errors import QuotaExceededError
from ..records import PendingOrder, ENTRY_PENDING, ENTRY_COMMITTING

logger = logging.getLogger(__name__)


def storage_key(tenant_id) -> str:
    return f"pendingOrders:{tenant_id}"


class PendingOrderStore:
    def __init__(self, storage, tenant_id):
        self.storage = storage
        self.tenant_id = tenant_id
        self.key = storage_key(tenant_id)
        self._orders: list[PendingOrder] = []
        self._lock = threading.RLock()
        self.degraded = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)

    def load(self) -> list[PendingOrder]:
        """Replace the in-memory queue with what local storage holds."""
        raw = self.storage.get_item(self.key)
        orders: list[PendingOrder] = []
        if raw:
            try:
                data = json.loads(raw)
            except ValueError:
                logger.warning("Discarding unreadable pending queue for tenant %s", self.tenant_id)
                data = []
            for entry in data if isinstance(data, list) else []:
                try:
                    order = PendingOrder.from_dict(entry)
                except (KeyError, TypeError, ValueError):
                    logger.warning("Skipping malformed pending order in tenant %s queue", self.tenant_id)
                    continue
                # A commit interrupted by a restart is just pending again
                if order.sync_state == ENTRY_COMMITTING:
                    order.sync_state = ENTRY_PENDING
                orders.append(order)
        with self._lock:
            self._orders = orders
        return list(orders)

    def list(self) -> list[PendingOrder]:
        with self._lock:
            return list(self._orders)

    def get(self, local_id: str) -> Optional[PendingOrder]:
        with self._lock:
            for order in self._orders:
                if order.local_id == str(local_id):
                    return order
        return None

    def add(self, order: PendingOrder) -> None:
        """
        Append and persist. Raises QuotaExceededError if even the reduced
        queue does not fit, LocalStorageError if the write fails; the order
        stays queued in memory either way.
        """
        with self._lock:
            self._orders.append(order)
            self.persist()

    def remove(self, local_id: str) -> Optional[PendingOrder]:
        with self._lock:
            for index, order in enumerate(self._orders):
                if order.local_id == str(local_id):
                    removed = self._orders.pop(index)
                    break
            else:
                return None
            self.persist()
            return removed

    def discard(self, local_id: str) -> Optional[PendingOrder]:
        """Manually drop an order that can never commit."""
        removed = self.remove(local_id)
        if removed is not None:
            logger.warning("Discarded pending order %s for tenant %s", local_id, self.tenant_id)
        return removed

    def persist(self) -> None:
        with self._lock:
            if not self._orders:
                self.storage.remove_item(self.key)
                self.degraded = False
                return

            full = json.dumps([o.to_dict() for o in self._orders])
            try:
                self.storage.set_item(self.key, full)
                self.degraded = False
                return
            except QuotaExceededError:
                logger.warning(
                    "Pending queue for tenant %s exceeds local storage; dropping non-essential fields",
                    self.tenant_id,
                )

            reduced = json.dumps([o.essential().to_dict() for o in self._orders])
            try:
                self.storage.set_item(self.key, reduced)
            except QuotaExceededError as exc:
                raise QuotaExceededError(
                    "Unable to save pending orders locally. Please sync or clear space",
                    details={"pending_orders": len(self._orders), **exc.details},
                ) from exc
            self.degraded = True
