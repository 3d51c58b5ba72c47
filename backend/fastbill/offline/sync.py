# Overview: Drains the pending-order queue against the database, one order per batch.

"""
Sync coordinator

Status:
    synced   queue empty, nothing to do
    pending  queue non-empty (after load, or an order queued offline)
    error    the last drain left at least one order that failed to commit

Each queued order moves pending -> committing -> (removed | failed). A
failed order keeps its place in the queue with attempts + 1 and is tried
again on the next drain. There is no backoff and no attempt ceiling.

One order failing never stops the rest of the drain. Orders are committed
in queue order but nothing depends on that order.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from ..errors import LocalStorageError
from ..records import ENTRY_PENDING, ENTRY_COMMITTING, ENTRY_FAILED, PendingOrder

logger = logging.getLogger(__name__)

STATUS_SYNCED = "synced"
STATUS_PENDING = "pending"
STATUS_ERROR = "error"


@dataclass
class DrainReport:
    committed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    status: str = STATUS_SYNCED
    skipped: bool = False

    def to_dict(self) -> dict:
        return {
            "committed": list(self.committed),
            "failed": list(self.failed),
            "errors": dict(self.errors),
            "status": self.status,
            "skipped": self.skipped,
        }


class SyncCoordinator:
    def __init__(self, store, commit: Callable[[PendingOrder], object]):
        """
        Args:
            store: PendingOrderStore for one tenant
            commit: commits one pending order as a single batch; raises on failure
        """
        self.store = store
        self._commit = commit
        self._status = STATUS_SYNCED
        self._syncing = False
        self._lock = threading.Lock()
        self.last_report: DrainReport | None = None

    @property
    def status(self) -> str:
        return self._status

    @property
    def is_syncing(self) -> bool:
        return self._syncing

    def on_load(self) -> str:
        """Restore the pending queue from storage and surface its status."""
        orders = self.store.load()
        self._status = STATUS_PENDING if orders else STATUS_SYNCED
        return self._status

    def on_order_queued(self) -> None:
        self._status = STATUS_PENDING

    def on_reconnect(self) -> DrainReport:
        logger.info("Connection restored for tenant %s; draining %d pending orders",
                    self.store.tenant_id, len(self.store))
        return self.drain()

    def drain(self) -> DrainReport:
        """
        Try every queued order once. A drain already running makes this
        call return at once with skipped=True.
        """
        with self._lock:
            if self._syncing:
                return DrainReport(status=self._status, skipped=True)
            self._syncing = True

        report = DrainReport()
        try:
            for order in self.store.list():
                order.sync_state = ENTRY_COMMITTING
                try:
                    self._commit(order)
                except Exception as exc:
                    order.attempts += 1
                    order.sync_state = ENTRY_FAILED
                    order.last_error = str(exc)
                    report.failed.append(order.local_id)
                    report.errors[order.local_id] = str(exc)
                    logger.warning(
                        "Failed to sync order %s (attempt %d): %s",
                        order.local_id, order.attempts, exc,
                    )
                    self._save_attempt()
                    continue

                order.sync_state = ENTRY_PENDING
                report.committed.append(order.local_id)
                logger.info("Synced order %s", order.local_id)
                try:
                    self.store.remove(order.local_id)
                except LocalStorageError as exc:
                    # Gone from the in-memory queue; the stored mirror is stale until the next write
                    logger.error("Synced order %s but could not update local storage: %s",
                                 order.local_id, exc.message)
        finally:
            with self._lock:
                self._syncing = False

        if report.failed:
            self._status = STATUS_ERROR
        elif len(self.store):
            self._status = STATUS_PENDING
        else:
            self._status = STATUS_SYNCED
        report.status = self._status
        self.last_report = report

        logger.info(
            "Drain finished for tenant %s: %d committed, %d failed, status %s",
            self.store.tenant_id, len(report.committed), len(report.failed), report.status,
        )
        return report

    def _save_attempt(self) -> None:
        try:
            self.store.persist()
        except LocalStorageError:
            logger.warning("Could not persist attempt count for tenant %s", self.store.tenant_id)

    def snapshot(self) -> dict:
        return {
            "status": self._status,
            "is_syncing": self._syncing,
            "pending": [
                {
                    "local_id": o.local_id,
                    "sync_state": o.sync_state,
                    "attempts": o.attempts,
                    "last_error": o.last_error,
                    "total_cents": o.total_cents,
                    "created_at": o.created_at.isoformat(),
                }
                for o in self.store.list()
            ],
        }
