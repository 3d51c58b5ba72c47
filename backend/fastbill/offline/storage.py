# Overview: Local durable key-value storage for the till; string values with a byte quota.

"""
Local storage

Values are strings (callers serialize JSON themselves). Capacity is
measured as the UTF-8 size of every key plus every value; a write that
would push the total over the quota raises QuotaExceededError and leaves
the previous value in place.

JsonFileStorage rewrites the whole file on every change through a temp
file and os.replace, so a crash mid-write leaves the old file intact. The
in-memory view only changes once the file write succeeded; a failed write
raises LocalStorageError.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from typing import Optional, Protocol

from ..errors import LocalStorageError, QuotaExceededError

logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class LocalStorage(Protocol):
    def get_item(self, key: str) -> Optional[str]: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryStorage:
    """Process-local storage; lost on exit. Used by tests and ephemeral tills."""

    def __init__(self, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        self.quota_bytes = quota_bytes
        self._items: dict[str, str] = {}
        self._lock = threading.Lock()

    def used_bytes(self) -> int:
        return sum(_entry_size(k, v) for k, v in self._items.items())

    def _check_quota(self, key: str, value: str) -> None:
        current = self.used_bytes()
        if key in self._items:
            current -= _entry_size(key, self._items[key])
        needed = current + _entry_size(key, value)
        if needed > self.quota_bytes:
            raise QuotaExceededError(
                "Local storage quota exceeded",
                details={"key": key, "needed_bytes": needed, "quota_bytes": self.quota_bytes},
            )

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError("Local storage values must be strings")
        with self._lock:
            self._check_quota(key, value)
            staged = dict(self._items)
            staged[key] = value
            self._persist(staged)
            self._items = staged

    def remove_item(self, key: str) -> None:
        with self._lock:
            if key not in self._items:
                return
            staged = dict(self._items)
            del staged[key]
            self._persist(staged)
            self._items = staged

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)

    def _persist(self, items: dict[str, str]) -> None:
        pass


class JsonFileStorage(MemoryStorage):
    """Storage backed by a single JSON object file."""

    def __init__(self, path: str, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        super().__init__(quota_bytes)
        self.path = os.path.abspath(path)
        self._items = self._read()

    def _read(self) -> dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, json.JSONDecodeError):
            logger.warning("Local storage file %s is unreadable; starting empty", self.path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Local storage file %s does not hold an object; starting empty", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _persist(self, items: dict[str, str]) -> None:
        directory = os.path.dirname(self.path) or "."
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".fastbill-", suffix=".json", dir=directory)
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(items, fh)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise LocalStorageError(
                "Unable to write local storage",
                details={"path": self.path, "reason": str(exc)},
            ) from exc
