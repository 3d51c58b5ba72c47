# Overview: Online/offline signal for the till; fires listeners on reconnect.

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db

logger = logging.getLogger(__name__)


def database_probe() -> bool:
    """True if the database answers SELECT 1. Needs an app context."""
    try:
        db.session.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        db.session.rollback()
        return False


class ConnectivityMonitor:
    """
    Boolean connectivity state.

    Listeners run only on the offline -> online transition, in subscription
    order, on the thread that reported the transition.
    """

    def __init__(self, probe: Optional[Callable[[], bool]] = None, online: bool = True):
        self._probe = probe or database_probe
        self._online = online
        self._listeners: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def report(self, online: bool) -> bool:
        """Set the state; returns True if this was a reconnect."""
        with self._lock:
            was_online = self._online
            self._online = bool(online)
            reconnected = bool(online) and not was_online
            listeners = list(self._listeners) if reconnected else []

        if was_online != bool(online):
            logger.info("Connectivity changed: %s", "online" if online else "offline")

        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Reconnect listener failed")
        return reconnected

    def check(self) -> bool:
        """Run the probe and report its result."""
        online = bool(self._probe())
        self.report(online)
        return online
