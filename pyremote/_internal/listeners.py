"""Execute listeners: observers of every completed statement."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from .messages import ExecutionRecord

logger = logging.getLogger(__name__)

ExecuteListener = Callable[[ExecutionRecord], object]


class ListenerRegistry:
    """Set of listeners notified with each ExecutionRecord, in submission order.

    One registry belongs to one session and is cleared when the session stops.
    A listener that raises is logged and skipped; delivery to the remaining
    listeners continues.
    """

    def __init__(self) -> None:
        self._listeners: list[ExecuteListener] = []
        self._lock = threading.Lock()

    def add(self, listener: ExecuteListener) -> None:
        if not callable(listener):
            raise ValueError(f"Listener must be callable, got {type(listener).__name__}")
        with self._lock:
            self._listeners.append(listener)

    def remove(self, listener: ExecuteListener) -> bool:
        with self._lock:
            try:
                self._listeners.remove(listener)
            except ValueError:
                return False
        return True

    def notify(self, record: ExecutionRecord) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(record)
            except Exception:
                logger.exception("Execute listener %r failed for: %s", listener, record["code"])

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
