from __future__ import annotations

import logging
import threading
from typing import Callable

__all__ = [
    "EventHub",
    "Listener",
    "NotificationError",
    "HTTP_SERVER_FAILED",
    "INCOMING_TEXT",
    "TRANSLATION_HISTORY_UPDATED",
]

logger = logging.getLogger(__name__)

INCOMING_TEXT = "incoming_text"
HTTP_SERVER_FAILED = "http_server_failed"
TRANSLATION_HISTORY_UPDATED = "translation_history_updated"

Listener = Callable[[str, object], None]


class NotificationError(RuntimeError):
    """Raised when an event could not be delivered to a listener."""


class EventHub:
    """Broadcasts the named events the host UI listens to."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                try:
                    self._listeners.remove(listener)
                except ValueError:
                    pass

        return unsubscribe

    def emit(self, name: str, payload: object = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        if not listeners:
            logger.debug("No listeners for %s", name)
        failures: list[Exception] = []
        for listener in listeners:
            try:
                listener(name, payload)
            except Exception as exc:
                logger.debug("Listener for %s failed: %s", name, exc)
                failures.append(exc)
        if failures:
            detail = "; ".join(str(exc) for exc in failures)
            raise NotificationError(f"Failed to emit {name}: {detail}") from failures[0]
