"""
Completion events emitted by BackupSession.

subscribe() returns a disposer; calling it removes the subscription and is
harmless when repeated. A subscriber that raises is logged and skipped.
"""
import logging
import threading
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

AUTH_COMPLETED = "auth-completed"
DISCONNECTED = "disconnected"
SYNC_UPLOAD_COMPLETED = "sync-upload-completed"
SYNC_DOWNLOAD_COMPLETED = "sync-download-completed"

Subscriber = Callable[[Any], None]


class EventEmitter:
    def __init__(self):
        self._subscribers: dict[str, list[Subscriber]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, event: str, callback: Subscriber) -> Callable[[], None]:
        with self._lock:
            self._subscribers[event].append(callback)

        def dispose() -> None:
            with self._lock:
                callbacks = self._subscribers.get(event, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return dispose

    def emit(self, event: str, payload: Any = None) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(event, []))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                logger.exception("Subscriber for %s failed", event)
