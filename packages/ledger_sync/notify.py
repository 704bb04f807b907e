"""Explicit observer registration for sync events.

Callers that need to react to sync progress (UI state, caches) subscribe a
callback and keep the returned function to unsubscribe. Callbacks run
synchronously on the publishing thread; an exception raised by one
subscriber is logged and does not reach the publisher or the other
subscribers.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable

from .logging_setup import get_logger
from .models import SyncEvent

Subscriber = Callable[[SyncEvent], None]

_logger = get_logger("ledger_sync.notify")


class ChangeNotifier:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: list[tuple[Subscriber, tuple[type, ...] | None]] = []

    def subscribe(
        self,
        callback: Subscriber,
        *,
        event_types: Iterable[type] | None = None,
    ) -> Callable[[], None]:
        """Register ``callback``; optionally only for the given event classes."""

        entry = (callback, tuple(event_types) if event_types is not None else None)
        with self._lock:
            self._subscribers.append(entry)

        def _unsubscribe() -> None:
            with self._lock:
                if entry in self._subscribers:
                    self._subscribers.remove(entry)

        return _unsubscribe

    def publish(self, event: SyncEvent) -> None:
        with self._lock:
            subscribers = list(self._subscribers)
        for callback, types in subscribers:
            if types is not None and not isinstance(event, types):
                continue
            try:
                callback(event)
            except Exception:
                _logger.exception("Sync event subscriber failed on %s", type(event).__name__)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)


__all__ = ["ChangeNotifier", "Subscriber"]
