"""In-process change notifications keyed by topic.

Routes publish after a mutation is committed; listeners (cache refreshers,
push bridges) subscribe to the topics they care about. Metric calculators
never subscribe; they are always called with freshly fetched records.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import Any

log = logging.getLogger(__name__)

TOPICS = (
    "deals",
    "data_room_folders",
    "data_room_documents",
    "diligence_requests",
    "deal_activities",
    "settings",
)

Callback = Callable[[str, dict[str, Any]], None]


class ChangeFeed:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[str, list[Callback]] = {}

    def subscribe(self, topic: str, callback: Callback) -> Callable[[], None]:
        """Register *callback* for *topic*; returns a function that unregisters it."""
        with self._lock:
            self._subscribers.setdefault(topic, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(topic, [])
                if callback in callbacks:
                    callbacks.remove(callback)

        return unsubscribe

    def publish(self, topic: str, payload: dict[str, Any] | None = None) -> int:
        """Invoke the topic's callbacks in registration order.

        A failing callback is logged and skipped. Returns the number of
        callbacks that completed.
        """
        with self._lock:
            callbacks = list(self._subscribers.get(topic, ()))
        delivered = 0
        for callback in callbacks:
            try:
                callback(topic, payload or {})
                delivered += 1
            except Exception as exc:
                log.warning("Subscriber %r failed on %s: %s", callback, topic, exc)
        return delivered

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, ()))

    def clear(self) -> None:
        with self._lock:
            self._subscribers.clear()


feed = ChangeFeed()
