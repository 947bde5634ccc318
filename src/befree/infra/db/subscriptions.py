from __future__ import annotations

import itertools
import logging
from threading import Lock
from typing import Callable, Dict, Tuple

logger = logging.getLogger("subscriptions")

Listener = Callable[[], None]


class SubscriptionHub:
    """In-process fan-out of "collection changed" notifications.

    Listeners run synchronously on the writing thread, after the write has
    been committed. A failing listener is logged and skipped so a broken
    subscriber never fails the write that triggered it.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._listeners: Dict[int, Tuple[str, Listener]] = {}
        self._ids = itertools.count(1)

    def add(self, collection: str, listener: Listener) -> int:
        with self._lock:
            token = next(self._ids)
            self._listeners[token] = (collection, listener)
        return token

    def remove(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    def publish(self, collection: str) -> None:
        with self._lock:
            targets = [fn for coll, fn in self._listeners.values() if coll == collection]
        for listener in targets:
            try:
                listener()
            except Exception:
                logger.exception("Subscriber for collection %s failed", collection)

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
