"""
Live-update plumbing shared by the cache and the remote data sources.

Every `observe_*` call registers a callback and returns a `Subscription`.
Callbacks always receive a full snapshot, never a diff.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Callback = Callable[[T], None]
ErrorCallback = Callable[[Exception], None]


class Subscription:
    """Handle for a registered listener. `unsubscribe` is idempotent."""

    def __init__(self, on_unsubscribe: Optional[Callable[[], None]] = None):
        self._on_unsubscribe = on_unsubscribe
        self._lock = threading.Lock()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            callback, self._on_unsubscribe = self._on_unsubscribe, None
        if callback:
            callback()


@dataclass(eq=False)
class Listener(Generic[T]):
    key: Any
    callback: Callback
    on_error: Optional[ErrorCallback] = None
    subscription: Subscription = field(default_factory=Subscription)

    def deliver(self, snapshot: T) -> None:
        if not self.subscription.active:
            return
        try:
            self.callback(snapshot)
        except Exception:
            logger.exception("Listener for %r raised", self.key)

    def fail(self, exc: Exception) -> None:
        """Delivers `exc` to the error callback and stops the stream."""
        if not self.subscription.active:
            return
        self.subscription.unsubscribe()
        if self.on_error:
            self.on_error(exc)
        else:
            logger.warning("Unhandled error for listener %r: %s", self.key, exc)


class ListenerRegistry:
    """Thread-safe registry of listeners grouped by topic."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[str, List[Listener]] = {}

    def add(
        self,
        topic: str,
        key: Any,
        callback: Callback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Listener:
        listener = Listener(key=key, callback=callback, on_error=on_error)
        listener.subscription = Subscription(lambda: self._remove(topic, listener))
        with self._lock:
            self._listeners.setdefault(topic, []).append(listener)
        return listener

    def _remove(self, topic: str, listener: Listener) -> None:
        with self._lock:
            listeners = self._listeners.get(topic, [])
            if listener in listeners:
                listeners.remove(listener)

    def listeners(self, topic: str) -> List[Listener]:
        with self._lock:
            return list(self._listeners.get(topic, []))

    def count(self, topic: Optional[str] = None) -> int:
        with self._lock:
            if topic is not None:
                return len(self._listeners.get(topic, []))
            return sum(len(items) for items in self._listeners.values())

    def clear(self) -> None:
        with self._lock:
            listeners = [item for items in self._listeners.values() for item in items]
            self._listeners.clear()
        for listener in listeners:
            listener.subscription.unsubscribe()
