"""
Presentation state for the app's screens.

Each holder keeps one frozen dataclass as its current state and pushes every
new state to its subscribers. Errors never escape a holder; they end up as a
display string on the state's `error` field.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Callable, Generic, List, Optional, TypeVar

from passit.live import ListenerRegistry, Subscription

logger = logging.getLogger(__name__)

S = TypeVar("S")

STATE_TOPIC = "state"


def error_message(exc: BaseException, fallback: str) -> str:
    """The exception's message, or `fallback` when it has none."""
    return str(exc) or fallback


class StateHolder(Generic[S]):
    """Thread-safe holder of an immutable state value."""

    def __init__(self, initial: S):
        self._lock = threading.Lock()
        self._state = initial
        self._listeners = ListenerRegistry()

    @property
    def state(self) -> S:
        with self._lock:
            return self._state

    def set(self, state: S) -> S:
        with self._lock:
            self._state = state
        self._publish(state)
        return state

    def update(self, **changes) -> S:
        with self._lock:
            state = replace(self._state, **changes)
            self._state = state
        self._publish(state)
        return state

    def subscribe(self, callback: Callable[[S], None]) -> Subscription:
        """Registers `callback`, which receives the current state at once."""
        listener = self._listeners.add(STATE_TOPIC, None, callback)
        listener.deliver(self.state)
        return listener.subscription

    def _publish(self, state: S) -> None:
        for listener in self._listeners.listeners(STATE_TOPIC):
            listener.deliver(state)


class SubscriptionBag:
    """Named subscriptions; replacing one unsubscribes the previous handle."""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: dict = {}

    def replace(self, name: str, subscription: Optional[Subscription]) -> None:
        with self._lock:
            previous = self._items.pop(name, None)
            if subscription is not None:
                self._items[name] = subscription
        if previous is not None:
            previous.unsubscribe()

    def is_active(self, name: str) -> bool:
        with self._lock:
            subscription = self._items.get(name)
        return bool(subscription and subscription.active)

    def close(self) -> None:
        with self._lock:
            items: List[Subscription] = list(self._items.values())
            self._items.clear()
        for subscription in items:
            subscription.unsubscribe()
