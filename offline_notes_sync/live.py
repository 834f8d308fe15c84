"""
Live values: latest-value broadcast for observable state.

A ``LiveValue`` holds the most recent value of some piece of state. Every
``publish`` pushes the new value to all current subscribers; a subscriber
that joins late receives the current value first and never the history.
Slow subscribers are conflated: they always see the newest value, not a
backlog.

Example:
    >>> status = LiveValue("idle")
    >>> async with status.subscribe() as updates:
    ...     async for value in updates:
    ...         print(value)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


class Subscription(Generic[T]):
    """Async iterator over the values published to a ``LiveValue``."""

    def __init__(self, source: LiveValue[T]):
        self._source = source
        self._queue: asyncio.Queue[T] = asyncio.Queue(maxsize=1)
        self._closed = False
        self._queue.put_nowait(source.value)

    def _offer(self, value: T) -> None:
        if self._closed:
            return
        # Drop the stale value so the newest one always fits
        if self._queue.full():
            self._queue.get_nowait()
        self._queue.put_nowait(value)

    async def get(self) -> T:
        """Wait for the next value."""
        return await self._queue.get()

    def close(self) -> None:
        """Stop receiving values."""
        if not self._closed:
            self._closed = True
            self._source._subscriptions.discard(self)

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    async def __aenter__(self) -> Subscription[T]:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()


class LiveValue(Generic[T]):
    """Holder of the latest value of a piece of state."""

    def __init__(self, initial: T):
        self._value = initial
        self._subscriptions: set[Subscription[T]] = set()
        self._listeners: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def publish(self, value: T) -> None:
        """Store a new value and push it to subscribers and listeners."""
        self._value = value
        for subscription in list(self._subscriptions):
            subscription._offer(value)
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("Live value listener failed")

    def subscribe(self) -> Subscription[T]:
        """Subscribe; the current value is delivered first."""
        subscription = Subscription(self)
        self._subscriptions.add(subscription)
        return subscription

    def add_listener(self, callback: Callable[[T], None]) -> Callable[[], None]:
        """Call ``callback`` synchronously on every publish.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions) + len(self._listeners)

    def map(self, fn: Callable[[T], U]) -> LiveValue[U]:
        """Derive a live value that tracks ``fn(value)``."""
        derived: LiveValue[U] = LiveValue(fn(self._value))
        self.add_listener(lambda value: derived.publish(fn(value)))
        return derived

    def __repr__(self) -> str:
        return f"LiveValue({self._value!r})"


def combine(*sources: LiveValue[Any], fn: Callable[..., T]) -> LiveValue[T]:
    """Derive one live value from several.

    The result is recomputed from the latest value of every source whenever
    any of them publishes.
    """
    derived: LiveValue[T] = LiveValue(fn(*(source.value for source in sources)))

    def recompute(_: Any) -> None:
        derived.publish(fn(*(source.value for source in sources)))

    for source in sources:
        source.add_listener(recompute)
    return derived
