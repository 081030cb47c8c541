"""
Observable state primitives.

MutableState holds a single current value and pushes every change to
listeners and queue-backed subscriptions. ObservableState is its read-only
view handed to UI code.
"""

import asyncio
from typing import Callable, Generic, List, Optional, TypeVar

from loguru import logger

T = TypeVar("T")

_CLOSED = object()


class Subscription(Generic[T]):
    """
    Async iterator over the values published by a MutableState.

    The first value is the state's current value at subscription time,
    followed by every later change. Iteration ends after close().
    """

    def __init__(self, source: "MutableState[T]"):
        self._source: Optional[MutableState[T]] = source
        self._queue: asyncio.Queue = asyncio.Queue()

    @property
    def closed(self) -> bool:
        return self._source is None

    def _push(self, value) -> None:
        self._queue.put_nowait(value)

    def close(self) -> None:
        """Detach from the source and wake any pending iteration."""
        if self._source is None:
            return
        self._source._detach(self)
        self._source = None
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> "Subscription[T]":
        return self

    async def __anext__(self) -> T:
        if self._source is None and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    async def __aenter__(self) -> "Subscription[T]":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()


class MutableState(Generic[T]):
    """
    Single current value with change notification.

    Publishing is distinct-until-changed: setting a value equal to the
    current one notifies nobody. Must be used from one event loop thread.
    """

    def __init__(self, initial: T):
        self._value = initial
        self._listeners: List[Callable[[T], None]] = []
        self._subscriptions: List[Subscription[T]] = []

    @property
    def value(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        """
        Replace the current value.

        Args:
            value: New value; ignored if equal to the current one
        """
        if value == self._value:
            return
        self._value = value
        for subscription in list(self._subscriptions):
            subscription._push(value)
        for listener in list(self._listeners):
            try:
                listener(value)
            except Exception:
                logger.exception("State listener failed")

    def update(self, transform: Callable[[T], T]) -> T:
        """
        Read-modify-write on the latest value.

        Args:
            transform: Function mapping the current value to the new one

        Returns:
            The value after the update
        """
        self.set(transform(self._value))
        return self._value

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        """
        Register a change listener.

        The listener is called immediately with the current value.

        Args:
            listener: Callable receiving each published value

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)
        listener(self._value)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def watch(self) -> Subscription[T]:
        """
        Open a fresh subscription starting at the current value.

        Returns:
            Subscription; close it (or use it as an async context manager)
            when done
        """
        subscription: Subscription[T] = Subscription(self)
        subscription._push(self._value)
        self._subscriptions.append(subscription)
        return subscription

    def _detach(self, subscription: Subscription[T]) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners) + len(self._subscriptions)


class ObservableState(Generic[T]):
    """Read-only view of a MutableState."""

    def __init__(self, source: MutableState[T]):
        self._source = source

    @property
    def value(self) -> T:
        return self._source.value

    def subscribe(self, listener: Callable[[T], None]) -> Callable[[], None]:
        return self._source.subscribe(listener)

    def watch(self) -> Subscription[T]:
        return self._source.watch()
