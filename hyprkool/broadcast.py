"""Lossy multi-consumer broadcast channel.

Every subscriber owns a bounded queue. Publishing never blocks: when a
subscriber's queue is full its oldest item is dropped and the subscriber is
marked as lagged. Subscribers only ever receive full snapshots, so a lagging
subscriber resynchronizes on the next item it does receive.
"""

import asyncio
import logging
from typing import Generic, Optional, Set, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BroadcastClosed(Exception):
    """Raised by :meth:`Subscription.recv` once the channel is closed and drained."""


_CLOSED = object()


class Subscription(Generic[T]):
    """Receiving end handed out by :meth:`Broadcast.subscribe`."""

    def __init__(self, channel: "Broadcast[T]", capacity: int) -> None:
        self._channel = channel
        # One extra slot so the close marker always fits
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity + 1)
        self._capacity = capacity
        self.lagged: int = 0
        self._closed = False

    def _push(self, item: object) -> None:
        if item is not _CLOSED and self._queue.qsize() >= self._capacity:
            self._queue.get_nowait()
            self.lagged += 1
        self._queue.put_nowait(item)

    async def recv(self) -> T:
        """Wait for the next item.

        Raises:
            BroadcastClosed: If the channel was closed
        """
        if self._closed:
            raise BroadcastClosed()
        item = await self._queue.get()
        if item is _CLOSED:
            self._closed = True
            raise BroadcastClosed()
        return item  # type: ignore[return-value]

    def close(self) -> None:
        """Stop receiving; idempotent."""
        self._channel._unsubscribe(self)
        self._closed = True

    async def __aenter__(self) -> "Subscription[T]":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self.close()


class Broadcast(Generic[T]):
    """Fan-out channel for state snapshots."""

    def __init__(self, capacity: int = 100) -> None:
        self.capacity = capacity
        self._subscribers: Set[Subscription[T]] = set()
        self._closed = False

    @property
    def receiver_count(self) -> int:
        return len(self._subscribers)

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription[T]:
        """Create a subscription that receives every item sent from now on."""
        subscription: Subscription[T] = Subscription(self, self.capacity)
        if self._closed:
            subscription._push(_CLOSED)
        else:
            self._subscribers.add(subscription)
        return subscription

    def _unsubscribe(self, subscription: Subscription[T]) -> None:
        self._subscribers.discard(subscription)

    def send(self, item: T) -> int:
        """Publish ``item`` to all current subscribers without blocking.

        Returns:
            Number of subscribers the item was queued for
        """
        if self._closed:
            raise BroadcastClosed()
        for subscription in list(self._subscribers):
            subscription._push(item)
        return len(self._subscribers)

    def close(self, reason: Optional[str] = None) -> None:
        """Close the channel; pending items are still delivered."""
        if self._closed:
            return
        self._closed = True
        logger.debug(f"Closing broadcast channel ({reason or 'no reason'})")
        for subscription in list(self._subscribers):
            subscription._push(_CLOSED)
        self._subscribers.clear()
