"""
Process-local change feed.

Every subscriber gets its own unbounded 'asyncio.Queue'; 'publish' fans an
event out to all of them without awaiting consumers. This reproduces the
broadcast behaviour of the hosted realtime channel: each subscriber sees
every change to the messages collection, in publish order.
"""

import asyncio

from loguru import logger

from pairchat.realtime.base import ChangeEvent, ChangeFeed, Subscription


class InMemorySubscription(Subscription):
    def __init__(self, feed: "InMemoryChangeFeed") -> None:
        self._feed = feed
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self.closed = False

    def deliver(self, event: ChangeEvent) -> None:
        if not self.closed:
            self._queue.put_nowait(event)

    async def get(self) -> ChangeEvent | None:
        if self.closed and self._queue.empty():
            return None
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._feed.unsubscribe(self)
        self._queue.put_nowait(None)


class InMemoryChangeFeed(ChangeFeed):
    """Broadcast feed used by the in-memory message database and by tests."""

    def __init__(self) -> None:
        self._subscriptions: list[InMemorySubscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    async def publish(self, event: ChangeEvent) -> None:
        logger.debug(f"Change on {event.table}: {event.kind} {event.message_id}")
        for subscription in list(self._subscriptions):
            subscription.deliver(event)

    def subscribe(self) -> InMemorySubscription:
        subscription = InMemorySubscription(self)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: InMemorySubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
