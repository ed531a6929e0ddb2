"""Realtime change feeds delivered as message queues.

A ``Subscription`` is the consumer end: producers push ``ChangeEvent``s onto
its queue and the owner reads them from a single loop, so no producer ever
calls back into consumer state directly.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Hashable

from projdash.errors import StoreError
from projdash.models.changes import ChangeEvent, ChangeKind

logger = logging.getLogger(__name__)


class Subscription:
    """Queue-backed handle for one table's change events."""

    def __init__(
        self,
        table: str,
        on_close: Callable[[Subscription], None] | None = None,
    ) -> None:
        self.table = table
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue()
        self._closed = False
        self._on_close = on_close

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: ChangeEvent) -> None:
        """Enqueue an event. Events pushed after ``close()`` are dropped."""
        if self._closed:
            return
        self._queue.put_nowait(event)

    async def get(self) -> ChangeEvent | None:
        """Wait for the next event; ``None`` once the subscription is closed."""
        if self._closed and self._queue.empty():
            return None
        event = await self._queue.get()
        if event is None:
            # Keep the sentinel for any other reader.
            self._queue.put_nowait(None)
        return event

    def drain(self) -> int:
        """Discard queued events and return how many were dropped."""
        dropped = 0
        saw_sentinel = False
        while not self._queue.empty():
            event = self._queue.get_nowait()
            if event is None:
                saw_sentinel = True
            else:
                dropped += 1
        if saw_sentinel:
            self._queue.put_nowait(None)
        return dropped

    def close(self) -> None:
        """Release the subscription. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)
        if self._on_close is not None:
            self._on_close(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class ChangeFeed:
    """In-process broadcaster: every subscriber of a table receives each event."""

    def __init__(self) -> None:
        self._subscribers: dict[str, list[Subscription]] = {}

    def subscribe(
        self,
        table: str,
        on_close: Callable[[Subscription], None] | None = None,
    ) -> Subscription:
        def _release(subscription: Subscription) -> None:
            subscribers = self._subscribers.get(subscription.table, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if on_close is not None:
                on_close(subscription)

        subscription = Subscription(table, on_close=_release)
        self._subscribers.setdefault(table, []).append(subscription)
        return subscription

    def subscriber_count(self, table: str) -> int:
        return len(self._subscribers.get(table, []))

    def publish(self, event: ChangeEvent) -> int:
        """Deliver ``event`` to the table's subscribers; returns the fan-out."""
        subscribers = list(self._subscribers.get(event.table, []))
        for subscription in subscribers:
            subscription.push(event)
        return len(subscribers)

    def close(self) -> None:
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                subscription.close()
        self._subscribers.clear()


class PollingChangeFeed:
    """Change feed for stores without push notifications.

    One poller task per subscribed table calls ``probe(table)`` every
    ``interval`` seconds and publishes an ``UNKNOWN`` event whenever the
    returned fingerprint differs from the previous one. The first probe only
    establishes the baseline. A poller stops when its last subscriber closes.
    """

    def __init__(
        self,
        probe: Callable[[str], Awaitable[Hashable]],
        interval: float = 5.0,
    ) -> None:
        self._probe = probe
        self._interval = interval
        self._feed = ChangeFeed()
        self._pollers: dict[str, asyncio.Task[None]] = {}

    def subscribe(self, table: str) -> Subscription:
        subscription = self._feed.subscribe(table, on_close=self._on_unsubscribe)
        if table not in self._pollers:
            self._pollers[table] = asyncio.create_task(self._poll(table))
        return subscription

    def _on_unsubscribe(self, subscription: Subscription) -> None:
        if self._feed.subscriber_count(subscription.table):
            return
        task = self._pollers.pop(subscription.table, None)
        if task is not None:
            task.cancel()

    async def _poll(self, table: str) -> None:
        previous: Hashable | None = None
        while True:
            try:
                fingerprint = await self._probe(table)
            except StoreError as exc:
                logger.warning("Change probe for %s failed: %s", table, exc)
            else:
                if previous is not None and fingerprint != previous:
                    logger.debug("Detected change on %s", table)
                    self._feed.publish(ChangeEvent(table=table, kind=ChangeKind.UNKNOWN))
                previous = fingerprint
            await asyncio.sleep(self._interval)

    async def aclose(self) -> None:
        tasks = list(self._pollers.values())
        self._pollers.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._feed.close()
