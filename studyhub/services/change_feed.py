"""In-process change feed publishing row-level insert/update/delete events."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from sqlalchemy import inspect

from ..config import get_settings

logger = logging.getLogger(__name__)

ChangeOperation = Literal["insert", "update", "delete", "resync"]


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """One committed row change, tagged with the table it belongs to."""

    table: str
    operation: ChangeOperation
    row: dict[str, Any]


# Emitted to a subscriber whose queue overflowed; the consumer must reload from scratch.
RESYNC = ChangeEvent(table="*", operation="resync", row={})


@dataclass(frozen=True, slots=True)
class ChannelFilter:
    """Select events of one table whose row matches every ``match`` column.

    ``any_of`` adds alternative column sets (at least one must match) and
    ``predicate`` an arbitrary check evaluated at publish time.
    """

    table: str
    match: Mapping[str, Any] = field(default_factory=dict)
    any_of: tuple[Mapping[str, Any], ...] = ()
    predicate: Callable[[dict[str, Any]], bool] | None = None

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        if not _columns_match(event.row, self.match):
            return False
        if self.any_of and not any(_columns_match(event.row, option) for option in self.any_of):
            return False
        if self.predicate is not None and not self.predicate(event.row):
            return False
        return True


def _columns_match(row: Mapping[str, Any], expected: Mapping[str, Any]) -> bool:
    return all(str(row.get(column)) == str(value) for column, value in expected.items())


def row_to_dict(instance: Any) -> dict[str, Any]:
    """Return the column values of an ORM instance keyed by attribute name."""

    mapper = inspect(instance).mapper
    return {attr.key: getattr(instance, attr.key) for attr in mapper.column_attrs}


class FeedSubscription:
    """A filtered, ordered queue of change events owned by one consumer."""

    def __init__(self, feed: ChangeFeed, filters: tuple[ChannelFilter, ...], maxsize: int) -> None:
        self._feed = feed
        self.filters = filters
        self._queue: asyncio.Queue[ChangeEvent | None] = asyncio.Queue(maxsize=maxsize)
        self._loop = asyncio.get_running_loop()
        self._closed = False
        self._overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def wants(self, event: ChangeEvent) -> bool:
        return not self._closed and any(item.matches(event) for item in self.filters)

    def deliver(self, event: ChangeEvent) -> None:
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._put(event)
            return
        try:
            self._loop.call_soon_threadsafe(self._put, event)
        except RuntimeError:
            # Owning loop already closed.
            self._closed = True

    def _put(self, event: ChangeEvent | None) -> None:
        if self._closed and event is not None:
            return
        if self._overflowed and event is not None:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Change feed subscriber overflowed; forcing resync")
            self._overflowed = True
            self._drain()
            self._queue.put_nowait(RESYNC)

    def _drain(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    async def get(self) -> ChangeEvent | None:
        """Return the next event, or ``None`` once the subscription is closed."""

        if self._closed and self._queue.empty():
            return None
        event = await self._queue.get()
        if event is RESYNC:
            self._overflowed = False
        return event

    def __aiter__(self) -> FeedSubscription:
        return self

    async def __anext__(self) -> ChangeEvent:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._feed.unsubscribe(self)
        self._drain()
        # Wake a consumer blocked in get().
        self._queue.put_nowait(None)


class ChangeFeed:
    """Routes committed row changes to every subscription whose filters match.

    Events are delivered in publish order, which services keep equal to commit
    order by publishing right after ``commit()`` returns.
    """

    def __init__(self, *, maxsize: int = 256) -> None:
        self._subscriptions: set[FeedSubscription] = set()
        self._lock = asyncio.Lock()
        self._maxsize = maxsize

    async def subscribe(self, *filters: ChannelFilter, maxsize: int | None = None) -> FeedSubscription:
        subscription = FeedSubscription(self, tuple(filters), maxsize or self._maxsize)
        async with self._lock:
            self._subscriptions.add(subscription)
        return subscription

    async def unsubscribe(self, subscription: FeedSubscription) -> None:
        async with self._lock:
            self._subscriptions.discard(subscription)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, table: str, operation: ChangeOperation, row: dict[str, Any]) -> int:
        """Deliver one event to matching subscribers and return how many received it."""

        event = ChangeEvent(table=table, operation=operation, row=dict(row))
        delivered = 0
        for subscription in list(self._subscriptions):
            try:
                wanted = subscription.wants(event)
            except Exception:
                logger.exception("Change feed filter failed for %s event on %s", operation, table)
                continue
            if wanted:
                subscription.deliver(event)
                delivered += 1
        return delivered

    def publish_row(self, operation: ChangeOperation, instance: Any) -> int:
        table = instance.__table__.name
        return self.publish(table, operation, row_to_dict(instance))


change_feed = ChangeFeed(maxsize=get_settings().live_queue_size)


__all__ = [
    "ChangeEvent",
    "ChangeFeed",
    "ChangeOperation",
    "ChannelFilter",
    "FeedSubscription",
    "RESYNC",
    "change_feed",
    "row_to_dict",
]
