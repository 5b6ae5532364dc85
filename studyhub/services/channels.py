"""Per-viewer live channel manager holding one disposable handle per view slot."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, StrEnum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from ..errors import ValidationError
from .change_feed import RESYNC, ChangeFeed, FeedSubscription, change_feed

if TYPE_CHECKING:
    from .live_views import LiveView

logger = logging.getLogger(__name__)


class ResourceKind(StrEnum):
    GROUP_CHAT = "group_chat"
    POST_THREAD = "post_thread"
    SESSION_LOBBY = "session_lobby"
    NOTIFICATIONS = "notifications"
    DIRECT_PAIR = "direct_pair"


@dataclass(frozen=True, slots=True)
class ResourceKey:
    """Identifies one live resource; ``ident`` is a UUID string or a sorted ``a:b`` pair."""

    kind: ResourceKind
    ident: str

    def __str__(self) -> str:
        return f"{self.kind}:{self.ident}"

    @classmethod
    def direct_pair(cls, a: UUID | str, b: UUID | str) -> ResourceKey:
        low, high = sorted((str(a), str(b)))
        return cls(ResourceKind.DIRECT_PAIR, f"{low}:{high}")

    @classmethod
    def for_viewer(cls, kind: str, ident: str | None, viewer_id: UUID) -> ResourceKey:
        """Build a key from client input; pairs and the notification feed are viewer-relative."""

        try:
            resource = ResourceKind(kind)
        except ValueError as exc:
            raise ValidationError(f"Unknown resource kind: {kind}") from exc
        if resource is ResourceKind.NOTIFICATIONS:
            return cls(resource, str(viewer_id))
        if not ident:
            raise ValidationError("Resource id is required")
        try:
            target = UUID(str(ident))
        except ValueError as exc:
            raise ValidationError("Resource id must be a valid UUID") from exc
        if resource is ResourceKind.DIRECT_PAIR:
            return cls.direct_pair(viewer_id, target)
        return cls(resource, str(target))

    def pair(self) -> tuple[UUID, UUID]:
        low, high = self.ident.split(":", 1)
        return UUID(low), UUID(high)


class SubscriptionState(Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


class SubscriptionHandle:
    """Owns one feed subscription, its live view and the task pumping events into it.

    ``dispose`` is idempotent. After disposal no load result or event reaches
    the view.
    """

    def __init__(self, key: ResourceKey, view: LiveView, feed: ChangeFeed) -> None:
        self.key = key
        self.view = view
        self._feed = feed
        self.state = SubscriptionState.UNSUBSCRIBED
        self._subscription: FeedSubscription | None = None
        self._pump: asyncio.Task[None] | None = None
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    async def subscribe(self) -> None:
        if self._disposed or self.state is not SubscriptionState.UNSUBSCRIBED:
            return
        self.state = SubscriptionState.SUBSCRIBING
        await self.view.authorize()
        if self._disposed:
            return
        subscription = await self._feed.subscribe(*self.view.filters())
        if self._disposed:
            await subscription.close()
            return
        self._subscription = subscription
        self.state = SubscriptionState.SUBSCRIBED
        logger.info("Subscribed %s for viewer %s", self.key, self.view.viewer_id)

    async def load(self) -> None:
        """Run the initial load, then start pumping queued events in commit order."""

        if self.state is not SubscriptionState.SUBSCRIBED:
            return
        await self.view.reload()
        if self.state is SubscriptionState.SUBSCRIBED and self._pump is None:
            self._pump = asyncio.create_task(self._drain(), name=f"live-pump-{self.key}")

    async def _drain(self) -> None:
        subscription = self._subscription
        if subscription is None:
            return
        async for event in subscription:
            if self.state is not SubscriptionState.SUBSCRIBED:
                break
            try:
                if event is RESYNC:
                    await self.view.reload()
                else:
                    await self.view.handle_event(event)
            except Exception as exc:
                logger.exception("Live view %s failed handling %s on %s", self.key, event.operation, event.table)
                await self.view.fail(str(exc) or "Live update failed")

    async def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.state = SubscriptionState.UNSUBSCRIBED
        self.view.deactivate()

        pump, self._pump = self._pump, None
        if pump is not None and pump is not asyncio.current_task():
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass

        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
        logger.info("Unsubscribed %s for viewer %s", self.key, self.view.viewer_id)


ViewFactory = Callable[[ResourceKey, UUID], "LiveView"]


class ChannelSubscriptionManager:
    """Keeps at most one live subscription per resource kind for a single viewer."""

    def __init__(self, viewer_id: UUID, *, view_factory: ViewFactory, feed: ChangeFeed | None = None) -> None:
        self.viewer_id = viewer_id
        self._view_factory = view_factory
        self._feed = feed or change_feed
        self._slots: dict[ResourceKind, SubscriptionHandle] = {}
        self._lock = asyncio.Lock()

    async def open(self, key: ResourceKey) -> SubscriptionHandle:
        """Subscribe to ``key``, replacing whatever the same slot held before.

        Re-opening the current key returns the existing handle untouched.
        """

        async with self._lock:
            current = self._slots.get(key.kind)
            if current is not None and current.key == key and not current.disposed:
                return current
            if current is not None:
                del self._slots[key.kind]
                await current.dispose()

            handle = SubscriptionHandle(key, self._view_factory(key, self.viewer_id), self._feed)
            self._slots[key.kind] = handle
            try:
                await handle.subscribe()
            except BaseException:
                if self._slots.get(key.kind) is handle:
                    del self._slots[key.kind]
                await handle.dispose()
                raise

        # Loads run outside the lock so a slower load never blocks switching away from it.
        await handle.load()
        return handle

    async def close(self, kind: ResourceKind | str) -> None:
        async with self._lock:
            handle = self._slots.pop(ResourceKind(kind), None)
            if handle is not None:
                await handle.dispose()

    async def close_all(self) -> None:
        async with self._lock:
            handles = list(self._slots.values())
            self._slots.clear()
            for handle in handles:
                await handle.dispose()

    def get(self, kind: ResourceKind | str) -> SubscriptionHandle | None:
        return self._slots.get(ResourceKind(kind))

    def active_keys(self) -> list[ResourceKey]:
        return [handle.key for handle in self._slots.values() if handle.state is SubscriptionState.SUBSCRIBED]

    def snapshot(self) -> dict[str, Any]:
        return {str(kind): handle.view.snapshot() for kind, handle in self._slots.items()}


__all__ = [
    "ChannelSubscriptionManager",
    "ResourceKey",
    "ResourceKind",
    "SubscriptionHandle",
    "SubscriptionState",
    "ViewFactory",
]
