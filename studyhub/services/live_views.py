"""Live views reconciling change events into per-viewer snapshots."""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import create_session
from ..errors import NotFoundError, PermissionDeniedError, StudyHubError
from ..models import Post, StudySession
from .change_feed import ChangeEvent, ChannelFilter, row_to_dict
from .channels import ResourceKey, ResourceKind
from .group_service import require_membership
from .message_service import list_direct_messages, list_group_messages, list_session_chat
from .notification_service import UnreadCounter, count_unread, list_notifications
from .poll_service import load_session_polls
from .thread_service import load_thread

logger = logging.getLogger(__name__)

Listener = Callable[["LiveView"], Awaitable[None]]
Loader = Callable[["LiveView"], Awaitable[Any]]


def _same_id(left: Any, right: Any) -> bool:
    return str(left) == str(right)


class LiveView:
    """Derived state for one resource, refreshed by loads and patched by events.

    Every load carries a sequence number; a result is applied only while the
    view is active and no newer load has been issued since.
    """

    def __init__(self, key: ResourceKey, viewer_id: UUID, *, loader: Loader | None = None) -> None:
        self.key = key
        self.viewer_id = viewer_id
        self.data: Any = None
        self.error: str | None = None
        self.loading = False
        self.version = 0
        self._active = True
        self._load_seq = 0
        self._loader = loader
        self._listeners: list[Listener] = []

    @property
    def active(self) -> bool:
        return self._active

    def filters(self) -> tuple[ChannelFilter, ...]:
        raise NotImplementedError

    def check_access(self, db: Session) -> None:
        """Raise when the viewer may not watch this resource."""

    def fetch(self, db: Session) -> Any:
        raise NotImplementedError

    def apply(self, data: Any) -> None:
        self.data = data

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def deactivate(self) -> None:
        self._active = False
        self._listeners.clear()

    async def authorize(self) -> None:
        await asyncio.to_thread(self._in_session, self.check_access)

    def _in_session(self, func: Callable[[Session], Any]) -> Any:
        db = create_session()
        try:
            return func(db)
        finally:
            db.close()

    async def _load(self) -> Any:
        if self._loader is not None:
            return await self._loader(self)
        return await asyncio.to_thread(self._in_session, self.fetch)

    def _is_current(self, seq: int) -> bool:
        return self._active and seq == self._load_seq

    async def reload(self) -> bool:
        """Load fresh state; returns ``False`` when the result was discarded or failed."""

        self._load_seq += 1
        seq = self._load_seq
        self.loading = True
        try:
            data = await self._load()
        except StudyHubError as exc:
            if self._is_current(seq):
                await self.fail(exc.detail)
            return False
        except SQLAlchemyError:
            logger.exception("Loading %s failed", self.key)
            if self._is_current(seq):
                await self.fail("Failed to load data")
            return False

        if not self._is_current(seq):
            logger.debug("Discarding stale load #%d for %s", seq, self.key)
            return False
        self.apply(data)
        self.error = None
        self.loading = False
        await self._changed()
        return True

    async def fail(self, detail: str) -> None:
        if not self._active:
            return
        self.error = detail
        self.loading = False
        await self._changed()

    async def handle_event(self, event: ChangeEvent) -> None:
        await self.reload()

    async def _changed(self) -> None:
        self.version += 1
        for listener in list(self._listeners):
            try:
                await listener(self)
            except Exception:
                logger.exception("Live view listener failed for %s", self.key)

    def render(self) -> Any:
        return self.data

    def snapshot(self) -> dict[str, Any]:
        return {
            "resource": str(self.key.kind),
            "id": self.key.ident,
            "version": self.version,
            "loading": self.loading,
            "error": self.error,
            "data": self.render(),
        }


def patch_rows(rows: list[dict[str, Any]], event: ChangeEvent) -> bool:
    """Apply an insert/update/delete to an id-keyed row list; return whether it changed."""

    row = event.row
    index = next((i for i, item in enumerate(rows) if _same_id(item.get("id"), row.get("id"))), None)
    if event.operation == "insert":
        if index is not None:
            return False
        rows.append(dict(row))
        return True
    if event.operation == "update":
        if index is None:
            return False
        rows[index] = {**rows[index], **row}
        return True
    if event.operation == "delete":
        if index is None:
            return False
        del rows[index]
        return True
    return False


class MessageStreamView(LiveView):
    """Append-only stream patched in place instead of reloaded."""

    async def handle_event(self, event: ChangeEvent) -> None:
        if self.data is None:
            await self.reload()
            return
        if patch_rows(self.data, event):
            await self._changed()


class GroupChatView(MessageStreamView):
    def filters(self) -> tuple[ChannelFilter, ...]:
        return (ChannelFilter("group_messages", match={"group_id": self.key.ident}),)

    def check_access(self, db: Session) -> None:
        require_membership(db, UUID(self.key.ident), self.viewer_id)

    def fetch(self, db: Session) -> list[dict[str, Any]]:
        messages = list_group_messages(db, group_id=UUID(self.key.ident), viewer_id=self.viewer_id)
        return [row_to_dict(message) for message in messages]


class DirectMessageView(MessageStreamView):
    def filters(self) -> tuple[ChannelFilter, ...]:
        low, high = self.key.pair()
        return (
            ChannelFilter(
                "direct_messages",
                any_of=(
                    {"sender_id": low, "recipient_id": high},
                    {"sender_id": high, "recipient_id": low},
                ),
            ),
        )

    def check_access(self, db: Session) -> None:
        if self.viewer_id not in self.key.pair():
            raise PermissionDeniedError("Not a participant of this conversation")

    def fetch(self, db: Session) -> list[dict[str, Any]]:
        low, high = self.key.pair()
        other_id = high if low == self.viewer_id else low
        return [row_to_dict(message) for message in list_direct_messages(db, viewer_id=self.viewer_id, other_id=other_id)]


class ThreadView(LiveView):
    """Post thread; any change re-projects and re-aggregates the whole thread."""

    def __init__(self, key: ResourceKey, viewer_id: UUID, *, loader: Loader | None = None) -> None:
        super().__init__(key, viewer_id, loader=loader)
        self._target_ids: set[str] = {key.ident}

    def _track_comment(self, row: dict[str, Any]) -> bool:
        # Runs at publish time so reactions on a brand-new comment already match.
        self._target_ids.add(str(row.get("id")))
        return True

    def _is_thread_target(self, row: dict[str, Any]) -> bool:
        return str(row.get("target_id")) in self._target_ids

    def filters(self) -> tuple[ChannelFilter, ...]:
        return (
            ChannelFilter("posts", match={"id": self.key.ident}),
            ChannelFilter("comments", match={"post_id": self.key.ident}, predicate=self._track_comment),
            ChannelFilter("reactions", predicate=self._is_thread_target),
            ChannelFilter("votes", predicate=self._is_thread_target),
        )

    def check_access(self, db: Session) -> None:
        post = db.get(Post, UUID(self.key.ident))
        if post is None:
            raise NotFoundError("Post not found")
        require_membership(db, post.group_id, self.viewer_id)

    def fetch(self, db: Session) -> tuple[dict[str, Any], set[str]]:
        snapshot = load_thread(db, post_id=UUID(self.key.ident), viewer_id=self.viewer_id)
        return snapshot.to_payload(), {str(comment_id) for comment_id in snapshot.forest.nodes}

    def apply(self, data: Any) -> None:
        if isinstance(data, tuple):
            payload, comment_ids = data
            self._target_ids.update(comment_ids)
            self.data = payload
        else:
            self.data = data


class LobbyView(LiveView):
    """Session lobby: chat is patched in place, poll changes trigger a reload."""

    def __init__(self, key: ResourceKey, viewer_id: UUID, *, loader: Loader | None = None) -> None:
        super().__init__(key, viewer_id, loader=loader)
        self._poll_ids: set[str] = set()

    def _track_poll(self, row: dict[str, Any]) -> bool:
        self._poll_ids.add(str(row.get("id")))
        return True

    def filters(self) -> tuple[ChannelFilter, ...]:
        session_id = self.key.ident
        return (
            ChannelFilter("session_chat", match={"session_id": session_id}),
            ChannelFilter("session_polls", match={"session_id": session_id}, predicate=self._track_poll),
            ChannelFilter("session_poll_responses", predicate=lambda row: str(row.get("poll_id")) in self._poll_ids),
        )

    def check_access(self, db: Session) -> None:
        study_session = db.get(StudySession, UUID(self.key.ident))
        if study_session is None:
            raise NotFoundError("Study session not found")
        require_membership(db, study_session.group_id, self.viewer_id)

    def fetch(self, db: Session) -> dict[str, Any]:
        session_id = UUID(self.key.ident)
        return {
            "chat": [row_to_dict(message) for message in list_session_chat(db, session_id=session_id)],
            "polls": load_session_polls(db, session_id=session_id, viewer_id=self.viewer_id),
        }

    def apply(self, data: Any) -> None:
        self._poll_ids.update(str(poll["poll_id"]) for poll in data.get("polls", []))
        self.data = data

    async def handle_event(self, event: ChangeEvent) -> None:
        if event.table == "session_chat" and self.data is not None:
            if patch_rows(self.data["chat"], event):
                await self._changed()
            return
        await self.reload()


class NotificationFeedView(LiveView):
    """Newest-first notifications plus the live unread counter.

    The counter only moves for rows the view holds. An update or delete for a
    row outside the held page may already be reflected in the last load, so
    it triggers a recount through a reload instead.
    """

    def __init__(self, key: ResourceKey, viewer_id: UUID, *, loader: Loader | None = None) -> None:
        super().__init__(key, viewer_id, loader=loader)
        self.unread = UnreadCounter()
        self.page_size = get_settings().notification_page_size
        self._has_more = False

    def filters(self) -> tuple[ChannelFilter, ...]:
        return (ChannelFilter("notifications", match={"recipient_id": self.key.ident}),)

    def check_access(self, db: Session) -> None:
        if not _same_id(self.key.ident, self.viewer_id):
            raise PermissionDeniedError("Notifications are private")

    def fetch(self, db: Session) -> dict[str, Any]:
        items = list_notifications(db, self.viewer_id, limit=self.page_size)
        return {"items": [row_to_dict(item) for item in items], "unread": count_unread(db, self.viewer_id)}

    def apply(self, data: Any) -> None:
        self.data = data["items"]
        self._has_more = len(self.data) >= self.page_size
        self.unread.set(data["unread"])

    async def handle_event(self, event: ChangeEvent) -> None:
        if self.data is None:
            await self.reload()
            return
        row = event.row
        local = next((item for item in self.data if _same_id(item.get("id"), row.get("id"))), None)

        if local is None and event.operation in ("update", "delete"):
            # A short page holds every row, so the last load already covered this change.
            if self._has_more:
                await self.reload()
            return

        if event.operation == "insert":
            if local is not None:
                return
            self.data.insert(0, dict(row))
            if len(self.data) > self.page_size:
                del self.data[self.page_size:]
                self._has_more = True
            if not row.get("read"):
                self.unread.increment()
        elif event.operation == "update":
            if row.get("read") and not local.get("read"):
                self.unread.decrement()
            elif not row.get("read") and local.get("read"):
                self.unread.increment()
            local.update(row)
        elif event.operation == "delete":
            self.data.remove(local)
            if not local.get("read"):
                self.unread.decrement()
        await self._changed()

    async def mark_all_read_locally(self) -> None:
        for item in self.data or []:
            item["read"] = True
        self.unread.reset()
        await self._changed()

    def render(self) -> Any:
        return {"items": self.data or [], "unread": self.unread.value}


_VIEW_TYPES: dict[ResourceKind, type[LiveView]] = {
    ResourceKind.GROUP_CHAT: GroupChatView,
    ResourceKind.POST_THREAD: ThreadView,
    ResourceKind.SESSION_LOBBY: LobbyView,
    ResourceKind.NOTIFICATIONS: NotificationFeedView,
    ResourceKind.DIRECT_PAIR: DirectMessageView,
}


def build_view(key: ResourceKey, viewer_id: UUID) -> LiveView:
    return _VIEW_TYPES[key.kind](key, viewer_id)


__all__ = [
    "DirectMessageView",
    "GroupChatView",
    "LiveView",
    "LobbyView",
    "MessageStreamView",
    "NotificationFeedView",
    "ThreadView",
    "build_view",
    "patch_rows",
]
