"""Tests for the live channel manager and the live views it drives."""
from __future__ import annotations

import asyncio
import uuid
from typing import Any

import pytest

from studyhub.errors import NotFoundError, PermissionDeniedError, ValidationError
from studyhub.services.change_feed import ChangeEvent, ChangeFeed, ChannelFilter
from studyhub.services.channels import ChannelSubscriptionManager, ResourceKey, ResourceKind, SubscriptionState
from studyhub.services.live_views import LiveView, MessageStreamView, NotificationFeedView, build_view
from studyhub.services.reaction_service import toggle_reaction
from studyhub.services.thread_service import create_comment, create_post

VIEWER = uuid.uuid4()


async def _settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


async def _wait_for(predicate, timeout: float = 5.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


class ChatStub(MessageStreamView):
    """Group chat stream backed by an in-memory loader instead of the database."""

    def filters(self) -> tuple[ChannelFilter, ...]:
        return (ChannelFilter("group_messages", match={"group_id": self.key.ident}),)

    async def authorize(self) -> None:
        if self.key.ident == "forbidden":
            raise PermissionDeniedError("Group membership required")


class Loads:
    """Async loader recording every call; optional gates hold individual loads open."""

    def __init__(self, *results: Any) -> None:
        self.results = list(results)
        self.calls = 0
        self.gates: dict[int, asyncio.Event] = {}

    async def __call__(self, view: LiveView) -> Any:
        self.calls += 1
        call = self.calls
        gate = self.gates.get(call)
        if gate is not None:
            await gate.wait()
        result = self.results[min(call, len(self.results)) - 1]
        if isinstance(result, Exception):
            raise result
        return [dict(row) for row in result] if isinstance(result, list) else result


def _manager(feed: ChangeFeed, loads: Loads, views: list[LiveView] | None = None) -> ChannelSubscriptionManager:
    def factory(key: ResourceKey, viewer_id: uuid.UUID) -> LiveView:
        view = ChatStub(key, viewer_id, loader=loads)
        if views is not None:
            views.append(view)
        return view

    return ChannelSubscriptionManager(VIEWER, view_factory=factory, feed=feed)


def _chat_key(ident: str = "room-a") -> ResourceKey:
    return ResourceKey(ResourceKind.GROUP_CHAT, ident)


def test_resource_key_for_viewer_normalises_input():
    other = uuid.uuid4()

    pair = ResourceKey.for_viewer("direct_pair", str(other), VIEWER)
    assert pair == ResourceKey.direct_pair(other, VIEWER)
    assert set(pair.pair()) == {other, VIEWER}
    assert ResourceKey.for_viewer("notifications", None, VIEWER).ident == str(VIEWER)


@pytest.mark.parametrize(("kind", "ident"), [("timeline", str(uuid.uuid4())), ("group_chat", "not-a-uuid"), ("group_chat", None)])
def test_resource_key_rejects_bad_input(kind, ident):
    with pytest.raises(ValidationError):
        ResourceKey.for_viewer(kind, ident, VIEWER)


def test_reopening_same_key_keeps_one_subscription():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        loads = Loads([{"id": 1, "group_id": "room-a", "body": "hi"}])
        manager = _manager(feed, loads)

        first = await manager.open(_chat_key())
        second = await manager.open(_chat_key())

        assert first is second
        assert loads.calls == 1
        assert feed.subscriber_count == 1
        assert manager.active_keys() == [_chat_key()]

        await manager.close_all()
        assert feed.subscriber_count == 0
        assert first.state is SubscriptionState.UNSUBSCRIBED

    asyncio.run(scenario())


def test_switching_keys_disposes_previous_handle():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        manager = _manager(feed, Loads([]))

        old = await manager.open(_chat_key("room-a"))
        new = await manager.open(_chat_key("room-b"))

        assert old.disposed
        assert not old.view.active
        assert manager.get(ResourceKind.GROUP_CHAT) is new
        assert feed.subscriber_count == 1
        assert feed.publish("group_messages", "insert", {"id": 1, "group_id": "room-a"}) == 0
        assert feed.publish("group_messages", "insert", {"id": 2, "group_id": "room-b"}) == 1

        await manager.close_all()

    asyncio.run(scenario())


def test_dispose_is_idempotent():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        manager = _manager(feed, Loads([]))
        handle = await manager.open(_chat_key())

        await handle.dispose()
        await handle.dispose()
        await manager.close(ResourceKind.GROUP_CHAT)
        await manager.close(ResourceKind.GROUP_CHAT)

        assert feed.subscriber_count == 0
        assert manager.get(ResourceKind.GROUP_CHAT) is None

    asyncio.run(scenario())


def test_events_patch_stream_in_order_and_dedupe():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        manager = _manager(feed, Loads([{"id": 1, "group_id": "room-a", "body": "first"}]))
        handle = await manager.open(_chat_key())
        versions = []

        async def listener(view):
            versions.append(view.version)

        handle.view.add_listener(listener)
        feed.publish("group_messages", "insert", {"id": 2, "group_id": "room-a", "body": "second"})
        feed.publish("group_messages", "insert", {"id": 2, "group_id": "room-a", "body": "second"})
        feed.publish("group_messages", "update", {"id": 1, "group_id": "room-a", "body": "edited"})
        feed.publish("group_messages", "delete", {"id": 3, "group_id": "room-a"})
        await _settle()

        assert [row["body"] for row in handle.view.data] == ["edited", "second"]
        assert len(versions) == 2
        await manager.close_all()

    asyncio.run(scenario())


def test_stale_load_within_a_view_is_discarded():
    async def scenario():
        loads = Loads("old", "new")
        loads.gates[1] = asyncio.Event()
        view = LiveView(_chat_key(), VIEWER, loader=loads)

        slow = asyncio.create_task(view.reload())
        await _settle()
        assert await view.reload() is True
        loads.gates[1].set()

        assert await slow is False
        assert view.data == "new"
        assert view.version == 1

    asyncio.run(scenario())


def test_load_for_replaced_handle_never_lands():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        loads = Loads([{"id": "stale"}], [{"id": "fresh"}])
        loads.gates[1] = asyncio.Event()
        views: list[LiveView] = []
        manager = _manager(feed, loads, views)

        opening = asyncio.create_task(manager.open(_chat_key("room-a")))
        await _settle()
        fresh = await manager.open(_chat_key("room-b"))
        loads.gates[1].set()
        stale = await opening

        assert stale.disposed
        assert views[0].data is None
        assert views[0].version == 0
        assert fresh.view.data == [{"id": "fresh"}]
        assert manager.get(ResourceKind.GROUP_CHAT) is fresh
        await manager.close_all()

    asyncio.run(scenario())


def test_failed_load_leaves_view_in_error_state():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        manager = _manager(feed, Loads(NotFoundError("Group not found")))

        handle = await manager.open(_chat_key())

        assert handle.view.error == "Group not found"
        assert handle.view.loading is False
        assert handle.view.snapshot()["error"] == "Group not found"
        await manager.close_all()

    asyncio.run(scenario())


def test_refused_authorization_leaves_slot_empty():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        manager = _manager(feed, Loads([]))

        with pytest.raises(PermissionDeniedError):
            await manager.open(_chat_key("forbidden"))

        assert manager.get(ResourceKind.GROUP_CHAT) is None
        assert feed.subscriber_count == 0

    asyncio.run(scenario())


def test_event_handler_failure_is_reported_on_the_view():
    class BrokenChat(ChatStub):
        async def handle_event(self, event: ChangeEvent) -> None:
            raise RuntimeError("patch exploded")

    async def scenario():
        feed = ChangeFeed(maxsize=8)
        loads = Loads([])
        manager = ChannelSubscriptionManager(
            VIEWER,
            view_factory=lambda key, viewer: BrokenChat(key, viewer, loader=loads),
            feed=feed,
        )
        handle = await manager.open(_chat_key())

        feed.publish("group_messages", "insert", {"id": 1, "group_id": "room-a"})
        await _settle()

        assert handle.view.error == "patch exploded"
        assert handle.state is SubscriptionState.SUBSCRIBED
        await manager.close_all()

    asyncio.run(scenario())


def test_overflowing_subscriber_resyncs_with_a_full_reload():
    async def scenario():
        feed = ChangeFeed(maxsize=2)
        loads = Loads([], [{"id": n, "group_id": "room-a"} for n in range(5)])
        manager = _manager(feed, loads)
        handle = await manager.open(_chat_key())

        for n in range(5):
            feed.publish("group_messages", "insert", {"id": n, "group_id": "room-a"})
        await _settle()

        assert loads.calls == 2
        assert [row["id"] for row in handle.view.data] == [0, 1, 2, 3, 4]
        await manager.close_all()

    asyncio.run(scenario())


def test_notification_feed_keeps_unread_counter_consistent():
    async def scenario():
        loads = Loads({"items": [{"id": "n1", "read": False}, {"id": "n2", "read": True}], "unread": 1})
        key = ResourceKey(ResourceKind.NOTIFICATIONS, str(VIEWER))
        view = NotificationFeedView(key, VIEWER, loader=loads)
        await view.reload()

        async def send(operation, row):
            await view.handle_event(ChangeEvent(table="notifications", operation=operation, row=row))
            return view.unread.value

        assert await send("insert", {"id": "n3", "read": False}) == 2
        assert await send("insert", {"id": "n3", "read": False}) == 2
        assert [item["id"] for item in view.render()["items"]] == ["n3", "n1", "n2"]
        assert await send("update", {"id": "n1", "read": True}) == 1
        assert await send("update", {"id": "n1", "read": True}) == 1
        assert await send("delete", {"id": "n3", "read": False}) == 0
        assert await send("delete", {"id": "n2", "read": True}) == 0
        assert await send("update", {"id": "unknown", "read": True}) == 0

        await send("insert", {"id": "n4", "read": False})
        await view.mark_all_read_locally()
        assert view.render()["unread"] == 0
        assert all(item["read"] for item in view.render()["items"])

    asyncio.run(scenario())


def test_thread_view_follows_new_comments_and_their_reactions(db, profile_factory, group_factory):
    ada, grace = profile_factory("ada"), profile_factory("grace")
    group = group_factory("Databases", admins=(ada,), members=(grace,))
    post = create_post(db, group_id=group.id, author_id=ada.id, title="Indexes", body="B-tree or LSM?")

    async def scenario():
        manager = ChannelSubscriptionManager(grace.id, view_factory=build_view)
        handle = await manager.open(ResourceKey(ResourceKind.POST_THREAD, str(post.id)))
        view = handle.view
        assert view.data["comment_count"] == 0
        assert view.data["post"]["reactions"]["like"] == 0

        toggle_reaction(db, target_kind="post", target_id=post.id, actor_id=grace.id, kind="like")
        await _wait_for(lambda: view.data["post"]["reactions"]["like"] == 1)
        assert view.data["post"]["viewer_reactions"] == ["like"]

        comment = create_comment(db, post_id=post.id, author_id=ada.id, body="LSM for writes")
        toggle_reaction(db, target_kind="comment", target_id=comment.id, actor_id=grace.id, kind="helpful")

        def comment_helpful() -> bool:
            comments = view.data["comments"]
            return bool(comments) and comments[0]["reactions"]["helpful"] == 1

        await _wait_for(comment_helpful)
        assert str(view.data["comments"][0]["id"]) == str(comment.id)
        await manager.close_all()

    asyncio.run(scenario())


def test_thread_view_refuses_non_members(db, profile_factory, group_factory):
    ada, outsider = profile_factory("ada"), profile_factory("mallory")
    group = group_factory("Private", admins=(ada,))
    post = create_post(db, group_id=group.id, author_id=ada.id, title="Secret", body="Members only")

    async def scenario():
        manager = ChannelSubscriptionManager(outsider.id, view_factory=build_view)
        with pytest.raises(PermissionDeniedError):
            await manager.open(ResourceKey(ResourceKind.POST_THREAD, str(post.id)))
        assert manager.active_keys() == []

    asyncio.run(scenario())


class FeedStub(NotificationFeedView):
    """Notification feed with an in-memory loader and no database access check."""

    async def authorize(self) -> None:
        return None


def test_changes_queued_during_initial_load_do_not_skew_unread_counter():
    async def scenario():
        feed = ChangeFeed(maxsize=8)
        recipient = str(VIEWER)
        loads = Loads({"items": [{"id": "n1", "recipient_id": recipient, "read": False}], "unread": 1})
        loads.gates[1] = asyncio.Event()
        manager = ChannelSubscriptionManager(
            VIEWER,
            view_factory=lambda key, viewer: FeedStub(key, viewer, loader=loads),
            feed=feed,
        )

        opening = asyncio.create_task(manager.open(ResourceKey(ResourceKind.NOTIFICATIONS, recipient)))
        await _settle()
        # Both commits land before the load's query runs, so its count already reflects them.
        feed.publish("notifications", "delete", {"id": "n0", "recipient_id": recipient, "read": False})
        feed.publish("notifications", "update", {"id": "n9", "recipient_id": recipient, "read": True})
        loads.gates[1].set()
        handle = await opening
        await _settle()

        assert handle.view.unread.value == 1
        assert [item["id"] for item in handle.view.data] == ["n1"]
        assert loads.calls == 1
        await manager.close_all()

    asyncio.run(scenario())


def test_changes_outside_a_full_page_recount_from_a_reload():
    async def scenario():
        key = ResourceKey(ResourceKind.NOTIFICATIONS, str(VIEWER))
        loads = Loads(
            {"items": [{"id": "n2", "read": False}, {"id": "n1", "read": True}], "unread": 3},
            {"items": [{"id": "n2", "read": False}, {"id": "n1", "read": True}], "unread": 2},
        )
        view = FeedStub(key, VIEWER, loader=loads)
        view.page_size = 2
        await view.reload()

        await view.handle_event(ChangeEvent(table="notifications", operation="delete", row={"id": "n0", "read": False}))

        assert loads.calls == 2
        assert view.unread.value == 2

    asyncio.run(scenario())


def test_pushed_notifications_keep_the_feed_to_one_page():
    async def scenario():
        key = ResourceKey(ResourceKind.NOTIFICATIONS, str(VIEWER))
        loads = Loads({"items": [{"id": "n1", "read": True}], "unread": 0})
        view = FeedStub(key, VIEWER, loader=loads)
        view.page_size = 2
        await view.reload()

        for ident in ("n2", "n3", "n4"):
            await view.handle_event(ChangeEvent(table="notifications", operation="insert", row={"id": ident, "read": False}))

        assert [item["id"] for item in view.data] == ["n4", "n3"]
        assert view.unread.value == 3

    asyncio.run(scenario())
