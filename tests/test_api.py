"""HTTP and WebSocket integration tests for the StudyHub API."""
from __future__ import annotations

import asyncio
import threading
import uuid
from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from studyhub.main import app
from studyhub.models import Profile
from studyhub.routers import realtime
from studyhub.services import create_access_token, get_current_user
from studyhub.services.change_feed import ChannelFilter
from studyhub.services.live_views import LiveView
from studyhub.services.notification_service import DomainEvent, NotificationKind, fan_out


@pytest.fixture
def client() -> Iterator[TestClient]:
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def authed_client(client: TestClient) -> Callable[[Profile], TestClient]:
    def _with_user(user: Profile) -> TestClient:
        app.dependency_overrides[get_current_user] = lambda: user
        return client
    return _with_user


@pytest.fixture
def study_group(profile_factory, group_factory):
    ada, grace = profile_factory("ada", "Ada Lovelace"), profile_factory("grace", "Grace Hopper")
    outsider = profile_factory("mallory")
    return ada, grace, outsider, group_factory("Analytical Engines", admins=(ada,), members=(grace,))


def test_bearer_token_is_required(client: TestClient):
    response = client.get("/notifications/")
    assert response.status_code == 401

    response = client.get("/notifications/", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_bearer_token_resolves_profile(client: TestClient, profile_factory):
    ada = profile_factory("ada")
    token = create_access_token(ada.id)

    response = client.get("/notifications/summary", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 200
    assert response.json() == {"unread_count": 0}


def test_thread_endpoint_returns_nested_comments(authed_client, study_group):
    ada, grace, _, group = study_group
    client = authed_client(ada)
    post = client.post("/posts/", json={"group_id": str(group.id), "title": "Loops", "body": "Bernoulli numbers"})
    assert post.status_code == 201
    post_id = post.json()["id"]

    client = authed_client(grace)
    top = client.post(f"/posts/{post_id}/comments", json={"body": "Note G"}).json()
    client.post(f"/posts/{post_id}/comments", json={"body": "Agreed", "parent_comment_id": top["id"]})
    client.post(f"/posts/{post_id}/reactions", json={"kind": "insightful"})
    vote = client.post(f"/posts/{post_id}/votes", json={"direction": "up"})
    assert vote.json()["score"] == 1

    thread = client.get(f"/posts/{post_id}/thread")

    assert thread.status_code == 200
    body = thread.json()
    assert body["comment_count"] == 2
    assert body["post"]["reactions"]["insightful"] == 1
    assert body["post"]["viewer_reactions"] == ["insightful"]
    assert body["post"]["score"] == 1
    [root] = body["comments"]
    assert root["depth"] == 1
    assert root["can_reply"] is True
    assert [reply["body"] for reply in root["replies"]] == ["Agreed"]
    assert root["replies"][0]["depth"] == 2


def test_domain_errors_map_to_status_codes(authed_client, study_group):
    ada, _, outsider, group = study_group
    client = authed_client(ada)
    post_id = client.post("/posts/", json={"group_id": str(group.id), "title": "Q", "body": "B"}).json()["id"]

    blank = client.post(f"/posts/{post_id}/comments", json={"body": "   "})
    assert blank.status_code == 422
    assert blank.json() == {"detail": "Comment cannot be empty"}

    missing_parent = client.post(
        f"/posts/{post_id}/comments",
        json={"body": "reply", "parent_comment_id": "00000000-0000-0000-0000-000000000000"},
    )
    assert missing_parent.status_code == 404

    forbidden = authed_client(outsider).get(f"/posts/{post_id}/thread")
    assert forbidden.status_code == 403


def test_notification_endpoints(authed_client, study_group, db):
    ada, grace, _, _ = study_group
    for title in ("one", "two"):
        fan_out(
            db,
            DomainEvent(kind=NotificationKind.DIRECT_MESSAGE, actor_id=ada.id, recipient_id=grace.id, title=title, body=title),
        )
    client = authed_client(grace)

    listing = client.get("/notifications/").json()
    assert [item["title"] for item in listing["items"]] == ["two", "one"]
    assert listing["unread_count"] == 2

    first_id = listing["items"][0]["id"]
    assert client.post(f"/notifications/{first_id}/read").json()["read"] is True
    assert client.get("/notifications/summary").json() == {"unread_count": 1}
    assert client.post("/notifications/read-all").json() == {"updated": 1}
    assert authed_client(ada).delete(f"/notifications/{first_id}").status_code == 404
    assert authed_client(grace).delete(f"/notifications/{first_id}").status_code == 204


def test_poll_endpoints_report_tallies(authed_client, study_group, session_factory):
    ada, grace, _, group = study_group
    study_session = session_factory(group)
    client = authed_client(ada)
    created = client.post(
        f"/sessions/{study_session.id}/polls",
        json={"question": "Next topic?", "options": ["Loops", "Subroutines"]},
    )
    assert created.status_code == 201
    poll_id = created.json()["poll_id"]

    tally = authed_client(grace).post(f"/sessions/polls/{poll_id}/votes", json={"option_id": "opt-1"}).json()

    assert tally["total_votes"] == 1
    assert [option["percentage"] for option in tally["options"]] == [0.0, 100.0]
    assert tally["viewer_selection"] == ["opt-1"]


def test_live_socket_streams_notification_feed(client: TestClient, study_group, db):
    ada, grace, _, _ = study_group
    token = create_access_token(grace.id)

    with client.websocket_connect(f"/ws/live?token={token}") as websocket:
        assert websocket.receive_json() == {"type": "ready", "viewer_id": str(grace.id)}

        websocket.send_json({"type": "open", "resource": "notifications"})
        snapshot = websocket.receive_json()
        assert snapshot["type"] == "snapshot"
        assert snapshot["resource"] == "notifications"
        assert snapshot["data"] == {"items": [], "unread": 0}

        fan_out(
            db,
            DomainEvent(kind=NotificationKind.DIRECT_MESSAGE, actor_id=ada.id, recipient_id=grace.id, title="Hi", body="Hi"),
        )
        pushed = websocket.receive_json()
        assert pushed["data"]["unread"] == 1
        assert [item["title"] for item in pushed["data"]["items"]] == ["Hi"]

        websocket.send_json({"type": "ping"})
        assert websocket.receive_json() == {"type": "pong"}

        websocket.send_json({"type": "open", "resource": "timeline", "id": str(grace.id)})
        error = websocket.receive_json()
        assert error["type"] == "error"


def test_live_socket_rejects_invalid_token(client: TestClient):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/live?token=bogus") as websocket:
            websocket.receive_json()


class SlowThreadView(LiveView):
    """Thread view whose load blocks until the test releases it."""

    def filters(self) -> tuple[ChannelFilter, ...]:
        return (ChannelFilter("posts", match={"id": self.key.ident}),)

    async def authorize(self) -> None:
        return None


def test_live_socket_stays_responsive_while_a_load_is_pending(client: TestClient, profile_factory, monkeypatch):
    grace = profile_factory("grace")
    token = create_access_token(grace.id)
    started, release = threading.Event(), threading.Event()
    finished: list[str] = []

    async def slow_load(view: LiveView) -> dict[str, str]:
        started.set()
        await asyncio.to_thread(release.wait, 5)
        finished.append(view.key.ident)
        return {"title": "late"}

    monkeypatch.setattr(realtime, "build_view", lambda key, viewer: SlowThreadView(key, viewer, loader=slow_load))

    try:
        with client.websocket_connect(f"/ws/live?token={token}") as websocket:
            assert websocket.receive_json()["type"] == "ready"

            websocket.send_json({"type": "open", "resource": "post_thread", "id": str(uuid.uuid4())})
            assert started.wait(5)

            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}

            websocket.send_json({"type": "close", "resource": "post_thread"})
            assert websocket.receive_json() == {"type": "closed", "resource": "post_thread"}

            release.set()
            websocket.send_json({"type": "ping"})
            assert websocket.receive_json() == {"type": "pong"}
    finally:
        release.set()

    assert finished == []
