"""Tests for the viewer-relative connection state machine."""
from __future__ import annotations

import pytest
from sqlalchemy import select

from studyhub.errors import InvalidTransitionError, NotFoundError, ValidationError
from studyhub.models import Connection, Notification
from studyhub.services import connection_service
from studyhub.services.connection_service import (
    ConnectionStatus,
    apply_connection_action,
    connection_status,
    list_connections,
    list_pending_requests,
    search_with_status,
)


@pytest.fixture
def pair(profile_factory):
    return profile_factory("alan", "Alan Turing"), profile_factory("kurt", "Kurt Godel")


def _rows(db):
    return list(db.scalars(select(Connection)))


def test_send_is_seen_from_both_sides(db, pair):
    alan, kurt = pair

    view = apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")

    assert view.status is ConnectionStatus.PENDING_SENT
    assert connection_status(db, viewer_id=alan.id, other_id=kurt.id) is ConnectionStatus.PENDING_SENT
    assert connection_status(db, viewer_id=kurt.id, other_id=alan.id) is ConnectionStatus.PENDING_RECEIVED

    notifications = list(db.scalars(select(Notification)))
    assert [(n.recipient_id, n.title) for n in notifications] == [(kurt.id, "New Connection Request")]


def test_accept_notifies_requester(db, pair):
    alan, kurt = pair
    apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")

    view = apply_connection_action(db, viewer_id=kurt.id, other_id=alan.id, action="accept")

    assert view.status is ConnectionStatus.ACCEPTED
    assert connection_status(db, viewer_id=alan.id, other_id=kurt.id) is ConnectionStatus.ACCEPTED
    assert len(_rows(db)) == 1
    accepted = db.scalars(select(Notification).where(Notification.recipient_id == alan.id)).all()
    assert [n.title for n in accepted] == ["Connection Accepted"]
    assert [row.id for row in list_connections(db, user_id=kurt.id)] == [view.connection.id]


@pytest.mark.parametrize(
    ("actor", "action"),
    [("recipient", "reject"), ("requester", "cancel")],
)
def test_pending_request_can_be_withdrawn(db, pair, actor, action):
    alan, kurt = pair
    apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")
    viewer, other = (kurt, alan) if actor == "recipient" else (alan, kurt)

    view = apply_connection_action(db, viewer_id=viewer.id, other_id=other.id, action=action)

    assert view.status is ConnectionStatus.NONE
    assert _rows(db) == []


def test_remove_accepted_connection(db, pair):
    alan, kurt = pair
    apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")
    apply_connection_action(db, viewer_id=kurt.id, other_id=alan.id, action="accept")

    view = apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="remove")

    assert view.status is ConnectionStatus.NONE
    assert connection_status(db, viewer_id=kurt.id, other_id=alan.id) is ConnectionStatus.NONE


@pytest.mark.parametrize(
    ("viewer_is_requester", "action"),
    [
        (True, "accept"),
        (True, "reject"),
        (True, "send"),
        (False, "cancel"),
        (False, "send"),
        (False, "remove"),
    ],
)
def test_disallowed_actions_raise(db, pair, viewer_is_requester, action):
    alan, kurt = pair
    apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")
    viewer, other = (alan, kurt) if viewer_is_requester else (kurt, alan)

    with pytest.raises(InvalidTransitionError):
        apply_connection_action(db, viewer_id=viewer.id, other_id=other.id, action=action)
    assert len(_rows(db)) == 1


def test_accept_without_request_is_rejected(db, pair):
    alan, kurt = pair

    with pytest.raises(InvalidTransitionError):
        apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="accept")


def test_self_and_unknown_actions(db, pair):
    alan, kurt = pair

    with pytest.raises(ValidationError):
        apply_connection_action(db, viewer_id=alan.id, other_id=alan.id, action="send")
    with pytest.raises(ValidationError):
        apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="poke")


def test_crossing_requests_keep_one_row(db, pair, monkeypatch):
    alan, kurt = pair
    apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")

    # Kurt's client has not seen Alan's request yet and sends its own.
    original = connection_service.find_connection
    calls = {"count": 0}

    def stale_find(session, a, b):
        calls["count"] += 1
        if calls["count"] == 1:
            return None
        return original(session, a, b)

    monkeypatch.setattr(connection_service, "find_connection", stale_find)
    view = apply_connection_action(db, viewer_id=kurt.id, other_id=alan.id, action="send")

    assert view.status is ConnectionStatus.PENDING_RECEIVED
    assert len(_rows(db)) == 1
    assert _rows(db)[0].requester_id == alan.id


def test_accept_after_requester_cancelled_is_not_found(db, pair, monkeypatch):
    alan, kurt = pair
    apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")

    # Alan cancels between Kurt loading the request and accepting it.
    original = connection_service.find_connection

    def withdrawn_find(session, a, b):
        connection = original(session, a, b)
        if connection is not None:
            session.execute(Connection.__table__.delete().where(Connection.__table__.c.id == connection.id))
            session.commit()
        return connection

    monkeypatch.setattr(connection_service, "find_connection", withdrawn_find)

    with pytest.raises(NotFoundError) as excinfo:
        apply_connection_action(db, viewer_id=kurt.id, other_id=alan.id, action="accept")

    assert excinfo.value.detail == "Connection not found"
    assert _rows(db) == []


def test_pending_lists_split_by_direction(db, pair, profile_factory):
    alan, kurt = pair
    emmy = profile_factory("emmy", "Emmy Noether")
    apply_connection_action(db, viewer_id=alan.id, other_id=kurt.id, action="send")
    apply_connection_action(db, viewer_id=emmy.id, other_id=alan.id, action="send")

    incoming, outgoing = list_pending_requests(db, user_id=alan.id)

    assert [row.requester_id for row in incoming] == [emmy.id]
    assert [row.recipient_id for row in outgoing] == [kurt.id]


def test_search_tags_each_profile_with_status(db, pair, profile_factory):
    alan, kurt = pair
    kate = profile_factory("katherine", "Katherine Johnson")
    apply_connection_action(db, viewer_id=kate.id, other_id=alan.id, action="send")

    results = search_with_status(db, viewer_id=alan.id, query="k")

    assert [(profile.username, status) for profile, status in results] == [
        ("katherine", ConnectionStatus.PENDING_RECEIVED),
        ("kurt", ConnectionStatus.NONE),
    ]
    assert search_with_status(db, viewer_id=alan.id, query="   ") == []
