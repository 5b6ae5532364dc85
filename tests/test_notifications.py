"""Tests for notification fan-out and unread bookkeeping."""
from __future__ import annotations

import uuid
from datetime import timedelta

import pytest
from sqlalchemy import select, update

from studyhub.errors import NotFoundError
from studyhub.models import Notification
from studyhub.services.group_service import decide_join_request, request_to_join
from studyhub.services.notification_service import (
    DomainEvent,
    NotificationKind,
    UnreadCounter,
    count_unread,
    delete_notification,
    delete_old_notifications,
    fan_out,
    list_notifications,
    mark_all_read,
    mark_read,
)
from studyhub.services.persistence import utcnow
from studyhub.services.thread_service import create_comment, create_post


def _event(actor, recipient, title="Ping"):
    return DomainEvent(
        kind=NotificationKind.DIRECT_MESSAGE,
        actor_id=actor.id if actor else None,
        recipient_id=recipient.id,
        title=title,
        body=f"{title} body",
    )


def test_actor_is_never_notified_about_own_action(db, profile_factory):
    ada = profile_factory("ada")

    assert fan_out(db, _event(ada, ada)) is None
    assert list_notifications(db, ada.id) == []


def test_fan_out_persists_unread_row(db, profile_factory):
    ada, grace = profile_factory("ada"), profile_factory("grace")

    notification = fan_out(db, _event(ada, grace))

    assert notification is not None
    assert notification.read is False
    assert notification.kind == "direct_message"
    assert count_unread(db, grace.id) == 1
    assert count_unread(db, ada.id) == 0


def test_system_events_without_actor_are_delivered(db, profile_factory):
    grace = profile_factory("grace")

    assert fan_out(db, _event(None, grace)) is not None


def test_mark_read_and_mark_all_read_stay_scoped(db, profile_factory):
    ada, grace, linus = profile_factory("ada"), profile_factory("grace"), profile_factory("linus")
    first = fan_out(db, _event(ada, grace, "one"))
    fan_out(db, _event(ada, grace, "two"))
    fan_out(db, _event(ada, grace, "three"))
    fan_out(db, _event(ada, linus, "other"))

    mark_read(db, notification_id=first.id, recipient_id=grace.id)
    assert count_unread(db, grace.id) == 2

    assert mark_all_read(db, grace.id) == 2
    assert count_unread(db, grace.id) == 0
    assert count_unread(db, linus.id) == 1
    assert mark_all_read(db, grace.id) == 0


def test_other_recipients_cannot_touch_a_notification(db, profile_factory):
    ada, grace = profile_factory("ada"), profile_factory("grace")
    notification = fan_out(db, _event(ada, grace))

    with pytest.raises(NotFoundError):
        mark_read(db, notification_id=notification.id, recipient_id=ada.id)
    with pytest.raises(NotFoundError):
        delete_notification(db, notification_id=notification.id, recipient_id=ada.id)
    with pytest.raises(NotFoundError):
        delete_notification(db, notification_id=uuid.uuid4(), recipient_id=grace.id)

    delete_notification(db, notification_id=notification.id, recipient_id=grace.id)
    assert list_notifications(db, grace.id) == []


def test_list_is_newest_first_and_limited(db, profile_factory):
    ada, grace = profile_factory("ada"), profile_factory("grace")
    for title in ("one", "two", "three"):
        fan_out(db, _event(ada, grace, title))

    titles = [n.title for n in list_notifications(db, grace.id, limit=2)]

    assert titles == ["three", "two"]


def test_unread_counter_never_goes_negative():
    counter = UnreadCounter(1)

    assert counter.decrement() == 0
    assert counter.decrement() == 0
    assert counter.increment() == 1
    assert UnreadCounter(-4).value == 0
    assert counter.set(-1) == 0


def test_old_notifications_are_cleaned_up(db, profile_factory):
    ada, grace = profile_factory("ada"), profile_factory("grace")
    stale = fan_out(db, _event(ada, grace, "stale"))
    fan_out(db, _event(ada, grace, "fresh"))
    db.execute(
        update(Notification)
        .where(Notification.id == stale.id)
        .values(created_at=utcnow() - timedelta(days=45))
        .execution_options(synchronize_session=False)
    )
    db.commit()

    assert delete_old_notifications(db, older_than=timedelta(days=30)) == 1
    db.expire_all()
    assert [n.title for n in list_notifications(db, grace.id)] == ["fresh"]


def test_comment_notifies_post_author_and_reply_notifies_parent_author(db, profile_factory, group_factory):
    ada, grace, linus = profile_factory("ada"), profile_factory("grace"), profile_factory("linus")
    group = group_factory("Kernels", admins=(ada,), members=(grace, linus))
    post = create_post(db, group_id=group.id, author_id=ada.id, title="Schedulers", body="CFS or EEVDF?")

    top = create_comment(db, post_id=post.id, author_id=grace.id, body="EEVDF")
    create_comment(db, post_id=post.id, author_id=linus.id, body="Agreed", parent_comment_id=top.id)
    create_comment(db, post_id=post.id, author_id=ada.id, body="Thanks")

    rows = db.scalars(select(Notification).order_by(Notification.created_at)).all()
    assert [(row.recipient_id, row.title) for row in rows] == [
        (ada.id, "New Comment"),
        (grace.id, "New Reply"),
    ]


def test_join_request_flow_notifies_admins_then_requester(db, profile_factory, group_factory):
    ada, grace = profile_factory("ada"), profile_factory("grace")
    group = group_factory("Topology", admins=(ada,))

    request = request_to_join(db, group_id=group.id, user_id=grace.id)
    assert [n.title for n in list_notifications(db, ada.id)] == ["New Join Request"]

    decided = decide_join_request(db, request_id=request.id, admin_id=ada.id, approve=True)

    assert decided.status == "approved"
    assert [n.title for n in list_notifications(db, grace.id)] == ["Request Approved"]
