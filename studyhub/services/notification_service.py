"""Notification fan-out and unread bookkeeping."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import StrEnum
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, StudyHubError
from ..models import Notification, Profile
from .change_feed import change_feed
from .persistence import commit_or_raise, utcnow

logger = logging.getLogger(__name__)


class NotificationKind(StrEnum):
    CONNECTION_REQUEST = "connection.request"
    CONNECTION_ACCEPTED = "connection.accepted"
    POST_COMMENT = "post.comment"
    COMMENT_REPLY = "comment.reply"
    POST_REACTION = "reaction.post"
    COMMENT_REACTION = "reaction.comment"
    DIRECT_MESSAGE = "direct_message"
    JOIN_REQUEST = "join_request.new"
    JOIN_REQUEST_DECISION = "join_request.decision"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    """Something that happened to ``recipient_id`` because of ``actor_id``."""

    kind: NotificationKind
    actor_id: UUID | None
    recipient_id: UUID
    title: str
    body: str
    link: str | None = None
    payload: dict[str, Any] | None = None


class UnreadCounter:
    """Live unread total for one subscriber; never drops below zero."""

    def __init__(self, value: int = 0) -> None:
        self._value = max(0, int(value))

    @property
    def value(self) -> int:
        return self._value

    def increment(self) -> int:
        self._value += 1
        return self._value

    def decrement(self) -> int:
        self._value = max(0, self._value - 1)
        return self._value

    def reset(self) -> int:
        self._value = 0
        return self._value

    def set(self, value: int) -> int:
        self._value = max(0, int(value))
        return self._value

    def __int__(self) -> int:
        return self._value

    def __repr__(self) -> str:
        return f"UnreadCounter({self._value})"


def display_name(db: Session, user_id: UUID | None) -> str:
    if user_id is None:
        return "Someone"
    profile = db.get(Profile, user_id)
    if profile is None:
        return "Someone"
    return profile.display_name


def fan_out(db: Session, event: DomainEvent) -> Notification | None:
    """Persist one unread notification for the event's recipient.

    Actors are never notified about their own actions.
    """

    if event.actor_id is not None and event.actor_id == event.recipient_id:
        return None

    notification = Notification(
        recipient_id=event.recipient_id,
        actor_id=event.actor_id,
        kind=str(event.kind),
        title=event.title,
        body=event.body,
        link=event.link,
        payload=event.payload,
        read=False,
        created_at=utcnow(),
    )
    db.add(notification)
    commit_or_raise(
        db,
        conflict_detail="Notification already exists",
        failure_detail="Failed to store notification",
        missing_detail="Notification recipient does not exist",
    )
    db.refresh(notification)

    change_feed.publish_row("insert", notification)
    logger.info("Notification %s (%s) fanned out to %s", notification.id, event.kind, event.recipient_id)
    return notification


def notify(db: Session, event: DomainEvent) -> Notification | None:
    """Fan out without failing the action that triggered the event."""

    try:
        return fan_out(db, event)
    except StudyHubError as exc:
        logger.warning("Notification %s for %s dropped: %s", event.kind, event.recipient_id, exc.detail)
        return None


def list_notifications(db: Session, recipient_id: UUID, *, limit: int | None = None) -> list[Notification]:
    """Return notifications for the supplied recipient ordered newest first."""

    stmt = (
        select(Notification)
        .where(Notification.recipient_id == recipient_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    if limit is not None:
        stmt = stmt.limit(limit)
    return list(db.scalars(stmt))


def count_unread(db: Session, recipient_id: UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.read.is_(False))
    )
    return int(db.scalar(stmt) or 0)


def _owned_notification(db: Session, notification_id: UUID, recipient_id: UUID) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.recipient_id != recipient_id:
        raise NotFoundError("Notification not found")
    return notification


def mark_read(db: Session, *, notification_id: UUID, recipient_id: UUID) -> Notification:
    notification = _owned_notification(db, notification_id, recipient_id)
    if notification.read:
        return notification

    notification.read = True
    commit_or_raise(db, conflict_detail="Notification changed concurrently", failure_detail="Failed to mark notification read")
    db.refresh(notification)
    change_feed.publish_row("update", notification)
    return notification


def mark_all_read(db: Session, recipient_id: UUID) -> int:
    """Flip every unread notification of ``recipient_id``; other recipients are untouched."""

    unread_ids = list(
        db.scalars(
            select(Notification.id).where(
                Notification.recipient_id == recipient_id,
                Notification.read.is_(False),
            )
        )
    )
    if not unread_ids:
        return 0

    stmt = (
        update(Notification)
        .where(
            Notification.recipient_id == recipient_id,
            Notification.read.is_(False),
            Notification.id.in_(unread_ids),
        )
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    db.execute(stmt)
    commit_or_raise(db, conflict_detail="Notifications changed concurrently", failure_detail="Failed to mark notifications read")

    for notification in db.scalars(select(Notification).where(Notification.id.in_(unread_ids))):
        db.refresh(notification)
        change_feed.publish_row("update", notification)
    return len(unread_ids)


def delete_notification(db: Session, *, notification_id: UUID, recipient_id: UUID) -> None:
    notification = _owned_notification(db, notification_id, recipient_id)
    snapshot = {
        "id": notification.id,
        "recipient_id": notification.recipient_id,
        "read": notification.read,
    }
    db.delete(notification)
    commit_or_raise(db, conflict_detail="Notification changed concurrently", failure_detail="Failed to delete notification")
    change_feed.publish("notifications", "delete", snapshot)


def delete_old_notifications(db: Session, *, older_than: timedelta) -> int:
    """Remove notifications created before ``now - older_than``."""

    cutoff: datetime = datetime.now(timezone.utc) - older_than
    stmt = delete(Notification).where(Notification.created_at < cutoff).execution_options(synchronize_session=False)
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Notification cleanup failed")
        return 0
    return int(result.rowcount or 0)


__all__ = [
    "DomainEvent",
    "NotificationKind",
    "UnreadCounter",
    "count_unread",
    "delete_notification",
    "delete_old_notifications",
    "display_name",
    "fan_out",
    "list_notifications",
    "mark_all_read",
    "mark_read",
    "notify",
]
