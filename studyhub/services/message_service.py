"""Group chat, direct message and session lobby chat services."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..models import DirectMessage, GroupMessage, Profile, SessionChatMessage, StudySession
from .change_feed import change_feed, row_to_dict
from .group_service import is_scope_admin, require_membership
from .notification_service import DomainEvent, NotificationKind, display_name, notify
from .persistence import commit_or_raise, require_text, utcnow

logger = logging.getLogger(__name__)

_PREVIEW_LENGTH = 80


def _preview(text: str) -> str:
    return text if len(text) <= _PREVIEW_LENGTH else text[: _PREVIEW_LENGTH - 1] + "…"


def send_group_message(
    db: Session,
    *,
    group_id: UUID,
    author_id: UUID,
    body: str,
    reply_to_id: UUID | None = None,
) -> GroupMessage:
    text = require_text(body, field_name="Message")
    require_membership(db, group_id, author_id)
    if reply_to_id is not None:
        parent = db.get(GroupMessage, reply_to_id)
        if parent is None or parent.group_id != group_id:
            raise NotFoundError("Reply target not found")

    message = GroupMessage(
        group_id=group_id,
        author_id=author_id,
        body=text,
        kind="text",
        reply_to_id=reply_to_id,
        created_at=utcnow(),
    )
    db.add(message)
    commit_or_raise(db, conflict_detail="Message already exists", failure_detail="Failed to send message")
    db.refresh(message)
    change_feed.publish_row("insert", message)
    return message


def list_group_messages(db: Session, *, group_id: UUID, viewer_id: UUID, limit: int = 200) -> list[GroupMessage]:
    require_membership(db, group_id, viewer_id)
    stmt = (
        select(GroupMessage)
        .where(GroupMessage.group_id == group_id)
        .order_by(GroupMessage.created_at.desc(), GroupMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(list(db.scalars(stmt))))


def edit_group_message(db: Session, *, message_id: UUID, editor_id: UUID, body: str) -> GroupMessage:
    message = db.get(GroupMessage, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.author_id != editor_id:
        raise PermissionDeniedError("Only the author can edit this message")
    message.body = require_text(body, field_name="Message")
    message.edited_at = utcnow()
    commit_or_raise(db, conflict_detail="Message changed concurrently", failure_detail="Failed to edit message")
    db.refresh(message)
    change_feed.publish_row("update", message)
    return message


def delete_group_message(db: Session, *, message_id: UUID, actor_id: UUID) -> None:
    message = db.get(GroupMessage, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.author_id != actor_id and not is_scope_admin(db, message.group_id, actor_id):
        raise PermissionDeniedError("Only the author or a group admin can delete this message")
    snapshot = row_to_dict(message)
    db.delete(message)
    commit_or_raise(db, conflict_detail="Message changed concurrently", failure_detail="Failed to delete message")
    change_feed.publish("group_messages", "delete", snapshot)


def send_direct_message(db: Session, *, sender_id: UUID, recipient_id: UUID, body: str) -> DirectMessage:
    text = require_text(body, field_name="Message")
    if sender_id == recipient_id:
        raise ValidationError("Cannot message yourself")
    if db.get(Profile, recipient_id) is None:
        raise NotFoundError("Recipient not found")

    message = DirectMessage(sender_id=sender_id, recipient_id=recipient_id, body=text, read=False, created_at=utcnow())
    db.add(message)
    commit_or_raise(db, conflict_detail="Message already exists", failure_detail="Failed to send message")
    db.refresh(message)
    change_feed.publish_row("insert", message)

    notify(
        db,
        DomainEvent(
            kind=NotificationKind.DIRECT_MESSAGE,
            actor_id=sender_id,
            recipient_id=recipient_id,
            title="New Message",
            body=f"{display_name(db, sender_id)}: {_preview(text)}",
            link=f"/messages/{sender_id}",
            payload={"message_id": str(message.id)},
        ),
    )
    return message


def _pair_clause(a: UUID, b: UUID):
    return or_(
        and_(DirectMessage.sender_id == a, DirectMessage.recipient_id == b),
        and_(DirectMessage.sender_id == b, DirectMessage.recipient_id == a),
    )


def list_direct_messages(db: Session, *, viewer_id: UUID, other_id: UUID, limit: int = 200) -> list[DirectMessage]:
    stmt = (
        select(DirectMessage)
        .where(_pair_clause(viewer_id, other_id))
        .order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(list(db.scalars(stmt))))


def mark_conversation_read(db: Session, *, viewer_id: UUID, other_id: UUID) -> int:
    """Flag every message ``other_id`` sent to the viewer as read."""

    unread_ids = list(
        db.scalars(
            select(DirectMessage.id).where(
                DirectMessage.sender_id == other_id,
                DirectMessage.recipient_id == viewer_id,
                DirectMessage.read.is_(False),
            )
        )
    )
    if not unread_ids:
        return 0
    db.execute(
        update(DirectMessage)
        .where(DirectMessage.id.in_(unread_ids))
        .values(read=True)
        .execution_options(synchronize_session=False)
    )
    commit_or_raise(db, conflict_detail="Messages changed concurrently", failure_detail="Failed to mark messages read")
    for message in db.scalars(select(DirectMessage).where(DirectMessage.id.in_(unread_ids))):
        db.refresh(message)
        change_feed.publish_row("update", message)
    return len(unread_ids)


def delete_direct_message(db: Session, *, message_id: UUID, actor_id: UUID) -> None:
    message = db.get(DirectMessage, message_id)
    if message is None or message.sender_id != actor_id:
        raise NotFoundError("Message not found")
    snapshot = row_to_dict(message)
    db.delete(message)
    commit_or_raise(db, conflict_detail="Message changed concurrently", failure_detail="Failed to delete message")
    change_feed.publish("direct_messages", "delete", snapshot)


def _session_or_404(db: Session, session_id: UUID) -> StudySession:
    study_session = db.get(StudySession, session_id)
    if study_session is None:
        raise NotFoundError("Study session not found")
    return study_session


def send_session_chat(db: Session, *, session_id: UUID, author_id: UUID, body: str) -> SessionChatMessage:
    text = require_text(body, field_name="Message")
    study_session = _session_or_404(db, session_id)
    require_membership(db, study_session.group_id, author_id)

    message = SessionChatMessage(session_id=session_id, author_id=author_id, body=text, kind="text", created_at=utcnow())
    db.add(message)
    commit_or_raise(db, conflict_detail="Message already exists", failure_detail="Failed to send message")
    db.refresh(message)
    change_feed.publish_row("insert", message)
    return message


def list_session_chat(db: Session, *, session_id: UUID, limit: int = 200) -> list[SessionChatMessage]:
    stmt = (
        select(SessionChatMessage)
        .where(SessionChatMessage.session_id == session_id)
        .order_by(SessionChatMessage.created_at.desc(), SessionChatMessage.id.desc())
        .limit(limit)
    )
    return list(reversed(list(db.scalars(stmt))))


__all__ = [
    "delete_direct_message",
    "delete_group_message",
    "edit_group_message",
    "list_direct_messages",
    "list_group_messages",
    "list_session_chat",
    "mark_conversation_read",
    "send_direct_message",
    "send_group_message",
    "send_session_chat",
]
