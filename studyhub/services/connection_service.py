"""Viewer-relative connection state machine over a single row per pair."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import Connection, Profile
from .change_feed import change_feed, row_to_dict
from .notification_service import DomainEvent, NotificationKind, display_name, notify
from .persistence import commit_or_raise, utcnow

logger = logging.getLogger(__name__)


class ConnectionStatus(StrEnum):
    NONE = "none"
    PENDING_SENT = "pending_sent"
    PENDING_RECEIVED = "pending_received"
    ACCEPTED = "accepted"


class ConnectionAction(StrEnum):
    SEND = "send"
    ACCEPT = "accept"
    REJECT = "reject"
    CANCEL = "cancel"
    REMOVE = "remove"


# (from, action) -> to
TRANSITIONS: dict[tuple[ConnectionStatus, ConnectionAction], ConnectionStatus] = {
    (ConnectionStatus.NONE, ConnectionAction.SEND): ConnectionStatus.PENDING_SENT,
    (ConnectionStatus.PENDING_RECEIVED, ConnectionAction.ACCEPT): ConnectionStatus.ACCEPTED,
    (ConnectionStatus.PENDING_RECEIVED, ConnectionAction.REJECT): ConnectionStatus.NONE,
    (ConnectionStatus.PENDING_SENT, ConnectionAction.CANCEL): ConnectionStatus.NONE,
    (ConnectionStatus.ACCEPTED, ConnectionAction.REMOVE): ConnectionStatus.NONE,
}


@dataclass(frozen=True, slots=True)
class ConnectionView:
    other_id: UUID
    status: ConnectionStatus
    connection: Connection | None


def _ordered_pair(a: UUID, b: UUID) -> tuple[UUID, UUID]:
    return (a, b) if str(a) < str(b) else (b, a)


def derive_status(row: Connection | None, viewer_id: UUID) -> ConnectionStatus:
    """Status of ``row`` as seen from ``viewer_id``; the same row reads differently per side."""

    if row is None or not row.involves(viewer_id):
        return ConnectionStatus.NONE
    if row.status == "accepted":
        return ConnectionStatus.ACCEPTED
    if row.requester_id == viewer_id:
        return ConnectionStatus.PENDING_SENT
    return ConnectionStatus.PENDING_RECEIVED


def find_connection(db: Session, a: UUID, b: UUID) -> Connection | None:
    low, high = _ordered_pair(a, b)
    stmt = select(Connection).where(and_(Connection.pair_low == low, Connection.pair_high == high))
    return db.scalars(stmt).first()


def connection_status(db: Session, *, viewer_id: UUID, other_id: UUID) -> ConnectionStatus:
    return derive_status(find_connection(db, viewer_id, other_id), viewer_id)


def _insert_request(db: Session, *, requester_id: UUID, recipient_id: UUID) -> Connection:
    low, high = _ordered_pair(requester_id, recipient_id)
    connection = Connection(
        requester_id=requester_id,
        recipient_id=recipient_id,
        pair_low=low,
        pair_high=high,
        status="pending",
        created_at=utcnow(),
        updated_at=utcnow(),
    )
    db.add(connection)
    commit_or_raise(
        db,
        conflict_detail="Connection already exists",
        failure_detail="Failed to send connection request",
        missing_detail="User not found",
    )
    db.refresh(connection)
    return connection


def _delete_connection(db: Session, connection: Connection) -> None:
    snapshot = row_to_dict(connection)
    db.delete(connection)
    commit_or_raise(db, conflict_detail="Connection changed concurrently", failure_detail="Failed to remove connection")
    change_feed.publish("user_connections", "delete", snapshot)


def apply_connection_action(
    db: Session,
    *,
    viewer_id: UUID,
    other_id: UUID,
    action: ConnectionAction | str,
) -> ConnectionView:
    """Run ``action`` from the viewer's side of the pair and return the new status."""

    if viewer_id == other_id:
        raise ValidationError("Cannot connect with yourself")
    try:
        action = ConnectionAction(action)
    except ValueError as exc:
        raise ValidationError(f"Unknown connection action: {action}") from exc
    if db.get(Profile, other_id) is None:
        raise NotFoundError("User not found")

    connection = find_connection(db, viewer_id, other_id)
    current = derive_status(connection, viewer_id)
    target = TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidTransitionError(f"Cannot {action} a connection that is {current}")

    if action is ConnectionAction.SEND:
        try:
            connection = _insert_request(db, requester_id=viewer_id, recipient_id=other_id)
        except ConflictError:
            # The other side (or another tab) created the pair row first.
            connection = find_connection(db, viewer_id, other_id)
            logger.debug("Duplicate connection request %s -> %s absorbed", viewer_id, other_id)
            return ConnectionView(other_id=other_id, status=derive_status(connection, viewer_id), connection=connection)
        change_feed.publish_row("insert", connection)
        notify(
            db,
            DomainEvent(
                kind=NotificationKind.CONNECTION_REQUEST,
                actor_id=viewer_id,
                recipient_id=other_id,
                title="New Connection Request",
                body=f"{display_name(db, viewer_id)} wants to connect with you",
                link="/connections",
                payload={"connection_id": str(connection.id)},
            ),
        )
        return ConnectionView(other_id=other_id, status=target, connection=connection)

    if connection is None:
        raise NotFoundError("Connection not found")
    if action is ConnectionAction.ACCEPT:
        connection.status = "accepted"
        connection.updated_at = utcnow()
        commit_or_raise(
            db,
            conflict_detail="Connection changed concurrently",
            failure_detail="Failed to accept connection",
            missing_detail="Connection not found",
        )
        db.refresh(connection)
        change_feed.publish_row("update", connection)
        notify(
            db,
            DomainEvent(
                kind=NotificationKind.CONNECTION_ACCEPTED,
                actor_id=viewer_id,
                recipient_id=connection.requester_id,
                title="Connection Accepted",
                body=f"{display_name(db, viewer_id)} accepted your connection request",
                link="/connections",
                payload={"connection_id": str(connection.id)},
            ),
        )
        return ConnectionView(other_id=other_id, status=target, connection=connection)

    _delete_connection(db, connection)
    logger.info("Connection between %s and %s removed via %s", viewer_id, other_id, action)
    return ConnectionView(other_id=other_id, status=target, connection=None)


def list_connections(db: Session, *, user_id: UUID) -> list[Connection]:
    stmt = (
        select(Connection)
        .where(
            Connection.status == "accepted",
            or_(Connection.requester_id == user_id, Connection.recipient_id == user_id),
        )
        .order_by(Connection.updated_at.desc())
    )
    return list(db.scalars(stmt))


def list_pending_requests(db: Session, *, user_id: UUID) -> tuple[list[Connection], list[Connection]]:
    """Return ``(incoming, outgoing)`` pending requests."""

    incoming = select(Connection).where(Connection.recipient_id == user_id, Connection.status == "pending")
    outgoing = select(Connection).where(Connection.requester_id == user_id, Connection.status == "pending")
    return list(db.scalars(incoming)), list(db.scalars(outgoing))


def search_with_status(db: Session, *, viewer_id: UUID, query: str, limit: int = 20) -> list[tuple[Profile, ConnectionStatus]]:
    """Find profiles by username or full name, each tagged with its status toward the viewer."""

    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    profiles = list(
        db.scalars(
            select(Profile)
            .where(Profile.id != viewer_id, or_(Profile.username.ilike(pattern), Profile.full_name.ilike(pattern)))
            .order_by(Profile.username)
            .limit(limit)
        )
    )
    if not profiles:
        return []

    ids = [profile.id for profile in profiles]
    rows = db.scalars(
        select(Connection).where(
            or_(
                and_(Connection.requester_id == viewer_id, Connection.recipient_id.in_(ids)),
                and_(Connection.recipient_id == viewer_id, Connection.requester_id.in_(ids)),
            )
        )
    )
    by_other = {row.other_party(viewer_id): row for row in rows}
    return [(profile, derive_status(by_other.get(profile.id), viewer_id)) for profile in profiles]


__all__ = [
    "ConnectionAction",
    "ConnectionStatus",
    "ConnectionView",
    "TRANSITIONS",
    "apply_connection_action",
    "connection_status",
    "derive_status",
    "find_connection",
    "list_connections",
    "list_pending_requests",
    "search_with_status",
]
