"""Group scope checks and the join-request decision flow."""
from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..errors import ConflictError, InvalidTransitionError, NotFoundError, PermissionDeniedError
from ..models import GroupJoinRequest, GroupMembership, StudyGroup
from .change_feed import change_feed
from .notification_service import DomainEvent, NotificationKind, display_name, notify
from .persistence import commit_or_raise, utcnow

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({"admin"})


def get_membership(db: Session, group_id: UUID, user_id: UUID) -> GroupMembership | None:
    stmt = select(GroupMembership).where(GroupMembership.group_id == group_id, GroupMembership.user_id == user_id)
    return db.scalars(stmt).first()


def require_membership(db: Session, group_id: UUID, user_id: UUID) -> GroupMembership:
    membership = get_membership(db, group_id, user_id)
    if membership is None:
        raise PermissionDeniedError("Group membership required")
    return membership


def is_scope_admin(db: Session, group_id: UUID, user_id: UUID) -> bool:
    membership = get_membership(db, group_id, user_id)
    return membership is not None and membership.role in ADMIN_ROLES


def _group_or_404(db: Session, group_id: UUID) -> StudyGroup:
    group = db.get(StudyGroup, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


def request_to_join(db: Session, *, group_id: UUID, user_id: UUID) -> GroupJoinRequest:
    group = _group_or_404(db, group_id)
    if get_membership(db, group_id, user_id) is not None:
        raise ConflictError("Already a member of this group")

    request = GroupJoinRequest(group_id=group_id, user_id=user_id, status="pending", created_at=utcnow())
    db.add(request)
    commit_or_raise(db, conflict_detail="Join request already exists", failure_detail="Failed to create join request")
    db.refresh(request)
    change_feed.publish_row("insert", request)

    requester_name = display_name(db, user_id)
    admins = db.scalars(
        select(GroupMembership.user_id).where(
            GroupMembership.group_id == group_id,
            GroupMembership.role.in_(ADMIN_ROLES),
        )
    )
    for admin_id in admins:
        notify(
            db,
            DomainEvent(
                kind=NotificationKind.JOIN_REQUEST,
                actor_id=user_id,
                recipient_id=admin_id,
                title="New Join Request",
                body=f"{requester_name} wants to join {group.name}",
                link="/groups",
                payload={"group_id": str(group_id), "request_id": str(request.id)},
            ),
        )
    return request


def decide_join_request(db: Session, *, request_id: UUID, admin_id: UUID, approve: bool) -> GroupJoinRequest:
    request = db.get(GroupJoinRequest, request_id)
    if request is None:
        raise NotFoundError("Join request not found")
    if not is_scope_admin(db, request.group_id, admin_id):
        raise PermissionDeniedError("Only group admins can decide join requests")
    if request.status != "pending":
        raise InvalidTransitionError("Join request already processed")

    request.status = "approved" if approve else "rejected"
    request.responded_at = utcnow()
    if approve and get_membership(db, request.group_id, request.user_id) is None:
        db.add(GroupMembership(group_id=request.group_id, user_id=request.user_id, role="member"))
    commit_or_raise(db, conflict_detail="Join request changed concurrently", failure_detail="Failed to update join request")
    db.refresh(request)
    change_feed.publish_row("update", request)

    group = db.get(StudyGroup, request.group_id)
    group_name = group.name if group is not None else "the group"
    notify(
        db,
        DomainEvent(
            kind=NotificationKind.JOIN_REQUEST_DECISION,
            actor_id=admin_id,
            recipient_id=request.user_id,
            title="Request Approved" if approve else "Request Rejected",
            body=(
                f"Your request to join {group_name} was approved"
                if approve
                else f"Your request to join {group_name} was declined"
            ),
            link="/groups",
            payload={"group_id": str(request.group_id), "approved": approve},
        ),
    )
    logger.info("Join request %s %s by %s", request.id, request.status, admin_id)
    return request


__all__ = [
    "decide_join_request",
    "get_membership",
    "is_scope_admin",
    "request_to_join",
    "require_membership",
]
