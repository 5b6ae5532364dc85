"""Reaction and vote aggregation with idempotent toggles."""
from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..constants import REACTION_KINDS, TARGET_KINDS, VOTE_DIRECTIONS
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import Comment, Post, Reaction, Vote
from .change_feed import change_feed, row_to_dict
from .notification_service import DomainEvent, NotificationKind, display_name, notify
from .persistence import commit_or_raise, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReactionToggle:
    active: bool
    counts: dict[str, int]


@dataclass(frozen=True, slots=True)
class VoteOutcome:
    direction: str | None
    score: int


def _field(row: Any, name: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name)


def count_reactions(rows: Iterable[Any]) -> dict[str, int]:
    """Count reaction rows per kind.

    Every known kind is present. Rows are counted as-is; uniqueness is the
    storage layer's job.
    """

    counts = {kind: 0 for kind in REACTION_KINDS}
    for row in rows:
        kind = _field(row, "kind")
        counts[kind] = counts.get(kind, 0) + 1
    return counts


def viewer_reactions(rows: Iterable[Any], viewer_id: UUID | None) -> list[str]:
    if viewer_id is None:
        return []
    return sorted({_field(row, "kind") for row in rows if str(_field(row, "actor_id")) == str(viewer_id)})


def group_by_target(rows: Iterable[Any]) -> dict[UUID, list[Any]]:
    grouped: dict[UUID, list[Any]] = defaultdict(list)
    for row in rows:
        grouped[_field(row, "target_id")].append(row)
    return dict(grouped)


def vote_score(rows: Iterable[Any]) -> int:
    score = 0
    for row in rows:
        score += 1 if _field(row, "direction") == "up" else -1
    return score


def _validate_target_kind(target_kind: str) -> None:
    if target_kind not in TARGET_KINDS:
        raise ValidationError(f"target_kind must be one of {', '.join(TARGET_KINDS)}")


def _resolve_target(db: Session, target_kind: str, target_id: UUID) -> tuple[UUID, UUID]:
    """Return ``(author_id, post_id)`` of the reacted-to content."""

    if target_kind == "post":
        post = db.get(Post, target_id)
        if post is None:
            raise NotFoundError("Post not found")
        return post.author_id, post.id
    comment = db.get(Comment, target_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment.author_id, comment.post_id


def _find_reaction(db: Session, *, target_kind: str, target_id: UUID, actor_id: UUID, kind: str) -> Reaction | None:
    stmt = select(Reaction).where(
        Reaction.target_id == target_id,
        Reaction.target_kind == target_kind,
        Reaction.actor_id == actor_id,
        Reaction.kind == kind,
    )
    return db.scalars(stmt).first()


def _insert_reaction(db: Session, *, target_kind: str, target_id: UUID, actor_id: UUID, kind: str) -> Reaction:
    reaction = Reaction(
        target_id=target_id,
        target_kind=target_kind,
        actor_id=actor_id,
        kind=kind,
        created_at=utcnow(),
    )
    db.add(reaction)
    commit_or_raise(
        db,
        conflict_detail="Reaction already exists",
        failure_detail="Failed to add reaction",
        missing_detail="Reaction target or actor not found",
    )
    db.refresh(reaction)
    return reaction


def reaction_counts_for(db: Session, *, target_kind: str, target_id: UUID) -> dict[str, int]:
    rows = db.scalars(select(Reaction).where(Reaction.target_id == target_id, Reaction.target_kind == target_kind))
    return count_reactions(rows)


def toggle_reaction(
    db: Session,
    *,
    target_kind: str,
    target_id: UUID,
    actor_id: UUID,
    kind: str,
) -> ReactionToggle:
    """Remove the actor's reaction of ``kind`` when present, add it otherwise.

    A concurrent insert from another tab of the same actor surfaces as a
    uniqueness conflict and is treated as a successful toggle-on; a row that
    vanished before the delete is a successful toggle-off.
    """

    _validate_target_kind(target_kind)
    if kind not in REACTION_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(REACTION_KINDS)}")
    author_id, post_id = _resolve_target(db, target_kind, target_id)

    existing = _find_reaction(db, target_kind=target_kind, target_id=target_id, actor_id=actor_id, kind=kind)
    if existing is not None:
        snapshot = row_to_dict(existing)
        result = db.execute(delete(Reaction).where(Reaction.id == existing.id))
        commit_or_raise(db, conflict_detail="Reaction changed concurrently", failure_detail="Failed to remove reaction")
        if result.rowcount:
            change_feed.publish("reactions", "delete", snapshot)
        return ReactionToggle(active=False, counts=reaction_counts_for(db, target_kind=target_kind, target_id=target_id))

    try:
        reaction = _insert_reaction(db, target_kind=target_kind, target_id=target_id, actor_id=actor_id, kind=kind)
    except ConflictError:
        logger.debug("Duplicate %s reaction by %s on %s absorbed", kind, actor_id, target_id)
        return ReactionToggle(active=True, counts=reaction_counts_for(db, target_kind=target_kind, target_id=target_id))

    change_feed.publish_row("insert", reaction)
    actor_name = display_name(db, actor_id)
    notify(
        db,
        DomainEvent(
            kind=NotificationKind.POST_REACTION if target_kind == "post" else NotificationKind.COMMENT_REACTION,
            actor_id=actor_id,
            recipient_id=author_id,
            title="New Reaction",
            body=f"{actor_name} reacted {kind} to your {target_kind}",
            link=f"/posts/{post_id}",
            payload={"target_kind": target_kind, "target_id": str(target_id), "kind": kind},
        ),
    )
    return ReactionToggle(active=True, counts=reaction_counts_for(db, target_kind=target_kind, target_id=target_id))


def _score_for(db: Session, *, target_kind: str, target_id: UUID) -> int:
    rows = db.scalars(select(Vote).where(Vote.target_id == target_id, Vote.target_kind == target_kind))
    return vote_score(rows)


def cast_vote(
    db: Session,
    *,
    target_kind: str,
    target_id: UUID,
    actor_id: UUID,
    direction: str,
) -> VoteOutcome:
    """Toggle an up/down vote: same direction clears it, the other direction flips it."""

    _validate_target_kind(target_kind)
    if direction not in VOTE_DIRECTIONS:
        raise ValidationError("direction must be 'up' or 'down'")
    _resolve_target(db, target_kind, target_id)

    existing = db.scalars(
        select(Vote).where(Vote.target_id == target_id, Vote.target_kind == target_kind, Vote.actor_id == actor_id)
    ).first()

    if existing is not None and existing.direction == direction:
        snapshot = row_to_dict(existing)
        result = db.execute(delete(Vote).where(Vote.id == existing.id))
        commit_or_raise(db, conflict_detail="Vote changed concurrently", failure_detail="Failed to remove vote")
        if result.rowcount:
            change_feed.publish("votes", "delete", snapshot)
        return VoteOutcome(direction=None, score=_score_for(db, target_kind=target_kind, target_id=target_id))

    if existing is not None:
        existing.direction = direction
        commit_or_raise(db, conflict_detail="Vote changed concurrently", failure_detail="Failed to change vote")
        db.refresh(existing)
        change_feed.publish_row("update", existing)
        return VoteOutcome(direction=direction, score=_score_for(db, target_kind=target_kind, target_id=target_id))

    vote = Vote(target_id=target_id, target_kind=target_kind, actor_id=actor_id, direction=direction, created_at=utcnow())
    db.add(vote)
    try:
        commit_or_raise(db, conflict_detail="Vote already exists", failure_detail="Failed to add vote")
    except ConflictError:
        # Another tab voted first; last write wins on the direction.
        current = db.scalars(
            select(Vote).where(Vote.target_id == target_id, Vote.target_kind == target_kind, Vote.actor_id == actor_id)
        ).first()
        if current is not None and current.direction != direction:
            current.direction = direction
            commit_or_raise(db, conflict_detail="Vote changed concurrently", failure_detail="Failed to change vote")
            db.refresh(current)
            change_feed.publish_row("update", current)
        return VoteOutcome(direction=direction, score=_score_for(db, target_kind=target_kind, target_id=target_id))

    db.refresh(vote)
    change_feed.publish_row("insert", vote)
    return VoteOutcome(direction=direction, score=_score_for(db, target_kind=target_kind, target_id=target_id))


__all__ = [
    "ReactionToggle",
    "VoteOutcome",
    "cast_vote",
    "count_reactions",
    "group_by_target",
    "reaction_counts_for",
    "toggle_reaction",
    "viewer_reactions",
    "vote_score",
]
