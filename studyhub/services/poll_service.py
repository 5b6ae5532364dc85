"""Session poll lifecycle, vote application and tallies."""
from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..constants import MIN_POLL_OPTIONS
from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..models import SessionPoll, SessionPollResponse, StudySession
from .change_feed import change_feed, row_to_dict
from .group_service import is_scope_admin, require_membership
from .persistence import commit_or_raise, require_text, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OptionTally:
    id: str
    text: str
    votes: int
    percentage: float


@dataclass(frozen=True, slots=True)
class PollTally:
    poll_id: Any
    question: str
    allow_multiple: bool
    is_active: bool
    total_votes: int
    respondents: int
    options: list[OptionTally]

    def to_payload(self, viewer_selection: Sequence[str] | None = None) -> dict[str, Any]:
        return {
            "poll_id": self.poll_id,
            "question": self.question,
            "allow_multiple": self.allow_multiple,
            "is_active": self.is_active,
            "total_votes": self.total_votes,
            "respondents": self.respondents,
            "options": [
                {"id": option.id, "text": option.text, "votes": option.votes, "percentage": option.percentage}
                for option in self.options
            ],
            "viewer_selection": list(viewer_selection or []),
        }


def next_selection(current: Sequence[str] | None, option_id: str, allow_multiple: bool) -> list[str] | None:
    """Return the actor's selection after voting for ``option_id``.

    Single-select replaces the selection. Multi-select toggles the option in
    place. ``None`` means the selection is empty and the response row goes away.
    """

    if not allow_multiple:
        return [option_id]
    selection = list(current or [])
    if option_id in selection:
        selection.remove(option_id)
    else:
        selection.append(option_id)
    return selection or None


def _option_ids(poll: SessionPoll | Any) -> list[str]:
    return [str(option["id"]) for option in poll.options or []]


def tally_poll(poll: SessionPoll | Any, responses: Iterable[Any]) -> PollTally:
    """Count votes per option.

    The denominator is the total number of selections across responses, so
    multi-select polls can add up to more than 100%.
    """

    selections = [list(_selection_of(response)) for response in responses]
    counts = {option_id: 0 for option_id in _option_ids(poll)}
    total = 0
    for selection in selections:
        total += len(selection)
        for option_id in selection:
            if option_id in counts:
                counts[option_id] += 1

    options = [
        OptionTally(
            id=str(option["id"]),
            text=option["text"],
            votes=counts[str(option["id"])],
            percentage=round(counts[str(option["id"])] / total * 100, 2) if total else 0.0,
        )
        for option in poll.options or []
    ]
    return PollTally(
        poll_id=poll.id,
        question=poll.question,
        allow_multiple=bool(poll.allow_multiple),
        is_active=bool(poll.is_active),
        total_votes=total,
        respondents=len(selections),
        options=options,
    )


def _selection_of(response: Any) -> list[str]:
    if isinstance(response, dict):
        return response.get("selected_option_ids") or []
    return response.selected_option_ids or []


def _session_or_404(db: Session, session_id: UUID) -> StudySession:
    study_session = db.get(StudySession, session_id)
    if study_session is None:
        raise NotFoundError("Study session not found")
    return study_session


def _poll_or_404(db: Session, poll_id: UUID) -> SessionPoll:
    poll = db.get(SessionPoll, poll_id)
    if poll is None:
        raise NotFoundError("Poll not found")
    return poll


def create_poll(
    db: Session,
    *,
    session_id: UUID,
    creator_id: UUID,
    question: str,
    options: Sequence[str],
    allow_multiple: bool = False,
) -> SessionPoll:
    study_session = _session_or_404(db, session_id)
    require_membership(db, study_session.group_id, creator_id)

    texts = [text.strip() for text in options if text and text.strip()]
    if len(texts) < MIN_POLL_OPTIONS:
        raise ValidationError(f"A poll needs at least {MIN_POLL_OPTIONS} options")

    poll = SessionPoll(
        session_id=session_id,
        created_by=creator_id,
        question=require_text(question, field_name="Question"),
        options=[{"id": f"opt-{index}", "text": text} for index, text in enumerate(texts)],
        allow_multiple=allow_multiple,
        is_active=True,
        created_at=utcnow(),
    )
    db.add(poll)
    commit_or_raise(db, conflict_detail="Poll already exists", failure_detail="Failed to create poll")
    db.refresh(poll)
    change_feed.publish_row("insert", poll)
    return poll


def close_poll(db: Session, *, poll_id: UUID, actor_id: UUID) -> SessionPoll:
    poll = _poll_or_404(db, poll_id)
    study_session = _session_or_404(db, poll.session_id)
    if poll.created_by != actor_id and not is_scope_admin(db, study_session.group_id, actor_id):
        raise PermissionDeniedError("Only the poll creator or a group admin can close this poll")
    if not poll.is_active:
        return poll

    poll.is_active = False
    poll.ends_at = utcnow()
    commit_or_raise(db, conflict_detail="Poll changed concurrently", failure_detail="Failed to close poll")
    db.refresh(poll)
    change_feed.publish_row("update", poll)
    return poll


def _find_response(db: Session, poll_id: UUID, actor_id: UUID) -> SessionPollResponse | None:
    stmt = select(SessionPollResponse).where(
        SessionPollResponse.poll_id == poll_id,
        SessionPollResponse.actor_id == actor_id,
    )
    return db.scalars(stmt).first()


def _apply_selection(
    db: Session,
    existing: SessionPollResponse | None,
    *,
    poll_id: UUID,
    actor_id: UUID,
    selection: list[str] | None,
) -> SessionPollResponse | None:
    if selection is None:
        if existing is None:
            return None
        snapshot = row_to_dict(existing)
        db.delete(existing)
        commit_or_raise(db, conflict_detail="Vote changed concurrently", failure_detail="Failed to remove vote")
        change_feed.publish("session_poll_responses", "delete", snapshot)
        return None

    if existing is not None:
        # JSON columns only track reassignment, so the list is replaced wholesale.
        existing.selected_option_ids = list(selection)
        commit_or_raise(db, conflict_detail="Vote changed concurrently", failure_detail="Failed to change vote")
        db.refresh(existing)
        change_feed.publish_row("update", existing)
        return existing

    response = SessionPollResponse(
        poll_id=poll_id,
        actor_id=actor_id,
        selected_option_ids=list(selection),
        created_at=utcnow(),
    )
    db.add(response)
    commit_or_raise(db, conflict_detail="Vote already recorded", failure_detail="Failed to record vote")
    db.refresh(response)
    change_feed.publish_row("insert", response)
    return response


def vote_on_poll(db: Session, *, poll_id: UUID, actor_id: UUID, option_id: str) -> SessionPollResponse | None:
    """Apply one vote and return the actor's response row (``None`` once emptied)."""

    poll = _poll_or_404(db, poll_id)
    if not poll.is_active:
        raise ValidationError("Poll is closed")
    if option_id not in _option_ids(poll):
        raise ValidationError("Unknown poll option")
    study_session = _session_or_404(db, poll.session_id)
    require_membership(db, study_session.group_id, actor_id)

    existing = _find_response(db, poll_id, actor_id)
    selection = next_selection(existing.selected_option_ids if existing else None, option_id, poll.allow_multiple)
    try:
        return _apply_selection(db, existing, poll_id=poll_id, actor_id=actor_id, selection=selection)
    except ConflictError:
        # Another tab inserted first; re-apply against the stored row.
        logger.debug("Concurrent vote on poll %s by %s; re-applying", poll_id, actor_id)
        current = _find_response(db, poll_id, actor_id)
        if current is None:
            raise
        selection = next_selection(current.selected_option_ids, option_id, poll.allow_multiple)
        return _apply_selection(db, current, poll_id=poll_id, actor_id=actor_id, selection=selection)


def load_poll_tally(db: Session, *, poll_id: UUID, viewer_id: UUID | None = None) -> dict[str, Any]:
    poll = _poll_or_404(db, poll_id)
    responses = list(db.scalars(select(SessionPollResponse).where(SessionPollResponse.poll_id == poll_id)))
    viewer_selection: list[str] = []
    if viewer_id is not None:
        viewer_selection = next(
            (list(response.selected_option_ids) for response in responses if response.actor_id == viewer_id),
            [],
        )
    return tally_poll(poll, responses).to_payload(viewer_selection)


def load_session_polls(db: Session, *, session_id: UUID, viewer_id: UUID | None = None) -> list[dict[str, Any]]:
    """Tally every poll of a session, newest first."""

    polls = list(
        db.scalars(
            select(SessionPoll)
            .where(SessionPoll.session_id == session_id)
            .order_by(SessionPoll.created_at.desc(), SessionPoll.id)
        )
    )
    if not polls:
        return []
    responses = list(
        db.scalars(select(SessionPollResponse).where(SessionPollResponse.poll_id.in_([poll.id for poll in polls])))
    )
    payloads = []
    for poll in polls:
        poll_responses = [response for response in responses if response.poll_id == poll.id]
        viewer_selection = next(
            (list(r.selected_option_ids) for r in poll_responses if viewer_id is not None and r.actor_id == viewer_id),
            [],
        )
        payloads.append(tally_poll(poll, poll_responses).to_payload(viewer_selection))
    return payloads


__all__ = [
    "OptionTally",
    "PollTally",
    "close_poll",
    "create_poll",
    "load_poll_tally",
    "load_session_polls",
    "next_selection",
    "tally_poll",
    "vote_on_poll",
]
