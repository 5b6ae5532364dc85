"""Study session lobby routes: polls and chat."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..errors import NotFoundError
from ..models import Profile, StudySession
from ..schemas import (
    PollCreate,
    PollListResponse,
    PollTallyResponse,
    PollVoteRequest,
    SessionChatCreate,
    SessionChatListResponse,
    SessionChatResponse,
)
from ..services import (
    close_poll,
    create_poll,
    get_current_user,
    list_session_chat,
    load_poll_tally,
    load_session_polls,
    require_membership,
    send_session_chat,
    vote_on_poll,
)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _require_session_member(db: Session, session_id: UUID, user_id: UUID) -> StudySession:
    study_session = db.get(StudySession, session_id)
    if study_session is None:
        raise NotFoundError("Study session not found")
    require_membership(db, study_session.group_id, user_id)
    return study_session


@router.get("/{session_id}/polls", response_model=PollListResponse)
async def list_polls_endpoint(
    session_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PollListResponse:
    _require_session_member(db, session_id, current_user.id)
    items = load_session_polls(db, session_id=session_id, viewer_id=current_user.id)
    return PollListResponse(items=[PollTallyResponse.model_validate(item) for item in items])


@router.post("/{session_id}/polls", response_model=PollTallyResponse, status_code=status.HTTP_201_CREATED)
async def create_poll_endpoint(
    session_id: UUID,
    payload: PollCreate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PollTallyResponse:
    poll = create_poll(
        db,
        session_id=session_id,
        creator_id=current_user.id,
        question=payload.question,
        options=payload.options,
        allow_multiple=payload.allow_multiple,
    )
    return PollTallyResponse.model_validate(load_poll_tally(db, poll_id=poll.id, viewer_id=current_user.id))


@router.post("/polls/{poll_id}/votes", response_model=PollTallyResponse)
async def vote_poll_endpoint(
    poll_id: UUID,
    payload: PollVoteRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PollTallyResponse:
    vote_on_poll(db, poll_id=poll_id, actor_id=current_user.id, option_id=payload.option_id)
    return PollTallyResponse.model_validate(load_poll_tally(db, poll_id=poll_id, viewer_id=current_user.id))


@router.post("/polls/{poll_id}/close", response_model=PollTallyResponse)
async def close_poll_endpoint(
    poll_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PollTallyResponse:
    close_poll(db, poll_id=poll_id, actor_id=current_user.id)
    return PollTallyResponse.model_validate(load_poll_tally(db, poll_id=poll_id, viewer_id=current_user.id))


@router.get("/{session_id}/chat", response_model=SessionChatListResponse)
async def list_chat_endpoint(
    session_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> SessionChatListResponse:
    _require_session_member(db, session_id, current_user.id)
    messages = list_session_chat(db, session_id=session_id)
    return SessionChatListResponse(items=[SessionChatResponse.model_validate(item) for item in messages])


@router.post("/{session_id}/chat", response_model=SessionChatResponse, status_code=status.HTTP_201_CREATED)
async def send_chat_endpoint(
    session_id: UUID,
    payload: SessionChatCreate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> SessionChatResponse:
    message = send_session_chat(db, session_id=session_id, author_id=current_user.id, body=payload.body)
    return SessionChatResponse.model_validate(message)


__all__ = ["router"]
