"""Group chat and direct message routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Profile
from ..schemas import (
    ConversationReadResponse,
    DirectMessageCreate,
    DirectMessageResponse,
    DirectThreadResponse,
    GroupMessageCreate,
    GroupMessageListResponse,
    GroupMessageResponse,
    GroupMessageUpdate,
)
from ..services import (
    delete_direct_message,
    delete_group_message,
    edit_group_message,
    get_current_user,
    list_direct_messages,
    list_group_messages,
    mark_conversation_read,
    send_direct_message,
    send_group_message,
)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/groups/{group_id}", response_model=GroupMessageListResponse)
async def list_group_messages_endpoint(
    group_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> GroupMessageListResponse:
    messages = list_group_messages(db, group_id=group_id, viewer_id=current_user.id)
    return GroupMessageListResponse(items=[GroupMessageResponse.model_validate(item) for item in messages])


@router.post("/groups/{group_id}", response_model=GroupMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_group_message_endpoint(
    group_id: UUID,
    payload: GroupMessageCreate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> GroupMessageResponse:
    message = send_group_message(
        db,
        group_id=group_id,
        author_id=current_user.id,
        body=payload.body,
        reply_to_id=payload.reply_to_id,
    )
    return GroupMessageResponse.model_validate(message)


@router.patch("/groups/messages/{message_id}", response_model=GroupMessageResponse)
async def edit_group_message_endpoint(
    message_id: UUID,
    payload: GroupMessageUpdate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> GroupMessageResponse:
    message = edit_group_message(db, message_id=message_id, editor_id=current_user.id, body=payload.body)
    return GroupMessageResponse.model_validate(message)


@router.delete("/groups/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group_message_endpoint(
    message_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> None:
    delete_group_message(db, message_id=message_id, actor_id=current_user.id)


@router.get("/direct/{other_id}", response_model=DirectThreadResponse)
async def direct_thread_endpoint(
    other_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> DirectThreadResponse:
    messages = list_direct_messages(db, viewer_id=current_user.id, other_id=other_id)
    return DirectThreadResponse(other_id=other_id, items=[DirectMessageResponse.model_validate(item) for item in messages])


@router.post("/direct/{other_id}", response_model=DirectMessageResponse, status_code=status.HTTP_201_CREATED)
async def send_direct_message_endpoint(
    other_id: UUID,
    payload: DirectMessageCreate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> DirectMessageResponse:
    message = send_direct_message(db, sender_id=current_user.id, recipient_id=other_id, body=payload.body)
    return DirectMessageResponse.model_validate(message)


@router.post("/direct/{other_id}/read", response_model=ConversationReadResponse)
async def mark_direct_read_endpoint(
    other_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ConversationReadResponse:
    updated = mark_conversation_read(db, viewer_id=current_user.id, other_id=other_id)
    return ConversationReadResponse(updated=updated)


@router.delete("/direct/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_direct_message_endpoint(
    message_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> None:
    delete_direct_message(db, message_id=message_id, actor_id=current_user.id)


__all__ = ["router"]
