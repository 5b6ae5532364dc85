"""Schemas for group chat and direct messages."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class GroupMessageCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=4000)
    reply_to_id: UUID | None = None


class GroupMessageUpdate(BaseModel):
    body: str = Field(..., min_length=1, max_length=4000)


class GroupMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    group_id: UUID
    author_id: UUID
    body: str
    kind: str
    reply_to_id: UUID | None = None
    created_at: datetime
    edited_at: datetime | None = None


class GroupMessageListResponse(BaseModel):
    items: list[GroupMessageResponse]


class DirectMessageCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=4000)


class DirectMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sender_id: UUID
    recipient_id: UUID
    body: str
    read: bool
    created_at: datetime
    edited_at: datetime | None = None


class DirectThreadResponse(BaseModel):
    other_id: UUID
    items: list[DirectMessageResponse]


class ConversationReadResponse(BaseModel):
    updated: int


__all__ = [
    "ConversationReadResponse",
    "DirectMessageCreate",
    "DirectMessageResponse",
    "DirectThreadResponse",
    "GroupMessageCreate",
    "GroupMessageListResponse",
    "GroupMessageResponse",
    "GroupMessageUpdate",
]
