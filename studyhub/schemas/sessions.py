"""Schemas for study session lobbies: chat and polls."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PollCreate(BaseModel):
    question: str = Field(..., min_length=1)
    options: list[str] = Field(..., min_length=2)
    allow_multiple: bool = False


class PollVoteRequest(BaseModel):
    option_id: str = Field(..., min_length=1)


class PollOptionTally(BaseModel):
    id: str
    text: str
    votes: int
    percentage: float


class PollTallyResponse(BaseModel):
    poll_id: UUID
    question: str
    allow_multiple: bool
    is_active: bool
    total_votes: int
    respondents: int
    options: list[PollOptionTally]
    viewer_selection: list[str] = Field(default_factory=list)


class PollListResponse(BaseModel):
    items: list[PollTallyResponse]


class SessionChatCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=2000)


class SessionChatResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_id: UUID
    author_id: UUID
    body: str
    kind: str
    created_at: datetime


class SessionChatListResponse(BaseModel):
    items: list[SessionChatResponse]


__all__ = [
    "PollCreate",
    "PollListResponse",
    "PollOptionTally",
    "PollTallyResponse",
    "PollVoteRequest",
    "SessionChatCreate",
    "SessionChatListResponse",
    "SessionChatResponse",
]
