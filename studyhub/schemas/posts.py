"""Pydantic schemas for posts, comment threads and engagement."""
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class PostCreate(BaseModel):
    """Payload used by API clients when publishing a post to a group."""

    group_id: UUID
    title: str = Field(..., min_length=1, max_length=300)
    body: str = Field(..., min_length=1)
    kind: Literal["question", "discussion", "article", "announcement", "solution"] = "discussion"


class PostUpdate(BaseModel):
    body: str = Field(..., min_length=1)
    title: str | None = Field(default=None, max_length=300)


class PostResponse(BaseModel):
    """Serialized representation of a persisted post."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    group_id: UUID
    author_id: UUID
    title: str
    body: str
    kind: str
    pinned: bool = False
    best_answer_comment_id: UUID | None = None
    created_at: datetime
    edited_at: datetime | None = None


class CommentCreate(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)
    parent_comment_id: UUID | None = None


class CommentUpdate(BaseModel):
    body: str = Field(..., min_length=1, max_length=5000)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    post_id: UUID
    author_id: UUID
    parent_comment_id: UUID | None = None
    body: str
    is_best_answer: bool = False
    created_at: datetime
    edited_at: datetime | None = None


class CommentNodeResponse(CommentResponse):
    """One comment in a projected thread, with its replies nested in creation order."""

    orphaned: bool = False
    depth: int
    can_reply: bool
    reactions: dict[str, int] = Field(default_factory=dict)
    viewer_reactions: list[str] = Field(default_factory=list)
    score: int = 0
    replies: list["CommentNodeResponse"] = Field(default_factory=list)


CommentNodeResponse.model_rebuild()


class ThreadPostResponse(PostResponse):
    reactions: dict[str, int] = Field(default_factory=dict)
    viewer_reactions: list[str] = Field(default_factory=list)
    score: int = 0


class ThreadResponse(BaseModel):
    post: ThreadPostResponse
    comments: list[CommentNodeResponse]
    comment_count: int


class ReactionToggleRequest(BaseModel):
    kind: Literal["like", "helpful", "insightful", "love"]


class ReactionToggleResponse(BaseModel):
    target_id: UUID
    target_kind: str
    kind: str
    active: bool
    counts: dict[str, int]


class VoteRequest(BaseModel):
    direction: Literal["up", "down"]


class VoteResponse(BaseModel):
    target_id: UUID
    target_kind: str
    direction: str | None = None
    score: int


class BestAnswerRequest(BaseModel):
    comment_id: UUID | None = None


__all__ = [
    "BestAnswerRequest",
    "CommentCreate",
    "CommentNodeResponse",
    "CommentResponse",
    "CommentUpdate",
    "PostCreate",
    "PostResponse",
    "PostUpdate",
    "ReactionToggleRequest",
    "ReactionToggleResponse",
    "ThreadPostResponse",
    "ThreadResponse",
    "VoteRequest",
    "VoteResponse",
]
