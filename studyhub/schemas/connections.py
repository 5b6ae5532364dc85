"""Schemas for connections between profiles."""
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ConnectionActionRequest(BaseModel):
    action: Literal["send", "accept", "reject", "cancel", "remove"]


class ConnectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    requester_id: UUID
    recipient_id: UUID
    status: str
    created_at: datetime
    updated_at: datetime


class ConnectionStatusResponse(BaseModel):
    other_id: UUID
    status: str
    connection: ConnectionResponse | None = None


class ConnectionListResponse(BaseModel):
    items: list[ConnectionResponse]


class PendingRequestsResponse(BaseModel):
    incoming: list[ConnectionResponse]
    outgoing: list[ConnectionResponse]


class ConnectionSearchResult(BaseModel):
    id: UUID
    username: str
    full_name: str | None = None
    avatar_url: str | None = None
    status: str


class ConnectionSearchResponse(BaseModel):
    items: list[ConnectionSearchResult]


__all__ = [
    "ConnectionActionRequest",
    "ConnectionListResponse",
    "ConnectionResponse",
    "ConnectionSearchResponse",
    "ConnectionSearchResult",
    "ConnectionStatusResponse",
    "PendingRequestsResponse",
]
