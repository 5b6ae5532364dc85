"""Schemas for group join requests."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class JoinRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    group_id: UUID
    user_id: UUID
    status: str
    created_at: datetime
    responded_at: datetime | None = None


class JoinDecisionRequest(BaseModel):
    approve: bool


__all__ = ["JoinDecisionRequest", "JoinRequestResponse"]
