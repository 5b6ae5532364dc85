"""Schemas for notifications."""
from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: UUID
    recipient_id: UUID
    actor_id: UUID | None = None
    kind: str
    title: str
    body: str
    read: bool
    link: str | None = None
    payload: dict[str, Any] | None = None
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    unread_count: int = 0


class NotificationSummaryResponse(BaseModel):
    unread_count: int = 0


class MarkAllReadResponse(BaseModel):
    updated: int = 0


__all__ = ["MarkAllReadResponse", "NotificationResponse", "NotificationListResponse", "NotificationSummaryResponse"]
