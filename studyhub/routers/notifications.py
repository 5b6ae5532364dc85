"""Notification API routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_session
from ..models import Profile
from ..schemas import MarkAllReadResponse, NotificationListResponse, NotificationResponse, NotificationSummaryResponse
from ..services import (
    count_unread,
    delete_notification,
    get_current_user,
    list_notifications,
    mark_all_read,
    mark_read,
)

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=NotificationListResponse)
async def list_my_notifications(
    limit: int | None = Query(default=None, ge=1, le=200),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationListResponse:
    records = list_notifications(db, current_user.id, limit=limit or get_settings().notification_page_size)
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(item) for item in records],
        unread_count=count_unread(db, current_user.id),
    )


@router.get("/summary", response_model=NotificationSummaryResponse)
async def notification_summary_endpoint(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationSummaryResponse:
    return NotificationSummaryResponse(unread_count=count_unread(db, current_user.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_notifications_read(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MarkAllReadResponse:
    return MarkAllReadResponse(updated=mark_all_read(db, current_user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationResponse:
    record = mark_read(db, notification_id=notification_id, recipient_id=current_user.id)
    return NotificationResponse.model_validate(record)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification_endpoint(
    notification_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    delete_notification(db, notification_id=notification_id, recipient_id=current_user.id)


__all__ = ["router"]
