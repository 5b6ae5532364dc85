"""Group join request routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Profile
from ..schemas import JoinDecisionRequest, JoinRequestResponse
from ..services import decide_join_request, get_current_user, request_to_join

router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("/{group_id}/join-requests", response_model=JoinRequestResponse, status_code=status.HTTP_201_CREATED)
async def request_to_join_endpoint(
    group_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> JoinRequestResponse:
    request = request_to_join(db, group_id=group_id, user_id=current_user.id)
    return JoinRequestResponse.model_validate(request)


@router.post("/join-requests/{request_id}/decision", response_model=JoinRequestResponse)
async def decide_join_request_endpoint(
    request_id: UUID,
    payload: JoinDecisionRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> JoinRequestResponse:
    request = decide_join_request(db, request_id=request_id, admin_id=current_user.id, approve=payload.approve)
    return JoinRequestResponse.model_validate(request)


__all__ = ["router"]
