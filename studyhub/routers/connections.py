"""Connection request and status routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..database import get_session
from ..models import Profile
from ..schemas import (
    ConnectionActionRequest,
    ConnectionListResponse,
    ConnectionResponse,
    ConnectionSearchResponse,
    ConnectionSearchResult,
    ConnectionStatusResponse,
    PendingRequestsResponse,
)
from ..services import (
    apply_connection_action,
    connection_status,
    get_current_user,
    list_connections,
    list_pending_requests,
    search_with_status,
)

router = APIRouter(prefix="/connections", tags=["connections"])


@router.get("/", response_model=ConnectionListResponse)
async def list_connections_endpoint(
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ConnectionListResponse:
    rows = list_connections(db, user_id=current_user.id)
    return ConnectionListResponse(items=[ConnectionResponse.model_validate(row) for row in rows])


@router.get("/requests", response_model=PendingRequestsResponse)
async def pending_requests_endpoint(
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PendingRequestsResponse:
    incoming, outgoing = list_pending_requests(db, user_id=current_user.id)
    return PendingRequestsResponse(
        incoming=[ConnectionResponse.model_validate(row) for row in incoming],
        outgoing=[ConnectionResponse.model_validate(row) for row in outgoing],
    )


@router.get("/search", response_model=ConnectionSearchResponse)
async def search_endpoint(
    q: str = Query(..., min_length=1),
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ConnectionSearchResponse:
    results = search_with_status(db, viewer_id=current_user.id, query=q)
    return ConnectionSearchResponse(
        items=[
            ConnectionSearchResult(
                id=profile.id,
                username=profile.username,
                full_name=profile.full_name,
                avatar_url=profile.avatar_url,
                status=str(state),
            )
            for profile, state in results
        ]
    )


@router.get("/{other_id}", response_model=ConnectionStatusResponse)
async def connection_status_endpoint(
    other_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ConnectionStatusResponse:
    state = connection_status(db, viewer_id=current_user.id, other_id=other_id)
    return ConnectionStatusResponse(other_id=other_id, status=str(state))


@router.post("/{other_id}", response_model=ConnectionStatusResponse)
async def connection_action_endpoint(
    other_id: UUID,
    payload: ConnectionActionRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ConnectionStatusResponse:
    result = apply_connection_action(db, viewer_id=current_user.id, other_id=other_id, action=payload.action)
    return ConnectionStatusResponse(
        other_id=other_id,
        status=str(result.status),
        connection=ConnectionResponse.model_validate(result.connection) if result.connection is not None else None,
    )


__all__ = ["router"]
