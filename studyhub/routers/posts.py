"""Post, comment thread and engagement routes."""
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..errors import NotFoundError
from ..models import Post, Profile
from ..schemas import (
    BestAnswerRequest,
    CommentCreate,
    CommentResponse,
    CommentUpdate,
    PostCreate,
    PostResponse,
    PostUpdate,
    ReactionToggleRequest,
    ReactionToggleResponse,
    ThreadResponse,
    VoteRequest,
    VoteResponse,
)
from ..services import (
    cast_vote,
    create_comment,
    create_post,
    delete_comment,
    delete_post,
    edit_comment,
    edit_post,
    get_current_user,
    load_thread,
    mark_best_answer,
    require_membership,
    toggle_reaction,
)

router = APIRouter(prefix="/posts", tags=["posts"])


@router.post("/", response_model=PostResponse, status_code=status.HTTP_201_CREATED)
async def create_post_endpoint(
    payload: PostCreate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PostResponse:
    post = create_post(
        db,
        group_id=payload.group_id,
        author_id=current_user.id,
        title=payload.title,
        body=payload.body,
        kind=payload.kind,
    )
    return PostResponse.model_validate(post)


@router.get("/{post_id}/thread", response_model=ThreadResponse)
async def get_thread_endpoint(
    post_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ThreadResponse:
    post = db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    require_membership(db, post.group_id, current_user.id)
    snapshot = load_thread(db, post_id=post_id, viewer_id=current_user.id)
    return ThreadResponse.model_validate(snapshot.to_payload())


@router.patch("/{post_id}", response_model=PostResponse)
async def edit_post_endpoint(
    post_id: UUID,
    payload: PostUpdate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PostResponse:
    post = edit_post(db, post_id=post_id, editor_id=current_user.id, body=payload.body, title=payload.title)
    return PostResponse.model_validate(post)


@router.delete("/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_post_endpoint(
    post_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> None:
    delete_post(db, post_id=post_id, actor_id=current_user.id)


@router.post("/{post_id}/comments", response_model=CommentResponse, status_code=status.HTTP_201_CREATED)
async def create_comment_endpoint(
    post_id: UUID,
    payload: CommentCreate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> CommentResponse:
    comment = create_comment(
        db,
        post_id=post_id,
        author_id=current_user.id,
        body=payload.body,
        parent_comment_id=payload.parent_comment_id,
    )
    return CommentResponse.model_validate(comment)


@router.patch("/comments/{comment_id}", response_model=CommentResponse)
async def edit_comment_endpoint(
    comment_id: UUID,
    payload: CommentUpdate,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> CommentResponse:
    comment = edit_comment(db, comment_id=comment_id, editor_id=current_user.id, body=payload.body)
    return CommentResponse.model_validate(comment)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_comment_endpoint(
    comment_id: UUID,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> None:
    delete_comment(db, comment_id=comment_id, actor_id=current_user.id)


@router.post("/{post_id}/best-answer", response_model=PostResponse)
async def best_answer_endpoint(
    post_id: UUID,
    payload: BestAnswerRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> PostResponse:
    post = mark_best_answer(db, post_id=post_id, comment_id=payload.comment_id, actor_id=current_user.id)
    return PostResponse.model_validate(post)


def _toggle(db: Session, target_kind: str, target_id: UUID, actor_id: UUID, kind: str) -> ReactionToggleResponse:
    result = toggle_reaction(db, target_kind=target_kind, target_id=target_id, actor_id=actor_id, kind=kind)
    return ReactionToggleResponse(
        target_id=target_id,
        target_kind=target_kind,
        kind=kind,
        active=result.active,
        counts=result.counts,
    )


@router.post("/{post_id}/reactions", response_model=ReactionToggleResponse)
async def toggle_post_reaction_endpoint(
    post_id: UUID,
    payload: ReactionToggleRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ReactionToggleResponse:
    return _toggle(db, "post", post_id, current_user.id, payload.kind)


@router.post("/comments/{comment_id}/reactions", response_model=ReactionToggleResponse)
async def toggle_comment_reaction_endpoint(
    comment_id: UUID,
    payload: ReactionToggleRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> ReactionToggleResponse:
    return _toggle(db, "comment", comment_id, current_user.id, payload.kind)


@router.post("/{post_id}/votes", response_model=VoteResponse)
async def vote_post_endpoint(
    post_id: UUID,
    payload: VoteRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> VoteResponse:
    outcome = cast_vote(db, target_kind="post", target_id=post_id, actor_id=current_user.id, direction=payload.direction)
    return VoteResponse(target_id=post_id, target_kind="post", direction=outcome.direction, score=outcome.score)


@router.post("/comments/{comment_id}/votes", response_model=VoteResponse)
async def vote_comment_endpoint(
    comment_id: UUID,
    payload: VoteRequest,
    db: Session = Depends(get_session),
    current_user: Profile = Depends(get_current_user),
) -> VoteResponse:
    outcome = cast_vote(
        db,
        target_kind="comment",
        target_id=comment_id,
        actor_id=current_user.id,
        direction=payload.direction,
    )
    return VoteResponse(target_id=comment_id, target_kind="comment", direction=outcome.direction, score=outcome.score)


__all__ = ["router"]
