"""Comment thread projection plus the post and comment mutations feeding it."""
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session

from ..config import get_settings
from ..constants import POST_KINDS
from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..models import Comment, Post, Reaction, Vote
from .change_feed import change_feed, row_to_dict
from .group_service import is_scope_admin, require_membership
from .notification_service import DomainEvent, NotificationKind, display_name, notify
from .persistence import commit_or_raise, require_text, utcnow
from .reaction_service import count_reactions, group_by_target, viewer_reactions, vote_score

logger = logging.getLogger(__name__)

OrphanPolicy = Literal["promote", "drop"]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _field(row: Any, name: str) -> Any:
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def _as_utc(value: datetime | None) -> datetime:
    if value is None:
        return _EPOCH
    if value.tzinfo is None:
        # SQLite hands back naive datetimes for timezone-aware columns.
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(slots=True)
class CommentNode:
    id: Any
    parent_id: Any | None
    created_at: datetime
    row: Any
    orphaned: bool = False

    @property
    def sort_key(self) -> tuple[datetime, int, Any]:
        if isinstance(self.id, int):
            return (self.created_at, 0, self.id)
        return (self.created_at, 1, str(self.id))


@dataclass(slots=True)
class CommentForest:
    """Arena of comment nodes with children kept as ordered id lists.

    Roots sit at depth 1. A node accepts replies while its depth is below
    ``max_reply_depth``; storage itself allows any depth.
    """

    nodes: dict[Any, CommentNode] = field(default_factory=dict)
    children: dict[Any, list[Any]] = field(default_factory=dict)
    roots: list[Any] = field(default_factory=list)
    dropped: list[Any] = field(default_factory=list)
    depths: dict[Any, int] = field(default_factory=dict)
    max_reply_depth: int = 3

    def __len__(self) -> int:
        return len(self.depths)

    def __contains__(self, comment_id: Any) -> bool:
        return comment_id in self.depths

    def depth(self, comment_id: Any) -> int:
        try:
            return self.depths[comment_id]
        except KeyError:
            raise NotFoundError("Comment not found in thread") from None

    def can_reply(self, comment_id: Any) -> bool:
        return self.depth(comment_id) < self.max_reply_depth

    def walk(self) -> Iterator[CommentNode]:
        """Yield every placed node depth-first, parents before their replies."""

        stack = list(reversed(self.roots))
        while stack:
            node_id = stack.pop()
            yield self.nodes[node_id]
            stack.extend(reversed(self.children.get(node_id, [])))

    def to_tree(self, decorate: Callable[[CommentNode], Mapping[str, Any]] | None = None) -> list[dict[str, Any]]:
        """Render the forest as nested dicts with a ``replies`` list per node."""

        def render(node_id: Any) -> dict[str, Any]:
            node = self.nodes[node_id]
            row = dict(node.row) if isinstance(node.row, Mapping) else row_to_dict(node.row)
            row.update(
                orphaned=node.orphaned,
                depth=self.depths[node_id],
                can_reply=self.can_reply(node_id),
            )
            if decorate is not None:
                row.update(decorate(node))
            row["replies"] = [render(child_id) for child_id in self.children.get(node_id, [])]
            return row

        return [render(root_id) for root_id in self.roots]


def build_comment_forest(
    rows: Iterable[Any],
    *,
    orphan_policy: OrphanPolicy | None = None,
    max_reply_depth: int | None = None,
) -> CommentForest:
    """Project flat comment rows into an ordered forest.

    Rows may be ORM instances or mappings carrying ``id``,
    ``parent_comment_id`` and ``created_at``. A row whose parent is missing
    from ``rows`` is an orphan: ``promote`` turns it into a root flagged
    ``orphaned``, ``drop`` removes it along with its replies. Members of a
    parent cycle are handled as orphans. Output never depends on input order.
    """

    settings = get_settings()
    policy = orphan_policy or settings.orphan_policy
    if policy not in ("promote", "drop"):
        raise ValidationError("orphan_policy must be 'promote' or 'drop'")

    forest = CommentForest(max_reply_depth=max_reply_depth or settings.max_reply_depth)

    for row in rows:
        node = CommentNode(
            id=_field(row, "id"),
            parent_id=_field(row, "parent_comment_id"),
            created_at=_as_utc(_field(row, "created_at")),
            row=row,
        )
        forest.nodes[node.id] = node
        forest.children[node.id] = []

    ordered = sorted(forest.nodes.values(), key=lambda item: item.sort_key)
    orphans: list[Any] = []
    for node in ordered:
        if node.parent_id is None:
            forest.roots.append(node.id)
        elif node.parent_id in forest.nodes and node.parent_id != node.id:
            forest.children[node.parent_id].append(node.id)
        else:
            orphans.append(node.id)

    if policy == "promote":
        for orphan_id in orphans:
            forest.nodes[orphan_id].orphaned = True
            forest.roots.append(orphan_id)
        forest.roots.sort(key=lambda node_id: forest.nodes[node_id].sort_key)

    _assign_depths(forest)

    if policy == "promote":
        # Anything still unplaced hangs off a parent cycle; cut each cycle at its oldest member.
        stranded = [node.id for node in ordered if node.id not in forest.depths]
        while stranded:
            head = forest.nodes[_cycle_head(forest, stranded[0])]
            forest.children[head.parent_id].remove(head.id)
            head.orphaned = True
            forest.roots.append(head.id)
            forest.roots.sort(key=lambda node_id: forest.nodes[node_id].sort_key)
            _assign_depths(forest)
            stranded = [node.id for node in ordered if node.id not in forest.depths]
    else:
        forest.dropped = [node.id for node in ordered if node.id not in forest.depths]
        if forest.dropped:
            logger.debug("Dropped %d orphaned comment(s) from projection", len(forest.dropped))

    return forest


def _assign_depths(forest: CommentForest) -> None:
    forest.depths.clear()
    stack = [(root_id, 1) for root_id in forest.roots]
    while stack:
        node_id, depth = stack.pop()
        forest.depths[node_id] = depth
        stack.extend((child_id, depth + 1) for child_id in forest.children.get(node_id, []))


def _cycle_head(forest: CommentForest, start: Any) -> Any:
    chain: list[Any] = []
    node_id = start
    while node_id not in chain:
        chain.append(node_id)
        node_id = forest.nodes[node_id].parent_id
    cycle = chain[chain.index(node_id):]
    return min(cycle, key=lambda member: forest.nodes[member].sort_key)


@dataclass(slots=True)
class ThreadSnapshot:
    """A post with its projected comment forest and aggregated engagement."""

    post: dict[str, Any]
    forest: CommentForest
    post_reactions: dict[str, int]
    post_viewer_reactions: list[str]
    post_score: int
    comment_reactions: dict[Any, dict[str, int]]
    comment_viewer_reactions: dict[Any, list[str]]
    comment_scores: dict[Any, int]

    def to_payload(self) -> dict[str, Any]:
        def decorate(node: CommentNode) -> dict[str, Any]:
            return {
                "reactions": self.comment_reactions.get(node.id, count_reactions(())),
                "viewer_reactions": self.comment_viewer_reactions.get(node.id, []),
                "score": self.comment_scores.get(node.id, 0),
            }

        return {
            "post": {
                **self.post,
                "reactions": self.post_reactions,
                "viewer_reactions": self.post_viewer_reactions,
                "score": self.post_score,
            },
            "comments": self.forest.to_tree(decorate),
            "comment_count": len(self.forest),
        }


def _post_or_404(db: Session, post_id: UUID) -> Post:
    post = db.get(Post, post_id)
    if post is None:
        raise NotFoundError("Post not found")
    return post


def load_thread(
    db: Session,
    *,
    post_id: UUID,
    viewer_id: UUID | None = None,
    orphan_policy: OrphanPolicy | None = None,
) -> ThreadSnapshot:
    post = _post_or_404(db, post_id)
    comments = list(
        db.scalars(select(Comment).where(Comment.post_id == post_id).order_by(Comment.created_at, Comment.id))
    )
    forest = build_comment_forest(comments, orphan_policy=orphan_policy)

    comment_ids = [comment.id for comment in comments]
    target_filter = or_(
        (Reaction.target_kind == "post") & (Reaction.target_id == post_id),
        (Reaction.target_kind == "comment") & (Reaction.target_id.in_(comment_ids)),
    )
    reactions = group_by_target(db.scalars(select(Reaction).where(target_filter)))
    votes = group_by_target(
        db.scalars(
            select(Vote).where(
                or_(
                    (Vote.target_kind == "post") & (Vote.target_id == post_id),
                    (Vote.target_kind == "comment") & (Vote.target_id.in_(comment_ids)),
                )
            )
        )
    )

    post_reactions = reactions.get(post_id, [])
    return ThreadSnapshot(
        post=row_to_dict(post),
        forest=forest,
        post_reactions=count_reactions(post_reactions),
        post_viewer_reactions=viewer_reactions(post_reactions, viewer_id),
        post_score=vote_score(votes.get(post_id, [])),
        comment_reactions={cid: count_reactions(reactions.get(cid, [])) for cid in comment_ids},
        comment_viewer_reactions={cid: viewer_reactions(reactions.get(cid, []), viewer_id) for cid in comment_ids},
        comment_scores={cid: vote_score(votes.get(cid, [])) for cid in comment_ids},
    )


def create_post(
    db: Session,
    *,
    group_id: UUID,
    author_id: UUID,
    title: str,
    body: str,
    kind: str = "discussion",
) -> Post:
    require_membership(db, group_id, author_id)
    if kind not in POST_KINDS:
        raise ValidationError(f"kind must be one of {', '.join(POST_KINDS)}")
    post = Post(
        group_id=group_id,
        author_id=author_id,
        title=require_text(title, field_name="Title"),
        body=require_text(body, field_name="Body"),
        kind=kind,
        created_at=utcnow(),
    )
    db.add(post)
    commit_or_raise(db, conflict_detail="Post already exists", failure_detail="Failed to create post")
    db.refresh(post)
    change_feed.publish_row("insert", post)
    return post


def edit_post(db: Session, *, post_id: UUID, editor_id: UUID, body: str, title: str | None = None) -> Post:
    post = _post_or_404(db, post_id)
    if post.author_id != editor_id:
        raise PermissionDeniedError("Only the author can edit this post")
    post.body = require_text(body, field_name="Body")
    if title is not None:
        post.title = require_text(title, field_name="Title")
    post.edited_at = utcnow()
    commit_or_raise(db, conflict_detail="Post changed concurrently", failure_detail="Failed to edit post")
    db.refresh(post)
    change_feed.publish_row("update", post)
    return post


def _can_moderate(db: Session, post: Post, actor_id: UUID, owner_id: UUID) -> bool:
    return owner_id == actor_id or is_scope_admin(db, post.group_id, actor_id)


def _delete_engagement(db: Session, target_kind: str, target_ids: list[UUID]) -> None:
    if not target_ids:
        return
    db.execute(delete(Reaction).where(Reaction.target_kind == target_kind, Reaction.target_id.in_(target_ids)))
    db.execute(delete(Vote).where(Vote.target_kind == target_kind, Vote.target_id.in_(target_ids)))


def delete_post(db: Session, *, post_id: UUID, actor_id: UUID) -> None:
    post = _post_or_404(db, post_id)
    if not _can_moderate(db, post, actor_id, post.author_id):
        raise PermissionDeniedError("Only the author or a group admin can delete this post")

    snapshot = row_to_dict(post)
    comment_ids = [comment.id for comment in post.comments]
    _delete_engagement(db, "post", [post.id])
    _delete_engagement(db, "comment", comment_ids)
    db.delete(post)
    commit_or_raise(db, conflict_detail="Post changed concurrently", failure_detail="Failed to delete post")
    change_feed.publish("posts", "delete", snapshot)
    logger.info("Post %s deleted by %s", post_id, actor_id)


def _comment_or_404(db: Session, comment_id: UUID) -> Comment:
    comment = db.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    return comment


def create_comment(
    db: Session,
    *,
    post_id: UUID,
    author_id: UUID,
    body: str,
    parent_comment_id: UUID | None = None,
) -> Comment:
    text = require_text(body, field_name="Comment")
    post = _post_or_404(db, post_id)
    require_membership(db, post.group_id, author_id)

    parent: Comment | None = None
    if parent_comment_id is not None:
        parent = db.get(Comment, parent_comment_id)
        if parent is None or parent.post_id != post_id:
            raise NotFoundError("Parent comment not found")

    comment = Comment(
        post_id=post_id,
        author_id=author_id,
        parent_comment_id=parent_comment_id,
        body=text,
        created_at=utcnow(),
    )
    db.add(comment)
    commit_or_raise(db, conflict_detail="Comment already exists", failure_detail="Failed to add comment")
    db.refresh(comment)
    change_feed.publish_row("insert", comment)

    author_name = display_name(db, author_id)
    if parent is not None:
        event = DomainEvent(
            kind=NotificationKind.COMMENT_REPLY,
            actor_id=author_id,
            recipient_id=parent.author_id,
            title="New Reply",
            body=f"{author_name} replied to your comment",
            link=f"/posts/{post_id}",
            payload={"post_id": str(post_id), "comment_id": str(comment.id)},
        )
    else:
        event = DomainEvent(
            kind=NotificationKind.POST_COMMENT,
            actor_id=author_id,
            recipient_id=post.author_id,
            title="New Comment",
            body=f'{author_name} commented on "{post.title}"',
            link=f"/posts/{post_id}",
            payload={"post_id": str(post_id), "comment_id": str(comment.id)},
        )
    notify(db, event)
    return comment


def edit_comment(db: Session, *, comment_id: UUID, editor_id: UUID, body: str) -> Comment:
    comment = _comment_or_404(db, comment_id)
    if comment.author_id != editor_id:
        raise PermissionDeniedError("Only the author can edit this comment")
    comment.body = require_text(body, field_name="Comment")
    comment.edited_at = utcnow()
    commit_or_raise(db, conflict_detail="Comment changed concurrently", failure_detail="Failed to edit comment")
    db.refresh(comment)
    change_feed.publish_row("update", comment)
    return comment


def delete_comment(db: Session, *, comment_id: UUID, actor_id: UUID) -> None:
    """Delete one comment; its replies stay and surface as orphans."""

    comment = _comment_or_404(db, comment_id)
    post = _post_or_404(db, comment.post_id)
    if not _can_moderate(db, post, actor_id, comment.author_id):
        raise PermissionDeniedError("Only the author or a group admin can delete this comment")

    snapshot = row_to_dict(comment)
    post_changed = post.best_answer_comment_id == comment.id
    if post_changed:
        post.best_answer_comment_id = None
    _delete_engagement(db, "comment", [comment.id])
    db.delete(comment)
    commit_or_raise(db, conflict_detail="Comment changed concurrently", failure_detail="Failed to delete comment")
    change_feed.publish("comments", "delete", snapshot)
    if post_changed:
        db.refresh(post)
        change_feed.publish_row("update", post)


def mark_best_answer(db: Session, *, post_id: UUID, comment_id: UUID | None, actor_id: UUID) -> Post:
    """Select (or clear, with ``comment_id=None``) the accepted answer of a post."""

    post = _post_or_404(db, post_id)
    if post.author_id != actor_id:
        raise PermissionDeniedError("Only the post author can choose the best answer")

    chosen: Comment | None = None
    if comment_id is not None:
        chosen = db.get(Comment, comment_id)
        if chosen is None or chosen.post_id != post_id:
            raise NotFoundError("Comment not found")

    changed: list[Comment] = []
    for comment in post.comments:
        flag = chosen is not None and comment.id == chosen.id
        if comment.is_best_answer != flag:
            comment.is_best_answer = flag
            changed.append(comment)
    post.best_answer_comment_id = chosen.id if chosen is not None else None
    commit_or_raise(db, conflict_detail="Post changed concurrently", failure_detail="Failed to update best answer")
    db.refresh(post)
    change_feed.publish_row("update", post)
    for comment in changed:
        db.refresh(comment)
        change_feed.publish_row("update", comment)
    return post


__all__ = [
    "CommentForest",
    "CommentNode",
    "OrphanPolicy",
    "ThreadSnapshot",
    "build_comment_forest",
    "create_comment",
    "create_post",
    "delete_comment",
    "delete_post",
    "edit_comment",
    "edit_post",
    "load_thread",
    "mark_best_answer",
]
