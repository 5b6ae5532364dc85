"""Reaction and vote rows attached to posts or comments."""
from __future__ import annotations

import uuid

from sqlalchemy import Column, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from studyhub.database import Base

_target_kind = Enum("post", "comment", name="engagement_target_kind")


class Reaction(Base):
    __tablename__ = "reactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    target_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    target_kind = Column(_target_kind, nullable=False)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(Enum("like", "helpful", "insightful", "love", name="reaction_kind"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("target_id", "target_kind", "actor_id", "kind", name="uq_reaction_target_actor_kind"),
    )


class Vote(Base):
    __tablename__ = "votes"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    target_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    target_kind = Column(_target_kind, nullable=False)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    direction = Column(Enum("up", "down", name="vote_direction"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("target_id", "target_kind", "actor_id", name="uq_vote_target_actor"),)


__all__ = ["Reaction", "Vote"]
