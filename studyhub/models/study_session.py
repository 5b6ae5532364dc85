"""ORM models for live study sessions: lobby chat and polls."""
from __future__ import annotations

import uuid

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.sql import expression, func

from studyhub.database import Base


class StudySession(Base):
    __tablename__ = "study_sessions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    group_id = Column(UUID(as_uuid=True), ForeignKey("study_groups.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(300), nullable=False)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    status = Column(
        Enum("scheduled", "active", "completed", "cancelled", name="study_session_status"),
        nullable=False,
        default="scheduled",
    )
    created_by = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class SessionChatMessage(Base):
    __tablename__ = "session_chat"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(UUID(as_uuid=True), ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    body = Column(Text, nullable=False)
    kind = Column(Enum("text", "system", "announcement", name="session_chat_kind"), nullable=False, default="text")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class SessionPoll(Base):
    __tablename__ = "session_polls"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    session_id = Column(UUID(as_uuid=True), ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False)
    question = Column(Text, nullable=False)
    # [{"id": "opt-0", "text": "..."}, ...]
    options = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    allow_multiple = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    is_active = Column(Boolean, nullable=False, server_default=expression.true(), default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=True)


class SessionPollResponse(Base):
    __tablename__ = "session_poll_responses"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    poll_id = Column(UUID(as_uuid=True), ForeignKey("session_polls.id", ondelete="CASCADE"), nullable=False, index=True)
    actor_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    selected_option_ids = Column(JSON().with_variant(JSONB, "postgresql"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("poll_id", "actor_id", name="uq_poll_response_actor"),)


__all__ = ["StudySession", "SessionChatMessage", "SessionPoll", "SessionPollResponse"]
