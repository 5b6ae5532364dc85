"""ORM model representing a social edge between two profiles."""
from __future__ import annotations

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func

from studyhub.database import Base


class Connection(Base):
    __tablename__ = "user_connections"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    requester_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_id = Column(UUID(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    # Unordered pair, lowest id first, so both directions collide on the same constraint.
    pair_low = Column(UUID(as_uuid=True), nullable=False)
    pair_high = Column(UUID(as_uuid=True), nullable=False)
    status = Column(Enum("pending", "accepted", name="connection_status"), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("pair_low", "pair_high", name="uq_connection_pair"),
        CheckConstraint("requester_id <> recipient_id", name="ck_connection_not_self"),
    )

    def involves(self, user_id: uuid.UUID) -> bool:
        return user_id in {self.requester_id, self.recipient_id}

    def other_party(self, user_id: uuid.UUID) -> uuid.UUID:
        return self.recipient_id if self.requester_id == user_id else self.requester_id


__all__ = ["Connection"]
