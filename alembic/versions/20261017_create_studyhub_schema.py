"""create studyhub schema

Revision ID: 20261017_create_studyhub_schema
Revises:
Create Date: 2026-10-17
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261017_create_studyhub_schema"
down_revision = None
branch_labels = None
depends_on = None

_UUID = postgresql.UUID(as_uuid=True)
_JSON = sa.JSON().with_variant(postgresql.JSONB, "postgresql")


def _id() -> sa.Column:
    return sa.Column("id", _UUID, primary_key=True, nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def _profile_fk(name: str, *, nullable: bool = False, ondelete: str = "CASCADE") -> sa.Column:
    return sa.Column(name, _UUID, sa.ForeignKey("profiles.id", ondelete=ondelete), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "profiles",
        _id(),
        sa.Column("username", sa.String(length=150), nullable=False),
        sa.Column("full_name", sa.String(length=150), nullable=False, server_default=""),
        sa.Column("avatar_url", sa.String(length=1024)),
        _created_at(),
    )
    op.create_index("ix_profiles_username", "profiles", ["username"], unique=True)

    op.create_table(
        "study_groups",
        _id(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        _profile_fk("created_by", nullable=True, ondelete="SET NULL"),
        _created_at(),
    )

    op.create_table(
        "group_memberships",
        _id(),
        sa.Column("group_id", _UUID, sa.ForeignKey("study_groups.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("user_id"),
        sa.Column("role", sa.Enum("admin", "moderator", "member", name="group_role"), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_membership"),
    )
    op.create_index("ix_group_memberships_group_id", "group_memberships", ["group_id"])
    op.create_index("ix_group_memberships_user_id", "group_memberships", ["user_id"])

    op.create_table(
        "group_join_requests",
        _id(),
        sa.Column("group_id", _UUID, sa.ForeignKey("study_groups.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("user_id"),
        sa.Column("status", sa.Enum("pending", "approved", "rejected", name="join_request_status"), nullable=False),
        _created_at(),
        sa.Column("responded_at", sa.DateTime(timezone=True)),
        sa.UniqueConstraint("group_id", "user_id", name="uq_join_request_pair"),
    )
    op.create_index("ix_group_join_requests_group_id", "group_join_requests", ["group_id"])
    op.create_index("ix_group_join_requests_user_id", "group_join_requests", ["user_id"])

    op.create_table(
        "posts",
        _id(),
        sa.Column("group_id", _UUID, sa.ForeignKey("study_groups.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("author_id"),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("question", "discussion", "article", "announcement", "solution", name="post_kind"),
            nullable=False,
        ),
        sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("best_answer_comment_id", _UUID),
        _created_at(),
        sa.Column("edited_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_posts_group_id", "posts", ["group_id"])
    op.create_index("ix_posts_author_id", "posts", ["author_id"])
    op.create_index("ix_posts_created_at", "posts", ["created_at"])

    op.create_table(
        "comments",
        _id(),
        sa.Column("post_id", _UUID, sa.ForeignKey("posts.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("author_id"),
        sa.Column("parent_comment_id", _UUID),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_best_answer", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column("edited_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_comments_post_id", "comments", ["post_id"])
    op.create_index("ix_comments_author_id", "comments", ["author_id"])
    op.create_index("ix_comments_parent_comment_id", "comments", ["parent_comment_id"])

    target_kind = sa.Enum("post", "comment", name="engagement_target_kind")
    op.create_table(
        "reactions",
        _id(),
        sa.Column("target_id", _UUID, nullable=False),
        sa.Column("target_kind", target_kind, nullable=False),
        _profile_fk("actor_id"),
        sa.Column("kind", sa.Enum("like", "helpful", "insightful", "love", name="reaction_kind"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("target_id", "target_kind", "actor_id", "kind", name="uq_reaction_target_actor_kind"),
    )
    op.create_index("ix_reactions_target_id", "reactions", ["target_id"])
    op.create_index("ix_reactions_actor_id", "reactions", ["actor_id"])

    op.create_table(
        "votes",
        _id(),
        sa.Column("target_id", _UUID, nullable=False),
        sa.Column("target_kind", postgresql.ENUM("post", "comment", name="engagement_target_kind", create_type=False), nullable=False),
        _profile_fk("actor_id"),
        sa.Column("direction", sa.Enum("up", "down", name="vote_direction"), nullable=False),
        _created_at(),
        sa.UniqueConstraint("target_id", "target_kind", "actor_id", name="uq_vote_target_actor"),
    )
    op.create_index("ix_votes_target_id", "votes", ["target_id"])
    op.create_index("ix_votes_actor_id", "votes", ["actor_id"])

    op.create_table(
        "user_connections",
        _id(),
        _profile_fk("requester_id"),
        _profile_fk("recipient_id"),
        sa.Column("pair_low", _UUID, nullable=False),
        sa.Column("pair_high", _UUID, nullable=False),
        sa.Column("status", sa.Enum("pending", "accepted", name="connection_status"), nullable=False),
        _created_at(),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("pair_low", "pair_high", name="uq_connection_pair"),
        sa.CheckConstraint("requester_id <> recipient_id", name="ck_connection_not_self"),
    )
    op.create_index("ix_user_connections_requester_id", "user_connections", ["requester_id"])
    op.create_index("ix_user_connections_recipient_id", "user_connections", ["recipient_id"])

    op.create_table(
        "group_messages",
        _id(),
        sa.Column("group_id", _UUID, sa.ForeignKey("study_groups.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("author_id"),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("kind", sa.Enum("text", "file", "system", name="group_message_kind"), nullable=False),
        sa.Column("reply_to_id", _UUID),
        _created_at(),
        sa.Column("edited_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_group_messages_group_id", "group_messages", ["group_id"])
    op.create_index("ix_group_messages_author_id", "group_messages", ["author_id"])
    op.create_index("ix_group_messages_created_at", "group_messages", ["created_at"])

    op.create_table(
        "direct_messages",
        _id(),
        _profile_fk("sender_id"),
        _profile_fk("recipient_id"),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.Column("edited_at", sa.DateTime(timezone=True)),
        sa.CheckConstraint("sender_id <> recipient_id", name="ck_direct_message_not_self"),
    )
    op.create_index("ix_direct_messages_sender_id", "direct_messages", ["sender_id"])
    op.create_index("ix_direct_messages_recipient_id", "direct_messages", ["recipient_id"])
    op.create_index("ix_direct_messages_created_at", "direct_messages", ["created_at"])

    op.create_table(
        "study_sessions",
        _id(),
        sa.Column("group_id", _UUID, sa.ForeignKey("study_groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True)),
        sa.Column(
            "status",
            sa.Enum("scheduled", "active", "completed", "cancelled", name="study_session_status"),
            nullable=False,
        ),
        _profile_fk("created_by", nullable=True, ondelete="SET NULL"),
        _created_at(),
    )
    op.create_index("ix_study_sessions_group_id", "study_sessions", ["group_id"])

    op.create_table(
        "session_chat",
        _id(),
        sa.Column("session_id", _UUID, sa.ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("author_id"),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("kind", sa.Enum("text", "system", "announcement", name="session_chat_kind"), nullable=False),
        _created_at(),
    )
    op.create_index("ix_session_chat_session_id", "session_chat", ["session_id"])
    op.create_index("ix_session_chat_author_id", "session_chat", ["author_id"])
    op.create_index("ix_session_chat_created_at", "session_chat", ["created_at"])

    op.create_table(
        "session_polls",
        _id(),
        sa.Column("session_id", _UUID, sa.ForeignKey("study_sessions.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("created_by"),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("options", _JSON, nullable=False),
        sa.Column("allow_multiple", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column("ends_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_session_polls_session_id", "session_polls", ["session_id"])

    op.create_table(
        "session_poll_responses",
        _id(),
        sa.Column("poll_id", _UUID, sa.ForeignKey("session_polls.id", ondelete="CASCADE"), nullable=False),
        _profile_fk("actor_id"),
        sa.Column("selected_option_ids", _JSON, nullable=False),
        _created_at(),
        sa.UniqueConstraint("poll_id", "actor_id", name="uq_poll_response_actor"),
    )
    op.create_index("ix_session_poll_responses_poll_id", "session_poll_responses", ["poll_id"])
    op.create_index("ix_session_poll_responses_actor_id", "session_poll_responses", ["actor_id"])

    op.create_table(
        "notifications",
        _id(),
        _profile_fk("recipient_id"),
        _profile_fk("actor_id", nullable=True, ondelete="SET NULL"),
        sa.Column("kind", sa.String(length=100), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("link", sa.String(length=1024)),
        sa.Column("payload", _JSON),
        _created_at(),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])


_TABLES = (
    "notifications",
    "session_poll_responses",
    "session_polls",
    "session_chat",
    "study_sessions",
    "direct_messages",
    "group_messages",
    "user_connections",
    "votes",
    "reactions",
    "comments",
    "posts",
    "group_join_requests",
    "group_memberships",
    "study_groups",
    "profiles",
)

_ENUMS = (
    "group_role",
    "join_request_status",
    "post_kind",
    "engagement_target_kind",
    "reaction_kind",
    "vote_direction",
    "connection_status",
    "group_message_kind",
    "study_session_status",
    "session_chat_kind",
)


def downgrade() -> None:
    for table in _TABLES:
        op.drop_table(table)
    for name in _ENUMS:
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)
