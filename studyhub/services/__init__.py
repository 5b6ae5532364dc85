"""Convenience exports for service layer."""
from .auth_service import create_access_token, decode_access_token, get_current_user, resolve_profile
from .change_feed import ChangeEvent, ChangeFeed, ChannelFilter, change_feed
from .channels import ChannelSubscriptionManager, ResourceKey, ResourceKind, SubscriptionHandle, SubscriptionState
from .connection_service import (
    ConnectionAction,
    ConnectionStatus,
    apply_connection_action,
    connection_status,
    derive_status,
    list_connections,
    list_pending_requests,
    search_with_status,
)
from .group_service import decide_join_request, request_to_join, require_membership
from .live_views import build_view
from .message_service import (
    delete_direct_message,
    delete_group_message,
    edit_group_message,
    list_direct_messages,
    list_group_messages,
    list_session_chat,
    mark_conversation_read,
    send_direct_message,
    send_group_message,
    send_session_chat,
)
from .notification_service import (
    DomainEvent,
    NotificationKind,
    UnreadCounter,
    count_unread,
    delete_notification,
    delete_old_notifications,
    fan_out,
    list_notifications,
    mark_all_read,
    mark_read,
)
from .poll_service import close_poll, create_poll, load_poll_tally, load_session_polls, next_selection, tally_poll, vote_on_poll
from .reaction_service import cast_vote, count_reactions, toggle_reaction, vote_score
from .thread_service import (
    build_comment_forest,
    create_comment,
    create_post,
    delete_comment,
    delete_post,
    edit_comment,
    edit_post,
    load_thread,
    mark_best_answer,
)

__all__ = [
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "resolve_profile",
    "ChangeEvent",
    "ChangeFeed",
    "ChannelFilter",
    "change_feed",
    "ChannelSubscriptionManager",
    "ResourceKey",
    "ResourceKind",
    "SubscriptionHandle",
    "SubscriptionState",
    "ConnectionAction",
    "ConnectionStatus",
    "apply_connection_action",
    "connection_status",
    "derive_status",
    "list_connections",
    "list_pending_requests",
    "search_with_status",
    "decide_join_request",
    "request_to_join",
    "require_membership",
    "build_view",
    "delete_direct_message",
    "delete_group_message",
    "edit_group_message",
    "list_direct_messages",
    "list_group_messages",
    "list_session_chat",
    "mark_conversation_read",
    "send_direct_message",
    "send_group_message",
    "send_session_chat",
    "DomainEvent",
    "NotificationKind",
    "UnreadCounter",
    "count_unread",
    "delete_notification",
    "delete_old_notifications",
    "fan_out",
    "list_notifications",
    "mark_all_read",
    "mark_read",
    "close_poll",
    "create_poll",
    "load_poll_tally",
    "load_session_polls",
    "next_selection",
    "tally_poll",
    "vote_on_poll",
    "cast_vote",
    "count_reactions",
    "toggle_reaction",
    "vote_score",
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
