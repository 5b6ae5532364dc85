"""Convenience exports for schema layer."""
from .connections import (
    ConnectionActionRequest,
    ConnectionListResponse,
    ConnectionResponse,
    ConnectionSearchResponse,
    ConnectionSearchResult,
    ConnectionStatusResponse,
    PendingRequestsResponse,
)
from .groups import JoinDecisionRequest, JoinRequestResponse
from .messages import (
    ConversationReadResponse,
    DirectMessageCreate,
    DirectMessageResponse,
    DirectThreadResponse,
    GroupMessageCreate,
    GroupMessageListResponse,
    GroupMessageResponse,
    GroupMessageUpdate,
)
from .notifications import MarkAllReadResponse, NotificationListResponse, NotificationResponse, NotificationSummaryResponse
from .posts import (
    BestAnswerRequest,
    CommentCreate,
    CommentNodeResponse,
    CommentResponse,
    CommentUpdate,
    PostCreate,
    PostResponse,
    PostUpdate,
    ReactionToggleRequest,
    ReactionToggleResponse,
    ThreadPostResponse,
    ThreadResponse,
    VoteRequest,
    VoteResponse,
)
from .sessions import (
    PollCreate,
    PollListResponse,
    PollOptionTally,
    PollTallyResponse,
    PollVoteRequest,
    SessionChatCreate,
    SessionChatListResponse,
    SessionChatResponse,
)

__all__ = [
    "ConnectionActionRequest",
    "ConnectionListResponse",
    "ConnectionResponse",
    "ConnectionSearchResponse",
    "ConnectionSearchResult",
    "ConnectionStatusResponse",
    "PendingRequestsResponse",
    "JoinDecisionRequest",
    "JoinRequestResponse",
    "ConversationReadResponse",
    "DirectMessageCreate",
    "DirectMessageResponse",
    "DirectThreadResponse",
    "GroupMessageCreate",
    "GroupMessageListResponse",
    "GroupMessageResponse",
    "GroupMessageUpdate",
    "MarkAllReadResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationSummaryResponse",
    "BestAnswerRequest",
    "CommentCreate",
    "CommentNodeResponse",
    "CommentResponse",
    "CommentUpdate",
    "PostCreate",
    "PostResponse",
    "PostUpdate",
    "ReactionToggleRequest",
    "ReactionToggleResponse",
    "ThreadPostResponse",
    "ThreadResponse",
    "VoteRequest",
    "VoteResponse",
    "PollCreate",
    "PollListResponse",
    "PollOptionTally",
    "PollTallyResponse",
    "PollVoteRequest",
    "SessionChatCreate",
    "SessionChatListResponse",
    "SessionChatResponse",
]
