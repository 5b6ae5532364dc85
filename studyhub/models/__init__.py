"""Convenience exports for ORM models."""
from .connection import Connection
from .engagement import Reaction, Vote
from .group import GroupJoinRequest, GroupMembership, StudyGroup
from .message import DirectMessage, GroupMessage
from .notification import Notification
from .post import Comment, Post
from .profile import Profile
from .study_session import SessionChatMessage, SessionPoll, SessionPollResponse, StudySession

__all__ = [
    "Comment",
    "Connection",
    "DirectMessage",
    "GroupJoinRequest",
    "GroupMembership",
    "GroupMessage",
    "Notification",
    "Post",
    "Profile",
    "Reaction",
    "SessionChatMessage",
    "SessionPoll",
    "SessionPollResponse",
    "StudyGroup",
    "StudySession",
    "Vote",
]
