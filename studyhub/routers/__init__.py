"""Aggregate router exports."""
from .connections import router as connections_router
from .groups import router as groups_router
from .messages import router as messages_router
from .notifications import router as notifications_router
from .posts import router as posts_router
from .realtime import router as realtime_router
from .sessions import router as sessions_router

__all__ = [
    "connections_router",
    "groups_router",
    "messages_router",
    "notifications_router",
    "posts_router",
    "realtime_router",
    "sessions_router",
]
