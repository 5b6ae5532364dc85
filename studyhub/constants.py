"""Project-wide constant values."""
from __future__ import annotations

REACTION_KINDS: tuple[str, ...] = ("like", "helpful", "insightful", "love")

TARGET_KINDS: tuple[str, ...] = ("post", "comment")

VOTE_DIRECTIONS: tuple[str, ...] = ("up", "down")

POST_KINDS: tuple[str, ...] = ("question", "discussion", "article", "announcement", "solution")

MIN_POLL_OPTIONS = 2

__all__ = [
    "REACTION_KINDS",
    "TARGET_KINDS",
    "VOTE_DIRECTIONS",
    "POST_KINDS",
    "MIN_POLL_OPTIONS",
]
