"""Domain error taxonomy shared by services, live views and routers."""
from __future__ import annotations

from fastapi import status


class StudyHubError(Exception):
    """Base class for failures scoped to a single view or action."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(StudyHubError):
    """A required field is missing or a value is out of range. Never retried."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY


class InvalidTransitionError(ValidationError):
    """The requested action is not allowed from the current state."""


class PermissionDeniedError(StudyHubError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(StudyHubError):
    """A uniqueness constraint rejected the write."""

    status_code = status.HTTP_409_CONFLICT


class NotFoundError(StudyHubError):
    """The parent or target row does not exist (possibly deleted concurrently)."""

    status_code = status.HTTP_404_NOT_FOUND


class TransportError(StudyHubError):
    """A query or subscription against the data layer failed."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


__all__ = [
    "StudyHubError",
    "ValidationError",
    "InvalidTransitionError",
    "PermissionDeniedError",
    "ConflictError",
    "NotFoundError",
    "TransportError",
]
