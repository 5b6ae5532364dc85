"""Tests for translating commit failures into domain errors."""
from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from studyhub.errors import ConflictError, NotFoundError, TransportError, ValidationError
from studyhub.models import Notification, Profile
from studyhub.services.persistence import commit_or_raise, is_unique_violation


class DriverError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


class FailingSession:
    """Session double whose commit raises the supplied error."""

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.rolled_back = False

    def commit(self) -> None:
        raise self.error

    def rollback(self) -> None:
        self.rolled_back = True


def _integrity(message: str, sqlstate: str | None = None) -> IntegrityError:
    return IntegrityError("INSERT INTO reactions ...", {}, DriverError(message, sqlstate))


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (_integrity("duplicate key value violates unique constraint", "23505"), ConflictError),
        (_integrity("UNIQUE constraint failed: reactions.actor_id"), ConflictError),
        (_integrity("insert or update violates foreign key constraint", "23503"), NotFoundError),
        (_integrity("FOREIGN KEY constraint failed"), NotFoundError),
        (_integrity("null value in column violates not-null constraint", "23502"), ValidationError),
        (_integrity("CHECK constraint failed: score"), ValidationError),
    ],
)
def test_integrity_errors_are_told_apart(error, expected):
    session = FailingSession(error)

    with pytest.raises(expected):
        commit_or_raise(session, conflict_detail="dup", failure_detail="failed", missing_detail="gone")

    assert session.rolled_back


def test_only_unique_violations_count_as_conflicts():
    assert is_unique_violation(_integrity("UNIQUE constraint failed: votes.actor_id"))
    assert not is_unique_violation(_integrity("FOREIGN KEY constraint failed"))
    assert not is_unique_violation(_integrity("violates foreign key constraint", "23503"))


def test_not_null_violation_is_not_a_conflict(db, profile_factory):
    ada = profile_factory("ada")
    db.add(Notification(recipient_id=ada.id, kind="group_join_request", title=None, body="missing title"))

    with pytest.raises(ValidationError) as excinfo:
        commit_or_raise(db, conflict_detail="Notification already exists", failure_detail="Failed to store notification")

    assert not isinstance(excinfo.value, ConflictError)
    assert db.query(Notification).count() == 0


def test_unique_violation_is_a_conflict(db, profile_factory):
    profile_factory("ada")
    db.add(Profile(username="ada"))

    with pytest.raises(ConflictError):
        commit_or_raise(db, conflict_detail="Username taken", failure_detail="Failed to create profile")


def test_row_deleted_before_update_is_not_found(db, profile_factory):
    ada = profile_factory("ada")
    profile = db.get(Profile, ada.id)
    db.execute(Profile.__table__.delete().where(Profile.__table__.c.id == ada.id))
    profile.full_name = "Ada Lovelace"

    with pytest.raises(NotFoundError) as excinfo:
        commit_or_raise(db, conflict_detail="dup", failure_detail="Failed to update profile", missing_detail="Profile not found")

    assert excinfo.value.detail == "Profile not found"


def test_other_database_failures_are_transport_errors():
    session = FailingSession(OperationalError("SELECT 1", {}, DriverError("server closed the connection")))

    with pytest.raises(TransportError):
        commit_or_raise(session, conflict_detail="dup", failure_detail="Database unavailable")
