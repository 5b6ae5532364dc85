"""Commit helpers translating database failures into domain errors."""
from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConflictError, NotFoundError, TransportError, ValidationError

logger = logging.getLogger(__name__)

# SQLSTATE class 23 codes as reported by psycopg (``sqlstate``) and psycopg2 (``pgcode``).
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _integrity_kind(exc: IntegrityError) -> str:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == UNIQUE_VIOLATION:
        return "unique"
    if code == FOREIGN_KEY_VIOLATION:
        return "foreign_key"
    message = str(orig).lower()
    if "unique constraint failed" in message or "duplicate key value" in message:
        return "unique"
    if "foreign key constraint" in message:
        return "foreign_key"
    return "other"


def is_unique_violation(exc: IntegrityError) -> bool:
    return _integrity_kind(exc) == "unique"


def commit_or_raise(
    db: Session,
    *,
    conflict_detail: str,
    failure_detail: str,
    missing_detail: str = "Referenced record not found",
) -> None:
    """Commit the session and translate failures.

    Unique violations become :class:`ConflictError`. Foreign key violations and
    rows that vanished before an UPDATE/DELETE become :class:`NotFoundError`.
    Any other constraint failure is a :class:`ValidationError`.
    """

    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        kind = _integrity_kind(exc)
        if kind == "unique":
            raise ConflictError(conflict_detail) from exc
        if kind == "foreign_key":
            raise NotFoundError(missing_detail) from exc
        logger.warning("Constraint rejected write: %s", exc.orig)
        raise ValidationError(failure_detail) from exc
    except StaleDataError as exc:
        db.rollback()
        raise NotFoundError(missing_detail) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Commit failed: %s", failure_detail)
        raise TransportError(failure_detail) from exc


def require_text(value: str | None, *, field_name: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} cannot be empty")
    return text


__all__ = ["commit_or_raise", "is_unique_violation", "require_text", "utcnow"]
