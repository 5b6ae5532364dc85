"""Shared database fixtures for the StudyHub test-suite."""
from __future__ import annotations

import os
from typing import Callable, Iterator

import pytest
from sqlalchemy.orm import Session

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_studyhub.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("DISABLE_CLEANUP", "true")

from studyhub.database import Base, SessionLocal, engine  # noqa: E402
from studyhub.models import GroupMembership, Profile, StudyGroup, StudySession  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    with SessionLocal() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    yield


@pytest.fixture
def db() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def profile_factory() -> Callable[..., Profile]:
    def _factory(username: str, full_name: str = "") -> Profile:
        with SessionLocal() as session:
            profile = Profile(username=username, full_name=full_name)
            session.add(profile)
            session.commit()
            session.refresh(profile)
            return profile
    return _factory


@pytest.fixture
def group_factory() -> Callable[..., StudyGroup]:
    def _factory(name: str, *, admins: tuple[Profile, ...] = (), members: tuple[Profile, ...] = ()) -> StudyGroup:
        with SessionLocal() as session:
            group = StudyGroup(name=name, created_by=admins[0].id if admins else None)
            session.add(group)
            session.flush()
            for profile in admins:
                session.add(GroupMembership(group_id=group.id, user_id=profile.id, role="admin"))
            for profile in members:
                session.add(GroupMembership(group_id=group.id, user_id=profile.id, role="member"))
            session.commit()
            session.refresh(group)
            return group
    return _factory


@pytest.fixture
def session_factory() -> Callable[..., StudySession]:
    def _factory(group: StudyGroup, title: str = "Exam prep") -> StudySession:
        with SessionLocal() as session:
            study_session = StudySession(group_id=group.id, title=title, status="active")
            session.add(study_session)
            session.commit()
            session.refresh(study_session)
            return study_session
    return _factory
