"""
Shared pytest fixtures.

Uses a file-backed SQLite database so no Postgres is required for tests.
Every table is emptied after each test: the percentile ranks against *all*
circles, so one test's circles must never leak into another's ranking.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_circles.db")

import itertools
from datetime import date, datetime
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from circle_stats.db.base import Base, get_db, get_session_factory
from circle_stats.main import app
from circle_stats.models import (
    Circle,
    CircleMember,
    CircleRole,
    UserAlignment,
    UserAlignmentSummary,
)
from circle_stats.services.alignment_dates import alignment_doc_id

SQLITE_URL = "sqlite:///./test_circles.db"

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def override_get_session_factory():
    return TestingSessionLocal


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ── Factories ────────────────────────────────────────────────────────────

@pytest.fixture()
def make_circle(db):
    """Create a circle with members (and optionally a coach).

    Usage:
        cid = make_circle(members=["u1", "u2"], coach_id="coach")
    """
    counter = itertools.count(1)

    def _factory(
        members: tuple = (),
        coach_id: Optional[str] = None,
        circle_id: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> str:
        cid = circle_id or f"circle-{next(counter)}"
        circle = Circle(id=cid, name=f"Circle {cid}", coach_id=coach_id, member_ids=list(members))
        if created_at is not None:
            circle.created_at = created_at
        db.add(circle)
        db.flush()
        for uid in members:
            db.add(CircleMember(circle_id=cid, user_id=uid, role=CircleRole.MEMBER))
        if coach_id:
            db.add(CircleMember(circle_id=cid, user_id=coach_id, role=CircleRole.COACH))
        db.commit()
        return cid

    return _factory


@pytest.fixture()
def set_alignment(db):
    """Upsert a user's alignment row for a day. fully_aligned follows score == 100."""

    def _set(user_id: str, day: date, score: int) -> None:
        db.merge(UserAlignment(
            id=alignment_doc_id(user_id, day),
            user_id=user_id,
            day=day,
            alignment_score=score,
            fully_aligned=score == 100,
        ))
        db.commit()

    return _set


@pytest.fixture()
def set_user_streak(db):
    def _set(user_id: str, streak: int) -> None:
        db.merge(UserAlignmentSummary(user_id=user_id, current_streak=streak))
        db.commit()

    return _set
