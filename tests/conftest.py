"""
tests/conftest.py — Shared pytest configuration and fixtures.

Sets dummy environment variables BEFORE any app module is imported,
so that pydantic-settings doesn't fail on missing required fields.

Provides a fresh in-memory SQLite session per test and a small factory
for organizations, teams, counselors, rules and leads.
"""

import os
from unittest.mock import patch
import pytest

# ── Set dummy env vars before any app module is imported ─────────────────────
# This runs at collection time, before tests execute.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import sqlalchemy as sa
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models import (
    AssignmentRule,
    Base,
    Lead,
    LeadEducation,
    LeadExperience,
    LeadTestScore,
    Organization,
    Team,
    User,
)


# ── In-memory DB Fixture ──────────────────────────────────────────────────────

@pytest.fixture
def db():
    """
    Provide a fresh in-memory SQLite session for each test.

    SQLite doesn't support PostgreSQL native ENUMs, so we temporarily
    set native_enum=False on all Enum columns before creating tables.
    StaticPool keeps one connection so the FastAPI TestClient thread
    sees the same in-memory database.
    """
    for table in Base.metadata.tables.values():
        for col in table.columns:
            if isinstance(col.type, sa.Enum):
                col.type.native_enum = False

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    session = Session()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()
        # Restore native_enum so production code is unaffected
        for table in Base.metadata.tables.values():
            for col in table.columns:
                if isinstance(col.type, sa.Enum):
                    col.type.native_enum = True


# ── Factory ───────────────────────────────────────────────────────────────────

class Factory:
    """Creates flushed ORM rows with sensible defaults."""

    def __init__(self, db):
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def _save(self, obj):
        self.db.add(obj)
        self.db.flush()
        return obj

    def org(self, name="Northfield University"):
        return self._save(Organization(name=name))

    def team(self, org, team_name=None, load_strategy="round_robin", **kwargs):
        return self._save(Team(
            org_id=org.id,
            team_name=team_name or f"Team {self._next()}",
            load_strategy=load_strategy,
            **kwargs,
        ))

    def counselor(self, team, first_name=None, last_name="Counselor", **kwargs):
        n = self._next()
        return self._save(User(
            org_id=team.org_id,
            team_id=team.id,
            first_name=first_name or f"C{n:03d}",
            last_name=last_name,
            email=kwargs.pop("email", f"counselor{n}@example.edu"),
            **kwargs,
        ))

    def rule(self, team, type="load_balancing", priority=100, rule_name=None, **kwargs):
        return self._save(AssignmentRule(
            team_id=team.id,
            rule_name=rule_name or f"{type} rule {self._next()}",
            type=type,
            priority=priority,
            **kwargs,
        ))

    def lead(self, org, education=(), experience=(), test_scores=(), **kwargs):
        lead = Lead(org_id=org.id, **kwargs)
        lead.education = [LeadEducation(**e) for e in education]
        lead.experiences = [LeadExperience(**e) for e in experience]
        lead.test_scores = [LeadTestScore(**t) for t in test_scores]
        return self._save(lead)


@pytest.fixture
def factory(db):
    return Factory(db)


@pytest.fixture
def failing_commits(db):
    """
    Make chosen commits on the test session raise OperationalError.

    Usage: `with failing_commits(2): ...` fails the second commit issued
    inside the block; every other commit goes through.
    """
    def _failing(*fail_on):
        real_commit = db.commit
        calls = {"n": 0}

        def _commit():
            calls["n"] += 1
            if calls["n"] in fail_on:
                raise OperationalError("COMMIT", {}, Exception("server closed the connection unexpectedly"))
            real_commit()

        return patch.object(db, "commit", side_effect=_commit)
    return _failing
