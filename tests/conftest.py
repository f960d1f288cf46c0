"""
Pytest fixtures for the research core test suite.

Provides:
- Structured logging configured once per session, plus a JSON log capture
- A fresh in-memory SQLite database per test (tables created from the
  module ORM registry, append-only listeners attached)
- A deterministic clock, an in-memory audit sink and an in-process Redis
  stand-in for the read-through cache
- Directory people, permission grants and ready-wired services

Environment Variables:
- DATABASE_URL: run the suite against another database (e.g. PostgreSQL).
  If not set, each test gets its own ``sqlite://`` database.
"""

import json
import logging
import os
from io import StringIO
from uuid import uuid4

import pytest
import redis

from erp_config import get_active_config
from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from erp_kernel.db.immutability import register_immutability_listeners
from erp_kernel.domain.clock import DeterministicClock
from erp_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from erp_modules.directory.orm import PersonModel
from erp_modules.permissions import PermissionScope, PermissionStore
from erp_modules.research import (
    Actor,
    AuthorRegistry,
    ContributionLifecycleManager,
    ProgressTracker,
    ResearchConfig,
)
from erp_services.audit import InMemoryAuditSink
from erp_services.cache import ReadThroughCache

# Actor ID used as created_by for directory fixtures
TEST_ACTOR_ID = uuid4()


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture erp_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, lifecycle):
            lifecycle.submit(...)
            logs = captured_logs()
            assert any(r["message"] == "contribution_submitted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("erp_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", "sqlite://")


@pytest.fixture
def session():
    """A session on a freshly created schema; discarded after the test."""
    init_engine_from_url(get_database_url())
    create_tables()
    register_immutability_listeners()
    db = get_session()
    try:
        yield db
    finally:
        db.rollback()
        db.close()
        drop_tables()
        reset_engine()


# =============================================================================
# Infrastructure doubles
# =============================================================================


class FakeRedis:
    """In-process stand-in for ``redis.Redis`` (get / setex / delete).

    Set ``failing = True`` to make every call raise ``redis.ConnectionError``.
    """

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.failing = False
        self.get_calls = 0

    def _check(self):
        if self.failing:
            raise redis.ConnectionError("redis unavailable")

    def get(self, key):
        self._check()
        self.get_calls += 1
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self._check()
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self._check()
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return ReadThroughCache(fake_redis, ttl_seconds=300)


@pytest.fixture
def erp_config():
    return get_active_config()


@pytest.fixture
def research_config(erp_config):
    return ResearchConfig.from_dict(dict(erp_config.research))


# =============================================================================
# Directory people
# =============================================================================


@pytest.fixture
def make_person(session):
    """Factory: insert an active internal person and return its DTO."""
    counter = {"n": 0}

    def _make(
        name: str,
        person_type: str = "faculty",
        designation: str | None = "Assistant Professor",
        uid: str | None = None,
        with_user: bool = True,
    ):
        counter["n"] += 1
        uid = uid or f"UID{counter['n']:04d}"
        person = PersonModel(
            uid=uid,
            user_id=uuid4() if with_user else None,
            name=name,
            email=f"{uid.lower()}@university.example",
            designation=designation if person_type == "faculty" else None,
            department_name="School of Engineering",
            person_type=person_type,
            is_active=True,
            created_by_id=TEST_ACTOR_ID,
        )
        session.add(person)
        session.flush()
        return person.to_dto()

    return _make


@pytest.fixture
def applicant_person(make_person):
    return make_person("Asha Verma", designation="Professor")


@pytest.fixture
def applicant(applicant_person):
    return Actor(user_id=applicant_person.user_id)


@pytest.fixture
def faculty_coauthor(make_person):
    return make_person("Ravi Kumar")


@pytest.fixture
def student_coauthor(make_person):
    return make_person("Meena Singh", person_type="student", with_user=False)


@pytest.fixture
def reviewer_person(make_person):
    return make_person("Dean of Research", designation="Dean")


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def permission_store(session, erp_config, cache, deterministic_clock, audit_sink):
    return PermissionStore(
        session,
        config=erp_config,
        cache=cache,
        clock=deterministic_clock,
        audit_sink=audit_sink,
    )


@pytest.fixture
def reviewer(reviewer_person, permission_store):
    """A central-scope reviewer holding review and approve for every family."""
    permission_store.grant(
        reviewer_person.user_id,
        None,
        PermissionScope.CENTRAL,
        [
            "research_review",
            "research_approve",
            "book_review",
            "book_approve",
            "conference_review",
            "conference_approve",
        ],
        actor_id=TEST_ACTOR_ID,
    )
    return Actor(user_id=reviewer_person.user_id, role="reviewer")


@pytest.fixture
def author_registry(session, research_config, deterministic_clock, audit_sink):
    return AuthorRegistry(session, research_config, deterministic_clock, audit_sink)


@pytest.fixture
def progress_tracker(session, research_config, cache, deterministic_clock, audit_sink):
    return ProgressTracker(
        session,
        research_config,
        cache=cache,
        clock=deterministic_clock,
        audit_sink=audit_sink,
    )


@pytest.fixture
def lifecycle(
    session,
    permission_store,
    erp_config,
    research_config,
    cache,
    deterministic_clock,
    audit_sink,
):
    return ContributionLifecycleManager(
        session,
        permission_store,
        config=erp_config,
        research_config=research_config,
        clock=deterministic_clock,
        audit_sink=audit_sink,
        cache=cache,
    )
