"""
Unit-of-work tests for session_scope.

Covers:
- Commit on normal exit
- Rollback (and re-raise) on exception
- Engine access before initialization
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from erp_modules.directory.orm import PersonModel

ACTOR = uuid4()


@pytest.fixture
def database():
    init_engine_from_url("sqlite://")
    create_tables()
    yield
    drop_tables()
    reset_engine()


def person(uid):
    return PersonModel(
        uid=uid,
        name=f"Person {uid}",
        email=f"{uid.lower()}@university.example",
        created_by_id=ACTOR,
    )


def count_people():
    with session_scope() as session:
        return session.scalar(select(func.count()).select_from(PersonModel))


class TestSessionScope:

    def test_commits_on_success(self, database):
        with session_scope() as session:
            session.add(person("UID9001"))

        assert count_people() == 1

    def test_rolls_back_on_error(self, database, captured_logs):
        with pytest.raises(RuntimeError):
            with session_scope() as session:
                session.add(person("UID9002"))
                session.flush()
                raise RuntimeError("credit failed")

        assert count_people() == 0
        assert any(r["message"] == "transaction_rolled_back" for r in captured_logs())


def test_engine_required():
    reset_engine()
    with pytest.raises(RuntimeError):
        get_engine()
