"""
Append-only journal enforcement.

Covers:
- Contribution status history rows cannot be updated or deleted
- Tracker history rows cannot be updated or deleted
- Ordinary tracked rows remain mutable
- Listeners can be detached for maintenance tooling
"""

from datetime import date
from uuid import uuid4

import pytest

from erp_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from erp_kernel.exceptions import ImmutabilityViolationError
from erp_modules.research.orm import (
    ContributionStatusHistoryModel,
    ProgressTrackerModel,
    TrackerHistoryModel,
)

ACTOR = uuid4()


@pytest.fixture
def contribution_entry(session, deterministic_clock):
    entry = ContributionStatusHistoryModel(
        contribution_id=uuid4(),
        sequence=1,
        from_status=None,
        to_status="draft",
        actor_id=ACTOR,
        changed_at=deterministic_clock.now(),
        created_by_id=ACTOR,
    )
    session.add(entry)
    session.flush()
    return entry


@pytest.fixture
def tracker_entry(session):
    entry = TrackerHistoryModel(
        tracker_id=uuid4(),
        from_status=None,
        to_status="writing",
        reported_date=date(2025, 1, 15),
        data_version=1,
        created_by_id=ACTOR,
    )
    session.add(entry)
    session.flush()
    return entry


class TestContributionHistoryImmutable:

    def test_update_blocked(self, session, contribution_entry):
        contribution_entry.to_status = "approved"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "ContributionStatusHistoryModel"
        assert "to_status" in exc_info.value.reason

    def test_delete_blocked(self, session, contribution_entry):
        session.delete(contribution_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestTrackerHistoryImmutable:

    def test_update_blocked(self, session, tracker_entry):
        tracker_entry.notes = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_blocked(self, session, tracker_entry):
        session.delete(tracker_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestMutableModelsUnaffected:

    def test_tracker_row_updates(self, session):
        row = ProgressTrackerModel(
            tracker_number="TRP-202501-0001",
            owner_id=ACTOR,
            publication_type="research_paper",
            title="Draft",
            status="writing",
            data={},
            data_version=1,
            created_by_id=ACTOR,
        )
        session.add(row)
        session.flush()
        row.title = "Renamed"
        session.flush()
        assert row.title == "Renamed"


class TestListenerToggle:

    def test_unregistered_listeners_allow_update(self, session, tracker_entry):
        unregister_immutability_listeners()
        try:
            tracker_entry.notes = "maintenance fix"
            session.flush()
        finally:
            register_immutability_listeners()
        assert tracker_entry.notes == "maintenance fix"
