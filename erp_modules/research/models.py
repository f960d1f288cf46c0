"""
Research Domain Models (``erp_modules.research.models``).

Responsibility
--------------
Frozen value objects for research contributions, their authors, reviewer
edit suggestions, status history and progress trackers.  These flow into
and out of the research services as immutable snapshots.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O.  Author enums are
shared with ``erp_engines.incentive`` so that rows map onto engine inputs
without translation tables.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from erp_engines.incentive import AuthorCategory, AuthorRole, AuthorType


class PublicationType(Enum):
    RESEARCH_PAPER = "research_paper"
    BOOK = "book"
    BOOK_CHAPTER = "book_chapter"
    CONFERENCE_PAPER = "conference_paper"


class ContributionStatus(Enum):
    """Must align with ``workflows.CONTRIBUTION_WORKFLOW.states``."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    CHANGES_REQUIRED = "changes_required"
    RESUBMITTED = "resubmitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class SuggestionStatus(Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TrackerStatus(Enum):
    WRITING = "writing"
    COMMUNICATED = "communicated"
    SUBMITTED = "submitted"
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    PUBLISHED = "published"


# Statuses in which the author list may still change.
AUTHOR_EDITABLE_STATUSES = frozenset(
    {ContributionStatus.DRAFT.value, ContributionStatus.CHANGES_REQUIRED.value}
)


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Actor:
    """An already-authenticated caller."""
    user_id: UUID
    role: str = "faculty"
    permissions: frozenset[str] = frozenset()


@dataclass(frozen=True)
class AuthorDraft:
    """An author as entered on the form, before validation."""
    name: str
    category: AuthorCategory
    author_type: AuthorType
    role: AuthorRole
    uid: str | None = None
    email: str | None = None
    affiliation: str | None = None
    designation: str | None = None


@dataclass(frozen=True)
class AttachmentRef:
    """Reference to a file already stored elsewhere."""
    path: str
    filename: str
    size_bytes: int
    content_type: str | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "filename": self.filename,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
        }


@dataclass(frozen=True)
class SuggestionInput:
    field_path: str
    suggested_value: Any
    note: str | None = None


# ---------------------------------------------------------------------------
# Contribution snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContributionAuthor:
    id: UUID
    position: int
    name: str
    category: AuthorCategory
    author_type: AuthorType
    role: AuthorRole
    uid: str | None = None
    email: str | None = None
    designation: str | None = None
    affiliation: str | None = None
    is_applicant: bool = False
    incentive_share: Decimal | None = None
    points_share: int | None = None


@dataclass(frozen=True)
class EditSuggestion:
    id: UUID
    contribution_id: UUID
    field_path: str
    original_value: Any
    suggested_value: Any
    note: str | None
    status: SuggestionStatus
    reviewer_id: UUID
    resolved_at: datetime | None = None
    resolved_by_id: UUID | None = None


@dataclass(frozen=True)
class StatusHistoryEntry:
    from_status: str | None
    to_status: str
    actor_id: UUID
    changed_at: datetime
    notes: str | None = None


@dataclass(frozen=True)
class Contribution:
    id: UUID
    application_number: str
    publication_type: PublicationType
    title: str
    status: ContributionStatus
    applicant_id: UUID
    department_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)
    indexing_categories: tuple[str, ...] = ()
    quartile: str | None = None
    impact_factor: Decimal | None = None
    sjr: Decimal | None = None
    naas_rating: Decimal | None = None
    incentive_amount: Decimal | None = None
    points: int | None = None
    tracker_id: UUID | None = None
    submitted_at: datetime | None = None
    credited_at: datetime | None = None
    authors: tuple[ContributionAuthor, ...] = ()


# ---------------------------------------------------------------------------
# Progress tracker snapshots
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TrackerHistoryEntry:
    from_status: str | None
    to_status: str
    reported_date: date
    actual_date: date | None
    notes: str | None
    status_data: dict[str, Any]
    attachments: tuple[dict[str, Any], ...]
    data_version: int
    is_monthly_report: bool
    changed_by_id: UUID


@dataclass(frozen=True)
class ProgressTrackerItem:
    id: UUID
    tracker_number: str
    owner_id: UUID
    publication_type: PublicationType
    title: str
    status: TrackerStatus
    data: dict[str, Any]
    data_version: int
    authors_snapshot: tuple[dict[str, Any], ...] = ()
    expected_completion_date: date | None = None
    actual_completion_date: date | None = None
    contribution_id: UUID | None = None


@dataclass(frozen=True)
class SubmissionPackage:
    """What a published tracker hands to a new contribution draft."""
    tracker_id: UUID
    publication_type: PublicationType
    title: str
    data: dict[str, Any]
    authors_snapshot: tuple[dict[str, Any], ...]
    history: tuple[TrackerHistoryEntry, ...]
