"""
Research ORM Models (``erp_modules.research.orm``).

Responsibility
--------------
SQLAlchemy persistence models for contributions, their authors and edit
suggestions, progress trackers, and the two status journals.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``erp_kernel.db`` and
sibling ``models.py``.  MUST NOT be imported by ``erp_kernel``.

Invariants enforced
-------------------
* Status journals (``ContributionStatusHistoryModel``,
  ``TrackerHistoryModel``) are append-only via ``AppendOnlyMixin``.
  They reference their parent by id without a foreign key, so deleting a
  draft or an unlinked tracker leaves its journal intact.
* ``application_number`` and ``tracker_number`` are unique.
* (contribution_id, uid) is unique for internal authors.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import TrackedBase
from erp_kernel.db.immutability import AppendOnlyMixin


# ---------------------------------------------------------------------------
# 1. ContributionModel
# ---------------------------------------------------------------------------


class ContributionModel(TrackedBase):
    """
    ORM model for a research contribution (paper, book, chapter, conference).

    Guarantees:
        - application_number is unique (uq_research_contributions_number).
        - incentive_amount / points stay NULL until approval.
        - JSON columns are reassigned, never mutated in place.
    """

    __tablename__ = "research_contributions"

    __table_args__ = (
        UniqueConstraint("application_number", name="uq_research_contributions_number"),
        Index("idx_research_contributions_applicant", "applicant_id"),
        Index("idx_research_contributions_status", "status"),
    )

    application_number: Mapped[str] = mapped_column(String(30), nullable=False)
    publication_type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    applicant_id: Mapped[UUID] = mapped_column(nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    indexing_categories: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quartile: Mapped[str | None] = mapped_column(String(20), nullable=True)
    impact_factor: Mapped[Decimal | None] = mapped_column(Numeric(8, 3), nullable=True)
    sjr: Mapped[Decimal | None] = mapped_column(Numeric(8, 3), nullable=True)
    naas_rating: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    incentive_amount: Mapped[Decimal | None] = mapped_column(nullable=True)
    points: Mapped[int | None] = mapped_column(nullable=True)
    tracker_id: Mapped[UUID | None] = mapped_column(nullable=True)
    submitted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    credited_at: Mapped[datetime | None] = mapped_column(nullable=True)

    authors: Mapped[list["ContributionAuthorModel"]] = relationship(
        back_populates="contribution",
        cascade="all, delete-orphan",
        order_by="ContributionAuthorModel.position",
    )
    suggestions: Mapped[list["EditSuggestionModel"]] = relationship(
        back_populates="contribution",
        cascade="all, delete-orphan",
        order_by="EditSuggestionModel.created_at",
    )

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from erp_modules.research.models import (
            Contribution,
            ContributionStatus,
            PublicationType,
        )

        return Contribution(
            id=self.id,
            application_number=self.application_number,
            publication_type=PublicationType(self.publication_type),
            title=self.title,
            status=ContributionStatus(self.status),
            applicant_id=self.applicant_id,
            department_id=self.department_id,
            details=dict(self.details or {}),
            indexing_categories=tuple(self.indexing_categories or ()),
            quartile=self.quartile,
            impact_factor=self.impact_factor,
            sjr=self.sjr,
            naas_rating=self.naas_rating,
            incentive_amount=self.incentive_amount,
            points=self.points,
            tracker_id=self.tracker_id,
            submitted_at=self.submitted_at,
            credited_at=self.credited_at,
            authors=tuple(a.to_dto() for a in self.authors),
        )

    def __repr__(self) -> str:
        return f"<ContributionModel {self.application_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# 2. ContributionAuthorModel
# ---------------------------------------------------------------------------


class ContributionAuthorModel(TrackedBase):
    """
    ORM model for one author of a contribution.

    Guarantees:
        - position is 1-based listing order.
        - incentive_share / points_share stay NULL until approval.
    """

    __tablename__ = "contribution_authors"

    __table_args__ = (
        UniqueConstraint("contribution_id", "uid", name="uq_contribution_authors_uid"),
        Index("idx_contribution_authors_contribution", "contribution_id"),
    )

    contribution_id: Mapped[UUID] = mapped_column(
        ForeignKey("research_contributions.id"), nullable=False
    )
    position: Mapped[int] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    author_type: Mapped[str] = mapped_column(String(20), nullable=False)
    role: Mapped[str] = mapped_column(String(30), nullable=False)
    uid: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    designation: Mapped[str | None] = mapped_column(String(100), nullable=True)
    affiliation: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_applicant: Mapped[bool] = mapped_column(Boolean, default=False)
    incentive_share: Mapped[Decimal | None] = mapped_column(nullable=True)
    points_share: Mapped[int | None] = mapped_column(nullable=True)

    contribution: Mapped[ContributionModel] = relationship(back_populates="authors")

    def to_dto(self):
        from erp_engines.incentive import AuthorCategory, AuthorRole, AuthorType
        from erp_modules.research.models import ContributionAuthor

        return ContributionAuthor(
            id=self.id,
            position=self.position,
            name=self.name,
            category=AuthorCategory(self.category),
            author_type=AuthorType(self.author_type),
            role=AuthorRole(self.role),
            uid=self.uid,
            email=self.email,
            designation=self.designation,
            affiliation=self.affiliation,
            is_applicant=self.is_applicant,
            incentive_share=self.incentive_share,
            points_share=self.points_share,
        )

    def __repr__(self) -> str:
        return f"<ContributionAuthorModel #{self.position} {self.name} ({self.role})>"


# ---------------------------------------------------------------------------
# 3. EditSuggestionModel
# ---------------------------------------------------------------------------


class EditSuggestionModel(TrackedBase):
    """Reviewer-proposed field change; resolved once by the applicant."""

    __tablename__ = "contribution_edit_suggestions"

    __table_args__ = (
        Index("idx_edit_suggestions_contribution_status", "contribution_id", "status"),
    )

    contribution_id: Mapped[UUID] = mapped_column(
        ForeignKey("research_contributions.id"), nullable=False
    )
    field_path: Mapped[str] = mapped_column(String(100), nullable=False)
    original_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    suggested_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    reviewer_id: Mapped[UUID] = mapped_column(nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    contribution: Mapped[ContributionModel] = relationship(back_populates="suggestions")

    def to_dto(self):
        from erp_modules.research.models import EditSuggestion, SuggestionStatus

        return EditSuggestion(
            id=self.id,
            contribution_id=self.contribution_id,
            field_path=self.field_path,
            original_value=self.original_value,
            suggested_value=self.suggested_value,
            note=self.note,
            status=SuggestionStatus(self.status),
            reviewer_id=self.reviewer_id,
            resolved_at=self.resolved_at,
            resolved_by_id=self.resolved_by_id,
        )


# ---------------------------------------------------------------------------
# 4. ContributionStatusHistoryModel (append-only)
# ---------------------------------------------------------------------------


class ContributionStatusHistoryModel(AppendOnlyMixin, TrackedBase):
    """One status change of a contribution.  Never updated or deleted."""

    __tablename__ = "contribution_status_history"

    __table_args__ = (
        UniqueConstraint("contribution_id", "sequence", name="uq_contribution_history_sequence"),
    )

    contribution_id: Mapped[UUID] = mapped_column(nullable=False)
    sequence: Mapped[int] = mapped_column(nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    actor_id: Mapped[UUID] = mapped_column(nullable=False)
    changed_at: Mapped[datetime] = mapped_column(nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self):
        from erp_modules.research.models import StatusHistoryEntry

        return StatusHistoryEntry(
            from_status=self.from_status,
            to_status=self.to_status,
            actor_id=self.actor_id,
            changed_at=self.changed_at,
            notes=self.notes,
        )


# ---------------------------------------------------------------------------
# 5. ProgressTrackerModel
# ---------------------------------------------------------------------------


class ProgressTrackerModel(TrackedBase):
    """
    ORM model for a progress tracker item.

    Guarantees:
        - tracker_number is unique (uq_progress_trackers_number).
        - data accumulates across status updates; data_version counts merges.
    """

    __tablename__ = "progress_trackers"

    __table_args__ = (
        UniqueConstraint("tracker_number", name="uq_progress_trackers_number"),
        Index("idx_progress_trackers_owner", "owner_id"),
    )

    tracker_number: Mapped[str] = mapped_column(String(30), nullable=False)
    owner_id: Mapped[UUID] = mapped_column(nullable=False)
    publication_type: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    data_version: Mapped[int] = mapped_column(nullable=False, default=0)
    authors_snapshot: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    expected_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    actual_completion_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    contribution_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def to_dto(self):
        from erp_modules.research.models import (
            ProgressTrackerItem,
            PublicationType,
            TrackerStatus,
        )

        return ProgressTrackerItem(
            id=self.id,
            tracker_number=self.tracker_number,
            owner_id=self.owner_id,
            publication_type=PublicationType(self.publication_type),
            title=self.title,
            status=TrackerStatus(self.status),
            data=dict(self.data or {}),
            data_version=self.data_version,
            authors_snapshot=tuple(self.authors_snapshot or ()),
            expected_completion_date=self.expected_completion_date,
            actual_completion_date=self.actual_completion_date,
            contribution_id=self.contribution_id,
        )

    def __repr__(self) -> str:
        return f"<ProgressTrackerModel {self.tracker_number} [{self.status}]>"


# ---------------------------------------------------------------------------
# 6. TrackerHistoryModel (append-only)
# ---------------------------------------------------------------------------


class TrackerHistoryModel(AppendOnlyMixin, TrackedBase):
    """One status update (or monthly report) of a tracker.  Never updated or deleted."""

    __tablename__ = "progress_tracker_history"

    __table_args__ = (
        Index("idx_tracker_history_tracker", "tracker_id", "data_version"),
    )

    tracker_id: Mapped[UUID] = mapped_column(nullable=False)
    from_status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    reported_date: Mapped[date] = mapped_column(Date, nullable=False)
    actual_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    attachments: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    data_version: Mapped[int] = mapped_column(nullable=False)
    is_monthly_report: Mapped[bool] = mapped_column(Boolean, default=False)

    def to_dto(self):
        from erp_modules.research.models import TrackerHistoryEntry

        return TrackerHistoryEntry(
            from_status=self.from_status,
            to_status=self.to_status,
            reported_date=self.reported_date,
            actual_date=self.actual_date,
            notes=self.notes,
            status_data=dict(self.status_data or {}),
            attachments=tuple(self.attachments or ()),
            data_version=self.data_version,
            is_monthly_report=self.is_monthly_report,
            changed_by_id=self.created_by_id,
        )
