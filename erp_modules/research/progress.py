"""
Progress Tracker (``erp_modules.research.progress``).

Responsibility
--------------
Per-publication-type milestone journal.  An owner moves an item through
its type's status sequence (writing -> communicated -> submitted ->
accepted -> published), attaching files and type-specific data at each
step.  Data accumulates: each update shallow-merges into the item's
``data`` so a value entered early (e.g. ``manuscriptId`` at communicated)
is still there when later updates omit it.  A published, unlinked tracker
can seed a contribution draft.

Architecture position
---------------------
**Modules layer**.  Uses ``TRACKER_WORKFLOWS`` for allowed moves and
``TrackerHistoryModel`` (append-only) as the journal.

Invariants enforced
-------------------
* Only the owner updates, deletes or submits a tracker.
* ``data_version`` increases by one with every journal entry.
* A status equal to the current one is a monthly report and needs at
  least one attachment.
* A tracker linked to a contribution cannot be deleted or linked again.

Failure modes
-------------
* ``InvalidStatusForTypeError`` -- status outside the type's sequence.
* ``InvalidTransitionError`` -- move not in the type's graph.
* ``AttachmentTooLargeError`` / ``ValidationError`` -- attachment problems.
* ``ForbiddenError`` / ``ConflictError`` / ``NotFoundError``.

Audit relevance
---------------
Every update writes a ``TrackerHistoryModel`` row with the submitted
``status_data`` and attachment references and emits a ``tracker_status_updated``
log event and an audit record.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config import get_active_config
from erp_kernel.domain.clock import Clock
from erp_kernel.domain.workflow import Workflow
from erp_kernel.exceptions import (
    AttachmentTooLargeError,
    ConflictError,
    ForbiddenError,
    InvalidStatusForTypeError,
    InvalidTransitionError,
    ValidationError,
)
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.services.base import BaseService
from erp_modules.research._helpers import flush_unique, json_safe, load_tracker, next_number
from erp_modules.research.config import ResearchConfig
from erp_modules.research.models import (
    Actor,
    AttachmentRef,
    ProgressTrackerItem,
    PublicationType,
    SubmissionPackage,
    TrackerHistoryEntry,
    TrackerStatus,
)
from erp_modules.research.orm import ProgressTrackerModel, TrackerHistoryModel
from erp_modules.research.workflows import TRACKER_WORKFLOWS
from erp_services.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_best_effort
from erp_services.cache import ReadThroughCache

logger = get_logger("modules.research.progress")

MONTHLY_REPORT_PREFIX = "Monthly Report: "


def _status_value(status: TrackerStatus | str) -> str:
    return status.value if isinstance(status, TrackerStatus) else str(status)


class ProgressTracker(BaseService):
    """Milestone journal for publications in progress."""

    def __init__(
        self,
        session: Session,
        config: ResearchConfig | None = None,
        cache: ReadThroughCache | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or ResearchConfig.from_dict(dict(get_active_config().research))
        self._cache = cache
        self._audit_sink = audit_sink or LoggingAuditSink()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_tracker(
        self,
        owner: Actor,
        publication_type: PublicationType | str,
        title: str,
        initial_status: TrackerStatus | str = TrackerStatus.WRITING,
        data: dict[str, Any] | None = None,
        authors_snapshot: Sequence[dict[str, Any]] = (),
        expected_completion_date: date | None = None,
        reported_date: date | None = None,
    ) -> ProgressTrackerItem:
        publication_type = PublicationType(publication_type)
        workflow = TRACKER_WORKFLOWS[publication_type.value]
        status = _status_value(initial_status)
        if not workflow.has_state(status):
            raise InvalidStatusForTypeError(publication_type.value, status, workflow.states)
        if not (title or "").strip():
            raise ValidationError.for_field("title", "title is required")

        stem = f"{self._config.tracker_prefix(publication_type.value)}-{self.clock.now():%Y%m}"
        row = ProgressTrackerModel(
            tracker_number=next_number(self.session, ProgressTrackerModel.tracker_number, stem),
            owner_id=owner.user_id,
            publication_type=publication_type.value,
            title=title.strip(),
            status=status,
            data=json_safe(dict(data or {})),
            data_version=1,
            authors_snapshot=json_safe(list(authors_snapshot)),
            expected_completion_date=expected_completion_date,
            created_by_id=owner.user_id,
        )
        self.session.add(row)
        flush_unique(self.session, "ProgressTracker", row.tracker_number, "tracker number already allocated")
        self.session.add(
            TrackerHistoryModel(
                tracker_id=row.id,
                from_status=None,
                to_status=status,
                reported_date=reported_date or self.clock.today(),
                status_data=dict(row.data),
                attachments=[],
                data_version=row.data_version,
                is_monthly_report=False,
                created_by_id=owner.user_id,
            )
        )
        self.session.flush()
        self._invalidate(owner.user_id)

        logger.info(
            "tracker_created",
            extra={
                "tracker_id": str(row.id),
                "tracker_number": row.tracker_number,
                "publication_type": row.publication_type,
                "status": status,
            },
        )
        self._audit(owner, "tracker_create", row, None, status)
        return row.to_dto()

    def update_status(
        self,
        tracker_id: UUID,
        actor: Actor,
        new_status: TrackerStatus | str,
        reported_date: date,
        actual_date: date | None = None,
        notes: str | None = None,
        status_data: dict[str, Any] | None = None,
        attachments: Sequence[AttachmentRef] = (),
    ) -> ProgressTrackerItem:
        """Record a status change (or, for an unchanged status, a monthly report)."""
        row = self._load_owned(tracker_id, actor, lock=True)
        workflow = self._workflow(row)
        to_status = _status_value(new_status)
        if not workflow.has_state(to_status):
            raise InvalidStatusForTypeError(row.publication_type, to_status, workflow.states)
        if workflow.find(row.status, to_status) is None:
            raise InvalidTransitionError("ProgressTracker", row.id, row.status, to_status)

        self._check_attachments(attachments)
        is_monthly_report = to_status == row.status
        if is_monthly_report:
            if not attachments:
                raise ValidationError.for_field(
                    "attachments", "a monthly report needs at least one attachment"
                )
            notes = f"{MONTHLY_REPORT_PREFIX}{notes or ''}".rstrip()

        from_status = row.status
        incoming = json_safe(dict(status_data or {}))
        row.data = {**(row.data or {}), **incoming}
        row.data_version += 1
        row.status = to_status
        row.updated_by_id = actor.user_id
        if to_status == TrackerStatus.PUBLISHED.value and not is_monthly_report:
            row.actual_completion_date = actual_date or reported_date

        self.session.add(
            TrackerHistoryModel(
                tracker_id=row.id,
                from_status=from_status,
                to_status=to_status,
                reported_date=reported_date,
                actual_date=actual_date,
                notes=notes,
                status_data=incoming,
                attachments=[a.to_json() for a in attachments],
                data_version=row.data_version,
                is_monthly_report=is_monthly_report,
                created_by_id=actor.user_id,
            )
        )
        self.session.flush()
        self._invalidate(row.owner_id)

        with LogContext.bind(tracker_id=row.id, actor_id=actor.user_id):
            logger.info(
                "tracker_status_updated",
                extra={
                    "tracker_number": row.tracker_number,
                    "from_status": from_status,
                    "to_status": to_status,
                    "data_version": row.data_version,
                    "attachment_count": len(attachments),
                    "is_monthly_report": is_monthly_report,
                },
            )
        self._audit(actor, "tracker_update", row, from_status, to_status)
        return row.to_dto()

    def delete_tracker(self, tracker_id: UUID, actor: Actor) -> None:
        row = self._load_owned(tracker_id, actor, lock=True)
        if row.contribution_id is not None:
            raise ConflictError(
                "ProgressTracker", "tracker is linked to a contribution", key=row.contribution_id
            )
        self.session.delete(row)
        self.session.flush()
        self._invalidate(row.owner_id)
        logger.info("tracker_deleted", extra={"tracker_id": str(tracker_id)})
        self._audit(actor, "tracker_delete", row, row.status, None)

    def link_to_contribution(self, tracker_id: UUID, contribution_id: UUID, actor: Actor) -> None:
        row = self._load_owned(tracker_id, actor, lock=True)
        self._check_submittable(row)
        row.contribution_id = contribution_id
        row.updated_by_id = actor.user_id
        self.session.flush()
        self._invalidate(row.owner_id)
        logger.info(
            "tracker_linked",
            extra={"tracker_id": str(row.id), "contribution_id": str(contribution_id)},
        )

    def unlink_contribution(self, tracker_id: UUID, contribution_id: UUID, actor: Actor) -> None:
        """Release the link when the draft it seeded is deleted."""
        row = load_tracker(self.session, tracker_id, lock=True)
        if row.contribution_id != contribution_id:
            return
        row.contribution_id = None
        row.updated_by_id = actor.user_id
        self.session.flush()
        self._invalidate(row.owner_id)
        logger.info(
            "tracker_unlinked",
            extra={"tracker_id": str(row.id), "contribution_id": str(contribution_id)},
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, tracker_id: UUID) -> ProgressTrackerItem:
        return load_tracker(self.session, tracker_id).to_dto()

    def history(self, tracker_id: UUID) -> tuple[TrackerHistoryEntry, ...]:
        rows = self.session.scalars(
            select(TrackerHistoryModel)
            .where(TrackerHistoryModel.tracker_id == tracker_id)
            .order_by(TrackerHistoryModel.data_version)
        ).all()
        return tuple(r.to_dto() for r in rows)

    def get_for_submission(self, tracker_id: UUID, actor: Actor) -> SubmissionPackage:
        """Data, authors and history of a published tracker, ready to seed a draft."""
        row = self._load_owned(tracker_id, actor)
        self._check_submittable(row)
        return SubmissionPackage(
            tracker_id=row.id,
            publication_type=PublicationType(row.publication_type),
            title=row.title,
            data=dict(row.data or {}),
            authors_snapshot=tuple(row.authors_snapshot or ()),
            history=self.history(row.id),
        )

    def list_for_owner(self, owner_id: UUID) -> list[dict[str, Any]]:
        """Summary rows of the owner's trackers, newest number first."""
        if self._cache is None:
            return self._load_summaries(owner_id)
        return self._cache.get_or_load(
            f"trackers:{owner_id}", lambda: self._load_summaries(owner_id)
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_owned(self, tracker_id: UUID, actor: Actor, lock: bool = False) -> ProgressTrackerModel:
        row = load_tracker(self.session, tracker_id, lock=lock)
        if row.owner_id != actor.user_id:
            raise ForbiddenError(actor.user_id, "only the owner may change a tracker")
        return row

    @staticmethod
    def _workflow(row: ProgressTrackerModel) -> Workflow:
        return TRACKER_WORKFLOWS[row.publication_type]

    @staticmethod
    def _check_submittable(row: ProgressTrackerModel) -> None:
        if row.status != TrackerStatus.PUBLISHED.value:
            raise ConflictError("ProgressTracker", f"tracker is {row.status}, not published", key=row.id)
        if row.contribution_id is not None:
            raise ConflictError(
                "ProgressTracker", "tracker is already linked to a contribution", key=row.id
            )

    def _check_attachments(self, attachments: Sequence[AttachmentRef]) -> None:
        limit = self._config.max_attachment_bytes
        for attachment in attachments:
            if not attachment.path or not attachment.filename:
                raise ValidationError.for_field("attachments", "attachment path and filename are required")
            if attachment.size_bytes > limit:
                raise AttachmentTooLargeError(attachment.filename, attachment.size_bytes, limit)

    def _load_summaries(self, owner_id: UUID) -> list[dict[str, Any]]:
        rows = self.session.scalars(
            select(ProgressTrackerModel)
            .where(ProgressTrackerModel.owner_id == owner_id)
            .order_by(ProgressTrackerModel.tracker_number.desc())
        ).all()
        return [
            {
                "id": str(r.id),
                "tracker_number": r.tracker_number,
                "publication_type": r.publication_type,
                "title": r.title,
                "status": r.status,
                "linked": r.contribution_id is not None,
            }
            for r in rows
        ]

    def _invalidate(self, owner_id: UUID) -> None:
        if self._cache is not None:
            self._cache.invalidate(f"trackers:{owner_id}")

    def _audit(
        self,
        actor: Actor,
        action: str,
        row: ProgressTrackerModel,
        from_status: str | None,
        to_status: str | None,
    ) -> None:
        emit_best_effort(
            self._audit_sink,
            AuditRecord(
                actor_id=actor.user_id,
                action=action,
                entity_type="ProgressTracker",
                entity_id=row.id,
                occurred_at=self.clock.now(),
                from_status=from_status,
                to_status=to_status,
                payload={"tracker_number": row.tracker_number, "data_version": row.data_version},
            ),
        )
