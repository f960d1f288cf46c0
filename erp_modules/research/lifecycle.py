"""
Contribution Lifecycle Manager (``erp_modules.research.lifecycle``).

Responsibility
--------------
Drives a research contribution from draft through review to approval (and
incentive crediting) or rejection.  Reviewers can send a contribution back
with edit suggestions that the applicant accepts or rejects before
resubmitting.

Architecture position
---------------------
**Modules layer** -- thin glue.  Allowed moves come from
``CONTRIBUTION_WORKFLOW``; permission keys from ``erp_services.authority``;
pool sizing from ``erp_engines.scoring``; share computation from
``erp_engines.incentive``.

Invariants enforced
-------------------
* Every status change appends a ``ContributionStatusHistoryModel`` row in
  the same flush as the change (append-only journal).
* The applicant submits and resubmits; reviewers (never the applicant)
  move everything else and must hold ``{family}_review`` or
  ``{family}_approve``.
* ``resubmitted`` is reachable only through ``resubmit()`` and only when
  no suggestion is pending.
* ``incentive_amount``, ``points`` and author shares are written once,
  on entering ``approved``.
* Each public method loads its row ``FOR UPDATE`` and only flushes; the
  caller's ``session_scope`` commits or rolls back the whole operation.

Failure modes
-------------
* ``InvalidTransitionError`` -- move not in the graph for the current status.
* ``ForbiddenError`` -- wrong actor, or missing permission key.
* ``PendingSuggestionsError`` -- resubmit with unresolved suggestions.
* ``AlreadyResolvedError`` -- suggestion already accepted or rejected.
* ``ValidationError`` -- unknown suggestion field path or bad value.
* ``InvalidAuthorConfigurationError`` -- author roles cannot be allocated.

Audit relevance
---------------
Status history is the system of record.  Audit records are also emitted
best-effort to the configured ``AuditSink``.

Usage::

    with session_scope() as session:
        lifecycle = ContributionLifecycleManager(session, PermissionStore(session))
        draft = lifecycle.create_draft(applicant, "research_paper", "On Rings")
        lifecycle.submit(draft.id, applicant)
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from erp_config import get_active_config
from erp_config.bridges import allocation_policy_for, build_pool_scorer
from erp_config.schema import ErpConfiguration
from erp_engines.incentive import (
    AllocationAuthor,
    AllocationResult,
    AuthorCategory,
    AuthorRole,
    AuthorType,
    IncentiveAllocationEngine,
)
from erp_engines.scoring import PoolScorer, ScoredPool, ScoringInputs
from erp_kernel.domain.clock import Clock
from erp_kernel.domain.workflow import Transition
from erp_kernel.exceptions import (
    AlreadyResolvedError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PendingSuggestionsError,
    ValidationError,
)
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.services.base import BaseService
from erp_modules.permissions.service import PermissionStore
from erp_modules.research._helpers import flush_unique, json_safe, load_contribution, next_number
from erp_modules.research.authors import AuthorRegistry
from erp_modules.research.config import ResearchConfig
from erp_modules.research.models import (
    Actor,
    Contribution,
    ContributionStatus,
    EditSuggestion,
    PublicationType,
    StatusHistoryEntry,
    SuggestionInput,
    SuggestionStatus,
)
from erp_modules.research.orm import (
    ContributionModel,
    ContributionStatusHistoryModel,
    EditSuggestionModel,
)
from erp_modules.research.progress import ProgressTracker
from erp_modules.research.workflows import CONTRIBUTION_WORKFLOW
from erp_services.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_best_effort
from erp_services.authority import check_permission, required_permission
from erp_services.cache import ReadThroughCache

logger = get_logger("modules.research.lifecycle")

_DETAILS_PREFIX = "details."


def _to_decimal(field: str, value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        raise ValidationError.for_field(field, f"not a number: {value!r}") from None


def _to_text(field: str, value: Any) -> str | None:
    text = "" if value is None else str(value).strip()
    if field == "title" and not text:
        raise ValidationError.for_field(field, "title is required")
    return text or None


def _to_categories(field: str, value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Iterable):
        raise ValidationError.for_field(field, "expected a list of categories")
    return sorted({str(v) for v in value})


# Top-level columns a reviewer may suggest changes to, with their coercion.
SUGGESTIBLE_FIELDS = {
    "title": _to_text,
    "quartile": _to_text,
    "impact_factor": _to_decimal,
    "sjr": _to_decimal,
    "naas_rating": _to_decimal,
    "indexing_categories": _to_categories,
}


class ContributionLifecycleManager(BaseService):
    """
    Submission and review state machine for research contributions.

    Contract:
        Flushes only; never commits.  All collaborators are injectable and
        default to the active configuration.
    """

    def __init__(
        self,
        session: Session,
        permission_store: PermissionStore,
        config: ErpConfiguration | None = None,
        research_config: ResearchConfig | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
        cache: ReadThroughCache | None = None,
        engine: IncentiveAllocationEngine | None = None,
        scorer: PoolScorer | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or get_active_config()
        self._research_config = research_config or ResearchConfig.from_dict(
            dict(self._config.research)
        )
        self._permissions = permission_store
        self._audit_sink = audit_sink or LoggingAuditSink()
        self._cache = cache
        self._engine = engine or IncentiveAllocationEngine()
        self._scorer = scorer or build_pool_scorer(self._config)
        self.authors = AuthorRegistry(session, self._research_config, self.clock, self._audit_sink)
        self.trackers = ProgressTracker(
            session, self._research_config, cache=cache, clock=self.clock, audit_sink=self._audit_sink
        )

    # ------------------------------------------------------------------
    # Applicant operations
    # ------------------------------------------------------------------

    def create_draft(
        self,
        applicant: Actor,
        publication_type: PublicationType | str,
        title: str,
        applicant_role: AuthorRole = AuthorRole.FIRST_AND_CORRESPONDING,
        details: Mapping[str, Any] | None = None,
        indexing_categories: Iterable[str] = (),
        quartile: str | None = None,
        impact_factor: Decimal | str | None = None,
        sjr: Decimal | str | None = None,
        naas_rating: Decimal | str | None = None,
        department_id: UUID | None = None,
        tracker_id: UUID | None = None,
    ) -> Contribution:
        """Open a new draft with the applicant as its first author row.

        With ``tracker_id``, the published tracker's accumulated data seeds
        ``details`` (explicit ``details`` win) and the tracker is linked.
        """
        publication_type = PublicationType(publication_type)
        identity = self.authors.resolve_user(applicant.user_id)

        merged_details: dict[str, Any] = {}
        package = None
        if tracker_id is not None:
            package = self.trackers.get_for_submission(tracker_id, applicant)
            if package.publication_type != publication_type:
                raise ValidationError.for_field(
                    "tracker_id", f"tracker is a {package.publication_type.value}"
                )
            merged_details.update(package.data)
        merged_details.update(json_safe(dict(details or {})))

        stem = (
            f"{self._research_config.application_prefix(publication_type.value)}"
            f"-{self.clock.now():%Y}"
        )
        row = ContributionModel(
            application_number=next_number(self.session, ContributionModel.application_number, stem),
            publication_type=publication_type.value,
            title=_to_text("title", title),
            status=CONTRIBUTION_WORKFLOW.initial_state,
            applicant_id=applicant.user_id,
            department_id=department_id,
            details=merged_details,
            indexing_categories=_to_categories("indexing_categories", indexing_categories),
            quartile=quartile,
            impact_factor=_to_decimal("impact_factor", impact_factor),
            sjr=_to_decimal("sjr", sjr),
            naas_rating=_to_decimal("naas_rating", naas_rating),
            created_by_id=applicant.user_id,
        )
        self.session.add(row)
        self.authors.add_applicant(row, identity, applicant_role)
        flush_unique(
            self.session, "Contribution", row.application_number, "application number already allocated"
        )
        self._append_history(row, None, row.status, applicant, notes="created")

        if package is not None:
            row.tracker_id = package.tracker_id
            self.trackers.link_to_contribution(package.tracker_id, row.id, applicant)
        self.session.flush()
        self._invalidate(row.applicant_id)

        logger.info(
            "contribution_created",
            extra={
                "contribution_id": str(row.id),
                "application_number": row.application_number,
                "publication_type": row.publication_type,
                "tracker_id": str(row.tracker_id) if row.tracker_id else None,
            },
        )
        self._audit(applicant, "create", row, None, row.status)
        return row.to_dto()

    def submit(self, contribution_id: UUID, actor: Actor) -> Contribution:
        row = load_contribution(self.session, contribution_id, lock=True)
        self._require_applicant(row, actor)
        transition = self._applicant_transition(row, ContributionStatus.SUBMITTED.value)
        row.submitted_at = self.clock.now()
        from_status = self._move(row, transition, actor)
        logger.info(
            "contribution_submitted",
            extra={"contribution_id": str(row.id), "application_number": row.application_number},
        )
        self._audit(actor, transition.action, row, from_status, row.status)
        return row.to_dto()

    def resubmit(self, contribution_id: UUID, actor: Actor) -> Contribution:
        row = load_contribution(self.session, contribution_id, lock=True)
        self._require_applicant(row, actor)
        transition = self._applicant_transition(row, ContributionStatus.RESUBMITTED.value)
        pending = self._pending_count(row)
        if pending:
            raise PendingSuggestionsError(row.id, pending)
        from_status = self._move(row, transition, actor)
        logger.info("contribution_resubmitted", extra={"contribution_id": str(row.id)})
        self._audit(actor, transition.action, row, from_status, row.status)
        return row.to_dto()

    def delete(self, contribution_id: UUID, actor: Actor) -> None:
        """Delete a draft.  Its status journal is kept."""
        row = load_contribution(self.session, contribution_id, lock=True)
        self._require_applicant(row, actor)
        if row.status != ContributionStatus.DRAFT.value:
            raise ConflictError("Contribution", f"only drafts can be deleted, status is {row.status}", key=row.id)
        if row.tracker_id is not None:
            self.trackers.unlink_contribution(row.tracker_id, row.id, actor)
        self.session.delete(row)
        self.session.flush()
        self._invalidate(row.applicant_id)
        logger.info(
            "contribution_deleted",
            extra={"contribution_id": str(contribution_id), "application_number": row.application_number},
        )
        self._audit(actor, "delete", row, ContributionStatus.DRAFT.value, None)

    # ------------------------------------------------------------------
    # Reviewer operations
    # ------------------------------------------------------------------

    def advance(
        self,
        contribution_id: UUID,
        actor: Actor,
        to_status: ContributionStatus | str,
        payload: Mapping[str, Any] | None = None,
    ) -> Contribution:
        """Apply a reviewer transition.

        ``payload`` may carry ``notes`` and, when moving to
        ``changes_required``, ``suggestions``: a list of
        ``SuggestionInput`` or dicts with ``field_path``,
        ``suggested_value`` and optional ``note``.
        """
        payload = dict(payload or {})
        row = load_contribution(self.session, contribution_id, lock=True)
        target = to_status.value if isinstance(to_status, ContributionStatus) else str(to_status)

        with LogContext.bind(contribution_id=row.id, actor_id=actor.user_id):
            if target == ContributionStatus.RESUBMITTED.value:
                raise InvalidTransitionError(
                    "Contribution", row.id, row.status, target, reason="only the applicant resubmits"
                )
            transition = CONTRIBUTION_WORKFLOW.find(row.status, target)
            if transition is None or transition.performed_by != "reviewer":
                raise InvalidTransitionError("Contribution", row.id, row.status, target)
            if row.applicant_id == actor.user_id:
                raise ForbiddenError(actor.user_id, "applicants cannot review their own contribution")
            self._require_permission(row, actor, transition)

            suggestions = payload.get("suggestions") or ()
            if suggestions and target != ContributionStatus.CHANGES_REQUIRED.value:
                raise ValidationError.for_field(
                    "suggestions", "suggestions are only accepted when requesting changes"
                )
            for suggestion in suggestions:
                self._add_suggestion(row, actor, suggestion)

            result = None
            if target == ContributionStatus.APPROVED.value:
                result = self._credit(row)

            from_status = self._move(row, transition, actor, notes=payload.get("notes"))
            logger.info(
                "contribution_advanced",
                extra={
                    "action": transition.action,
                    "from_status": from_status,
                    "to_status": target,
                    "suggestion_count": len(suggestions),
                    "incentive_amount": str(row.incentive_amount) if result else None,
                },
            )
        self._audit(actor, transition.action, row, from_status, target, notes=payload.get("notes"))
        return row.to_dto()

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def accept_suggestion(self, contribution_id: UUID, suggestion_id: UUID, actor: Actor) -> EditSuggestion:
        """Apply the suggested value to its field and mark the suggestion accepted."""
        row, suggestion = self._load_suggestion(contribution_id, suggestion_id, actor)
        self._write_field(row, suggestion.field_path, suggestion.suggested_value)
        row.updated_by_id = actor.user_id
        return self._resolve(row, suggestion, SuggestionStatus.ACCEPTED, actor)

    def reject_suggestion(self, contribution_id: UUID, suggestion_id: UUID, actor: Actor) -> EditSuggestion:
        row, suggestion = self._load_suggestion(contribution_id, suggestion_id, actor)
        return self._resolve(row, suggestion, SuggestionStatus.REJECTED, actor)

    def list_suggestions(
        self, contribution_id: UUID, status: SuggestionStatus | None = None
    ) -> tuple[EditSuggestion, ...]:
        row = load_contribution(self.session, contribution_id)
        return tuple(
            s.to_dto() for s in row.suggestions if status is None or s.status == status.value
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, contribution_id: UUID) -> Contribution:
        return load_contribution(self.session, contribution_id).to_dto()

    def history(self, contribution_id: UUID) -> tuple[StatusHistoryEntry, ...]:
        rows = self.session.scalars(
            select(ContributionStatusHistoryModel)
            .where(ContributionStatusHistoryModel.contribution_id == contribution_id)
            .order_by(ContributionStatusHistoryModel.sequence)
        ).all()
        if not rows:
            raise NotFoundError("Contribution", contribution_id)
        return tuple(r.to_dto() for r in rows)

    def list_for_applicant(self, applicant_id: UUID) -> list[dict[str, Any]]:
        """Summary rows of the applicant's contributions, newest number first."""
        if self._cache is None:
            return self._load_summaries(applicant_id)
        return self._cache.get_or_load(
            f"contributions:{applicant_id}", lambda: self._load_summaries(applicant_id)
        )

    # ------------------------------------------------------------------
    # Internals: transitions
    # ------------------------------------------------------------------

    @staticmethod
    def _require_applicant(row: ContributionModel, actor: Actor) -> None:
        if row.applicant_id != actor.user_id:
            raise ForbiddenError(actor.user_id, "only the applicant may do this")

    @staticmethod
    def _applicant_transition(row: ContributionModel, target: str) -> Transition:
        transition = CONTRIBUTION_WORKFLOW.find(row.status, target)
        if transition is None or transition.performed_by != "applicant":
            raise InvalidTransitionError("Contribution", row.id, row.status, target)
        return transition

    def _require_permission(self, row: ContributionModel, actor: Actor, transition: Transition) -> None:
        key = required_permission(row.publication_type, transition)
        if key is None:
            return
        allowed, reason = check_permission(self._permissions, actor.user_id, key, row.department_id)
        if not allowed:
            logger.warning(
                "contribution_permission_denied",
                extra={"permission": key, "action": transition.action},
            )
            raise ForbiddenError(actor.user_id, reason, permission=key)

    def _move(
        self,
        row: ContributionModel,
        transition: Transition,
        actor: Actor,
        notes: str | None = None,
    ) -> str:
        from_status = row.status
        row.status = transition.to_state
        row.updated_by_id = actor.user_id
        self._append_history(row, from_status, transition.to_state, actor, notes)
        self.session.flush()
        self._invalidate(row.applicant_id)
        return from_status

    def _append_history(
        self,
        row: ContributionModel,
        from_status: str | None,
        to_status: str,
        actor: Actor,
        notes: str | None = None,
    ) -> None:
        sequence = self.session.scalar(
            select(func.count())
            .select_from(ContributionStatusHistoryModel)
            .where(ContributionStatusHistoryModel.contribution_id == row.id)
        )
        self.session.add(
            ContributionStatusHistoryModel(
                contribution_id=row.id,
                sequence=sequence + 1,
                from_status=from_status,
                to_status=to_status,
                actor_id=actor.user_id,
                changed_at=self.clock.now(),
                notes=notes,
                created_by_id=actor.user_id,
            )
        )

    def _pending_count(self, row: ContributionModel) -> int:
        return sum(1 for s in row.suggestions if s.status == SuggestionStatus.PENDING.value)

    # ------------------------------------------------------------------
    # Internals: crediting
    # ------------------------------------------------------------------

    def _scoring_inputs(self, row: ContributionModel) -> ScoringInputs:
        details = row.details or {}
        return ScoringInputs(
            publication_type=row.publication_type,
            indexing_categories=tuple(row.indexing_categories or ()),
            quartile=row.quartile,
            impact_factor=row.impact_factor,
            sjr=row.sjr,
            naas_rating=row.naas_rating,
            book_type=details.get("book_type"),
            book_indexing=details.get("book_indexing"),
            conference_sub_type=details.get("conference_sub_type"),
            proceedings_quartile=details.get("proceedings_quartile"),
            is_international=bool(details.get("is_international")),
            best_paper_award=bool(details.get("best_paper_award")),
        )

    def _credit(self, row: ContributionModel) -> AllocationResult:
        """Size the pools and write every author's share."""
        pool: ScoredPool = self._scorer.score(self._scoring_inputs(row))
        policy = allocation_policy_for(
            self._config, row.publication_type, (row.details or {}).get("conference_sub_type")
        )
        result = self._engine.allocate(
            incentive_pool=pool.incentive,
            points_pool=pool.points,
            authors=[
                AllocationAuthor(
                    key=str(a.id),
                    category=AuthorCategory(a.category),
                    author_type=AuthorType(a.author_type),
                    role=AuthorRole(a.role),
                )
                for a in row.authors
            ],
            policy=policy,
        )
        for author in row.authors:
            share = result.share_for(str(author.id))
            author.incentive_share = share.incentive_share
            author.points_share = share.points_share
        row.incentive_amount = pool.incentive
        row.points = pool.points
        row.credited_at = self.clock.now()
        logger.info(
            "contribution_credited",
            extra={
                "basis": pool.basis,
                "incentive_pool": str(pool.incentive),
                "points_pool": pool.points,
                "distributed_incentive": str(result.distributed_incentive),
                "distributed_points": result.distributed_points,
                "rule": result.rule,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Internals: suggestions
    # ------------------------------------------------------------------

    def _add_suggestion(self, row: ContributionModel, actor: Actor, raw: SuggestionInput | Mapping) -> None:
        if isinstance(raw, Mapping):
            if "field_path" not in raw:
                raise ValidationError.for_field("suggestions", "field_path is required")
            raw = SuggestionInput(
                field_path=raw["field_path"],
                suggested_value=raw.get("suggested_value"),
                note=raw.get("note"),
            )
        original = self._read_field(row, raw.field_path)
        row.suggestions.append(
            EditSuggestionModel(
                field_path=raw.field_path,
                original_value=json_safe(original),
                suggested_value=json_safe(raw.suggested_value),
                note=raw.note,
                status=SuggestionStatus.PENDING.value,
                reviewer_id=actor.user_id,
                created_by_id=actor.user_id,
            )
        )

    def _load_suggestion(
        self, contribution_id: UUID, suggestion_id: UUID, actor: Actor
    ) -> tuple[ContributionModel, EditSuggestionModel]:
        row = load_contribution(self.session, contribution_id, lock=True)
        self._require_applicant(row, actor)
        suggestion = next((s for s in row.suggestions if s.id == suggestion_id), None)
        if suggestion is None:
            raise NotFoundError("EditSuggestion", suggestion_id)
        if suggestion.status != SuggestionStatus.PENDING.value:
            raise AlreadyResolvedError(suggestion.id, suggestion.status)
        if row.status != ContributionStatus.CHANGES_REQUIRED.value:
            raise ConflictError(
                "Contribution", f"suggestions are resolved only in changes_required, status is {row.status}", key=row.id
            )
        return row, suggestion

    def _resolve(
        self,
        row: ContributionModel,
        suggestion: EditSuggestionModel,
        status: SuggestionStatus,
        actor: Actor,
    ) -> EditSuggestion:
        suggestion.status = status.value
        suggestion.resolved_at = self.clock.now()
        suggestion.resolved_by_id = actor.user_id
        suggestion.updated_by_id = actor.user_id
        self.session.flush()
        logger.info(
            "edit_suggestion_resolved",
            extra={
                "contribution_id": str(row.id),
                "suggestion_id": str(suggestion.id),
                "field_path": suggestion.field_path,
                "resolution": status.value,
            },
        )
        self._audit(
            actor,
            f"suggestion_{status.value}",
            row,
            row.status,
            row.status,
            suggestion_id=suggestion.id,
            field_path=suggestion.field_path,
        )
        return suggestion.to_dto()

    @staticmethod
    def _details_key(field_path: str) -> str | None:
        if not field_path.startswith(_DETAILS_PREFIX):
            return None
        key = field_path[len(_DETAILS_PREFIX):]
        if not key:
            raise ValidationError.for_field("field_path", "details key is empty")
        return key

    def _read_field(self, row: ContributionModel, field_path: str) -> Any:
        key = self._details_key(field_path)
        if key is not None:
            return (row.details or {}).get(key)
        if field_path not in SUGGESTIBLE_FIELDS:
            raise ValidationError.for_field("field_path", f"{field_path!r} cannot be edited")
        return getattr(row, field_path)

    def _write_field(self, row: ContributionModel, field_path: str, value: Any) -> None:
        key = self._details_key(field_path)
        if key is not None:
            row.details = {**(row.details or {}), key: value}
            return
        coerce = SUGGESTIBLE_FIELDS.get(field_path)
        if coerce is None:
            raise ValidationError.for_field("field_path", f"{field_path!r} cannot be edited")
        setattr(row, field_path, coerce(field_path, value))

    # ------------------------------------------------------------------
    # Internals: side channels
    # ------------------------------------------------------------------

    def _load_summaries(self, applicant_id: UUID) -> list[dict[str, Any]]:
        rows = self.session.scalars(
            select(ContributionModel)
            .where(ContributionModel.applicant_id == applicant_id)
            .order_by(ContributionModel.application_number.desc())
        ).all()
        return [
            {
                "id": str(r.id),
                "application_number": r.application_number,
                "publication_type": r.publication_type,
                "title": r.title,
                "status": r.status,
            }
            for r in rows
        ]

    def _invalidate(self, applicant_id: UUID) -> None:
        if self._cache is not None:
            self._cache.invalidate(f"contributions:{applicant_id}")

    def _audit(
        self,
        actor: Actor,
        action: str,
        row: ContributionModel,
        from_status: str | None,
        to_status: str | None,
        **payload: Any,
    ) -> None:
        emit_best_effort(
            self._audit_sink,
            AuditRecord(
                actor_id=actor.user_id,
                action=action,
                entity_type="Contribution",
                entity_id=row.id,
                occurred_at=self.clock.now(),
                from_status=from_status,
                to_status=to_status,
                payload={"application_number": row.application_number, **payload},
            ),
        )
