"""
Author Registry (``erp_modules.research.authors``).

Responsibility
--------------
Resolve internal people from the directory and maintain the author list of
a contribution: add, replace and remove authors with the role and identity
rules applied at insertion time.

Invariants enforced
-------------------
* At most one First and at most one Corresponding holder per contribution
  (one person may hold both).  The slot being replaced is ignored.
* ``uid`` is unique within a contribution; the applicant is never added a
  second time.  The applicant row is never replaced, though its role may
  change.
* Authors change only while the contribution is draft or changes_required,
  and only by the applicant.

Failure modes
-------------
* ``NotFoundError`` -- unknown contribution, author, or internal uid.
* ``ForbiddenError`` -- actor is not the applicant.
* ``ConflictError`` -- locked status, or duplicate uid (including one that
  only the database unique key catches).
* ``ValidationError`` -- missing name / uid / affiliation / email, or the
  applicant added as a co-author.
* ``InvalidAuthorConfigurationError`` -- a second First or Corresponding.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from erp_config import get_active_config
from erp_engines.incentive import AuthorCategory, AuthorRole, AuthorType
from erp_kernel.domain.clock import Clock
from erp_kernel.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidAuthorConfigurationError,
    NotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.services.base import BaseService
from erp_modules.directory.models import InternalIdentity
from erp_modules.directory.orm import PersonModel
from erp_modules.research._helpers import flush_unique, load_contribution
from erp_modules.research.config import ResearchConfig
from erp_modules.research.models import (
    AUTHOR_EDITABLE_STATUSES,
    Actor,
    AuthorDraft,
    ContributionAuthor,
)
from erp_modules.research.orm import ContributionAuthorModel, ContributionModel
from erp_services.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_best_effort

logger = get_logger("modules.research.authors")


class AuthorRegistry(BaseService):
    """Author list maintenance for contributions."""

    def __init__(
        self,
        session: Session,
        config: ResearchConfig | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or ResearchConfig.from_dict(dict(get_active_config().research))
        self._audit_sink = audit_sink or LoggingAuditSink()

    # ------------------------------------------------------------------
    # Directory lookups
    # ------------------------------------------------------------------

    def resolve_internal(self, uid: str) -> InternalIdentity:
        """Resolve an active internal person by UID."""
        person = self.session.scalars(
            select(PersonModel).where(PersonModel.uid == uid, PersonModel.is_active.is_(True))
        ).first()
        if person is None:
            raise NotFoundError("Person", uid)
        return person.to_dto()

    def resolve_user(self, user_id: UUID) -> InternalIdentity:
        """Resolve the internal person behind a login account."""
        person = self.session.scalars(
            select(PersonModel).where(
                PersonModel.user_id == user_id, PersonModel.is_active.is_(True)
            )
        ).first()
        if person is None:
            raise NotFoundError("Person", user_id)
        return person.to_dto()

    # ------------------------------------------------------------------
    # Author list
    # ------------------------------------------------------------------

    def list_authors(self, contribution_id: UUID) -> tuple[ContributionAuthor, ...]:
        row = load_contribution(self.session, contribution_id)
        return tuple(a.to_dto() for a in row.authors)

    def add_author(
        self,
        contribution_id: UUID,
        draft: AuthorDraft,
        actor: Actor,
        replacing_author_id: UUID | None = None,
    ) -> ContributionAuthor:
        """Add an author, or replace ``replacing_author_id`` in place.

        Pointing ``replacing_author_id`` at the applicant row changes only its
        role; the draft must carry the applicant's own UID.
        """
        contribution = self._load_editable(contribution_id, actor)
        replaced = None
        if replacing_author_id is not None:
            replaced = self._find_author(contribution, replacing_author_id)
            if replaced.is_applicant:
                return self._change_applicant_role(contribution, replaced, draft, actor)

        if not (draft.name or "").strip():
            raise ValidationError.for_field("name", "author name is required")

        identity = None
        if draft.category == AuthorCategory.INTERNAL:
            if not draft.uid:
                raise ValidationError.for_field("uid", "internal authors need a UID")
            identity = self.resolve_internal(draft.uid)
            if identity.user_id is not None and identity.user_id == contribution.applicant_id:
                raise ValidationError.for_field("uid", "the applicant is already an author")
            for other in contribution.authors:
                if other is not replaced and other.uid == identity.uid:
                    raise ConflictError("ContributionAuthor", "uid already listed", key=identity.uid)
        else:
            if not (draft.affiliation or "").strip():
                raise ValidationError.for_field("affiliation", "external authors need an affiliation")
            if self._config.external_email_required and not draft.email:
                raise ValidationError.for_field("email", "external authors need an email")
            if draft.author_type in (AuthorType.FACULTY, AuthorType.STUDENT):
                raise ValidationError.for_field(
                    "author_type", "external authors are academic, industry or international"
                )

        others = [a for a in contribution.authors if a is not replaced]
        self._check_role_slots(others, draft.role)

        row = replaced
        if row is None:
            row = ContributionAuthorModel(
                position=max((a.position for a in contribution.authors), default=0) + 1,
                created_by_id=actor.user_id,
            )
            contribution.authors.append(row)
        else:
            row.updated_by_id = actor.user_id
        self._apply_draft(row, draft, identity)
        flush_unique(self.session, "ContributionAuthor", row.uid, "uid already listed")

        logger.info(
            "contribution_author_added",
            extra={
                "contribution_id": str(contribution.id),
                "author_id": str(row.id),
                "category": row.category,
                "role": row.role,
                "replaced": replaced is not None,
            },
        )
        self._audit(actor, "author_add" if replaced is None else "author_replace", contribution, row)
        return row.to_dto()

    def remove_author(self, contribution_id: UUID, author_id: UUID, actor: Actor) -> None:
        contribution = self._load_editable(contribution_id, actor)
        row = self._find_author(contribution, author_id)
        if row.is_applicant:
            raise ValidationError.for_field("author", "the applicant cannot be removed")
        contribution.authors.remove(row)
        for position, author in enumerate(contribution.authors, start=1):
            author.position = position
        self.session.flush()
        logger.info(
            "contribution_author_removed",
            extra={"contribution_id": str(contribution.id), "author_id": str(author_id)},
        )
        self._audit(actor, "author_remove", contribution, row)

    def add_applicant(
        self,
        contribution: ContributionModel,
        identity: InternalIdentity,
        role: AuthorRole,
    ) -> ContributionAuthorModel:
        """Attach the applicant's own author row to a new contribution."""
        row = ContributionAuthorModel(
            position=1,
            name=identity.name,
            category=AuthorCategory.INTERNAL.value,
            author_type=identity.person_type.value,
            role=role.value,
            uid=identity.uid,
            email=identity.email,
            designation=identity.designation,
            is_applicant=True,
            created_by_id=contribution.applicant_id,
        )
        contribution.authors.append(row)
        return row

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_editable(self, contribution_id: UUID, actor: Actor) -> ContributionModel:
        contribution = load_contribution(self.session, contribution_id, lock=True)
        if contribution.applicant_id != actor.user_id:
            raise ForbiddenError(actor.user_id, "only the applicant may edit authors")
        if contribution.status not in AUTHOR_EDITABLE_STATUSES:
            raise ConflictError(
                "Contribution",
                f"authors cannot change while {contribution.status}",
                key=contribution.id,
            )
        return contribution

    @staticmethod
    def _find_author(contribution: ContributionModel, author_id: UUID) -> ContributionAuthorModel:
        for author in contribution.authors:
            if author.id == author_id:
                return author
        raise NotFoundError("ContributionAuthor", author_id)

    def _change_applicant_role(
        self,
        contribution: ContributionModel,
        row: ContributionAuthorModel,
        draft: AuthorDraft,
        actor: Actor,
    ) -> ContributionAuthor:
        """The applicant's row keeps its directory identity; only its role may change."""
        if draft.category != AuthorCategory.INTERNAL or draft.uid != row.uid:
            raise ValidationError.for_field("author", "the applicant cannot be replaced")
        self._check_role_slots([a for a in contribution.authors if a is not row], draft.role)
        row.role = draft.role.value
        row.updated_by_id = actor.user_id
        self.session.flush()

        logger.info(
            "contribution_applicant_role_changed",
            extra={"contribution_id": str(contribution.id), "author_id": str(row.id), "role": row.role},
        )
        self._audit(actor, "author_role_change", contribution, row)
        return row.to_dto()

    @staticmethod
    def _check_role_slots(others: list[ContributionAuthorModel], role: AuthorRole) -> None:
        if role.holds_first and any(AuthorRole(a.role).holds_first for a in others):
            raise InvalidAuthorConfigurationError(
                "a first author is already listed", role="first", count=2
            )
        if role.holds_corresponding and any(AuthorRole(a.role).holds_corresponding for a in others):
            raise InvalidAuthorConfigurationError(
                "a corresponding author is already listed", role="corresponding", count=2
            )

    @staticmethod
    def _apply_draft(
        row: ContributionAuthorModel,
        draft: AuthorDraft,
        identity: InternalIdentity | None,
    ) -> None:
        row.name = draft.name.strip()
        row.category = draft.category.value
        row.role = draft.role.value
        if identity is not None:
            row.uid = identity.uid
            row.author_type = identity.person_type.value
            row.email = identity.email
            row.designation = identity.designation
            row.affiliation = None
        else:
            row.uid = None
            row.author_type = draft.author_type.value
            row.email = draft.email
            row.designation = draft.designation
            row.affiliation = draft.affiliation.strip()

    def _audit(
        self,
        actor: Actor,
        action: str,
        contribution: ContributionModel,
        author: ContributionAuthorModel,
    ) -> None:
        emit_best_effort(
            self._audit_sink,
            AuditRecord(
                actor_id=actor.user_id,
                action=action,
                entity_type="Contribution",
                entity_id=contribution.id,
                occurred_at=self.clock.now(),
                payload={"author_id": author.id, "role": author.role, "category": author.category},
            ),
        )
