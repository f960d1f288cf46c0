"""
Permission Store (``erp_modules.permissions.service``).

Responsibility
--------------
Grant, revoke and query department-scoped permissions.  Keys are checked
against the closed catalog in configuration; designation templates expand
into school-scope grants.

Architecture position
---------------------
**Modules layer**.  Read by ``erp_services.authority`` on every reviewer
transition.

Invariants enforced
-------------------
* At most one grant per (user, department, scope); ``grant`` upserts.
* At most one primary grant per user.
* ``has_permission`` reads the table directly.  Only ``list_grants`` goes
  through the read-through cache, and every write invalidates it.

Failure modes
-------------
* ``UnknownPermissionKeyError`` -- key outside the scope's catalog.
* ``NotFoundError`` -- revoking a grant that does not exist.
* ``ValueError`` -- unknown designation template.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from erp_config import get_active_config
from erp_config.schema import ErpConfiguration
from erp_kernel.domain.clock import Clock
from erp_kernel.exceptions import NotFoundError, UnknownPermissionKeyError, ValidationError
from erp_kernel.logging_config import get_logger
from erp_kernel.services.base import BaseService
from erp_modules.permissions.models import PermissionGrant, PermissionScope
from erp_modules.permissions.orm import PermissionGrantModel
from erp_services.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_best_effort
from erp_services.cache import ReadThroughCache

logger = get_logger("modules.permissions.service")


def _grants_cache_key(user_id: UUID) -> str:
    return f"permission_grants:{user_id}"


class PermissionStore(BaseService):
    """
    Department-scoped permission grants.

    Contract:
        Flushes only; the caller's session_scope owns the commit.
    """

    def __init__(
        self,
        session: Session,
        config: ErpConfiguration | None = None,
        cache: ReadThroughCache | None = None,
        clock: Clock | None = None,
        audit_sink: AuditSink | None = None,
    ):
        super().__init__(session, clock)
        self._config = config or get_active_config()
        self._cache = cache
        self._audit_sink = audit_sink or LoggingAuditSink()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def grant(
        self,
        user_id: UUID,
        department_id: UUID | None,
        scope: PermissionScope | str,
        permissions: Iterable[str],
        actor_id: UUID,
        is_primary: bool = False,
    ) -> PermissionGrant:
        """Create or replace the grant for (user, department, scope).

        Re-granting a revoked grant reactivates it with the new key set.
        """
        scope = PermissionScope(scope)
        keys = tuple(dict.fromkeys(permissions))
        if not keys:
            raise ValidationError.for_field("permissions", "at least one key is required")
        unknown = self._config.permissions.unknown_keys(scope.value, keys)
        if unknown:
            raise UnknownPermissionKeyError(scope.value, list(unknown))

        row = self._find(user_id, department_id, scope, lock=True)
        created = row is None
        if created:
            row = PermissionGrantModel(
                user_id=user_id,
                department_id=department_id,
                scope=scope.value,
                created_by_id=actor_id,
            )
            self.session.add(row)
        else:
            row.updated_by_id = actor_id
        row.permissions = list(keys)
        row.is_active = True
        row.is_primary = is_primary
        row.granted_by_id = actor_id
        self.session.flush()

        if is_primary:
            self.session.execute(
                update(PermissionGrantModel)
                .where(
                    PermissionGrantModel.user_id == user_id,
                    PermissionGrantModel.id != row.id,
                    PermissionGrantModel.is_primary.is_(True),
                )
                .values(is_primary=False, updated_by_id=actor_id)
                .execution_options(synchronize_session="fetch")
            )
            self.session.flush()

        self._invalidate(user_id)
        logger.info(
            "permission_granted",
            extra={
                "user_id": str(user_id),
                "department_id": str(department_id) if department_id else None,
                "scope": scope.value,
                "key_count": len(keys),
                "is_primary": is_primary,
                "new_grant": created,
            },
        )
        emit_best_effort(
            self._audit_sink,
            AuditRecord(
                actor_id=actor_id,
                action="permission_grant",
                entity_type="PermissionGrant",
                entity_id=row.id,
                occurred_at=self.clock.now(),
                payload={"user_id": user_id, "scope": scope.value, "permissions": list(keys)},
            ),
        )
        return row.to_dto()

    def grant_designation_template(
        self,
        user_id: UUID,
        department_id: UUID,
        designation: str,
        actor_id: UUID,
        is_primary: bool = False,
    ) -> PermissionGrant:
        """Grant the school-scope keys configured for ``designation``."""
        template = self._config.template_for(designation)
        if template is None:
            raise ValueError(f"No designation template for {designation!r}")
        return self.grant(
            user_id,
            department_id,
            PermissionScope.SCHOOL,
            template.keys(),
            actor_id,
            is_primary=is_primary,
        )

    def revoke(
        self,
        user_id: UUID,
        department_id: UUID | None,
        scope: PermissionScope | str,
        actor_id: UUID,
    ) -> PermissionGrant:
        scope = PermissionScope(scope)
        row = self._find(user_id, department_id, scope, lock=True)
        if row is None:
            raise NotFoundError("PermissionGrant", f"{user_id}/{department_id}/{scope.value}")
        row.is_active = False
        row.is_primary = False
        row.updated_by_id = actor_id
        self.session.flush()
        self._invalidate(user_id)
        logger.info(
            "permission_revoked",
            extra={
                "user_id": str(user_id),
                "department_id": str(department_id) if department_id else None,
                "scope": scope.value,
            },
        )
        emit_best_effort(
            self._audit_sink,
            AuditRecord(
                actor_id=actor_id,
                action="permission_revoke",
                entity_type="PermissionGrant",
                entity_id=row.id,
                occurred_at=self.clock.now(),
                payload={"user_id": user_id, "scope": scope.value},
            ),
        )
        return row.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def has_permission(
        self, user_id: UUID, key: str, department_id: UUID | None = None
    ) -> bool:
        """True if any active grant of the user carries ``key``.

        With ``department_id``, school grants must belong to that department;
        central grants apply everywhere.
        """
        stmt = select(PermissionGrantModel).where(
            PermissionGrantModel.user_id == user_id,
            PermissionGrantModel.is_active.is_(True),
        )
        for row in self.session.scalars(stmt):
            if key not in (row.permissions or ()):
                continue
            if (
                department_id is None
                or row.scope == PermissionScope.CENTRAL.value
                or row.department_id == department_id
            ):
                return True
        return False

    def list_grants(self, user_id: UUID) -> list[PermissionGrant]:
        """Active grants of the user, primary first."""
        if self._cache is None:
            return self._load_grants(user_id)
        data = self._cache.get_or_load(
            _grants_cache_key(user_id),
            lambda: [g.to_json() for g in self._load_grants(user_id)],
        )
        return [PermissionGrant.from_json(d) for d in data]

    def primary_grant(self, user_id: UUID) -> PermissionGrant | None:
        row = self.session.scalars(
            select(PermissionGrantModel).where(
                PermissionGrantModel.user_id == user_id,
                PermissionGrantModel.is_primary.is_(True),
                PermissionGrantModel.is_active.is_(True),
            )
        ).first()
        return row.to_dto() if row else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(
        self,
        user_id: UUID,
        department_id: UUID | None,
        scope: PermissionScope,
        lock: bool = False,
    ) -> PermissionGrantModel | None:
        stmt = select(PermissionGrantModel).where(
            PermissionGrantModel.user_id == user_id,
            PermissionGrantModel.scope == scope.value,
        )
        if department_id is None:
            stmt = stmt.where(PermissionGrantModel.department_id.is_(None))
        else:
            stmt = stmt.where(PermissionGrantModel.department_id == department_id)
        if lock:
            stmt = stmt.with_for_update()
        return self.session.scalars(stmt).first()

    def _load_grants(self, user_id: UUID) -> list[PermissionGrant]:
        rows = self.session.scalars(
            select(PermissionGrantModel)
            .where(
                PermissionGrantModel.user_id == user_id,
                PermissionGrantModel.is_active.is_(True),
            )
            .order_by(PermissionGrantModel.is_primary.desc(), PermissionGrantModel.scope)
        ).all()
        return [row.to_dto() for row in rows]

    def _invalidate(self, user_id: UUID) -> None:
        if self._cache is not None:
            self._cache.invalidate(_grants_cache_key(user_id))
