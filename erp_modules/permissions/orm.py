"""
Permission ORM Models (``erp_modules.permissions.orm``).

One row per (user, department, scope).  Revocation is soft: the row is
deactivated, never deleted, so a re-grant reuses it.
"""

from uuid import UUID

from sqlalchemy import JSON, Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import TrackedBase


class PermissionGrantModel(TrackedBase):
    """
    ORM model for permission grants.

    Guarantees:
        - (user_id, department_id, scope) is unique (uq_permission_grants_scope).
        - permissions is a JSON list of catalog keys.
    """

    __tablename__ = "permission_grants"

    __table_args__ = (
        UniqueConstraint(
            "user_id", "department_id", "scope", name="uq_permission_grants_scope"
        ),
        Index("idx_permission_grants_user_active", "user_id", "is_active"),
    )

    user_id: Mapped[UUID] = mapped_column(nullable=False)
    department_id: Mapped[UUID | None] = mapped_column(nullable=True)
    scope: Mapped[str] = mapped_column(String(20), nullable=False)
    permissions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    is_primary: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    granted_by_id: Mapped[UUID] = mapped_column(nullable=False)

    def to_dto(self):
        from erp_modules.permissions.models import PermissionGrant, PermissionScope

        return PermissionGrant(
            id=self.id,
            user_id=self.user_id,
            department_id=self.department_id,
            scope=PermissionScope(self.scope),
            permissions=tuple(self.permissions or ()),
            is_primary=self.is_primary,
            is_active=self.is_active,
            granted_by_id=self.granted_by_id,
        )

    def __repr__(self) -> str:
        return f"<PermissionGrantModel {self.user_id} {self.scope}@{self.department_id}>"
