"""
Permission Domain Models (``erp_modules.permissions.models``).

A grant gives one user a set of permission keys within one department and
scope.  ``central`` grants carry the workflow keys (``research_review``,
``book_approve``...); ``school`` grants carry departmental keys.
"""

from dataclasses import dataclass
from enum import Enum
from uuid import UUID


class PermissionScope(Enum):
    SCHOOL = "school"
    CENTRAL = "central"


@dataclass(frozen=True)
class PermissionGrant:
    id: UUID
    user_id: UUID
    department_id: UUID | None
    scope: PermissionScope
    permissions: tuple[str, ...]
    is_primary: bool
    is_active: bool
    granted_by_id: UUID

    def allows(self, key: str) -> bool:
        return self.is_active and key in self.permissions

    def to_json(self) -> dict:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "department_id": str(self.department_id) if self.department_id else None,
            "scope": self.scope.value,
            "permissions": list(self.permissions),
            "is_primary": self.is_primary,
            "is_active": self.is_active,
            "granted_by_id": str(self.granted_by_id),
        }

    @classmethod
    def from_json(cls, data: dict) -> "PermissionGrant":
        return cls(
            id=UUID(data["id"]),
            user_id=UUID(data["user_id"]),
            department_id=UUID(data["department_id"]) if data["department_id"] else None,
            scope=PermissionScope(data["scope"]),
            permissions=tuple(data["permissions"]),
            is_primary=data["is_primary"],
            is_active=data["is_active"],
            granted_by_id=UUID(data["granted_by_id"]),
        )
