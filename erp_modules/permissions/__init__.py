"""Department-scoped permission grants."""

from erp_modules.permissions.models import PermissionGrant, PermissionScope
from erp_modules.permissions.service import PermissionStore

__all__ = ["PermissionGrant", "PermissionScope", "PermissionStore"]
