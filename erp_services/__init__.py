"""
erp_services -- cross-cutting services used by the research modules.

- authority: transition -> permission key, checked against the store
- audit:     best-effort audit records
- cache:     redis read-through cache for list reads
- envelope:  success / error response bodies

Dependency direction:
    erp_modules -> erp_services -> erp_kernel (allowed)
    erp_kernel  -> erp_services (forbidden)
"""

from erp_services.audit import AuditRecord, AuditSink, LoggingAuditSink, emit_best_effort
from erp_services.authority import PERMISSION_FAMILY, check_permission, required_permission
from erp_services.cache import ReadThroughCache
from erp_services.envelope import error_envelope, success_envelope

__all__ = [
    "PERMISSION_FAMILY",
    "AuditRecord",
    "AuditSink",
    "LoggingAuditSink",
    "ReadThroughCache",
    "check_permission",
    "emit_best_effort",
    "error_envelope",
    "required_permission",
    "success_envelope",
]
