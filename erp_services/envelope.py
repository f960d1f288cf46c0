"""
erp_services.envelope -- Uniform response envelopes for outer surfaces.

``error_envelope`` maps any ``ErpKernelError`` to its HTTP status and a
``{"success": False, "code", "message", "details"}`` body; anything else is
reported as a 500 with a generic message.
"""

from __future__ import annotations

from typing import Any

from erp_kernel.exceptions import ErpKernelError

_DETAIL_ATTRIBUTES = (
    "field_errors",
    "entity_type",
    "entity_id",
    "from_status",
    "to_status",
    "pending_count",
    "permission",
    "unknown_keys",
    "allowed",
    "role",
    "count",
)


def success_envelope(data: Any = None, message: str | None = None) -> dict[str, Any]:
    body: dict[str, Any] = {"success": True, "data": data}
    if message:
        body["message"] = message
    return body


def error_envelope(exc: Exception) -> tuple[int, dict[str, Any]]:
    if not isinstance(exc, ErpKernelError):
        return 500, {
            "success": False,
            "code": ErpKernelError.code,
            "message": "Internal error",
            "details": {},
        }
    details = {}
    for name in _DETAIL_ATTRIBUTES:
        value = getattr(exc, name, None)
        if value is None:
            continue
        if isinstance(value, tuple):
            value = list(value)
        details[name] = value if isinstance(value, (int, dict, list)) else str(value)
    return exc.http_status, {
        "success": False,
        "code": exc.code,
        "message": str(exc),
        "details": details,
    }
