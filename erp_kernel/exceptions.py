"""
Typed Exception Hierarchy for the ERP Kernel.

===============================================================================
CONTRACT
===============================================================================

Every error raised by the research core:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a class-level CODE attribute (machine-readable, stable over the API)
  3. Carries structured DATA as attributes (not just a message string)

Example:
    try:
        lifecycle.resubmit(contribution_id, actor)
    except PendingSuggestionsError as e:
        return error_envelope(e)   # code=PENDING_SUGGESTIONS, pending_count=e.pending_count

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ErpKernelError (base)
    |
    +-- ValidationError
    |   +-- UnknownPermissionKeyError
    |   +-- AttachmentTooLargeError
    |
    +-- NotFoundError
    +-- ConflictError
    +-- ForbiddenError
    |
    +-- WorkflowError
    |   +-- InvalidTransitionError
    |   +-- PendingSuggestionsError
    |   +-- AlreadyResolvedError
    |   +-- InvalidStatusForTypeError
    |
    +-- InvalidAuthorConfigurationError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES
===============================================================================

    Code                          | HTTP | Meaning
    ------------------------------|------|-----------------------------------
    VALIDATION_ERROR              | 400  | Missing/malformed field (field_errors)
    UNKNOWN_PERMISSION_KEY        | 400  | Key not in the closed catalog
    ATTACHMENT_TOO_LARGE          | 413  | Attachment over the size ceiling
    NOT_FOUND                     | 404  | Referenced entity does not exist
    CONFLICT                      | 409  | Unique-key collision or locked state
    FORBIDDEN                     | 403  | Missing permission or ownership
    INVALID_TRANSITION            | 409  | State change not allowed from here
    PENDING_SUGGESTIONS           | 409  | Resubmission blocked
    ALREADY_RESOLVED              | 409  | Suggestion no longer pending
    INVALID_STATUS_FOR_TYPE       | 400  | Status not in publication sequence
    INVALID_AUTHOR_CONFIGURATION  | 422  | Author role rules violated
    IMMUTABILITY_VIOLATION        | 500  | Append-only record was modified

The HTTP column is carried by ``http_status`` and consumed by
``erp_services.envelope``.
"""

from __future__ import annotations

from typing import Any


class ErpKernelError(Exception):
    """
    Base exception for all ERP kernel errors.

    All subclasses define a ``code`` class attribute for machine-readable
    identification and an ``http_status`` used by the response envelope.
    """

    code: str = "ERP_KERNEL_ERROR"
    http_status: int = 500


# Validation


class ValidationError(ErpKernelError):
    """One or more fields are missing or malformed.

    ``field_errors`` maps field name -> human-readable problem.
    """

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, message: str, field_errors: dict[str, str] | None = None):
        self.field_errors = dict(field_errors or {})
        super().__init__(message)

    @classmethod
    def for_field(cls, field: str, problem: str) -> "ValidationError":
        return cls(f"{field}: {problem}", {field: problem})


class UnknownPermissionKeyError(ValidationError):
    """Permission keys outside the closed catalog for the grant scope."""

    code: str = "UNKNOWN_PERMISSION_KEY"

    def __init__(self, scope: str, unknown_keys: list[str]):
        self.scope = scope
        self.unknown_keys = sorted(unknown_keys)
        super().__init__(
            f"Unknown {scope} permission keys: {', '.join(self.unknown_keys)}",
            {key: "unknown permission key" for key in self.unknown_keys},
        )


class AttachmentTooLargeError(ValidationError):
    code: str = "ATTACHMENT_TOO_LARGE"
    http_status: int = 413

    def __init__(self, filename: str, size_bytes: int, max_bytes: int):
        self.filename = filename
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            f"Attachment {filename} is {size_bytes} bytes; limit is {max_bytes}",
            {"attachments": f"{filename} exceeds {max_bytes} bytes"},
        )


# Lookup / ownership


class NotFoundError(ErpKernelError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    http_status: int = 404

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConflictError(ErpKernelError):
    """Unique-key collision, or the entity is in a state that forbids the write."""

    code: str = "CONFLICT"
    http_status: int = 409

    def __init__(self, entity_type: str, reason: str, key: Any = None):
        self.entity_type = entity_type
        self.reason = reason
        self.key = None if key is None else str(key)
        super().__init__(f"{entity_type} conflict: {reason}")


class ForbiddenError(ErpKernelError):
    """Actor lacks the required permission or ownership."""

    code: str = "FORBIDDEN"
    http_status: int = 403

    def __init__(self, actor_id: Any, reason: str, permission: str | None = None):
        self.actor_id = str(actor_id)
        self.reason = reason
        self.permission = permission
        super().__init__(f"Forbidden for actor {actor_id}: {reason}")


# Workflow


class WorkflowError(ErpKernelError):
    """Base exception for state-machine errors."""

    code: str = "WORKFLOW_ERROR"
    http_status: int = 409


class InvalidTransitionError(WorkflowError):
    """Requested state change is not allowed from the current state."""

    code: str = "INVALID_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        from_status: str,
        to_status: str,
        reason: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        message = f"Cannot move {entity_type} {entity_id} from {from_status} to {to_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class PendingSuggestionsError(WorkflowError):
    """Resubmission blocked while edit suggestions remain pending."""

    code: str = "PENDING_SUGGESTIONS"

    def __init__(self, contribution_id: Any, pending_count: int):
        self.contribution_id = str(contribution_id)
        self.pending_count = pending_count
        super().__init__(
            f"Contribution {contribution_id} has {pending_count} pending suggestion(s)"
        )


class AlreadyResolvedError(WorkflowError):
    """Edit suggestion has already been accepted or rejected."""

    code: str = "ALREADY_RESOLVED"

    def __init__(self, suggestion_id: Any, status: str):
        self.suggestion_id = str(suggestion_id)
        self.status = status
        super().__init__(f"Suggestion {suggestion_id} is already {status}")


class InvalidStatusForTypeError(WorkflowError):
    """Status is not part of the publication type's tracker sequence."""

    code: str = "INVALID_STATUS_FOR_TYPE"
    http_status: int = 400

    def __init__(self, publication_type: str, status: str, allowed: tuple[str, ...]):
        self.publication_type = publication_type
        self.status = status
        self.allowed = allowed
        super().__init__(
            f"Status {status!r} is not valid for {publication_type}; "
            f"expected one of {', '.join(allowed)}"
        )


# Incentive allocation


class InvalidAuthorConfigurationError(ErpKernelError):
    """Author roles cannot be resolved into an allocation."""

    code: str = "INVALID_AUTHOR_CONFIGURATION"
    http_status: int = 422

    def __init__(self, reason: str, role: str | None = None, count: int | None = None):
        self.reason = reason
        self.role = role
        self.count = count
        super().__init__(f"Invalid author configuration: {reason}")


# Append-only storage


class ImmutabilityViolationError(ErpKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
