"""
erp_services.authority -- Permission enforcement at the workflow boundary.

Responsibility:
    Map a contribution transition to the permission key the actor must
    hold, and check that key against the permission store.

Architecture position:
    Services layer.  Called by ContributionLifecycleManager before a
    reviewer transition is applied.

Invariants:
    - Keys are ``{family}_{action}``: research_paper -> research_*,
      book and book_chapter -> book_*, conference_paper -> conference_*.
    - The store is read directly on every check (no cache), so a revoke is
      visible to the very next transition.
"""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from erp_kernel.domain.workflow import Transition

PERMISSION_FAMILY: dict[str, str] = {
    "research_paper": "research",
    "book": "book",
    "book_chapter": "book",
    "conference_paper": "conference",
}


class PermissionChecker(Protocol):
    def has_permission(
        self, user_id: UUID, key: str, department_id: UUID | None = None
    ) -> bool: ...


def required_permission(publication_type: str, transition: Transition) -> str | None:
    """Return the permission key a transition needs, or None if ownership suffices.

    Raises:
        ValueError: if ``publication_type`` has no permission family.
    """
    if transition.permission_action is None:
        return None
    try:
        family = PERMISSION_FAMILY[publication_type]
    except KeyError:
        raise ValueError(f"No permission family for {publication_type!r}") from None
    return f"{family}_{transition.permission_action}"


def check_permission(
    store: PermissionChecker,
    user_id: UUID,
    key: str,
    department_id: UUID | None = None,
) -> tuple[bool, str]:
    """Check whether ``user_id`` holds ``key``.

    Returns:
        (allowed, reason). reason is empty when allowed.
    """
    if store.has_permission(user_id, key, department_id):
        return (True, "")
    return (False, f"permission '{key}' not granted to actor")
