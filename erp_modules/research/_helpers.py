"""
Shared helpers for the research services.

Row loading under lock, number allocation, unique-key flushes and JSON-safe
value capture, used by authors.py, lifecycle.py and progress.py.

Architecture: Modules layer. Imports only from erp_kernel and sibling orm.py.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from erp_kernel.exceptions import ConflictError, NotFoundError
from erp_kernel.logging_config import get_logger
from erp_modules.research.orm import ContributionModel, ProgressTrackerModel

logger = get_logger("modules.research.helpers")


def load_contribution(session: Session, contribution_id: UUID, lock: bool = False) -> ContributionModel:
    """Load a contribution, optionally ``SELECT ... FOR UPDATE``.

    Raises:
        NotFoundError: if no such contribution exists.
    """
    stmt = select(ContributionModel).where(ContributionModel.id == contribution_id)
    if lock:
        stmt = stmt.with_for_update()
    row = session.scalars(stmt).first()
    if row is None:
        raise NotFoundError("Contribution", contribution_id)
    return row


def load_tracker(session: Session, tracker_id: UUID, lock: bool = False) -> ProgressTrackerModel:
    stmt = select(ProgressTrackerModel).where(ProgressTrackerModel.id == tracker_id)
    if lock:
        stmt = stmt.with_for_update()
    row = session.scalars(stmt).first()
    if row is None:
        raise NotFoundError("ProgressTracker", tracker_id)
    return row


def next_number(session: Session, column, stem: str) -> str:
    """Allocate ``{stem}-{seq:04d}``, one past the highest existing number for ``stem``.

    Numbers are zero-padded, so the lexical maximum is the numeric maximum
    until a stem passes 9999 entries.
    """
    highest = session.scalar(select(func.max(column)).where(column.like(f"{stem}-%")))
    seq = int(highest.rsplit("-", 1)[1]) + 1 if highest else 1
    return f"{stem}-{seq:04d}"


def flush_unique(session: Session, entity_type: str, key: Any, reason: str) -> None:
    """Flush pending rows, turning a unique-key violation into ``ConflictError``.

    The failed flush leaves the transaction unusable, so it is rolled back
    before raising.
    """
    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        logger.warning(
            "unique_key_conflict",
            extra={"entity_type": entity_type, "key": str(key), "reason": reason},
        )
        raise ConflictError(entity_type, reason, key=key) from exc


def json_safe(value: Any) -> Any:
    """Convert a column value to something a JSON column can store."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    return value
