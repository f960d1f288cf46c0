"""
erp_services.audit -- Best-effort audit trail for state changes.

Every completed lifecycle, tracker or permission operation produces an
``AuditRecord`` (who, what, when, from -> to) handed to an ``AuditSink``.
Sink failures are logged as ``audit_sink_failed`` and never fail the
operation that produced the record; the status history tables remain the
authoritative record.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol
from uuid import UUID

from erp_kernel.logging_config import get_logger
from erp_kernel.utils.hashing import hash_payload

logger = get_logger("services.audit")


@dataclass(frozen=True)
class AuditRecord:
    actor_id: UUID
    action: str
    entity_type: str
    entity_id: UUID
    occurred_at: datetime
    from_status: str | None = None
    to_status: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def payload_hash(self) -> str:
        return hash_payload(self.payload)


class AuditSink(Protocol):
    def record(self, record: AuditRecord) -> None: ...


class LoggingAuditSink:
    """Default sink: one ``audit_record`` log line per record."""

    def record(self, record: AuditRecord) -> None:
        logger.info(
            "audit_record",
            extra={
                "actor_id": str(record.actor_id),
                "action": record.action,
                "entity_type": record.entity_type,
                "entity_id": str(record.entity_id),
                "from_status": record.from_status,
                "to_status": record.to_status,
                "occurred_at": record.occurred_at.isoformat(),
                "payload_hash": record.payload_hash,
            },
        )


class InMemoryAuditSink:
    """Collects records in a list."""

    def __init__(self) -> None:
        self.records: list[AuditRecord] = []

    def record(self, record: AuditRecord) -> None:
        self.records.append(record)


def emit_best_effort(sink: AuditSink, record: AuditRecord) -> bool:
    """Hand ``record`` to ``sink``; return False (and log) if the sink raised."""
    try:
        sink.record(record)
    except Exception:
        logger.warning(
            "audit_sink_failed",
            extra={
                "action": record.action,
                "entity_type": record.entity_type,
                "entity_id": str(record.entity_id),
            },
            exc_info=True,
        )
        return False
    return True
