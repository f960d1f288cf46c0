"""
Audit sink tests.

Covers:
- Best-effort emission never raises
- Logging sink output
- Stable payload hashing
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from erp_services.audit import (
    AuditRecord,
    InMemoryAuditSink,
    LoggingAuditSink,
    emit_best_effort,
)

ACTOR = uuid4()
ENTITY = uuid4()
WHEN = datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc)


def make_record(**payload):
    return AuditRecord(
        actor_id=ACTOR,
        action="approve",
        entity_type="Contribution",
        entity_id=ENTITY,
        occurred_at=WHEN,
        from_status="under_review",
        to_status="approved",
        payload=payload,
    )


class BrokenSink:
    def record(self, record):
        raise ConnectionError("audit store unreachable")


class TestEmitBestEffort:

    def test_success(self):
        sink = InMemoryAuditSink()
        assert emit_best_effort(sink, make_record()) is True
        assert sink.records[0].action == "approve"

    def test_failure_logged_not_raised(self, captured_logs):
        assert emit_best_effort(BrokenSink(), make_record()) is False
        record = next(r for r in captured_logs() if r["message"] == "audit_sink_failed")
        assert record["entity_id"] == str(ENTITY)
        assert record["exc_type"] == "ConnectionError"


class TestLoggingAuditSink:

    def test_one_line_per_record(self, captured_logs):
        LoggingAuditSink().record(make_record(amount=Decimal("50000")))
        record = next(r for r in captured_logs() if r["message"] == "audit_record")
        assert record["to_status"] == "approved"
        assert record["occurred_at"] == WHEN.isoformat()
        assert len(record["payload_hash"]) == 64


class TestPayloadHash:

    def test_key_order_irrelevant(self):
        first = make_record(a=1, b="x")
        second = make_record(b="x", a=1)
        assert first.payload_hash == second.payload_hash

    def test_decimal_scale_irrelevant(self):
        assert make_record(amount=Decimal("50000")).payload_hash == make_record(
            amount=Decimal("50000.00")
        ).payload_hash

    def test_content_matters(self):
        assert make_record(a=1).payload_hash != make_record(a=2).payload_hash
