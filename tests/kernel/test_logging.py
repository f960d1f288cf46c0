"""
Structured logging tests.

Covers:
- JSON output with extra fields
- LogContext fields appear on every record and unbind on exit
- Exception attributes of ErpKernelError are flattened into the record
"""

import logging

import pytest

from erp_kernel.exceptions import ForbiddenError
from erp_kernel.logging_config import LogContext, get_logger

logger = get_logger("tests.logging")


class TestStructuredFormatter:

    def test_extra_fields_serialized(self, captured_logs):
        logger.info("something_happened", extra={"count": 3, "label": "x"})
        record = next(r for r in captured_logs() if r["message"] == "something_happened")
        assert record["count"] == 3
        assert record["label"] == "x"
        assert record["level"] == "INFO"
        assert record["logger"] == "erp_kernel.tests.logging"

    def test_exception_attributes_flattened(self, captured_logs):
        try:
            raise ForbiddenError("user-1", "not yours", permission="research_review")
        except ForbiddenError:
            logger.warning("denied", exc_info=True)
        record = next(r for r in captured_logs() if r["message"] == "denied")
        assert record["exc_type"] == "ForbiddenError"
        assert record["exc_code"] == "FORBIDDEN"
        assert record["exc_permission"] == "research_review"


class TestLogContext:

    def test_bound_fields_on_records(self, captured_logs):
        with LogContext.bind(contribution_id="c-1", actor_id="u-1"):
            logger.info("inside")
        logger.info("outside")
        records = {r["message"]: r for r in captured_logs()}
        assert records["inside"]["contribution_id"] == "c-1"
        assert records["inside"]["actor_id"] == "u-1"
        assert "contribution_id" not in records["outside"]

    def test_unbinds_on_exception(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(tracker_id="t-1"):
                raise RuntimeError("boom")
        assert "tracker_id" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(colour="blue")

    def test_logger_namespace(self):
        assert get_logger("x").name == "erp_kernel.x"
        assert logging.getLogger("erp_kernel").propagate is False
