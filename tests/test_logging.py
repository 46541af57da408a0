"""
Tests for structured logging (consolidation_kernel/logging_config.py).

Covers:
- One JSON object per line with ts/level/logger/message
- Bound request context and report type on every record
- Amounts, ids, periods and enums serialized without loss
- Typed exception fields from ConsolidationError subclasses
- Idempotent configuration and clean reset
"""

import json
import logging
from datetime import UTC, datetime
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from consolidation_kernel.domain.periods import Granularity, Period
from consolidation_kernel.exceptions import InvalidScheduleError, InvalidStatusTransitionError
from consolidation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)

JUNE = Period(2025, 6)


@pytest.fixture(autouse=True)
def _isolated_logging():
    """Each test installs its own handler; the suite handler comes back afterwards."""
    reset_logging()
    yield
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def lines():
    """Configure logging into a buffer and return a reader of parsed lines."""
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


class TestRecordLayout:

    def test_core_fields(self, lines):
        get_logger("engines.scheduler").info("spread_evaluated")

        (record,) = lines()
        assert record["level"] == "INFO"
        assert record["message"] == "spread_evaluated"
        assert record["logger"] == "consolidation.engines.scheduler"
        assert datetime.fromisoformat(record["ts"]).tzinfo == UTC

    def test_extra_payload(self, lines):
        get_logger("modules.reporting").info(
            "consolidated_trial_balance_generated",
            extra={"account_count": 14, "unmapped_count": 0},
        )

        (record,) = lines()
        assert record["account_count"] == 14
        assert record["unmapped_count"] == 0

    def test_every_line_is_json(self, lines):
        logger = get_logger("modules.adjustments")
        logger.info("allocation_create_started")
        logger.warning("elimination_transition_rejected", extra={"to_status": "draft"})
        logger.debug("allocation_committed")

        messages = [r["message"] for r in lines()]
        assert messages == [
            "allocation_create_started",
            "elimination_transition_rejected",
            "allocation_committed",
        ]


class TestSerialization:

    def test_amounts_stay_exact_strings(self, lines):
        get_logger("test").info("allocation_committed", extra={"amount": Decimal("1200.10")})
        assert lines()[0]["amount"] == "1200.10"

    def test_ids_periods_and_enums(self, lines):
        allocation_id = uuid4()
        get_logger("test").info("bucketed", extra={
            "allocation_id": allocation_id,
            "period": JUNE,
            "granularity": Granularity.QUARTERLY,
        })

        record = lines()[0]
        assert record["allocation_id"] == str(allocation_id)
        assert record["period"] == "2025-06"
        assert record["granularity"] == "quarterly"

    def test_sets_sorted(self, lines):
        get_logger("test").info("scoped", extra={"entity_codes": frozenset({"WEST", "HQ"})})
        assert lines()[0]["entity_codes"] == ["HQ", "WEST"]


class TestExceptionFields:

    def test_plain_exception(self, lines):
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = lines()[0]
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_transition_error_fields(self, lines):
        try:
            raise InvalidStatusTransitionError("elim-1", "reversed", "posted")
        except InvalidStatusTransitionError:
            get_logger("test").warning("elimination_transition_rejected", exc_info=True)

        record = lines()[0]
        assert record["exc_code"] == "INVALID_STATUS_TRANSITION"
        assert record["exc_elimination_id"] == "elim-1"
        assert record["exc_from_status"] == "reversed"
        assert record["exc_to_status"] == "posted"

    def test_schedule_error_fields(self, lines):
        try:
            raise InvalidScheduleError("repeatEndMonth", "repeat range must span at least 2 months")
        except InvalidScheduleError:
            get_logger("test").info("allocation_rejected", exc_info=True)

        record = lines()[0]
        assert record["exc_code"] == "INVALID_SCHEDULE"
        assert record["exc_field"] == "repeatEndMonth"


class TestLogContext:

    def test_bound_fields_on_records(self, lines):
        organization_id = uuid4()
        with LogContext.bind(organization_id=organization_id, report_type=Granularity.MONTHLY):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = lines()
        assert inside["organization_id"] == str(organization_id)
        assert inside["report_type"] == "monthly"
        assert "organization_id" not in outside
        assert "report_type" not in outside

    def test_nested_bind_restores_outer(self):
        with LogContext.bind(organization_id="group"):
            with LogContext.bind(organization_id="subsidiary", actor_id="controller"):
                assert LogContext.get_all() == {
                    "organization_id": "subsidiary", "actor_id": "controller",
                }
            assert LogContext.get_all() == {"organization_id": "group"}
        assert LogContext.get_all() == {}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="controller"):
                raise RuntimeError("rollback")
        assert LogContext.get_all() == {}

    def test_none_values_skipped(self):
        with LogContext.bind(organization_id="org", actor_id=None):
            assert LogContext.get_all() == {"organization_id": "org"}

    def test_set_and_clear(self):
        LogContext.set(correlation_id="c", request_id="r", report_type="drill_down")
        assert LogContext.get_all() == {
            "correlation_id": "c", "request_id": "r", "report_type": "drill_down",
        }
        LogContext.clear()
        assert LogContext.get_all() == {}

    @pytest.mark.parametrize("call", [
        lambda: LogContext.set(trace_id="t"),
        lambda: LogContext.bind(period="2025-06").__enter__(),
    ])
    def test_unknown_field_rejected(self, call):
        with pytest.raises(KeyError):
            call()


class TestConfiguration:

    def test_idempotent(self):
        first, second = logging.StreamHandler(StringIO()), logging.StreamHandler(StringIO())
        configure_logging(handler=first)
        configure_logging(handler=second)

        handlers = logging.getLogger("consolidation").handlers
        assert first in handlers
        assert second not in handlers

    def test_level_filters_debug(self):
        stream = StringIO()
        configure_logging(stream=stream)
        get_logger("test").debug("hidden")
        get_logger("test").info("shown")
        assert [json.loads(line)["message"] for line in stream.getvalue().splitlines()] == ["shown"]

    def test_reset_removes_installed_handler_only(self):
        foreign = logging.StreamHandler(StringIO())
        foreign.setFormatter(StructuredFormatter())
        root = logging.getLogger("consolidation")
        root.addHandler(foreign)
        try:
            installed = logging.StreamHandler(StringIO())
            configure_logging(handler=installed)
            reset_logging()

            assert installed not in root.handlers
            assert foreign in root.handlers
            assert root.propagate is True
        finally:
            root.removeHandler(foreign)

    def test_not_propagated_when_configured(self):
        configure_logging(stream=StringIO())
        assert logging.getLogger("consolidation").propagate is False
