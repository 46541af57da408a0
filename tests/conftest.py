"""
Pytest fixtures for the consolidation test suite.

Provides:
- Structured logging configured once per session
- LogContext cleared around every test
- ``captured_logs`` for asserting on structured log events
- An in-memory SQLite session with every consolidation table
- A deterministic clock for services that stamp times
"""

import json
import logging
from io import StringIO

import pytest

from consolidation_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session,
    init_engine_from_url,
    reset_engine,
)
from consolidation_kernel.domain.clock import DeterministicClock
from consolidation_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture consolidation logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, service):
            service.trial_balance(request)
            logs = captured_logs()
            assert any(r["message"] == "consolidated_trial_balance_generated" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("consolidation")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def session():
    """A session on a fresh in-memory SQLite database with every table created."""
    init_engine_from_url("sqlite://")
    create_tables()
    db_session = get_session()
    yield db_session
    db_session.close()
    drop_tables()
    reset_engine()


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()
