"""
Pytest fixtures for the stepline test suite.

Provides:
- Structured logging configuration and log capture
- A deterministic clock
- File-backed SQLite engines (one database per test, under tmp_path)
- In-memory and SQL job repositories
"""

import json
import logging
from io import StringIO

import pytest
from sqlalchemy import event
from sqlalchemy.orm import sessionmaker

from stepline_batch.services.repository import InMemoryJobRepository
from stepline_batch.services.sql_repository import SqlJobRepository
from stepline_kernel.db.engine import build_engine, create_tables
from stepline_kernel.domain.clock import DeterministicClock
from stepline_kernel.logging_config import (
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
    Capture stepline logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, launcher):
            launcher.launch(job)
            logs = captured_logs()
            assert any(r["message"] == "job_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stepline")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Clock
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock()


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine(tmp_path):
    """SQLite database file private to the test, with the execution tables."""
    eng = build_engine(f"sqlite:///{tmp_path / 'stepline.db'}")

    @event.listens_for(eng, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    create_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


# =============================================================================
# Repositories
# =============================================================================


@pytest.fixture
def memory_repository(clock):
    return InMemoryJobRepository(clock=clock)


@pytest.fixture
def sql_repository(session_factory, clock):
    return SqlJobRepository(session_factory, clock=clock)


@pytest.fixture(params=["memory", "sql"])
def repository(request, clock):
    """Both repository implementations; tests using it run once per backend."""
    if request.param == "memory":
        return InMemoryJobRepository(clock=clock)
    session_factory = request.getfixturevalue("session_factory")
    return SqlJobRepository(session_factory, clock=clock)
