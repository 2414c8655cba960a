"""
Pytest fixtures for the entry fees test suite.

Storage is an in-memory SQLite database shared through a StaticPool, so
independent sessions opened by ``transaction_scope`` see each other's
commits exactly like separate connections to one PostgreSQL database.
PostgreSQL-only DDL (the period exclusion constraint) is skipped there;
the proactive overlap query covers it.
"""

import json
import logging
from collections.abc import Generator
from io import StringIO
from uuid import UUID

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import entry_fees.models  # noqa: F401
from entry_fees.db.base import Base
from entry_fees.db.engine import transaction_scope
from entry_fees.domain.clock import DeterministicClock
from entry_fees.domain.feeds import StaticSubscriptionFeed, SubscriptionRecord
from entry_fees.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from entry_fees.services.group_structure_service import GroupStructureService
from entry_fees.services.payment_list_service import PaymentListTransactionCoordinator
from entry_fees.settings import EngineSettings
from tests.factories import DEFAULT_MAPPINGS, make_record

# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture entry_fees logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            assert any(r["message"] == "statement_cancelled" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("entry_fees")
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
# Storage fixtures
# =============================================================================


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(database_url="sqlite://")


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory) -> Generator[Session, None, None]:
    """A session for flush-only service tests; rolled back afterwards."""
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def active_structure(session_factory, clock, settings) -> UUID:
    """Commit an active group structure and return its id."""
    with transaction_scope(session_factory) as s:
        info = GroupStructureService(s, clock, settings).create_group_structure(
            "2024 season", DEFAULT_MAPPINGS, activate=True
        )
    return info.id


@pytest.fixture
def feed_records() -> list[SubscriptionRecord]:
    return [
        make_record("sub-1", "team-a1", "EUR", "100.00"),
        make_record("sub-2", "team-a2", "EUR", "50.50"),
        make_record("sub-3", "team-b", "EUR", "75.00"),
        make_record("sub-4", "team-b", "CHF", "20.00"),
        make_record("sub-5", "team-x", "EUR", "0"),
    ]


@pytest.fixture
def feed(feed_records) -> StaticSubscriptionFeed:
    return StaticSubscriptionFeed(feed_records)


@pytest.fixture
def coordinator(session_factory, feed, clock, settings) -> PaymentListTransactionCoordinator:
    return PaymentListTransactionCoordinator(session_factory, feed, clock, settings)
