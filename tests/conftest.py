"""
Pytest fixtures for the approval workflow test suite.

Provides:
- A file-backed SQLite Database per test (tmp_path), tables created
- The packaged TransitionTable, compiled once per session
- A DeterministicClock
- A static directory of sample actors covering every role
- A recording delivery channel and a fully wired WorkflowEngine
- Snapshot factories for pure engine tests
- Structured log capture
"""

import json
import logging
from io import StringIO

import pytest

from approval_config import get_active_config
from approval_kernel.db.engine import Database
from approval_kernel.domain.clock import DeterministicClock
from approval_kernel.domain.records import WorkflowRecord
from approval_kernel.domain.workflow import WorkflowType
from approval_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from approval_services.identity import StaticDirectory
from approval_services.notification_dispatcher import NotificationDispatcher
from approval_services.workflow_engine import WorkflowEngine
from tests.sample_org import ACTORS, CREATOR


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
    Capture approval_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.approve(...)
            logs = captured_logs()
            assert any(r["message"] == "workflow_transition_applied" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("approval_kernel")
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
# Configuration and organization
# =============================================================================


@pytest.fixture(scope="session")
def table():
    return get_active_config()


@pytest.fixture
def requisition(table):
    return table.definition(WorkflowType.REQUISITION)


@pytest.fixture
def cash_voucher(table):
    return table.definition(WorkflowType.CASH_VOUCHER)


@pytest.fixture
def mission_order(table):
    return table.definition(WorkflowType.MISSION_ORDER)


@pytest.fixture
def directory():
    return StaticDirectory(ACTORS)


@pytest.fixture
def actor(directory):
    """Look up a sample actor by id."""
    return directory.resolve


# =============================================================================
# Clock and database
# =============================================================================


@pytest.fixture
def deterministic_clock():
    return DeterministicClock()


@pytest.fixture
def database(tmp_path):
    db = Database.from_url(f"sqlite:///{tmp_path / 'approvals.db'}")
    db.create_tables()
    yield db
    db.dispose()


@pytest.fixture
def session(database):
    """A plain session for service-level tests; the test commits as needed."""
    s = database.session()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Notification and engine
# =============================================================================


class RecordingChannel:
    """Delivery channel that keeps every delivery in memory."""

    name = "recording"

    def __init__(self):
        self.deliveries: list[tuple[frozenset[int], str, str]] = []

    def deliver(self, recipient_ids, message, entity_reference):
        self.deliveries.append((frozenset(recipient_ids), message, entity_reference))

    @property
    def last(self):
        return self.deliveries[-1] if self.deliveries else None

    def recipients_of_last(self) -> frozenset[int]:
        return self.last[0] if self.last else frozenset()

    def clear(self):
        self.deliveries.clear()


class FailingChannel:
    """Delivery channel that always raises."""

    name = "failing"

    def __init__(self):
        self.attempts = 0

    def deliver(self, recipient_ids, message, entity_reference):
        self.attempts += 1
        raise ConnectionError("push gateway unreachable")


@pytest.fixture
def recording_channel():
    return RecordingChannel()


@pytest.fixture
def failing_channel():
    return FailingChannel()


@pytest.fixture
def dispatcher(table, directory, recording_channel):
    return NotificationDispatcher(table, directory, [recording_channel])


@pytest.fixture
def engine(database, table, directory, dispatcher, deterministic_clock):
    return WorkflowEngine(database, table, directory, dispatcher, deterministic_clock)


@pytest.fixture
def create_record(engine, deterministic_clock):
    """Factory fixture creating a record through the engine.

    Advances the clock by one second after creation so later entries sort
    strictly after the creation entry.
    """

    def _create(
        workflow_type=WorkflowType.REQUISITION,
        creator_id=CREATOR,
        category=None,
        draft=False,
        **kwargs,
    ):
        record = engine.create(
            workflow_type,
            creator_id,
            title=kwargs.pop("title", "Test record"),
            category=category,
            draft=draft,
            **kwargs,
        )
        deterministic_clock.advance(1)
        return record

    return _create


@pytest.fixture
def run_actions(engine, deterministic_clock):
    """Apply a list of ``(method_name, actor_id, *args)`` steps in order."""

    def _run(entity_id, steps):
        record = None
        for method, actor_id, *args in steps:
            record = getattr(engine, method)(entity_id, actor_id, *args)
            deterministic_clock.advance(1)
        return record

    return _run


# =============================================================================
# Snapshot factories (pure engine tests)
# =============================================================================


@pytest.fixture
def make_snapshot():
    """Build an in-memory WorkflowRecord without touching the database."""

    def _make(
        workflow_type=WorkflowType.REQUISITION,
        status="SUBMITTED",
        department_id="OPS",
        creator_id=CREATOR,
        category=None,
        **kwargs,
    ) -> WorkflowRecord:
        prefix = {"requisition": "EDB", "cash_voucher": "BDC", "mission_order": "ODM"}
        return WorkflowRecord(
            id=kwargs.pop("id", 1),
            code=kwargs.pop("code", f"{prefix[WorkflowType(workflow_type).value]}-20240101-0001"),
            workflow_type=WorkflowType(workflow_type),
            status=status,
            department_id=department_id,
            creator_id=creator_id,
            category=category,
            **kwargs,
        )

    return _make
