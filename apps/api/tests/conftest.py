"""
Pytest configuration and fixtures

Tests run against a throwaway SQLite file upgraded to the Alembic head once
per session. Every table is emptied after each test, so nothing created
during one test is visible to the next.
"""
import pytest
import sys
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import uuid4

# Add the parent directory to the path so we can import from services
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Must be set before core.config is imported anywhere.
_TEST_DB_DIR = tempfile.mkdtemp(prefix="workflow_coach_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'test.db')}"
os.environ["INSIGHT_AUGMENTATION_PROVIDER"] = "none"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "false"
os.environ["DEBUG"] = "false"


@pytest.fixture(scope="session", autouse=True)
def _ensure_db_schema_is_at_head():
    """
    Ensure the test database schema includes the latest Alembic migrations.
    """
    try:
        from alembic import command
        from alembic.config import Config

        api_root = Path(__file__).resolve().parents[1]
        alembic_ini = api_root / "alembic.ini"

        cfg = Config(str(alembic_ini))
        # Alembic's script_location in alembic.ini is relative ("alembic")
        # so we set the working directory explicitly.
        cfg.set_main_option("script_location", str(api_root / "alembic"))
        command.upgrade(cfg, "head")
    except Exception as e:
        # Tests should fail loudly if migrations cannot be applied.
        raise RuntimeError(f"Failed to upgrade DB to Alembic head: {e}") from e


from core.database import SessionLocal, engine  # noqa: E402
from models import CoachInsightRecord, Workflow, WorkflowPattern  # noqa: E402
from services.workflow_analysis import Command, WorkflowSnapshot  # noqa: E402


@pytest.fixture(autouse=True)
def _clean_tables():
    """Empty every table after each test (children first)."""
    yield
    with engine.begin() as conn:
        for table in (CoachInsightRecord.__table__, WorkflowPattern.__table__, Workflow.__table__):
            conn.execute(table.delete())


@pytest.fixture(scope="function")
def db_session():
    """A plain session; tables are emptied after the test."""
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def base_time():
    return datetime(2026, 3, 1, 9, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_commands(base_time):
    """
    Build a command tuple from (command, seconds_offset, duration_ms, success)
    entries; trailing fields are optional.
    """
    def _make(*entries, model_used=None):
        commands = []
        for entry in entries:
            name, offset = entry[0], entry[1]
            duration_ms = entry[2] if len(entry) > 2 else None
            success = entry[3] if len(entry) > 3 else True
            commands.append(Command(
                command=name,
                timestamp=base_time + timedelta(seconds=offset),
                model_used=model_used,
                duration_ms=duration_ms,
                success=success,
            ))
        return tuple(commands)

    return _make


@pytest.fixture
def make_snapshot(user_id):
    def _make(commands=(), model_switches=(), workflow_type="general"):
        return WorkflowSnapshot(
            workflow_id=uuid4(),
            user_id=user_id,
            workflow_type=workflow_type,
            commands=tuple(commands),
            model_switches=tuple(model_switches),
        )

    return _make


@pytest.fixture
def make_workflow(db_session, user_id, base_time):
    """Persist a Workflow row directly and return it."""
    def _make(
        session_id="session-1",
        workflow_type="coding",
        status="active",
        commands=(),
        efficiency_score=None,
        owner_id=None,
        created_at=None,
        total_duration_s=None,
    ):
        workflow = Workflow(
            user_id=owner_id or user_id,
            session_id=session_id,
            workflow_type=workflow_type,
            status=status,
            command_sequence=[c.to_dict() for c in commands],
            model_switch_patterns=[],
            total_steps=len(commands),
            activity_count=len(commands),
            efficiency_score=efficiency_score,
            total_duration_s=total_duration_s,
            created_at=created_at or base_time,
            started_at=created_at or base_time,
        )
        db_session.add(workflow)
        db_session.commit()
        return workflow

    return _make
