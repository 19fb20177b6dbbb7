"""
Workflow State Tracker

Maps (user, session) activity onto the user's active workflow and decides
when the workflow should be re-analyzed.

Design:
    - Track-and-forget: record_activity() never raises. Invalid payloads,
      database errors and queue errors are logged and dropped.
    - One active workflow per (user_id, session_id). A partial unique index
      backs this up; a losing concurrent create is retried and finds the
      winner's row.
    - The read-modify-write of a workflow's sequences is serialized by a
      striped in-process lock, a row lock (SELECT ... FOR UPDATE) and the
      workflow's optimistic version column.
    - Analysis is submitted to the background queue; the call returns
      without waiting for it.

Trigger policy:
    total_steps % 5 == 0, or more than 5 minutes since last_analyzed_at
    (a never-analyzed workflow always qualifies).
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional
from uuid import UUID
import logging
import threading

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from core.config import settings
from core.logging import log_fields
from core.database import SessionLocal
from models import Workflow
from schemas import (
    Activity,
    ChatMessageActivity,
    CommandActivity,
    ModelSwitchActivity,
    parse_activity,
)
from services.activity_classifier import WorkflowType, classify
from services.workflow_analysis import Command, ModelSwitch
from services.workflow_repository import WorkflowRepository

logger = logging.getLogger(__name__)


MAX_APPEND_ATTEMPTS = 3
LOCK_STRIPES = 64


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass
class ActivityRecordResult:
    workflow_id: UUID
    workflow_created: bool
    total_steps: int
    analysis_triggered: bool


class WorkflowStateTracker:
    """
    Records activity against workflows and triggers re-analysis.

    Usage:
        tracker = WorkflowStateTracker(dispatch_analysis=enqueue_workflow_analysis)
        tracker.record_activity(user_id, "sess-1", "command", {"command": "debug test", "model": "gpt-4o"})
    """

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        dispatch_analysis: Optional[Callable[[UUID], None]] = None,
        clock: Callable[[], datetime] = _utcnow,
        step_interval: Optional[int] = None,
        max_idle_s: Optional[int] = None,
    ):
        """
        Args:
            session_factory: returns a new SQLAlchemy Session
            dispatch_analysis: submits a workflow id for background analysis
                               (defaults to the Celery task)
            clock: returns the current UTC time
        """
        if dispatch_analysis is None:
            from tasks.workflow_tasks import enqueue_workflow_analysis
            dispatch_analysis = enqueue_workflow_analysis

        self.session_factory = session_factory
        self.dispatch_analysis = dispatch_analysis
        self.clock = clock
        self.step_interval = step_interval or settings.COACH_ANALYSIS_STEP_INTERVAL
        self.max_idle_s = max_idle_s or settings.COACH_ANALYSIS_MAX_IDLE_S
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def record_activity(
        self,
        user_id: UUID,
        session_id: str,
        activity_type: str,
        activity_data: Optional[Dict[str, Any]] = None,
    ) -> Optional[ActivityRecordResult]:
        """
        Append one activity to the (user, session) workflow.

        Returns the outcome, or None when the activity was dropped.
        """
        try:
            activity = parse_activity(activity_type, activity_data)
        except ValidationError as e:
            logger.warning(
                f"Dropping invalid '{activity_type}' activity for user {user_id}: "
                f"{e.error_count()} validation errors"
            )
            return None

        try:
            with self._lock_for(user_id, session_id):
                result = self._record_with_retry(user_id, session_id, activity)
        except Exception as e:
            logger.error(f"Error tracking workflow activity for user {user_id}: {e}", exc_info=True)
            return None

        if result.analysis_triggered:
            self._submit_analysis(result.workflow_id)
        return result

    def should_analyze(self, workflow: Workflow, now: datetime) -> bool:
        if (workflow.total_steps or 0) % self.step_interval == 0:
            return True
        if workflow.last_analyzed_at is None:
            return True
        elapsed = now - _as_utc(workflow.last_analyzed_at)
        return elapsed.total_seconds() > self.max_idle_s

    def complete_workflow(self, workflow_id: UUID, user_id: Optional[UUID] = None) -> Workflow:
        """Mark a workflow completed. Raises WorkflowNotFoundError."""
        db = self.session_factory()
        try:
            workflow = WorkflowRepository(db).complete_workflow(workflow_id, self.clock(), user_id=user_id)
            db.commit()
            logger.info(f"Workflow {workflow_id} completed")
            return workflow
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _lock_for(self, user_id: UUID, session_id: str) -> threading.Lock:
        return self._locks[hash((str(user_id), session_id)) % LOCK_STRIPES]

    def _record_with_retry(self, user_id: UUID, session_id: str, activity: Activity) -> ActivityRecordResult:
        for attempt in range(1, MAX_APPEND_ATTEMPTS + 1):
            db = self.session_factory()
            try:
                result = self._record_once(db, user_id, session_id, activity)
                db.commit()
                return result
            except (StaleDataError, IntegrityError) as e:
                db.rollback()
                if attempt == MAX_APPEND_ATTEMPTS:
                    raise
                logger.warning(
                    f"Concurrent update on workflow for user {user_id} session {session_id}, "
                    f"retrying ({attempt}/{MAX_APPEND_ATTEMPTS}): {type(e).__name__}"
                )
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

    def _record_once(self, db, user_id: UUID, session_id: str, activity: Activity) -> ActivityRecordResult:
        repository = WorkflowRepository(db)
        now = self.clock()

        workflow = repository.get_active_workflow(user_id, session_id, for_update=True)
        created = workflow is None
        if created:
            workflow_type = self._classify(activity)
            workflow = repository.create_workflow(user_id, session_id, workflow_type.value, now)
            logger.info(
                f"Started {workflow_type.value} workflow {workflow.id} for user {user_id}",
                extra=log_fields(user_id=user_id, workflow_id=workflow.id, session_id=session_id),
            )

        self._apply_activity(workflow, activity, now)
        db.flush()

        return ActivityRecordResult(
            workflow_id=workflow.id,
            workflow_created=created,
            total_steps=workflow.total_steps,
            analysis_triggered=self.should_analyze(workflow, now),
        )

    def _classify(self, activity: Activity) -> WorkflowType:
        workflow_type = classify(activity.activity_type)
        command = getattr(activity, "command", None)
        if workflow_type is WorkflowType.GENERAL and command:
            workflow_type = classify(command)
        return workflow_type

    def _apply_activity(self, workflow: Workflow, activity: Activity, now: datetime) -> None:
        # Sequences are JSON columns: assign new lists so the ORM sees the change.
        if isinstance(activity, (CommandActivity, ChatMessageActivity)):
            command = Command(
                command=activity.command or activity.activity_type,
                timestamp=now,
                model_used=activity.model,
                duration_ms=activity.duration_ms,
                success=activity.success,
            )
            workflow.command_sequence = [*(workflow.command_sequence or []), command.to_dict()]
        elif isinstance(activity, ModelSwitchActivity):
            switch = ModelSwitch(
                from_model=activity.from_model,
                to_model=activity.to_model,
                reason=activity.reason,
                timestamp=now,
            )
            workflow.model_switch_patterns = [*(workflow.model_switch_patterns or []), switch.to_dict()]

        workflow.total_steps = len(workflow.command_sequence or [])
        workflow.activity_count = (workflow.activity_count or 0) + 1
        workflow.updated_at = now

    def _submit_analysis(self, workflow_id: UUID) -> None:
        try:
            self.dispatch_analysis(workflow_id)
        except Exception as e:
            logger.error(f"Failed to submit analysis for workflow {workflow_id}: {e}")
