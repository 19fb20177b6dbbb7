"""
Coach Analysis Pipeline

Runs one analysis cycle for a workflow:

    1. Snapshot the workflow (short transaction)
    2. Analyze the snapshot and annotate the workflow row; commit
    3. Load the user's historical patterns
    4. Synthesize insights (may call the augmentation service; no
       transaction or row lock is held while it is in flight)
    5. Persist the insights in a fresh transaction

A failed cycle is logged and produces no insights; nothing propagates to
the caller. The pipeline is what the Celery analysis task executes.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID
import logging

from core.database import SessionLocal
from core.logging import log_fields
from services.insight_lifecycle import InsightLifecycleManager
from services.insight_synthesizer import InsightSynthesizer
from services.workflow_analysis import WorkflowAnalysis, WorkflowSnapshot, analyze_workflow
from services.workflow_repository import WorkflowRepository

logger = logging.getLogger(__name__)


PATTERN_LOOKUP_LIMIT = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CoachAnalysisPipeline:

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        synthesizer: Optional[InsightSynthesizer] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.session_factory = session_factory
        self.synthesizer = synthesizer or InsightSynthesizer()
        self.clock = clock

    def run(self, workflow_id: UUID) -> Optional[WorkflowAnalysis]:
        try:
            return self._run(workflow_id)
        except Exception as e:
            logger.error(f"Error analyzing workflow {workflow_id}: {e}", exc_info=True)
            return None

    def _run(self, workflow_id: UUID) -> Optional[WorkflowAnalysis]:
        db = self.session_factory()
        try:
            repository = WorkflowRepository(db)
            workflow = repository.get_workflow(workflow_id)
            if workflow is None:
                logger.warning(f"Workflow {workflow_id} not found, skipping analysis")
                return None

            snapshot = WorkflowSnapshot.from_record(workflow)
            analysis = analyze_workflow(snapshot)
            repository.annotate_analysis(workflow_id, analysis, self.clock())
            patterns = repository.get_user_patterns(snapshot.user_id, limit=PATTERN_LOOKUP_LIMIT)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        insights = self.synthesizer.synthesize(snapshot.user_id, analysis, snapshot, patterns)

        db = self.session_factory()
        try:
            InsightLifecycleManager(db, clock=self.clock).store(snapshot.user_id, workflow_id, insights)
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

        logger.info(
            f"Analyzed workflow {workflow_id}: efficiency={analysis.efficiency_score}, "
            f"complexity={analysis.complexity_assessment.level}, insights={len(insights)}",
            extra=log_fields(
                workflow_id=workflow_id,
                user_id=snapshot.user_id,
                efficiency_score=analysis.efficiency_score,
                insight_count=len(insights),
            ),
        )
        return analysis
