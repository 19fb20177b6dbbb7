"""
Workflow Repository

Query helpers over the workflow tables. The repository never commits;
callers own the transaction.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from models import Workflow, WorkflowPattern
from services.insight_synthesizer import HistoricalPattern
from services.workflow_analysis import WorkflowAnalysis


class WorkflowNotFoundError(LookupError):
    def __init__(self, workflow_id):
        super().__init__(f"Workflow not found: {workflow_id}")
        self.workflow_id = workflow_id


class WorkflowRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_active_workflow(
        self,
        user_id: UUID,
        session_id: str,
        for_update: bool = False,
    ) -> Optional[Workflow]:
        query = self.db.query(Workflow).filter(
            Workflow.user_id == user_id,
            Workflow.session_id == session_id,
            Workflow.status == "active",
        )
        if for_update:
            # Row lock on PostgreSQL; ignored by SQLite.
            query = query.with_for_update()
        return query.first()

    def create_workflow(
        self,
        user_id: UUID,
        session_id: str,
        workflow_type: str,
        now: datetime,
    ) -> Workflow:
        workflow = Workflow(
            user_id=user_id,
            session_id=session_id,
            workflow_type=workflow_type,
            workflow_name=f"{workflow_type} workflow",
            status="active",
            total_steps=0,
            activity_count=0,
            command_sequence=[],
            model_switch_patterns=[],
            started_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(workflow)
        self.db.flush()
        return workflow

    def get_workflow(self, workflow_id: UUID) -> Optional[Workflow]:
        return self.db.query(Workflow).filter(Workflow.id == workflow_id).first()

    def annotate_analysis(
        self,
        workflow_id: UUID,
        analysis: WorkflowAnalysis,
        analyzed_at: datetime,
    ) -> bool:
        """
        Write analysis results onto the workflow.

        Column-scoped UPDATE: the command and model-switch sequences are not
        part of the statement, so a concurrent append is never overwritten.
        """
        result = self.db.execute(
            update(Workflow)
            .where(Workflow.id == workflow_id)
            .values(
                coach_analysis=analysis.to_dict(),
                efficiency_score=analysis.efficiency_score,
                complexity_level=analysis.complexity_assessment.level,
                total_duration_s=analysis.time_analysis.total_time_sec,
                active_time_s=analysis.time_analysis.active_time_sec,
                last_analyzed_at=analyzed_at,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def complete_workflow(
        self,
        workflow_id: UUID,
        now: datetime,
        user_id: Optional[UUID] = None,
    ) -> Workflow:
        workflow = self.get_workflow(workflow_id)
        if workflow is None or (user_id is not None and workflow.user_id != user_id):
            raise WorkflowNotFoundError(workflow_id)

        if workflow.status != "completed":
            workflow.status = "completed"
            workflow.completed_at = now
            workflow.updated_at = now
            self.db.flush()
        return workflow

    def list_recent_workflows(self, user_id: UUID, limit: int) -> List[Workflow]:
        return (
            self.db.query(Workflow)
            .filter(Workflow.user_id == user_id)
            .order_by(Workflow.created_at.desc())
            .limit(limit)
            .all()
        )

    def get_user_patterns(self, user_id: UUID, limit: int = 5) -> List[HistoricalPattern]:
        patterns = (
            self.db.query(WorkflowPattern)
            .filter(WorkflowPattern.user_id == user_id)
            .order_by(WorkflowPattern.frequency.desc())
            .limit(limit)
            .all()
        )
        return [
            HistoricalPattern(pattern_name=p.pattern_name, frequency=p.frequency or 0)
            for p in patterns
        ]
