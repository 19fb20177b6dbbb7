"""
Coach API Router

Insight consumer surface for the workflow coach.

Endpoints:
- GET  /v1/coach/insights                   - Pending insights (ranked)
- POST /v1/coach/insights/{id}/shown        - Mark an insight as shown
- POST /v1/coach/insights/{id}/feedback     - Record feedback on an insight
- GET  /v1/coach/stats                      - Workflow statistics
- POST /v1/coach/workflows/{id}/complete    - Complete a workflow

Authentication happens upstream; the gateway forwards the caller's id in
the X-User-Id header.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from core.database import get_db
from core.exceptions import NotFoundError, UnauthorizedError
from schemas import (
    CoachInsightResponse,
    InsightFeedbackRequest,
    PendingInsightsResponse,
    WorkflowResponse,
    WorkflowStatsEnvelope,
)
from services.insight_lifecycle import InsightLifecycleManager, InsightNotFoundError
from services.workflow_repository import WorkflowNotFoundError
from services.workflow_stats import get_user_workflow_stats
from services.workflow_tracker import WorkflowStateTracker

router = APIRouter(prefix="/v1/coach", tags=["Coach"])


def get_current_user_id(x_user_id: Optional[str] = Header(default=None)) -> UUID:
    if not x_user_id:
        raise UnauthorizedError()
    try:
        return UUID(x_user_id)
    except ValueError:
        raise UnauthorizedError("Invalid user id")


def get_workflow_tracker() -> WorkflowStateTracker:
    return WorkflowStateTracker()


@router.get("/insights", response_model=PendingInsightsResponse)
def list_pending_insights(
    limit: int = Query(5, ge=1, le=50),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    insights = InsightLifecycleManager(db).list_pending(user_id, limit=limit)
    return {
        "success": True,
        "insights": [CoachInsightResponse.model_validate(i) for i in insights],
    }


@router.post("/insights/{insight_id}/shown")
def mark_insight_shown(
    insight_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        InsightLifecycleManager(db).mark_shown(insight_id, user_id=user_id)
    except InsightNotFoundError:
        raise NotFoundError("Insight", str(insight_id))
    return {"success": True}


@router.post("/insights/{insight_id}/feedback")
def submit_insight_feedback(
    insight_id: UUID,
    body: InsightFeedbackRequest,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    try:
        InsightLifecycleManager(db).record_feedback(
            insight_id,
            body.feedback,
            details=body.details,
            user_id=user_id,
        )
    except InsightNotFoundError:
        raise NotFoundError("Insight", str(insight_id))
    return {"success": True}


@router.get("/stats", response_model=WorkflowStatsEnvelope)
def get_workflow_stats(
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    stats = get_user_workflow_stats(db, user_id)
    return {"success": True, "stats": stats.to_dict()}


@router.post("/workflows/{workflow_id}/complete", response_model=WorkflowResponse)
def complete_workflow(
    workflow_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    tracker: WorkflowStateTracker = Depends(get_workflow_tracker),
):
    try:
        return tracker.complete_workflow(workflow_id, user_id=user_id)
    except WorkflowNotFoundError:
        raise NotFoundError("Workflow", str(workflow_id))
