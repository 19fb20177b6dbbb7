"""
Workflow Stats Aggregator

Rolls a user's most recent workflows up into trend statistics.
"""

from collections import Counter
from dataclasses import dataclass, asdict
from typing import Dict, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from core.config import settings
from models import Workflow
from services.workflow_repository import WorkflowRepository


TREND_WINDOW = 5
TREND_THRESHOLD = 5


@dataclass
class WorkflowStats:
    total_workflows: int
    completed_workflows: int
    average_efficiency: int
    most_common_type: str
    total_time_spent: int  # seconds
    improvement_trend: str  # improving|stable|declining

    def to_dict(self) -> Dict:
        return asdict(self)


def most_common_workflow_type(workflow_types: Sequence[Optional[str]]) -> str:
    """Mode of the workflow types; ties go to the one seen first."""
    counts = Counter(t for t in workflow_types if t)
    if not counts:
        return "general"
    return counts.most_common(1)[0][0]


def calculate_improvement_trend(scores: Sequence[Optional[int]]) -> str:
    """
    Compare the mean score of the 5 most recent workflows with the 5 before.

    `scores` is ordered most recent first; missing scores count as 0.
    """
    if len(scores) < TREND_WINDOW:
        return "stable"

    recent = [s or 0 for s in scores[:TREND_WINDOW]]
    older = [s or 0 for s in scores[TREND_WINDOW:TREND_WINDOW * 2]]
    if not older:
        return "stable"

    diff = sum(recent) / len(recent) - sum(older) / len(older)
    if diff > TREND_THRESHOLD:
        return "improving"
    if diff < -TREND_THRESHOLD:
        return "declining"
    return "stable"


def summarize_workflows(workflows: Sequence[Workflow]) -> WorkflowStats:
    """Stats over workflows ordered most recent first."""
    total = len(workflows)
    scores = [w.efficiency_score for w in workflows]

    average = 0
    if total:
        average = int(sum(s or 0 for s in scores) / total + 0.5)

    return WorkflowStats(
        total_workflows=total,
        completed_workflows=sum(1 for w in workflows if w.status == "completed"),
        average_efficiency=average,
        most_common_type=most_common_workflow_type([w.workflow_type for w in workflows]),
        total_time_spent=sum(w.total_duration_s or 0 for w in workflows),
        improvement_trend=calculate_improvement_trend(scores),
    )


def get_user_workflow_stats(db: Session, user_id: UUID, window: Optional[int] = None) -> WorkflowStats:
    workflows = WorkflowRepository(db).list_recent_workflows(user_id, window or settings.COACH_STATS_WINDOW)
    return summarize_workflows(workflows)
