"""
Insight Lifecycle Manager

Persists synthesized insights with a 7-day expiry and owns every change to
their lifecycle fields (shown, feedback, acted upon).

Retrieval rules:
    - pending = not yet shown and not expired
    - ordered by priority (urgent > high > medium > low), newest first
    - expired insights stay in the table; they are just never returned
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional, Sequence
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from core.config import settings
from core.logging import log_fields
from models import CoachInsightRecord
from services.insight_synthesizer import CoachInsight, InsightPriority

logger = logging.getLogger(__name__)


PRIORITY_RANK = {
    InsightPriority.URGENT: 4,
    InsightPriority.HIGH: 3,
    InsightPriority.MEDIUM: 2,
    InsightPriority.LOW: 1,
}

EXPECTED_IMPACT = {
    InsightPriority.URGENT: "high",
    InsightPriority.HIGH: "high",
    InsightPriority.MEDIUM: "medium",
    InsightPriority.LOW: "low",
}


class InsightFeedback(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class InsightNotFoundError(LookupError):
    def __init__(self, insight_id):
        super().__init__(f"Insight not found: {insight_id}")
        self.insight_id = insight_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InsightLifecycleManager:
    """
    Lifecycle operations over persisted insights.

    The manager flushes but does not commit; the caller owns the transaction.
    """

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = _utcnow,
        ttl_days: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock
        self.ttl = timedelta(days=ttl_days or settings.COACH_INSIGHT_TTL_DAYS)

    def store(
        self,
        user_id: UUID,
        workflow_id: Optional[UUID],
        insights: Sequence[CoachInsight],
    ) -> List[CoachInsightRecord]:
        now = self.clock()
        expires_at = now + self.ttl

        records = []
        for insight in insights:
            priority = InsightPriority(insight.priority)
            record = CoachInsightRecord(
                user_id=user_id,
                workflow_id=workflow_id,
                insight_type=insight.insight_type.value,
                insight_category=insight.category.value,
                title=insight.title,
                description=insight.description,
                recommendations=[r.to_dict() for r in insight.recommendations],
                trigger_context=insight.context or None,
                priority=priority.value,
                priority_rank=PRIORITY_RANK[priority],
                expected_impact=EXPECTED_IMPACT[priority],
                source=insight.source,
                was_shown=False,
                was_acted_upon=False,
                generated_at=now,
                expires_at=expires_at,
                created_at=now,
                updated_at=now,
            )
            self.db.add(record)
            records.append(record)

        self.db.flush()
        if records:
            logger.info(
                f"Stored {len(records)} insights for workflow {workflow_id}",
                extra=log_fields(
                    user_id=user_id,
                    workflow_id=workflow_id,
                    insight_ids=[str(r.id) for r in records],
                ),
            )
        return records

    def list_pending(self, user_id: UUID, limit: Optional[int] = None) -> List[CoachInsightRecord]:
        limit = limit or settings.COACH_PENDING_INSIGHTS_LIMIT
        return (
            self.db.query(CoachInsightRecord)
            .filter(
                CoachInsightRecord.user_id == user_id,
                CoachInsightRecord.was_shown.is_(False),
                CoachInsightRecord.expires_at >= self.clock(),
            )
            .order_by(
                CoachInsightRecord.priority_rank.desc(),
                CoachInsightRecord.generated_at.desc(),
            )
            .limit(limit)
            .all()
        )

    def mark_shown(self, insight_id: UUID, user_id: Optional[UUID] = None) -> CoachInsightRecord:
        record = self._get(insight_id, user_id)
        if not record.was_shown:
            now = self.clock()
            record.was_shown = True
            record.shown_at = now
            record.updated_at = now
            self.db.flush()
        return record

    def record_feedback(
        self,
        insight_id: UUID,
        feedback: InsightFeedback,
        details: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> CoachInsightRecord:
        feedback = InsightFeedback(feedback)
        record = self._get(insight_id, user_id)
        now = self.clock()

        record.user_feedback = feedback.value
        record.feedback_details = details
        record.was_acted_upon = feedback is InsightFeedback.POSITIVE
        if record.was_acted_upon:
            record.acted_at = now
        record.updated_at = now
        self.db.flush()
        return record

    def _get(self, insight_id: UUID, user_id: Optional[UUID]) -> CoachInsightRecord:
        record = self.db.query(CoachInsightRecord).filter(CoachInsightRecord.id == insight_id).first()
        if record is None or (user_id is not None and record.user_id != user_id):
            raise InsightNotFoundError(insight_id)
        return record
