"""
Insight Lifecycle Manager Tests

Persistence, expiry, ranking and feedback on stored insights.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from models import CoachInsightRecord
from services.insight_lifecycle import (
    InsightFeedback,
    InsightLifecycleManager,
    InsightNotFoundError,
)
from services.insight_synthesizer import (
    CoachInsight,
    Difficulty,
    InsightCategory,
    InsightPriority,
    InsightRecommendation,
    InsightType,
)


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _insight(title, priority=InsightPriority.MEDIUM):
    return CoachInsight(
        insight_type=InsightType.EFFICIENCY_TIP,
        category=InsightCategory.OPERATIONAL,
        title=title,
        description=f"{title} description",
        priority=priority,
        recommendations=[
            InsightRecommendation("Do the thing", "20% faster completion", Difficulty.MEDIUM),
        ],
        context={"efficiency_score": 50},
    )


@pytest.fixture
def clock(base_time):
    return FakeClock(base_time)


@pytest.fixture
def manager(db_session, clock):
    return InsightLifecycleManager(db_session, clock=clock)


class TestStore:

    def test_store_stamps_expiry_rank_and_impact(self, manager, db_session, user_id, base_time):
        records = manager.store(user_id, None, [
            _insight("urgent", InsightPriority.URGENT),
            _insight("high", InsightPriority.HIGH),
            _insight("medium", InsightPriority.MEDIUM),
            _insight("low", InsightPriority.LOW),
        ])
        db_session.commit()

        assert [r.priority_rank for r in records] == [4, 3, 2, 1]
        assert [r.expected_impact for r in records] == ["high", "high", "medium", "low"]
        for record in records:
            assert record.expires_at == base_time + timedelta(days=7)
            assert record.was_shown is False
            assert record.source == "rules"
            assert record.recommendations == [
                {"action": "Do the thing", "expected_improvement": "20% faster completion", "difficulty": "medium"},
            ]
            assert record.trigger_context == {"efficiency_score": 50}

    def test_store_nothing(self, manager, user_id):
        assert manager.store(user_id, None, []) == []


class TestListPending:

    def test_ordered_by_priority_then_newest(self, manager, db_session, clock, user_id):
        manager.store(user_id, None, [_insight("old medium"), _insight("old low", InsightPriority.LOW)])
        clock.now = clock.now + timedelta(minutes=5)
        manager.store(user_id, None, [_insight("new medium"), _insight("new high", InsightPriority.HIGH)])
        db_session.commit()

        titles = [r.title for r in manager.list_pending(user_id)]

        assert titles == ["new high", "new medium", "old medium", "old low"]

    def test_default_limit_is_five(self, manager, db_session, user_id):
        manager.store(user_id, None, [_insight(f"i{n}") for n in range(8)])
        db_session.commit()

        assert len(manager.list_pending(user_id)) == 5
        assert len(manager.list_pending(user_id, limit=2)) == 2

    def test_excludes_shown_expired_and_other_users(self, manager, db_session, clock, user_id, base_time):
        shown, expired, pending = manager.store(user_id, None, [
            _insight("shown"), _insight("expired"), _insight("pending"),
        ])
        manager.store(uuid4(), None, [_insight("someone else")])
        expired.expires_at = base_time + timedelta(days=1)
        db_session.commit()
        manager.mark_shown(shown.id)
        db_session.commit()

        clock.now = base_time + timedelta(days=2)
        pending_records = manager.list_pending(user_id)

        assert [r.title for r in pending_records] == ["pending"]
        for record in pending_records:
            assert record.was_shown is False
            assert record.expires_at.replace(tzinfo=None) >= clock.now.replace(tzinfo=None)

    def test_nothing_after_ttl(self, manager, db_session, clock, user_id, base_time):
        manager.store(user_id, None, [_insight("a")])
        db_session.commit()

        clock.now = base_time + timedelta(days=7, seconds=1)

        assert manager.list_pending(user_id) == []
        # Expired rows are kept, just not returned
        assert db_session.query(CoachInsightRecord).count() == 1


class TestMarkShown:

    def test_sets_flag_and_timestamp(self, manager, db_session, clock, user_id):
        (record,) = manager.store(user_id, None, [_insight("a")])
        clock.now = clock.now + timedelta(hours=1)

        manager.mark_shown(record.id, user_id=user_id)
        db_session.commit()

        assert record.was_shown is True
        assert record.shown_at == clock.now

    def test_unknown_insight_raises(self, manager):
        with pytest.raises(InsightNotFoundError):
            manager.mark_shown(uuid4())

    def test_other_users_insight_raises(self, manager, user_id):
        (record,) = manager.store(user_id, None, [_insight("a")])

        with pytest.raises(InsightNotFoundError):
            manager.mark_shown(record.id, user_id=uuid4())


class TestRecordFeedback:

    def test_positive_feedback_marks_acted_upon(self, manager, clock, user_id):
        (record,) = manager.store(user_id, None, [_insight("a")])

        manager.record_feedback(record.id, InsightFeedback.POSITIVE, details="saved me time")

        assert record.user_feedback == "positive"
        assert record.feedback_details == "saved me time"
        assert record.was_acted_upon is True
        assert record.acted_at == clock.now

    @pytest.mark.parametrize("feedback", ["negative", "neutral"])
    def test_other_feedback_is_not_acted_upon(self, manager, user_id, feedback):
        (record,) = manager.store(user_id, None, [_insight("a")])

        manager.record_feedback(record.id, feedback)

        assert record.user_feedback == feedback
        assert record.was_acted_upon is False
        assert record.acted_at is None

    def test_invalid_feedback_rejected(self, manager, user_id):
        (record,) = manager.store(user_id, None, [_insight("a")])

        with pytest.raises(ValueError):
            manager.record_feedback(record.id, "amazing")

    def test_unknown_insight_raises(self, manager):
        with pytest.raises(InsightNotFoundError):
            manager.record_feedback(uuid4(), InsightFeedback.NEUTRAL)
