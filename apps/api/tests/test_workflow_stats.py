"""
Unit tests for the Workflow Stats Aggregator
"""

from datetime import timedelta
from types import SimpleNamespace
from uuid import uuid4

from services.workflow_stats import (
    calculate_improvement_trend,
    get_user_workflow_stats,
    most_common_workflow_type,
    summarize_workflows,
)


def _wf(score=None, workflow_type="coding", status="active", duration=None):
    return SimpleNamespace(
        efficiency_score=score,
        workflow_type=workflow_type,
        status=status,
        total_duration_s=duration,
    )


class TestImprovementTrend:

    def test_fewer_than_five_is_stable(self):
        assert calculate_improvement_trend([90, 10, 10, 10]) == "stable"

    def test_no_older_workflows_is_stable(self):
        assert calculate_improvement_trend([90, 90, 90, 90, 90]) == "stable"

    def test_improving(self):
        assert calculate_improvement_trend([80] * 5 + [70] * 5) == "improving"

    def test_declining(self):
        assert calculate_improvement_trend([60] * 5 + [70] * 5) == "declining"

    def test_within_five_points_is_stable(self):
        assert calculate_improvement_trend([75] * 5 + [70] * 5) == "stable"

    def test_partial_older_window(self):
        # recent mean 80, older mean 60
        assert calculate_improvement_trend([80] * 5 + [60, 60]) == "improving"

    def test_missing_scores_count_as_zero(self):
        assert calculate_improvement_trend([None] * 5 + [50] * 5) == "declining"


class TestMostCommonType:

    def test_mode(self):
        assert most_common_workflow_type(["coding", "analysis", "coding"]) == "coding"

    def test_tie_goes_to_most_recent(self):
        # Most recent first
        assert most_common_workflow_type(["writing", "coding", "coding", "writing"]) == "writing"

    def test_none_is_general(self):
        assert most_common_workflow_type([]) == "general"


class TestSummarize:

    def test_zero_workflows(self):
        stats = summarize_workflows([])

        assert stats.to_dict() == {
            "total_workflows": 0,
            "completed_workflows": 0,
            "average_efficiency": 0,
            "most_common_type": "general",
            "total_time_spent": 0,
            "improvement_trend": "stable",
        }

    def test_aggregates(self):
        workflows = [
            _wf(80, "coding", "completed", 120),
            _wf(None, "analysis", "active", None),
            _wf(65, "coding", "completed", 300),
        ]

        stats = summarize_workflows(workflows)

        assert stats.total_workflows == 3
        assert stats.completed_workflows == 2
        # (80 + 0 + 65) / 3 = 48.33
        assert stats.average_efficiency == 48
        assert stats.most_common_type == "coding"
        assert stats.total_time_spent == 420


class TestUserStats:

    def test_uses_most_recent_window(self, db_session, make_workflow, user_id, base_time):
        # 12 workflows, newest have the highest scores
        for i in range(12):
            make_workflow(
                session_id=f"sess-{i}",
                status="completed",
                efficiency_score=50 + i * 3,
                created_at=base_time + timedelta(hours=i),
                total_duration_s=60,
            )
        make_workflow(session_id="other", owner_id=uuid4(), efficiency_score=0)

        stats = get_user_workflow_stats(db_session, user_id)

        assert stats.total_workflows == 12
        assert stats.completed_workflows == 12
        assert stats.total_time_spent == 720
        assert stats.improvement_trend == "improving"

        windowed = get_user_workflow_stats(db_session, user_id, window=3)
        assert windowed.total_workflows == 3
        # scores 83, 80, 77
        assert windowed.average_efficiency == 80
