"""
Coach Analysis Pipeline Tests

End to end over the SQLite test database: snapshot, analyze, annotate,
synthesize, store.
"""

from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest

from models import CoachInsightRecord, Workflow, WorkflowPattern
from services.coach_pipeline import CoachAnalysisPipeline
from services.insight_synthesizer import InsightSynthesizer


@pytest.fixture
def struggling_workflow(make_workflow, make_commands):
    commands = make_commands(
        ("debug", 0, 1000, False),
        ("debug", 60, 1000, False),
        ("debug", 120, 1000, False),
        ("debug", 180, 1000, True),
    )
    return make_workflow(workflow_type="coding", commands=commands)


@pytest.fixture
def pipeline(base_time):
    return CoachAnalysisPipeline(clock=lambda: base_time + timedelta(minutes=10))


class TestPipeline:

    def test_annotates_workflow_and_stores_insights(self, pipeline, struggling_workflow, db_session, user_id, base_time):
        db_session.add(WorkflowPattern(user_id=user_id, pattern_name="restart the dev server", frequency=4))
        db_session.commit()

        analysis = pipeline.run(struggling_workflow.id)

        # idle 176/180 capped at 30, two bottlenecks, 1/4 success: (100 - 30 - 10) * 0.25
        assert analysis.efficiency_score == 15
        assert analysis.complexity_assessment.level == "simple"

        db_session.expire_all()
        workflow = db_session.get(Workflow, struggling_workflow.id)
        assert workflow.efficiency_score == 15
        assert workflow.complexity_level == "simple"
        assert workflow.total_duration_s == 180
        assert workflow.active_time_s == 4
        assert workflow.coach_analysis["efficiency_score"] == 15
        assert workflow.last_analyzed_at is not None
        assert len(workflow.command_sequence) == 4

        records = db_session.query(CoachInsightRecord).filter(CoachInsightRecord.workflow_id == workflow.id).all()
        assert sorted(r.insight_type for r in records) == [
            "efficiency_tip",
            "pattern_recognition",
            "workflow_optimization",
        ]
        for record in records:
            assert record.user_id == user_id
            assert record.expires_at.replace(tzinfo=None) == (base_time + timedelta(minutes=10, days=7)).replace(tzinfo=None)

    def test_augmentation_failure_does_not_block_rule_insights(self, struggling_workflow, db_session):
        augmenter = MagicMock()
        augmenter.augment.side_effect = ConnectionError("provider unreachable")
        pipeline = CoachAnalysisPipeline(synthesizer=InsightSynthesizer(augmenter=augmenter))

        assert pipeline.run(struggling_workflow.id) is not None
        assert db_session.query(CoachInsightRecord).count() == 2

    def test_unknown_workflow_is_skipped(self, pipeline, db_session):
        assert pipeline.run(uuid4()) is None
        assert db_session.query(CoachInsightRecord).count() == 0

    def test_failures_are_swallowed(self):
        pipeline = CoachAnalysisPipeline(session_factory=MagicMock(side_effect=RuntimeError("database down")))

        assert pipeline.run(uuid4()) is None

    def test_healthy_workflow_produces_no_insights(self, pipeline, make_workflow, make_commands, db_session):
        commands = make_commands(("edit", 0, 5000), ("test", 10, 5000))
        workflow = make_workflow(commands=commands)

        analysis = pipeline.run(workflow.id)

        assert analysis.efficiency_score == 100
        assert db_session.query(CoachInsightRecord).count() == 0
