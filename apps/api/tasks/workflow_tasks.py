"""
Workflow analysis tasks.

The workflow tracker submits a workflow id here whenever its trigger
policy fires. The task runs one CoachAnalysisPipeline cycle in the worker.

Design:
    - Submission never blocks the recording call: the publish is not
      retried, and a broker outage is logged and dropped.
    - The pipeline swallows its own failures; the task only reports status.
"""

from typing import Dict
from uuid import UUID
import logging

from celery import Task

from tasks import celery_app

logger = logging.getLogger(__name__)


def build_analysis_pipeline():
    """Wire the pipeline with the configured augmentation provider."""
    from services.coach_pipeline import CoachAnalysisPipeline
    from services.insight_augmentation import InsightAugmenter
    from services.insight_synthesizer import InsightSynthesizer

    synthesizer = InsightSynthesizer(augmenter=InsightAugmenter.from_settings())
    return CoachAnalysisPipeline(synthesizer=synthesizer)


@celery_app.task(name="tasks.analyze_workflow", bind=True)
def analyze_workflow_task(self: Task, workflow_id: str) -> Dict:
    """Analyze one workflow and persist its insights."""
    pipeline = build_analysis_pipeline()
    analysis = pipeline.run(UUID(workflow_id))

    if analysis is None:
        return {"status": "skipped", "workflow_id": workflow_id}

    return {
        "status": "ok",
        "workflow_id": workflow_id,
        "efficiency_score": analysis.efficiency_score,
        "complexity_level": analysis.complexity_assessment.level,
    }


def enqueue_workflow_analysis(workflow_id: UUID) -> None:
    """Fire-and-forget submission used by the workflow tracker."""
    try:
        analyze_workflow_task.apply_async(args=[str(workflow_id)], retry=False)
    except Exception as e:
        logger.error(f"Could not enqueue analysis for workflow {workflow_id}: {e}")
