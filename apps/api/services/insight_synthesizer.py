"""
Insight Synthesizer

Turns a WorkflowAnalysis (plus the user's historical patterns) into ranked,
user-facing coaching insights.

Each rule below is independent and every applicable rule fires:
    efficiency < 60          -> strategic / high     (workflow optimization)
    model recommendations    -> tactical / medium    (first recommendation)
    bottlenecks              -> operational / medium (first two bottlenecks)
    complexity == expert     -> strategic / high     (roadmap, testing)
    historical patterns      -> strategic / low      (most frequent pattern)

When an augmenter is configured, it may add up to three strategic insights.
Augmentation failures never affect the rule-based insights.

Expiry is not decided here; the lifecycle manager stamps it on persist.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID
import logging

from services.workflow_analysis import ComplexityLevel, WorkflowAnalysis, WorkflowSnapshot

logger = logging.getLogger(__name__)


# =============================================================================
# INSIGHT TYPES AND PRIORITIES
# =============================================================================

class InsightType(str, Enum):
    WORKFLOW_OPTIMIZATION = "workflow_optimization"
    MODEL_RECOMMENDATION = "model_recommendation"
    EFFICIENCY_TIP = "efficiency_tip"
    STRATEGIC_ADVICE = "strategic_advice"
    PATTERN_RECOGNITION = "pattern_recognition"


class InsightCategory(str, Enum):
    STRATEGIC = "strategic"
    TACTICAL = "tactical"
    OPERATIONAL = "operational"


class InsightPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


LOW_EFFICIENCY_THRESHOLD = 60
MAX_BOTTLENECK_RECOMMENDATIONS = 2


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class InsightRecommendation:
    action: str
    expected_improvement: str
    difficulty: Difficulty

    def to_dict(self) -> Dict[str, str]:
        return {
            "action": self.action,
            "expected_improvement": self.expected_improvement,
            "difficulty": self.difficulty.value,
        }


@dataclass
class CoachInsight:
    """A synthesized insight, not yet persisted."""
    insight_type: InsightType
    category: InsightCategory
    title: str
    description: str
    priority: InsightPriority
    recommendations: List[InsightRecommendation] = field(default_factory=list)

    user_id: Optional[UUID] = None
    workflow_id: Optional[UUID] = None

    source: str = "rules"  # "rules" or "augmented"
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class HistoricalPattern:
    pattern_name: str
    frequency: int


# =============================================================================
# SYNTHESIZER
# =============================================================================

class InsightSynthesizer:
    """
    Rule-based insight generation with optional augmentation.

    Usage:
        synthesizer = InsightSynthesizer(augmenter=InsightAugmenter.from_settings())
        insights = synthesizer.synthesize(user_id, analysis, snapshot, patterns)
    """

    def __init__(self, augmenter=None):
        """
        Args:
            augmenter: object exposing augment(analysis, workflow) -> List[CoachInsight]
                       (None disables augmentation)
        """
        self.augmenter = augmenter

    def synthesize(
        self,
        user_id: UUID,
        analysis: WorkflowAnalysis,
        workflow: WorkflowSnapshot,
        historical_patterns: Sequence[HistoricalPattern] = (),
    ) -> List[CoachInsight]:
        insights: List[CoachInsight] = []

        for rule in (
            self._efficiency_insight,
            self._model_insight,
            self._bottleneck_insight,
            self._complexity_insight,
        ):
            insight = rule(analysis, workflow)
            if insight is not None:
                insights.append(insight)

        pattern_insight = self._pattern_insight(historical_patterns)
        if pattern_insight is not None:
            insights.append(pattern_insight)

        insights.extend(self._augmented_insights(analysis, workflow))

        context = {
            "efficiency_score": analysis.efficiency_score,
            "complexity_level": analysis.complexity_assessment.level,
        }
        for insight in insights:
            insight.user_id = user_id
            insight.workflow_id = workflow.workflow_id
            insight.context = {**context, **insight.context}

        return insights

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def _efficiency_insight(self, analysis: WorkflowAnalysis, workflow: WorkflowSnapshot) -> Optional[CoachInsight]:
        if analysis.efficiency_score >= LOW_EFFICIENCY_THRESHOLD:
            return None

        minutes_saved = int(analysis.time_analysis.idle_time_sec / 60 + 0.5)
        return CoachInsight(
            insight_type=InsightType.WORKFLOW_OPTIMIZATION,
            category=InsightCategory.STRATEGIC,
            title="Workflow Optimization Opportunity",
            description=(
                f"Your workflow efficiency is at {analysis.efficiency_score}%. "
                f"I've identified specific improvements that could save you {minutes_saved} minutes."
            ),
            recommendations=[
                InsightRecommendation(
                    action="Batch similar operations together",
                    expected_improvement="30% time reduction",
                    difficulty=Difficulty.EASY,
                ),
                InsightRecommendation(
                    action="Use keyboard shortcuts for frequent actions",
                    expected_improvement="15% speed increase",
                    difficulty=Difficulty.EASY,
                ),
            ],
            priority=InsightPriority.HIGH,
            context={"minutes_saved": minutes_saved},
        )

    def _model_insight(self, analysis: WorkflowAnalysis, workflow: WorkflowSnapshot) -> Optional[CoachInsight]:
        if not analysis.model_recommendations:
            return None

        best = analysis.model_recommendations[0]
        return CoachInsight(
            insight_type=InsightType.MODEL_RECOMMENDATION,
            category=InsightCategory.TACTICAL,
            title="Model Optimization Detected",
            description=(
                f"Switching to {best.recommended_model} for {workflow.workflow_type} tasks could "
                f"improve your results by {best.expected_improvement_pct}%. {best.reason}"
            ),
            recommendations=[
                InsightRecommendation(
                    action=f"Switch to {best.recommended_model}",
                    expected_improvement=f"{best.expected_improvement_pct}% better results",
                    difficulty=Difficulty.EASY,
                ),
            ],
            priority=InsightPriority.MEDIUM,
            context={"current_model": best.current_model},
        )

    def _bottleneck_insight(self, analysis: WorkflowAnalysis, workflow: WorkflowSnapshot) -> Optional[CoachInsight]:
        if not analysis.bottlenecks:
            return None

        return CoachInsight(
            insight_type=InsightType.EFFICIENCY_TIP,
            category=InsightCategory.OPERATIONAL,
            title="Performance Bottlenecks Detected",
            description=(
                f"I've identified {len(analysis.bottlenecks)} bottlenecks in your workflow: "
                f"{analysis.bottlenecks[0]}"
            ),
            recommendations=[
                InsightRecommendation(
                    action=f"Address: {bottleneck}",
                    expected_improvement="20% faster completion",
                    difficulty=Difficulty.MEDIUM,
                )
                for bottleneck in analysis.bottlenecks[:MAX_BOTTLENECK_RECOMMENDATIONS]
            ],
            priority=InsightPriority.MEDIUM,
        )

    def _complexity_insight(self, analysis: WorkflowAnalysis, workflow: WorkflowSnapshot) -> Optional[CoachInsight]:
        if analysis.complexity_assessment.level != ComplexityLevel.EXPERT.value:
            return None

        return CoachInsight(
            insight_type=InsightType.STRATEGIC_ADVICE,
            category=InsightCategory.STRATEGIC,
            title="Complex Project Detected",
            description=(
                "This project has grown in complexity. Consider breaking it into smaller, "
                "manageable modules or creating a structured approach."
            ),
            recommendations=[
                InsightRecommendation(
                    action="Create a project roadmap",
                    expected_improvement="Better organization and clarity",
                    difficulty=Difficulty.MEDIUM,
                ),
                InsightRecommendation(
                    action="Set up automated testing",
                    expected_improvement="Catch issues earlier",
                    difficulty=Difficulty.HARD,
                ),
            ],
            priority=InsightPriority.HIGH,
        )

    def _pattern_insight(self, historical_patterns: Sequence[HistoricalPattern]) -> Optional[CoachInsight]:
        if not historical_patterns:
            return None

        # max() keeps the first of equally frequent patterns
        pattern = max(historical_patterns, key=lambda p: p.frequency)
        return CoachInsight(
            insight_type=InsightType.PATTERN_RECOGNITION,
            category=InsightCategory.STRATEGIC,
            title="Pattern Detected in Your Workflow",
            description=f"You frequently {pattern.pattern_name}. I can help automate this for you.",
            recommendations=[
                InsightRecommendation(
                    action="Create a custom workflow template",
                    expected_improvement="50% faster for repetitive tasks",
                    difficulty=Difficulty.EASY,
                ),
            ],
            priority=InsightPriority.LOW,
            context={"pattern_name": pattern.pattern_name, "frequency": pattern.frequency},
        )

    def _augmented_insights(self, analysis: WorkflowAnalysis, workflow: WorkflowSnapshot) -> List[CoachInsight]:
        if self.augmenter is None:
            return []
        try:
            return list(self.augmenter.augment(analysis, workflow))
        except Exception as e:
            # The augmenter already degrades on its own; this guards custom ones.
            logger.warning(f"Insight augmentation failed for workflow {workflow.workflow_id}: {e}")
            return []
