"""
Insight Augmentation (Azure OpenAI / Anthropic)

Asks an external LLM for 2-3 supplementary strategic insights about a
workflow. The rule-based insights never depend on this path:

    - Unconfigured provider      -> from_settings() returns None
    - Timeout / HTTP / SDK error -> logged, zero additional insights
    - Non-JSON or empty response -> logged, zero additional insights
    - Individual malformed items -> dropped, the rest are kept

The response parser is isolated in parse_augmented_insights() and validates
every item with pydantic before it becomes a CoachInsight.
"""

import json
import logging
import time
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from core.config import settings
from core.logging import log_fields
from services.insight_synthesizer import (
    CoachInsight,
    Difficulty,
    InsightCategory,
    InsightPriority,
    InsightRecommendation,
    InsightType,
)
from services.workflow_analysis import WorkflowAnalysis, WorkflowSnapshot

logger = logging.getLogger(__name__)


MAX_AUGMENTED_INSIGHTS = 3

SYSTEM_PROMPT = (
    "You are an AI Coach that provides strategic, workflow-level advice to developers. "
    "Focus on high-level improvements and productivity gains."
)

RESPONSE_FORMAT = """Return as JSON array of insights with structure:
{
  "type": "strategic_advice",
  "category": "strategic",
  "title": "insight title",
  "description": "detailed description with specific metrics",
  "recommendations": [
    {
      "action": "specific action",
      "expected_improvement": "measurable improvement",
      "difficulty": "easy|medium|hard"
    }
  ],
  "priority": "low|medium|high"
}"""


def build_analysis_summary(analysis: WorkflowAnalysis, workflow: WorkflowSnapshot) -> str:
    """Natural-language summary of the analysis sent as the user prompt."""
    time_analysis = analysis.time_analysis
    bottlenecks = ", ".join(analysis.bottlenecks) if analysis.bottlenecks else "none"
    parts = [
        "Analyze this workflow and provide strategic, high-level insights:",
        "",
        f"Workflow Type: {workflow.workflow_type}",
        f"Efficiency Score: {analysis.efficiency_score}",
        f"Complexity: {analysis.complexity_assessment.level}",
        f"Bottlenecks: {bottlenecks}",
        (
            f"Time Analysis: Total {time_analysis.total_time_sec}s, "
            f"Active {time_analysis.active_time_sec}s, "
            f"Idle {time_analysis.idle_time_sec}s"
        ),
        "",
        "Provide 2-3 strategic insights that would help the user work more effectively.",
        "Focus on workflow-level improvements, not just technical fixes.",
        "",
        RESPONSE_FORMAT,
    ]
    return "\n".join(parts)


# =============================================================================
# RESPONSE PARSING
# =============================================================================

class AugmentedRecommendationPayload(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    action: str = Field(min_length=1)
    expected_improvement: str = Field(
        default="",
        validation_alias=AliasChoices("expected_improvement", "expectedImprovement"),
    )
    difficulty: Difficulty = Difficulty.MEDIUM


class AugmentedInsightPayload(BaseModel):
    # Blank titles and descriptions fail min_length after stripping
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    type: InsightType = InsightType.STRATEGIC_ADVICE
    category: InsightCategory = InsightCategory.STRATEGIC
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    recommendations: List[AugmentedRecommendationPayload] = Field(default_factory=list)
    priority: InsightPriority = InsightPriority.MEDIUM

    def to_insight(self) -> CoachInsight:
        return CoachInsight(
            insight_type=self.type,
            category=self.category,
            title=self.title,
            description=self.description,
            priority=self.priority,
            recommendations=[
                InsightRecommendation(
                    action=r.action,
                    expected_improvement=r.expected_improvement,
                    difficulty=r.difficulty,
                )
                for r in self.recommendations
            ],
            source="augmented",
        )


def _extract_json_array(raw_text: str) -> Optional[str]:
    start = raw_text.find("[")
    end = raw_text.rfind("]")
    if start == -1 or end <= start:
        return None
    return raw_text[start:end + 1]


def parse_augmented_insights(raw_text: Optional[str]) -> List[CoachInsight]:
    """
    Parse the LLM response into CoachInsights.

    The model may wrap the JSON array in prose or a code fence; only the
    outermost [...] span is considered. Anything unparseable yields [].
    """
    if not raw_text or not raw_text.strip():
        return []

    json_str = _extract_json_array(raw_text)
    if json_str is None:
        logger.warning("Augmentation response contained no JSON array")
        return []

    try:
        items: Any = json.loads(json_str)
    except json.JSONDecodeError as e:
        logger.warning(f"Augmentation response is not valid JSON: {e}")
        return []

    if not isinstance(items, list):
        return []

    insights: List[CoachInsight] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            insights.append(AugmentedInsightPayload.model_validate(item).to_insight())
        except ValidationError as e:
            logger.debug(f"Dropping malformed augmented insight: {e.error_count()} errors")
            continue
        if len(insights) >= MAX_AUGMENTED_INSIGHTS:
            break

    return insights


# =============================================================================
# CLIENT
# =============================================================================

class InsightAugmenter:
    """
    Calls the configured LLM provider for supplementary insights.

    Usage:
        augmenter = InsightAugmenter.from_settings()   # None when unconfigured
        extra = augmenter.augment(analysis, snapshot)  # never raises
    """

    def __init__(
        self,
        client,
        provider: str = "azure",
        model: str = "gpt-4o",
        timeout_s: float = 15.0,
        max_tokens: int = 800,
        temperature: float = 0.7,
    ):
        """
        Args:
            client: openai.AzureOpenAI or anthropic.Anthropic instance
            provider: "azure" or "anthropic"
            model: deployment name (azure) or model id (anthropic)
        """
        self.client = client
        self.provider = provider
        self.model = model
        self.timeout_s = timeout_s
        self.max_tokens = max_tokens
        self.temperature = temperature

    @classmethod
    def from_settings(cls) -> Optional["InsightAugmenter"]:
        provider = (settings.INSIGHT_AUGMENTATION_PROVIDER or "none").lower()
        timeout_s = settings.INSIGHT_AUGMENTATION_TIMEOUT_S

        if provider == "azure" and settings.AZURE_AI_ENDPOINT and settings.AZURE_AI_KEY:
            from openai import AzureOpenAI

            client = AzureOpenAI(
                azure_endpoint=settings.AZURE_AI_ENDPOINT,
                api_key=settings.AZURE_AI_KEY,
                api_version=settings.AZURE_AI_API_VERSION,
                timeout=timeout_s,
                max_retries=0,
            )
            model = settings.AZURE_AI_DEPLOYMENT
        elif provider == "anthropic" and settings.ANTHROPIC_API_KEY:
            from anthropic import Anthropic

            client = Anthropic(
                api_key=settings.ANTHROPIC_API_KEY,
                timeout=timeout_s,
                max_retries=0,
            )
            model = settings.INSIGHT_AUGMENTATION_MODEL
        else:
            logger.info("Insight augmentation disabled (no provider configured)")
            return None

        return cls(
            client=client,
            provider=provider,
            model=model,
            timeout_s=timeout_s,
            max_tokens=settings.INSIGHT_AUGMENTATION_MAX_TOKENS,
            temperature=settings.INSIGHT_AUGMENTATION_TEMPERATURE,
        )

    def augment(self, analysis: WorkflowAnalysis, workflow: WorkflowSnapshot) -> List[CoachInsight]:
        prompt = build_analysis_summary(analysis, workflow)

        start = time.monotonic()
        try:
            raw_text = self._call_llm(prompt)
        except Exception as e:
            logger.warning(
                f"Insight augmentation call failed for workflow {workflow.workflow_id}: "
                f"{type(e).__name__}: {e}"
            )
            return []
        latency_ms = int((time.monotonic() - start) * 1000)

        insights = parse_augmented_insights(raw_text)
        logger.info(
            f"Insight augmentation returned {len(insights)} insights in {latency_ms}ms",
            extra=log_fields(workflow_id=workflow.workflow_id, provider=self.provider, latency_ms=latency_ms),
        )
        return insights

    def _call_llm(self, prompt: str) -> Optional[str]:
        if self.provider == "anthropic":
            response = self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                timeout=self.timeout_s,
            )
            if not response.content:
                return None
            return response.content[0].text

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.timeout_s,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content
