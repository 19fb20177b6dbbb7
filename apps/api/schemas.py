from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from uuid import UUID
from typing import Any, Dict, List, Literal, Optional, Union


# =============================================================================
# ACTIVITY PAYLOADS
# =============================================================================
# One closed model per activity type. Ingress hands us a raw
# (activity_type, activity_data) pair; parse_activity() turns it into exactly
# one of these or raises pydantic.ValidationError.

class _CommandLikeActivity(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    command: Optional[str] = None
    model: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("model", "model_used", "modelUsed"),
    )
    duration_ms: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("duration_ms", "duration", "durationMs"),
    )
    success: bool = True

    @field_validator("duration_ms", mode="before")
    @classmethod
    def _round_fractional_duration(cls, value: Any) -> Any:
        # Clients report sub-millisecond timings; keep whole milliseconds
        if isinstance(value, float):
            return int(value + 0.5) if value >= 0 else value
        return value

    @field_validator("success", mode="before")
    @classmethod
    def _success_defaults_true(cls, value: Any) -> Any:
        # Only an explicit false marks a failure
        return True if value is None else value


class CommandActivity(_CommandLikeActivity):
    activity_type: Literal["command"] = "command"


class ChatMessageActivity(_CommandLikeActivity):
    activity_type: Literal["chat_message"] = "chat_message"


class ModelSwitchActivity(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    activity_type: Literal["model_switch"] = "model_switch"
    from_model: str = Field(min_length=1, validation_alias=AliasChoices("from_model", "fromModel"))
    to_model: str = Field(min_length=1, validation_alias=AliasChoices("to_model", "toModel"))
    reason: Optional[str] = None


class SessionEndActivity(BaseModel):
    model_config = ConfigDict(extra="ignore")

    activity_type: Literal["session_end"] = "session_end"
    reason: Optional[str] = None


class OtherActivity(BaseModel):
    """Any other label: counted, never appended to a sequence."""
    model_config = ConfigDict(extra="ignore")

    activity_type: str = Field(min_length=1)


Activity = Union[
    CommandActivity,
    ChatMessageActivity,
    ModelSwitchActivity,
    SessionEndActivity,
    OtherActivity,
]

ACTIVITY_VARIANTS = {
    "command": CommandActivity,
    "chat_message": ChatMessageActivity,
    "model_switch": ModelSwitchActivity,
    "session_end": SessionEndActivity,
}


def parse_activity(activity_type: str, activity_data: Optional[Dict[str, Any]] = None) -> Activity:
    """Validate a raw ingress payload into its activity variant."""
    payload = dict(activity_data or {})
    payload["activity_type"] = activity_type
    variant = ACTIVITY_VARIANTS.get(activity_type, OtherActivity)
    return variant.model_validate(payload)


# =============================================================================
# COACH API
# =============================================================================

class InsightRecommendationSchema(BaseModel):
    action: str
    expected_improvement: str
    difficulty: Literal["easy", "medium", "hard"]


class CoachInsightResponse(BaseModel):
    id: UUID
    workflow_id: Optional[UUID] = None
    insight_type: str
    insight_category: str
    title: str
    description: str
    recommendations: List[InsightRecommendationSchema] = []
    priority: str
    expected_impact: str
    source: str
    was_shown: bool
    user_feedback: Optional[str] = None
    generated_at: datetime
    expires_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PendingInsightsResponse(BaseModel):
    success: bool = True
    insights: List[CoachInsightResponse]


class InsightFeedbackRequest(BaseModel):
    feedback: Literal["positive", "negative", "neutral"]
    details: Optional[str] = Field(default=None, max_length=2000)


class WorkflowStatsResponse(BaseModel):
    total_workflows: int
    completed_workflows: int
    average_efficiency: int
    most_common_type: str
    total_time_spent: int
    improvement_trend: Literal["improving", "stable", "declining"]


class WorkflowStatsEnvelope(BaseModel):
    success: bool = True
    stats: WorkflowStatsResponse


class WorkflowResponse(BaseModel):
    id: UUID
    session_id: str
    workflow_type: str
    status: str
    total_steps: int
    efficiency_score: Optional[int] = None
    complexity_level: Optional[str] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
