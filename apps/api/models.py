from sqlalchemy import (
    Column,
    Integer,
    Float,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    JSON,
    Text,
    Uuid,
    text,
)
from sqlalchemy.sql import func
from core.database import Base
import uuid


class Workflow(Base):
    """
    A bounded sequence of user actions within one tool session.

    Rows are created by the workflow tracker on the first activity of a
    (user, session) pair and stay `active` until explicitly completed.
    Command and model-switch sequences are append-only JSON lists; the
    analysis pipeline annotates the row with its latest WorkflowAnalysis.

    The partial unique index guarantees at most one active workflow per
    (user_id, session_id). `version` is an optimistic lock for the
    append path.
    """
    __tablename__ = "workflow_tracking"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    session_id = Column(Text, nullable=False)

    workflow_type = Column(Text, nullable=False, default="general")  # coding|analysis|writing|research|refactoring|general
    workflow_name = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")  # active|completed

    total_steps = Column(Integer, nullable=False, default=0)  # len(command_sequence)
    activity_count = Column(Integer, nullable=False, default=0)  # every recorded activity

    command_sequence = Column(JSON, nullable=False, default=list)
    model_switch_patterns = Column(JSON, nullable=False, default=list)

    # Analysis annotations (written by the pipeline)
    efficiency_score = Column(Integer, nullable=True)
    complexity_level = Column(Text, nullable=True)  # simple|moderate|complex|expert
    coach_analysis = Column(JSON, nullable=True)
    last_analyzed_at = Column(DateTime(timezone=True), nullable=True)
    total_duration_s = Column(Integer, nullable=True)
    active_time_s = Column(Integer, nullable=True)

    version = Column(Integer, nullable=False, default=1)

    started_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_workflow_tracking_user_session", "user_id", "session_id"),
        Index("ix_workflow_tracking_user_created", "user_id", "created_at"),
        Index("ix_workflow_tracking_status", "status"),
        Index(
            "uq_workflow_tracking_active_session",
            "user_id",
            "session_id",
            unique=True,
            postgresql_where=text("status = 'active'"),
            sqlite_where=text("status = 'active'"),
        ),
    )


class CoachInsightRecord(Base):
    """
    A persisted coaching insight.

    Content fields are written once by the lifecycle manager's `store`.
    Lifecycle fields (was_shown, shown_at, user_feedback, feedback_details,
    was_acted_upon, acted_at) are only mutated by the lifecycle manager.
    Insights past `expires_at` are excluded from retrieval but not purged.
    """
    __tablename__ = "ai_coach_insight"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False)
    workflow_id = Column(Uuid(as_uuid=True), ForeignKey("workflow_tracking.id"), nullable=True)

    insight_type = Column(Text, nullable=False)  # workflow_optimization|model_recommendation|efficiency_tip|strategic_advice|pattern_recognition
    insight_category = Column(Text, nullable=False)  # strategic|tactical|operational
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    recommendations = Column(JSON, nullable=False, default=list)  # [{action, expected_improvement, difficulty}]
    trigger_context = Column(JSON, nullable=True)

    priority = Column(Text, nullable=False)  # low|medium|high|urgent
    priority_rank = Column(Integer, nullable=False)  # urgent=4 ... low=1, for ordering
    expected_impact = Column(Text, nullable=False)  # high|medium|low
    source = Column(Text, nullable=False, default="rules")  # rules|augmented

    # User interaction
    was_shown = Column(Boolean, nullable=False, default=False)
    was_acted_upon = Column(Boolean, nullable=False, default=False)
    user_feedback = Column(Text, nullable=True)  # positive|negative|neutral
    feedback_details = Column(Text, nullable=True)

    generated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    shown_at = Column(DateTime(timezone=True), nullable=True)
    acted_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_ai_coach_insight_user_pending", "user_id", "was_shown", "expires_at"),
        Index("ix_ai_coach_insight_workflow_id", "workflow_id"),
    )


class WorkflowPattern(Base):
    """
    Historical behavior pattern learned for a user.

    Produced outside this service; the coach only reads it when
    synthesizing pattern-recognition insights.
    """
    __tablename__ = "workflow_pattern"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), nullable=False)

    pattern_name = Column(Text, nullable=False)
    pattern_type = Column(Text, nullable=False, default="sequence")
    pattern_data = Column(JSON, nullable=False, default=dict)
    frequency = Column(Integer, nullable=False, default=1)
    confidence = Column(Float, nullable=True)  # 0-1

    first_observed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_observed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_workflow_pattern_user_frequency", "user_id", "frequency"),
    )
