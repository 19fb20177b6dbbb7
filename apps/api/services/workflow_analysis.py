"""
Workflow Analysis Engine

Pure analysis of a workflow snapshot: time breakdown, bottlenecks,
optimization hints, model-usage recommendations, complexity and a
0-100 efficiency score.

Design Principles:
- No I/O. Everything here operates on frozen dataclasses, so the same
  snapshot always yields the same WorkflowAnalysis and different workflows
  can be analyzed in parallel.
- Empty sequences and zero durations are guarded explicitly; nothing in
  this module raises for a well-formed snapshot.

Efficiency score:
    100
    - min(30, idle / total * 100)      (idle penalty, 0 when total is 0)
    - 5 * number_of_bottlenecks
    * success_rate                      (1.0 for an empty workflow)
    clamped to [0, 100] and rounded.
"""

from collections import Counter
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import UUID
import math


# =============================================================================
# CONSTANTS
# =============================================================================

SLOW_COMMAND_FACTOR = 2.0           # duration > 2x mean duration
FAILED_COMMANDS_THRESHOLD = 2       # more than this many failures is a bottleneck
REPEATED_COMMAND_THRESHOLD = 3      # a command seen more than this many times
MODEL_SWITCH_THRESHOLD = 3          # more switches than this hurts consistency
CONSECUTIVE_BATCH_THRESHOLD = 3     # run length that should have been batched
LOW_SUCCESS_RATE_THRESHOLD = 0.70
IDLE_PENALTY_CAP = 30
BOTTLENECK_PENALTY = 5

# Fixed heuristic, not calibrated against outcome data.
EXPECTED_IMPROVEMENT_PCT = 30

CODING_MODEL = "gpt-4o"
REASONING_MODEL = "claude-3-opus"
GENERAL_MODEL = "gpt-4o-mini"

CODING_TERMS = ("code", "debug", "refactor")
ANALYSIS_TERMS = ("analyze", "review")

COMPLEX_WORKFLOW_TYPES = {"debugging", "refactoring", "analysis"}

OPTIMIZATION_MODEL_CONSISTENCY = "Consider sticking with one model for consistency"
OPTIMIZATION_BATCHING = "Batch similar operations together for efficiency"
OPTIMIZATION_REORDER = "Reorder your workflow steps for better efficiency"


class ComplexityLevel(str, Enum):
    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"
    EXPERT = "expert"


# =============================================================================
# INPUT SNAPSHOT
# =============================================================================

def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Command:
    """One discrete action within a workflow. Immutable once appended."""
    command: str
    timestamp: datetime
    model_used: Optional[str] = None
    duration_ms: Optional[int] = None
    success: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command": self.command,
            "timestamp": self.timestamp.isoformat(),
            "model_used": self.model_used,
            "duration_ms": self.duration_ms,
            "success": self.success,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Command":
        return cls(
            command=str(data.get("command") or ""),
            timestamp=_parse_timestamp(data["timestamp"]),
            model_used=data.get("model_used"),
            duration_ms=data.get("duration_ms"),
            success=data.get("success") is not False,
        )


@dataclass(frozen=True)
class ModelSwitch:
    from_model: str
    to_model: str
    timestamp: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_model": self.from_model,
            "to_model": self.to_model,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelSwitch":
        return cls(
            from_model=data["from_model"],
            to_model=data["to_model"],
            reason=data.get("reason"),
            timestamp=_parse_timestamp(data["timestamp"]),
        )


@dataclass(frozen=True)
class WorkflowSnapshot:
    """Read-only view of a workflow, detached from the database session."""
    workflow_id: UUID
    user_id: UUID
    workflow_type: str
    commands: Tuple[Command, ...] = ()
    model_switches: Tuple[ModelSwitch, ...] = ()

    @classmethod
    def from_record(cls, workflow) -> "WorkflowSnapshot":
        """Build a snapshot from a models.Workflow row."""
        return cls(
            workflow_id=workflow.id,
            user_id=workflow.user_id,
            workflow_type=workflow.workflow_type or "general",
            commands=tuple(Command.from_dict(c) for c in (workflow.command_sequence or [])),
            model_switches=tuple(ModelSwitch.from_dict(s) for s in (workflow.model_switch_patterns or [])),
        )


# =============================================================================
# RESULT
# =============================================================================

@dataclass(frozen=True)
class TimeAnalysis:
    total_time_sec: int = 0
    active_time_sec: int = 0
    idle_time_sec: int = 0
    avg_step_time_sec: int = 0


@dataclass(frozen=True)
class ModelRecommendation:
    current_model: str
    recommended_model: str
    reason: str
    expected_improvement_pct: int = EXPECTED_IMPROVEMENT_PCT


@dataclass(frozen=True)
class ComplexityAssessment:
    level: str = ComplexityLevel.SIMPLE.value
    factors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class WorkflowAnalysis:
    workflow_type: str
    efficiency_score: int
    bottlenecks: List[str]
    optimizations: List[str]
    model_recommendations: List[ModelRecommendation]
    time_analysis: TimeAnalysis
    complexity_assessment: ComplexityAssessment

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowAnalysis":
        return cls(
            workflow_type=data["workflow_type"],
            efficiency_score=data["efficiency_score"],
            bottlenecks=list(data.get("bottlenecks", [])),
            optimizations=list(data.get("optimizations", [])),
            model_recommendations=[ModelRecommendation(**r) for r in data.get("model_recommendations", [])],
            time_analysis=TimeAnalysis(**data.get("time_analysis", {})),
            complexity_assessment=ComplexityAssessment(**data.get("complexity_assessment", {})),
        )


# =============================================================================
# METRICS
# =============================================================================

def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def analyze_time_metrics(commands: Sequence[Command]) -> TimeAnalysis:
    """Wall-clock span vs summed command durations, in whole seconds."""
    if not commands:
        return TimeAnalysis()

    span = commands[-1].timestamp - commands[0].timestamp
    total_ms = max(0.0, span.total_seconds() * 1000)
    active_ms = float(sum(c.duration_ms or 0 for c in commands))
    # Overlapping durations can exceed the span; idle never goes negative.
    idle_ms = max(0.0, total_ms - active_ms)
    avg_ms = active_ms / len(commands)

    return TimeAnalysis(
        total_time_sec=_round_half_up(total_ms / 1000),
        active_time_sec=_round_half_up(active_ms / 1000),
        idle_time_sec=_round_half_up(idle_ms / 1000),
        avg_step_time_sec=_round_half_up(avg_ms / 1000),
    )


def identify_bottlenecks(commands: Sequence[Command]) -> List[str]:
    if not commands:
        return []

    bottlenecks: List[str] = []

    durations = [c.duration_ms or 0 for c in commands]
    mean_duration = sum(durations) / len(durations)
    slow_count = sum(1 for d in durations if d > mean_duration * SLOW_COMMAND_FACTOR)
    if slow_count > 0:
        bottlenecks.append(f"{slow_count} commands took longer than average")

    failed_count = sum(1 for c in commands if not c.success)
    if failed_count > FAILED_COMMANDS_THRESHOLD:
        bottlenecks.append(f"{failed_count} commands failed, indicating potential issues")

    # Counter keeps first-seen order, so messages follow the sequence.
    for command, count in Counter(c.command for c in commands).items():
        if count > REPEATED_COMMAND_THRESHOLD:
            bottlenecks.append(f'"{command}" repeated {count} times')

    return bottlenecks


def count_consecutive_similar(commands: Sequence[Command]) -> int:
    """Length of the longest run of identical consecutive commands."""
    if not commands:
        return 0

    longest = 1
    current = 1
    for previous, command in zip(commands, commands[1:]):
        if command.command == previous.command:
            current += 1
            longest = max(longest, current)
        else:
            current = 1
    return longest


def has_back_and_forth_pattern(commands: Sequence[Command]) -> bool:
    """True when any A-B-A triple appears in the sequence."""
    for i in range(2, len(commands)):
        if (commands[i].command == commands[i - 2].command
                and commands[i].command != commands[i - 1].command):
            return True
    return False


def generate_optimizations(
    commands: Sequence[Command],
    model_switches: Sequence[ModelSwitch],
) -> List[str]:
    optimizations: List[str] = []

    if len(model_switches) > MODEL_SWITCH_THRESHOLD:
        optimizations.append(OPTIMIZATION_MODEL_CONSISTENCY)

    if count_consecutive_similar(commands) >= CONSECUTIVE_BATCH_THRESHOLD:
        optimizations.append(OPTIMIZATION_BATCHING)

    if has_back_and_forth_pattern(commands):
        optimizations.append(OPTIMIZATION_REORDER)

    return optimizations


def recommend_model(commands: Sequence[Command]) -> str:
    """Pick a target model from what the workflow is about."""
    lowered = [c.command.lower() for c in commands]
    if any(term in text for text in lowered for term in CODING_TERMS):
        return CODING_MODEL
    if any(term in text for text in lowered for term in ANALYSIS_TERMS):
        return REASONING_MODEL
    return GENERAL_MODEL


def analyze_model_usage(commands: Sequence[Command]) -> List[ModelRecommendation]:
    performance: Dict[str, Dict[str, int]] = {}
    for command in commands:
        if not command.model_used:
            continue
        stats = performance.setdefault(command.model_used, {"success": 0, "total": 0})
        stats["total"] += 1
        if command.success:
            stats["success"] += 1

    recommendations: List[ModelRecommendation] = []
    for model, stats in performance.items():
        success_rate = stats["success"] / stats["total"]
        if success_rate < LOW_SUCCESS_RATE_THRESHOLD:
            recommendations.append(ModelRecommendation(
                current_model=model,
                recommended_model=recommend_model(commands),
                reason=f"Low success rate ({_round_half_up(success_rate * 100)}%) with current model",
            ))
    return recommendations


def assess_complexity(commands: Sequence[Command], workflow_type: str) -> ComplexityAssessment:
    if not commands:
        return ComplexityAssessment(level=ComplexityLevel.SIMPLE.value, factors=[])

    factors: List[str] = []
    score = 0

    step_count = len(commands)
    if step_count > 20:
        factors.append("High number of steps")
        score += 3
    elif step_count > 10:
        factors.append("Moderate number of steps")
        score += 2
    else:
        score += 1

    distinct_commands = len({c.command for c in commands})
    if distinct_commands > 10:
        factors.append("High command variety")
        score += 3
    elif distinct_commands > 5:
        factors.append("Moderate command variety")
        score += 2
    else:
        score += 1

    if workflow_type in COMPLEX_WORKFLOW_TYPES:
        factors.append(f"Complex workflow type: {workflow_type}")
        score += 2

    if score >= 7:
        level = ComplexityLevel.EXPERT
    elif score >= 5:
        level = ComplexityLevel.COMPLEX
    elif score >= 3:
        level = ComplexityLevel.MODERATE
    else:
        level = ComplexityLevel.SIMPLE

    return ComplexityAssessment(level=level.value, factors=factors)


def calculate_success_rate(commands: Sequence[Command]) -> float:
    if not commands:
        return 1.0
    return sum(1 for c in commands if c.success) / len(commands)


def calculate_efficiency_score(
    time_analysis: TimeAnalysis,
    bottleneck_count: int,
    success_rate: float,
) -> int:
    score = 100.0

    if time_analysis.total_time_sec > 0:
        idle_ratio = time_analysis.idle_time_sec / time_analysis.total_time_sec
    else:
        idle_ratio = 0.0
    score -= min(IDLE_PENALTY_CAP, idle_ratio * 100)

    score -= bottleneck_count * BOTTLENECK_PENALTY
    score *= success_rate

    return max(0, min(100, _round_half_up(score)))


# =============================================================================
# ENTRY POINT
# =============================================================================

def analyze_workflow(snapshot: WorkflowSnapshot) -> WorkflowAnalysis:
    """Compute the full WorkflowAnalysis for a snapshot."""
    commands = snapshot.commands
    workflow_type = snapshot.workflow_type or "general"

    time_analysis = analyze_time_metrics(commands)
    bottlenecks = identify_bottlenecks(commands)

    return WorkflowAnalysis(
        workflow_type=workflow_type,
        efficiency_score=calculate_efficiency_score(
            time_analysis,
            len(bottlenecks),
            calculate_success_rate(commands),
        ),
        bottlenecks=bottlenecks,
        optimizations=generate_optimizations(commands, snapshot.model_switches),
        model_recommendations=analyze_model_usage(commands),
        time_analysis=time_analysis,
        complexity_assessment=assess_complexity(commands, workflow_type),
    )
