"""
Activity Classifier

Maps a raw activity label (activity type or command text) to a workflow type.
Deterministic substring match; the first matching rule wins.
"""

from enum import Enum
from typing import Optional


class WorkflowType(str, Enum):
    CODING = "coding"
    ANALYSIS = "analysis"
    WRITING = "writing"
    RESEARCH = "research"
    REFACTORING = "refactoring"
    GENERAL = "general"


# Order matters: "code review" is coding, not analysis.
CLASSIFICATION_RULES = (
    (("code", "debug"), WorkflowType.CODING),
    (("analyze", "review"), WorkflowType.ANALYSIS),
    (("write", "document"), WorkflowType.WRITING),
    (("research", "search"), WorkflowType.RESEARCH),
    (("refactor",), WorkflowType.REFACTORING),
)


def classify(label: Optional[str]) -> WorkflowType:
    """Classify an activity label into a WorkflowType."""
    if not label:
        return WorkflowType.GENERAL

    lowered = label.lower()
    for keywords, workflow_type in CLASSIFICATION_RULES:
        if any(keyword in lowered for keyword in keywords):
            return workflow_type
    return WorkflowType.GENERAL
