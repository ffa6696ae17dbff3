"""
Issue Domain Layer
==================

Contains:
- Entities: Issue, Location, Department, ActorContext, ClassificationResult
- Classification: prompt builder and defensive reply parser
- State machine: status lifecycle and resolved_at invariant

This layer is framework-agnostic and contains pure business logic.
"""

from src.issues.domain.entities import (
    Issue,
    Location,
    Department,
    ActorContext,
    ClassificationResult,
    IssueStatistics,
)
from src.issues.domain.classification import (
    ClassificationPromptBuilder,
    ClassificationParser,
    ParsedClassification,
    clamp_confidence,
)
from src.issues.domain.state_machine import IssueStateMachine

__all__ = [
    "Issue",
    "Location",
    "Department",
    "ActorContext",
    "ClassificationResult",
    "IssueStatistics",
    "ClassificationPromptBuilder",
    "ClassificationParser",
    "ParsedClassification",
    "clamp_confidence",
    "IssueStateMachine",
]
