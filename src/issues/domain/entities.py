"""
Issue Domain Entities
=====================

Pure Python business objects for civic issue triage: the issue record,
its location, departments, the acting user and classification results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional

from src.config import (
    IssueStatus, ActorRole,
    ISSUE_CATEGORIES, VALID_STATUSES,
    FALLBACK_CATEGORY, FALLBACK_CONFIDENCE
)
from src.core import AuthorizationException


@dataclass(frozen=True)
class Location:
    """Where the issue was reported. Address may be a coordinate string."""
    lat: float
    lng: float
    address: str

    @property
    def has_valid_coordinates(self) -> bool:
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lng <= 180.0


@dataclass(frozen=True)
class Department:
    """Organizational unit responsible for resolving issues."""
    id: str
    name: str


@dataclass(frozen=True)
class ActorContext:
    """
    Who is calling, passed explicitly into every privileged operation.

    Identity and role are verified upstream; the triage core only reads them.
    """
    actor_id: str
    role: str = ActorRole.CITIZEN

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN

    def require_admin(self, action: str) -> None:
        if not self.is_admin:
            raise AuthorizationException(action, self.actor_id)


@dataclass
class ClassificationResult:
    """
    Category and confidence assigned to a new issue.

    ``fallback`` marks results produced because the model path failed.
    """
    category: str
    confidence: int
    model_used: str = "none"
    latency_ms: int = 0
    raw_response: Optional[str] = None
    fallback: bool = False
    failure_reason: Optional[str] = None

    def __post_init__(self):
        if self.category not in ISSUE_CATEGORIES:
            raise ValueError(f"Unknown category: {self.category!r}")
        if not 0 <= self.confidence <= 100:
            raise ValueError("Confidence must be between 0 and 100")

    @classmethod
    def fallback_result(cls, reason: str, latency_ms: int = 0) -> "ClassificationResult":
        return cls(
            category=FALLBACK_CATEGORY,
            confidence=FALLBACK_CONFIDENCE,
            latency_ms=latency_ms,
            fallback=True,
            failure_reason=reason
        )


@dataclass
class Issue:
    """
    A reported civic problem.

    Created once by intake with status pending; afterwards only status,
    resolved_at, department_id and assigned_at change.
    """
    id: Optional[str]  # None until stored
    reporter_id: str
    title: str
    description: str
    image_ref: str
    location: Location
    category: str
    confidence: int
    status: str = IssueStatus.PENDING
    department_id: Optional[str] = None
    created_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    # Read-side joins, filled in by the store when available
    department_name: Optional[str] = field(default=None, compare=False)
    reporter_name: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        """Validate the record invariants."""
        if self.category not in ISSUE_CATEGORIES:
            raise ValueError(f"Unknown category: {self.category!r}")
        if not 0 <= self.confidence <= 100:
            raise ValueError("Confidence must be between 0 and 100")
        if self.status not in VALID_STATUSES:
            raise ValueError(f"Unknown status: {self.status!r}")
        if (self.resolved_at is not None) != (self.status == IssueStatus.RESOLVED):
            raise ValueError("resolved_at must be set exactly when status is resolved")


@dataclass
class IssueStatistics:
    """Dashboard counters across all issues."""
    by_status: Dict[str, int]
    by_category: Dict[str, int]

    @property
    def total(self) -> int:
        return sum(self.by_status.values())

    @classmethod
    def from_counts(cls, status_counts: Dict[str, int], category_counts: Dict[str, int]) -> "IssueStatistics":
        """Zero-fill so every status and category is always reported."""
        return cls(
            by_status={status: status_counts.get(status, 0) for status in VALID_STATUSES},
            by_category={category: category_counts.get(category, 0) for category in ISSUE_CATEGORIES},
        )
