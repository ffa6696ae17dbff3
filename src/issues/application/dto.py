"""
Issue Application DTOs
======================

Pydantic models for request/response validation at the API boundary.
"""

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from src.issues.domain import Department, Issue, IssueStatistics


# ========== Type Aliases for Literals ==========
IssueStatusStr = Literal["pending", "in_progress", "resolved"]
IssueCategoryStr = Literal[
    "Pothole", "Streetlight Issue", "Garbage", "Water Leakage", "Traffic Signal",
    "Road Damage", "Drainage", "Park Maintenance", "Other"
]


# ========== Request DTOs ==========

class StatusUpdateRequest(BaseModel):
    """Request model for a status transition."""
    status: IssueStatusStr = Field(..., description="Target status")


class DepartmentAssignRequest(BaseModel):
    """Request model for department assignment."""
    department_id: str = Field(..., min_length=1, description="Department to route the issue to")


# ========== Response DTOs ==========

class LocationInfo(BaseModel):
    lat: float
    lng: float
    address: str


class IssueResponse(BaseModel):
    """Full issue record."""
    id: str
    reporter_id: str
    reporter_name: Optional[str] = None
    title: str
    description: str
    image_ref: str
    location: LocationInfo
    category: IssueCategoryStr
    confidence: int = Field(..., ge=0, le=100)
    status: IssueStatusStr
    department_id: Optional[str] = None
    department_name: Optional[str] = None
    created_at: datetime
    assigned_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, issue: Issue) -> "IssueResponse":
        return cls(
            id=issue.id,
            reporter_id=issue.reporter_id,
            reporter_name=issue.reporter_name,
            title=issue.title,
            description=issue.description,
            image_ref=issue.image_ref,
            location=LocationInfo(
                lat=issue.location.lat,
                lng=issue.location.lng,
                address=issue.location.address
            ),
            category=issue.category,
            confidence=issue.confidence,
            status=issue.status,
            department_id=issue.department_id,
            department_name=issue.department_name,
            created_at=issue.created_at,
            assigned_at=issue.assigned_at,
            resolved_at=issue.resolved_at
        )


class IssueListResponse(BaseModel):
    """Ordered list of issues, newest first."""
    issues: List[IssueResponse]
    count: int

    @classmethod
    def from_domain(cls, issues: List[Issue]) -> "IssueListResponse":
        return cls(issues=[IssueResponse.from_domain(issue) for issue in issues], count=len(issues))


class DepartmentResponse(BaseModel):
    id: str
    name: str

    @classmethod
    def from_domain(cls, department: Department) -> "DepartmentResponse":
        return cls(id=department.id, name=department.name)


class IssueStatsResponse(BaseModel):
    """Dashboard counters."""
    total: int
    pending: int
    in_progress: int
    resolved: int
    category_distribution: Dict[str, int]

    @classmethod
    def from_domain(cls, stats: IssueStatistics) -> "IssueStatsResponse":
        return cls(
            total=stats.total,
            pending=stats.by_status["pending"],
            in_progress=stats.by_status["in_progress"],
            resolved=stats.by_status["resolved"],
            category_distribution=stats.by_category
        )
