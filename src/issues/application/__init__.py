"""
Issue Application Layer
=======================

Contains:
- Services: intake, classification, status, routing and query orchestration
- Interfaces: repository and collaborator contracts
- DTOs: Data transfer objects for API serialization
"""

from src.issues.application.dto import (
    StatusUpdateRequest,
    DepartmentAssignRequest,
    LocationInfo,
    IssueResponse,
    IssueListResponse,
    DepartmentResponse,
    IssueStatsResponse,
)
from src.issues.application.services import (
    ClassificationService,
    IntakeService,
    StatusService,
    DepartmentRoutingService,
    IssueQueryService,
    IIssueRepository,
    IDepartmentRepository,
    IImageStorage,
    ILLMClient,
    utc_now,
)

__all__ = [
    # DTOs
    "StatusUpdateRequest",
    "DepartmentAssignRequest",
    "LocationInfo",
    "IssueResponse",
    "IssueListResponse",
    "DepartmentResponse",
    "IssueStatsResponse",
    # Services
    "ClassificationService",
    "IntakeService",
    "StatusService",
    "DepartmentRoutingService",
    "IssueQueryService",
    "utc_now",
    # Interfaces
    "IIssueRepository",
    "IDepartmentRepository",
    "IImageStorage",
    "ILLMClient",
]
