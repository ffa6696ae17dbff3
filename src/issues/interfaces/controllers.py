"""
Issue Controllers (API Routes)
==============================

FastAPI routes for issue submission, reporter history and the admin
triage panel. Controllers delegate to application services.

The caller's identity arrives in ``X-Actor-Id`` / ``X-Actor-Role``
headers set by the upstream identity layer.
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Header, HTTPException, Query, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings, ActorRole, VALID_ROLES
from src.infrastructure.database import get_session
from src.issues.application import (
    ClassificationService,
    DepartmentAssignRequest,
    DepartmentResponse,
    DepartmentRoutingService,
    IntakeService,
    IssueListResponse,
    IssueQueryService,
    IssueResponse,
    IssueStatsResponse,
    StatusService,
    StatusUpdateRequest,
)
from src.issues.application.dto import IssueCategoryStr, IssueStatusStr
from src.issues.domain import ActorContext, Location
from src.issues.infrastructure import SQLAlchemyDepartmentRepository, SQLAlchemyIssueRepository
from src.shared.infrastructure.logging import get_context_logger

issues_router = APIRouter(prefix="/issues", tags=["Issues"])
admin_router = APIRouter(prefix="/admin/issues", tags=["Admin Triage"])
departments_router = APIRouter(prefix="/departments", tags=["Departments"])


# ========== Example payloads for Swagger ==========

ISSUE_RESPONSE_EXAMPLE = {
    "id": "123e4567-e89b-12d3-a456-426614174000",
    "reporter_id": "user-42",
    "reporter_name": "Asha Rao",
    "title": "Large pothole on Main Street",
    "description": "Large pothole on Main Street near the bus stop",
    "image_ref": "user-42/1718000000000.jpg",
    "location": {"lat": 12.9716, "lng": 77.5946, "address": "Main Street, Bengaluru"},
    "category": "Pothole",
    "confidence": 92,
    "status": "pending",
    "department_id": None,
    "department_name": None,
    "created_at": "2024-06-10T08:00:00Z",
    "assigned_at": None,
    "resolved_at": None
}

STATS_RESPONSE_EXAMPLE = {
    "total": 12,
    "pending": 5,
    "in_progress": 4,
    "resolved": 3,
    "category_distribution": {"Pothole": 6, "Garbage": 4, "Other": 2}
}


# ========== Dependencies ==========

def get_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: str = Header(ActorRole.CITIZEN)
) -> ActorContext:
    """Build the actor context from identity headers."""
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id header"
        )
    role = x_actor_role.lower()
    if role not in VALID_ROLES:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown actor role '{x_actor_role}'"
        )
    return ActorContext(actor_id=x_actor_id, role=role)


def get_issue_repository(db: AsyncSession = Depends(get_session)) -> SQLAlchemyIssueRepository:
    return SQLAlchemyIssueRepository(db)


def get_department_repository(db: AsyncSession = Depends(get_session)) -> SQLAlchemyDepartmentRepository:
    return SQLAlchemyDepartmentRepository(db)


def get_image_storage(request: Request):
    """Image storage from app state."""
    storage = getattr(request.app.state, "image_storage", None)
    if storage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Image storage not initialized"
        )
    return storage


def get_intake_service(
    request: Request,
    issues: SQLAlchemyIssueRepository = Depends(get_issue_repository),
    storage=Depends(get_image_storage)
) -> IntakeService:
    # A missing model client is fine: classification falls back
    llm_client = getattr(request.app.state, "llm_client", None)
    return IntakeService(issues, storage, ClassificationService(llm_client, storage))


def get_status_service(
    request: Request,
    issues: SQLAlchemyIssueRepository = Depends(get_issue_repository)
) -> StatusService:
    return StatusService(issues, getattr(request.app.state, "state_machine", None))


def get_routing_service(
    issues: SQLAlchemyIssueRepository = Depends(get_issue_repository),
    departments: SQLAlchemyDepartmentRepository = Depends(get_department_repository)
) -> DepartmentRoutingService:
    return DepartmentRoutingService(issues, departments)


def get_query_service(
    issues: SQLAlchemyIssueRepository = Depends(get_issue_repository),
    departments: SQLAlchemyDepartmentRepository = Depends(get_department_repository)
) -> IssueQueryService:
    return IssueQueryService(issues, departments)


# ========== Reporter Routes ==========

@issues_router.post(
    "",
    response_model=IssueResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report a civic issue",
    description="""
    Submit a photo, description and location. The issue is classified by
    the multimodal model and stored as `pending`.

    Classification failures never block the submission: the issue is
    stored with category `Other` and confidence `0`.
    """,
    responses={
        201: {"content": {"application/json": {"example": ISSUE_RESPONSE_EXAMPLE}}},
        422: {"description": "Missing or invalid field (ValidationException)"},
        502: {"description": "Image upload failed (UploadException)"},
        503: {"description": "Issue could not be stored (PersistenceException)"}
    }
)
async def submit_issue(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    address: str = Form(""),
    image: Optional[UploadFile] = File(None),
    actor: ActorContext = Depends(get_actor),
    service: IntakeService = Depends(get_intake_service)
):
    start_time = time.perf_counter()
    log = get_context_logger(__name__, getattr(request.state, "correlation_id", None))

    # One byte past the limit is enough to reject an oversized upload
    image_bytes = await image.read(settings.max_image_bytes + 1) if image is not None else b""
    location = None
    if latitude is not None and longitude is not None:
        location = Location(lat=latitude, lng=longitude, address=address)

    issue = await service.submit(
        reporter_id=actor.actor_id,
        title=title,
        description=description,
        image_bytes=image_bytes,
        location=location
    )

    log.info(
        "Issue submission handled",
        extra={
            "issue_id": issue.id,
            "category": issue.category,
            "processing_time_ms": int((time.perf_counter() - start_time) * 1000)
        }
    )
    return IssueResponse.from_domain(issue)


@issues_router.get(
    "/mine",
    response_model=IssueListResponse,
    summary="List my reported issues",
    description="Issues submitted by the calling reporter, newest first."
)
async def list_my_issues(
    actor: ActorContext = Depends(get_actor),
    service: IssueQueryService = Depends(get_query_service)
):
    return IssueListResponse.from_domain(await service.list_for_reporter(actor.actor_id))


@issues_router.get(
    "/{issue_id}",
    response_model=IssueResponse,
    summary="Get one issue",
    description="Reporters can read their own issues; administrators can read any."
)
async def get_issue(
    issue_id: str,
    actor: ActorContext = Depends(get_actor),
    service: IssueQueryService = Depends(get_query_service)
):
    return IssueResponse.from_domain(await service.get_issue(actor, issue_id))


# ========== Admin Routes ==========

@admin_router.get(
    "",
    response_model=IssueListResponse,
    summary="List all issues",
    description="All issues with department and reporter names, newest first. "
                "Optional filters by status and category."
)
async def list_all_issues(
    status_filter: Optional[IssueStatusStr] = Query(None, alias="status"),
    category: Optional[IssueCategoryStr] = Query(None),
    actor: ActorContext = Depends(get_actor),
    service: IssueQueryService = Depends(get_query_service)
):
    issues = await service.list_all(actor, status=status_filter, category=category)
    return IssueListResponse.from_domain(issues)


@admin_router.get(
    "/stats",
    response_model=IssueStatsResponse,
    summary="Issue statistics",
    responses={200: {"content": {"application/json": {"example": STATS_RESPONSE_EXAMPLE}}}}
)
async def get_issue_stats(
    actor: ActorContext = Depends(get_actor),
    service: IssueQueryService = Depends(get_query_service)
):
    return IssueStatsResponse.from_domain(await service.get_statistics(actor))


@admin_router.patch(
    "/{issue_id}/status",
    response_model=IssueResponse,
    summary="Change issue status",
    description="""
    Move an issue between `pending`, `in_progress` and `resolved`.
    `resolved_at` is stamped on entering `resolved` and cleared on leaving it.
    """,
    responses={
        404: {"description": "Issue not found"},
        409: {"description": "Transition rejected by the forward-only policy"}
    }
)
async def update_issue_status(
    request: Request,
    issue_id: str,
    payload: StatusUpdateRequest,
    actor: ActorContext = Depends(get_actor),
    service: StatusService = Depends(get_status_service)
):
    log = get_context_logger(__name__, getattr(request.state, "correlation_id", None))
    issue = await service.transition(actor, issue_id, payload.status)
    log.info("Status update handled", extra={"issue_id": issue_id, "status": issue.status})
    return IssueResponse.from_domain(issue)


@admin_router.patch(
    "/{issue_id}/department",
    response_model=IssueResponse,
    summary="Assign issue to a department",
    description="Routes the issue and stamps `assigned_at`, also when reassigning "
                "to the same department.",
    responses={
        404: {"description": "Issue not found"},
        422: {"description": "Unknown department (InvalidReferenceException)"}
    }
)
async def assign_issue_department(
    request: Request,
    issue_id: str,
    payload: DepartmentAssignRequest,
    actor: ActorContext = Depends(get_actor),
    service: DepartmentRoutingService = Depends(get_routing_service)
):
    log = get_context_logger(__name__, getattr(request.state, "correlation_id", None))
    issue = await service.assign(actor, issue_id, payload.department_id)
    log.info("Assignment handled", extra={"issue_id": issue_id, "department_id": issue.department_id})
    return IssueResponse.from_domain(issue)


# ========== Reference Data ==========

@departments_router.get(
    "",
    response_model=list[DepartmentResponse],
    summary="List departments",
    description="Departments ordered by name."
)
async def list_departments(service: IssueQueryService = Depends(get_query_service)):
    return [DepartmentResponse.from_domain(d) for d in await service.list_departments()]
