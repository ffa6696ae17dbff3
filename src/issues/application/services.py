"""
Issue Application Services
==========================

Application services for the triage pipeline: intake, AI classification,
status transitions, department routing and read-side queries.

Orchestrates business logic between domain entities and repositories.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from src.config import settings, IssueStatus, ISSUE_CATEGORIES, VALID_STATUSES
from src.core import (
    ApplicationException,
    ClassificationException,
    InvalidReferenceException,
    ResourceNotFoundException,
    UploadException,
    ValidationException,
)
from src.infrastructure.storage import detect_image_type
from src.issues.domain import (
    ActorContext,
    ClassificationParser,
    ClassificationPromptBuilder,
    ClassificationResult,
    Department,
    Issue,
    IssueStateMachine,
    IssueStatistics,
    Location,
)
from src.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces ==========

class IIssueRepository(ABC):
    """
    Persistence contract for issue records.

    Listings are ordered by created_at, newest first. Every write is
    atomic for one record; failures raise PersistenceException.
    """

    @abstractmethod
    async def create(self, issue: Issue) -> Issue:
        """Store a new issue, assigning its id and created_at."""

    @abstractmethod
    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        """Get issue with joined department and reporter names."""

    @abstractmethod
    async def list_for_reporter(self, reporter_id: str) -> List[Issue]:
        """Issues submitted by one reporter."""

    @abstractmethod
    async def list_all(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None
    ) -> List[Issue]:
        """All issues, optionally filtered, with joined names."""

    @abstractmethod
    async def update(self, issue_id: str, fields: Dict[str, Any]) -> Issue:
        """Partial update of one issue; returns the updated record."""

    @abstractmethod
    async def count_by_status(self) -> Dict[str, int]:
        """Issue count per status."""

    @abstractmethod
    async def count_by_category(self) -> Dict[str, int]:
        """Issue count per category."""


class IDepartmentRepository(ABC):
    """Read access to department reference data."""

    @abstractmethod
    async def get_by_id(self, department_id: str) -> Optional[Department]:
        """Get department by ID."""

    @abstractmethod
    async def list_all(self) -> List[Department]:
        """All departments ordered by name."""


class IImageStorage(ABC):
    """Interface for the external image store."""

    @abstractmethod
    async def upload(self, owner_id: str, data: bytes) -> str:
        """Persist image bytes, returning an opaque reference."""

    @abstractmethod
    async def fetch(self, image_ref: str) -> Any:
        """Resolve a reference to an object with ``data`` and ``mime_type``."""


class ILLMClient(ABC):
    """Interface for LLM operations."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float,
        max_tokens: int,
        operation: str = "chat_completion"
    ) -> Any:
        """Generate chat completion."""


# ========== Application Services ==========

class ClassificationService:
    """
    Classifies a reported issue from its photo and description.

    Never fails the caller: any failure (missing client, image fetch,
    timeout, API error, unparseable reply) yields category Other with
    confidence 0 and is logged.
    """

    def __init__(
        self,
        llm_client: Optional[ILLMClient],
        image_storage: IImageStorage,
        timeout_seconds: Optional[float] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ):
        self._llm = llm_client
        self._storage = image_storage
        self._timeout = timeout_seconds if timeout_seconds is not None else settings.classification_timeout_seconds
        self._temperature = temperature if temperature is not None else settings.llm_temperature
        self._max_tokens = max_tokens if max_tokens is not None else settings.llm_max_tokens

    async def classify(self, image_ref: str, description: str) -> ClassificationResult:
        """
        Classify an issue.

        Args:
            image_ref: Reference to the stored photo
            description: Reporter's free-text description

        Returns:
            ClassificationResult, always within the taxonomy and [0, 100]
        """
        start_time = time.perf_counter()

        try:
            return await asyncio.wait_for(
                self._classify(image_ref, description, start_time),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            reason = f"classification timed out after {self._timeout}s"
        except ClassificationException as e:
            reason = e.message
        except Exception as e:
            reason = f"{type(e).__name__}: {e}"

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        logger.warning(
            "Classification failed, using fallback category",
            extra={"image_ref": image_ref, "reason": reason, "latency_ms": latency_ms}
        )
        return ClassificationResult.fallback_result(reason, latency_ms)

    async def _classify(self, image_ref: str, description: str, start_time: float) -> ClassificationResult:
        if self._llm is None:
            raise ClassificationException("LLM client not configured")

        try:
            image = await self._storage.fetch(image_ref)
        except ApplicationException as e:
            raise ClassificationException(f"Image fetch failed: {e.message}") from e

        messages = ClassificationPromptBuilder.build_messages(description, image.data, image.mime_type)

        try:
            with log_latency(logger, "issue_classification", image_ref=image_ref):
                response = await self._llm.chat_completion(
                    messages=messages,
                    temperature=self._temperature,
                    max_tokens=self._max_tokens,
                    operation="classification"
                )
        except ApplicationException as e:
            raise ClassificationException(f"Model call failed: {e.message}") from e

        parsed = ClassificationParser.parse(response.content)

        result = ClassificationResult(
            category=parsed.category,
            confidence=parsed.confidence,
            model_used=response.model,
            latency_ms=int((time.perf_counter() - start_time) * 1000),
            raw_response=response.content
        )
        logger.info(
            "Issue classified",
            extra={
                "image_ref": image_ref,
                "category": result.category,
                "confidence": result.confidence,
                "model": result.model_used
            }
        )
        return result


class IntakeService:
    """
    Accepts a citizen submission and creates the pending issue.

    validate -> upload image -> classify (never fails) -> store
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        image_storage: IImageStorage,
        classifier: ClassificationService,
        max_image_bytes: Optional[int] = None
    ):
        self._issues = issue_repository
        self._storage = image_storage
        self._classifier = classifier
        self._max_image_bytes = max_image_bytes or settings.max_image_bytes

    async def submit(
        self,
        reporter_id: str,
        title: str,
        description: str,
        image_bytes: bytes,
        location: Optional[Location]
    ) -> Issue:
        """
        Submit a new issue.

        Raises:
            ValidationException: a required field is missing or empty, or
                the image does not decode
            UploadException: the image could not be stored; nothing is created
            PersistenceException: the record could not be written. The
                uploaded image is left in place.
        """
        self._validate(reporter_id, title, description, image_bytes, location)
        title = title.strip()
        description = description.strip()

        try:
            image_ref = await self._storage.upload(reporter_id, image_bytes)
        except ApplicationException as e:
            raise UploadException(
                f"Image upload failed: {e.message}",
                {"reporter_id": reporter_id}
            ) from e
        except OSError as e:
            raise UploadException(f"Image upload failed: {e}", {"reporter_id": reporter_id}) from e

        classification = await self._classifier.classify(image_ref, description)

        issue = await self._issues.create(Issue(
            id=None,
            reporter_id=reporter_id,
            title=title,
            description=description,
            image_ref=image_ref,
            location=location,
            category=classification.category,
            confidence=classification.confidence,
            status=IssueStatus.PENDING,
        ))

        logger.info(
            "Issue submitted",
            extra={
                "issue_id": issue.id,
                "reporter_id": reporter_id,
                "category": issue.category,
                "confidence": issue.confidence,
                "classification_fallback": classification.fallback
            }
        )
        return issue

    def _validate(
        self,
        reporter_id: str,
        title: str,
        description: str,
        image_bytes: bytes,
        location: Optional[Location]
    ) -> None:
        missing = []
        if not reporter_id or not reporter_id.strip():
            missing.append("reporter_id")
        if not title or not title.strip():
            missing.append("title")
        if not description or not description.strip():
            missing.append("description")
        if not image_bytes:
            missing.append("image")
        if location is None:
            missing.append("location")
        elif not location.address or not location.address.strip():
            missing.append("location.address")

        if missing:
            raise ValidationException(
                f"Missing required fields: {', '.join(missing)}",
                {"fields": missing}
            )

        if not location.has_valid_coordinates:
            raise ValidationException(
                "Coordinates out of range",
                {"fields": ["location.lat", "location.lng"], "lat": location.lat, "lng": location.lng}
            )
        if len(image_bytes) > self._max_image_bytes:
            raise ValidationException(
                f"Image exceeds {self._max_image_bytes} bytes",
                {"fields": ["image"], "size": len(image_bytes)}
            )
        detect_image_type(image_bytes)


class StatusService:
    """
    Applies status transitions for administrators.

    Concurrent transitions on one issue are not coordinated: the last
    write wins.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        state_machine: Optional[IssueStateMachine] = None,
        clock: Clock = utc_now
    ):
        self._issues = issue_repository
        self._state_machine = state_machine or IssueStateMachine(settings.enforce_forward_transitions)
        self._clock = clock

    async def transition(self, actor: ActorContext, issue_id: str, target_status: str) -> Issue:
        """
        Move an issue to ``target_status``.

        Returns:
            The updated issue with joined department name

        Raises:
            AuthorizationException, ValidationException, ResourceNotFoundException,
            InvalidTransitionException, PersistenceException
        """
        actor.require_admin("change issue status")

        issue = await self._issues.get_by_id(issue_id)
        if issue is None:
            raise ResourceNotFoundException("Issue", issue_id)

        fields = self._state_machine.plan(issue.status, target_status, self._clock())
        updated = await self._issues.update(issue_id, fields)

        logger.info(
            "Issue status changed",
            extra={
                "issue_id": issue_id,
                "actor_id": actor.actor_id,
                "from_status": issue.status,
                "to_status": updated.status
            }
        )
        return updated


class DepartmentRoutingService:
    """
    Assigns issues to departments.

    assigned_at is refreshed on every assignment, including a repeat
    assignment to the same department.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        department_repository: IDepartmentRepository,
        clock: Clock = utc_now
    ):
        self._issues = issue_repository
        self._departments = department_repository
        self._clock = clock

    async def assign(self, actor: ActorContext, issue_id: str, department_id: str) -> Issue:
        """
        Route an issue to a department.

        Raises:
            AuthorizationException, InvalidReferenceException,
            ResourceNotFoundException, PersistenceException
        """
        actor.require_admin("assign issues to departments")

        department = await self._departments.get_by_id(department_id)
        if department is None:
            raise InvalidReferenceException("Department", department_id)

        issue = await self._issues.get_by_id(issue_id)
        if issue is None:
            raise ResourceNotFoundException("Issue", issue_id)

        assigned_at = self._clock()
        if issue.assigned_at is not None and assigned_at <= issue.assigned_at:
            # Keep assigned_at strictly increasing under coarse clocks
            assigned_at = issue.assigned_at + timedelta(microseconds=1)

        updated = await self._issues.update(issue_id, {
            "department_id": department.id,
            "assigned_at": assigned_at,
        })

        logger.info(
            "Issue assigned",
            extra={
                "issue_id": issue_id,
                "actor_id": actor.actor_id,
                "department_id": department.id,
                "previous_department_id": issue.department_id
            }
        )
        return updated


class IssueQueryService:
    """Read-side operations for reporters and administrators."""

    def __init__(
        self,
        issue_repository: IIssueRepository,
        department_repository: IDepartmentRepository
    ):
        self._issues = issue_repository
        self._departments = department_repository

    async def list_for_reporter(self, reporter_id: str) -> List[Issue]:
        return await self._issues.list_for_reporter(reporter_id)

    async def get_issue(self, actor: ActorContext, issue_id: str) -> Issue:
        """A reporter sees only their own issues; administrators see all."""
        issue = await self._issues.get_by_id(issue_id)
        if issue is None or (not actor.is_admin and issue.reporter_id != actor.actor_id):
            raise ResourceNotFoundException("Issue", issue_id)
        return issue

    async def list_all(
        self,
        actor: ActorContext,
        status: Optional[str] = None,
        category: Optional[str] = None
    ) -> List[Issue]:
        actor.require_admin("list all issues")

        if status is not None and status not in VALID_STATUSES:
            raise ValidationException(
                f"Unknown status '{status}'",
                {"field": "status", "allowed": list(VALID_STATUSES)}
            )
        if category is not None and category not in ISSUE_CATEGORIES:
            raise ValidationException(
                f"Unknown category '{category}'",
                {"field": "category", "allowed": list(ISSUE_CATEGORIES)}
            )
        return await self._issues.list_all(status=status, category=category)

    async def get_statistics(self, actor: ActorContext) -> IssueStatistics:
        actor.require_admin("view issue statistics")
        return IssueStatistics.from_counts(
            await self._issues.count_by_status(),
            await self._issues.count_by_category()
        )

    async def list_departments(self) -> List[Department]:
        return await self._departments.list_all()
