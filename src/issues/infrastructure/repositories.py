"""
Issue Infrastructure Repositories
=================================

SQLAlchemy implementations of the issue store and department lookup.

Each write is committed on its own so one issue update is atomic and
visible immediately; database errors surface as PersistenceException.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import Select, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core import PersistenceException, ResourceNotFoundException
from src.issues.application import IIssueRepository, IDepartmentRepository
from src.issues.domain import Department, Issue, Location
from src.issues.infrastructure.models import DepartmentModel, IssueModel, ProfileModel
from src.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

# Only the triage workflow fields may change after creation
UPDATABLE_FIELDS = frozenset({"status", "resolved_at", "department_id", "assigned_at"})


def _parse_uuid(issue_id: str) -> Optional[UUID]:
    try:
        return UUID(str(issue_id))
    except ValueError:
        return None


def _to_domain(
    model: IssueModel,
    department_name: Optional[str] = None,
    reporter_name: Optional[str] = None
) -> Issue:
    return Issue(
        id=str(model.id),
        reporter_id=model.reporter_id,
        title=model.title,
        description=model.description,
        image_ref=model.image_ref,
        location=Location(lat=model.latitude, lng=model.longitude, address=model.address),
        category=model.category,
        confidence=model.confidence,
        status=model.status,
        department_id=model.department_id,
        created_at=model.created_at,
        assigned_at=model.assigned_at,
        resolved_at=model.resolved_at,
        department_name=department_name,
        reporter_name=reporter_name
    )


class SQLAlchemyIssueRepository(IIssueRepository):
    """SQLAlchemy implementation of the issue store."""

    def __init__(self, session: AsyncSession):
        self._session = session

    def _joined_select(self) -> Select:
        """Issues with department and reporter names, newest first."""
        return (
            select(IssueModel, DepartmentModel.name, ProfileModel.full_name)
            .outerjoin(DepartmentModel, IssueModel.department_id == DepartmentModel.id)
            .outerjoin(ProfileModel, IssueModel.reporter_id == ProfileModel.id)
            .order_by(IssueModel.created_at.desc(), IssueModel.id.desc())
            .execution_options(populate_existing=True)
        )

    async def _fetch_all(self, stmt: Select) -> List[Issue]:
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceException(f"Failed to read issues: {e}") from e
        return [_to_domain(model, dept_name, reporter_name) for model, dept_name, reporter_name in result.all()]

    async def create(self, issue: Issue) -> Issue:
        """Insert a new issue; id and created_at are assigned here."""
        model = IssueModel(
            id=uuid4(),
            reporter_id=issue.reporter_id,
            title=issue.title,
            description=issue.description,
            image_ref=issue.image_ref,
            latitude=issue.location.lat,
            longitude=issue.location.lng,
            address=issue.location.address,
            category=issue.category,
            confidence=issue.confidence,
            status=issue.status,
            department_id=issue.department_id,
            created_at=issue.created_at or datetime.now(timezone.utc),
            assigned_at=issue.assigned_at,
            resolved_at=issue.resolved_at
        )

        self._session.add(model)
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error("Issue insert failed", extra={"reporter_id": issue.reporter_id, "error": str(e)})
            raise PersistenceException(f"Failed to create issue: {e}") from e

        return _to_domain(model)

    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        """Get issue by ID, None when absent or malformed."""
        issue_uuid = _parse_uuid(issue_id)
        if issue_uuid is None:
            return None

        issues = await self._fetch_all(self._joined_select().where(IssueModel.id == issue_uuid))
        return issues[0] if issues else None

    async def list_for_reporter(self, reporter_id: str) -> List[Issue]:
        return await self._fetch_all(
            self._joined_select().where(IssueModel.reporter_id == reporter_id)
        )

    async def list_all(
        self,
        status: Optional[str] = None,
        category: Optional[str] = None
    ) -> List[Issue]:
        stmt = self._joined_select()
        if status is not None:
            stmt = stmt.where(IssueModel.status == status)
        if category is not None:
            stmt = stmt.where(IssueModel.category == category)
        return await self._fetch_all(stmt)

    async def update(self, issue_id: str, fields: Dict[str, Any]) -> Issue:
        """
        Single-row UPDATE of workflow fields, committed immediately.

        Raises:
            ValueError: a field outside the workflow fields was given
            ResourceNotFoundException: no issue with that id
            PersistenceException: the update could not be committed
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable: {sorted(unknown)}")

        issue_uuid = _parse_uuid(issue_id)
        if issue_uuid is None:
            raise ResourceNotFoundException("Issue", issue_id)

        stmt = update(IssueModel).where(IssueModel.id == issue_uuid).values(**fields)
        try:
            result = await self._session.execute(stmt)
            if result.rowcount == 0:
                await self._session.rollback()
                raise ResourceNotFoundException("Issue", issue_id)
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            logger.error("Issue update failed", extra={"issue_id": issue_id, "error": str(e)})
            raise PersistenceException(f"Failed to update issue {issue_id}: {e}") from e

        updated = await self.get_by_id(issue_id)
        if updated is None:
            # Cannot happen without deletes, which this core never issues
            raise ResourceNotFoundException("Issue", issue_id)
        return updated

    async def _count_by(self, column) -> Dict[str, int]:
        stmt = select(column, func.count(IssueModel.id)).group_by(column)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceException(f"Failed to count issues: {e}") from e
        return {key: count for key, count in result.all()}

    async def count_by_status(self) -> Dict[str, int]:
        return await self._count_by(IssueModel.status)

    async def count_by_category(self) -> Dict[str, int]:
        return await self._count_by(IssueModel.category)


class SQLAlchemyDepartmentRepository(IDepartmentRepository):
    """SQLAlchemy implementation for department lookups."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, department_id: str) -> Optional[Department]:
        try:
            model = await self._session.get(DepartmentModel, department_id)
        except SQLAlchemyError as e:
            raise PersistenceException(f"Failed to read department: {e}") from e
        return Department(id=model.id, name=model.name) if model else None

    async def list_all(self) -> List[Department]:
        stmt = select(DepartmentModel).order_by(DepartmentModel.name)
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise PersistenceException(f"Failed to list departments: {e}") from e
        return [Department(id=model.id, name=model.name) for model in result.scalars().all()]

    async def add(self, department: Department) -> Department:
        """Insert or rename a department (seeding and tests)."""
        await self._session.merge(DepartmentModel(id=department.id, name=department.name))
        try:
            await self._session.commit()
        except SQLAlchemyError as e:
            await self._session.rollback()
            raise PersistenceException(f"Failed to store department: {e}") from e
        return department
