"""
Issue Infrastructure Layer
==========================

Contains:
- Models: SQLAlchemy ORM models
- Repositories: issue store and department lookup
- External: model client and image storage adapters
"""

from src.issues.infrastructure.models import IssueModel, DepartmentModel, ProfileModel
from src.issues.infrastructure.repositories import (
    SQLAlchemyIssueRepository,
    SQLAlchemyDepartmentRepository,
    UPDATABLE_FIELDS,
)
from src.issues.infrastructure.external import LLMClientAdapter, ImageStorageAdapter

__all__ = [
    "IssueModel",
    "DepartmentModel",
    "ProfileModel",
    "SQLAlchemyIssueRepository",
    "SQLAlchemyDepartmentRepository",
    "UPDATABLE_FIELDS",
    "LLMClientAdapter",
    "ImageStorageAdapter",
]
