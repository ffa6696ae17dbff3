"""
Issue Infrastructure Models
===========================

SQLAlchemy ORM models for issues and the reference data they join to.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database import Base, UTCDateTime
from src.config import IssueStatus


class DepartmentModel(Base):
    """
    Department reference data.

    Managed outside the triage core; read to validate assignments.
    """
    __tablename__ = "departments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, unique=True)


class ProfileModel(Base):
    """Reporter profile, joined for display names only."""
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)


class IssueModel(Base):
    """Database model for the Issue entity."""
    __tablename__ = "issues"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Reporter (identity is external, so no foreign key)
    reporter_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Submission content
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    image_ref: Mapped[str] = mapped_column(String(500), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False)

    # Classification, set once at creation
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    confidence: Mapped[int] = mapped_column(Integer, nullable=False)

    # Workflow
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=IssueStatus.PENDING, index=True
    )
    department_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        ForeignKey("departments.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_issues_reporter_created", "reporter_id", "created_at"),
    )
