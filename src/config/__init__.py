"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field, field_validator
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="civic-triage", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/civic_issues",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Gemini (OpenAI-compatible endpoint) ==========
    gemini_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("gemini_api_key", "google_gemini_api_key"),
        description="Google Gemini API key"
    )
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta/openai/",
        description="OpenAI-compatible Gemini endpoint"
    )
    mock_llm: bool = Field(
        default=False,
        description="Use mock model responses (no API calls)"
    )
    llm_model: str = Field(
        default="gemini-1.5-flash",
        description="Multimodal model used for issue classification"
    )
    llm_temperature: float = Field(
        default=0.1,
        description="Sampling temperature for classification",
        ge=0.0,
        le=1.0
    )
    llm_max_tokens: int = Field(
        default=100,
        description="Max tokens in the classification reply",
        ge=1,
        le=2000
    )
    classification_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single model request",
        ge=0.5,
        le=10.0
    )
    classification_max_retries: int = Field(
        default=1,
        description="Retries on transient network failure",
        ge=0,
        le=1
    )

    # ========== Image Storage ==========
    image_storage_path: Path = Field(
        default=Path("var/issue-images"),
        description="Root directory for uploaded issue images"
    )
    max_image_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Largest accepted image upload",
        ge=1
    )

    # ========== Workflow ==========
    enforce_forward_transitions: bool = Field(
        default=False,
        description="Restrict status changes to pending -> in_progress -> resolved"
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class IssueCategory(str):
    """Fixed classification taxonomy for civic issues."""
    POTHOLE = "Pothole"
    STREETLIGHT = "Streetlight Issue"
    GARBAGE = "Garbage"
    WATER_LEAKAGE = "Water Leakage"
    TRAFFIC_SIGNAL = "Traffic Signal"
    ROAD_DAMAGE = "Road Damage"
    DRAINAGE = "Drainage"
    PARK_MAINTENANCE = "Park Maintenance"
    OTHER = "Other"


class IssueStatus(str):
    """Issue lifecycle statuses."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"


class ActorRole(str):
    """Roles recognised on the actor context."""
    CITIZEN = "citizen"
    ADMIN = "admin"


# ========== Lists for validation ==========

ISSUE_CATEGORIES = [
    IssueCategory.POTHOLE, IssueCategory.STREETLIGHT, IssueCategory.GARBAGE,
    IssueCategory.WATER_LEAKAGE, IssueCategory.TRAFFIC_SIGNAL,
    IssueCategory.ROAD_DAMAGE, IssueCategory.DRAINAGE,
    IssueCategory.PARK_MAINTENANCE, IssueCategory.OTHER
]
VALID_STATUSES = [
    IssueStatus.PENDING, IssueStatus.IN_PROGRESS, IssueStatus.RESOLVED
]
VALID_ROLES = [ActorRole.CITIZEN, ActorRole.ADMIN]

# Fallback classification used whenever the model path fails
FALLBACK_CATEGORY = IssueCategory.OTHER
FALLBACK_CONFIDENCE = 0
# Confidence assumed when the model names a category but omits a score
DEFAULT_CONFIDENCE = 50
