"""
Civic Triage - Main Application
===============================

Civic issue reporting and triage service.

Citizens submit a photo, description and location; a multimodal model
classifies the issue; administrators move it through
pending -> in_progress -> resolved and route it to departments.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, classification parsing, status state machine
- Infrastructure: Database, LLM, image storage
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from src.config import settings
from src.core import ApplicationException

# Infrastructure
from src.infrastructure.database import init_database, close_database, create_tables

# Issues module
from src.issues.domain import IssueStateMachine
from src.issues.infrastructure import ImageStorageAdapter, LLMClientAdapter
from src.issues.interfaces import issues_router, admin_router, departments_router

# Logging and middleware
from src.shared.infrastructure.logging import setup_logging, get_logger
from src.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler
)

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Initialize image storage and the status policy
    4. Initialize LLM client (optional)

    SHUTDOWN:
    1. Close LLM client
    2. Close database connections
    """
    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Civic Triage service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    logger.info("Initializing database")
    init_database()

    # Create tables (for development - use migrations in production)
    logger.info("Creating database tables")
    try:
        await create_tables()
        app.state.database_ready = True
    except Exception as e:
        app.state.database_ready = False
        logger.warning(f"Database not available - running in degraded mode: {e}")

    logger.info("Initializing image storage", extra={"path": str(settings.image_storage_path)})
    app.state.image_storage = ImageStorageAdapter(settings.image_storage_path)
    app.state.state_machine = IssueStateMachine(settings.enforce_forward_transitions)

    logger.info("Initializing LLM client")
    try:
        app.state.llm_client = LLMClientAdapter.from_settings()
    except Exception as e:
        logger.warning(f"LLM client initialization failed: {e}")
        app.state.llm_client = None

    if app.state.llm_client is None:
        logger.warning("No model configured - issues will be stored as 'Other' with confidence 0")

    logger.info("Civic Triage service started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Civic Triage service")

    if app.state.llm_client is not None:
        await app.state.llm_client.close()

    await close_database()

    logger.info("Civic Triage service shutdown complete")


app = FastAPI(
    title="Civic Triage API",
    description="""
    ## Civic Issue Reporting and Triage

    ### 📷 Reporting

    - `POST /issues` - Submit a photo, description and location
    - `GET /issues/mine` - List my reports
    - `GET /issues/{id}` - Get one report

    Every submission is classified by a multimodal model into one of:
    Pothole, Streetlight Issue, Garbage, Water Leakage, Traffic Signal,
    Road Damage, Drainage, Park Maintenance, Other. If classification
    fails the issue is still stored as `Other` with confidence `0`.

    ### 🛠️ Administration

    - `GET /admin/issues` - All issues, filterable by status and category
    - `GET /admin/issues/stats` - Counts by status and category
    - `PATCH /admin/issues/{id}/status` - Change status
    - `PATCH /admin/issues/{id}/department` - Route to a department
    - `GET /departments` - Department list

    Callers identify themselves with the `X-Actor-Id` and
    `X-Actor-Role` (`citizen` or `admin`) headers.
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# === Custom Middleware (from shared) ===
app.add_middleware(CorrelationIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(issues_router)
app.include_router(admin_router)
app.include_router(departments_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "database": "connected",
                        "llm_client": "available",
                        "image_storage": "available"
                    }
                }
            }
        }
    }
})
async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    The service reports "degraded" when the database could not be
    initialized; a missing model only degrades classification.
    """
    state = request.app.state
    database_ready = getattr(state, "database_ready", True)
    checks = {
        "database": "connected" if database_ready else "unavailable",
        "llm_client": "available" if getattr(state, "llm_client", None) else "not_configured",
        "image_storage": "available" if getattr(state, "image_storage", None) else "not_configured"
    }

    return {
        "status": "healthy" if database_ready else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Civic Triage",
        "version": settings.app_version,
        "architecture": "Clean Architecture / Modular Monolith",
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "issues": {
                "prefix": "/issues",
                "endpoints": [
                    "POST /issues - Report an issue",
                    "GET /issues/mine - List my issues",
                    "GET /issues/{id} - Get issue"
                ]
            },
            "admin": {
                "prefix": "/admin/issues",
                "endpoints": [
                    "GET /admin/issues - List all issues",
                    "GET /admin/issues/stats - Issue statistics",
                    "PATCH /admin/issues/{id}/status - Change status",
                    "PATCH /admin/issues/{id}/department - Assign department"
                ]
            }
        }
    }


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )
