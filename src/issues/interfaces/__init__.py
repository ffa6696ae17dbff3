"""
Issue Interfaces Layer
======================

FastAPI route handlers for reporters, administrators and reference data.
"""

from src.issues.interfaces.controllers import issues_router, admin_router, departments_router

__all__ = ["issues_router", "admin_router", "departments_router"]
