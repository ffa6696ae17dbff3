#!/usr/bin/env python3
"""
Seed Departments
================

Creates the issue tables if needed and inserts the default municipal
departments. Existing rows with the same id are updated in place.

Usage:
    python scripts/seed_departments.py
"""

import asyncio
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.infrastructure.database import close_database, create_tables, get_session_context, init_database
from src.issues.domain import Department
from src.issues.infrastructure import SQLAlchemyDepartmentRepository


DEFAULT_DEPARTMENTS = [
    Department(id="roads", name="Roads & Transport"),
    Department(id="electrical", name="Electrical Works"),
    Department(id="sanitation", name="Sanitation"),
    Department(id="water", name="Water Supply"),
    Department(id="traffic", name="Traffic Management"),
    Department(id="drainage", name="Storm Water Drainage"),
    Department(id="parks", name="Parks & Horticulture"),
    Department(id="general", name="General Administration"),
]


async def main():
    init_database()
    await create_tables()

    async with get_session_context() as session:
        repository = SQLAlchemyDepartmentRepository(session)
        for department in DEFAULT_DEPARTMENTS:
            await repository.add(department)
            print(f"  {department.id:<12} {department.name}")

    await close_database()
    print(f"Seeded {len(DEFAULT_DEPARTMENTS)} departments")


if __name__ == "__main__":
    asyncio.run(main())
