"""
Shared fixtures for the triage pipeline tests.

Persistence runs against in-memory SQLite; the model and the image
store are replaced with in-process fakes.
"""

import asyncio
import io
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest
from sqlalchemy.exc import OperationalError
from PIL import Image

from src.core import StorageException
from src.infrastructure.database import (
    close_database,
    create_tables,
    drop_tables,
    get_session_context,
    init_database,
)
from src.infrastructure.llm import ChatCompletionResult
from src.infrastructure.storage import StoredImage
from src.issues.application import IImageStorage, ILLMClient
from src.issues.domain import ActorContext, Department, Location
from src.issues.infrastructure import SQLAlchemyDepartmentRepository, SQLAlchemyIssueRepository


def make_image(image_format: str = "JPEG", size=(8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, "gray").save(buffer, image_format)
    return buffer.getvalue()


JPEG_BYTES = make_image()


class FakeLLMClient(ILLMClient):
    """Returns a canned reply, raises a canned error or stalls."""

    def __init__(self, reply: str = "Category: Pothole, Confidence: 92", error: Optional[Exception] = None,
                 delay: float = 0.0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: List[dict] = []

    async def chat_completion(self, messages, temperature, max_tokens, operation="chat_completion"):
        self.calls.append({
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "operation": operation
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return ChatCompletionResult(
            content=self.reply,
            model="fake-model",
            prompt_tokens=10,
            completion_tokens=5,
            latency_ms=1
        )

    async def close(self) -> None:
        pass


class FakeImageStorage(IImageStorage):
    """Keeps uploads in a dict."""

    def __init__(self, fail_upload: bool = False, fail_fetch: bool = False):
        self.images = {}
        self.fail_upload = fail_upload
        self.fail_fetch = fail_fetch

    async def upload(self, owner_id: str, data: bytes) -> str:
        if self.fail_upload:
            raise StorageException("bucket unavailable")
        image_ref = f"{owner_id}/{1718000000000 + len(self.images)}.jpg"
        self.images[image_ref] = data
        return image_ref

    async def fetch(self, image_ref: str) -> StoredImage:
        if self.fail_fetch or image_ref not in self.images:
            raise StorageException("image not found", {"image_ref": image_ref})
        return StoredImage(data=self.images[image_ref], mime_type="image/jpeg")


def break_session(monkeypatch, session, method: str = "commit") -> None:
    """Make one AsyncSession method fail the way a dropped connection does."""
    async def failing(*args, **kwargs):
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(session, method, failing)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 6, 10, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
async def database():
    init_database("sqlite+aiosqlite://")
    await create_tables()
    yield
    await drop_tables()
    await close_database()


@pytest.fixture
async def session(database):
    async with get_session_context() as session:
        yield session


@pytest.fixture
def issue_repository(session):
    return SQLAlchemyIssueRepository(session)


@pytest.fixture
def department_repository(session):
    return SQLAlchemyDepartmentRepository(session)


@pytest.fixture
async def departments(department_repository):
    """Two seeded departments."""
    roads = await department_repository.add(Department(id="roads", name="Roads & Transport"))
    sanitation = await department_repository.add(Department(id="sanitation", name="Sanitation"))
    return {"roads": roads, "sanitation": sanitation}


@pytest.fixture
def llm_client():
    return FakeLLMClient()


@pytest.fixture
def image_storage():
    return FakeImageStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def admin():
    return ActorContext(actor_id="admin-1", role="admin")


@pytest.fixture
def citizen():
    return ActorContext(actor_id="user-42", role="citizen")


@pytest.fixture
def location():
    return Location(lat=12.9716, lng=77.5946, address="Main Street, Bengaluru")
