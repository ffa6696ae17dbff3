"""
Tests for IntakeService: validate, upload, classify, store.
"""

import pytest

from src.core import PersistenceException, UploadException, ValidationException
from src.issues.application import ClassificationService, IntakeService
from src.issues.domain import Location
from src.issues.infrastructure import SQLAlchemyIssueRepository

from conftest import JPEG_BYTES, FakeImageStorage, FakeLLMClient, break_session, make_image


class FailingIssueRepository(SQLAlchemyIssueRepository):
    async def create(self, issue):
        raise PersistenceException("Failed to create issue: connection reset")


def _intake(repository, storage, llm=None, max_image_bytes=None):
    classifier = ClassificationService(llm or FakeLLMClient(), storage, timeout_seconds=5)
    return IntakeService(repository, storage, classifier, max_image_bytes=max_image_bytes)


class TestSubmit:
    """Successful submissions."""

    async def test_creates_pending_classified_issue(self, issue_repository, image_storage, location):
        service = _intake(issue_repository, image_storage)

        issue = await service.submit(
            reporter_id="user-42",
            title="Pothole",
            description="Large pothole on Main Street",
            image_bytes=JPEG_BYTES,
            location=location
        )

        assert issue.id is not None
        assert issue.created_at is not None
        assert issue.status == "pending"
        assert issue.category == "Pothole"
        assert issue.confidence == 92
        assert issue.resolved_at is None
        assert issue.department_id is None
        assert issue.image_ref in image_storage.images

        stored = await issue_repository.get_by_id(issue.id)
        assert stored == issue

    async def test_classification_failure_still_creates_issue(self, issue_repository, image_storage, location):
        service = _intake(issue_repository, image_storage, llm=FakeLLMClient(error=RuntimeError("boom")))

        issue = await service.submit("user-42", "Lamp", "Street lamp broken", JPEG_BYTES, location)

        assert issue.status == "pending"
        assert (issue.category, issue.confidence) == ("Other", 0)

    async def test_unparseable_reply_still_creates_issue(self, issue_repository, image_storage, location):
        service = _intake(issue_repository, image_storage, llm=FakeLLMClient(reply="no idea"))

        issue = await service.submit("user-42", "Lamp", "Street lamp broken", JPEG_BYTES, location)

        assert (issue.category, issue.confidence) == ("Other", 0)

    async def test_strips_text_fields(self, issue_repository, image_storage, location):
        service = _intake(issue_repository, image_storage)

        issue = await service.submit("user-42", "  Pothole ", "\tDeep pothole\n", JPEG_BYTES, location)

        assert issue.title == "Pothole"
        assert issue.description == "Deep pothole"

    async def test_coordinate_string_address_accepted(self, issue_repository, image_storage):
        service = _intake(issue_repository, image_storage)
        location = Location(lat=12.9716, lng=77.5946, address="12.9716, 77.5946")

        issue = await service.submit("user-42", "Pothole", "Pothole", JPEG_BYTES, location)

        assert issue.location == location


class TestValidation:
    """Rejected submissions create nothing."""

    @pytest.mark.parametrize("field,kwargs", [
        ("title", {"title": "   "}),
        ("description", {"description": ""}),
        ("image", {"image_bytes": b""}),
        ("location", {"location": None}),
        ("reporter_id", {"reporter_id": ""}),
    ])
    async def test_missing_field(self, issue_repository, image_storage, location, field, kwargs):
        service = _intake(issue_repository, image_storage)
        submission = {
            "reporter_id": "user-42",
            "title": "Pothole",
            "description": "Pothole",
            "image_bytes": JPEG_BYTES,
            "location": location,
        }
        submission.update(kwargs)

        with pytest.raises(ValidationException) as exc_info:
            await service.submit(**submission)

        assert field in exc_info.value.details["fields"]
        assert image_storage.images == {}
        assert await issue_repository.list_all() == []

    async def test_empty_address(self, issue_repository, image_storage):
        service = _intake(issue_repository, image_storage)

        with pytest.raises(ValidationException) as exc_info:
            await service.submit("user-42", "Pothole", "Pothole", JPEG_BYTES, Location(1.0, 2.0, " "))

        assert exc_info.value.details["fields"] == ["location.address"]

    async def test_reports_all_missing_fields(self, issue_repository, image_storage):
        service = _intake(issue_repository, image_storage)

        with pytest.raises(ValidationException) as exc_info:
            await service.submit("user-42", "", "", b"", None)

        assert exc_info.value.details["fields"] == ["title", "description", "image", "location"]

    async def test_out_of_range_coordinates(self, issue_repository, image_storage):
        service = _intake(issue_repository, image_storage)

        with pytest.raises(ValidationException):
            await service.submit("user-42", "Pothole", "Pothole", JPEG_BYTES, Location(95.0, 10.0, "North"))

    async def test_oversized_image(self, issue_repository, image_storage, location):
        service = _intake(issue_repository, image_storage, max_image_bytes=16)

        with pytest.raises(ValidationException):
            await service.submit("user-42", "Pothole", "Pothole", JPEG_BYTES, location)

        assert image_storage.images == {}

    @pytest.mark.parametrize("image_bytes", [
        b"%PDF-1.7 not a photo",
        b"\xff\xd8\xff\xe0" + b"\x00" * 64,
        JPEG_BYTES[:20],
    ])
    async def test_undecodable_image(self, issue_repository, image_storage, location, image_bytes):
        llm = FakeLLMClient()
        service = _intake(issue_repository, image_storage, llm=llm)

        with pytest.raises(ValidationException) as exc_info:
            await service.submit("user-42", "Pothole", "Pothole", image_bytes, location)

        assert exc_info.value.details["fields"] == ["image"]
        assert image_storage.images == {}
        assert llm.calls == []

    async def test_png_accepted(self, issue_repository, image_storage, location):
        service = _intake(issue_repository, image_storage)

        issue = await service.submit("user-42", "Pothole", "Pothole", make_image("PNG"), location)

        assert issue.image_ref in image_storage.images


class TestFailures:
    """Upload and persistence failures."""

    async def test_upload_failure_aborts(self, issue_repository, location):
        storage = FakeImageStorage(fail_upload=True)
        llm = FakeLLMClient()
        service = _intake(issue_repository, storage, llm=llm)

        with pytest.raises(UploadException) as exc_info:
            await service.submit("user-42", "Pothole", "Pothole", JPEG_BYTES, location)

        assert exc_info.value.retryable is True
        assert llm.calls == []
        assert await issue_repository.list_all() == []

    async def test_persistence_failure_propagates(self, session, image_storage, location):
        service = _intake(FailingIssueRepository(session), image_storage)

        with pytest.raises(PersistenceException):
            await service.submit("user-42", "Pothole", "Pothole", JPEG_BYTES, location)

        # The uploaded image is not cleaned up
        assert len(image_storage.images) == 1

    async def test_store_commit_failure_is_retryable(
        self, monkeypatch, session, issue_repository, image_storage, location
    ):
        service = _intake(issue_repository, image_storage)
        break_session(monkeypatch, session)

        with pytest.raises(PersistenceException) as exc_info:
            await service.submit("user-42", "Pothole", "Pothole", JPEG_BYTES, location)

        assert exc_info.value.retryable is True
        monkeypatch.undo()
        assert await issue_repository.list_all() == []
