"""
Tests for ClassificationService: the happy path and every fallback.
"""

from src.core import LLMException
from src.issues.application import ClassificationService

from conftest import JPEG_BYTES, FakeImageStorage, FakeLLMClient


async def _stored(storage: FakeImageStorage) -> str:
    return await storage.upload("user-42", JPEG_BYTES)


class TestClassificationService:
    """Tests for ClassificationService.classify."""

    async def test_classifies_from_model_reply(self, image_storage):
        llm = FakeLLMClient(reply="Category: Streetlight Issue, Confidence: 85")
        service = ClassificationService(llm, image_storage, timeout_seconds=5)

        result = await service.classify(await _stored(image_storage), "Lamp post dark for a week")

        assert result.category == "Streetlight Issue"
        assert result.confidence == 85
        assert result.model_used == "fake-model"
        assert result.fallback is False

    async def test_sends_image_and_generation_settings(self, image_storage):
        llm = FakeLLMClient()
        service = ClassificationService(llm, image_storage, timeout_seconds=5, temperature=0.1, max_tokens=100)

        await service.classify(await _stored(image_storage), "Pothole near bus stop")

        call = llm.calls[0]
        assert call["temperature"] == 0.1
        assert call["max_tokens"] == 100
        parts = call["messages"][0]["content"]
        assert "Pothole near bus stop" in parts[0]["text"]
        assert parts[1]["image_url"]["url"].startswith("data:image/jpeg;base64,")

    async def test_unknown_category_becomes_other(self, image_storage):
        llm = FakeLLMClient(reply="Category: Graffiti, Confidence: 80")
        service = ClassificationService(llm, image_storage, timeout_seconds=5)

        result = await service.classify(await _stored(image_storage), "Paint on wall")

        assert result.category == "Other"
        assert result.confidence == 80
        assert result.fallback is False

    async def test_unparseable_reply_falls_back(self, image_storage):
        llm = FakeLLMClient(reply="I am not sure what this picture shows.")
        service = ClassificationService(llm, image_storage, timeout_seconds=5)

        result = await service.classify(await _stored(image_storage), "Something odd")

        assert (result.category, result.confidence) == ("Other", 0)
        assert result.fallback is True

    async def test_model_error_falls_back(self, image_storage):
        llm = FakeLLMClient(error=LLMException("API returned status 500", {"status_code": 500}))
        service = ClassificationService(llm, image_storage, timeout_seconds=5)

        result = await service.classify(await _stored(image_storage), "Pothole")

        assert (result.category, result.confidence) == ("Other", 0)
        assert "Model call failed" in result.failure_reason

    async def test_unexpected_error_falls_back(self, image_storage):
        llm = FakeLLMClient(error=RuntimeError("socket closed"))
        service = ClassificationService(llm, image_storage, timeout_seconds=5)

        result = await service.classify(await _stored(image_storage), "Pothole")

        assert (result.category, result.confidence) == ("Other", 0)
        assert "RuntimeError" in result.failure_reason

    async def test_timeout_falls_back(self, image_storage):
        llm = FakeLLMClient(delay=2.0)
        service = ClassificationService(llm, image_storage, timeout_seconds=0.05)

        result = await service.classify(await _stored(image_storage), "Pothole")

        assert (result.category, result.confidence) == ("Other", 0)
        assert "timed out" in result.failure_reason

    async def test_missing_client_falls_back(self, image_storage):
        service = ClassificationService(None, image_storage, timeout_seconds=5)

        result = await service.classify(await _stored(image_storage), "Pothole")

        assert (result.category, result.confidence) == ("Other", 0)
        assert result.fallback is True

    async def test_image_fetch_failure_falls_back(self):
        storage = FakeImageStorage(fail_fetch=True)
        llm = FakeLLMClient()
        service = ClassificationService(llm, storage, timeout_seconds=5)

        result = await service.classify("user-42/missing.jpg", "Pothole")

        assert (result.category, result.confidence) == ("Other", 0)
        assert llm.calls == []
