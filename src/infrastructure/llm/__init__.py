"""
LLM Client Infrastructure
==========================

Multimodal chat clients for issue classification.

Gemini is reached through its OpenAI-compatible endpoint, so the
OpenAI SDK handles transport, the per-request timeout and the retry on
transient network failures.
"""

import time
from typing import List, Optional
from abc import ABC, abstractmethod

import openai
from openai import AsyncOpenAI

from src.config import settings, IssueCategory
from src.core import LLMException, ConfigurationException


class ChatCompletionResult:
    """Result of a chat completion."""

    def __init__(
        self,
        content: str,
        model: str,
        prompt_tokens: int,
        completion_tokens: int,
        latency_ms: int
    ):
        self.content = content
        self.model = model
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = prompt_tokens + completion_tokens
        self.latency_ms = latency_ms


class ILLMClient(ABC):
    """
    Interface for LLM client operations.

    Messages follow the OpenAI chat format; a user message may carry a
    list of content parts mixing ``text`` and ``image_url`` entries.
    """

    @abstractmethod
    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.1,
        max_tokens: int = 100,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """Generate chat completion."""

    async def close(self) -> None:
        """Release transport resources."""


class GeminiLLMClient(ILLMClient):
    """
    Gemini client over the OpenAI-compatible API.

    Base URL: https://generativelanguage.googleapis.com/v1beta/openai/
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None
    ):
        self._api_key = api_key or settings.gemini_api_key
        if not self._api_key:
            raise ConfigurationException("Gemini API key not configured")

        self._model = model or settings.llm_model
        self._client = AsyncOpenAI(
            api_key=self._api_key,
            base_url=settings.gemini_base_url,
            timeout=timeout_seconds if timeout_seconds is not None else settings.classification_timeout_seconds,
            max_retries=max_retries if max_retries is not None else settings.classification_max_retries
        )

    @property
    def model(self) -> str:
        return self._model

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.1,
        max_tokens: int = 100,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        """
        Generate a chat completion.

        Raises:
            LLMException: on timeout, connection failure, non-2xx status
                or a reply without text content
        """
        start_time = time.perf_counter()

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens
            )
        except openai.APITimeoutError as e:
            raise LLMException("Request timed out", {"operation": operation}) from e
        except openai.APIStatusError as e:
            raise LLMException(
                f"API returned status {e.status_code}",
                {"operation": operation, "status_code": e.status_code}
            ) from e
        except openai.APIError as e:
            raise LLMException(f"Request failed: {e}", {"operation": operation}) from e

        latency_ms = int((time.perf_counter() - start_time) * 1000)

        if not response.choices:
            raise LLMException("Reply contained no choices", {"operation": operation})
        content = response.choices[0].message.content
        if content is None:
            raise LLMException("Reply contained no text", {"operation": operation})

        usage = response.usage
        return ChatCompletionResult(
            content=content,
            model=self._model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            latency_ms=latency_ms
        )

    async def close(self) -> None:
        await self._client.close()


class MockLLMClient(ILLMClient):
    """
    Mock LLM client for local development.

    Answers in the classification reply format, picking a category from
    keywords in the prompt text. No external API is called.
    """

    KEYWORDS = [
        ("pothole", IssueCategory.POTHOLE, 92),
        ("streetlight", IssueCategory.STREETLIGHT, 88),
        ("street light", IssueCategory.STREETLIGHT, 88),
        ("garbage", IssueCategory.GARBAGE, 90),
        ("trash", IssueCategory.GARBAGE, 80),
        ("leak", IssueCategory.WATER_LEAKAGE, 85),
        ("traffic", IssueCategory.TRAFFIC_SIGNAL, 80),
        ("crack", IssueCategory.ROAD_DAMAGE, 75),
        ("drain", IssueCategory.DRAINAGE, 82),
        ("park", IssueCategory.PARK_MAINTENANCE, 70),
    ]

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.1,
        max_tokens: int = 100,
        operation: str = "chat_completion"
    ) -> ChatCompletionResult:
        text = _message_text(messages).lower()
        # Skip the instruction header so the category list itself never matches
        description = text.split("description:", 1)[-1].split("based on the image", 1)[0]

        category, confidence = IssueCategory.OTHER, 40
        for keyword, candidate, score in self.KEYWORDS:
            if keyword in description:
                category, confidence = candidate, score
                break

        content = f"Category: {category}, Confidence: {confidence}"
        return ChatCompletionResult(
            content=content,
            model="mock-model",
            prompt_tokens=len(text.split()),
            completion_tokens=len(content.split()),
            latency_ms=1
        )


def _message_text(messages: List[dict]) -> str:
    """Concatenate the text parts of a chat transcript."""
    parts = []
    for message in messages:
        content = message.get("content", "")
        if isinstance(content, str):
            parts.append(content)
            continue
        for part in content:
            if part.get("type") == "text":
                parts.append(part.get("text", ""))
    return "\n".join(parts)


def create_llm_client() -> Optional[ILLMClient]:
    """
    Build the configured client.

    Returns None when no credentials are configured; classification then
    always degrades to the fallback result.
    """
    if settings.mock_llm:
        return MockLLMClient()
    if not settings.gemini_api_key:
        return None
    return GeminiLLMClient()
