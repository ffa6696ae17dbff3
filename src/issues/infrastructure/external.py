"""
Issue External Service Adapters
===============================

Adapters that implement the application-layer collaborator interfaces
(model client, image storage) on top of the shared infrastructure.
"""

from pathlib import Path
from typing import Any, List, Optional

from src.infrastructure.llm import ILLMClient as InfraLLMClient, create_llm_client
from src.infrastructure.storage import FileSystemImageStorage, StoredImage
from src.issues.application import IImageStorage, ILLMClient


class LLMClientAdapter(ILLMClient):
    """
    Wraps an infrastructure LLM client for the application layer.

    Use ``from_settings`` to build one from configuration; it returns
    None when no model is configured.
    """

    def __init__(self, client: InfraLLMClient):
        self._client = client

    @classmethod
    def from_settings(cls) -> Optional["LLMClientAdapter"]:
        client = create_llm_client()
        return cls(client) if client is not None else None

    async def chat_completion(
        self,
        messages: List[dict],
        temperature: float = 0.1,
        max_tokens: int = 100,
        operation: str = "chat_completion"
    ) -> Any:
        return await self._client.chat_completion(messages, temperature, max_tokens, operation)

    async def close(self) -> None:
        await self._client.close()


class ImageStorageAdapter(IImageStorage):
    """Wraps the file-system image store for the application layer."""

    def __init__(self, root: Optional[Path] = None):
        self._store = FileSystemImageStorage(root)

    async def upload(self, owner_id: str, data: bytes) -> str:
        return await self._store.upload(owner_id, data)

    async def fetch(self, image_ref: str) -> StoredImage:
        return await self._store.fetch(image_ref)
