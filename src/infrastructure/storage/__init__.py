"""
Image Storage Infrastructure
============================

Object storage for issue photos. Images are addressed by an opaque
reference of the form ``<reporter_id>/<epoch_millis>.<ext>``.
"""

import asyncio
import io
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from PIL import Image, UnidentifiedImageError

from src.config import settings
from src.core import StorageException, ValidationException

# Pillow format name -> file extension, where the two differ
_FORMAT_EXTENSIONS = {
    "JPEG": "jpg",
    "MPO": "jpg",
    "TIFF": "tif",
}

_SAFE_SEGMENT = re.compile(r"[^A-Za-z0-9._-]")


@dataclass
class StoredImage:
    """Raw image bytes with their MIME type."""
    data: bytes
    mime_type: str


def detect_image_type(data: bytes) -> tuple[str, str]:
    """
    Identify an image with Pillow, returning (mime_type, extension).

    Raises:
        ValidationException: the bytes do not decode as an image
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError) as e:
        raise ValidationException(
            "Image could not be decoded",
            {"fields": ["image"], "reason": str(e)}
        ) from e

    mime_type = Image.MIME.get(image_format)
    if image_format is None or mime_type is None:
        raise ValidationException("Unsupported image format", {"fields": ["image"], "format": image_format})
    return mime_type, _FORMAT_EXTENSIONS.get(image_format, image_format.lower())


class IImageStorage(ABC):
    """Interface for image persistence."""

    @abstractmethod
    async def upload(self, owner_id: str, data: bytes) -> str:
        """Store image bytes and return an opaque reference."""

    @abstractmethod
    async def fetch(self, image_ref: str) -> StoredImage:
        """Resolve a reference back to bytes."""


class FileSystemImageStorage(IImageStorage):
    """
    Image storage on a local directory tree.

    Blocking file IO runs in a worker thread.
    """

    MAX_NAME_ATTEMPTS = 10

    def __init__(self, root: Optional[Path] = None):
        self._root = Path(root or settings.image_storage_path)

    @property
    def root(self) -> Path:
        return self._root

    async def upload(self, owner_id: str, data: bytes) -> str:
        """
        Write the image under ``<root>/<owner>/<epoch_millis>.<ext>``.

        Raises:
            StorageException: if the file cannot be written
        """
        owner_segment = _SAFE_SEGMENT.sub("_", owner_id) or "anonymous"
        _, extension = detect_image_type(data)
        stem = f"{owner_segment}/{int(time.time() * 1000)}"

        for attempt in range(self.MAX_NAME_ATTEMPTS):
            image_ref = f"{stem}.{extension}" if attempt == 0 else f"{stem}-{attempt}.{extension}"
            try:
                await asyncio.to_thread(self._write, image_ref, data)
                return image_ref
            except FileExistsError:
                continue
            except OSError as e:
                raise StorageException(f"Failed to write image: {e}", {"image_ref": image_ref}) from e

        raise StorageException("Could not allocate a unique image name", {"stem": stem})

    async def fetch(self, image_ref: str) -> StoredImage:
        """
        Read an image back.

        Raises:
            StorageException: if the reference is invalid or unreadable
        """
        try:
            data = await asyncio.to_thread(self._resolve(image_ref).read_bytes)
        except OSError as e:
            raise StorageException(f"Failed to read image: {e}", {"image_ref": image_ref}) from e

        try:
            mime_type, _ = detect_image_type(data)
        except ValidationException as e:
            raise StorageException(f"Stored file is not an image: {e.message}", {"image_ref": image_ref}) from e
        return StoredImage(data=data, mime_type=mime_type)

    def _resolve(self, image_ref: str) -> Path:
        path = (self._root / image_ref).resolve()
        if self._root.resolve() not in path.parents:
            raise StorageException("Image reference escapes storage root", {"image_ref": image_ref})
        return path

    def _write(self, image_ref: str, data: bytes) -> None:
        path = self._resolve(image_ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        # Exclusive create: same-millisecond uploads get a suffixed name
        with open(path, "xb") as handle:
            handle.write(data)
