"""
Tests for the file-system image store.
"""

import pytest

from src.core import StorageException, ValidationException
from src.infrastructure.storage import FileSystemImageStorage, detect_image_type

from conftest import make_image

JPEG = make_image("JPEG")
PNG = make_image("PNG")


class TestDetectImageType:
    @pytest.mark.parametrize("image_format,expected", [
        ("JPEG", ("image/jpeg", "jpg")),
        ("PNG", ("image/png", "png")),
        ("GIF", ("image/gif", "gif")),
        ("BMP", ("image/bmp", "bmp")),
        ("WEBP", ("image/webp", "webp")),
    ])
    def test_decodes_with_pillow(self, image_format, expected):
        assert detect_image_type(make_image(image_format)) == expected

    @pytest.mark.parametrize("data", [
        b"",
        b"just some text",
        b"\x89PNG\r\n\x1a\n" + b"\x00" * 16,
    ])
    def test_non_image_rejected(self, data):
        with pytest.raises(ValidationException) as exc_info:
            detect_image_type(data)

        assert exc_info.value.details["fields"] == ["image"]


class TestFileSystemImageStorage:
    async def test_upload_and_fetch(self, tmp_path):
        storage = FileSystemImageStorage(tmp_path)

        image_ref = await storage.upload("user-42", PNG)
        image = await storage.fetch(image_ref)

        assert image_ref.startswith("user-42/")
        assert image_ref.endswith(".png")
        assert image.data == PNG
        assert image.mime_type == "image/png"

    async def test_same_millisecond_uploads_do_not_collide(self, tmp_path, monkeypatch):
        monkeypatch.setattr("src.infrastructure.storage.time.time", lambda: 1718000000.0)
        storage = FileSystemImageStorage(tmp_path)

        first = await storage.upload("user-42", JPEG)
        second = await storage.upload("user-42", JPEG)

        assert first == "user-42/1718000000000.jpg"
        assert second == "user-42/1718000000000-1.jpg"

    async def test_owner_segment_is_sanitized(self, tmp_path):
        storage = FileSystemImageStorage(tmp_path)

        image_ref = await storage.upload("../../etc", JPEG)

        assert image_ref.split("/")[0] == ".._.._etc"
        assert (tmp_path / image_ref).exists()

    async def test_fetch_missing(self, tmp_path):
        storage = FileSystemImageStorage(tmp_path)

        with pytest.raises(StorageException):
            await storage.fetch("user-42/missing.jpg")

    async def test_fetch_outside_root(self, tmp_path):
        storage = FileSystemImageStorage(tmp_path / "images")

        with pytest.raises(StorageException):
            await storage.fetch("../secret.jpg")

    async def test_fetch_non_image(self, tmp_path):
        storage = FileSystemImageStorage(tmp_path)
        (tmp_path / "user-42").mkdir()
        (tmp_path / "user-42" / "notes.jpg").write_bytes(b"not an image")

        with pytest.raises(StorageException):
            await storage.fetch("user-42/notes.jpg")
