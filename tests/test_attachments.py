"""Tests for Cloudinary attachment storage, with the SDK calls patched out."""

import asyncio
from io import BytesIO
from uuid import uuid4

import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
import pytest
from PIL import Image

from cashbook.config.settings import AppSettings, CloudinarySettings
from cashbook.models.entry import Attachment, AttachmentKind
from cashbook.services.attachments import (
    AttachmentDeleteError,
    AttachmentUploadError,
    AttachmentValidationError,
    CloudinaryAttachmentService,
)


def png_bytes(color="white"):
    buffer = BytesIO()
    Image.new("RGB", (4, 4), color).save(buffer, "PNG")
    return buffer.getvalue()


@pytest.fixture
def service():
    return CloudinaryAttachmentService(
        settings=CloudinarySettings(cloud_name="demo", api_key="key", api_secret="secret"),
        app_settings=AppSettings(max_attachment_size_mb=1),
    )


@pytest.fixture
def uploads(monkeypatch):
    """Records every upload call; payloads listed in `fail_on` raise."""
    calls = []
    fail_on = []

    def fake_upload(file, public_id, **kwargs):
        if file in fail_on:
            raise cloudinary.exceptions.Error("quota exceeded")
        calls.append(public_id)
        return {"public_id": public_id}

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    return calls, fail_on


@pytest.fixture
def deletes(monkeypatch):
    calls = []

    def fake_delete(keys, **kwargs):
        calls.append(list(keys))
        return {"deleted": {key: "deleted" for key in keys}}

    monkeypatch.setattr(cloudinary.api, "delete_resources", fake_delete)
    return calls


class TestValidateImage:
    """Tests for validate_image."""

    def test_accepts_png(self, service):
        service.validate_image(png_bytes(), "receipt.PNG")

    def test_rejects_oversized_file(self, service):
        with pytest.raises(AttachmentValidationError, match="larger than 1MB"):
            service.validate_image(b"\0" * (1024 * 1024 + 1), "big.png")

    def test_rejects_empty_file(self, service):
        with pytest.raises(AttachmentValidationError, match="empty"):
            service.validate_image(b"", "empty.png")

    def test_rejects_unsupported_extension(self, service):
        with pytest.raises(AttachmentValidationError, match="not a supported image"):
            service.validate_image(png_bytes(), "receipt.pdf")

    def test_rejects_undecodable_bytes(self, service):
        with pytest.raises(AttachmentValidationError, match="not a valid image"):
            service.validate_image(b"definitely not a png", "receipt.png")


class TestStorageKeys:

    def test_key_layout(self, service):
        user_id = uuid4()
        folder, owner, name = service.build_storage_key(user_id).split("/")
        epoch_ms, suffix = name.split("_")

        assert folder == "entry-attachments"
        assert owner == str(user_id)
        assert epoch_ms.isdigit()
        assert len(suffix) == 32

    def test_keys_are_unique(self, service):
        user_id = uuid4()
        assert service.build_storage_key(user_id) != service.build_storage_key(user_id)

    def test_public_url(self, service):
        url = service.public_url("entry-attachments/u/1_abc")
        assert url.startswith("https://res.cloudinary.com/demo/")
        assert url.endswith("entry-attachments/u/1_abc")

    def test_resolve_url_passes_links_through(self, service):
        link = Attachment(url="https://example.com/r.png")
        stored = Attachment(url="entry-attachments/u/1_abc", kind=AttachmentKind.UPLOADED)
        urls = service.resolve_urls([link, stored])
        assert urls[0] == "https://example.com/r.png"
        assert urls[1] == service.public_url(stored.url)


class TestUploadMany:
    """Tests for upload_many."""

    def test_uploads_every_file(self, service, uploads):
        calls, _ = uploads
        user_id = uuid4()

        attachments = asyncio.run(service.upload_many(
            [("a.png", png_bytes("red")), ("b.png", png_bytes("blue"))],
            user_id,
        ))

        assert len(attachments) == 2
        assert all(a.kind == AttachmentKind.UPLOADED for a in attachments)
        assert sorted(a.url for a in attachments) == sorted(calls)
        assert all(a.url.startswith(f"entry-attachments/{user_id}/") for a in attachments)

    def test_invalid_file_stops_before_any_upload(self, service, uploads):
        calls, _ = uploads
        with pytest.raises(AttachmentValidationError):
            asyncio.run(service.upload_many(
                [("a.png", png_bytes()), ("notes.txt", b"hello")],
                uuid4(),
            ))
        assert calls == []

    def test_partial_failure_removes_uploaded_files(self, service, uploads, deletes):
        calls, fail_on = uploads
        bad = png_bytes("blue")
        fail_on.append(bad)

        with pytest.raises(AttachmentUploadError, match="1 of 2"):
            asyncio.run(service.upload_many(
                [("a.png", png_bytes("red")), ("b.png", bad)],
                uuid4(),
            ))

        assert len(calls) == 1
        assert deletes == [calls]

    def test_empty_submission(self, service, uploads):
        assert asyncio.run(service.upload_many([], uuid4())) == []


class TestDelete:

    def test_counts_deleted(self, service, deletes):
        assert asyncio.run(service.delete(["k1", "k2"])) == 2
        assert deletes == [["k1", "k2"]]

    def test_nothing_to_delete(self, service, deletes):
        assert asyncio.run(service.delete([])) == 0
        assert deletes == []

    def test_not_found_is_not_counted(self, service, monkeypatch):
        monkeypatch.setattr(
            cloudinary.api,
            "delete_resources",
            lambda keys, **kwargs: {"deleted": {"k1": "deleted", "k2": "not_found"}},
        )
        assert asyncio.run(service.delete(["k1", "k2"])) == 1

    def test_sdk_error(self, service, monkeypatch):
        def boom(keys, **kwargs):
            raise cloudinary.exceptions.Error("unauthorized")

        monkeypatch.setattr(cloudinary.api, "delete_resources", boom)
        with pytest.raises(AttachmentDeleteError):
            asyncio.run(service.delete(["k1"]))
