"""
Attachment Storage using Cloudinary

Entry attachments (receipts, bills, photos of cheques) are images stored
in Cloudinary under a per-user prefix:

    <folder>/<user_id>/<epoch_ms>_<uuid>

The entry row stores that key, not a URL; URLs are built on demand.

This service handles:
1. Validating image files before any upload (size, extension, decodable)
2. Uploading one submission's files concurrently
3. Building public URLs for stored keys
4. Deleting stored objects when their entry goes away
"""

import asyncio
import time
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import PurePath
from typing import Optional, Sequence
from uuid import UUID, uuid4

import cloudinary
import cloudinary.api
import cloudinary.exceptions
import cloudinary.uploader
from cloudinary import CloudinaryImage
from PIL import Image

from cashbook.config import get_settings
from cashbook.config.settings import AppSettings, CloudinarySettings
from cashbook.models.entry import Attachment, AttachmentKind


class AttachmentError(Exception):
    """Base exception for attachment storage errors."""
    pass


class AttachmentValidationError(AttachmentError):
    """File is not an acceptable image."""
    pass


class AttachmentUploadError(AttachmentError):
    """Failed to upload to Cloudinary."""
    pass


class AttachmentDeleteError(AttachmentError):
    """Failed to delete from Cloudinary."""
    pass


class AttachmentServiceInterface(ABC):
    """Object storage for entry attachments."""

    @abstractmethod
    async def upload_many(
        self,
        files: Sequence[tuple[str, bytes]],
        user_id: UUID,
    ) -> list[Attachment]:
        """
        Upload (filename, bytes) pairs for one submission.

        Either every file is stored or the call raises and none is kept.
        """
        pass

    @abstractmethod
    async def delete(self, keys: Sequence[str]) -> int:
        """Delete stored objects by key. Returns how many were deleted."""
        pass

    @abstractmethod
    def public_url(self, key: str) -> str:
        """Public URL of a stored object."""
        pass

    def resolve_url(self, attachment: Attachment) -> str:
        """Displayable URL: uploaded keys are resolved, links pass through."""
        if attachment.kind == AttachmentKind.UPLOADED:
            return self.public_url(attachment.url)
        return attachment.url

    def resolve_urls(self, attachments: Sequence[Attachment]) -> list[str]:
        return [self.resolve_url(a) for a in attachments]


class CloudinaryAttachmentService(AttachmentServiceInterface):
    """
    Cloudinary-backed attachment storage.

    Flow:
    1. Validate every file of the submission
    2. Upload them concurrently and wait for all
    3. On any failure remove the ones that did upload, then raise
    """

    def __init__(
        self,
        settings: Optional[CloudinarySettings] = None,
        app_settings: Optional[AppSettings] = None,
    ):
        self._settings = settings or get_settings().cloudinary
        self._app_settings = app_settings or get_settings().app
        self._configured = False

    def _configure(self):
        """Configure Cloudinary SDK."""
        if not self._configured:
            cloudinary.config(
                cloud_name=self._settings.cloud_name,
                api_key=self._settings.api_key,
                api_secret=self._settings.api_secret,
                secure=True,
            )
            self._configured = True

    def build_storage_key(self, user_id: UUID) -> str:
        """Unique per-user key for a new object."""
        epoch_ms = int(time.time() * 1000)
        return f"{self._settings.folder}/{user_id}/{epoch_ms}_{uuid4().hex}"

    def validate_image(self, image_bytes: bytes, filename: str) -> None:
        """
        Check a file before upload.

        Raises:
            AttachmentValidationError: if the file is too large, has an
                unsupported extension, or is not a readable image
        """
        max_bytes = self._app_settings.max_attachment_size_bytes
        if len(image_bytes) > max_bytes:
            raise AttachmentValidationError(
                f"{filename} is larger than {self._app_settings.max_attachment_size_mb}MB"
            )
        if not image_bytes:
            raise AttachmentValidationError(f"{filename} is empty")

        extension = PurePath(filename).suffix.lower().lstrip(".")
        if extension not in self._app_settings.supported_formats_list:
            raise AttachmentValidationError(
                f"{filename} is not a supported image "
                f"({', '.join(self._app_settings.supported_formats_list)})"
            )

        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img.verify()
        except (OSError, SyntaxError, ValueError):
            raise AttachmentValidationError(f"{filename} is not a valid image")

    def _upload_sync(self, image_bytes: bytes, key: str) -> None:
        try:
            cloudinary.uploader.upload(
                image_bytes,
                public_id=key,
                resource_type="image",
                overwrite=False,
            )
        except cloudinary.exceptions.Error as e:
            raise AttachmentUploadError(f"Cloudinary error: {e}")
        except Exception as e:
            raise AttachmentUploadError(f"Failed to upload attachment: {e}")

    async def upload(self, image_bytes: bytes, filename: str, user_id: UUID) -> Attachment:
        """
        Validate and upload a single image.

        Raises:
            AttachmentValidationError: If the file is rejected
            AttachmentUploadError: If upload fails
        """
        self.validate_image(image_bytes, filename)
        self._configure()
        key = self.build_storage_key(user_id)
        await asyncio.to_thread(self._upload_sync, image_bytes, key)
        return Attachment(url=key, kind=AttachmentKind.UPLOADED)

    async def upload_many(
        self,
        files: Sequence[tuple[str, bytes]],
        user_id: UUID,
    ) -> list[Attachment]:
        # Reject the whole submission before anything is uploaded
        for filename, image_bytes in files:
            self.validate_image(image_bytes, filename)

        results = await asyncio.gather(
            *(self.upload(image_bytes, filename, user_id) for filename, image_bytes in files),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            uploaded = [r.url for r in results if isinstance(r, Attachment)]
            if uploaded:
                await self.delete(uploaded)
            raise AttachmentUploadError(
                f"{len(failures)} of {len(files)} attachment(s) failed to upload: {failures[0]}"
            )

        return list(results)

    def public_url(self, key: str) -> str:
        self._configure()
        return CloudinaryImage(key).build_url()

    async def delete(self, keys: Sequence[str]) -> int:
        """
        Delete uploaded objects.

        Raises:
            AttachmentDeleteError: If Cloudinary rejects the request
        """
        keys = list(keys)
        if not keys:
            return 0
        self._configure()
        try:
            result = await asyncio.to_thread(cloudinary.api.delete_resources, keys)
        except cloudinary.exceptions.Error as e:
            raise AttachmentDeleteError(f"Cloudinary error: {e}")

        deleted = result.get("deleted", {})
        return sum(1 for status in deleted.values() if status == "deleted")
