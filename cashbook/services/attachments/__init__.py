"""Attachment storage services package."""

from cashbook.services.attachments.cloudinary_service import (
    AttachmentDeleteError,
    AttachmentError,
    AttachmentServiceInterface,
    AttachmentUploadError,
    AttachmentValidationError,
    CloudinaryAttachmentService,
)

__all__ = [
    "AttachmentDeleteError",
    "AttachmentError",
    "AttachmentServiceInterface",
    "AttachmentUploadError",
    "AttachmentValidationError",
    "CloudinaryAttachmentService",
]
