"""
Services package.

Authentication is imported from cashbook.services.auth directly.
"""

from cashbook.services.attachments import (
    AttachmentDeleteError,
    AttachmentError,
    AttachmentServiceInterface,
    AttachmentUploadError,
    AttachmentValidationError,
    CloudinaryAttachmentService,
)
from cashbook.services.storage import (
    AuditStorageInterface,
    BookStorageInterface,
    ConnectionError,
    DuplicateError,
    EntryStorageInterface,
    MemberStorageInterface,
    NotFoundError,
    StorageError,
    UserStorageInterface,
)

__all__ = [
    # Attachment services
    "AttachmentDeleteError",
    "AttachmentError",
    "AttachmentServiceInterface",
    "AttachmentUploadError",
    "AttachmentValidationError",
    "CloudinaryAttachmentService",
    # Storage services
    "AuditStorageInterface",
    "BookStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "EntryStorageInterface",
    "MemberStorageInterface",
    "NotFoundError",
    "StorageError",
    "UserStorageInterface",
]
