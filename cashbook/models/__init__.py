"""
Data Models Package

This package contains all Pydantic models used in the Shared Cashbook.
All data flowing through the system must conform to these schemas.
"""

from cashbook.models.book import (
    PENDING_MEMBER_USER_ID,
    AccessLevel,
    Book,
    BookMember,
    BookSummary,
    MemberRole,
)
from cashbook.models.entry import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    DEFAULT_PAYMENT_MODE,
    PAYMENT_MODES,
    Attachment,
    AttachmentKind,
    Entry,
    EntryDraft,
    EntryType,
)
from cashbook.models.user import AuthSession, UserAccount
from cashbook.models.validation import ValidationIssue, ValidationResult
from cashbook.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Book models
    "PENDING_MEMBER_USER_ID",
    "AccessLevel",
    "Book",
    "BookMember",
    "BookSummary",
    "MemberRole",
    # Entry models
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "DEFAULT_PAYMENT_MODE",
    "PAYMENT_MODES",
    "Attachment",
    "AttachmentKind",
    "Entry",
    "EntryDraft",
    "EntryType",
    # Accounts
    "AuthSession",
    "UserAccount",
    # Validation
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
