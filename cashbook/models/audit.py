"""
Audit Models for Shared Cashbook

Every significant user action is logged for audit purposes. With several
people editing one book, the audit trail is how an owner finds out who
added, changed or removed what.

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    USER_SIGNED_UP = "user_signed_up"
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"
    SIGN_IN_FAILED = "sign_in_failed"

    # Books
    BOOK_CREATED = "book_created"
    BOOK_RENAMED = "book_renamed"
    BOOK_DELETED = "book_deleted"

    # Entries
    ENTRY_SAVED = "entry_saved"
    ENTRY_UPDATED = "entry_updated"
    ENTRY_DELETED = "entry_deleted"
    ENTRY_VALIDATION_FAILED = "entry_validation_failed"

    # Attachments
    ATTACHMENTS_UPLOADED = "attachments_uploaded"
    ATTACHMENTS_DELETED = "attachments_deleted"

    # CSV interchange
    CSV_IMPORTED = "csv_imported"
    CSV_IMPORT_FAILED = "csv_import_failed"
    CSV_EXPORTED = "csv_exported"

    # Membership
    MEMBER_INVITED = "member_invited"
    MEMBER_REMOVED = "member_removed"
    MEMBERSHIPS_CLAIMED = "memberships_claimed"
    ACCESS_DENIED = "access_denied"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'book', 'entry', 'member')"
    )
    entity_id: Optional[UUID] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Who did it
    user_id: Optional[UUID] = Field(
        default=None,
        description="User who triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events of one import)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "user_id": str(self.user_id) if self.user_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         user_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.user_id) if self.user_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.book_created(book_id, name, user_id)
        event = AuditEventBuilder.csv_imported(book_id, 12, user_id, correlation_id)
    """

    @staticmethod
    def user_signed_up(user_id: UUID, email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_UP,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"Account created: {email}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def user_signed_in(user_id: UUID, email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_IN,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"Signed in: {email}",
            is_user_action=True,
        )

    @staticmethod
    def user_signed_out(user_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_OUT,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description="Signed out",
            is_user_action=True,
        )

    @staticmethod
    def sign_in_failed(email: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SIGN_IN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            description=f"Failed sign-in attempt for {email}",
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def book_created(book_id: UUID, name: str, user_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BOOK_CREATED,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            description=f"Book created: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def book_renamed(
        book_id: UUID,
        old_name: str,
        new_name: str,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BOOK_RENAMED,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            description=f"Book renamed: {old_name} -> {new_name}",
            details={"old_name": old_name, "new_name": new_name},
            is_user_action=True,
        )

    @staticmethod
    def book_deleted(
        book_id: UUID,
        name: str,
        entry_count: int,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BOOK_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            description=f"Book deleted: {name} ({entry_count} entries)",
            details={"name": name, "entry_count": entry_count},
            is_user_action=True,
        )

    @staticmethod
    def entry_saved(
        entry_id: UUID,
        book_id: UUID,
        entry_type: str,
        amount: str,
        user_id: UUID,
        updated: bool = False,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        verb = "updated" if updated else "added"
        return AuditEvent(
            event_type=AuditEventType.ENTRY_UPDATED if updated else AuditEventType.ENTRY_SAVED,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Entry {verb}: {entry_type} {amount}",
            details={
                "book_id": str(book_id),
                "type": entry_type,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def entry_deleted(
        entry_id: UUID,
        book_id: UUID,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_DELETED,
            entity_type="entry",
            entity_id=entry_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Entry deleted",
            details={"book_id": str(book_id)},
            is_user_action=True,
        )

    @staticmethod
    def entry_validation_failed(
        book_id: UUID,
        issues: list[dict],
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            description=f"Entry rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def attachments_uploaded(
        keys: list[str],
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENTS_UPLOADED,
            entity_type="attachment",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{len(keys)} attachment(s) uploaded",
            details={"keys": keys},
        )

    @staticmethod
    def attachments_deleted(
        keys: list[str],
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ATTACHMENTS_DELETED,
            entity_type="attachment",
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{len(keys)} attachment(s) deleted",
            details={"keys": keys},
        )

    @staticmethod
    def csv_imported(
        book_id: UUID,
        entry_count: int,
        user_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_IMPORTED,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Imported {entry_count} entries from CSV",
            details={"entry_count": entry_count},
            is_user_action=True,
        )

    @staticmethod
    def csv_import_failed(
        book_id: UUID,
        error_message: str,
        user_id: UUID,
        row_number: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_IMPORT_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="CSV import rejected",
            error_message=error_message,
            details={"row_number": row_number},
            is_user_action=True,
        )

    @staticmethod
    def csv_exported(
        book_id: UUID,
        entry_count: int,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CSV_EXPORTED,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            description=f"Exported {entry_count} entries to CSV",
            details={"entry_count": entry_count},
            is_user_action=True,
        )

    @staticmethod
    def member_invited(
        member_id: UUID,
        book_id: UUID,
        email: str,
        role: str,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_INVITED,
            entity_type="member",
            entity_id=member_id,
            user_id=user_id,
            description=f"Invited {email} as {role}",
            details={"book_id": str(book_id), "email": email, "role": role},
            is_user_action=True,
        )

    @staticmethod
    def member_removed(
        member_id: UUID,
        book_id: UUID,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_REMOVED,
            entity_type="member",
            entity_id=member_id,
            user_id=user_id,
            description="Member removed",
            details={"book_id": str(book_id)},
            is_user_action=True,
        )

    @staticmethod
    def memberships_claimed(
        user_id: UUID,
        email: str,
        count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBERSHIPS_CLAIMED,
            entity_type="user",
            entity_id=user_id,
            user_id=user_id,
            description=f"{count} pending invitation(s) linked to {email}",
            details={"email": email, "count": count},
        )

    @staticmethod
    def access_denied(
        book_id: UUID,
        action: str,
        user_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type="book",
            entity_id=book_id,
            user_id=user_id,
            description=f"Access denied: {action}",
            details={"action": action},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
