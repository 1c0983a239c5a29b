"""
Audit Logger

Every significant action in the system is logged:
book and entry changes, CSV imports and exports, invitations, sign-ins
and failures of the services we depend on.

The audit logger:
- Always writes a structured local log line
- Appends the event to the audit worksheet when storage is configured
- Never breaks the user action if the audit write fails
- Supports correlation IDs to trace the events of one user action
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from cashbook.models.audit import AuditEvent, AuditEventBuilder
from cashbook.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit worksheet (for persistence)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("cashbook.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # The audit trail is secondary to the action being audited
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_book_created(self, book_id: UUID, name: str, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.book_created(book_id, name, user_id))

    async def log_book_renamed(
        self,
        book_id: UUID,
        old_name: str,
        new_name: str,
        user_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.book_renamed(book_id, old_name, new_name, user_id))

    async def log_book_deleted(
        self,
        book_id: UUID,
        name: str,
        entry_count: int,
        user_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.book_deleted(book_id, name, entry_count, user_id))

    async def log_entry_saved(
        self,
        entry_id: UUID,
        book_id: UUID,
        entry_type: str,
        amount: str,
        user_id: UUID,
        updated: bool,
        correlation_id: UUID,
    ) -> None:
        """Log an entry being added or updated."""
        event = AuditEventBuilder.entry_saved(
            entry_id=entry_id,
            book_id=book_id,
            entry_type=entry_type,
            amount=amount,
            user_id=user_id,
            updated=updated,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entry_deleted(
        self,
        entry_id: UUID,
        book_id: UUID,
        user_id: UUID,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.entry_deleted(
            entry_id=entry_id,
            book_id=book_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        book_id: UUID,
        issues: list[dict],
        user_id: UUID,
    ) -> None:
        """Log an entry form rejected by validation."""
        await self.log(AuditEventBuilder.entry_validation_failed(book_id, issues, user_id))

    async def log_attachments_uploaded(
        self,
        keys: list[str],
        user_id: UUID,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.attachments_uploaded(
            keys=keys,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_attachments_deleted(
        self,
        keys: list[str],
        user_id: UUID,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.attachments_deleted(
            keys=keys,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_csv_imported(
        self,
        book_id: UUID,
        entry_count: int,
        user_id: UUID,
        correlation_id: UUID,
    ) -> None:
        """Log a successful CSV import."""
        event = AuditEventBuilder.csv_imported(
            book_id=book_id,
            entry_count=entry_count,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_csv_import_failed(
        self,
        book_id: UUID,
        error_message: str,
        user_id: UUID,
        row_number: Optional[int],
        correlation_id: UUID,
    ) -> None:
        """Log a rejected CSV import."""
        event = AuditEventBuilder.csv_import_failed(
            book_id=book_id,
            error_message=error_message,
            user_id=user_id,
            row_number=row_number,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_csv_exported(self, book_id: UUID, entry_count: int, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.csv_exported(book_id, entry_count, user_id))

    async def log_member_invited(
        self,
        member_id: UUID,
        book_id: UUID,
        email: str,
        role: str,
        user_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.member_invited(member_id, book_id, email, role, user_id))

    async def log_member_removed(self, member_id: UUID, book_id: UUID, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.member_removed(member_id, book_id, user_id))

    async def log_access_denied(self, book_id: UUID, action: str, user_id: UUID) -> None:
        await self.log(AuditEventBuilder.access_denied(book_id, action, user_id))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., saving an entry).
    Pass it through all subsequent operations.
    """
    return uuid4()
