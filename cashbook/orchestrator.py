"""
Main Orchestrator for Shared Cashbook

This module ties together all the components and defines the
user-action flows for:
1. Books (list, create, rename, delete, open)
2. Entries (save with attachments, delete, CSV import/export)
3. Members (invite, remove)

The orchestrator enforces the boundaries:
- Every action is checked against the user's access to the book
- Attachments are uploaded before the entry row is written
- CSV imports are all-or-nothing
- Every step is audited
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict, EmailStr, TypeAdapter, ValidationError

from cashbook.access import (
    AccessDeniedError,
    require_edit_entries,
    require_manage_book,
    require_view,
    resolve_access,
)
from cashbook.audit import AuditLogger, create_correlation_id
from cashbook.interchange import (
    CSVImportError,
    export_entries_to_csv,
    export_filename,
    format_amount,
    parse_csv_to_entries,
)
from cashbook.ledger import LedgerTotals, book_balance, compute_totals, running_balances
from cashbook.models.book import (
    PENDING_MEMBER_USER_ID,
    AccessLevel,
    Book,
    BookMember,
    BookSummary,
    MemberRole,
)
from cashbook.models.entry import Attachment, Entry, EntryDraft
from cashbook.models.validation import ValidationResult
from cashbook.services.attachments import (
    AttachmentError,
    AttachmentServiceInterface,
    AttachmentUploadError,
    AttachmentValidationError,
    CloudinaryAttachmentService,
)
from cashbook.services.auth import AuthService
from cashbook.services.storage import (
    BookStorageInterface,
    DuplicateError,
    EntryStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBookStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStorage,
    GoogleSheetsMemberStorage,
    GoogleSheetsUserStorage,
    InMemoryAuditStorage,
    InMemoryBookStorage,
    InMemoryEntryStorage,
    InMemoryMemberStorage,
    InMemoryUserStorage,
    MemberStorageInterface,
    NotFoundError,
    StorageError,
    UserStorageInterface,
)
from cashbook.validation import EntryValidationError, EntryValidator


logger = structlog.get_logger(__name__)

_email_adapter = TypeAdapter(EmailStr)


class BookLedger(BaseModel):
    """An opened book: everything the book detail view renders."""

    book: Book
    access: AccessLevel
    entries: list[Entry]
    members: list[BookMember]

    @property
    def totals(self) -> LedgerTotals:
        return compute_totals(self.entries)

    @property
    def balance(self) -> Decimal:
        return book_balance(self.entries)

    def balances_by_entry(self) -> dict[UUID, Decimal]:
        """Running balance per entry id."""
        return {
            entry.id: balance
            for entry, balance in zip(self.entries, running_balances(self.entries))
        }


class _BookScopedFlow:
    """Loads a book with the caller's access and audits refusals."""

    def __init__(
        self,
        book_storage: BookStorageInterface,
        member_storage: MemberStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._book_storage = book_storage
        self._member_storage = member_storage
        self._audit_logger = audit_logger or AuditLogger()

    async def _load_book(self, book_id: UUID, user_id: UUID) -> tuple[Book, list[BookMember], AccessLevel]:
        book = await self._book_storage.get_book(book_id)
        if book is None:
            raise NotFoundError(f"Book not found: {book_id}")
        members = await self._member_storage.list_members(book_id)
        return book, members, resolve_access(book, user_id, members)

    async def _authorize(self, check, book: Book, access: AccessLevel, user_id: UUID, action: str) -> None:
        try:
            check(book, access, action)
        except AccessDeniedError:
            await self._audit_logger.log_access_denied(book.id, action, user_id)
            raise

    async def _touch_book(self, book: Book) -> None:
        book.updated_at = datetime.utcnow()
        await self._book_storage.update_book(book)


class BookFlow(_BookScopedFlow):
    """Book list and book lifecycle."""

    def __init__(
        self,
        book_storage: BookStorageInterface,
        entry_storage: EntryStorageInterface,
        member_storage: MemberStorageInterface,
        attachment_service: Optional[AttachmentServiceInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(book_storage, member_storage, audit_logger)
        self._entry_storage = entry_storage
        self._attachment_service = attachment_service

    async def list_books(self, user_id: UUID) -> list[BookSummary]:
        """
        Books the user owns or is a member of, most recently updated first.

        Each summary carries the book balance and member count.
        """
        memberships = await self._member_storage.list_memberships_for_user(user_id)
        books = await self._book_storage.list_books(
            user_id,
            shared_book_ids=[m.book_id for m in memberships],
        )

        summaries = []
        for book in books:
            entries = await self._entry_storage.list_entries(book.id)
            members = await self._member_storage.list_members(book.id)
            summaries.append(BookSummary(
                book=book,
                balance=book_balance(entries),
                members_count=len(members),
                access=resolve_access(book, user_id, members),
            ))
        return summaries

    async def create_book(self, user_id: UUID, name: str) -> Book:
        """
        Create a book owned by the user.

        Raises:
            ValidationError: If the name is empty or too long
        """
        book = Book(name=name, owner_user_id=user_id)
        await self._book_storage.create_book(book)
        await self._audit_logger.log_book_created(book.id, book.name, user_id)
        return book

    async def rename_book(self, book_id: UUID, user_id: UUID, new_name: str) -> Book:
        book, _, access = await self._load_book(book_id, user_id)
        await self._authorize(require_manage_book, book, access, user_id, "rename this book")

        old_name = book.name
        renamed = Book.model_validate({
            **book.model_dump(),
            "name": new_name,
            "updated_at": datetime.utcnow(),
        })
        await self._book_storage.update_book(renamed)
        await self._audit_logger.log_book_renamed(book.id, old_name, renamed.name, user_id)
        return renamed

    async def delete_book(self, book_id: UUID, user_id: UUID) -> int:
        """
        Delete a book with its entries, attachments and memberships.

        Uploaded attachment objects are removed first; if that fails the
        book is left untouched.

        Returns:
            Number of entries deleted
        """
        correlation_id = create_correlation_id()
        book, _, access = await self._load_book(book_id, user_id)
        await self._authorize(require_manage_book, book, access, user_id, "delete this book")

        entries = await self._entry_storage.list_entries(book_id)
        keys = [key for entry in entries for key in entry.uploaded_keys]
        if keys and self._attachment_service:
            await self._attachment_service.delete(keys)
            await self._audit_logger.log_attachments_deleted(keys, user_id, correlation_id)

        deleted = await self._entry_storage.delete_entries_for_book(book_id)
        await self._member_storage.delete_members_for_book(book_id)
        await self._book_storage.delete_book(book_id)

        await self._audit_logger.log_book_deleted(book.id, book.name, len(deleted), user_id)
        return len(deleted)

    async def open_book(self, book_id: UUID, user_id: UUID) -> BookLedger:
        """
        Load a book for display.

        Raises:
            NotFoundError: If the book doesn't exist
            AccessDeniedError: If the user has no access
        """
        book, members, access = await self._load_book(book_id, user_id)
        await self._authorize(require_view, book, access, user_id, "view this book")
        entries = await self._entry_storage.list_entries(book_id)
        return BookLedger(book=book, access=access, entries=entries, members=members)


class EntryFlow(_BookScopedFlow):
    """
    Orchestrates entry changes.

    Save flow:
    1. Validate form → EntryDraft (EntryValidator)
    2. Upload new files concurrently, wait for all
    3. Write the entry row once
    If step 2 fails nothing is written; if step 3 fails the fresh uploads
    are removed again.
    """

    def __init__(
        self,
        entry_storage: EntryStorageInterface,
        book_storage: BookStorageInterface,
        member_storage: MemberStorageInterface,
        attachment_service: Optional[AttachmentServiceInterface] = None,
        validator: Optional[EntryValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(book_storage, member_storage, audit_logger)
        self._entry_storage = entry_storage
        self._attachment_service = attachment_service
        self._validator = validator or EntryValidator()

    async def get_entry(self, book_id: UUID, entry_id: UUID, user_id: UUID) -> Entry:
        book, _, access = await self._load_book(book_id, user_id)
        await self._authorize(require_view, book, access, user_id, "view this book")

        entry = await self._entry_storage.get_entry(entry_id)
        if entry is None or entry.book_id != book_id:
            raise NotFoundError(f"Entry not found: {entry_id}")
        return entry

    async def build_draft(
        self,
        book_id: UUID,
        user_id: UUID,
        amount,
        entry_type: Optional[str],
        entry_date: Optional[date],
        entry_time: Optional[time],
        remark: Optional[str] = "",
        payment_mode: Optional[str] = None,
        category: Optional[str] = None,
        attachments: Sequence[Attachment] = (),
    ) -> tuple[EntryDraft, ValidationResult]:
        """
        Validate the entry form.

        Raises:
            EntryValidationError: If the form has blocking errors (audited)

        Returns:
            (draft, validation_result)
        """
        try:
            return self._validator.build_draft(
                amount=amount,
                entry_type=entry_type,
                entry_date=entry_date,
                entry_time=entry_time,
                remark=remark,
                payment_mode=payment_mode,
                category=category,
                attachments=attachments,
            )
        except EntryValidationError as e:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in e.result.issues
            ]
            await self._audit_logger.log_validation_failed(book_id, issues, user_id)
            raise

    def validation_summary(self, result: ValidationResult) -> str:
        return self._validator.get_user_friendly_summary(result)

    async def _upload(
        self,
        files: Sequence[tuple[str, bytes]],
        user_id: UUID,
        correlation_id: UUID,
    ) -> list[Attachment]:
        if not files:
            return []
        if self._attachment_service is None:
            raise AttachmentUploadError("Attachment storage is not configured")

        try:
            uploaded = await self._attachment_service.upload_many(files, user_id)
        except AttachmentValidationError:
            raise
        except AttachmentError as e:
            await self._audit_logger.log_external_service_error(
                service="cloudinary",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise

        await self._audit_logger.log_attachments_uploaded(
            [a.url for a in uploaded], user_id, correlation_id,
        )
        return uploaded

    async def _discard_uploads(self, keys: list[str], user_id: UUID, correlation_id: UUID) -> None:
        """Remove objects that no entry references any more."""
        if not keys or self._attachment_service is None:
            return
        try:
            await self._attachment_service.delete(keys)
            await self._audit_logger.log_attachments_deleted(keys, user_id, correlation_id)
        except AttachmentError as e:
            # Orphaned objects are left behind; the entry change itself stands
            await self._audit_logger.log_external_service_error(
                service="cloudinary",
                error_message=f"Could not delete {keys}: {e}",
                correlation_id=correlation_id,
            )

    async def save_entry(
        self,
        book_id: UUID,
        user_id: UUID,
        draft: EntryDraft,
        new_files: Sequence[tuple[str, bytes]] = (),
        entry_id: Optional[UUID] = None,
    ) -> Entry:
        """
        Create an entry, or update `entry_id`.

        Args:
            book_id: Target book
            user_id: Acting user
            draft: Validated entry fields; its attachments are the ones kept
            new_files: (filename, bytes) pairs to upload and attach
            entry_id: Existing entry to update, or None to create

        Raises:
            AccessDeniedError: If the user cannot edit entries
            NotFoundError: If entry_id doesn't exist in this book
            AttachmentValidationError / AttachmentUploadError: upload failed,
                nothing written
        """
        correlation_id = create_correlation_id()
        book, _, access = await self._load_book(book_id, user_id)
        action = "edit entries" if entry_id else "add entries"
        await self._authorize(require_edit_entries, book, access, user_id, action)

        existing = None
        if entry_id is not None:
            existing = await self._entry_storage.get_entry(entry_id)
            if existing is None or existing.book_id != book_id:
                raise NotFoundError(f"Entry not found: {entry_id}")

        uploaded = await self._upload(new_files, user_id, correlation_id)
        draft = draft.model_copy(update={"attachments": [*draft.attachments, *uploaded]})

        if existing is None:
            entry = Entry.from_draft(draft, book_id, user_id)
        else:
            entry = Entry.from_draft(draft, book_id, existing.user_id, entry_id=existing.id)
            entry.created_at = existing.created_at

        try:
            if existing is None:
                await self._entry_storage.save_entry(entry)
            else:
                await self._entry_storage.update_entry(entry)
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type="entry_write_failed",
                error_message=str(e),
                details={"book_id": str(book_id), "entry_id": str(entry.id)},
                correlation_id=correlation_id,
            )
            await self._discard_uploads([a.url for a in uploaded], user_id, correlation_id)
            raise

        if existing is not None:
            kept = set(entry.uploaded_keys)
            dropped = [key for key in existing.uploaded_keys if key not in kept]
            await self._discard_uploads(dropped, user_id, correlation_id)

        await self._touch_book(book)
        await self._audit_logger.log_entry_saved(
            entry_id=entry.id,
            book_id=book_id,
            entry_type=entry.type.value,
            amount=format_amount(entry.amount),
            user_id=user_id,
            updated=existing is not None,
            correlation_id=correlation_id,
        )
        return entry

    async def delete_entry(self, book_id: UUID, entry_id: UUID, user_id: UUID) -> None:
        """
        Delete an entry and its uploaded attachments.

        Objects are removed from attachment storage before the row; linked
        URLs are left alone.
        """
        correlation_id = create_correlation_id()
        book, _, access = await self._load_book(book_id, user_id)
        await self._authorize(require_edit_entries, book, access, user_id, "delete entries")

        entry = await self._entry_storage.get_entry(entry_id)
        if entry is None or entry.book_id != book_id:
            raise NotFoundError(f"Entry not found: {entry_id}")

        keys = entry.uploaded_keys
        if keys:
            if self._attachment_service is None:
                logger.warning("attachments_not_deleted", entry_id=str(entry_id), keys=keys)
            else:
                await self._attachment_service.delete(keys)
                await self._audit_logger.log_attachments_deleted(keys, user_id, correlation_id)

        await self._entry_storage.delete_entry(entry_id)
        await self._touch_book(book)
        await self._audit_logger.log_entry_deleted(entry_id, book_id, user_id, correlation_id)

    async def import_csv(self, book_id: UUID, user_id: UUID, csv_content: str) -> list[Entry]:
        """
        Import every row of a CSV file into a book.

        Raises:
            CSVImportError: On the first bad row; nothing is written
        """
        correlation_id = create_correlation_id()
        book, _, access = await self._load_book(book_id, user_id)
        await self._authorize(require_edit_entries, book, access, user_id, "import entries")

        try:
            drafts = parse_csv_to_entries(csv_content)
            if not drafts:
                raise CSVImportError("No entries found in CSV file")
        except CSVImportError as e:
            await self._audit_logger.log_csv_import_failed(
                book_id=book_id,
                error_message=str(e),
                user_id=user_id,
                row_number=e.row_number,
                correlation_id=correlation_id,
            )
            raise

        entries = [Entry.from_draft(draft, book_id, user_id) for draft in drafts]
        try:
            await self._entry_storage.save_entries(entries)
        except StorageError as e:
            await self._audit_logger.log_error(
                error_type="csv_import_write_failed",
                error_message=str(e),
                details={"book_id": str(book_id), "entry_count": len(entries)},
                correlation_id=correlation_id,
            )
            raise
        await self._touch_book(book)
        await self._audit_logger.log_csv_imported(book_id, len(entries), user_id, correlation_id)
        return entries

    async def export_csv(
        self,
        book_id: UUID,
        user_id: UUID,
        today: Optional[date] = None,
    ) -> tuple[str, str]:
        """
        Export all entries of a book.

        Returns:
            (download filename, CSV text)
        """
        book, _, access = await self._load_book(book_id, user_id)
        await self._authorize(require_view, book, access, user_id, "view this book")

        entries = await self._entry_storage.list_entries(book_id)
        resolve_url = self._attachment_service.resolve_url if self._attachment_service else None
        content = export_entries_to_csv(entries, resolve_url=resolve_url)

        await self._audit_logger.log_csv_exported(book_id, len(entries), user_id)
        return export_filename(book.name, today), content


class MemberFlow(_BookScopedFlow):
    """Invitations and membership management (owner only)."""

    def __init__(
        self,
        member_storage: MemberStorageInterface,
        book_storage: BookStorageInterface,
        user_storage: Optional[UserStorageInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__(book_storage, member_storage, audit_logger)
        self._user_storage = user_storage

    async def list_members(self, book_id: UUID, user_id: UUID) -> list[BookMember]:
        book, members, access = await self._load_book(book_id, user_id)
        await self._authorize(require_view, book, access, user_id, "view this book")
        return members

    async def invite_member(
        self,
        book_id: UUID,
        user_id: UUID,
        email: str,
        role: MemberRole = MemberRole.VIEWER,
    ) -> BookMember:
        """
        Invite an email to a book.

        If an account already exists for the email it is linked right away;
        otherwise the membership stays pending until that email signs in.

        Raises:
            ValueError: If the email is not valid
            DuplicateError: If the email is already a member
        """
        book, _, access = await self._load_book(book_id, user_id)
        await self._authorize(require_manage_book, book, access, user_id, "manage members")

        email = (email or "").strip().lower()
        try:
            email = _email_adapter.validate_python(email)
        except ValidationError:
            raise ValueError("Please enter a valid email address")

        member_user_id = PENDING_MEMBER_USER_ID
        if self._user_storage:
            account = await self._user_storage.get_user_by_email(email)
            if account:
                member_user_id = account.id

        member = BookMember(
            book_id=book_id,
            user_id=member_user_id,
            email=email,
            role=MemberRole(role),
        )
        try:
            await self._member_storage.add_member(member)
        except DuplicateError:
            raise DuplicateError("This member is already added")

        await self._audit_logger.log_member_invited(
            member.id, book_id, member.email, member.role.value, user_id,
        )
        return member

    async def remove_member(self, book_id: UUID, user_id: UUID, member_id: UUID) -> None:
        book, members, access = await self._load_book(book_id, user_id)
        await self._authorize(require_manage_book, book, access, user_id, "manage members")

        if not any(m.id == member_id for m in members):
            raise NotFoundError(f"Member not found: {member_id}")

        await self._member_storage.remove_member(member_id)
        await self._audit_logger.log_member_removed(member_id, book_id, user_id)


class AppComponents(BaseModel):
    """Everything the UI needs, wired to one storage backend."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    book_flow: BookFlow
    entry_flow: EntryFlow
    member_flow: MemberFlow
    auth_service: AuthService
    attachment_service: Optional[AttachmentServiceInterface] = None
    sheets_client: Optional[GoogleSheetsClient] = None

    @property
    def storage_backend(self) -> str:
        return "google_sheets" if self.sheets_client else "memory"


def create_app_components(
    use_storage: bool = True,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.

    Returns:
        AppComponents
    """
    sheets_client = None

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
        except ValidationError as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
            sheets_client = None

    if sheets_client:
        book_storage = GoogleSheetsBookStorage(sheets_client)
        entry_storage = GoogleSheetsEntryStorage(sheets_client)
        member_storage = GoogleSheetsMemberStorage(sheets_client)
        user_storage = GoogleSheetsUserStorage(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
    else:
        book_storage = InMemoryBookStorage()
        entry_storage = InMemoryEntryStorage()
        member_storage = InMemoryMemberStorage()
        user_storage = InMemoryUserStorage()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    try:
        attachment_service = CloudinaryAttachmentService()
    except ValidationError as e:
        logger.warning("attachments_not_configured", error=str(e))
        attachment_service = None

    return AppComponents(
        book_flow=BookFlow(
            book_storage=book_storage,
            entry_storage=entry_storage,
            member_storage=member_storage,
            attachment_service=attachment_service,
            audit_logger=audit_logger,
        ),
        entry_flow=EntryFlow(
            entry_storage=entry_storage,
            book_storage=book_storage,
            member_storage=member_storage,
            attachment_service=attachment_service,
            audit_logger=audit_logger,
        ),
        member_flow=MemberFlow(
            member_storage=member_storage,
            book_storage=book_storage,
            user_storage=user_storage,
            audit_logger=audit_logger,
        ),
        auth_service=AuthService(
            user_storage=user_storage,
            member_storage=member_storage,
            audit_logger=audit_logger,
        ),
        attachment_service=attachment_service,
        sheets_client=sheets_client,
    )
