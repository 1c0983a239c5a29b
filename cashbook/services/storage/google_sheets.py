"""
Google Sheets Storage Implementation

Google Sheets is the hosted data store: one worksheet per table (Books,
BookMembers, Entries, Users, AuditLog), one record per row, header in
row 1. Non-technical owners can open the spreadsheet and see their books.

TRADEOFFS:
- Not suitable for high-volume data (fine for household cashbooks)
- No transactions (bulk imports use a single append_rows call)
- Limited query capabilities (we filter in Python)

Calls are made once; a failed call surfaces as StorageError to the UI.
"""

import json
from datetime import date, datetime, time
from decimal import Decimal
from typing import Optional, Sequence
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials

from cashbook.config import get_settings
from cashbook.models.audit import AuditEvent, AuditEventType, AuditSeverity
from cashbook.models.book import Book, BookMember, MemberRole
from cashbook.models.entry import Attachment, Entry, EntryType
from cashbook.models.user import UserAccount
from cashbook.services.storage.interface import (
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


BOOK_COLUMNS = [
    "id",
    "name",
    "owner_user_id",
    "created_at",
    "updated_at",
]

MEMBER_COLUMNS = [
    "id",
    "book_id",
    "user_id",
    "email",
    "role",
    "created_at",
]

ENTRY_COLUMNS = [
    "id",
    "book_id",
    "user_id",
    "created_at",
    "updated_at",
    "entry_date",
    "entry_time",
    "type",
    "amount",
    "remark",
    "payment_mode",
    "category",
    "attachments_json",
]

USER_COLUMNS = [
    "id",
    "email",
    "password_hash",
    "created_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "user_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_get(row: list, index: int, default: str = "") -> str:
    """Cell value, tolerating short rows and blank cells."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and creates missing worksheets with headers.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row if missing."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_books_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.books_sheet_name, BOOK_COLUMNS)

    def get_members_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.members_sheet_name, MEMBER_COLUMNS)

    def get_entries_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.entries_sheet_name, ENTRY_COLUMNS, rows=5000)

    def get_users_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.users_sheet_name, USER_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self.get_worksheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def _find_row(sheet: gspread.Worksheet, record_id: UUID) -> tuple[Optional[int], list[list[str]]]:
    """
    Locate a record by its id column.

    Returns (1-based sheet row index or None, all rows including header).
    """
    all_rows = sheet.get_all_values()
    for idx, row in enumerate(all_rows[1:], start=2):  # row 1 is header
        if row and row[0] == str(record_id):
            return idx, all_rows
    return None, all_rows


class GoogleSheetsBookStorage(BookStorageInterface):
    """Books worksheet, one book per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _book_to_row(self, book: Book) -> list:
        return [
            str(book.id),
            book.name,
            str(book.owner_user_id),
            book.created_at.isoformat(),
            book.updated_at.isoformat(),
        ]

    def _row_to_book(self, row: list) -> Book:
        return Book(
            id=UUID(_safe_get(row, 0)),
            name=_safe_get(row, 1),
            owner_user_id=UUID(_safe_get(row, 2)),
            created_at=datetime.fromisoformat(_safe_get(row, 3)),
            updated_at=datetime.fromisoformat(_safe_get(row, 4)),
        )

    async def create_book(self, book: Book) -> bool:
        try:
            sheet = self._client.get_books_sheet()
            sheet.append_row(self._book_to_row(book), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save book: {e}")

    async def get_book(self, book_id: UUID) -> Optional[Book]:
        try:
            sheet = self._client.get_books_sheet()
            idx, all_rows = _find_row(sheet, book_id)
            return self._row_to_book(all_rows[idx - 1]) if idx else None
        except Exception as e:
            raise StorageError(f"Failed to get book: {e}")

    async def update_book(self, book: Book) -> bool:
        try:
            sheet = self._client.get_books_sheet()
            idx, _ = _find_row(sheet, book.id)
            if idx is None:
                raise NotFoundError(f"Book not found: {book.id}")
            sheet.update(values=[self._book_to_row(book)], range_name=f"A{idx}")
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update book: {e}")

    async def delete_book(self, book_id: UUID) -> bool:
        try:
            sheet = self._client.get_books_sheet()
            idx, _ = _find_row(sheet, book_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete book: {e}")

    async def list_books(
        self,
        owner_user_id: UUID,
        shared_book_ids: Sequence[UUID] = (),
    ) -> list[Book]:
        """List owned and shared books, newest update first."""
        shared = {str(book_id) for book_id in shared_book_ids}
        try:
            sheet = self._client.get_books_sheet()
            all_rows = sheet.get_all_values()[1:]  # Skip header
        except Exception as e:
            raise StorageError(f"Failed to list books: {e}")

        books = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            if _safe_get(row, 2) != str(owner_user_id) and row[0] not in shared:
                continue
            try:
                books.append(self._row_to_book(row))
            except ValueError:
                continue  # Skip malformed rows

        books.sort(key=lambda b: b.updated_at, reverse=True)
        return books


class GoogleSheetsEntryStorage(EntryStorageInterface):
    """
    Entries worksheet, one entry per row.

    Attachments are JSON-serialized into a single column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _entry_to_row(self, entry: Entry) -> list:
        return [
            str(entry.id),
            str(entry.book_id),
            str(entry.user_id),
            entry.created_at.isoformat(),
            entry.updated_at.isoformat(),
            entry.entry_date.isoformat(),
            entry.entry_time.isoformat(),
            entry.type.value,
            str(entry.amount),
            entry.remark,
            entry.payment_mode,
            entry.category,
            json.dumps([a.model_dump(mode="json") for a in entry.attachments]),
        ]

    def _row_to_entry(self, row: list) -> Entry:
        attachments = []
        attachments_json = _safe_get(row, 12)
        if attachments_json:
            attachments = [Attachment(**item) for item in json.loads(attachments_json)]

        return Entry(
            id=UUID(_safe_get(row, 0)),
            book_id=UUID(_safe_get(row, 1)),
            user_id=UUID(_safe_get(row, 2)),
            created_at=datetime.fromisoformat(_safe_get(row, 3)),
            updated_at=datetime.fromisoformat(_safe_get(row, 4)),
            entry_date=date.fromisoformat(_safe_get(row, 5)),
            entry_time=time.fromisoformat(_safe_get(row, 6)),
            type=EntryType(_safe_get(row, 7)),
            amount=Decimal(_safe_get(row, 8, "0")),
            remark=_safe_get(row, 9),
            payment_mode=_safe_get(row, 10) or None,
            category=_safe_get(row, 11) or None,
            attachments=attachments,
        )

    def _rows_for_book(self, all_rows: list[list[str]], book_id: UUID) -> list[tuple[int, list[str]]]:
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)
            if row and _safe_get(row, 1) == str(book_id)
        ]

    async def save_entry(self, entry: Entry) -> bool:
        try:
            sheet = self._client.get_entries_sheet()
            sheet.append_row(self._entry_to_row(entry), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save entry: {e}")

    async def save_entries(self, entries: Sequence[Entry]) -> int:
        """Bulk insert in a single append call."""
        if not entries:
            return 0
        try:
            sheet = self._client.get_entries_sheet()
            sheet.append_rows(
                [self._entry_to_row(entry) for entry in entries],
                value_input_option="RAW",
            )
            return len(entries)
        except Exception as e:
            raise StorageError(f"Failed to save entries: {e}")

    async def get_entry(self, entry_id: UUID) -> Optional[Entry]:
        try:
            sheet = self._client.get_entries_sheet()
            idx, all_rows = _find_row(sheet, entry_id)
            return self._row_to_entry(all_rows[idx - 1]) if idx else None
        except Exception as e:
            raise StorageError(f"Failed to get entry: {e}")

    async def update_entry(self, entry: Entry) -> bool:
        try:
            sheet = self._client.get_entries_sheet()
            idx, _ = _find_row(sheet, entry.id)
            if idx is None:
                raise NotFoundError(f"Entry not found: {entry.id}")
            entry.updated_at = datetime.utcnow()
            sheet.update(values=[self._entry_to_row(entry)], range_name=f"A{idx}")
            return True
        except NotFoundError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update entry: {e}")

    async def delete_entry(self, entry_id: UUID) -> bool:
        try:
            sheet = self._client.get_entries_sheet()
            idx, _ = _find_row(sheet, entry_id)
            if idx is None:
                return False
            sheet.delete_rows(idx)
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete entry: {e}")

    async def list_entries(self, book_id: UUID) -> list[Entry]:
        try:
            sheet = self._client.get_entries_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to list entries: {e}")

        entries = []
        for _, row in self._rows_for_book(all_rows, book_id):
            try:
                entries.append(self._row_to_entry(row))
            except ValueError:
                continue  # Skip malformed rows

        entries.sort(key=lambda e: (e.entry_date, e.entry_time, e.created_at), reverse=True)
        return entries

    async def delete_entries_for_book(self, book_id: UUID) -> list[Entry]:
        try:
            sheet = self._client.get_entries_sheet()
            matches = self._rows_for_book(sheet.get_all_values(), book_id)

            deleted = []
            # Bottom-up so earlier row indexes stay valid
            for idx, row in reversed(matches):
                sheet.delete_rows(idx)
                try:
                    deleted.append(self._row_to_entry(row))
                except ValueError:
                    continue
            return deleted
        except Exception as e:
            raise StorageError(f"Failed to delete entries: {e}")


class GoogleSheetsMemberStorage(MemberStorageInterface):
    """BookMembers worksheet, one membership per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _member_to_row(self, member: BookMember) -> list:
        return [
            str(member.id),
            str(member.book_id),
            str(member.user_id),
            member.email,
            member.role.value,
            member.created_at.isoformat(),
        ]

    def _row_to_member(self, row: list) -> BookMember:
        return BookMember(
            id=UUID(_safe_get(row, 0)),
            book_id=UUID(_safe_get(row, 1)),
            user_id=UUID(_safe_get(row, 2)),
            email=_safe_get(row, 3),
            role=MemberRole(_safe_get(row, 4)),
            created_at=datetime.fromisoformat(_safe_get(row, 5)),
        )

    def _all_members(self) -> list[tuple[int, BookMember]]:
        try:
            sheet = self._client.get_members_sheet()
            all_rows = sheet.get_all_values()
        except Exception as e:
            raise StorageError(f"Failed to read members: {e}")

        members = []
        for idx, row in enumerate(all_rows[1:], start=2):
            if not row or not row[0]:
                continue
            try:
                members.append((idx, self._row_to_member(row)))
            except ValueError:
                continue  # Skip malformed rows
        return members

    async def add_member(self, member: BookMember) -> bool:
        for _, existing in self._all_members():
            if existing.book_id == member.book_id and existing.email == member.email:
                raise DuplicateError(f"{member.email} is already a member of this book")
        try:
            sheet = self._client.get_members_sheet()
            sheet.append_row(self._member_to_row(member), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to add member: {e}")

    async def get_member(self, member_id: UUID) -> Optional[BookMember]:
        for _, member in self._all_members():
            if member.id == member_id:
                return member
        return None

    async def list_members(self, book_id: UUID) -> list[BookMember]:
        members = [m for _, m in self._all_members() if m.book_id == book_id]
        members.sort(key=lambda m: m.created_at)
        return members

    async def list_memberships_for_user(self, user_id: UUID) -> list[BookMember]:
        return [m for _, m in self._all_members() if m.user_id == user_id and not m.is_pending]

    async def remove_member(self, member_id: UUID) -> bool:
        for idx, member in self._all_members():
            if member.id == member_id:
                try:
                    self._client.get_members_sheet().delete_rows(idx)
                    return True
                except Exception as e:
                    raise StorageError(f"Failed to remove member: {e}")
        return False

    async def claim_pending_memberships(self, email: str, user_id: UUID) -> int:
        email = email.strip().lower()
        pending = [
            idx for idx, m in self._all_members()
            if m.is_pending and m.email == email
        ]
        try:
            sheet = self._client.get_members_sheet()
            user_id_col = MEMBER_COLUMNS.index("user_id") + 1
            for idx in pending:
                sheet.update_cell(idx, user_id_col, str(user_id))
            return len(pending)
        except Exception as e:
            raise StorageError(f"Failed to claim memberships: {e}")

    async def delete_members_for_book(self, book_id: UUID) -> int:
        matches = [idx for idx, m in self._all_members() if m.book_id == book_id]
        try:
            sheet = self._client.get_members_sheet()
            for idx in reversed(matches):
                sheet.delete_rows(idx)
            return len(matches)
        except Exception as e:
            raise StorageError(f"Failed to delete members: {e}")


class GoogleSheetsUserStorage(UserStorageInterface):
    """Users worksheet, one account per row."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_user(self, row: list) -> UserAccount:
        return UserAccount(
            id=UUID(_safe_get(row, 0)),
            email=_safe_get(row, 1),
            password_hash=_safe_get(row, 2),
            created_at=datetime.fromisoformat(_safe_get(row, 3)),
        )

    def _all_users(self) -> list[UserAccount]:
        try:
            all_rows = self._client.get_users_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to read users: {e}")

        users = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                users.append(self._row_to_user(row))
            except ValueError:
                continue
        return users

    async def create_user(self, user: UserAccount) -> bool:
        if await self.get_user_by_email(user.email):
            raise DuplicateError(f"An account already exists for {user.email}")
        try:
            sheet = self._client.get_users_sheet()
            sheet.append_row(
                [str(user.id), user.email, user.password_hash, user.created_at.isoformat()],
                value_input_option="RAW",
            )
            return True
        except Exception as e:
            raise StorageError(f"Failed to create user: {e}")

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        email = email.strip().lower()
        for user in self._all_users():
            if user.email == email:
                return user
        return None

    async def get_user_by_id(self, user_id: UUID) -> Optional[UserAccount]:
        for user in self._all_users():
            if user.id == user_id:
                return user
        return None


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(_safe_get(row, 0)),
            timestamp=datetime.fromisoformat(_safe_get(row, 1)),
            event_type=AuditEventType(_safe_get(row, 2)),
            severity=AuditSeverity(_safe_get(row, 3)),
            entity_type=_safe_get(row, 4) or None,
            entity_id=UUID(_safe_get(row, 5)) if _safe_get(row, 5) else None,
            user_id=UUID(_safe_get(row, 6)) if _safe_get(row, 6) else None,
            correlation_id=UUID(_safe_get(row, 7)) if _safe_get(row, 7) else None,
            description=_safe_get(row, 8),
            details=json.loads(_safe_get(row, 9)) if _safe_get(row, 9) else {},
            error_message=_safe_get(row, 10) or None,
            is_user_action=_safe_get(row, 11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        try:
            all_rows = self._client.get_audit_sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in all_rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
