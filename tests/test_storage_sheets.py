"""Tests for the Google Sheets storage backend, against an in-memory worksheet."""

import asyncio
from datetime import date, time
from decimal import Decimal
from uuid import uuid4

import pytest

from cashbook.models.audit import AuditEventBuilder
from cashbook.models.book import Book, BookMember, MemberRole
from cashbook.models.entry import Attachment, AttachmentKind, Entry, EntryType
from cashbook.models.user import UserAccount
from cashbook.services.storage import (
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsBookStorage,
    GoogleSheetsEntryStorage,
    GoogleSheetsMemberStorage,
    GoogleSheetsUserStorage,
    NotFoundError,
    StorageError,
)
from cashbook.services.storage.google_sheets import (
    AUDIT_COLUMNS,
    BOOK_COLUMNS,
    ENTRY_COLUMNS,
    MEMBER_COLUMNS,
    USER_COLUMNS,
)

from tests.factories import make_draft


run = asyncio.run


class FakeWorksheet:
    """The subset of gspread.Worksheet the backend uses."""

    def __init__(self, header):
        self.rows = [list(header)]

    def get_all_values(self):
        return [list(row) for row in self.rows]

    def append_row(self, values, value_input_option=None):
        self.rows.append([str(v) for v in values])

    def append_rows(self, values, value_input_option=None):
        for row in values:
            self.append_row(row)

    def update(self, values, range_name):
        idx = int(range_name[1:])
        self.rows[idx - 1] = [str(v) for v in values[0]]

    def update_cell(self, row, col, value):
        self.rows[row - 1][col - 1] = str(value)

    def delete_rows(self, idx):
        del self.rows[idx - 1]


class FakeSheetsClient:

    def __init__(self):
        self.books = FakeWorksheet(BOOK_COLUMNS)
        self.members = FakeWorksheet(MEMBER_COLUMNS)
        self.entries = FakeWorksheet(ENTRY_COLUMNS)
        self.users = FakeWorksheet(USER_COLUMNS)
        self.audit = FakeWorksheet(AUDIT_COLUMNS)

    def get_books_sheet(self):
        return self.books

    def get_members_sheet(self):
        return self.members

    def get_entries_sheet(self):
        return self.entries

    def get_users_sheet(self):
        return self.users

    def get_audit_sheet(self):
        return self.audit


@pytest.fixture
def client():
    return FakeSheetsClient()


def entry_in(book_id, **kwargs):
    return Entry.from_draft(make_draft(**kwargs), book_id, uuid4())


class TestBookSheet:

    def test_create_get_update_delete(self, client):
        storage = GoogleSheetsBookStorage(client)
        book = Book(name="Household", owner_user_id=uuid4())

        run(storage.create_book(book))
        assert run(storage.get_book(book.id)) == book

        book.name = "Home"
        run(storage.update_book(book))
        assert run(storage.get_book(book.id)).name == "Home"
        assert len(client.books.rows) == 2

        assert run(storage.delete_book(book.id)) is True
        assert run(storage.get_book(book.id)) is None
        assert run(storage.delete_book(book.id)) is False

    def test_update_missing_book(self, client):
        storage = GoogleSheetsBookStorage(client)
        with pytest.raises(NotFoundError):
            run(storage.update_book(Book(name="Ghost", owner_user_id=uuid4())))

    def test_list_owned_and_shared(self, client):
        storage = GoogleSheetsBookStorage(client)
        user_id = uuid4()
        mine = Book(name="Mine", owner_user_id=user_id)
        shared = Book(name="Shared", owner_user_id=uuid4())
        other = Book(name="Other", owner_user_id=uuid4())
        for book in (mine, shared, other):
            run(storage.create_book(book))

        names = {b.name for b in run(storage.list_books(user_id, [shared.id]))}
        assert names == {"Mine", "Shared"}

    def test_sheet_failure_becomes_storage_error(self, client, monkeypatch):
        def broken():
            raise RuntimeError("quota exceeded")

        monkeypatch.setattr(client, "get_books_sheet", broken)
        with pytest.raises(StorageError, match="quota exceeded"):
            run(GoogleSheetsBookStorage(client).list_books(uuid4()))


class TestEntrySheet:

    def test_row_round_trip(self, client):
        storage = GoogleSheetsEntryStorage(client)
        entry = entry_in(
            uuid4(),
            amount="1500.50",
            remark="Rent, March",
            attachments=[
                Attachment(url="u/1/key", kind=AttachmentKind.UPLOADED),
                Attachment(url="https://example.com/r.png"),
            ],
        )

        run(storage.save_entry(entry))
        loaded = run(storage.get_entry(entry.id))

        assert loaded == entry
        assert loaded.amount == Decimal("1500.50")
        assert client.entries.rows[1][ENTRY_COLUMNS.index("entry_date")] == "2024-01-05"
        assert client.entries.rows[1][ENTRY_COLUMNS.index("entry_time")] == "14:30:00"

    def test_list_is_per_book_newest_first(self, client):
        storage = GoogleSheetsEntryStorage(client)
        book_id = uuid4()
        old = entry_in(book_id, entry_date=date(2024, 1, 1))
        new = entry_in(book_id, entry_date=date(2024, 1, 2), entry_type=EntryType.CASH_OUT)
        run(storage.save_entries([old, new, entry_in(uuid4())]))

        assert [e.id for e in run(storage.list_entries(book_id))] == [new.id, old.id]

    def test_update(self, client):
        storage = GoogleSheetsEntryStorage(client)
        entry = entry_in(uuid4())
        run(storage.save_entry(entry))

        entry.remark = "corrected"
        entry.entry_time = time(9, 15)
        run(storage.update_entry(entry))

        loaded = run(storage.get_entry(entry.id))
        assert loaded.remark == "corrected"
        assert loaded.entry_time == time(9, 15)

    def test_delete_entries_for_book(self, client):
        storage = GoogleSheetsEntryStorage(client)
        book_id = uuid4()
        keep = entry_in(uuid4())
        doomed = [entry_in(book_id), keep, entry_in(book_id)]
        run(storage.save_entries(doomed))

        deleted = run(storage.delete_entries_for_book(book_id))

        assert {e.id for e in deleted} == {doomed[0].id, doomed[2].id}
        assert [row[0] for row in client.entries.rows[1:]] == [str(keep.id)]


class TestMemberSheet:

    def test_add_duplicate_and_claim(self, client):
        storage = GoogleSheetsMemberStorage(client)
        book_id = uuid4()
        pending = BookMember(book_id=book_id, email="friend@example.com", role=MemberRole.EDITOR)
        run(storage.add_member(pending))

        with pytest.raises(DuplicateError):
            run(storage.add_member(BookMember(book_id=book_id, email="friend@example.com")))

        user_id = uuid4()
        assert run(storage.claim_pending_memberships(" Friend@example.com", user_id)) == 1
        (claimed,) = run(storage.list_memberships_for_user(user_id))
        assert claimed.id == pending.id
        assert claimed.role == MemberRole.EDITOR

    def test_remove_and_delete_for_book(self, client):
        storage = GoogleSheetsMemberStorage(client)
        book_id = uuid4()
        first = BookMember(book_id=book_id, email="a@example.com")
        run(storage.add_member(first))
        run(storage.add_member(BookMember(book_id=book_id, email="b@example.com")))
        run(storage.add_member(BookMember(book_id=uuid4(), email="a@example.com")))

        assert run(storage.remove_member(first.id)) is True
        assert [m.email for m in run(storage.list_members(book_id))] == ["b@example.com"]
        assert run(storage.delete_members_for_book(book_id)) == 1
        assert len(client.members.rows) == 2


class TestUserAndAuditSheets:

    def test_users(self, client):
        storage = GoogleSheetsUserStorage(client)
        user = UserAccount(email="asha@example.com", password_hash="hash")
        run(storage.create_user(user))

        assert run(storage.get_user_by_email("ASHA@example.com")).id == user.id
        assert run(storage.get_user_by_id(user.id)).email == "asha@example.com"
        with pytest.raises(DuplicateError):
            run(storage.create_user(UserAccount(email="asha@example.com", password_hash="x")))

    def test_audit_events_by_correlation(self, client):
        storage = GoogleSheetsAuditStorage(client)
        correlation_id = uuid4()
        event = AuditEventBuilder.csv_imported(uuid4(), 3, uuid4(), correlation_id)
        run(storage.append_event(event))
        run(storage.append_event(AuditEventBuilder.user_signed_out(uuid4())))

        (loaded,) = run(storage.get_events_by_correlation_id(correlation_id))
        assert loaded.event_id == event.event_id
        assert loaded.details == {"entry_count": 3}
        assert loaded.is_user_action is True
        assert len(run(storage.get_recent_events(limit=1))) == 1
