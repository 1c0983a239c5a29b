"""
In-Memory Storage Implementation

Implements every storage interface with plain dicts. Used by the test
suite and as the fallback when Google Sheets is not configured, so the
app still runs (without persistence) on a fresh checkout.

Stored models are copied on the way in and out; callers never share
mutable state with the store.
"""

from datetime import datetime
from typing import Optional, Sequence
from uuid import UUID

from cashbook.models.audit import AuditEvent
from cashbook.models.book import Book, BookMember
from cashbook.models.entry import Entry
from cashbook.models.user import UserAccount
from cashbook.services.storage.interface import (
    AuditStorageInterface,
    BookStorageInterface,
    DuplicateError,
    EntryStorageInterface,
    MemberStorageInterface,
    NotFoundError,
    UserStorageInterface,
)


class InMemoryBookStorage(BookStorageInterface):

    def __init__(self):
        self._books: dict[UUID, Book] = {}

    async def create_book(self, book: Book) -> bool:
        if book.id in self._books:
            raise DuplicateError(f"Book already exists: {book.id}")
        self._books[book.id] = book.model_copy(deep=True)
        return True

    async def get_book(self, book_id: UUID) -> Optional[Book]:
        book = self._books.get(book_id)
        return book.model_copy(deep=True) if book else None

    async def update_book(self, book: Book) -> bool:
        if book.id not in self._books:
            raise NotFoundError(f"Book not found: {book.id}")
        self._books[book.id] = book.model_copy(deep=True)
        return True

    async def delete_book(self, book_id: UUID) -> bool:
        return self._books.pop(book_id, None) is not None

    async def list_books(
        self,
        owner_user_id: UUID,
        shared_book_ids: Sequence[UUID] = (),
    ) -> list[Book]:
        shared = set(shared_book_ids)
        books = [
            book.model_copy(deep=True)
            for book in self._books.values()
            if book.owner_user_id == owner_user_id or book.id in shared
        ]
        books.sort(key=lambda b: b.updated_at, reverse=True)
        return books


class InMemoryEntryStorage(EntryStorageInterface):

    def __init__(self):
        self._entries: dict[UUID, Entry] = {}

    async def save_entry(self, entry: Entry) -> bool:
        if entry.id in self._entries:
            raise DuplicateError(f"Entry already exists: {entry.id}")
        self._entries[entry.id] = entry.model_copy(deep=True)
        return True

    async def save_entries(self, entries: Sequence[Entry]) -> int:
        for entry in entries:
            if entry.id in self._entries:
                raise DuplicateError(f"Entry already exists: {entry.id}")
        for entry in entries:
            self._entries[entry.id] = entry.model_copy(deep=True)
        return len(entries)

    async def get_entry(self, entry_id: UUID) -> Optional[Entry]:
        entry = self._entries.get(entry_id)
        return entry.model_copy(deep=True) if entry else None

    async def update_entry(self, entry: Entry) -> bool:
        if entry.id not in self._entries:
            raise NotFoundError(f"Entry not found: {entry.id}")
        entry.updated_at = datetime.utcnow()
        self._entries[entry.id] = entry.model_copy(deep=True)
        return True

    async def delete_entry(self, entry_id: UUID) -> bool:
        return self._entries.pop(entry_id, None) is not None

    async def list_entries(self, book_id: UUID) -> list[Entry]:
        entries = [
            entry.model_copy(deep=True)
            for entry in self._entries.values()
            if entry.book_id == book_id
        ]
        entries.sort(key=lambda e: (e.entry_date, e.entry_time, e.created_at), reverse=True)
        return entries

    async def delete_entries_for_book(self, book_id: UUID) -> list[Entry]:
        doomed = [e for e in self._entries.values() if e.book_id == book_id]
        for entry in doomed:
            del self._entries[entry.id]
        return doomed


class InMemoryMemberStorage(MemberStorageInterface):

    def __init__(self):
        self._members: dict[UUID, BookMember] = {}

    async def add_member(self, member: BookMember) -> bool:
        for existing in self._members.values():
            if existing.book_id == member.book_id and existing.email == member.email:
                raise DuplicateError(f"{member.email} is already a member of this book")
        self._members[member.id] = member.model_copy(deep=True)
        return True

    async def get_member(self, member_id: UUID) -> Optional[BookMember]:
        member = self._members.get(member_id)
        return member.model_copy(deep=True) if member else None

    async def list_members(self, book_id: UUID) -> list[BookMember]:
        members = [
            m.model_copy(deep=True)
            for m in self._members.values()
            if m.book_id == book_id
        ]
        members.sort(key=lambda m: m.created_at)
        return members

    async def list_memberships_for_user(self, user_id: UUID) -> list[BookMember]:
        return [
            m.model_copy(deep=True)
            for m in self._members.values()
            if m.user_id == user_id and not m.is_pending
        ]

    async def remove_member(self, member_id: UUID) -> bool:
        return self._members.pop(member_id, None) is not None

    async def claim_pending_memberships(self, email: str, user_id: UUID) -> int:
        email = email.strip().lower()
        claimed = 0
        for member in self._members.values():
            if member.is_pending and member.email == email:
                member.user_id = user_id
                claimed += 1
        return claimed

    async def delete_members_for_book(self, book_id: UUID) -> int:
        doomed = [m.id for m in self._members.values() if m.book_id == book_id]
        for member_id in doomed:
            del self._members[member_id]
        return len(doomed)


class InMemoryUserStorage(UserStorageInterface):

    def __init__(self):
        self._users: dict[UUID, UserAccount] = {}

    async def create_user(self, user: UserAccount) -> bool:
        if await self.get_user_by_email(user.email):
            raise DuplicateError(f"An account already exists for {user.email}")
        self._users[user.id] = user.model_copy(deep=True)
        return True

    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        email = email.strip().lower()
        for user in self._users.values():
            if user.email == email:
                return user.model_copy(deep=True)
        return None

    async def get_user_by_id(self, user_id: UUID) -> Optional[UserAccount]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only list of events."""

    def __init__(self):
        self.events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self.events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self.events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self.events, key=lambda e: e.timestamp, reverse=True)[:limit]
