"""
Abstract Storage Interface

Storage operations are defined as abstract interfaces so that the
Google Sheets backend and the in-memory backend are interchangeable.
Flows only ever talk to these interfaces.

The interface is intentionally simple - we're not building a full ORM.
Just the operations the cashbook needs.
"""

from abc import ABC, abstractmethod
from typing import Optional, Sequence
from uuid import UUID

from cashbook.models.audit import AuditEvent
from cashbook.models.book import Book, BookMember
from cashbook.models.entry import Entry
from cashbook.models.user import UserAccount


class BookStorageInterface(ABC):
    """Abstract interface for book storage operations."""

    @abstractmethod
    async def create_book(self, book: Book) -> bool:
        """
        Save a new book.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_book(self, book_id: UUID) -> Optional[Book]:
        """Retrieve a book by ID, or None."""
        pass

    @abstractmethod
    async def update_book(self, book: Book) -> bool:
        """
        Update an existing book.

        Raises:
            NotFoundError: If book doesn't exist
        """
        pass

    @abstractmethod
    async def delete_book(self, book_id: UUID) -> bool:
        """
        Delete a book row. Entries and members are removed separately.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def list_books(
        self,
        owner_user_id: UUID,
        shared_book_ids: Sequence[UUID] = (),
    ) -> list[Book]:
        """
        List books owned by a user plus the given shared books.

        Returns:
            Books ordered by updated_at, newest first
        """
        pass


class EntryStorageInterface(ABC):
    """Abstract interface for entry storage operations."""

    @abstractmethod
    async def save_entry(self, entry: Entry) -> bool:
        """
        Save a new entry.

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def save_entries(self, entries: Sequence[Entry]) -> int:
        """
        Save a batch of entries in one write.

        Either all entries are written or the call raises.

        Returns:
            Number of entries written
        """
        pass

    @abstractmethod
    async def get_entry(self, entry_id: UUID) -> Optional[Entry]:
        """Retrieve an entry by ID, or None."""
        pass

    @abstractmethod
    async def update_entry(self, entry: Entry) -> bool:
        """
        Update an existing entry.

        Raises:
            NotFoundError: If entry doesn't exist
        """
        pass

    @abstractmethod
    async def delete_entry(self, entry_id: UUID) -> bool:
        """
        Delete an entry by ID.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def list_entries(self, book_id: UUID) -> list[Entry]:
        """
        List all entries of a book.

        Returns:
            Entries ordered by entry date then entry time, newest first
        """
        pass

    @abstractmethod
    async def delete_entries_for_book(self, book_id: UUID) -> list[Entry]:
        """
        Delete every entry of a book.

        Returns:
            The deleted entries (callers clean up their attachments)
        """
        pass


class MemberStorageInterface(ABC):
    """Abstract interface for book membership storage."""

    @abstractmethod
    async def add_member(self, member: BookMember) -> bool:
        """
        Add a membership row.

        Raises:
            DuplicateError: If the email is already a member of the book
        """
        pass

    @abstractmethod
    async def get_member(self, member_id: UUID) -> Optional[BookMember]:
        pass

    @abstractmethod
    async def list_members(self, book_id: UUID) -> list[BookMember]:
        """Members of a book, oldest invitation first."""
        pass

    @abstractmethod
    async def list_memberships_for_user(self, user_id: UUID) -> list[BookMember]:
        """Claimed memberships of a user across all books."""
        pass

    @abstractmethod
    async def remove_member(self, member_id: UUID) -> bool:
        """
        Remove a membership row.

        Returns:
            True if a row was deleted
        """
        pass

    @abstractmethod
    async def claim_pending_memberships(self, email: str, user_id: UUID) -> int:
        """
        Link pending memberships for an email to a real account.

        Returns:
            Number of memberships claimed
        """
        pass

    @abstractmethod
    async def delete_members_for_book(self, book_id: UUID) -> int:
        """
        Delete every membership of a book.

        Returns:
            Number of rows deleted
        """
        pass


class UserStorageInterface(ABC):
    """Abstract interface for account storage."""

    @abstractmethod
    async def create_user(self, user: UserAccount) -> bool:
        """
        Save a new account.

        Raises:
            DuplicateError: If the email is already registered
        """
        pass

    @abstractmethod
    async def get_user_by_email(self, email: str) -> Optional[UserAccount]:
        pass

    @abstractmethod
    async def get_user_by_id(self, user_id: UUID) -> Optional[UserAccount]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one CSV import).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
