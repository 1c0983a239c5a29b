"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory backend serves tests
and unconfigured local runs.
"""

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
from cashbook.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBookStorage,
    GoogleSheetsClient,
    GoogleSheetsEntryStorage,
    GoogleSheetsMemberStorage,
    GoogleSheetsUserStorage,
)
from cashbook.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBookStorage,
    InMemoryEntryStorage,
    InMemoryMemberStorage,
    InMemoryUserStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "BookStorageInterface",
    "EntryStorageInterface",
    "MemberStorageInterface",
    "UserStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBookStorage",
    "GoogleSheetsClient",
    "GoogleSheetsEntryStorage",
    "GoogleSheetsMemberStorage",
    "GoogleSheetsUserStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBookStorage",
    "InMemoryEntryStorage",
    "InMemoryMemberStorage",
    "InMemoryUserStorage",
]
