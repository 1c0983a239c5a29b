"""
Shared fixtures.

Flows run against the in-memory storage backend and a fake attachment
store, so no test touches Google Sheets or Cloudinary.
"""

from types import SimpleNamespace
from uuid import uuid4

import pytest

from cashbook.audit import AuditLogger
from cashbook.config.settings import AppSettings
from cashbook.orchestrator import BookFlow, EntryFlow, MemberFlow
from cashbook.services.auth import AuthService
from cashbook.services.storage import (
    InMemoryAuditStorage,
    InMemoryBookStorage,
    InMemoryEntryStorage,
    InMemoryMemberStorage,
    InMemoryUserStorage,
)
from cashbook.validation import EntryValidator

from tests.factories import FakeAttachmentService


@pytest.fixture
def app_settings():
    return AppSettings()


@pytest.fixture
def attachments():
    return FakeAttachmentService()


@pytest.fixture
def env(attachments, app_settings):
    """In-memory wiring of every flow."""
    books = InMemoryBookStorage()
    entries = InMemoryEntryStorage()
    members = InMemoryMemberStorage()
    users = InMemoryUserStorage()
    audit = InMemoryAuditStorage()
    audit_logger = AuditLogger(audit)

    return SimpleNamespace(
        books=books,
        entries=entries,
        members=members,
        users=users,
        audit=audit,
        attachments=attachments,
        book_flow=BookFlow(books, entries, members, attachments, audit_logger),
        entry_flow=EntryFlow(
            entries, books, members, attachments,
            validator=EntryValidator(app_settings),
            audit_logger=audit_logger,
        ),
        member_flow=MemberFlow(members, books, users, audit_logger),
        auth=AuthService(users, members, audit_logger),
        owner_id=uuid4(),
    )
