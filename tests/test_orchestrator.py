"""
Tests for the book, entry and member flows.

Everything runs on in-memory storage with a fake attachment store.
"""

import asyncio
from datetime import date, time
from decimal import Decimal
from uuid import uuid4

import pytest

from cashbook.access import AccessDeniedError
from cashbook.audit import AuditLogger
from cashbook.interchange import CSVImportError
from cashbook.models.audit import AuditEventType
from cashbook.models.book import AccessLevel, BookMember, MemberRole
from cashbook.models.entry import Attachment, AttachmentKind, EntryType
from cashbook.orchestrator import EntryFlow, create_app_components
from cashbook.services.attachments import AttachmentUploadError
from cashbook.services.auth import AccountExistsError, AuthError, InvalidCredentialsError
from cashbook.services.storage import (
    DuplicateError,
    InMemoryEntryStorage,
    NotFoundError,
    StorageError,
)
from cashbook.validation import EntryValidationError

from tests.factories import make_draft


run = asyncio.run


def event_types(env):
    return [e.event_type for e in env.audit.events]


def grant(env, book, role):
    """Add a claimed membership and return the member's user id."""
    user_id = uuid4()
    run(env.members.add_member(BookMember(
        book_id=book.id,
        user_id=user_id,
        email=f"{role.value}-{user_id.hex[:6]}@example.com",
        role=role,
    )))
    return user_id


@pytest.fixture
def book(env):
    return run(env.book_flow.create_book(env.owner_id, "Household"))


class TestBookFlow:
    """Tests for BookFlow."""

    def test_create_and_list(self, env, book):
        run(env.entry_flow.save_entry(book.id, env.owner_id, make_draft(amount="100")))
        run(env.entry_flow.save_entry(
            book.id, env.owner_id, make_draft(amount="40", entry_type=EntryType.CASH_OUT),
        ))
        grant(env, book, MemberRole.VIEWER)

        (summary,) = run(env.book_flow.list_books(env.owner_id))
        assert summary.book.name == "Household"
        assert summary.balance == Decimal("60")
        assert summary.members_count == 1
        assert summary.access == AccessLevel.OWNER
        assert AuditEventType.BOOK_CREATED in event_types(env)

    def test_list_most_recently_updated_first(self, env, book):
        other = run(env.book_flow.create_book(env.owner_id, "Trip"))
        run(env.entry_flow.save_entry(book.id, env.owner_id, make_draft()))

        names = [s.book.name for s in run(env.book_flow.list_books(env.owner_id))]
        assert names == ["Household", other.name]

    def test_shared_books_are_listed_for_members(self, env, book):
        viewer_id = grant(env, book, MemberRole.VIEWER)
        (summary,) = run(env.book_flow.list_books(viewer_id))
        assert summary.access == AccessLevel.VIEWER

    def test_pending_invites_are_not_listed(self, env, book):
        member = run(env.member_flow.invite_member(book.id, env.owner_id, "later@example.com"))
        assert run(env.book_flow.list_books(member.user_id)) == []

    def test_blank_name_rejected(self, env):
        with pytest.raises(ValueError):
            run(env.book_flow.create_book(env.owner_id, "   "))

    def test_rename(self, env, book):
        renamed = run(env.book_flow.rename_book(book.id, env.owner_id, "  Home  "))
        assert renamed.name == "Home"
        assert run(env.books.get_book(book.id)).name == "Home"

    def test_editor_cannot_rename(self, env, book):
        editor_id = grant(env, book, MemberRole.EDITOR)
        with pytest.raises(AccessDeniedError):
            run(env.book_flow.rename_book(book.id, editor_id, "Mine now"))
        assert run(env.books.get_book(book.id)).name == "Household"
        assert event_types(env)[-1] == AuditEventType.ACCESS_DENIED

    def test_delete_book_cascades(self, env, book):
        editor_id = grant(env, book, MemberRole.EDITOR)
        link = Attachment(url="https://example.com/r.png")
        run(env.entry_flow.save_entry(
            book.id, env.owner_id, make_draft(attachments=[link]), new_files=[("r.png", b"img")],
        ))
        run(env.entry_flow.save_entry(book.id, editor_id, make_draft(amount="5")))

        assert run(env.book_flow.delete_book(book.id, env.owner_id)) == 2

        assert run(env.books.get_book(book.id)) is None
        assert run(env.entries.list_entries(book.id)) == []
        assert run(env.members.list_members(book.id)) == []
        assert len(env.attachments.deleted) == 1
        assert env.attachments.objects == {}

    def test_open_book(self, env, book):
        older = run(env.entry_flow.save_entry(
            book.id, env.owner_id, make_draft(amount="100", entry_date=date(2024, 1, 5)),
        ))
        newer = run(env.entry_flow.save_entry(
            book.id, env.owner_id,
            make_draft(amount="40", entry_type=EntryType.CASH_OUT, entry_date=date(2024, 1, 6)),
        ))

        ledger = run(env.book_flow.open_book(book.id, env.owner_id))
        assert [e.id for e in ledger.entries] == [newer.id, older.id]
        assert ledger.balance == Decimal("60")
        assert ledger.totals.total_out == Decimal("40")
        assert ledger.balances_by_entry() == {newer.id: Decimal("60"), older.id: Decimal("100")}

    def test_open_book_requires_access(self, env, book):
        with pytest.raises(AccessDeniedError):
            run(env.book_flow.open_book(book.id, uuid4()))

    def test_open_missing_book(self, env):
        with pytest.raises(NotFoundError):
            run(env.book_flow.open_book(uuid4(), env.owner_id))


class TestEntryFlow:
    """Tests for EntryFlow."""

    def test_save_with_uploads(self, env, book):
        link = Attachment(url="https://example.com/r.png")
        entry = run(env.entry_flow.save_entry(
            book.id, env.owner_id, make_draft(attachments=[link]),
            new_files=[("a.png", b"1"), ("b.png", b"2")],
        ))

        assert entry.attachments[0] == link
        assert [a.kind for a in entry.attachments[1:]] == [AttachmentKind.UPLOADED] * 2
        assert run(env.entries.get_entry(entry.id)) == entry
        assert AuditEventType.ATTACHMENTS_UPLOADED in event_types(env)
        assert event_types(env)[-1] == AuditEventType.ENTRY_SAVED

    def test_editor_can_add(self, env, book):
        editor_id = grant(env, book, MemberRole.EDITOR)
        entry = run(env.entry_flow.save_entry(book.id, editor_id, make_draft()))
        assert entry.user_id == editor_id

    def test_viewer_cannot_add(self, env, book):
        viewer_id = grant(env, book, MemberRole.VIEWER)
        with pytest.raises(AccessDeniedError):
            run(env.entry_flow.save_entry(book.id, viewer_id, make_draft()))
        assert run(env.entries.list_entries(book.id)) == []

    def test_failed_upload_writes_nothing(self, env, book):
        env.attachments.fail_uploads = True
        with pytest.raises(AttachmentUploadError):
            run(env.entry_flow.save_entry(
                book.id, env.owner_id, make_draft(), new_files=[("a.png", b"1")],
            ))
        assert run(env.entries.list_entries(book.id)) == []
        assert AuditEventType.EXTERNAL_SERVICE_ERROR in event_types(env)

    def test_files_without_attachment_storage(self, env, book):
        flow = EntryFlow(env.entries, env.books, env.members, attachment_service=None)
        with pytest.raises(AttachmentUploadError):
            run(flow.save_entry(book.id, env.owner_id, make_draft(), new_files=[("a.png", b"1")]))
        assert run(env.entries.list_entries(book.id)) == []

    def test_failed_write_discards_uploads(self, env, book):
        class FailingEntryStorage(InMemoryEntryStorage):
            async def save_entry(self, entry):
                raise StorageError("sheet unavailable")

        flow = EntryFlow(
            FailingEntryStorage(), env.books, env.members, env.attachments,
            audit_logger=AuditLogger(env.audit),
        )
        with pytest.raises(StorageError):
            run(flow.save_entry(book.id, env.owner_id, make_draft(), new_files=[("a.png", b"1")]))
        assert env.attachments.objects == {}
        assert len(env.attachments.deleted) == 1

        (failure,) = [e for e in env.audit.events if e.event_type == AuditEventType.SYSTEM_ERROR]
        assert failure.error_message == "sheet unavailable"
        assert failure.description == "System error: entry_write_failed"
        assert failure.details["book_id"] == str(book.id)

    def test_update_keeps_creator_and_drops_removed_uploads(self, env, book):
        editor_id = grant(env, book, MemberRole.EDITOR)
        original = run(env.entry_flow.save_entry(
            book.id, env.owner_id, make_draft(remark="Rent"),
            new_files=[("a.png", b"1"), ("b.png", b"2")],
        ))
        kept, dropped = original.attachments

        changed = make_draft(amount="250", remark="Rent (corrected)", attachments=[kept])
        updated = run(env.entry_flow.save_entry(
            book.id, editor_id, changed, new_files=[("c.png", b"3")], entry_id=original.id,
        ))

        assert updated.id == original.id
        assert updated.user_id == env.owner_id
        assert updated.created_at == original.created_at
        assert updated.amount == Decimal("250")
        assert updated.attachments[0] == kept
        assert len(updated.attachments) == 2
        assert env.attachments.deleted == [dropped.url]
        assert event_types(env)[-1] == AuditEventType.ENTRY_UPDATED
        assert len(run(env.entries.list_entries(book.id))) == 1

    def test_update_entry_of_another_book(self, env, book):
        other = run(env.book_flow.create_book(env.owner_id, "Trip"))
        entry = run(env.entry_flow.save_entry(other.id, env.owner_id, make_draft()))
        with pytest.raises(NotFoundError):
            run(env.entry_flow.save_entry(book.id, env.owner_id, make_draft(), entry_id=entry.id))

    def test_delete_entry_removes_uploads_only(self, env, book):
        link = Attachment(url="https://example.com/r.png")
        entry = run(env.entry_flow.save_entry(
            book.id, env.owner_id, make_draft(attachments=[link]), new_files=[("a.png", b"1")],
        ))

        run(env.entry_flow.delete_entry(book.id, entry.id, env.owner_id))

        assert run(env.entries.get_entry(entry.id)) is None
        assert env.attachments.deleted == [entry.attachments[1].url]
        assert event_types(env)[-1] == AuditEventType.ENTRY_DELETED

    def test_viewer_cannot_delete(self, env, book):
        entry = run(env.entry_flow.save_entry(book.id, env.owner_id, make_draft()))
        viewer_id = grant(env, book, MemberRole.VIEWER)
        with pytest.raises(AccessDeniedError):
            run(env.entry_flow.delete_entry(book.id, entry.id, viewer_id))
        assert run(env.entries.get_entry(entry.id)) is not None

    def test_get_entry(self, env, book):
        entry = run(env.entry_flow.save_entry(book.id, env.owner_id, make_draft()))
        viewer_id = grant(env, book, MemberRole.VIEWER)
        assert run(env.entry_flow.get_entry(book.id, entry.id, viewer_id)) == entry
        with pytest.raises(NotFoundError):
            run(env.entry_flow.get_entry(book.id, uuid4(), viewer_id))

    def test_build_draft(self, env, book):
        draft, result = run(env.entry_flow.build_draft(
            book.id, env.owner_id, "1,500.50", "cash_in", date(2024, 1, 5), time(14, 30),
        ))
        assert draft.amount == Decimal("1500.50")
        assert result.is_valid
        assert "All checks passed" in env.entry_flow.validation_summary(result)

    def test_build_draft_failure_is_audited(self, env, book):
        with pytest.raises(EntryValidationError):
            run(env.entry_flow.build_draft(
                book.id, env.owner_id, "abc", "cash_in", date(2024, 1, 5), time(14, 30),
            ))
        assert event_types(env)[-1] == AuditEventType.ENTRY_VALIDATION_FAILED


class TestCSVFlow:
    """Tests for import_csv and export_csv."""

    CSV = (
        "Date,Time,Remark,Cash In,Cash Out\n"
        "05 January 2024,9:00 AM,Opening,100,\n"
        "06 January 2024,2:30 PM,Groceries,,40\n"
    )

    def test_import(self, env, book):
        imported = run(env.entry_flow.import_csv(book.id, env.owner_id, self.CSV))
        assert len(imported) == 2

        ledger = run(env.book_flow.open_book(book.id, env.owner_id))
        assert [e.remark for e in ledger.entries] == ["Groceries", "Opening"]
        assert ledger.balance == Decimal("60")
        assert event_types(env)[-1] == AuditEventType.CSV_IMPORTED

    def test_import_is_all_or_nothing(self, env, book):
        bad = self.CSV + "07 January 2024,2:30 PM,Broken,,\n"
        with pytest.raises(CSVImportError) as exc:
            run(env.entry_flow.import_csv(book.id, env.owner_id, bad))

        assert exc.value.row_number == 3
        assert run(env.entries.list_entries(book.id)) == []
        failed = env.audit.events[-1]
        assert failed.event_type == AuditEventType.CSV_IMPORT_FAILED
        assert failed.details["row_number"] == 3

    def test_failed_import_write_is_audited(self, env, book):
        class FailingEntryStorage(InMemoryEntryStorage):
            async def save_entries(self, entries):
                raise StorageError("quota exceeded")

        flow = EntryFlow(
            FailingEntryStorage(), env.books, env.members, env.attachments,
            audit_logger=AuditLogger(env.audit),
        )
        with pytest.raises(StorageError):
            run(flow.import_csv(book.id, env.owner_id, self.CSV))

        failure = env.audit.events[-1]
        assert failure.event_type == AuditEventType.SYSTEM_ERROR
        assert failure.error_message == "quota exceeded"
        assert failure.details["entry_count"] == 2
        assert AuditEventType.CSV_IMPORTED not in event_types(env)

    def test_import_without_rows(self, env, book):
        with pytest.raises(CSVImportError, match="No entries found"):
            run(env.entry_flow.import_csv(book.id, env.owner_id, "Date,Time,Cash In\n"))

    def test_viewer_cannot_import(self, env, book):
        viewer_id = grant(env, book, MemberRole.VIEWER)
        with pytest.raises(AccessDeniedError):
            run(env.entry_flow.import_csv(book.id, viewer_id, self.CSV))

    def test_viewer_can_export(self, env, book):
        run(env.entry_flow.save_entry(
            book.id, env.owner_id, make_draft(remark="Salary"), new_files=[("a.png", b"1")],
        ))
        viewer_id = grant(env, book, MemberRole.VIEWER)

        filename, content = run(env.entry_flow.export_csv(book.id, viewer_id, today=date(2026, 10, 17)))

        assert filename == "Household_17-10-2026.csv"
        assert '"Salary"' in content
        assert "https://cdn.example.com/test/" in content
        assert event_types(env)[-1] == AuditEventType.CSV_EXPORTED

    def test_export_then_import_into_new_book(self, env, book):
        run(env.entry_flow.import_csv(book.id, env.owner_id, self.CSV))
        _, content = run(env.entry_flow.export_csv(book.id, env.owner_id))

        copy = run(env.book_flow.create_book(env.owner_id, "Copy"))
        run(env.entry_flow.import_csv(copy.id, env.owner_id, content))

        original = run(env.book_flow.open_book(book.id, env.owner_id))
        copied = run(env.book_flow.open_book(copy.id, env.owner_id))
        assert copied.balance == original.balance
        assert [(e.amount, e.type, e.remark) for e in copied.entries] == [
            (e.amount, e.type, e.remark) for e in original.entries
        ]


class TestMemberFlow:
    """Tests for MemberFlow and invitation claiming."""

    def test_invite_pending_then_claim_on_sign_up(self, env, book):
        member = run(env.member_flow.invite_member(
            book.id, env.owner_id, " Friend@Example.com ", MemberRole.EDITOR,
        ))
        assert member.is_pending
        assert member.email == "friend@example.com"

        session = run(env.auth.sign_up("friend@example.com", "correct horse"))

        (summary,) = run(env.book_flow.list_books(session.user_id))
        assert summary.access == AccessLevel.EDITOR
        assert AuditEventType.MEMBERSHIPS_CLAIMED in event_types(env)

    def test_invite_existing_account_links_immediately(self, env, book):
        session = run(env.auth.sign_up("friend@example.com", "correct horse"))
        member = run(env.member_flow.invite_member(book.id, env.owner_id, "friend@example.com"))

        assert member.user_id == session.user_id
        assert member.role == MemberRole.VIEWER
        ledger = run(env.book_flow.open_book(book.id, session.user_id))
        assert ledger.access == AccessLevel.VIEWER

    def test_duplicate_invite(self, env, book):
        run(env.member_flow.invite_member(book.id, env.owner_id, "friend@example.com"))
        with pytest.raises(DuplicateError, match="already added"):
            run(env.member_flow.invite_member(book.id, env.owner_id, "FRIEND@example.com"))

    def test_invalid_email(self, env, book):
        with pytest.raises(ValueError, match="valid email"):
            run(env.member_flow.invite_member(book.id, env.owner_id, "not an email"))

    def test_editor_cannot_invite(self, env, book):
        editor_id = grant(env, book, MemberRole.EDITOR)
        with pytest.raises(AccessDeniedError):
            run(env.member_flow.invite_member(book.id, editor_id, "friend@example.com"))

    def test_remove_member_revokes_access(self, env, book):
        viewer_id = grant(env, book, MemberRole.VIEWER)
        (member,) = run(env.member_flow.list_members(book.id, env.owner_id))

        run(env.member_flow.remove_member(book.id, env.owner_id, member.id))

        with pytest.raises(AccessDeniedError):
            run(env.book_flow.open_book(book.id, viewer_id))
        assert event_types(env)[-2] == AuditEventType.MEMBER_REMOVED

    def test_remove_member_of_another_book(self, env, book):
        other = run(env.book_flow.create_book(env.owner_id, "Trip"))
        grant(env, other, MemberRole.VIEWER)
        (member,) = run(env.member_flow.list_members(other.id, env.owner_id))
        with pytest.raises(NotFoundError):
            run(env.member_flow.remove_member(book.id, env.owner_id, member.id))


class TestAuthService:
    """Tests for AuthService."""

    def test_sign_up_and_sign_in(self, env):
        created = run(env.auth.sign_up("Asha@Example.com", "correct horse"))
        session = run(env.auth.sign_in("asha@example.com", "correct horse"))

        assert session.user_id == created.user_id
        assert session.email == "asha@example.com"
        stored = run(env.users.get_user_by_id(created.user_id))
        assert stored.password_hash != "correct horse"

    def test_short_password(self, env):
        with pytest.raises(AuthError, match="at least 8"):
            run(env.auth.sign_up("asha@example.com", "short"))

    def test_invalid_email(self, env):
        with pytest.raises(AuthError):
            run(env.auth.sign_up("asha", "correct horse"))

    def test_duplicate_account(self, env):
        run(env.auth.sign_up("asha@example.com", "correct horse"))
        with pytest.raises(AccountExistsError):
            run(env.auth.sign_up("ASHA@example.com", "another one"))

    @pytest.mark.parametrize("email, password", [
        ("asha@example.com", "wrong password"),
        ("nobody@example.com", "correct horse"),
    ])
    def test_bad_credentials(self, env, email, password):
        run(env.auth.sign_up("asha@example.com", "correct horse"))
        with pytest.raises(InvalidCredentialsError, match="Invalid email or password"):
            run(env.auth.sign_in(email, password))
        assert event_types(env)[-1] == AuditEventType.SIGN_IN_FAILED

    def test_sign_out_is_audited(self, env):
        session = run(env.auth.sign_up("asha@example.com", "correct horse"))
        run(env.auth.sign_out(session))
        assert event_types(env)[-1] == AuditEventType.USER_SIGNED_OUT


class TestFactory:

    def test_in_memory_components(self):
        components = create_app_components(use_storage=False)
        assert components.storage_backend == "memory"
        assert components.sheets_client is None

        session = run(components.auth_service.sign_up("asha@example.com", "correct horse"))
        book = run(components.book_flow.create_book(session.user_id, "Household"))
        (summary,) = run(components.book_flow.list_books(session.user_id))
        assert summary.book.id == book.id
