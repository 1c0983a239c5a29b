"""
Book access policy.

Who may do what to a book:

    action                      owner   editor  viewer
    view book and entries         x       x       x
    add/edit/delete entries       x       x
    import CSV                    x       x
    rename/delete book            x
    invite/remove members         x

The owner is privileged regardless of any membership row. Pending
memberships (not yet claimed by a signed-in account) grant nothing.
"""

from typing import Iterable
from uuid import UUID

from cashbook.models.book import AccessLevel, Book, BookMember, MemberRole


class AccessDeniedError(PermissionError):
    """The user lacks the access level an action needs."""

    def __init__(self, action: str, book_id: UUID, access: AccessLevel):
        self.action = action
        self.book_id = book_id
        self.access = access
        super().__init__(f"Not allowed to {action} (access: {access.value})")


def resolve_access(book: Book, user_id: UUID, members: Iterable[BookMember]) -> AccessLevel:
    if book.owner_user_id == user_id:
        return AccessLevel.OWNER

    for member in members:
        if member.book_id != book.id or member.is_pending:
            continue
        if member.user_id == user_id:
            if member.role == MemberRole.EDITOR:
                return AccessLevel.EDITOR
            return AccessLevel.VIEWER

    return AccessLevel.NONE


def can_view(access: AccessLevel) -> bool:
    return access != AccessLevel.NONE


def can_edit_entries(access: AccessLevel) -> bool:
    return access in (AccessLevel.OWNER, AccessLevel.EDITOR)


def can_manage_book(access: AccessLevel) -> bool:
    """Rename, delete and manage members: owner only."""
    return access == AccessLevel.OWNER


def require_view(book: Book, access: AccessLevel, action: str = "view this book") -> None:
    if not can_view(access):
        raise AccessDeniedError(action, book.id, access)


def require_edit_entries(book: Book, access: AccessLevel, action: str = "edit entries") -> None:
    if not can_edit_entries(access):
        raise AccessDeniedError(action, book.id, access)


def require_manage_book(book: Book, access: AccessLevel, action: str = "manage this book") -> None:
    if not can_manage_book(access):
        raise AccessDeniedError(action, book.id, access)
