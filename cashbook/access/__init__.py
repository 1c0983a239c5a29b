"""Role-based access to books."""

from cashbook.access.policy import (
    AccessDeniedError,
    can_edit_entries,
    can_manage_book,
    can_view,
    require_edit_entries,
    require_manage_book,
    require_view,
    resolve_access,
)

__all__ = [
    "AccessDeniedError",
    "can_edit_entries",
    "can_manage_book",
    "can_view",
    "require_edit_entries",
    "require_manage_book",
    "require_view",
    "resolve_access",
]
