"""
Book and Membership Models

A book is a named ledger owned by exactly one user. Other users get
access through BookMember rows, created by email invitation.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


# Invitations are keyed by email; the member row carries this id until the
# invitee signs in and claims it.
PENDING_MEMBER_USER_ID = UUID("00000000-0000-0000-0000-000000000000")


class MemberRole(str, Enum):
    """Role granted to a book member."""
    VIEWER = "viewer"   # read-only
    EDITOR = "editor"   # can create, edit and delete entries


class AccessLevel(str, Enum):
    """
    Effective access of a user to a book.

    OWNER sits above both member roles regardless of any membership row.
    """
    OWNER = "owner"
    EDITOR = "editor"
    VIEWER = "viewer"
    NONE = "none"


class Book(BaseModel):
    """A named cashbook."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique book ID"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Book name"
    )
    owner_user_id: UUID = Field(
        ...,
        description="User who created and owns the book"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow
    )


class BookMember(BaseModel):
    """A grant of access to a book."""

    id: UUID = Field(
        default_factory=uuid4
    )
    book_id: UUID
    user_id: UUID = Field(
        default=PENDING_MEMBER_USER_ID,
        description="Linked account, or the pending sentinel"
    )
    email: EmailStr
    role: MemberRole = MemberRole.VIEWER
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @field_validator('email', mode='before')
    @classmethod
    def normalize_email(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def is_pending(self) -> bool:
        """True until the invitee signs in."""
        return self.user_id == PENDING_MEMBER_USER_ID


class BookSummary(BaseModel):
    """A book as shown in the book list."""

    book: Book
    balance: Decimal = Field(
        default=Decimal("0"),
        description="Signed sum of all entries"
    )
    members_count: int = Field(
        default=0,
        ge=0
    )
    access: AccessLevel = AccessLevel.NONE
