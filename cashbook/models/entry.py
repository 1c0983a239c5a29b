"""
Entry Models for Shared Cashbook

An entry is one cash movement (in or out) inside a book.

Amounts are Decimal end to end: the ledger sums them exactly and the
CSV export prints them without float artefacts. Amounts are never
negative; the direction lives in `type`.
"""

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


PAYMENT_MODES = ["Cash", "Bank Transfer", "UPI", "Card", "Cheque", "Other"]
CATEGORIES = [
    "Uncategorized",
    "Food",
    "Transport",
    "Shopping",
    "Bills",
    "Salary",
    "Business",
    "Other",
]

DEFAULT_PAYMENT_MODE = "Cash"
DEFAULT_CATEGORY = "Uncategorized"

# Hard limits on amounts; `max_entry_amount` in settings is only a warning threshold
MAX_AMOUNT = Decimal("1e15")
MAX_AMOUNT_DECIMAL_PLACES = 10


def decimal_places(amount: Decimal) -> int:
    """Digits after the point, ignoring trailing zeros ("1.50" -> 1)."""
    _, digits, exponent = amount.as_tuple()
    significant = "".join(map(str, digits)).rstrip("0")
    if not significant:
        return 0
    return max(0, -exponent - (len(digits) - len(significant)))


class EntryType(str, Enum):
    """Direction of a cash movement."""
    CASH_IN = "cash_in"
    CASH_OUT = "cash_out"

    @property
    def label(self) -> str:
        return "Cash In" if self is EntryType.CASH_IN else "Cash Out"


class AttachmentKind(str, Enum):
    """
    Where an attachment lives.

    UPLOADED attachments are objects in our storage bucket and are removed
    together with their entry. LINKED attachments are remote URLs we only
    reference.
    """
    UPLOADED = "uploaded"
    LINKED = "linked"


class Attachment(BaseModel):
    """An image attached to an entry."""
    model_config = ConfigDict(str_strip_whitespace=True)

    url: str = Field(
        ...,
        min_length=1,
        description="Storage key for uploaded files, remote URL for linked ones"
    )
    kind: AttachmentKind = Field(
        default=AttachmentKind.LINKED,
        description="Uploaded object or linked URL"
    )


class EntryDraft(BaseModel):
    """
    An entry before it belongs to a book.

    Produced by CSV import and by the entry form, then turned into an
    Entry by the entry flow.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal = Field(
        ...,
        ge=0,
        lt=MAX_AMOUNT,
        description="Non-negative amount"
    )
    type: EntryType
    remark: str = Field(
        default="",
        max_length=1000,
    )
    payment_mode: str = Field(
        default=DEFAULT_PAYMENT_MODE,
        max_length=50,
    )
    category: str = Field(
        default=DEFAULT_CATEGORY,
        max_length=100,
    )
    entry_date: date
    entry_time: time
    attachments: list[Attachment] = Field(default_factory=list)

    @field_validator('amount')
    @classmethod
    def limit_decimal_places(cls, v: Decimal) -> Decimal:
        if decimal_places(v) > MAX_AMOUNT_DECIMAL_PLACES:
            raise ValueError(f"Amount has more than {MAX_AMOUNT_DECIMAL_PLACES} decimal places")
        return v

    @field_validator('entry_time')
    @classmethod
    def whole_minutes(cls, v: time) -> time:
        return v.replace(second=0, microsecond=0)

    @field_validator('remark', mode='before')
    @classmethod
    def default_remark(cls, v):
        return "" if v is None else v

    @field_validator('payment_mode', mode='before')
    @classmethod
    def default_payment_mode(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_PAYMENT_MODE
        return v

    @field_validator('category', mode='before')
    @classmethod
    def default_category(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_CATEGORY
        return v

    @property
    def signed_amount(self) -> Decimal:
        """+amount for cash in, -amount for cash out."""
        return self.amount if self.type == EntryType.CASH_IN else -self.amount

    @property
    def uploaded_keys(self) -> list[str]:
        return [a.url for a in self.attachments if a.kind == AttachmentKind.UPLOADED]


class Entry(EntryDraft):
    """An entry stored in a book."""

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique entry ID"
    )
    book_id: UUID
    user_id: UUID = Field(
        ...,
        description="User who recorded the entry"
    )
    created_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    updated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    @classmethod
    def from_draft(
        cls,
        draft: EntryDraft,
        book_id: UUID,
        user_id: UUID,
        entry_id: Optional[UUID] = None,
    ) -> "Entry":
        data = draft.model_dump(include=set(EntryDraft.model_fields))
        if entry_id is not None:
            data["id"] = entry_id
        return cls(book_id=book_id, user_id=user_id, **data)
