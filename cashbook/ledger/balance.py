"""
Ledger computations over a book's entries.

Entry lists are reverse chronological: index 0 is the newest entry and the
last index is the oldest. All sums are exact Decimal arithmetic.
"""

from decimal import Decimal
from typing import Sequence, Union

from pydantic import BaseModel, Field

from cashbook.interchange.formats import format_amount, format_display_date
from cashbook.models.entry import EntryDraft, EntryType


ALL_TYPES = "all"


class LedgerTotals(BaseModel):
    """Totals over a set of entries."""

    total_in: Decimal = Field(default=Decimal("0"))
    total_out: Decimal = Field(default=Decimal("0"))

    @property
    def net(self) -> Decimal:
        return self.total_in - self.total_out


def compute_totals(entries: Sequence[EntryDraft]) -> LedgerTotals:
    total_in = Decimal("0")
    total_out = Decimal("0")
    for entry in entries:
        if entry.type == EntryType.CASH_IN:
            total_in += entry.amount
        else:
            total_out += entry.amount
    return LedgerTotals(total_in=total_in, total_out=total_out)


def book_balance(entries: Sequence[EntryDraft]) -> Decimal:
    """Signed sum of all entries: cash in adds, cash out subtracts."""
    return sum((e.signed_amount for e in entries), Decimal("0"))


def running_balance(entries: Sequence[EntryDraft], index: int) -> Decimal:
    """
    Balance after the entry at `index`, counting from the oldest entry.

    Sums the signed amounts of entries[index:], i.e. the entry itself and
    everything older than it.
    """
    if not 0 <= index < len(entries):
        raise IndexError(f"Entry index {index} out of range")
    return book_balance(entries[index:])


def running_balances(entries: Sequence[EntryDraft]) -> list[Decimal]:
    """running_balance() for every index, in a single pass from the oldest."""
    balances = [Decimal("0")] * len(entries)
    total = Decimal("0")
    for i in range(len(entries) - 1, -1, -1):
        total += entries[i].signed_amount
        balances[i] = total
    return balances


def sort_entries(entries: Sequence[EntryDraft]) -> list[EntryDraft]:
    """Newest first, by entry date then entry time."""
    return sorted(entries, key=lambda e: (e.entry_date, e.entry_time), reverse=True)


def filter_entries(
    entries: Sequence[EntryDraft],
    search: str = "",
    entry_type: Union[EntryType, str] = ALL_TYPES,
) -> list[EntryDraft]:
    """
    Narrow a list of entries for display.

    `search` matches case-insensitively against the remark, or against the
    plain amount text ("1500.5" matches "150"). `entry_type` is "all",
    "cash_in" or "cash_out". Order is preserved.
    """
    needle = (search or "").strip().lower()
    wanted = None if entry_type in (None, "", ALL_TYPES) else EntryType(entry_type)

    matched = []
    for entry in entries:
        if wanted is not None and entry.type != wanted:
            continue
        if needle and needle not in entry.remark.lower() and needle not in format_amount(entry.amount):
            continue
        matched.append(entry)
    return matched


def group_entries_by_date(entries: Sequence[EntryDraft]) -> dict[str, list[EntryDraft]]:
    """Group by display date ("05 January 2024"), keeping list order."""
    groups: dict[str, list[EntryDraft]] = {}
    for entry in entries:
        groups.setdefault(format_display_date(entry.entry_date), []).append(entry)
    return groups
