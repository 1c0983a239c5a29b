"""Balances, running balances, filtering and grouping of entries."""

from cashbook.ledger.balance import (
    ALL_TYPES,
    LedgerTotals,
    book_balance,
    compute_totals,
    filter_entries,
    group_entries_by_date,
    running_balance,
    running_balances,
    sort_entries,
)

__all__ = [
    "ALL_TYPES",
    "LedgerTotals",
    "book_balance",
    "compute_totals",
    "filter_entries",
    "group_entries_by_date",
    "running_balance",
    "running_balances",
    "sort_entries",
]
