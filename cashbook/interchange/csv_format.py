"""
CSV Interchange

Bidirectional mapping between spreadsheet rows and entries.

IMPORT is all-or-nothing: the first bad row raises CSVImportError naming
that row, and the caller writes nothing. There is no partial import.

EXPORT writes a fixed column order with every field quoted. Date and time
use the same display patterns the importer accepts, so an exported file
imports back to the same amounts, types, dates, times, remarks, modes and
categories. `Balance` and `Entry by` are informational and not read back.
"""

import csv
import io
from datetime import date
from typing import Callable, Iterable, Optional

from pydantic import ValidationError

from cashbook.interchange.formats import (
    format_amount,
    format_display_date,
    format_display_time,
    parse_amount,
    parse_display_date,
    parse_display_time,
)
from cashbook.models.entry import (
    DEFAULT_CATEGORY,
    DEFAULT_PAYMENT_MODE,
    Attachment,
    AttachmentKind,
    EntryDraft,
    EntryType,
)


EXPORT_COLUMNS = [
    "Date",
    "Time",
    "Remark",
    "Entry by",
    "Mode",
    "Cash In",
    "Cash Out",
    "Balance",
    "Type",
    "Category",
    "Image URLs",
]

REQUIRED_COLUMNS = ("Date", "Time")
AMOUNT_COLUMNS = ("Cash In", "Cash Out")

IMAGE_URL_SEPARATOR = " | "
EXPORT_ENTRY_BY = "You"


class CSVImportError(ValueError):
    """
    The CSV file was rejected.

    `row_number` is the 1-based data row (header excluded) that failed,
    or None when the file as a whole is unusable.
    """

    def __init__(self, reason: str, row_number: Optional[int] = None):
        self.reason = reason
        self.row_number = row_number
        message = f"Row {row_number}: {reason}" if row_number is not None else reason
        super().__init__(message)


def _read_rows(csv_content: str) -> list[list[str]]:
    if csv_content.startswith("\ufeff"):
        csv_content = csv_content[1:]
    try:
        return list(csv.reader(io.StringIO(csv_content, newline=""), strict=True))
    except csv.Error as e:
        raise CSVImportError("Failed to parse CSV file") from e


def _check_header(header: list[str]) -> None:
    duplicates = sorted({name for name in header if name and header.count(name) > 1})
    if duplicates:
        raise CSVImportError(f"Duplicate column(s): {', '.join(duplicates)}")
    missing = [col for col in REQUIRED_COLUMNS if col not in header]
    if not any(col in header for col in AMOUNT_COLUMNS):
        missing.append(" or ".join(AMOUNT_COLUMNS))
    if missing:
        raise CSVImportError(f"Missing required column(s): {', '.join(missing)}")


def _parse_row(record: dict[str, str], row_number: int) -> EntryDraft:
    def cell(name: str) -> str:
        return (record.get(name) or "").strip()

    date_text = cell("Date")
    if not date_text:
        raise CSVImportError("Missing date", row_number)
    try:
        entry_date = parse_display_date(date_text)
    except ValueError:
        raise CSVImportError(
            f"Invalid date '{date_text}' (expected e.g. '05 January 2024')",
            row_number,
        )

    time_text = cell("Time")
    if not time_text:
        raise CSVImportError("Missing time", row_number)
    try:
        entry_time = parse_display_time(time_text)
    except ValueError:
        raise CSVImportError(
            f"Invalid time '{time_text}' (expected e.g. '2:30 PM')",
            row_number,
        )

    cash_in = cell("Cash In")
    cash_out = cell("Cash Out")
    if cash_in and cash_out:
        raise CSVImportError("Only one of Cash In or Cash Out may be filled", row_number)
    if cash_in:
        entry_type, amount_text = EntryType.CASH_IN, cash_in
    elif cash_out:
        entry_type, amount_text = EntryType.CASH_OUT, cash_out
    else:
        raise CSVImportError("Must have either Cash In or Cash Out", row_number)

    try:
        amount = parse_amount(amount_text)
    except ValueError:
        raise CSVImportError(f"Invalid amount '{amount_text}'", row_number)

    attachments = [
        Attachment(url=url.strip(), kind=AttachmentKind.LINKED)
        for url in cell("Image URLs").split(IMAGE_URL_SEPARATOR)
        if url.strip()
    ]

    try:
        return EntryDraft(
            amount=amount,
            type=entry_type,
            remark=cell("Remark"),
            payment_mode=cell("Mode") or DEFAULT_PAYMENT_MODE,
            category=cell("Category") or DEFAULT_CATEGORY,
            entry_date=entry_date,
            entry_time=entry_time,
            attachments=attachments,
        )
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"])
        raise CSVImportError(f"Invalid {field}: {first['msg']}", row_number)


def parse_csv_to_entries(csv_content: str) -> list[EntryDraft]:
    """
    Parse CSV text into entry drafts, in file order.

    The header needs `Date`, `Time` and at least one of `Cash In` /
    `Cash Out` (cells are trimmed before matching). Blank lines are
    skipped and do not count towards row numbers.

    Raises:
        CSVImportError: on the first unusable row, or if the file itself
            cannot be parsed.
    """
    rows = _read_rows(csv_content)
    if not rows:
        raise CSVImportError("CSV file is empty")

    header = [name.strip() for name in rows[0]]
    _check_header(header)

    drafts = []
    row_number = 0
    for cells in rows[1:]:
        if not any(c.strip() for c in cells):
            continue
        row_number += 1
        if len(cells) != len(header):
            raise CSVImportError(
                f"Expected {len(header)} columns but found {len(cells)}",
                row_number,
            )
        drafts.append(_parse_row(dict(zip(header, cells)), row_number))

    return drafts


def _attachment_url(attachment: Attachment) -> str:
    return attachment.url


def export_entries_to_csv(
    entries: Iterable[EntryDraft],
    resolve_url: Optional[Callable[[Attachment], str]] = None,
) -> str:
    """
    Render entries as CSV text.

    Args:
        entries: Entries in the order they should appear
        resolve_url: Maps an attachment to the URL written in `Image URLs`.
            Callers pass a resolver that turns uploaded storage keys into
            public URLs; by default the stored url is written as-is.
    """
    resolve_url = resolve_url or _attachment_url

    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    writer.writerow(EXPORT_COLUMNS)

    for entry in entries:
        amount = format_amount(entry.amount)
        writer.writerow([
            format_display_date(entry.entry_date),
            format_display_time(entry.entry_time),
            entry.remark or "",
            EXPORT_ENTRY_BY,
            entry.payment_mode or DEFAULT_PAYMENT_MODE,
            amount if entry.type == EntryType.CASH_IN else "",
            amount if entry.type == EntryType.CASH_OUT else "",
            "",
            entry.type.value,
            entry.category or DEFAULT_CATEGORY,
            IMAGE_URL_SEPARATOR.join(resolve_url(a) for a in entry.attachments),
        ])

    return output.getvalue()


def export_filename(book_name: Optional[str], today: Optional[date] = None) -> str:
    """Download name for an export, e.g. "Household_17-10-2026.csv"."""
    today = today or date.today()
    return f"{book_name or 'cashbook'}_{today.strftime('%d-%m-%Y')}.csv"
