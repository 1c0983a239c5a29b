"""CSV import/export and display formats."""

from cashbook.interchange.csv_format import (
    EXPORT_COLUMNS,
    IMAGE_URL_SEPARATOR,
    CSVImportError,
    export_entries_to_csv,
    export_filename,
    parse_csv_to_entries,
)
from cashbook.interchange.formats import (
    format_amount,
    format_display_date,
    format_display_time,
    parse_amount,
    parse_display_date,
    parse_display_time,
)

__all__ = [
    "EXPORT_COLUMNS",
    "IMAGE_URL_SEPARATOR",
    "CSVImportError",
    "export_entries_to_csv",
    "export_filename",
    "parse_csv_to_entries",
    "format_amount",
    "format_display_date",
    "format_display_time",
    "parse_amount",
    "parse_display_date",
    "parse_display_time",
]
