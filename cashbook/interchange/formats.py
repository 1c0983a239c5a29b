"""
Display formats shared by the CSV interchange, the ledger views and the
entry form.

Dates are shown as "05 January 2024" and times as "2:30 PM". Stored
values are ISO dates and 24-hour times; these helpers convert between the
two and are strict on the way in.
"""

from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation

from cashbook.models.entry import MAX_AMOUNT, MAX_AMOUNT_DECIMAL_PLACES, decimal_places

DATE_FORMAT = "%d %B %Y"
TIME_FORMAT = "%I:%M %p"


def parse_display_date(text: str) -> date:
    """Parse "05 January 2024". Raises ValueError on anything else."""
    return datetime.strptime(text.strip(), DATE_FORMAT).date()


def format_display_date(value: date) -> str:
    return value.strftime(DATE_FORMAT)


def parse_display_time(text: str) -> time:
    """Parse "2:30 PM" / "02:30 PM". Raises ValueError on anything else."""
    return datetime.strptime(text.strip(), TIME_FORMAT).time()


def format_display_time(value: time) -> str:
    """Format as "2:30 PM" (no leading zero on the hour)."""
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def parse_amount(text: str) -> Decimal:
    """
    Parse a user-typed amount.

    Thousands separators are stripped. The result must be a finite,
    non-negative decimal below MAX_AMOUNT with at most
    MAX_AMOUNT_DECIMAL_PLACES decimal places; anything else raises ValueError.
    """
    cleaned = text.strip().replace(",", "")
    # Decimal() accepts digit-group underscores; amounts typed by people don't use them
    if not cleaned or "_" in cleaned:
        raise ValueError(f"Invalid amount: {text!r}")
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {text!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {text!r}")
    if amount < 0:
        raise ValueError(f"Amount cannot be negative: {text!r}")
    if amount >= MAX_AMOUNT:
        raise ValueError(f"Amount is too large: {text!r}")
    if decimal_places(amount) > MAX_AMOUNT_DECIMAL_PLACES:
        raise ValueError(f"Amount has too many decimal places: {text!r}")
    if amount == 0:
        amount = abs(amount)
    return amount


def format_amount(amount: Decimal) -> str:
    """Plain decimal text without exponent or trailing zeros ("1500.5")."""
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
