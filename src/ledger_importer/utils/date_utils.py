"""Date helpers for statement rows and ledger queries."""

from datetime import date, datetime, timedelta

# hledger's default date-format
DEFAULT_DATE_FORMAT = "%Y-%m-%d"

# hledger aliases that are not strptime directives
FORMAT_ALIASES = {
    "%F": "%Y-%m-%d",
}


def parse_iso_date(raw_date: str) -> date:
    """Parse a YYYY-MM-DD date string.

    Args:
        raw_date: ISO date string.

    Returns:
        Parsed date object.

    Raises:
        ValueError: If the date is empty or not ISO formatted.
    """
    if not raw_date or not raw_date.strip():
        raise ValueError("Empty date string")
    return date.fromisoformat(raw_date.strip())


def next_day(raw_date: str) -> str:
    """Return the ISO date following the given ISO date.

    Used as the exclusive end date of hledger balance queries.
    """
    return (parse_iso_date(raw_date) + timedelta(days=1)).isoformat()


def to_iso_date(raw_date: str, date_format: str = DEFAULT_DATE_FORMAT) -> str:
    """Convert a statement date to YYYY-MM-DD using an hledger date-format.

    Args:
        raw_date: Date as it appears in the CSV.
        date_format: The rules file's date-format directive.

    Returns:
        ISO date string, or the stripped input if it does not fit the format.
    """
    if not raw_date:
        return ""

    date_str = raw_date.strip()
    fmt = FORMAT_ALIASES.get(date_format, date_format)
    try:
        return datetime.strptime(date_str, fmt).date().isoformat()
    except ValueError:
        return date_str
