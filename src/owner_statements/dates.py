"""Date helpers for statement months and spreadsheet date cells."""

from datetime import date, datetime

# Formats seen in reservation and vendor exports, tried in order
DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d")


def parse_date(value: object) -> date:
    """Parse a date cell.

    Accepts ``date``/``datetime`` objects, ISO dates (optionally with a time
    part), and US-style ``M/D/YY`` or ``MM/DD/YYYY`` strings.

    Raises:
        ValueError: If the value is empty or not a recognizable date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value or "").strip()
    if not text:
        raise ValueError("Missing date")

    # ISO timestamps such as 2024-06-03T00:00:00.000Z
    if len(text) > 10 and text[4:5] == "-" and text[10:11] in ("T", " "):
        text = text[:10]

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f'Invalid date "{value}"')


def try_parse_date(value: object) -> date | None:
    """Parse a date cell, returning None instead of raising."""
    try:
        return parse_date(value)
    except ValueError:
        return None


def month_start(value: date) -> date:
    """First day of the month containing ``value``."""
    return value.replace(day=1)


def add_months(value: date, months: int) -> date:
    """Shift a first-of-month date by a number of months."""
    index = value.year * 12 + (value.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def parse_month(value: object) -> date:
    """Parse a statement month (``YYYY-MM``, a full date, or a date object).

    Raises:
        ValueError: If the value is not a recognizable month.
    """
    if isinstance(value, date):
        return month_start(value if not isinstance(value, datetime) else value.date())

    text = str(value or "").strip()
    if len(text) == 7 and text[4] == "-":
        try:
            return datetime.strptime(text, "%Y-%m").date()
        except ValueError as e:
            raise ValueError(f'Invalid month "{value}", expected YYYY-MM') from e
    try:
        return month_start(parse_date(text))
    except ValueError as e:
        raise ValueError(f'Invalid month "{value}", expected YYYY-MM') from e


def format_month(value: date) -> str:
    return value.strftime("%Y-%m")
