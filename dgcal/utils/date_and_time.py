import zoneinfo
from datetime import date, datetime, timedelta

from ..exceptions import ParseError

# All timestamps on the remote site are local German time.
TIMEZONE = zoneinfo.ZoneInfo("Europe/Berlin")

DATE_FORMAT = "%d.%m.%Y"
DATETIME_FORMAT = "%d.%m.%Y %H:%M"


def parse_local_datetime(text: str, fmt: str = DATETIME_FORMAT) -> datetime:
    """Parses a local timestamp and attaches the site's timezone.

    Args:
        text: The timestamp text, e.g. "24.05.2025 18:30".
        fmt: A strptime format.

    Returns:
        A timezone-aware datetime in Europe/Berlin.

    Raises:
        ParseError: If the text does not match the format.
    """
    try:
        return datetime.strptime(text.strip(), fmt).replace(tzinfo=TIMEZONE)
    except ValueError as e:
        raise ParseError(
            f"Could not parse '{text}' as {fmt}",
            field="date",
            error_data={"text": text, "format": fmt},
        ) from e


def parse_date_range(
    text: str, formats: tuple[str, ...] = (DATETIME_FORMAT, DATE_FORMAT)
) -> tuple[datetime, datetime | None]:
    """Parses "start[ - end]" where both bounds share one format.

    The text is split on the first hyphen. The first part is tried against
    each format in turn; the second part (if any) must use the format that
    matched the first.

    Examples:
        "01.01.2024" -> (2024-01-01 00:00, None)
        "01.01.2024 10:00 - 02.01.2024 12:00" -> (2024-01-01 10:00, 2024-01-02 12:00)

    Args:
        text: The range text.
        formats: Candidate strptime formats, most specific first.

    Returns:
        A tuple of (start, end). End is None when no second part exists.

    Raises:
        ParseError: If a present part cannot be parsed.
    """
    parts = text.split("-", 1)
    first = parts[0].strip()

    start: datetime | None = None
    used_format = formats[0]
    for fmt in formats:
        try:
            start = datetime.strptime(first, fmt).replace(tzinfo=TIMEZONE)
            used_format = fmt
            break
        except ValueError:
            continue

    if start is None:
        raise ParseError(
            f"Failed to parse start date '{first}'",
            field="date_range",
            error_data={"text": text, "formats": list(formats)},
        )

    end = None
    if len(parts) == 2:
        end = parse_local_datetime(parts[1], used_format)

    return start, end


def parse_tournament_dates(text: str) -> tuple[date, date]:
    """Parses a whole-tournament date range; a missing end means a one-day event."""
    start, end = parse_date_range(text, (DATE_FORMAT,))
    if end is None:
        end = start
    return start.date(), end.date()


def to_date(value: date | datetime) -> date:
    """Returns the calendar date of a date or datetime.

    Aware datetimes are read in the site's timezone, naive ones as-is.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(TIMEZONE)
        return value.date()
    return value


def inclusive_end_date(exclusive_end: date | datetime) -> date:
    """Converts an exclusive DTEND to an inclusive calendar end date.

    Only the calendar date of the boundary is used; time of day and UTC
    offset are ignored, so a DST switch inside the range cannot shift the
    result by a day.
    """
    return to_date(exclusive_end) - timedelta(days=1)
