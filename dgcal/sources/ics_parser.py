import re
from enum import StrEnum

import structlog
from icalendar import Calendar

from dgcal.exceptions import ParseError
from dgcal.models import ScheduleEntry
from dgcal.utils.date_and_time import inclusive_end_date, to_date

logger = structlog.get_logger(__name__)

UID_SUFFIX = "@turniere.discgolf.de"
UID_PATTERN = re.compile(r"^(?P<registration>registration-)?(?P<id>\d+)-")


class FeedEventKind(StrEnum):
    TOURNAMENT = "tournament"
    REGISTRATION = "registration"


def parse_uid(uid: str) -> tuple[FeedEventKind, int]:
    """Decodes event kind and tournament id from a schedule feed UID.

    "registration-<id>-...@turniere.discgolf.de" is a registration event,
    "<id>-...@turniere.discgolf.de" a tournament event.

    Raises:
        ParseError: If the UID does not follow either pattern.
    """
    if not uid.endswith(UID_SUFFIX):
        raise ParseError(f"Unknown uid format '{uid}'", field="uid")

    match = UID_PATTERN.match(uid.removesuffix(UID_SUFFIX))
    if not match:
        raise ParseError(f"No tournament id in uid '{uid}'", field="uid")

    kind = (
        FeedEventKind.REGISTRATION
        if match.group("registration")
        else FeedEventKind.TOURNAMENT
    )
    return kind, int(match.group("id"))


class ScheduleFeedParser:
    """Parses the site's public iCalendar schedule feed into baseline records."""

    def parse(self, ics_content: str | bytes) -> dict[int, ScheduleEntry]:
        """Groups feed events by tournament id.

        Registration events only make their tournament id known; tournament
        events supply title, start date and the inclusive end date.

        Args:
            ics_content: The raw iCalendar document.

        Returns:
            A dictionary mapping tournament id to its ScheduleEntry.

        Raises:
            ParseError: If the document or any UID is malformed.
        """
        try:
            calendar = Calendar.from_ical(ics_content)
        except ValueError as e:
            raise ParseError(f"Could not parse schedule feed: {e}") from e

        entries: dict[int, ScheduleEntry] = {}
        for component in calendar.walk("VEVENT"):
            kind, tournament_id = parse_uid(str(component.get("uid", "")))
            entry = entries.setdefault(tournament_id, ScheduleEntry(id=tournament_id))

            if kind is FeedEventKind.REGISTRATION:
                continue

            dtstart = component.get("dtstart")
            if dtstart is None:
                raise ParseError(
                    "Schedule event without DTSTART",
                    tournament_id=tournament_id,
                    field="dtstart",
                )
            entry.start_date = to_date(dtstart.dt)

            dtend = component.get("dtend")
            end_date = inclusive_end_date(dtend.dt) if dtend is not None else None
            if end_date is None or end_date < entry.start_date:
                end_date = entry.start_date
            entry.end_date = end_date
            entry.title = str(component.get("summary", "")).strip()

        logger.debug("schedule_feed_parsed", count=len(entries))
        return entries
