"""iCalendar feed generation for subscriber calendars.

Each tournament becomes an all-day event with a UID derived from its id and
SEQUENCE set to its revision counter (number of history snapshots), so
calendar clients update their copy whenever a sync stored a new snapshot.
Every registration phase becomes a separate 2 hour event with a reminder
15 minutes before it opens.
"""

from datetime import UTC, date, datetime, time, timedelta

import structlog
from icalendar import Alarm, Event
from icalendar import Calendar as ICalendar

from .calendars import CalendarService
from .exceptions import DgCalError
from .models import RegistrationPhase, SubscriptionConfig, Tournament
from .sources.gto_source import tournament_url
from .sync import TournamentService

logger = structlog.get_logger(__name__)

PRODUCT_ID = "dg-cal v0.1"
UID_DOMAIN = "dg-cal"
REGISTRATION_DURATION = timedelta(hours=2)
REMINDER_BEFORE = timedelta(minutes=15)
REGISTRATION_PREFIX = "Anmeldung"
CACHE_GRACE = timedelta(minutes=2)


def tournament_uid(tournament_id: int) -> str:
    return f"tournament-{tournament_id}@{UID_DOMAIN}"


def registration_uid(tournament_id: int, index: int) -> str:
    return f"registration-{tournament_id}-{index}@{UID_DOMAIN}"


def resolve_subscription(
    config: SubscriptionConfig, tournaments: TournamentService
) -> list[Tournament]:
    """Resolves a subscriber filter to tournaments.

    Series matches come first; explicitly listed ids not already matched
    are appended in the order given. Unknown ids are skipped.
    """
    result = tournaments.get_tournaments_for_series(config.series)
    included = {t.id for t in result}
    for tid in config.tournaments:
        if tid in included:
            continue
        tournament = tournaments.get_tournament(tid)
        if tournament is None:
            continue
        result.append(tournament)
        included.add(tid)
    return result


def cache_max_age(
    last_sync: datetime | None, interval: timedelta, now: datetime | None = None
) -> int:
    """Seconds a feed response may be cached: until the next sync plus a grace period."""
    if last_sync is None:
        return 0
    now = now or datetime.now(UTC)
    remaining = last_sync + interval - now + CACHE_GRACE
    return max(0, int(remaining.total_seconds()))


class FeedGenerator:
    """Renders a subscriber calendar as an iCalendar document."""

    def __init__(
        self, calendar_service: CalendarService, tournament_service: TournamentService
    ):
        self.calendar_service = calendar_service
        self.tournament_service = tournament_service

    def generate(self, calendar_id: str) -> bytes:
        """Builds the export for a calendar and marks it as retrieved.

        Args:
            calendar_id: The public calendar id.

        Returns:
            The serialized iCalendar document.

        Raises:
            NotFoundError: If the calendar id is unknown.
        """
        calendar = self.calendar_service.get_calendar(calendar_id)
        revisions = self.calendar_service.get_update_count()
        tournaments = resolve_subscription(calendar.config, self.tournament_service)

        ical = ICalendar()
        ical.add("prodid", PRODUCT_ID)
        ical.add("version", "2.0")
        ical.add("method", "PUBLISH")
        ical.add("name", calendar.title)
        ical.add("x-wr-calname", calendar.title)

        for tournament in tournaments:
            if tournament.start_date is None:
                logger.debug("tournament_without_dates", tournament_id=tournament.id)
                continue

            sequence = revisions.get(tournament.id, 0)
            ical.add_component(self._tournament_event(tournament, sequence))
            # Phases share the tournament's revision counter
            for index, phase in enumerate(tournament.registrations):
                ical.add_component(
                    self._registration_event(tournament, index, phase, sequence)
                )

        content = ical.to_ical()

        try:
            self.calendar_service.set_calendar_retrieved_at(calendar.id)
        except DgCalError as e:
            logger.warning(
                "calendar_retrieved_at_failed", calendar_id=calendar.id, error=str(e)
            )

        logger.info(
            "feed_generated", calendar_id=calendar.id, tournaments=len(tournaments)
        )
        return content

    @staticmethod
    def _dtstamp(tournament: Tournament) -> datetime:
        # Must not depend on the time of export, or every download changes
        if tournament.updated_at is not None:
            return tournament.updated_at.astimezone(UTC)
        return datetime.combine(tournament.start_date or date.min, time(), UTC)

    def _tournament_event(self, tournament: Tournament, sequence: int) -> Event:
        start_date = tournament.start_date or date.min
        end_date = tournament.end_date or start_date

        event = Event()
        event.add("uid", tournament_uid(tournament.id))
        event.add("sequence", sequence)
        event.add("dtstamp", self._dtstamp(tournament))
        event.add("summary", tournament.title)
        event.add("description", tournament_url(tournament.id))
        # All-day: DTEND is exclusive, one day past the inclusive end date
        event.add("dtstart", start_date)
        event.add("dtend", end_date + timedelta(days=1))
        event.add("transp", "TRANSPARENT")
        event.add("location", tournament.location)
        event.add("x-microsoft-cdo-alldayevent", "TRUE")
        return event

    def _registration_event(
        self,
        tournament: Tournament,
        index: int,
        phase: RegistrationPhase,
        sequence: int,
    ) -> Event:
        start = phase.start_date.astimezone(UTC)

        event = Event()
        event.add("uid", registration_uid(tournament.id, index))
        event.add("sequence", sequence)
        event.add("dtstamp", self._dtstamp(tournament))
        event.add("summary", f"{REGISTRATION_PREFIX}: {tournament.title}")
        event.add("description", f"{phase.title}\n{tournament_url(tournament.id)}")
        event.add("dtstart", start)
        event.add("dtend", start + REGISTRATION_DURATION)
        event.add("related-to", tournament_uid(tournament.id))
        event.add("transp", "TRANSPARENT")

        alarm = Alarm()
        alarm.add("action", "DISPLAY")
        alarm.add(
            "description", f"{REGISTRATION_PREFIX}: {tournament.title} ({phase.title})"
        )
        alarm.add("trigger", -REMINDER_BEFORE)
        event.add_component(alarm)
        return event
