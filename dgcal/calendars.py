import structlog

from .exceptions import NotFoundError
from .models import Calendar, SubscriptionConfig
from .storage import CalendarRepo, TournamentRepo
from .utils.crypto import generate_calendar_id, generate_edit_id

logger = structlog.get_logger(__name__)


class CalendarService:
    """Manages subscriber calendars and their filters."""

    def __init__(self, repo: CalendarRepo, tournament_repo: TournamentRepo):
        self.repo = repo
        self.tournament_repo = tournament_repo

    def create_calendar(self, title: str, config: SubscriptionConfig) -> Calendar:
        """Creates a calendar with a fresh public id and a secret edit id."""
        calendar = self.repo.create_calendar(
            generate_calendar_id(), generate_edit_id(), title, config
        )
        logger.info(
            "calendar_created",
            calendar_id=calendar.id,
            series=len(config.series),
            tournaments=len(config.tournaments),
        )
        return calendar

    def update_calendar(self, calendar: Calendar) -> Calendar:
        return self.repo.update_calendar(calendar)

    def get_calendar(self, calendar_id: str) -> Calendar:
        """Looks up a calendar by its public id.

        Raises:
            NotFoundError: If no calendar has that id.
        """
        calendar = self.repo.get_calendar_by_id(calendar_id)
        if calendar is None:
            raise NotFoundError(
                f"Calendar {calendar_id} not found",
                resource="calendar",
                identifier=calendar_id,
            )
        return calendar

    def get_calendar_by_edit_id(self, edit_id: str) -> Calendar:
        calendar = self.repo.get_calendar_by_edit_id(edit_id)
        if calendar is None:
            # Do not echo the secret back into logs or responses
            raise NotFoundError("Calendar not found", resource="calendar")
        return calendar

    def get_all_calendars(self) -> list[Calendar]:
        return self.repo.get_calendars()

    def delete_calendar(self, calendar_id: str) -> None:
        self.repo.delete_calendar(calendar_id)

    def set_calendar_retrieved_at(self, calendar_id: str) -> None:
        self.repo.set_calendar_retrieved_at(calendar_id)

    def get_update_count(self) -> dict[int, int]:
        """Revision counter per tournament id."""
        return self.tournament_repo.get_revision_counts()
