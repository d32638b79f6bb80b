from abc import ABC, abstractmethod

from dgcal.models import DetailRecord, ListingEntry, ScheduleEntry


class TournamentSource(ABC):
    """Abstract base class for remote tournament sources."""

    @abstractmethod
    def fetch_listing(self) -> dict[int, ListingEntry]:
        """Fetches status and last change time of every listed tournament.

        Returns:
            A dictionary mapping tournament id to its listing entry.
        """
        pass

    @abstractmethod
    def fetch_schedule_feed(self) -> dict[int, ScheduleEntry]:
        """Fetches baseline title and dates per tournament.

        Returns:
            A dictionary mapping tournament id to its schedule entry.
        """
        pass

    @abstractmethod
    def fetch_detail(self, tournament_id: int) -> DetailRecord:
        """Fetches the detail page of a single tournament.

        Args:
            tournament_id: The tournament to fetch.

        Returns:
            The extracted DetailRecord.
        """
        pass
