import structlog

from dgcal.models import DetailRecord, ListingEntry, ScheduleEntry
from dgcal.scraper import Scraper
from dgcal.sources.base_source import TournamentSource
from dgcal.sources.gto_parser import GtoParser
from dgcal.sources.ics_parser import ScheduleFeedParser

logger = structlog.get_logger(__name__)

BASE_URL = "https://turniere.discgolf.de"
SCHEDULE_FEED_PATH = "/media/icals/events.ics"


def tournament_url(tournament_id: int, base_url: str = BASE_URL) -> str:
    """Returns the public detail page URL of a tournament."""
    return f"{base_url}/index.php?p=events&sp=view&id={tournament_id}"


class GtoSource(TournamentSource):
    """Source implementation for turniere.discgolf.de.

    All three resources are fetched sequentially through one Scraper; any
    fetch failure surfaces as NetworkError, any markup mismatch as ParseError.
    """

    def __init__(self, scraper: Scraper, base_url: str = BASE_URL):
        """Initializes the GtoSource.

        Args:
            scraper: An authenticated Scraper instance.
            base_url: The site's base URL.
        """
        self.scraper = scraper
        self.base_url = base_url.rstrip("/")
        self.parser = GtoParser()
        self.feed_parser = ScheduleFeedParser()

    def fetch_listing(self) -> dict[int, ListingEntry]:
        response = self.scraper.get(
            f"{self.base_url}/index.php", params={"p": "events"}
        )
        entries = self.parser.parse_listing(response.text)
        logger.info("listing_fetched", count=len(entries))
        return entries

    def fetch_schedule_feed(self) -> dict[int, ScheduleEntry]:
        response = self.scraper.get(f"{self.base_url}{SCHEDULE_FEED_PATH}")
        entries = self.feed_parser.parse(response.content)
        logger.info("schedule_feed_fetched", count=len(entries))
        return entries

    def fetch_detail(self, tournament_id: int) -> DetailRecord:
        response = self.scraper.get(tournament_url(tournament_id, self.base_url))
        return self.parser.parse_detail(response.text, tournament_id)
