import logging
from collections.abc import Callable
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup, Tag

from dgcal.exceptions import ParseError
from dgcal.models import (
    DetailRecord,
    ListingEntry,
    RegistrationPhase,
    normalize_pdga_tier,
    status_from_badge,
)
from dgcal.utils.date_and_time import (
    DATETIME_FORMAT,
    parse_date_range,
    parse_local_datetime,
    parse_tournament_dates,
)

LISTING_TABLE_SELECTOR = "table#list_tournaments"
LAST_CHANGED_HEADER = "Letzte Änderung"
TITLE_HEADER = "Turnier"

BASE_DATA_CARD = "Basisdaten"
REGISTRATION_CARD = "Anmeldephasen"

PDGA_EVENT_PREFIX = "https://www.pdga.com/tour/event/"
MAPS_PLACE_PREFIX = "/maps/place/"


class GtoParser:
    """Parses HTML pages of turniere.discgolf.de.

    Handles the tournament listing (status and last change per tournament)
    and the tournament detail page (base data and registration phases).
    """

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)
        self._base_data_handlers: dict[str, Callable[[Tag, str, DetailRecord], None]] = {
            "Serien": self._handle_series,
            "PDGA Status": self._handle_pdga_status,
            "D-Rating Berücksichtigung": self._handle_d_rating,
            "Ort": self._handle_location,
            "Turnierbetrieb": self._handle_dates,
        }

    @staticmethod
    def extract_tournament_id(href: str) -> int:
        """Extracts the tournament id from a link's `id` query parameter.

        Args:
            href: A link such as "index.php?p=events&sp=view&id=2497".

        Returns:
            The tournament id.

        Raises:
            ParseError: If the link has no integer `id` parameter.
        """
        values = parse_qs(urlparse(href).query).get("id")
        if not values or not values[0]:
            raise ParseError(
                f"No id parameter found in URL '{href}'", field="id"
            )
        try:
            return int(values[0])
        except ValueError as e:
            raise ParseError(
                f"Tournament id '{values[0]}' is not an integer", field="id"
            ) from e

    @staticmethod
    def _column_index(headers: list[str], name: str) -> int:
        try:
            return headers.index(name)
        except ValueError as e:
            raise ParseError(
                f"Could not find '{name}' column in table header",
                field=name,
                selector=f"{LISTING_TABLE_SELECTOR} thead tr th",
            ) from e

    def parse_listing(self, html: str) -> dict[int, ListingEntry]:
        """Parses the tournament listing page.

        Columns are located by header text since their order is not fixed.

        Args:
            html: The HTML content of the listing page.

        Returns:
            A dictionary mapping tournament id to its listing entry.

        Raises:
            ParseError: If the table or a required column is missing.
        """
        soup = BeautifulSoup(html, "lxml")
        table = soup.select_one(LISTING_TABLE_SELECTOR)
        if table is None:
            raise ParseError(
                "Could not find tournaments table", selector=LISTING_TABLE_SELECTOR
            )

        headers = [th.get_text().strip() for th in table.select("thead tr th")]
        updated_col = self._column_index(headers, LAST_CHANGED_HEADER)
        title_col = self._column_index(headers, TITLE_HEADER)

        entries: dict[int, ListingEntry] = {}
        for row in table.select("tbody tr"):
            entry = self._parse_listing_row(row, updated_col, title_col)
            if entry is None:
                continue
            if entry.id in entries:
                self.logger.debug(f"Duplicate listing row for tournament {entry.id}")
                continue
            entries[entry.id] = entry

        return entries

    def _parse_listing_row(
        self, row: Tag, updated_col: int, title_col: int
    ) -> ListingEntry | None:
        """Parses a single listing row; malformed rows are skipped."""
        cells = row.find_all("td")
        if len(cells) <= max(updated_col, title_col):
            return None

        link = cells[title_col].find("a", href=True)
        if link is None:
            self.logger.warning("Listing row without tournament link")
            return None

        try:
            tournament_id = self.extract_tournament_id(str(link["href"]))
        except ParseError as e:
            self.logger.warning(f"Skipping listing row: {e.message}")
            return None

        updated_text = cells[updated_col].get_text().strip()
        if not updated_text:
            self.logger.warning(f"Tournament {tournament_id}: no last change time")
            return None

        try:
            updated_at = parse_local_datetime(updated_text, DATETIME_FORMAT)
        except ParseError:
            self.logger.warning(
                f"Tournament {tournament_id}: bad last change time '{updated_text}'"
            )
            return None

        badge = " ".join(s.get_text() for s in cells[0].find_all("span"))
        return ListingEntry(
            id=tournament_id,
            status=status_from_badge(badge),
            updated_at=updated_at,
        )

    @staticmethod
    def _find_card(soup: BeautifulSoup, title: str) -> Tag | None:
        """Returns the `.card` element whose `h4.card-title` has the given text."""
        for heading in soup.select("h4.card-title"):
            if heading.get_text().strip() == title:
                return heading.find_parent(class_="card")
        return None

    def parse_detail(self, html: str, tournament_id: int) -> DetailRecord:
        """Parses a tournament detail page.

        Args:
            html: The HTML content of the detail page.
            tournament_id: The id the page was fetched for.

        Returns:
            The extracted DetailRecord.

        Raises:
            ParseError: If the "Basisdaten" table is missing.
        """
        soup = BeautifulSoup(html, "lxml")
        record = DetailRecord(id=tournament_id)

        heading = soup.find("h2")
        if isinstance(heading, Tag):
            # Own text only; nested badges are not part of the title
            record.title = "".join(heading.find_all(string=True, recursive=False)).strip()

        card = self._find_card(soup, BASE_DATA_CARD)
        table = card.find("table") if card is not None else None
        if not isinstance(table, Tag):
            raise ParseError(
                f"Could not find {BASE_DATA_CARD} table",
                tournament_id=tournament_id,
                selector="h4.card-title",
                html_snippet=html,
            )

        for tr in table.find_all("tr"):
            cells = tr.find_all("td")
            if len(cells) < 2:
                continue

            label = cells[0].get_text().strip()
            handler = self._base_data_handlers.get(label)
            if handler:
                handler(cells[1], cells[1].get_text().strip(), record)

        record.registrations = self.parse_registration_phases(soup, tournament_id)
        return record

    def _handle_series(self, cell: Tag, value: str, record: DetailRecord) -> None:
        record.series = [
            s.get_text().strip() for s in cell.find_all("span") if s.get_text().strip()
        ]

    def _handle_pdga_status(self, cell: Tag, value: str, record: DetailRecord) -> None:
        if not value:
            return
        record.pdga_tier = normalize_pdga_tier(value)
        link = cell.find("a", href=True)
        if link is not None:
            record.pdga_id = str(link["href"]).removeprefix(PDGA_EVENT_PREFIX)

    def _handle_d_rating(self, cell: Tag, value: str, record: DetailRecord) -> None:
        record.d_rating = value == "Ja"

    def _handle_location(self, cell: Tag, value: str, record: DetailRecord) -> None:
        links = cell.find_all("a")
        record.location = links[0].get_text().strip() if len(links) == 1 else value

        href = links[0].get("href") if links else None
        if href:
            record.geo_location = self.extract_geo_location(str(href))

    @staticmethod
    def extract_geo_location(href: str) -> str:
        """Returns "lat,long" from a maps link such as /maps/place/49.1,8.4.

        Returns an empty string for any other URL shape.
        """
        path = urlparse(href).path
        if not path.startswith(MAPS_PLACE_PREFIX):
            return ""
        geo = path.removeprefix(MAPS_PLACE_PREFIX).strip("/")
        if len(geo.split(",")) != 2:
            return ""
        return geo

    def _handle_dates(self, cell: Tag, value: str, record: DetailRecord) -> None:
        try:
            record.start_date, record.end_date = parse_tournament_dates(value)
        except ParseError as e:
            self.logger.warning(
                f"Tournament {record.id}: could not parse dates: {e.message}"
            )

    def parse_registration_phases(
        self, soup: BeautifulSoup, tournament_id: int
    ) -> list[RegistrationPhase]:
        """Extracts registration phases in document order.

        Each `.card-header` of the "Anmeldephasen" card holds an `h5` title
        and a `small` subtitle with a "dd.mm.yyyy HH:MM - dd.mm.yyyy HH:MM"
        range. Phases without both bounds are skipped.
        """
        phases: list[RegistrationPhase] = []
        card = self._find_card(soup, REGISTRATION_CARD)
        if card is None:
            return phases

        for header in card.select(".card-header"):
            title_el = header.find("h5")
            date_el = header.find("small")
            if title_el is None or date_el is None:
                continue

            title = title_el.get_text().strip()
            date_text = date_el.get_text().strip()
            try:
                start, end = parse_date_range(date_text, (DATETIME_FORMAT,))
            except ParseError as e:
                self.logger.warning(
                    f"Tournament {tournament_id}: bad registration phase "
                    f"'{title}': {e.message}"
                )
                continue

            if end is None:
                self.logger.warning(
                    f"Tournament {tournament_id}: registration phase '{title}' "
                    f"has no end date"
                )
                continue

            phases.append(RegistrationPhase(title=title, start_date=start, end_date=end))

        return phases
