"""Shared pytest fixtures for dg-cal tests."""

from datetime import datetime
from pathlib import Path

import pytest

from dgcal.models import DetailRecord, ListingEntry, ScheduleEntry
from dgcal.sources.base_source import TournamentSource
from dgcal.storage import Storage
from dgcal.utils.date_and_time import TIMEZONE


def berlin(*args: int) -> datetime:
    """Builds an aware datetime in the site's timezone."""
    return datetime(*args, tzinfo=TIMEZONE)


class FakeSource(TournamentSource):
    """In-memory source; a detail entry may be an exception to raise."""

    def __init__(
        self,
        listing: dict[int, ListingEntry] | None = None,
        schedule: dict[int, ScheduleEntry] | None = None,
        details: dict[int, DetailRecord | Exception] | None = None,
    ):
        self.listing = listing or {}
        self.schedule = schedule or {}
        self.details = details or {}
        self.detail_calls: list[int] = []

    def fetch_listing(self) -> dict[int, ListingEntry]:
        return dict(self.listing)

    def fetch_schedule_feed(self) -> dict[int, ScheduleEntry]:
        return dict(self.schedule)

    def fetch_detail(self, tournament_id: int) -> DetailRecord:
        self.detail_calls.append(tournament_id)
        detail = self.details.get(tournament_id, DetailRecord(id=tournament_id))
        if isinstance(detail, Exception):
            raise detail
        return detail


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Provides a temporary data directory (not created yet)."""
    return tmp_path / "data"


@pytest.fixture
def storage(data_dir: Path) -> Storage:
    return Storage(str(data_dir))


@pytest.fixture
def fake_source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def listing_html() -> str:
    """A listing page with two valid, one duplicate and two malformed rows."""
    return """
    <table id="list_tournaments" class="table">
      <thead>
        <tr><th>Status</th><th>Datum</th><th>Turnier</th><th>Letzte Änderung</th></tr>
      </thead>
      <tbody>
        <tr>
          <td><span class="badge">Abgesagt</span></td>
          <td>14.06.2025</td>
          <td><a href="index.php?p=events&amp;sp=view&amp;id=2497">Sommer Open</a></td>
          <td>24.05.2025 18:30</td>
        </tr>
        <tr>
          <td><span class="badge">vorläufig</span></td>
          <td>05.07.2025</td>
          <td><a href="index.php?p=events&amp;sp=view&amp;id=2500">Waldcup</a></td>
          <td>01.06.2025 09:00</td>
        </tr>
        <tr>
          <td></td>
          <td>12.07.2025</td>
          <td><a href="index.php?p=events&amp;sp=view&amp;id=2501">Stadtmeisterschaft</a></td>
          <td>02.06.2025 10:15</td>
        </tr>
        <tr>
          <td></td>
          <td>14.06.2025</td>
          <td><a href="index.php?p=events&amp;sp=view&amp;id=2497">Sommer Open</a></td>
          <td>30.05.2025 12:00</td>
        </tr>
        <tr>
          <td></td>
          <td></td>
          <td><a href="index.php?p=events">Ohne Id</a></td>
          <td>02.06.2025 10:15</td>
        </tr>
        <tr>
          <td></td>
          <td></td>
          <td><a href="index.php?p=events&amp;sp=view&amp;id=2600">Kaputt</a></td>
          <td>gestern</td>
        </tr>
      </tbody>
    </table>
    """


@pytest.fixture
def detail_html() -> str:
    return """
    <div class="container">
      <h2>12. Sommer Open <span class="badge">B-Tier</span></h2>
      <div class="card">
        <div class="card-body">
          <h4 class="card-title">Basisdaten</h4>
          <table class="table">
            <tr><td>Serien</td><td><span>German Tour</span> <span>NRW Serie</span></td></tr>
            <tr>
              <td>PDGA Status</td>
              <td><a href="https://www.pdga.com/tour/event/88276">B-Tier</a></td>
            </tr>
            <tr><td>D-Rating Berücksichtigung</td><td>Ja</td></tr>
            <tr>
              <td>Ort</td>
              <td><a href="https://www.google.com/maps/place/51.2277,6.7735">Düsseldorf</a></td>
            </tr>
            <tr><td>Turnierbetrieb</td><td>14.06.2025 - 15.06.2025</td></tr>
            <tr><td>Turnierdirektor</td><td>Max Mustermann</td></tr>
          </table>
        </div>
      </div>
      <div class="card">
        <div class="card-body"><h4 class="card-title">Anmeldephasen</h4></div>
        <div class="card-header">
          <h5>Phase 1: Mitglieder</h5>
          <small>01.03.2025 18:00 - 31.03.2025 23:59</small>
        </div>
        <div class="card-header">
          <h5>Phase 2: Alle</h5>
          <small>01.04.2025 18:00 - 30.04.2025 23:59</small>
        </div>
        <div class="card-header">
          <h5>Warteliste</h5>
          <small>ab 01.05.2025</small>
        </div>
      </div>
    </div>
    """


@pytest.fixture
def schedule_ics() -> bytes:
    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//turniere.discgolf.de//DE",
        "BEGIN:VEVENT",
        "UID:2497-0@turniere.discgolf.de",
        "DTSTAMP:20250524T163000Z",
        "DTSTART;VALUE=DATE:20250614",
        "DTEND;VALUE=DATE:20250616",
        "SUMMARY:12. Sommer Open",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:registration-2497-1@turniere.discgolf.de",
        "DTSTAMP:20250524T163000Z",
        "DTSTART:20250301T170000Z",
        "DTEND:20250301T190000Z",
        "SUMMARY:Anmeldung 12. Sommer Open",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:registration-2600-1@turniere.discgolf.de",
        "DTSTAMP:20250524T163000Z",
        "DTSTART:20250401T160000Z",
        "DTEND:20250401T180000Z",
        "SUMMARY:Anmeldung Herbstturnier",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:2510-0@turniere.discgolf.de",
        "DTSTAMP:20250524T163000Z",
        "DTSTART:20251024T220000Z",
        "DTEND:20251026T230000Z",
        "SUMMARY:Zeitumstellungs-Cup",
        "END:VEVENT",
        "END:VCALENDAR",
    ]
    return ("\r\n".join(lines) + "\r\n").encode("utf-8")
