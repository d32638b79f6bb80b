#!/usr/bin/env python3
"""Quick start example for dg-cal.

Runs one sync cycle against turniere.discgolf.de, creates a calendar for
the first series found and writes its iCalendar feed to example.ics.

Requires the SESSION_ID and LOGIN_DATA environment variables.
"""

import os
import sys
from pathlib import Path

# Add parent directory to path to allow importing dgcal
sys.path.insert(0, str(Path(__file__).parent.parent))

from dgcal.calendars import CalendarService
from dgcal.feed import FeedGenerator
from dgcal.models import SubscriptionConfig
from dgcal.scraper import Scraper
from dgcal.sources.gto_source import GtoSource
from dgcal.storage import Storage
from dgcal.sync import TournamentService


def main() -> None:
    """Run a simple sync and export example."""
    storage = Storage("example_data")
    source = GtoSource(Scraper(os.environ["SESSION_ID"], os.environ["LOGIN_DATA"]))

    service = TournamentService(storage, source)
    report = service.sync()
    print(f"Checked {report.checked} tournaments, {len(report.new)} new")

    series = service.get_all_series()
    if not series:
        print("No active series found")
        return

    calendars = CalendarService(storage, storage)
    calendar = calendars.create_calendar(
        series[0], SubscriptionConfig(series=[series[0]])
    )
    content = FeedGenerator(calendars, service).generate(calendar.id)
    Path("example.ics").write_bytes(content)
    print(f"\nSaved feed for '{series[0]}' to example.ics")


if __name__ == "__main__":
    main()
