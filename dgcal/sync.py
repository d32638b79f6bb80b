"""Synchronization engine.

Reconciles the remote tournament state with the local store:

1. The cheap listing and schedule feed are fetched on every cycle.
2. Only tournaments that are new or whose remote "last changed" time moved
   forward get the expensive detail fetch.
3. Each changed tournament is stored with its freshly parsed registration
   phases (replacing the stored ones) and one history snapshot is appended
   for the cycle's date.

The in-memory tournament map is copy-on-write: a commit builds a new dict
and swaps the reference, so readers on other threads always see a complete
map without taking the lock.
"""

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime, timedelta

import structlog

from .exceptions import ConfigurationError, DgCalError, NetworkError, ParseError
from .models import (
    DetailRecord,
    HistorySnapshot,
    ListingEntry,
    ScheduleEntry,
    Tournament,
    unique_phases,
)
from .sources.base_source import TournamentSource
from .storage import TournamentRepo
from .utils.date_and_time import TIMEZONE

logger = structlog.get_logger(__name__)


@dataclass
class SyncReport:
    """Outcome of one sync cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    checked: int = 0
    skipped: int = 0
    new: list[int] = field(default_factory=list)
    updated: list[int] = field(default_factory=list)
    failures: dict[int, DgCalError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def build_candidates(
    listing: dict[int, ListingEntry],
    schedule: dict[int, ScheduleEntry],
    known_ids: Iterable[int],
) -> list[Tournament]:
    """Builds baseline tournaments from the listing and the schedule feed.

    Every listed id becomes a candidate carrying its remote status and
    last change time, with title and dates from the feed where available.
    Ids only present in the feed are candidates on first sighting only,
    since they carry no change time to compare against later.
    """
    candidates: list[Tournament] = []
    for tid, entry in listing.items():
        baseline = schedule.get(tid) or ScheduleEntry(id=tid)
        candidates.append(
            Tournament(
                id=tid,
                status=entry.status,
                updated_at=entry.updated_at,
                title=baseline.title,
                start_date=baseline.start_date,
                end_date=baseline.end_date,
            )
        )

    known = set(known_ids)
    for tid, baseline in schedule.items():
        if tid in listing or tid in known:
            continue
        candidates.append(
            Tournament(
                id=tid,
                title=baseline.title,
                start_date=baseline.start_date,
                end_date=baseline.end_date,
            )
        )

    return sorted(candidates, key=lambda t: t.id)


def is_changed(candidate: Tournament, stored: Tournament | None) -> bool:
    """Returns True if the candidate must be enriched and committed.

    A fetched change time that is not strictly newer than the stored one is
    never applied.
    """
    if stored is None:
        return True
    if candidate.updated_at is None:
        return False
    if stored.updated_at is None:
        return True
    return candidate.updated_at > stored.updated_at


def merge_detail(candidate: Tournament, detail: DetailRecord) -> Tournament:
    """Overlays detail page data onto the baseline candidate.

    Detail fields take precedence; title and dates fall back to the
    baseline when the detail page did not provide them. The registration
    list is replaced by the freshly parsed phases.
    """
    return replace(
        candidate,
        title=detail.title or candidate.title,
        start_date=detail.start_date or candidate.start_date,
        end_date=detail.end_date or candidate.end_date,
        series=list(detail.series),
        pdga_tier=detail.pdga_tier,
        pdga_id=detail.pdga_id,
        d_rating=detail.d_rating,
        location=detail.location,
        geo_location=detail.geo_location,
        registrations=unique_phases(detail.registrations),
    )


class TournamentService:
    """Authoritative in-memory tournament state plus the sync cycle."""

    def __init__(self, repo: TournamentRepo, source: TournamentSource | None = None):
        """Initializes the service and loads all stored tournaments.

        Args:
            repo: The tournament store.
            source: The remote tournament source; read-only use needs none.
        """
        self.repo = repo
        self.source = source
        self._lock = threading.Lock()
        self._tournaments: dict[int, Tournament] = {}
        self._last_sync: datetime | None = None
        self._load()

    def _load(self) -> None:
        logger.info("loading_tournaments")
        tournaments = self.repo.get_all_tournaments()
        with self._lock:
            self._tournaments = {t.id: t for t in tournaments}
        logger.info("tournaments_loaded", count=len(tournaments))

    def _publish(self, tournament: Tournament) -> None:
        """Swaps in a new map containing the committed tournament."""
        with self._lock:
            updated = dict(self._tournaments)
            updated[tournament.id] = tournament
            self._tournaments = updated

    def _commit(self, tournament: Tournament, day: date) -> None:
        if not self.repo.commit_tournament(tournament, day):
            logger.info(
                "history_unchanged_for_day",
                tournament_id=tournament.id,
                date=day.isoformat(),
            )
        self._publish(tournament)

    def sync(self, today: date | None = None) -> SyncReport:
        """Runs one sync cycle.

        Listing and feed failures abort the cycle. A failed detail fetch or
        parse only skips that tournament; it is recorded in the report and
        retried on the next cycle since its stored state did not advance.
        Storage errors abort the cycle; tournaments committed before the
        error stay committed.

        Args:
            today: Date used for history snapshots (defaults to today in
                the site's timezone).

        Returns:
            A SyncReport describing the cycle.

        Raises:
            ConfigurationError: If the service was built without a source.
        """
        if self.source is None:
            raise ConfigurationError(
                "No tournament source configured",
                parameter="SESSION_ID/LOGIN_DATA",
            )
        report = SyncReport(started_at=datetime.now(UTC))
        day = today or datetime.now(TIMEZONE).date()
        logger.info("sync_started")

        listing = self.source.fetch_listing()
        schedule = self.source.fetch_schedule_feed()

        known = self._tournaments
        for candidate in build_candidates(listing, schedule, known.keys()):
            report.checked += 1
            stored = known.get(candidate.id)
            if not is_changed(candidate, stored):
                report.skipped += 1
                continue

            logger.info(
                "tournament_changed",
                tournament_id=candidate.id,
                updated_at=candidate.updated_at.isoformat()
                if candidate.updated_at
                else None,
            )
            try:
                detail = self.source.fetch_detail(candidate.id)
            except (NetworkError, ParseError) as e:
                logger.error(
                    "tournament_enrichment_failed",
                    tournament_id=candidate.id,
                    **e.to_dict(),
                )
                report.failures[candidate.id] = e
                continue

            self._commit(merge_detail(candidate, detail), day)
            if stored is None:
                report.new.append(candidate.id)
            else:
                report.updated.append(candidate.id)

        self._last_sync = datetime.now(UTC)
        report.finished_at = self._last_sync
        logger.info(
            "sync_done",
            checked=report.checked,
            new=len(report.new),
            updated=len(report.updated),
            failed=len(report.failures),
        )
        return report

    # --- Queries ----------------------------------------------------------

    def get_last_sync(self) -> datetime | None:
        return self._last_sync

    def is_stale(self, interval: timedelta, now: datetime | None = None) -> bool:
        """True if no cycle completed within the last two intervals."""
        if self._last_sync is None:
            return True
        now = now or datetime.now(UTC)
        return now - self._last_sync > 2 * interval

    def get_tournament(self, tournament_id: int) -> Tournament | None:
        return self._tournaments.get(tournament_id)

    def get_tournaments(self) -> list[Tournament]:
        """All tournaments ordered by start date, then id."""
        return sorted(
            self._tournaments.values(),
            key=lambda t: (t.start_date or date.max, t.id),
        )

    def get_tournaments_for_series(self, series: Iterable[str]) -> list[Tournament]:
        wanted = set(series)
        return [
            t for t in self.get_tournaments() if any(s in wanted for s in t.series)
        ]

    def get_all_series(self, active: bool = True) -> list[str]:
        """Distinct series names in first-seen order.

        With `active`, series only used by cancelled or finished
        tournaments are left out.
        """
        result: list[str] = []
        seen: set[str] = set()
        for t in self.get_tournaments():
            if active and t.status.is_terminal:
                continue
            for s in t.series:
                if s not in seen:
                    seen.add(s)
                    result.append(s)
        return result

    def get_tournament_history(self, tournament_id: int) -> list[HistorySnapshot]:
        return self.repo.get_tournament_history(tournament_id)
