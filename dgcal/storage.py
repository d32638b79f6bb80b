import json
import threading
from abc import ABC, abstractmethod
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

import structlog

from .exceptions import NotFoundError, StorageError
from .models import (
    Calendar,
    HistorySnapshot,
    RegistrationDict,
    RegistrationPhase,
    SubscriptionConfig,
    Tournament,
    TournamentDict,
)

logger = structlog.get_logger(__name__)

SCHEMA_VERSION = "1.0"


class TournamentRepo(ABC):
    """Repository contract used by the sync engine and the feed generator."""

    @abstractmethod
    def upsert_tournament(self, tournament: Tournament) -> None:
        """Inserts or replaces a tournament keyed by id.

        The stored phase list becomes `tournament.registrations`, so phases
        dropped remotely disappear from the store as well.
        """

    @abstractmethod
    def get_all_tournaments(self) -> list[Tournament]:
        """Returns every stored tournament including its registrations."""

    @abstractmethod
    def upsert_registration(self, tournament_id: int, phase: RegistrationPhase) -> None:
        """Inserts or updates a registration phase keyed by (id, title)."""

    @abstractmethod
    def append_history(self, tournament: Tournament, day: date) -> bool:
        """Appends a snapshot for (tournament.id, day).

        Returns:
            False if a snapshot for that day already exists (nothing written).
        """

    def commit_tournament(self, tournament: Tournament, day: date) -> bool:
        """Stores a tournament, its phases and the snapshot for `day`.

        Stores able to do so should override this to write each file once.

        Returns:
            The result of `append_history`.
        """
        self.upsert_tournament(tournament)
        for phase in tournament.registrations:
            self.upsert_registration(tournament.id, phase)
        return self.append_history(tournament, day)

    @abstractmethod
    def get_tournament_history(self, tournament_id: int) -> list[HistorySnapshot]:
        """Returns all snapshots of a tournament, oldest first."""

    @abstractmethod
    def get_revision_counts(self) -> dict[int, int]:
        """Returns the number of snapshots per tournament id."""


class CalendarRepo(ABC):
    """Repository contract for subscriber calendars."""

    @abstractmethod
    def create_calendar(
        self, calendar_id: str, edit_id: str, title: str, config: SubscriptionConfig
    ) -> Calendar:
        pass

    @abstractmethod
    def update_calendar(self, calendar: Calendar) -> Calendar:
        pass

    @abstractmethod
    def get_calendars(self) -> list[Calendar]:
        pass

    @abstractmethod
    def get_calendar_by_id(self, calendar_id: str) -> Calendar | None:
        pass

    @abstractmethod
    def get_calendar_by_edit_id(self, edit_id: str) -> Calendar | None:
        pass

    @abstractmethod
    def set_calendar_retrieved_at(self, calendar_id: str) -> None:
        pass

    @abstractmethod
    def delete_calendar(self, calendar_id: str) -> None:
        pass


class Storage(TournamentRepo, CalendarRepo):
    """JSON file backend for tournaments, history and calendars.

    Layout under `data_dir`:
        tournaments.json  current state, sorted by id
        history.json      append-only snapshots, at most one per (id, day)
        calendars.json    subscriber calendars

    Files are only rewritten when their content changes, which keeps
    git diffs of the data directory meaningful.
    """

    def __init__(self, data_dir: str = "data"):
        """Initializes the Storage instance.

        Args:
            data_dir: Directory holding the JSON files (created on first write).
        """
        self.data_dir = Path(data_dir)
        self.tournaments_file = self.data_dir / "tournaments.json"
        self.history_file = self.data_dir / "history.json"
        self.calendars_file = self.data_dir / "calendars.json"
        self._lock = threading.RLock()

    def _read(self, path: Path, key: str) -> list[dict[str, Any]]:
        """Loads the item list stored under `key`; a missing file is empty."""
        if not path.exists():
            return []

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("storage_load_failed", error=str(e), path=str(path))
            raise StorageError(f"Could not read {path}: {e}", path=str(path)) from e

        return data.get(key, [])

    def _write(self, path: Path, key: str, items: list[dict[str, Any]]) -> bool:
        """Writes items if they differ from the file content.

        Returns:
            True if the file was written.
        """
        output = {"schema_version": SCHEMA_VERSION, key: items}

        if path.exists():
            try:
                with open(path, encoding="utf-8") as f:
                    if json.load(f) == output:
                        return False
            except (OSError, json.JSONDecodeError):
                logger.warning("storage_overwrite_unreadable", path=str(path))

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(output, f, indent=2, ensure_ascii=False)
                f.write("\n")
        except OSError as e:
            logger.error("storage_write_failed", error=str(e), path=str(path))
            raise StorageError(f"Could not write {path}: {e}", path=str(path)) from e

        logger.debug("storage_updated", path=str(path), count=len(items))
        return True

    def _load_tournament_map(self) -> dict[int, TournamentDict]:
        return {
            int(t["id"]): t  # type: ignore[misc]
            for t in self._read(self.tournaments_file, "tournaments")
        }

    def _save_tournament_map(self, tournaments: dict[int, TournamentDict]) -> None:
        # Sort by ID for stable git diffs
        items = [dict(tournaments[tid]) for tid in sorted(tournaments)]
        self._write(self.tournaments_file, "tournaments", items)

    # --- Tournaments ------------------------------------------------------

    @staticmethod
    def _upsert_phase(
        registrations: list[RegistrationDict], phase: RegistrationPhase
    ) -> None:
        phase_dict = phase.to_dict()
        for i, existing in enumerate(registrations):
            if existing["title"] == phase.title:
                registrations[i] = phase_dict
                return
        registrations.append(phase_dict)

    def _tournament_record(self, tournament: Tournament) -> TournamentDict:
        record = tournament.to_dict()
        record["registrations"] = []
        for phase in tournament.registrations:
            self._upsert_phase(record["registrations"], phase)
        return record

    def upsert_tournament(self, tournament: Tournament) -> None:
        with self._lock:
            tournaments = self._load_tournament_map()
            tournaments[tournament.id] = self._tournament_record(tournament)
            self._save_tournament_map(tournaments)

    def get_all_tournaments(self) -> list[Tournament]:
        with self._lock:
            items = self._read(self.tournaments_file, "tournaments")
        try:
            return [Tournament.from_dict(t) for t in items]  # type: ignore[arg-type]
        except (KeyError, ValueError) as e:
            raise StorageError(
                f"Corrupt tournament record: {e}", path=str(self.tournaments_file)
            ) from e

    def upsert_registration(self, tournament_id: int, phase: RegistrationPhase) -> None:
        with self._lock:
            tournaments = self._load_tournament_map()
            stored = tournaments.get(tournament_id)
            if stored is None:
                raise StorageError(
                    f"Cannot store registration for unknown tournament {tournament_id}",
                    path=str(self.tournaments_file),
                )
            self._upsert_phase(stored["registrations"], phase)
            self._save_tournament_map(tournaments)

    def commit_tournament(self, tournament: Tournament, day: date) -> bool:
        """Writes tournaments.json and history.json once each."""
        with self._lock:
            tournaments = self._load_tournament_map()
            tournaments[tournament.id] = self._tournament_record(tournament)
            self._save_tournament_map(tournaments)

            history = self._read(self.history_file, "history")
            if not self._add_snapshot(history, tournament, day):
                return False
            self._write(self.history_file, "history", history)
            return True

    # --- History ----------------------------------------------------------

    @staticmethod
    def _add_snapshot(history: list[Any], tournament: Tournament, day: date) -> bool:
        day_iso = day.isoformat()
        if any(
            h["tournament_id"] == tournament.id and h["date"] == day_iso
            for h in history
        ):
            logger.info(
                "history_snapshot_exists", tournament_id=tournament.id, date=day_iso
            )
            return False

        snapshot = HistorySnapshot(
            tournament_id=tournament.id,
            date=day,
            updated_at=tournament.updated_at,
            snapshot=tournament.to_dict(),
        )
        history.append(dict(snapshot.to_dict()))
        return True

    def append_history(self, tournament: Tournament, day: date) -> bool:
        with self._lock:
            history = self._read(self.history_file, "history")
            if not self._add_snapshot(history, tournament, day):
                return False
            self._write(self.history_file, "history", history)
            return True

    def get_tournament_history(self, tournament_id: int) -> list[HistorySnapshot]:
        with self._lock:
            history = self._read(self.history_file, "history")
        snapshots = [
            HistorySnapshot.from_dict(h)  # type: ignore[arg-type]
            for h in history
            if h["tournament_id"] == tournament_id
        ]
        return sorted(snapshots, key=lambda s: s.date)

    def get_revision_counts(self) -> dict[int, int]:
        with self._lock:
            history = self._read(self.history_file, "history")
        counts: dict[int, int] = {}
        for h in history:
            tid = int(h["tournament_id"])
            counts[tid] = counts.get(tid, 0) + 1
        return counts

    # --- Calendars --------------------------------------------------------

    def _load_calendars(self) -> list[Calendar]:
        items = self._read(self.calendars_file, "calendars")
        return [Calendar.from_dict(c) for c in items]  # type: ignore[arg-type]

    def _save_calendars(self, calendars: list[Calendar]) -> None:
        items = [dict(c.to_dict()) for c in sorted(calendars, key=lambda c: c.id)]
        self._write(self.calendars_file, "calendars", items)

    def create_calendar(
        self, calendar_id: str, edit_id: str, title: str, config: SubscriptionConfig
    ) -> Calendar:
        now = datetime.now(UTC)
        calendar = Calendar(
            id=calendar_id,
            edit_id=edit_id,
            title=title,
            config=config,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            calendars = self._load_calendars()
            if any(c.id == calendar_id or c.edit_id == edit_id for c in calendars):
                raise StorageError(
                    f"Calendar id collision for {calendar_id}",
                    path=str(self.calendars_file),
                )
            calendars.append(calendar)
            self._save_calendars(calendars)
        return calendar

    def update_calendar(self, calendar: Calendar) -> Calendar:
        with self._lock:
            calendars = self._load_calendars()
            for i, existing in enumerate(calendars):
                if existing.id == calendar.id:
                    existing.title = calendar.title
                    existing.config = calendar.config
                    existing.updated_at = datetime.now(UTC)
                    calendars[i] = existing
                    self._save_calendars(calendars)
                    return existing
        raise NotFoundError(
            f"Calendar {calendar.id} not found",
            resource="calendar",
            identifier=calendar.id,
        )

    def get_calendars(self) -> list[Calendar]:
        with self._lock:
            return self._load_calendars()

    def get_calendar_by_id(self, calendar_id: str) -> Calendar | None:
        return next((c for c in self.get_calendars() if c.id == calendar_id), None)

    def get_calendar_by_edit_id(self, edit_id: str) -> Calendar | None:
        return next((c for c in self.get_calendars() if c.edit_id == edit_id), None)

    def set_calendar_retrieved_at(self, calendar_id: str) -> None:
        with self._lock:
            calendars = self._load_calendars()
            for c in calendars:
                if c.id == calendar_id:
                    c.retrieved_at = datetime.now(UTC)
                    self._save_calendars(calendars)
                    return
        raise NotFoundError(
            f"Calendar {calendar_id} not found",
            resource="calendar",
            identifier=calendar_id,
        )

    def delete_calendar(self, calendar_id: str) -> None:
        with self._lock:
            calendars = self._load_calendars()
            remaining = [c for c in calendars if c.id != calendar_id]
            if len(remaining) < len(calendars):
                self._save_calendars(remaining)
                logger.info("calendar_deleted", calendar_id=calendar_id)
