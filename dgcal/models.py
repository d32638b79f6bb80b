from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import TypedDict


class TournamentStatus(StrEnum):
    """Lifecycle state of a tournament as reported by the remote site."""

    PROVISIONAL = "provisional"
    ANNOUNCED = "announced"
    REGISTRATION_OPEN = "registration-open"
    IN_PROGRESS = "in-progress"
    DONE = "done"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TournamentStatus.CANCELLED, TournamentStatus.DONE)


# Listing badge text (case-folded) -> status. Anything else is "announced".
BADGE_STATUS_MAP: dict[str, TournamentStatus] = {
    "abgesagt": TournamentStatus.CANCELLED,
    "vorläufig": TournamentStatus.PROVISIONAL,
}

# First character of the raw "PDGA Status" value (lowercased) -> tier.
PDGA_TIER_MAP: dict[str, str] = {
    "a": "A",
    "b": "B",
    "c": "C",
}


def status_from_badge(badge_text: str) -> TournamentStatus:
    """Maps the listing's status badge text to a TournamentStatus."""
    return BADGE_STATUS_MAP.get(
        badge_text.strip().casefold(), TournamentStatus.ANNOUNCED
    )


def normalize_pdga_tier(raw: str) -> str:
    """Normalizes a raw PDGA status string to its tier letter.

    Unknown values are passed through unchanged.
    """
    value = raw.strip()
    if not value:
        return ""
    return PDGA_TIER_MAP.get(value[0].lower(), value)


# --- JSON representations -------------------------------------------------


class RegistrationDict(TypedDict):
    """Dictionary representation of a registration phase."""

    title: str
    start_date: str
    end_date: str


class TournamentDict(TypedDict):
    """Dictionary representation of a tournament for JSON storage."""

    id: int
    status: str
    title: str
    start_date: str | None
    end_date: str | None
    location: str
    geo_location: str
    series: list[str]
    pdga_tier: str
    pdga_id: str
    d_rating: bool
    updated_at: str | None
    registrations: list[RegistrationDict]


class HistoryDict(TypedDict):
    """Dictionary representation of a history snapshot."""

    tournament_id: int
    date: str
    updated_at: str | None
    snapshot: TournamentDict


class SubscriptionConfigDict(TypedDict):
    tournaments: list[int]
    series: list[str]


class CalendarDict(TypedDict):
    """Dictionary representation of a subscriber calendar."""

    id: str
    edit_id: str
    title: str
    config: SubscriptionConfigDict
    created_at: str
    updated_at: str
    retrieved_at: str | None


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# --- Domain objects -------------------------------------------------------


@dataclass
class RegistrationPhase:
    """A named registration window of a tournament.

    Phases are unique per (tournament id, title); start and end are
    timezone-aware datetimes.
    """

    title: str
    start_date: datetime
    end_date: datetime

    def to_dict(self) -> RegistrationDict:
        return RegistrationDict(
            title=self.title,
            start_date=self.start_date.isoformat(),
            end_date=self.end_date.isoformat(),
        )

    @classmethod
    def from_dict(cls, data: RegistrationDict) -> "RegistrationPhase":
        return cls(
            title=data["title"],
            start_date=datetime.fromisoformat(data["start_date"]),
            end_date=datetime.fromisoformat(data["end_date"]),
        )


def unique_phases(phases: Iterable[RegistrationPhase]) -> list[RegistrationPhase]:
    """Collapses phases sharing a title: the last one wins, the first position stays."""
    by_title: dict[str, RegistrationPhase] = {}
    for phase in phases:
        by_title[phase.title] = phase
    return list(by_title.values())


@dataclass
class Tournament:
    """
    Represents a tournament tracked from the remote site.

    Date formats:
    - start_date, end_date: calendar dates, end_date inclusive
    - updated_at: remote "last changed" timestamp (Europe/Berlin)
    """

    id: int
    status: TournamentStatus = TournamentStatus.ANNOUNCED
    title: str = ""
    start_date: date | None = None
    end_date: date | None = None
    location: str = ""
    geo_location: str = ""  # "lat,long" or empty
    series: list[str] = field(default_factory=list)
    pdga_tier: str = ""
    pdga_id: str = ""
    d_rating: bool = False
    updated_at: datetime | None = None
    registrations: list[RegistrationPhase] = field(default_factory=list)

    def to_dict(self) -> TournamentDict:
        return TournamentDict(
            id=self.id,
            status=str(self.status),
            title=self.title,
            start_date=_iso(self.start_date),
            end_date=_iso(self.end_date),
            location=self.location,
            geo_location=self.geo_location,
            series=list(self.series),
            pdga_tier=self.pdga_tier,
            pdga_id=self.pdga_id,
            d_rating=self.d_rating,
            updated_at=_iso(self.updated_at),
            registrations=[r.to_dict() for r in self.registrations],
        )

    @classmethod
    def from_dict(cls, data: TournamentDict) -> "Tournament":
        return cls(
            id=int(data["id"]),
            status=TournamentStatus(data.get("status", TournamentStatus.ANNOUNCED)),
            title=data.get("title", ""),
            start_date=_parse_date(data.get("start_date")),
            end_date=_parse_date(data.get("end_date")),
            location=data.get("location", ""),
            geo_location=data.get("geo_location", ""),
            series=list(data.get("series", [])),
            pdga_tier=data.get("pdga_tier", ""),
            pdga_id=data.get("pdga_id", ""),
            d_rating=bool(data.get("d_rating", False)),
            updated_at=_parse_datetime(data.get("updated_at")),
            registrations=[
                RegistrationPhase.from_dict(r) for r in data.get("registrations", [])
            ],
        )


@dataclass(frozen=True)
class HistorySnapshot:
    """Immutable record of a tournament's state on a given day."""

    tournament_id: int
    date: date
    updated_at: datetime | None
    snapshot: TournamentDict

    def to_dict(self) -> HistoryDict:
        return HistoryDict(
            tournament_id=self.tournament_id,
            date=self.date.isoformat(),
            updated_at=_iso(self.updated_at),
            snapshot=self.snapshot,
        )

    @classmethod
    def from_dict(cls, data: HistoryDict) -> "HistorySnapshot":
        return cls(
            tournament_id=int(data["tournament_id"]),
            date=date.fromisoformat(data["date"]),
            updated_at=_parse_datetime(data.get("updated_at")),
            snapshot=data["snapshot"],
        )

    @property
    def tournament(self) -> Tournament:
        return Tournament.from_dict(self.snapshot)


@dataclass
class SubscriptionConfig:
    """A subscriber's filter: explicit tournament ids plus series names."""

    tournaments: list[int] = field(default_factory=list)
    series: list[str] = field(default_factory=list)

    def to_dict(self) -> SubscriptionConfigDict:
        return SubscriptionConfigDict(
            tournaments=list(self.tournaments), series=list(self.series)
        )

    @classmethod
    def from_dict(cls, data: SubscriptionConfigDict) -> "SubscriptionConfig":
        return cls(
            tournaments=[int(t) for t in data.get("tournaments", [])],
            series=list(data.get("series", [])),
        )


@dataclass
class Calendar:
    """A subscriber calendar. `id` is public (feed URL), `edit_id` is secret."""

    id: str
    edit_id: str
    title: str
    config: SubscriptionConfig
    created_at: datetime
    updated_at: datetime
    retrieved_at: datetime | None = None

    def to_dict(self) -> CalendarDict:
        return CalendarDict(
            id=self.id,
            edit_id=self.edit_id,
            title=self.title,
            config=self.config.to_dict(),
            created_at=self.created_at.isoformat(),
            updated_at=self.updated_at.isoformat(),
            retrieved_at=_iso(self.retrieved_at),
        )

    @classmethod
    def from_dict(cls, data: CalendarDict) -> "Calendar":
        return cls(
            id=data["id"],
            edit_id=data["edit_id"],
            title=data["title"],
            config=SubscriptionConfig.from_dict(data["config"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            retrieved_at=_parse_datetime(data.get("retrieved_at")),
        )


# --- Extractor records ----------------------------------------------------


@dataclass
class ListingEntry:
    """One row of the remote tournament listing."""

    id: int
    status: TournamentStatus
    updated_at: datetime


@dataclass
class ScheduleEntry:
    """Baseline data for one tournament from the remote schedule feed.

    Entries created only from registration events carry no title or dates.
    """

    id: int
    title: str = ""
    start_date: date | None = None
    end_date: date | None = None


@dataclass
class DetailRecord:
    """Everything extracted from a tournament's detail page."""

    id: int
    title: str = ""
    series: list[str] = field(default_factory=list)
    pdga_tier: str = ""
    pdga_id: str = ""
    d_rating: bool = False
    location: str = ""
    geo_location: str = ""
    start_date: date | None = None
    end_date: date | None = None
    registrations: list[RegistrationPhase] = field(default_factory=list)
