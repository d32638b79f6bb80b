from datetime import UTC, date, datetime, timedelta

import pytest
from icalendar import Calendar as ICalendar

from conftest import FakeSource, berlin
from dgcal.calendars import CalendarService
from dgcal.exceptions import NotFoundError
from dgcal.feed import (
    FeedGenerator,
    cache_max_age,
    registration_uid,
    resolve_subscription,
    tournament_uid,
)
from dgcal.models import (
    DetailRecord,
    ListingEntry,
    RegistrationPhase,
    SubscriptionConfig,
    Tournament,
    TournamentStatus,
)
from dgcal.storage import Storage
from dgcal.sync import TournamentService


def _store(storage: Storage, tournament: Tournament, *days: date) -> None:
    storage.upsert_tournament(tournament)
    for phase in tournament.registrations:
        storage.upsert_registration(tournament.id, phase)
    for day in days:
        storage.append_history(tournament, day)


@pytest.fixture
def populated(storage: Storage) -> Storage:
    _store(
        storage,
        Tournament(
            id=7,
            title="Sommer Open",
            start_date=date(2025, 6, 14),
            end_date=date(2025, 6, 15),
            location="Düsseldorf",
            series=["German Tour"],
            updated_at=berlin(2025, 5, 24, 18, 30),
            registrations=[
                RegistrationPhase(
                    title="Phase 1",
                    start_date=berlin(2025, 3, 1, 18, 0),
                    end_date=berlin(2025, 3, 31, 23, 59),
                )
            ],
        ),
        date(2025, 5, 20),
        date(2025, 5, 24),
    )
    _store(
        storage,
        Tournament(id=8, title="Liga", start_date=date(2025, 7, 1), series=["NRW Serie"]),
        date(2025, 5, 20),
    )
    _store(
        storage,
        Tournament(id=9, title="Einzeltermin", start_date=date(2025, 8, 2), end_date=date(2025, 8, 2)),
        date(2025, 5, 20),
    )
    _store(storage, Tournament(id=10, title="Ohne Datum", series=["German Tour"]))
    return storage


@pytest.fixture
def calendar_service(populated: Storage) -> CalendarService:
    return CalendarService(populated, populated)


@pytest.fixture
def generator(populated: Storage, calendar_service: CalendarService) -> FeedGenerator:
    return FeedGenerator(calendar_service, TournamentService(populated))


def _events(content: bytes) -> dict[str, object]:
    ical = ICalendar.from_ical(content)
    return {str(e["uid"]): e for e in ical.walk("VEVENT")}


def test_resolve_subscription(populated: Storage) -> None:
    service = TournamentService(populated)
    config = SubscriptionConfig(tournaments=[9, 7, 404], series=["German Tour"])

    resolved = resolve_subscription(config, service)

    # Series matches first, then explicit ids; duplicates and unknown ids dropped
    assert [t.id for t in resolved] == [7, 10, 9]


def test_generate_feed(calendar_service: CalendarService, generator: FeedGenerator) -> None:
    calendar = calendar_service.create_calendar(
        "Meine Turniere", SubscriptionConfig(tournaments=[9], series=["German Tour"])
    )

    content = generator.generate(calendar.id)
    ical = ICalendar.from_ical(content)
    events = _events(content)

    assert str(ical["x-wr-calname"]) == "Meine Turniere"
    assert str(ical["method"]) == "PUBLISH"
    # Tournament 10 has no dates and is left out
    assert sorted(events) == [
        registration_uid(7, 0),
        tournament_uid(7),
        tournament_uid(9),
    ]

    sommer = events[tournament_uid(7)]
    assert str(sommer["summary"]) == "Sommer Open"
    assert str(sommer["location"]) == "Düsseldorf"
    assert int(sommer["sequence"]) == 2
    assert sommer["dtstart"].dt == date(2025, 6, 14)
    # All-day DTEND is exclusive
    assert sommer["dtend"].dt == date(2025, 6, 16)
    assert "id=7" in str(sommer["description"])

    assert events[tournament_uid(9)]["dtend"].dt == date(2025, 8, 3)
    assert int(events[tournament_uid(9)]["sequence"]) == 1


def test_registration_event(calendar_service: CalendarService, generator: FeedGenerator) -> None:
    calendar = calendar_service.create_calendar(
        "Anmeldungen", SubscriptionConfig(tournaments=[7])
    )
    registration = _events(generator.generate(calendar.id))[registration_uid(7, 0)]

    assert str(registration["summary"]) == "Anmeldung: Sommer Open"
    assert registration["dtstart"].dt == datetime(2025, 3, 1, 17, 0, tzinfo=UTC)
    assert registration["dtend"].dt - registration["dtstart"].dt == timedelta(hours=2)
    assert int(registration["sequence"]) == 2

    (alarm,) = registration.walk("VALARM")
    assert str(alarm["action"]) == "DISPLAY"
    assert alarm["trigger"].dt == timedelta(minutes=-15)


def test_feed_is_stable(calendar_service: CalendarService, generator: FeedGenerator) -> None:
    calendar = calendar_service.create_calendar(
        "Stabil", SubscriptionConfig(series=["German Tour", "NRW Serie"])
    )
    assert generator.generate(calendar.id) == generator.generate(calendar.id)


def test_generate_marks_calendar_retrieved(
    calendar_service: CalendarService, generator: FeedGenerator
) -> None:
    calendar = calendar_service.create_calendar("Abruf", SubscriptionConfig())
    assert calendar.retrieved_at is None

    generator.generate(calendar.id)
    assert calendar_service.get_calendar(calendar.id).retrieved_at is not None


def test_generate_unknown_calendar(generator: FeedGenerator) -> None:
    with pytest.raises(NotFoundError):
        generator.generate("does-not-exist")


def test_cache_max_age() -> None:
    now = datetime(2025, 5, 24, 12, 0, tzinfo=UTC)
    interval = timedelta(minutes=30)

    assert cache_max_age(now - timedelta(minutes=10), interval, now) == 22 * 60
    assert cache_max_age(now - timedelta(hours=2), interval, now) == 0
    assert cache_max_age(None, interval, now) == 0


def test_feed_survives_restart_after_phase_change(storage: Storage) -> None:
    def phase(title: str, month: int) -> RegistrationPhase:
        return RegistrationPhase(
            title=title,
            start_date=berlin(2025, month, 1, 18, 0),
            end_date=berlin(2025, month, 20, 23, 59),
        )

    def detail(*phases: RegistrationPhase) -> DetailRecord:
        return DetailRecord(
            id=7,
            title="Sommer Open",
            start_date=date(2025, 6, 14),
            end_date=date(2025, 6, 15),
            series=["German Tour"],
            registrations=list(phases),
        )

    source = FakeSource(
        listing={7: ListingEntry(7, TournamentStatus.ANNOUNCED, berlin(2025, 5, 20, 8, 0))},
        details={7: detail(phase("Phase 1", 3), phase("Phase 2", 4))},
    )
    service = TournamentService(storage, source)
    service.sync(today=date(2025, 5, 20))

    source.listing[7] = ListingEntry(
        7, TournamentStatus.ANNOUNCED, berlin(2025, 5, 24, 18, 30)
    )
    source.details[7] = detail(phase("Nachmeldung", 5))
    service.sync(today=date(2025, 5, 24))

    calendar_service = CalendarService(storage, storage)
    calendar = calendar_service.create_calendar(
        "Neustart", SubscriptionConfig(tournaments=[7])
    )
    before = FeedGenerator(calendar_service, service).generate(calendar.id)
    restarted = TournamentService(storage)
    after = FeedGenerator(calendar_service, restarted).generate(calendar.id)

    assert after == before
    events = _events(after)
    assert sorted(events) == [registration_uid(7, 0), tournament_uid(7)]
    late = events[registration_uid(7, 0)]
    assert late["dtstart"].dt == datetime(2025, 5, 1, 16, 0, tzinfo=UTC)
    assert int(late["sequence"]) == 2
