import logging
import sys
from pathlib import Path

import click
import structlog
import yaml

from dgcal.calendars import CalendarService
from dgcal.exceptions import ConfigurationError, DgCalError, NotFoundError
from dgcal.feed import FeedGenerator
from dgcal.models import SubscriptionConfig
from dgcal.scheduler import SyncScheduler
from dgcal.scraper import Scraper
from dgcal.sources.gto_source import GtoSource
from dgcal.storage import Storage
from dgcal.sync import TournamentService
from dgcal.utils.diff import calculate_stats

logger = structlog.get_logger(__name__)


def setup_logging(verbose: bool, log_file: str | None) -> None:
    """Configures stdlib logging and structlog at the same level."""
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def build_source(session_id: str, login_data: str) -> GtoSource:
    if not session_id or not login_data:
        raise ConfigurationError(
            "SESSION_ID and LOGIN_DATA are required to access the tournament site",
            parameter="SESSION_ID/LOGIN_DATA",
        )
    return GtoSource(Scraper(session_id, login_data))


session_options = [
    click.option("--session-id", envvar="SESSION_ID", default="", help="PHPSESSID cookie"),
    click.option(
        "--login-data", envvar="LOGIN_DATA", default="", help="user_login_data cookie"
    ),
]


def with_session(f):
    for option in reversed(session_options):
        f = option(f)
    return f


@click.group()
@click.option(
    "--data-dir", envvar="DATA_DIR", default="data", show_default=True,
    help="Directory holding the JSON store",
)
@click.option("--log-file", envvar="LOG_FILE", default=None, help="Also log to this file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, data_dir: str, log_file: str | None, verbose: bool) -> None:
    """Disc golf tournament calendar feeds"""
    setup_logging(verbose, log_file)
    ctx.obj = Storage(data_dir)


@cli.command()
@with_session
@click.pass_obj
def sync(storage: Storage, session_id: str, login_data: str) -> None:
    """Run a single sync cycle."""
    try:
        service = TournamentService(storage, build_source(session_id, login_data))
        before = [t.to_dict() for t in service.get_tournaments()]
        report = service.sync()
    except DgCalError as e:
        logger.error("sync_failed", **e.to_dict())
        raise click.ClickException(e.message) from e

    after = [t.to_dict() for t in service.get_tournaments()]
    click.echo(calculate_stats(before, after, failed=list(report.failures)))
    if not report.ok:
        sys.exit(1)


@cli.command()
@with_session
@click.option(
    "--interval", envvar="SYNC_INTERVAL", default=30, type=int, show_default=True,
    help="Minutes between sync cycles",
)
@click.pass_obj
def run(storage: Storage, session_id: str, login_data: str, interval: int) -> None:
    """Sync periodically until interrupted."""
    try:
        service = TournamentService(storage, build_source(session_id, login_data))
        scheduler = SyncScheduler(service, interval)
    except DgCalError as e:
        raise click.ClickException(str(e)) from e

    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()


@cli.command()
@click.argument("calendar_id")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write to file")
@click.pass_obj
def ics(storage: Storage, calendar_id: str, output: str | None) -> None:
    """Render the iCalendar feed of a calendar."""
    service = TournamentService(storage)
    generator = FeedGenerator(CalendarService(storage, storage), service)
    try:
        content = generator.generate(calendar_id)
    except NotFoundError as e:
        raise click.ClickException(f"Calendar {calendar_id} not found") from e

    if output:
        Path(output).write_bytes(content)
        logger.info("feed_written", path=output)
    else:
        click.echo(content.decode("utf-8"), nl=False)


@cli.command("calendar-create")
@click.argument("title")
@click.option("--series", "-s", multiple=True, help="Subscribe to a series")
@click.option("--tournament", "-t", multiple=True, type=int, help="Subscribe to a tournament id")
@click.pass_obj
def calendar_create(
    storage: Storage, title: str, series: tuple[str, ...], tournament: tuple[int, ...]
) -> None:
    """Create a subscriber calendar."""
    config = SubscriptionConfig(tournaments=list(tournament), series=list(series))
    calendar = CalendarService(storage, storage).create_calendar(title, config)
    click.echo(f"Calendar id: {calendar.id}")
    click.echo(f"Edit id:     {calendar.edit_id}")


@cli.command()
@click.argument("tournament_id", type=int)
@click.pass_obj
def history(storage: Storage, tournament_id: int) -> None:
    """Dump the stored history of a tournament as YAML."""
    snapshots = storage.get_tournament_history(tournament_id)
    if not snapshots:
        raise click.ClickException(f"No history for tournament {tournament_id}")
    # allow_unicode=True keeps German umlauts readable
    click.echo(
        yaml.dump(
            [dict(s.to_dict()) for s in snapshots], allow_unicode=True, sort_keys=False
        ),
        nl=False,
    )


@cli.command("series")
@click.option("--all", "include_all", is_flag=True, help="Include finished series")
@click.pass_obj
def list_series(storage: Storage, include_all: bool) -> None:
    """List the series of known tournaments."""
    for name in TournamentService(storage).get_all_series(active=not include_all):
        click.echo(name)


if __name__ == "__main__":
    cli()
