"""CLI entry point for Backcast."""

import asyncio
import logging
import sys
from collections.abc import Coroutine
from datetime import timedelta
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from backcast.config.logging import setup_logging
from backcast.config.manager import ConfigManager
from backcast.feeds.reconciler import FetchPreference
from backcast.pipeline import FeedOrchestrator
from backcast.publish.rewriter import status_line
from backcast.publish.selector import count_eligible
from backcast.schedule.models import ScheduleState
from backcast.schedule.pace import parse_pace
from backcast.utils.datetime import format_duration, format_release_time, now_utc
from backcast.utils.errors import BackcastError, InvalidParameterError

T = TypeVar("T")

app = typer.Typer(
    name="backcast",
    help="Republish podcast back-catalogs at your own pace",
    no_args_is_help=True,
)
config_app = typer.Typer(help="Show or change configuration", no_args_is_help=True)
app.add_typer(config_app, name="config")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable verbose (DEBUG) logging"
    ),
    log_file: Path | None = typer.Option(
        None, "--log-file", help="Write logs to file"
    ),
) -> None:
    """Backcast - replay a podcast's back-catalog as a new feed."""
    setup_logging(verbose=verbose, log_file=log_file)


def _fail(error: BackcastError) -> NoReturn:
    console.print(f"[red]✗[/red] {escape(str(error))}")
    if error.suggestion:
        console.print(f"[dim]  {escape(error.suggestion)}[/dim]")
    sys.exit(1)


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run an orchestrator coroutine, turning Backcast errors into exit code 1."""
    try:
        return asyncio.run(coro)
    except BackcastError as e:
        _fail(e)


def _orchestrator() -> FeedOrchestrator:
    try:
        config = ConfigManager().load_config()
    except BackcastError as e:
        _fail(e)

    root = logging.getLogger()
    if not root.isEnabledFor(logging.DEBUG):
        # --verbose wins over the configured level
        root.setLevel(config.log_level)
    return FeedOrchestrator.from_config(config)


def _print_state(state: ScheduleState) -> None:
    now = now_utc()
    released = count_eligible(state.entries, state.reference_instant(now))

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Podcast", escape(state.podcast_title or "(unknown)"))
    table.add_row("Feed ID", state.uuid)
    table.add_row("Directory", state.feed_dir)
    table.add_row("Source", escape(state.source_url))
    table.add_row("Subscribe", escape(state.subscribe_url))
    table.add_row("Pace", state.describe_pace())
    table.add_row("Status", "paused" if state.is_paused else "active")
    table.add_row("Published", f"{released} of {len(state.entries)}")
    table.add_row("", escape(status_line(state, now)))

    console.print(table)


@app.command("version")
def show_version() -> None:
    """Show version information."""
    from backcast import __version__

    console.print(f"[bold cyan]Backcast[/bold cyan] v{__version__}")


@app.command("create")
def create_feed(
    url: str = typer.Argument(..., help="Upstream RSS feed URL"),
    pace: str = typer.Option(
        "1x", "--pace", "-p", help="Speed ratio (e.g. 2x) or catch-up period (e.g. 90d)"
    ),
    start_episode: int = typer.Option(
        1, "--start", "-s", help="Episode number to start from (1 = oldest)"
    ),
) -> None:
    """Create a new Backcast feed.

    Examples:
        backcast create https://example.com/feed.rss --pace 2x

        backcast create example.com/feed.rss --pace 180d --start 20
    """
    try:
        parsed_pace = parse_pace(pace)
    except ValueError as e:
        _fail(InvalidParameterError(str(e)))

    orchestrator = _orchestrator()
    state = _run(orchestrator.create(url, parsed_pace, start_episode))
    try:
        summary = orchestrator.summarize(state)
    except BackcastError as e:
        _fail(e)

    console.print(f"\n[green]✓[/green] Created [bold]{escape(state.feed_dir)}[/bold]\n")
    console.print(f"You have {summary.episodes_to_catch_up} episodes to catch up on.")
    console.print(
        f"You are {summary.weeks_behind} weeks behind; it will take about "
        f"{summary.weeks_to_catch_up} weeks ({summary.days_to_catch_up} days) to catch up "
        "(excluding new episodes)."
    )
    if summary.catch_up_date:
        console.print(f"You should catch up on {summary.catch_up_date:%d %b, %Y}.")
    console.print(
        f"\nSubscribe to this URL in your podcatcher: [cyan]{escape(summary.subscribe_url)}[/cyan]"
    )
    console.print(f"[dim]Feed ID: {summary.uuid}[/dim]")


@app.command("update")
def update_feed(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
    cached: bool = typer.Option(
        False, "--cached", help="Use the cached upstream copy instead of downloading"
    ),
) -> None:
    """Refresh one feed from upstream."""
    preference = FetchPreference.USE_CACHED if cached else FetchPreference.DOWNLOAD
    new_entries = _run(_orchestrator().update(feed, preference))

    console.print(f"[green]✓[/green] Updated {escape(feed)}")
    if new_entries:
        console.print("[dim]  Upstream has new episodes[/dim]")


@app.command("update-all")
def update_all_feeds() -> None:
    """Refresh every feed from upstream."""
    summary = _run(_orchestrator().update_all())

    console.print(
        f"[green]✓[/green] Updated {summary.processed} feed(s) in {summary.elapsed:.1f}s, "
        f"{summary.with_new_entries} with new episodes"
    )
    if summary.failed:
        console.print(f"[red]✗[/red] {len(summary.failed)} feed(s) failed:")
        for dir_name in summary.failed:
            console.print(f"  • {escape(dir_name)}")
        sys.exit(1)


@app.command("list")
def list_feeds() -> None:
    """List all Backcast feeds."""
    states = _run(_orchestrator().list())

    if not states:
        console.print("[yellow]No feeds yet.[/yellow]")
        console.print("\nCreate one: [cyan]backcast create <url> --pace 2x[/cyan]")
        return

    now = now_utc()
    table = Table(title="[bold]Backcast Feeds[/bold]")
    table.add_column("Podcast", style="cyan")
    table.add_column("Pace", style="yellow")
    table.add_column("Published", justify="right")
    table.add_column("Status", style="green")
    table.add_column("Feed ID", style="dim", no_wrap=True)

    for state in states:
        released = count_eligible(state.entries, state.reference_instant(now))
        table.add_row(
            escape(state.podcast_title or state.feed_dir),
            state.describe_pace(),
            f"{released}/{len(state.entries)}",
            "paused" if state.is_paused else "active",
            state.uuid,
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(states)} feed(s)[/dim]")


@app.command("show")
def show_feed(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
    episodes: bool = typer.Option(False, "--episodes", "-e", help="Show the release schedule"),
) -> None:
    """Show a feed's settings and progress."""
    orchestrator = _orchestrator()
    state = _run(orchestrator.resolve(feed))
    _print_state(state)

    if episodes:
        reference = state.reference_instant(now_utc())
        table = Table(title="[bold]Schedule[/bold]")
        table.add_column("#", justify="right", style="dim")
        table.add_column("Title")
        table.add_column("Release", style="yellow")
        for entry in state.entries:
            marker = "[green]✓[/green] " if entry.release_at < reference else ""
            table.add_row(
                str(entry.number),
                escape(entry.title),
                marker + format_release_time(entry.release_at),
            )
        console.print(table)


@app.command("pause")
def pause_feed(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
) -> None:
    """Stop releasing episodes until resumed."""
    state = _run(_orchestrator().pause(feed))
    console.print(f"[green]✓[/green] Paused {escape(state.podcast_title or state.feed_dir)}")


@app.command("resume")
def resume_feed(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
) -> None:
    """Resume a paused feed where it left off."""
    state, paused_for = _run(_orchestrator().resume(feed))
    console.print(
        f"[green]✓[/green] Resumed {escape(state.podcast_title or state.feed_dir)} "
        f"after {format_duration(paused_for)}"
    )


@app.command("pace")
def change_pace(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
    pace: str = typer.Argument(..., help="Speed ratio (e.g. 2x) or catch-up period (e.g. 90d)"),
) -> None:
    """Change a feed's pace without un-publishing anything."""
    try:
        new_pace = parse_pace(pace)
    except ValueError as e:
        _fail(InvalidParameterError(str(e)))

    state = _run(_orchestrator().change_pace(feed, new_pace))
    console.print(f"[green]✓[/green] Pace is now {state.describe_pace()}")


def _shift_options(days: float, hours: float, episodes: int | None) -> timedelta | None:
    """Validate that exactly one of a duration or an episode count was given."""
    try:
        duration = timedelta(days=days, hours=hours)
    except (OverflowError, ValueError):
        _fail(InvalidParameterError(f"Duration of {days:g} days and {hours:g} hours is too long"))
    if episodes is not None and duration:
        _fail(InvalidParameterError("Give either --days/--hours or --episodes, not both"))
    if episodes is None and not duration:
        _fail(InvalidParameterError("Give --days, --hours or --episodes"))
    return None if episodes is not None else duration


@app.command("rewind")
def rewind_feed(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
    days: float = typer.Option(0, "--days", "-d", help="Delay releases by this many days"),
    hours: float = typer.Option(0, "--hours", help="Delay releases by this many hours"),
    episodes: int | None = typer.Option(
        None, "--episodes", "-e", help="Un-publish this many episodes"
    ),
) -> None:
    """Move releases later.

    Examples:
        backcast rewind my-feed --days 7

        backcast rewind my-feed --episodes 2
    """
    duration = _shift_options(days, hours, episodes)
    orchestrator = _orchestrator()
    if duration is None:
        assert episodes is not None
        state = _run(orchestrator.rewind_by_episodes(feed, episodes))
    else:
        state = _run(orchestrator.rewind_by(feed, duration))
    console.print(f"[green]✓[/green] {escape(status_line(state, now_utc()))}")


@app.command("fast-forward")
def fast_forward_feed(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
    days: float = typer.Option(0, "--days", "-d", help="Advance releases by this many days"),
    hours: float = typer.Option(0, "--hours", help="Advance releases by this many hours"),
    episodes: int | None = typer.Option(
        None, "--episodes", "-e", help="Publish this many more episodes"
    ),
) -> None:
    """Move releases earlier."""
    duration = _shift_options(days, hours, episodes)
    orchestrator = _orchestrator()
    if duration is None:
        assert episodes is not None
        state = _run(orchestrator.fast_forward_by_episodes(feed, episodes))
    else:
        state = _run(orchestrator.fast_forward_by(feed, duration))
    console.print(f"[green]✓[/green] {escape(status_line(state, now_utc()))}")


@app.command("publish-now")
def publish_now(
    feed: str = typer.Argument(..., help="Feed ID, directory name or subscribe URL"),
    episode: int | None = typer.Option(
        None, "--episode", "-e", help="Episode number (default: the next one)"
    ),
) -> None:
    """Release an episode immediately."""
    orchestrator = _orchestrator()
    if episode is None:
        state = _run(orchestrator.publish_next_episode_now(feed))
    else:
        state = _run(orchestrator.publish_episode_now(feed, episode))

    released = count_eligible(state.entries, state.reference_instant(now_utc()))
    console.print(f"[green]✓[/green] {released} of {len(state.entries)} episodes published")
    console.print("[dim]  Give your podcatcher a few minutes to pick it up[/dim]")


@config_app.command("show")
def config_show() -> None:
    """Display current configuration."""
    manager = ConfigManager()
    try:
        config = manager.load_config()
    except BackcastError as e:
        _fail(e)

    console.print("\n[bold]Backcast Configuration[/bold]\n")

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("Config file", str(manager.config_file))
    table.add_row("", "")
    table.add_row("feeds_dir", str(config.feeds_dir))
    table.add_row("public_base_url", config.public_base_url)
    table.add_row("log_level", config.log_level)
    table.add_row("fetch.timeout_seconds", f"{config.fetch.timeout_seconds:g}")
    table.add_row("fetch.max_attempts", str(config.fetch.max_attempts))
    table.add_row("fetch.user_agent", config.fetch.user_agent)
    table.add_row("update.concurrency", str(config.update.concurrency))

    console.print(table)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Config key, e.g. public_base_url or update.concurrency"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Set a configuration value.

    Examples:
        backcast config set public_base_url https://pods.example.com

        backcast config set update.concurrency 10
    """
    try:
        ConfigManager().set_value(key, value)
    except BackcastError as e:
        _fail(e)

    console.print(f"[green]✓[/green] Set [cyan]{key}[/cyan] = [yellow]{escape(value)}[/yellow]")


if __name__ == "__main__":
    app()
