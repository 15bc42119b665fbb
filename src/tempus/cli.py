"""
Command-line interface for Tempus.
"""

import logging
import re
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from tempus.auth.device_flow import TokenManager
from tempus.auth.token import TokenStore
from tempus.config import load_config
from tempus.ics.decoder import decode
from tempus.ics.encoder import encode
from tempus.models import DEFAULT_CONFIG
from tempus.models import Calendar
from tempus.models import Event
from tempus.models import EventInsertError
from tempus.models import TempusConfig
from tempus.models import TempusError
from tempus.models import TokenStoreError
from tempus.parsing import parse_alarm_specs
from tempus.parsing import parse_datetime
from tempus.parsing import parse_human_duration
from tempus.sync import CalendarSyncClient

# ---------------------------------------------------------------------------
# Typer app
# ---------------------------------------------------------------------------

app = typer.Typer(
    no_args_is_help=True,
    rich_markup_mode="rich",
    help="Create iCalendar files and push them to Google Calendar.",
)

console = Console()


# ---------------------------------------------------------------------------
# Global state shared across subcommands
# ---------------------------------------------------------------------------


@dataclass
class _State:
    config_path: Path = field(default_factory=lambda: DEFAULT_CONFIG)
    verbose: bool = False


state = _State()


@app.callback()
def _global(
    config: Annotated[
        Path,
        typer.Option("--config", "-c", help=f"Config file path (default: {DEFAULT_CONFIG})"),
    ] = DEFAULT_CONFIG,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose debug output"),
    ] = False,
) -> None:
    state.config_path = config
    state.verbose = verbose
    _setup_logging(verbose)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False, console=console)],
    )


def _load_config() -> TempusConfig:
    try:
        return load_config(state.config_path)
    except TempusError as e:
        console.print(f"[bold red]Error:[/] {e}")
        raise typer.Exit(1) from None


def _fail(message: str, e: Exception) -> typer.Exit:
    console.print(f"[bold red]{message}:[/] {e}")
    return typer.Exit(1)


def _slug(text: str) -> str:
    slug = re.sub(r"[^A-Za-z0-9]+", "-", text).strip("-").lower()
    return slug or "event"


def _show_device_prompt(verification_url: str, user_code: str) -> None:
    body = Text()
    body.append("  Open:  ", style="bold")
    body.append(f"{verification_url}\n", style="cyan")
    body.append("  Code:  ", style="bold")
    body.append(user_code, style="bold green")
    console.print(Panel(body, title="[bold]Authorize Tempus[/bold]", expand=False))


def _token_manager(cfg: TempusConfig) -> TokenManager:
    return TokenManager(cfg.google, on_prompt=_show_device_prompt)


# ---------------------------------------------------------------------------
# Subcommand: create
# ---------------------------------------------------------------------------

_MULTI = "Repeatable"


@app.command()
def create(
    summary: Annotated[str, typer.Argument(help="Event title")],
    start: Annotated[str, typer.Option("--start", "-s", help="Start: YYYY-MM-DD[ HH:MM]")],
    end: Annotated[str | None, typer.Option("--end", "-e", help="End: YYYY-MM-DD[ HH:MM]")] = None,
    duration: Annotated[
        str | None, typer.Option("--duration", "-d", help="Length, e.g. 90, 1h30m, 1:30, 2d")
    ] = None,
    all_day: Annotated[bool, typer.Option("--all-day", help="All-day event")] = False,
    tz: Annotated[str | None, typer.Option("--tz", help="Timezone for start and end")] = None,
    start_tz: Annotated[str | None, typer.Option("--start-tz", help="Start timezone")] = None,
    end_tz: Annotated[str | None, typer.Option("--end-tz", help="End timezone")] = None,
    location: Annotated[str, typer.Option("--location", "-l")] = "",
    description: Annotated[str, typer.Option("--description")] = "",
    rrule: Annotated[str, typer.Option("--rrule", help="Raw RRULE, e.g. FREQ=WEEKLY;COUNT=4")] = "",
    exdate: Annotated[
        list[str] | None, typer.Option("--exdate", help=f"{_MULTI} excluded date")
    ] = None,
    alarm: Annotated[
        list[str] | None,
        typer.Option("--alarm", "-a", help=f"{_MULTI} alarm, e.g. 15m or trigger=-1h"),
    ] = None,
    category: Annotated[list[str] | None, typer.Option("--category", help=_MULTI)] = None,
    attendee: Annotated[list[str] | None, typer.Option("--attendee", help=f"{_MULTI} email")] = None,
    priority: Annotated[int, typer.Option("--priority", min=0, max=9)] = 0,
    vtimezone: Annotated[bool, typer.Option("--vtimezone", help="Embed VTIMEZONE blocks")] = False,
    name: Annotated[str | None, typer.Option("--name", help="Calendar name (X-WR-CALNAME)")] = None,
    output: Annotated[Path | None, typer.Option("--output", "-o", help="Output .ics path")] = None,
) -> None:
    """Create a single-event .ics file."""
    cfg = _load_config()
    zone = tz or cfg.timezone
    s_tz = start_tz or zone
    e_tz = end_tz or s_tz

    try:
        start_dt = parse_datetime(start, s_tz)
        end_dt = parse_datetime(end, e_tz) if end else None
        if end_dt is None and duration:
            end_dt = start_dt + parse_human_duration(duration)
        if end_dt is None and not all_day:
            end_dt = start_dt + timedelta(hours=1)

        event = Event(
            summary=summary,
            start=start_dt,
            end=end_dt,
            start_tz=s_tz,
            end_tz=e_tz,
            all_day=all_day,
            description=description,
            location=location,
            rrule=rrule,
            exdates=[parse_datetime(x, s_tz) for x in exdate or []],
            alarms=parse_alarm_specs(alarm or [], s_tz),
            categories=category or [],
            attendees=attendee or [],
            priority=priority,
        )
    except TempusError as e:
        raise _fail("Invalid event", e) from None

    calendar = Calendar(
        name=name if name is not None else cfg.calendar_name,
        default_timezone=zone,
        include_vtimezone=vtimezone,
    )
    calendar.add_event(event)

    path = output or cfg.output_dir / f"{_slug(summary)}.ics"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(encode(calendar), encoding="utf-8", newline="")
    console.print(f"[green]✓[/] Wrote [cyan]{path}[/]")


# ---------------------------------------------------------------------------
# Subcommand: inspect
# ---------------------------------------------------------------------------


@app.command()
def inspect(
    ics_file: Annotated[Path, typer.Argument(help="iCalendar file to decode", exists=True)],
    title: Annotated[
        str | None, typer.Option(help="Filter by SUMMARY substring (case-insensitive)")
    ] = None,
    no_raw: Annotated[bool, typer.Option("--no-raw", help="Omit the re-encoded iCal block")] = False,
) -> None:
    """Decode an .ics file and show its events and skipped fields."""
    from tempus.debug import dump_event
    from tempus.debug import dump_warnings

    result = decode(ics_file.read_text(encoding="utf-8"))
    header = f"[bold]Calendar:[/] {result.name or ics_file.name}"
    if result.default_timezone:
        header += f" [dim]({result.default_timezone})[/dim]"
    console.print(header)
    console.print(f"[bold]Events:[/] {len(result.events)} decoded")

    title_filter = title.lower() if title else None
    count = 0
    for event in result.events:
        if title_filter and title_filter not in event.summary.lower():
            continue
        count += 1
        dump_event(event, console, show_raw=not no_raw)

    dump_warnings(result.warnings, console)
    console.print(f"\n[bold]Matched {count} event(s)[/bold]")


# ---------------------------------------------------------------------------
# Subcommand: push
# ---------------------------------------------------------------------------


@app.command()
def push(
    ics_file: Annotated[Path, typer.Argument(help="iCalendar file to import", exists=True)],
    calendar: Annotated[
        str | None, typer.Option("--calendar", "-C", help="Target calendar ID (overrides config)")
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation prompt")] = False,
) -> None:
    """Import every event of an .ics file into Google Calendar."""
    from tempus.preflight import run_preflight_checks

    cfg = _load_config()
    if calendar:
        cfg.google.calendar_id = calendar

    if not run_preflight_checks(cfg.google, console):
        raise typer.Exit(1)

    ics_text = ics_file.read_text(encoding="utf-8")

    # -- Info panel ----------------------------------------------------------
    info = Text()
    info.append("  File:      ", style="bold")
    info.append(f"{ics_file}\n")
    info.append("  Calendar:  ", style="bold")
    info.append(f"{cfg.google.calendar_id}\n")
    info.append("  Token:     ", style="bold")
    info.append(str(cfg.google.token_file), style="dim")
    console.print(Panel(info, title="[bold]Tempus Push[/bold]"))

    # -- Confirmation --------------------------------------------------------
    if not yes:
        typer.confirm("Proceed?", abort=True)

    # -- Run -----------------------------------------------------------------
    tokens = _token_manager(cfg)
    client = CalendarSyncClient(
        tokens,
        base_url=cfg.google.calendar_base_url,
        timeout=cfg.google.timeout,
    )
    try:
        result = client.import_ics(cfg.google.calendar_id, ics_text)
    except EventInsertError as e:
        console.print(f"[bold red]Push failed after {e.inserted} event(s):[/] {e}")
        raise typer.Exit(1) from None
    except TempusError as e:
        raise _fail("Push failed", e) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    # -- Results table -------------------------------------------------------
    results = Table.grid(padding=(0, 2))
    results.add_column(style="bold")
    results.add_column(justify="right")
    results.add_row("Inserted", str(result.inserted))
    warn_val = Text(str(len(result.warnings)))
    if result.warnings:
        warn_val.stylize("yellow")
    else:
        warn_val.append(" ✓", style="green")
    results.add_row("Skipped fields", warn_val)

    console.print(Panel(results, title="[bold]Results[/bold]", expand=False))


# ---------------------------------------------------------------------------
# Subcommand: auth
# ---------------------------------------------------------------------------


@app.command()
def auth() -> None:
    """Obtain (or refresh) an OAuth token and store it."""
    cfg = _load_config()
    if not cfg.google.client_id:
        console.print("[bold red]Error:[/] client_id must be set in the [cyan][google][/] section.")
        raise typer.Exit(1)
    try:
        token = _token_manager(cfg).ensure_token()
    except TempusError as e:
        raise _fail("Authorization failed", e) from None
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted by user[/]")
        raise typer.Exit(130) from None

    expiry = token.expiry.astimezone().strftime("%Y-%m-%d %H:%M:%S") if token.expiry else "unknown"
    console.print(f"[green]✓[/] Authorized; token valid until [cyan]{expiry}[/]")


# ---------------------------------------------------------------------------
# Subcommand: status
# ---------------------------------------------------------------------------


@app.command()
def status() -> None:
    """Show configuration and stored token summary."""
    cfg = _load_config()
    config_exists = state.config_path.exists()
    token_file = cfg.google.token_file

    info = Text()
    info.append("  Config:    ", style="bold")
    info.append(str(state.config_path) + " ")
    info.append("✓" if config_exists else "(not found)", style="green" if config_exists else "red")
    info.append("\n  Timezone:  ", style="bold")
    info.append(cfg.timezone or "(system local)")
    info.append("\n  Calendar:  ", style="bold")
    info.append(cfg.google.calendar_id)
    info.append("\n  Client ID: ", style="bold")
    info.append(
        "set" if cfg.google.client_id else "(not set)",
        style="green" if cfg.google.client_id else "red",
    )
    info.append("\n  Token:     ", style="bold")
    info.append(str(token_file) + " ")

    try:
        token = TokenStore(token_file).load()
    except TokenStoreError as e:
        info.append(f"(unreadable: {e})", style="red")
    else:
        if token is None:
            info.append("(not found)", style="yellow")
        elif token.valid(datetime.now(timezone.utc)):
            info.append("valid", style="green")
        elif token.refresh_token:
            info.append("expired (refreshable)", style="yellow")
        else:
            info.append("expired", style="red")

    console.print(Panel(info, title="[bold]Tempus Status[/bold]"))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    app()
