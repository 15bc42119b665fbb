"""
Inspect tools for decoded calendars.

Importable functions:
  dump_event(event, console, show_raw=True)  render one event in a Rich Panel
  dump_warnings(warnings, console)           render decoder soft errors as a table
"""

from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table
from rich.text import Text

from tempus.ics.decoder import SoftError
from tempus.ics.encoder import encode_event
from tempus.models import AbsoluteTrigger
from tempus.models import Event


def _fmt_time(event: Event, which: str) -> str:
    value = getattr(event, which)
    tz = getattr(event, f"{which}_tz")
    if event.all_day:
        return value.date().isoformat()
    text = value.strftime("%Y-%m-%d %H:%M:%S %z")
    return f"{text} ({tz})" if tz else text


def _fmt_alarm(event: Event, alarm) -> str:
    if isinstance(alarm.trigger, AbsoluteTrigger):
        when = f"at {alarm.trigger.at.isoformat()}"
    else:
        when = f"{alarm.minutes_before(event.start)} min before"
    extra = f"  x{alarm.repeat}" if alarm.repeat else ""
    return f"{alarm.action} {when}{extra}"


def dump_event(event: Event, console: Console, show_raw: bool = True) -> None:
    """Render a single decoded event as a Rich Panel."""
    lines = Text()

    def row(label: str, value) -> None:
        if value in (None, "", []):
            return
        lines.append(f"  {label:<14}: ", style="bold cyan")
        lines.append(f"{value}\n")

    row("SUMMARY", event.summary or "(no summary)")
    row("UID", event.uid)
    row("DTSTART", _fmt_time(event, "start"))
    row("DTEND", _fmt_time(event, "end"))
    row("ALL-DAY", "yes" if event.all_day else None)
    row("LOCATION", event.location)
    row("RRULE", event.rrule)
    for ex in event.exdates:
        row("EXDATE", ex.isoformat())
    row("STATUS", event.status)
    row("PRIORITY", event.priority or None)
    row("CATEGORIES", ", ".join(event.categories))
    for attendee in event.attendees:
        row("ATTENDEE", attendee)
    for alarm in event.alarms:
        row("ALARM", _fmt_alarm(event, alarm))

    console.print(Panel(lines, title=f"[bold]{event.summary or '(no summary)'}[/bold]", expand=False))

    if show_raw:
        console.print(
            Panel(
                Syntax(encode_event(event), "ini", theme="monokai", word_wrap=True),
                title="Re-encoded iCal",
                expand=False,
            )
        )


def dump_warnings(warnings: list[SoftError], console: Console) -> None:
    """Render decoder soft errors; prints nothing when there are none."""
    if not warnings:
        return
    table = Table(show_header=True, header_style="bold yellow", box=None, padding=(0, 2))
    table.add_column("Line", justify="right")
    table.add_column("Property", style="bold")
    table.add_column("Value", style="dim")
    table.add_column("Reason")
    for w in warnings:
        table.add_row(str(w.line), w.property, w.value, w.reason)
    console.print(Panel(table, title="[bold yellow]Skipped fields[/bold yellow]", expand=False))
