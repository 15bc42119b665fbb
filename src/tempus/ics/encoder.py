"""
Calendar model → RFC 5545 text.
"""

from datetime import datetime
from datetime import timedelta
from datetime import timezone

from tempus.ics.lines import escape_text
from tempus.ics.lines import fold
from tempus.ics.lines import format_property
from tempus.ics.vtimezone import vtimezone_blocks
from tempus.models import AbsoluteTrigger
from tempus.models import Alarm
from tempus.models import Calendar
from tempus.models import Event
from tempus.models import load_zone

UTC_FORMAT = "%Y%m%dT%H%M%SZ"
LOCAL_FORMAT = "%Y%m%dT%H%M%S"
DATE_FORMAT = "%Y%m%d"


def format_duration(delta: timedelta) -> str:
    """Render a timedelta as an RFC 5545 DURATION (e.g. ``-PT15M``, ``P1DT2H``)."""
    total = int(delta.total_seconds())
    if total == 0:
        return "PT0S"
    sign = "-" if total < 0 else ""
    total = abs(total)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)

    out = f"{sign}P"
    if days:
        out += f"{days}D"
    if hours or minutes or seconds:
        out += "T"
        if hours:
            out += f"{hours}H"
        if minutes:
            out += f"{minutes}M"
        if seconds:
            out += f"{seconds}S"
    return out


def _utc(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(UTC_FORMAT)


def _in_zone(dt: datetime, tzid: str) -> datetime:
    zone = load_zone(tzid)
    return dt.astimezone(zone) if zone is not None else dt


def format_date_time(name: str, dt: datetime, tzid: str, all_day: bool) -> str:
    """DATE, TZID-qualified wall clock, or UTC form of a date-time property."""
    if all_day:
        return format_property(name, dt.strftime(DATE_FORMAT), {"VALUE": "DATE"})
    if tzid and tzid.upper() != "UTC":
        return format_property(name, _in_zone(dt, tzid).strftime(LOCAL_FORMAT), {"TZID": tzid})
    return format_property(name, _utc(dt))


class _Writer:
    """Accumulates logical lines and folds them on output."""

    def __init__(self):
        self.lines: list[str] = []

    def line(self, text: str) -> None:
        self.lines.append(text)

    def prop(self, name: str, value: str, params: dict[str, str] | None = None) -> None:
        self.lines.append(format_property(name, value, params))

    def render(self) -> str:
        physical = [seg for logical in self.lines for seg in fold(logical)]
        return "\r\n".join(physical) + "\r\n"


def _write_alarm(w: _Writer, alarm: Alarm) -> None:
    w.line("BEGIN:VALARM")
    w.prop("ACTION", alarm.action)
    if isinstance(alarm.trigger, AbsoluteTrigger):
        w.prop("TRIGGER", _utc(alarm.trigger.at), {"VALUE": "DATE-TIME"})
    else:
        w.prop("TRIGGER", format_duration(alarm.trigger.offset))
    if alarm.action == "DISPLAY":
        w.prop("DESCRIPTION", escape_text(alarm.description.strip() or "Reminder"))
    if alarm.summary.strip():
        w.prop("SUMMARY", escape_text(alarm.summary))
    if alarm.repeat > 0 and alarm.repeat_interval and alarm.repeat_interval > timedelta(0):
        w.prop("REPEAT", str(alarm.repeat))
        w.prop("DURATION", format_duration(alarm.repeat_interval))
    w.line("END:VALARM")


def _write_event(w: _Writer, event: Event) -> None:
    w.line("BEGIN:VEVENT")
    w.prop("UID", event.uid)
    w.prop("DTSTAMP", _utc(event.created))

    for name, value in (
        ("SUMMARY", event.summary),
        ("DESCRIPTION", event.description),
        ("LOCATION", event.location),
    ):
        if value.strip():
            w.prop(name, escape_text(value.strip()))

    w.line(format_date_time("DTSTART", event.start, event.start_tz, event.all_day))
    w.line(format_date_time("DTEND", event.end, event.end_tz, event.all_day))

    if event.rrule:
        w.prop("RRULE", event.rrule)
    # EXDATE must match the DTSTART value type and zone.
    for exdate in event.exdates:
        w.line(format_date_time("EXDATE", exdate, event.start_tz, event.all_day))

    for attendee in event.attendees:
        attendee = attendee.strip()
        if attendee:
            if not attendee.lower().startswith("mailto:"):
                attendee = f"mailto:{attendee}"
            w.prop("ATTENDEE", attendee)
    if event.categories:
        w.prop("CATEGORIES", ",".join(escape_text(c) for c in event.categories))
    if event.priority > 0:
        w.prop("PRIORITY", str(event.priority))
    w.prop("STATUS", event.status.strip().upper() or "CONFIRMED")

    for alarm in event.alarms:
        _write_alarm(w, alarm)

    if event.sequence > 0:
        w.prop("SEQUENCE", str(event.sequence))
    w.prop("CREATED", _utc(event.created))
    w.prop("LAST-MODIFIED", _utc(event.last_modified))
    w.line("END:VEVENT")


def encode(calendar: Calendar) -> str:
    """Serialize a Calendar into RFC 5545 text with CRLF line endings."""
    w = _Writer()
    w.line("BEGIN:VCALENDAR")
    w.prop("PRODID", calendar.prodid)
    w.prop("VERSION", "2.0")
    w.prop("CALSCALE", "GREGORIAN")
    if calendar.method.strip():
        w.prop("METHOD", calendar.method.strip())
    if calendar.name.strip():
        w.prop("X-WR-CALNAME", escape_text(calendar.name.strip()))
    if calendar.default_timezone.strip():
        w.prop("X-WR-TIMEZONE", calendar.default_timezone.strip())

    if calendar.include_vtimezone:
        for line in vtimezone_blocks(calendar.events):
            w.line(line)

    for event in calendar.events:
        _write_event(w, event)

    w.line("END:VCALENDAR")
    return w.render()


def encode_event(event: Event) -> str:
    """Serialize a single VEVENT block (no VCALENDAR wrapper)."""
    w = _Writer()
    _write_event(w, event)
    return w.render()
