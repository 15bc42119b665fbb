"""
RFC 5545 text → Event models.

The decoder is best-effort: a malformed field never aborts the decode.  Each
field that fails to parse is recorded as a :class:`SoftError` and the field
keeps its previous value.
"""

import logging
import re
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from tempus.ics.lines import Property
from tempus.ics.lines import parse_property
from tempus.ics.lines import unescape_text
from tempus.ics.lines import unfold
from tempus.models import AbsoluteTrigger
from tempus.models import Alarm
from tempus.models import Event
from tempus.models import ICSParseError
from tempus.models import RelativeTrigger
from tempus.models import Trigger
from tempus.models import ValidationError
from tempus.models import load_zone
from tempus.models import local_zone

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(
    r"^([+-])?P(?:(\d+)W)?(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$",
    re.IGNORECASE,
)
_SAMPLE = datetime(2000, 1, 1)


@dataclass
class SoftError:
    """A field that could not be decoded; the rest of the event survived."""

    line: int
    property: str
    value: str
    reason: str

    def __str__(self) -> str:
        return f"line {self.line}: {self.property}={self.value!r}: {self.reason}"


@dataclass
class DecodeResult:
    events: list[Event] = field(default_factory=list)
    warnings: list[SoftError] = field(default_factory=list)
    name: str = ""
    default_timezone: str = ""


# ---------------------------------------------------------------------------
# Strict value parsers
# ---------------------------------------------------------------------------


def parse_duration_minutes(raw: str) -> int:
    """Absolute length of an RFC 5545 duration in whole minutes.

    A seconds component of 30 or more rounds up by one minute.  The sign is
    ignored: ``-PT1H30M`` and ``PT1H30M`` both give 90.
    """
    m = _DURATION_RE.match((raw or "").strip())
    if m is None or not any(m.groups()[1:]):
        raise ICSParseError(f"Invalid duration {raw!r}")
    weeks, days, hours, minutes, seconds = (int(g or 0) for g in m.groups()[1:])
    total = weeks * 7 * 24 * 60 + days * 24 * 60 + hours * 60 + minutes
    if seconds >= 30:
        total += 1
    return total


def _parse_in_zone(value: str, formats: tuple[str, ...], tz) -> datetime | None:
    for fmt in formats:
        # strptime accepts single-digit fields, so "T0930" would match %H%M%S.
        if len(value) != len(_SAMPLE.strftime(fmt)):
            continue
        try:
            parsed = datetime.strptime(value, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=tz)
    return None


# ---------------------------------------------------------------------------
# Per-call state
# ---------------------------------------------------------------------------


@dataclass
class _EventAccumulator:
    summary: str = ""
    description: str = ""
    location: str = ""
    uid: str = ""
    start: datetime | None = None
    end: datetime | None = None
    start_tz: str = ""
    end_tz: str = ""
    all_day: bool = False
    rrule: str = ""
    exdates: list[datetime] = field(default_factory=list)
    alarms: list[Alarm] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    attendees: list[str] = field(default_factory=list)
    priority: int = 0
    status: str = ""
    sequence: int = 0
    created: datetime | None = None
    last_modified: datetime | None = None
    begin_line: int = 0


@dataclass
class _AlarmAccumulator:
    trigger: Trigger | None = None
    action: str = "DISPLAY"
    description: str = ""
    summary: str = ""
    repeat: int = 0
    repeat_interval: timedelta | None = None


@dataclass
class _DecodeState:
    """Everything a single decode() call mutates."""

    result: DecodeResult = field(default_factory=DecodeResult)
    event: _EventAccumulator | None = None
    alarm: _AlarmAccumulator | None = None
    # Components nested in an event that are not decoded; their lines are ignored.
    skipped: list[str] = field(default_factory=list)
    line_no: int = 0

    def warn(self, prop: Property, reason: str) -> None:
        self.result.warnings.append(
            SoftError(line=self.line_no, property=prop.name, value=prop.value, reason=reason)
        )

    # -- timezone resolution -------------------------------------------------

    def _zone(self, prop: Property, inherit_start: bool) -> tuple[object, str]:
        """Resolve (tzinfo, label) for a local wall-clock value."""
        candidates = [prop.param("TZID")]
        if inherit_start and self.event is not None:
            candidates.append(self.event.start_tz)
        candidates.append(self.result.default_timezone)
        for name in candidates:
            if not name:
                continue
            tz = load_zone(name)
            if tz is not None:
                return tz, name
            self.warn(prop, f"unknown timezone {name!r}")
        return local_zone(), ""

    def parse_timestamp(
        self, prop: Property, inherit_start: bool = False
    ) -> tuple[datetime, str, bool] | None:
        """Parse DTSTART/DTEND/EXDATE-style values into (instant, zone, all_day)."""
        value = prop.value.strip()
        if prop.param("VALUE").upper() == "DATE":
            tz, label = self._zone(prop, inherit_start)
            if not label:
                tz = timezone.utc
            parsed = _parse_in_zone(value, ("%Y%m%d",), tz)
            if parsed is None:
                self.warn(prop, "invalid date")
                return None
            return parsed, label, True
        if value.upper().endswith("Z"):
            parsed = _parse_in_zone(value.upper(), ("%Y%m%dT%H%M%SZ",), timezone.utc)
            if parsed is None:
                self.warn(prop, "invalid UTC date-time")
                return None
            return parsed, "UTC", False
        tz, label = self._zone(prop, inherit_start)
        parsed = _parse_in_zone(value, ("%Y%m%dT%H%M%S",), tz)
        if parsed is None:
            self.warn(prop, "invalid local date-time")
            return None
        return parsed, label, False

    def parse_trigger(self, prop: Property) -> Trigger | None:
        """Absolute forms are tried first; otherwise a duration before start."""
        value = prop.value.strip()
        if not value:
            self.warn(prop, "empty trigger")
            return None

        tz, _ = self._zone(prop, inherit_start=True)
        at = None
        if prop.param("VALUE").upper() == "DATE" and len(value) == 8:
            at = _parse_in_zone(value, ("%Y%m%d",), tz)
        if at is None and value.upper().endswith("Z"):
            at = _parse_in_zone(
                value.upper(), ("%Y%m%dT%H%M%SZ", "%Y%m%dT%H%MZ"), timezone.utc
            )
        if at is None:
            at = _parse_in_zone(value, ("%Y%m%dT%H%M%S", "%Y%m%dT%H%M"), tz)
        if at is not None:
            return AbsoluteTrigger(at)

        try:
            minutes = parse_duration_minutes(value)
        except ICSParseError as exc:
            self.warn(prop, str(exc))
            return None
        return RelativeTrigger(timedelta(minutes=-minutes))


# ---------------------------------------------------------------------------
# Property handlers
# ---------------------------------------------------------------------------


def _int_field(state: _DecodeState, prop: Property) -> int | None:
    try:
        return int(prop.value)
    except ValueError:
        state.warn(prop, "not an integer")
        return None


def _event_property(state: _DecodeState, prop: Property) -> None:
    ev = state.event
    name = prop.name

    if name in ("SUMMARY", "DESCRIPTION", "LOCATION"):
        setattr(ev, name.lower(), unescape_text(prop.value))
    elif name == "UID":
        ev.uid = prop.value
    elif name == "RRULE":
        ev.rrule = prop.value.strip()
    elif name in ("DTSTART", "DTEND"):
        parsed = state.parse_timestamp(prop, inherit_start=(name == "DTEND"))
        if parsed is None:
            return
        instant, zone, all_day = parsed
        ev.all_day = ev.all_day or all_day
        if name == "DTSTART":
            ev.start = instant
            if zone:
                ev.start_tz = zone
        else:
            ev.end = instant
            if zone:
                ev.end_tz = zone
    elif name == "EXDATE":
        for part in prop.value.split(","):
            sub = Property(name=prop.name, value=part, params=prop.params)
            parsed = state.parse_timestamp(sub, inherit_start=True)
            if parsed is not None:
                ev.exdates.append(parsed[0])
    elif name == "STATUS":
        ev.status = prop.value.upper()
    elif name == "PRIORITY":
        priority = _int_field(state, prop)
        if priority is not None:
            if 0 <= priority <= 9:
                ev.priority = priority
            else:
                state.warn(prop, "priority out of range 0-9")
    elif name == "SEQUENCE":
        sequence = _int_field(state, prop)
        if sequence is not None:
            ev.sequence = sequence
    elif name == "CATEGORIES":
        ev.categories.extend(
            c for c in (unescape_text(v).strip() for v in re.split(r"(?<!\\),", prop.value)) if c
        )
    elif name == "ATTENDEE":
        value = prop.value
        if value.lower().startswith("mailto:"):
            value = value[len("mailto:"):]
        if value:
            ev.attendees.append(value)
    elif name in ("CREATED", "LAST-MODIFIED"):
        parsed = state.parse_timestamp(prop)
        if parsed is not None:
            setattr(ev, "created" if name == "CREATED" else "last_modified", parsed[0])


def _alarm_property(state: _DecodeState, prop: Property) -> None:
    alarm = state.alarm
    if prop.name == "TRIGGER":
        trigger = state.parse_trigger(prop)
        if trigger is not None:
            alarm.trigger = trigger
    elif prop.name == "ACTION":
        alarm.action = prop.value.upper() or "DISPLAY"
    elif prop.name == "DESCRIPTION":
        alarm.description = unescape_text(prop.value)
    elif prop.name == "SUMMARY":
        alarm.summary = unescape_text(prop.value)
    elif prop.name == "REPEAT":
        repeat = _int_field(state, prop)
        if repeat is not None:
            alarm.repeat = repeat
    elif prop.name == "DURATION":
        try:
            alarm.repeat_interval = timedelta(minutes=parse_duration_minutes(prop.value))
        except ICSParseError as exc:
            state.warn(prop, str(exc))


# ---------------------------------------------------------------------------
# Block transitions
# ---------------------------------------------------------------------------


def _commit_alarm(state: _DecodeState, prop: Property) -> None:
    acc = state.alarm
    state.alarm = None
    if acc.trigger is None:
        state.warn(prop, "alarm has no usable TRIGGER")
        return
    state.event.alarms.append(
        Alarm(
            trigger=acc.trigger,
            action=acc.action,
            description=acc.description,
            summary=acc.summary,
            repeat=acc.repeat,
            repeat_interval=acc.repeat_interval,
        )
    )


def _finish_event(state: _DecodeState, prop: Property) -> None:
    acc = state.event
    state.event = None
    state.alarm = None

    if acc.start is None:
        state.warn(prop, f"event at line {acc.begin_line} has no valid DTSTART; dropped")
        return
    end = acc.end
    if end is None:
        end = acc.start + (timedelta(days=1) if acc.all_day else timedelta(hours=1))

    # Reminders that do not land strictly before the start are dropped.
    alarms = [a for a in acc.alarms if a.minutes_before(acc.start) > 0]

    extra = {}
    if acc.created is not None:
        extra["created"] = acc.created
    if acc.last_modified is not None:
        extra["last_modified"] = acc.last_modified
    try:
        event = Event(
            summary=acc.summary,
            start=acc.start,
            end=end,
            start_tz=acc.start_tz,
            end_tz=acc.end_tz or acc.start_tz,
            all_day=acc.all_day,
            description=acc.description,
            location=acc.location,
            uid=acc.uid,
            rrule=acc.rrule,
            exdates=acc.exdates,
            alarms=alarms,
            categories=acc.categories,
            attendees=acc.attendees,
            priority=acc.priority,
            status=acc.status or "CONFIRMED",
            sequence=acc.sequence,
            **extra,
        )
    except ValidationError as exc:
        state.warn(prop, f"event at line {acc.begin_line} dropped: {exc}")
        return
    state.result.events.append(event)


def decode(text: str) -> DecodeResult:
    """Decode an iCalendar payload into events plus any soft errors."""
    state = _DecodeState()

    for line_no, raw in enumerate(unfold(text or ""), start=1):
        state.line_no = line_no
        prop = parse_property(raw)
        if prop is None:
            continue

        if prop.name == "BEGIN":
            block = prop.value.upper()
            if state.skipped:
                state.skipped.append(block)
            elif block == "VEVENT":
                state.event = _EventAccumulator(begin_line=state.line_no)
                state.alarm = None
            elif block == "VALARM" and state.event is not None:
                state.alarm = _AlarmAccumulator()
            elif state.event is not None:
                state.skipped.append(block)
            continue

        if prop.name == "END":
            block = prop.value.upper()
            if state.skipped and block != "VEVENT":
                if block == state.skipped[-1]:
                    state.skipped.pop()
            elif block == "VALARM" and state.alarm is not None:
                _commit_alarm(state, prop)
            elif block == "VEVENT" and state.event is not None:
                state.skipped.clear()
                _finish_event(state, prop)
            continue

        if state.skipped:
            continue

        if state.event is None:
            if prop.name == "X-WR-TIMEZONE" and not state.result.default_timezone:
                state.result.default_timezone = prop.value
            elif prop.name == "X-WR-CALNAME" and not state.result.name:
                state.result.name = unescape_text(prop.value)
            continue

        if state.alarm is not None:
            _alarm_property(state, prop)
        else:
            _event_property(state, prop)

    if state.event is not None:
        logger.debug("Unterminated VEVENT starting at line %d ignored", state.event.begin_line)

    return state.result
