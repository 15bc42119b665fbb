"""
Human-friendly input parsing for the CLI: dates, durations and alarm specs.

Durations:  ``90`` (minutes), ``1h30m``, ``45s``, ``1:30``, ``2d``, ``1w``, ``PT1H``
Datetimes:  ``2025-03-01``, ``2025-03-01 09:30``, ``2025-03-01T09:30:00``,
            RFC 3339 (``2025-03-01T09:30:00Z``)
Alarms:     simple ``15m`` / ``-1h`` (before start), ``+10m`` (after start),
            ``2025-03-01 08:45`` (absolute), or key/value
            ``trigger=-30m,description=Boarding,repeat=2,repeat_duration=5m``
"""

import re
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from tempus.models import AbsoluteTrigger
from tempus.models import Alarm
from tempus.models import RelativeTrigger
from tempus.models import ValidationError
from tempus.models import load_zone
from tempus.models import local_zone

_HHMM_RE = re.compile(r"^(\d{1,2})\s*:\s*([0-5]?\d)$")
_UNITS_RE = re.compile(r"^(?:(\d+)\s*h)?\s*(?:(\d+)\s*m)?\s*(?:(\d+)\s*s)?$")
_DAYS_WEEKS_RE = re.compile(r"^(\d+)\s*([dw])$")
_ISO_RE = re.compile(
    r"^P(?:(\d+)W)?(?:(\d+)D)?(?:T(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?)?$", re.IGNORECASE
)

_LOCAL_FORMATS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%dT%H:%M",
)

_AFTER_WORDS = {"after", "post", "later", "following", "plus"}
_BEFORE_WORDS = {"before", "prior", "pre", "minus"}


# ---------------------------------------------------------------------------
# Durations
# ---------------------------------------------------------------------------


def parse_human_duration(text: str) -> timedelta:
    """Parse a positive duration; raises ValidationError otherwise."""
    value = (text or "").strip().lower()
    if not value:
        raise ValidationError("Duration cannot be empty")

    days_weeks = _DAYS_WEEKS_RE.match(value)
    hhmm = _HHMM_RE.match(value)
    units = _UNITS_RE.match(value)
    iso = _ISO_RE.match(value)

    if days_weeks:
        n = int(days_weeks.group(1))
        delta = timedelta(days=n) if days_weeks.group(2) == "d" else timedelta(weeks=n)
    elif hhmm:
        delta = timedelta(hours=int(hhmm.group(1)), minutes=int(hhmm.group(2)))
    elif value.isdigit():
        delta = timedelta(minutes=int(value))
    elif units and any(units.groups()):
        hours, minutes, seconds = (int(g or 0) for g in units.groups())
        delta = timedelta(hours=hours, minutes=minutes, seconds=seconds)
    elif iso and any(iso.groups()):
        weeks, days, hours, minutes, seconds = (int(g or 0) for g in iso.groups())
        delta = timedelta(
            weeks=weeks, days=days, hours=hours, minutes=minutes, seconds=seconds
        )
    else:
        raise ValidationError(f"Unrecognized duration format: {text!r}")

    if delta <= timedelta(0):
        raise ValidationError(f"Duration must be positive: {text!r}")
    return delta


def _signed_duration(text: str, default_sign: int = -1) -> timedelta:
    value = text.strip()
    sign = default_sign
    if value[:1] in ("+", "-"):
        sign = 1 if value[0] == "+" else -1
        value = value[1:].strip()
    return parse_human_duration(value) * sign


# ---------------------------------------------------------------------------
# Dates and times
# ---------------------------------------------------------------------------


def _zone(tz: str):
    zone = load_zone(tz)
    if tz and zone is None:
        raise ValidationError(f"Unknown timezone: {tz!r}")
    return zone or local_zone()


def parse_datetime(text: str, tz: str = "") -> datetime:
    """Parse a date-time as wall clock in ``tz`` (system local when empty)."""
    value = (text or "").strip()
    if not value:
        raise ValidationError("Date/time cannot be empty")

    if value.upper().endswith("Z") or re.search(r"[+-]\d{2}:\d{2}$", value):
        try:
            return datetime.fromisoformat(value.replace(" ", "T", 1).replace("Z", "+00:00"))
        except ValueError:
            pass

    for fmt in _LOCAL_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=_zone(tz))
        except ValueError:
            continue

    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=_zone(tz))
    except ValueError:
        raise ValidationError(f"Unrecognized date/time: {text!r}") from None


# ---------------------------------------------------------------------------
# Alarms
# ---------------------------------------------------------------------------


def split_alarm_input(raw: str) -> list[str]:
    """Split free-form alarm input on newlines, ``||``, commas, ``;`` and ``|``.

    A line containing ``=`` is a key/value spec and is kept whole.
    """
    out: list[str] = []
    for line in (raw or "").replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        line = line.strip()
        if not line:
            continue
        if "||" in line:
            for part in line.split("||"):
                out.extend(split_alarm_input(part))
        elif "=" in line:
            out.append(line)
        else:
            out.extend(p.strip() for p in re.split(r"[,;|]", line) if p.strip())
    return out


def _absolute(text: str, tz: str) -> datetime:
    return parse_datetime(text, tz).astimezone(timezone.utc)


def _parse_simple(spec: str, tz: str) -> Alarm:
    try:
        return Alarm(trigger=RelativeTrigger(_signed_duration(spec)))
    except ValidationError:
        pass
    try:
        return Alarm(trigger=AbsoluteTrigger(_absolute(spec, tz)))
    except ValidationError:
        raise ValidationError(f"Invalid alarm {spec!r}") from None


def _first(params: dict[str, str], *keys: str) -> str:
    for key in keys:
        if params.get(key, "").strip():
            return params[key].strip()
    return ""


def _parse_key_value(spec: str, tz: str) -> Alarm:
    params: dict[str, str] = {}
    for part in re.split(r"[,;]", spec):
        if not part.strip():
            continue
        key, eq, val = part.partition("=")
        if not eq:
            raise ValidationError(f"Invalid alarm segment {part!r} in {spec!r}")
        if key.strip():
            params[key.strip().lower()] = val.strip()

    trigger = _first(params, "trigger", "offset")
    if not trigger:
        raise ValidationError(f"Alarm {spec!r} is missing a trigger= value")

    direction = -1
    hint = _first(params, "direction", "when").lower()
    if hint in _AFTER_WORDS:
        direction = 1
    elif hint in _BEFORE_WORDS:
        direction = -1

    kind = params.get("kind", "").lower()
    force_relative = kind in ("relative", "before", "after")
    force_absolute = kind in ("absolute", "at", "on")
    if kind == "after":
        direction = 1
    elif kind == "before":
        direction = -1

    resolved = None
    if not force_absolute:
        try:
            resolved = RelativeTrigger(_signed_duration(trigger, direction))
        except ValidationError:
            if force_relative:
                raise ValidationError(f"Invalid relative trigger {trigger!r} in alarm {spec!r}") from None
    if resolved is None:
        try:
            resolved = AbsoluteTrigger(_absolute(trigger, tz))
        except ValidationError:
            raise ValidationError(f"Invalid alarm {spec!r}") from None

    repeat = 0
    repeat_raw = _first(params, "repeat", "repetitions")
    if repeat_raw:
        if not repeat_raw.isdigit() or int(repeat_raw) <= 0:
            raise ValidationError(f"Invalid repeat count {repeat_raw!r} in alarm {spec!r}")
        repeat = int(repeat_raw)
    interval = None
    interval_raw = _first(params, "repeat_duration", "repeat_interval")
    if interval_raw:
        interval = parse_human_duration(interval_raw.lstrip("+"))
    if bool(repeat) != bool(interval):
        raise ValidationError(
            f"Repeat count and repeat duration must both be set in alarm {spec!r}"
        )

    return Alarm(
        trigger=resolved,
        action=_first(params, "action") or "DISPLAY",
        description=_first(params, "description", "message", "text"),
        summary=_first(params, "summary", "title"),
        repeat=repeat,
        repeat_interval=interval,
    )


def parse_alarm_spec(spec: str, tz: str = "") -> Alarm:
    """Parse one alarm spec (simple or key/value form)."""
    spec = (spec or "").strip()
    if not spec:
        raise ValidationError("Alarm trigger cannot be empty")
    if "=" in spec:
        return _parse_key_value(spec, tz)
    return _parse_simple(spec, tz)


def parse_alarm_specs(values: list[str], tz: str = "") -> list[Alarm]:
    """Parse every spec found in ``values`` (each may hold several)."""
    return [parse_alarm_spec(spec, tz) for raw in values for spec in split_alarm_input(raw)]
