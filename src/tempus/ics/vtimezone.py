"""
VTIMEZONE generation from the IANA tz database.

Each referenced zone is described by the UTC-offset transitions that occur in
the years its events span, one STANDARD/DAYLIGHT sub-component per transition.
Recurring events extend the span to their UNTIL year, or a fixed horizon.
"""

import logging
import re
from datetime import datetime
from datetime import timedelta
from datetime import timezone

from tempus.ics.lines import format_property
from tempus.models import Event
from tempus.models import load_zone

logger = logging.getLogger(__name__)

_LOCAL_FORMAT = "%Y%m%dT%H%M%S"
_UNTIL_RE = re.compile(r"(?:^|;)UNTIL=(\d{4})", re.IGNORECASE)

# Years of offset rules emitted past the start of an open-ended (or COUNT) RRULE.
RECURRENCE_HORIZON_YEARS = 5


def referenced_zones(events: list[Event]) -> list[str]:
    """TZIDs used by timed events, in first-seen order (UTC excluded)."""
    seen: dict[str, None] = {}
    for event in events:
        if event.all_day:
            continue
        for tz in (event.start_tz, event.end_tz):
            if tz and tz.upper() != "UTC":
                seen.setdefault(tz, None)
    return list(seen)


def _last_occurrence_year(event: Event) -> int:
    """Last year whose offset rules a recurring event needs."""
    m = _UNTIL_RE.search(event.rrule)
    if m:
        return max(event.start.year, int(m.group(1)))
    return event.start.year + RECURRENCE_HORIZON_YEARS


def _year_span(events: list[Event], tzid: str) -> tuple[int, int]:
    years = [
        dt.year
        for event in events
        if tzid in (event.start_tz, event.end_tz)
        for dt in (event.start, event.end)
        if dt is not None
    ]
    years.extend(
        _last_occurrence_year(event)
        for event in events
        if event.rrule and tzid in (event.start_tz, event.end_tz)
    )
    if not years:
        now = datetime.now(timezone.utc).year
        return now, now
    return min(years), max(years)


def _offset(zone, instant: datetime) -> timedelta:
    return instant.astimezone(zone).utcoffset() or timedelta(0)


def _transitions(zone, first_year: int, last_year: int) -> list[datetime]:
    """UTC instants at which the zone's offset changes."""
    cursor = datetime(first_year, 1, 1, tzinfo=timezone.utc)
    stop = datetime(last_year + 1, 1, 1, tzinfo=timezone.utc)
    found: list[datetime] = []
    current = _offset(zone, cursor)
    while cursor < stop:
        nxt = cursor + timedelta(days=1)
        if _offset(zone, nxt) != current:
            lo, hi = cursor, nxt
            while hi - lo > timedelta(minutes=1):
                mid = lo + (hi - lo) / 2
                if _offset(zone, mid) == current:
                    lo = mid
                else:
                    hi = mid
            found.append(hi.replace(second=0, microsecond=0))
            current = _offset(zone, nxt)
        cursor = nxt
    return found


def _format_offset(offset: timedelta) -> str:
    total = int(offset.total_seconds())
    sign = "+" if total >= 0 else "-"
    total = abs(total)
    return f"{sign}{total // 3600:02d}{(total % 3600) // 60:02d}"


def _observance(zone, instant: datetime, before: timedelta) -> list[str]:
    local = instant.astimezone(zone)
    after = local.utcoffset() or timedelta(0)
    kind = "DAYLIGHT" if local.dst() else "STANDARD"
    # DTSTART is the wall-clock time expressed in the offset being left.
    wall = (instant + before).replace(tzinfo=None)
    lines = [
        f"BEGIN:{kind}",
        format_property("TZOFFSETFROM", _format_offset(before)),
        format_property("TZOFFSETTO", _format_offset(after)),
    ]
    name = local.tzname()
    if name:
        lines.append(format_property("TZNAME", name))
    lines.append(format_property("DTSTART", wall.strftime(_LOCAL_FORMAT)))
    lines.append(f"END:{kind}")
    return lines


def build_vtimezone(tzid: str, first_year: int, last_year: int) -> list[str]:
    """Logical lines of a VTIMEZONE block, or [] for an unknown zone."""
    zone = load_zone(tzid)
    if zone is None or zone is timezone.utc:
        logger.debug("No VTIMEZONE emitted for %s", tzid)
        return []

    lines = ["BEGIN:VTIMEZONE", format_property("TZID", tzid)]
    lines.append(format_property("X-LIC-LOCATION", tzid))

    origin = datetime(first_year, 1, 1, tzinfo=timezone.utc)
    initial = _offset(zone, origin)
    lines.extend(_observance(zone, origin, initial))

    previous = initial
    for instant in _transitions(zone, first_year, last_year):
        lines.extend(_observance(zone, instant, previous))
        previous = _offset(zone, instant)

    lines.append("END:VTIMEZONE")
    return lines


def vtimezone_blocks(events: list[Event]) -> list[str]:
    """Logical lines of one VTIMEZONE per zone referenced by ``events``."""
    lines: list[str] = []
    for tzid in referenced_zones(events):
        first, last = _year_span(events, tzid)
        lines.extend(build_vtimezone(tzid, first, last))
    return lines
