"""
Event model → remote calendar API JSON body.
"""

from datetime import datetime
from datetime import timezone

from tempus.ics.encoder import format_date_time
from tempus.models import Event


def format_rfc3339(value: datetime) -> str:
    """RFC 3339 without fractional seconds; UTC is written with a ``Z``."""
    value = value.replace(microsecond=0)
    if value.utcoffset() is not None and not value.utcoffset():
        return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return value.isoformat()


def _time_field(value: datetime, tz: str, all_day: bool) -> dict:
    out = {"date": value.date().isoformat()} if all_day else {"dateTime": format_rfc3339(value)}
    if tz:
        out["timeZone"] = tz
    return out


def event_to_payload(event: Event) -> dict:
    """Build the JSON body for an events.insert request."""
    payload: dict = {"summary": event.summary}
    if event.description.strip():
        payload["description"] = event.description
    if event.location.strip():
        payload["location"] = event.location

    payload["start"] = _time_field(event.start, event.start_tz, event.all_day)
    payload["end"] = _time_field(event.end, event.end_tz, event.all_day)

    if event.rrule:
        recurrence = [f"RRULE:{event.rrule}"]
        recurrence.extend(
            format_date_time("EXDATE", exdate, event.start_tz, event.all_day)
            for exdate in event.exdates
        )
        payload["recurrence"] = recurrence

    minutes = event.reminder_minutes()
    if minutes:
        payload["reminders"] = {
            "useDefault": False,
            "overrides": [{"method": "popup", "minutes": m} for m in minutes],
        }
    return payload
