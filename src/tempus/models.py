"""
Pure data models; no HTTP or file I/O.
"""

import uuid
from dataclasses import dataclass
from dataclasses import field
from datetime import date
from datetime import datetime
from datetime import time
from datetime import timedelta
from datetime import timezone
from pathlib import Path
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError

if TYPE_CHECKING:
    from tempus.ics.decoder import SoftError

DEFAULT_CONFIG = Path.home() / ".config/tempus.conf"
DEFAULT_TOKEN_FILE = Path.home() / ".local/share/tempus/google-token.json"

DEFAULT_PRODID = "-//Tempus//Tempus Calendar Generator//EN"
DEFAULT_DEVICE_ENDPOINT = "https://oauth2.googleapis.com/device/code"
DEFAULT_TOKEN_ENDPOINT = "https://oauth2.googleapis.com/token"
DEFAULT_CALENDAR_BASE_URL = "https://www.googleapis.com/calendar/v3"
DEFAULT_SCOPE = "https://www.googleapis.com/auth/calendar.events"

TOKEN_EXPIRY_LEEWAY = timedelta(seconds=30)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class TempusError(Exception):
    """Base exception for all Tempus errors."""

    pass


class ValidationError(TempusError):
    """A required input is missing or a model invariant does not hold."""


class ICSParseError(TempusError):
    """A strict iCalendar value could not be parsed."""


class OperationCancelled(TempusError):
    """The caller's cancellation signal was set."""


class AuthError(TempusError):
    """Base class for authentication failures."""


class TokenRefreshError(AuthError):
    pass


class DeviceFlowError(AuthError):
    pass


class DeviceCodeExpiredError(DeviceFlowError):
    pass


class TokenStoreError(AuthError):
    """The token file could not be read or written."""


class ApiError(TempusError):
    """Non-2xx response (or transport failure) from the calendar API."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class EventInsertError(ApiError):
    """An event insert failed; ``inserted`` events had already been created."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: str = "",
        inserted: int = 0,
    ):
        super().__init__(message, status_code=status_code, body=body)
        self.inserted = inserted


# ---------------------------------------------------------------------------
# Timezone helpers
# ---------------------------------------------------------------------------


def load_zone(name: str | None):
    """Return a tzinfo for an IANA name, ``timezone.utc`` for UTC, or None."""
    name = (name or "").strip()
    if not name:
        return None
    if name.upper() in ("UTC", "Z", "GMT", "ETC/UTC"):
        return timezone.utc
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return None


def local_zone():
    """The system local timezone."""
    return datetime.now().astimezone().tzinfo


def _as_aware(value, zone_name: str):
    """Normalize a date/naive datetime into an aware datetime."""
    if value is None:
        return None
    tz = load_zone(zone_name) or timezone.utc
    if not isinstance(value, datetime):
        return datetime.combine(value, time(), tzinfo=tz)
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


def generate_uid() -> str:
    return f"{uuid.uuid4()}@tempus"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Alarms
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RelativeTrigger:
    """Offset from event start; negative means before."""

    offset: timedelta


@dataclass(frozen=True)
class AbsoluteTrigger:
    at: datetime


Trigger = RelativeTrigger | AbsoluteTrigger


def minutes_between(start: datetime | None, trigger: datetime | None) -> int:
    """Whole minutes from ``trigger`` up to ``start``; 0 when not strictly before."""
    if start is None or trigger is None:
        return 0
    diff = start - trigger
    if diff <= timedelta(0):
        return 0
    return int(diff.total_seconds() // 60)


@dataclass
class Alarm:
    """A VALARM block. DISPLAY is the most portable action."""

    trigger: Trigger
    action: str = "DISPLAY"
    description: str = ""
    summary: str = ""
    repeat: int = 0
    repeat_interval: timedelta | None = None

    def __post_init__(self):
        self.action = (self.action or "DISPLAY").strip().upper()
        if self.action == "DISPLAY" and not self.description.strip():
            self.description = "Reminder"

    @property
    def is_relative(self) -> bool:
        return isinstance(self.trigger, RelativeTrigger)

    def minutes_before(self, start: datetime | None) -> int:
        """Resolve the trigger into minutes before ``start`` (may be <= 0).

        Relative offsets round a seconds remainder of 30 or more up to the next
        minute, the same rule the decoder applies to TRIGGER durations.
        """
        if isinstance(self.trigger, RelativeTrigger):
            seconds = int(-self.trigger.offset.total_seconds())
            minutes, rem = divmod(abs(seconds), 60)
            if rem >= 30:
                minutes += 1
            return minutes if seconds >= 0 else -minutes
        return minutes_between(start, self.trigger.at)


# ---------------------------------------------------------------------------
# Events & calendars
# ---------------------------------------------------------------------------


@dataclass
class Event:
    """A single VEVENT."""

    summary: str
    start: datetime
    end: datetime | None = None
    start_tz: str = ""
    end_tz: str = ""
    all_day: bool = False
    description: str = ""
    location: str = ""
    uid: str = ""
    rrule: str = ""
    exdates: list[datetime] = field(default_factory=list)
    alarms: list[Alarm] = field(default_factory=list)
    categories: list[str] = field(default_factory=list)
    attendees: list[str] = field(default_factory=list)
    priority: int = 0
    status: str = "CONFIRMED"
    sequence: int = 0
    created: datetime = field(default_factory=_utcnow)
    last_modified: datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if not self.uid:
            self.uid = generate_uid()
        self.start_tz = (self.start_tz or "").strip()
        self.end_tz = (self.end_tz or "").strip() or self.start_tz
        self.rrule = (self.rrule or "").strip()

        if self.start is None:
            raise ValidationError(f"Event {self.summary!r} has no start time")
        self.start = _as_aware(self.start, self.start_tz)
        self.end = _as_aware(self.end, self.end_tz)
        self.exdates = [_as_aware(x, self.start_tz) for x in self.exdates]

        if self.all_day:
            if self.end is None:
                self.end = self.start + timedelta(days=1)
            elif self.end < self.start:
                raise ValidationError(
                    f"All-day event {self.summary!r} ends before it starts"
                )
        else:
            if self.end is None:
                raise ValidationError(f"Event {self.summary!r} has no end time")
            if self.end <= self.start:
                raise ValidationError(
                    f"Event {self.summary!r} must end after it starts "
                    f"({self.start.isoformat()} >= {self.end.isoformat()})"
                )

        if not 0 <= self.priority <= 9:
            raise ValidationError(f"Priority must be between 0 and 9, got {self.priority}")

    def reminder_minutes(self) -> list[int]:
        """Strictly positive minutes-before-start, one per usable alarm."""
        minutes = [alarm.minutes_before(self.start) for alarm in self.alarms]
        return [m for m in minutes if m > 0]


@dataclass
class Calendar:
    """An iCalendar VCALENDAR object."""

    name: str = ""
    events: list[Event] = field(default_factory=list)
    default_timezone: str = ""
    include_vtimezone: bool = False
    prodid: str = DEFAULT_PRODID
    method: str = "PUBLISH"

    def add_event(self, event: Event) -> None:
        self.events.append(event)
        if not self.default_timezone.strip():
            tz = event.start_tz.strip()
            if tz and event.end_tz.strip() == tz:
                self.default_timezone = tz


# ---------------------------------------------------------------------------
# OAuth token
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    """OAuth access/refresh token pair. Replaced, never mutated."""

    access_token: str
    refresh_token: str = ""
    token_type: str = "Bearer"
    expiry: datetime | None = None

    def valid(self, now: datetime | None = None) -> bool:
        if not self.access_token.strip() or self.expiry is None:
            return False
        now = now or _utcnow()
        return self.expiry > now + TOKEN_EXPIRY_LEEWAY

    @property
    def authorization(self) -> str:
        token_type = self.token_type.strip() or "Bearer"
        return f"{token_type} {self.access_token}"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass
class GoogleConfig:
    """Remote calendar API / OAuth settings."""

    client_id: str = ""
    client_secret: str = ""
    calendar_id: str = "primary"
    token_file: Path = field(default_factory=lambda: DEFAULT_TOKEN_FILE)
    device_endpoint: str = DEFAULT_DEVICE_ENDPOINT
    token_endpoint: str = DEFAULT_TOKEN_ENDPOINT
    calendar_base_url: str = DEFAULT_CALENDAR_BASE_URL
    scope: str = DEFAULT_SCOPE
    timeout: float = 30.0


@dataclass
class TempusConfig:
    """Top-level configuration loaded from the INI file."""

    timezone: str = ""
    calendar_name: str = ""
    output_dir: Path = field(default_factory=lambda: Path("."))
    google: GoogleConfig = field(default_factory=GoogleConfig)


@dataclass
class ImportResult:
    """Outcome of a successful ICS import."""

    inserted: int = 0
    event_ids: list[str] = field(default_factory=list)
    warnings: list["SoftError"] = field(default_factory=list)
