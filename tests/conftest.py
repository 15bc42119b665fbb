"""
Shared pytest fixtures and iCal helpers.
"""

from datetime import datetime
from datetime import timedelta
from datetime import timezone

import pytest
import responses

from tempus.auth.device_flow import TokenManager
from tempus.auth.token import TokenStore
from tempus.models import GoogleConfig

DEVICE_URL = "https://oauth.test/device"
TOKEN_URL = "https://oauth.test/token"
API_BASE = "https://api.test/calendar/v3"
CALENDAR_ID = "team@group.calendar.test"

NOW = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


def make_vevent(
    uid: str,
    summary: str = "Test Event",
    dtstart: str = "DTSTART:20260301T100000Z",
    dtend: str | None = "DTEND:20260301T110000Z",
    extra: tuple = (),
) -> str:
    """Return a VEVENT iCal string (no VCALENDAR wrapper).

    ``dtstart``/``dtend`` are complete property lines so tests can vary
    parameters; ``extra`` lines are inserted before END:VEVENT.
    """
    lines = ["BEGIN:VEVENT", f"UID:{uid}", f"SUMMARY:{summary}", dtstart]
    if dtend:
        lines.append(dtend)
    lines.append("DTSTAMP:20260224T000000Z")
    lines.extend(extra)
    lines.append("END:VEVENT")
    return "\r\n".join(lines) + "\r\n"


def make_valarm(trigger_line: str, action: str = "DISPLAY") -> tuple:
    """Return VALARM lines suitable for ``make_vevent(extra=...)``."""
    return (
        "BEGIN:VALARM",
        f"ACTION:{action}",
        trigger_line,
        "DESCRIPTION:Reminder",
        "END:VALARM",
    )


def wrap_vcalendar(*vevents: str, header: tuple = ()) -> str:
    """Wrap VEVENT strings in a minimal VCALENDAR."""
    head = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Test//Test//EN", *header]
    return "\r\n".join(head) + "\r\n" + "".join(vevents) + "END:VCALENDAR\r\n"


class FakeClock:
    """Manually advanced clock; its wait() advances time instead of sleeping."""

    def __init__(self, now: datetime = NOW):
        self.now = now
        self.waits: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    def wait(self, cancel, seconds: float) -> bool:
        self.waits.append(seconds)
        self.advance(seconds)
        return cancel is not None and cancel.is_set()


@pytest.fixture
def google_config(tmp_path):
    return GoogleConfig(
        client_id="client-123",
        client_secret="shh",
        calendar_id=CALENDAR_ID,
        token_file=tmp_path / "tokens" / "google-token.json",
        device_endpoint=DEVICE_URL,
        token_endpoint=TOKEN_URL,
        calendar_base_url=API_BASE,
        timeout=5.0,
    )


@pytest.fixture
def token_store(google_config):
    return TokenStore(google_config.token_file)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def prompts():
    return []


@pytest.fixture
def token_manager(google_config, token_store, clock, prompts):
    return TokenManager(
        google_config,
        store=token_store,
        clock=clock,
        wait=clock.wait,
        on_prompt=lambda url, code: prompts.append((url, code)),
    )


@pytest.fixture
def mocked_responses():
    with responses.RequestsMock() as rsps:
        yield rsps
