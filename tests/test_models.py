"""
Tests for model invariants: events, alarms, calendars and tokens.
"""

from datetime import date
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from tempus.models import AbsoluteTrigger
from tempus.models import Alarm
from tempus.models import Calendar
from tempus.models import Event
from tempus.models import RelativeTrigger
from tempus.models import Token
from tempus.models import ValidationError
from tempus.models import load_zone

START = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)


class TestEventInvariants:
    def test_uid_generated(self):
        ev = Event(summary="x", start=START, end=START + timedelta(hours=1))
        assert ev.uid.endswith("@tempus")
        other = Event(summary="x", start=START, end=START + timedelta(hours=1))
        assert other.uid != ev.uid

    def test_end_tz_defaults_to_start_tz(self):
        ev = Event(summary="x", start=START, end=START + timedelta(hours=1), start_tz="Asia/Tokyo")
        assert ev.end_tz == "Asia/Tokyo"

    @pytest.mark.parametrize("delta", [timedelta(0), timedelta(minutes=-5)])
    def test_timed_end_must_follow_start(self, delta):
        with pytest.raises(ValidationError):
            Event(summary="x", start=START, end=START + delta)

    def test_timed_requires_end(self):
        with pytest.raises(ValidationError):
            Event(summary="x", start=START)

    def test_all_day_end_defaults_to_next_day(self):
        ev = Event(summary="x", start=date(2025, 3, 5), all_day=True)
        assert ev.end - ev.start == timedelta(days=1)

    def test_all_day_end_may_equal_start(self):
        ev = Event(summary="x", start=date(2025, 3, 5), end=date(2025, 3, 5), all_day=True)
        assert ev.end == ev.start

    def test_all_day_end_before_start_rejected(self):
        with pytest.raises(ValidationError):
            Event(summary="x", start=date(2025, 3, 5), end=date(2025, 3, 4), all_day=True)

    def test_naive_datetime_takes_event_zone(self):
        ev = Event(
            summary="x",
            start=datetime(2026, 3, 1, 10, 0),
            end=datetime(2026, 3, 1, 11, 0),
            start_tz="Europe/Amsterdam",
        )
        assert ev.start.tzinfo == ZoneInfo("Europe/Amsterdam")
        assert ev.start.astimezone(timezone.utc).hour == 9

    @pytest.mark.parametrize("priority", [-1, 10])
    def test_priority_range(self, priority):
        with pytest.raises(ValidationError):
            Event(summary="x", start=START, end=START + timedelta(hours=1), priority=priority)


class TestReminders:
    def test_only_positive_minutes_kept(self):
        ev = Event(
            summary="x",
            start=START,
            end=START + timedelta(hours=1),
            alarms=[
                Alarm(trigger=RelativeTrigger(timedelta(minutes=-15))),
                Alarm(trigger=RelativeTrigger(timedelta(minutes=5))),
                Alarm(trigger=RelativeTrigger(timedelta(0))),
            ],
        )
        assert ev.reminder_minutes() == [15]

    @pytest.mark.parametrize(
        "offset, expected",
        [
            (timedelta(seconds=-90), 2),
            (timedelta(seconds=-29), 0),
            (timedelta(seconds=-30), 1),
            (timedelta(seconds=45), -1),
        ],
    )
    def test_relative_seconds_rounded_to_minutes(self, offset, expected):
        assert Alarm(trigger=RelativeTrigger(offset)).minutes_before(START) == expected

    def test_absolute_trigger_resolved_against_start(self):
        alarm = Alarm(trigger=AbsoluteTrigger(START - timedelta(minutes=45)))
        assert not alarm.is_relative
        assert alarm.minutes_before(START) == 45

    def test_display_alarm_gets_default_description(self):
        alarm = Alarm(trigger=RelativeTrigger(timedelta(minutes=-1)), action="display")
        assert alarm.action == "DISPLAY"
        assert alarm.description == "Reminder"

    def test_other_actions_keep_empty_description(self):
        alarm = Alarm(trigger=RelativeTrigger(timedelta(minutes=-1)), action="AUDIO")
        assert alarm.description == ""


class TestCalendar:
    def test_add_event_adopts_shared_zone(self):
        cal = Calendar()
        cal.add_event(
            Event(summary="x", start=START, end=START + timedelta(hours=1), start_tz="Asia/Tokyo")
        )
        assert cal.default_timezone == "Asia/Tokyo"

    def test_add_event_keeps_explicit_default(self):
        cal = Calendar(default_timezone="Europe/Amsterdam")
        cal.add_event(
            Event(summary="x", start=START, end=START + timedelta(hours=1), start_tz="Asia/Tokyo")
        )
        assert cal.default_timezone == "Europe/Amsterdam"

    def test_mixed_zones_not_adopted(self):
        cal = Calendar()
        cal.add_event(
            Event(
                summary="flight",
                start=START,
                end=START + timedelta(hours=8),
                start_tz="Europe/Amsterdam",
                end_tz="America/New_York",
            )
        )
        assert cal.default_timezone == ""


class TestToken:
    NOW = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)

    def test_expiry_inside_leeway_is_invalid(self):
        token = Token(access_token="a", expiry=self.NOW + timedelta(seconds=29))
        assert not token.valid(self.NOW)

    def test_expiry_outside_leeway_is_valid(self):
        token = Token(access_token="a", expiry=self.NOW + timedelta(seconds=31))
        assert token.valid(self.NOW)

    def test_empty_access_token_invalid(self):
        assert not Token(access_token="", expiry=self.NOW + timedelta(hours=1)).valid(self.NOW)

    def test_missing_expiry_invalid(self):
        assert not Token(access_token="a").valid(self.NOW)

    def test_authorization_header_defaults_to_bearer(self):
        assert Token(access_token="abc", token_type=" ").authorization == "Bearer abc"
        assert Token(access_token="abc", token_type="MAC").authorization == "MAC abc"


class TestLoadZone:
    @pytest.mark.parametrize("name", ["UTC", "utc", "Z", "Etc/UTC"])
    def test_utc_aliases(self, name):
        assert load_zone(name) is timezone.utc

    def test_iana_zone(self):
        assert load_zone("Europe/Amsterdam") == ZoneInfo("Europe/Amsterdam")

    @pytest.mark.parametrize("name", ["", "   ", "Mars/Olympus"])
    def test_unknown_or_empty(self, name):
        assert load_zone(name) is None
