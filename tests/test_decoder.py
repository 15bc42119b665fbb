"""
Tests for tempus.ics.decoder: the VEVENT/VALARM state machine, timestamp
resolution, trigger parsing and soft-error reporting.
"""

from datetime import datetime
from datetime import timedelta
from datetime import timezone
from zoneinfo import ZoneInfo

import pytest

from tempus.ics.decoder import decode
from tempus.ics.decoder import parse_duration_minutes
from tempus.models import AbsoluteTrigger
from tempus.models import ICSParseError
from tempus.models import RelativeTrigger
from tempus.models import minutes_between

from tests.conftest import make_valarm
from tests.conftest import make_vevent
from tests.conftest import wrap_vcalendar

AMS = ZoneInfo("Europe/Amsterdam")


# ---------------------------------------------------------------------------
# Durations and trigger arithmetic
# ---------------------------------------------------------------------------


class TestParseDurationMinutes:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("PT15M", 15),
            ("-PT1H30M", 90),
            ("+PT5M", 5),
            ("P1DT2H", 1560),
            ("P1W", 10080),
            ("PT29S", 0),
            ("PT30S", 1),
            ("PT1M45S", 2),
            ("pt10m", 10),
        ],
    )
    def test_valid(self, raw, expected):
        assert parse_duration_minutes(raw) == expected

    @pytest.mark.parametrize("raw", ["", "15M", "PT", "P", "1 hour", "PT1.5H", "P1Y"])
    def test_invalid_raises(self, raw):
        with pytest.raises(ICSParseError):
            parse_duration_minutes(raw)


class TestMinutesBetween:
    START = datetime(2025, 3, 1, 9, 30, tzinfo=timezone.utc)

    def test_trigger_before_start(self):
        assert minutes_between(self.START, datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)) == 30

    def test_trigger_after_start(self):
        assert minutes_between(self.START, datetime(2025, 3, 1, 9, 45, tzinfo=timezone.utc)) == 0

    def test_trigger_equal_start(self):
        assert minutes_between(self.START, self.START) == 0

    def test_partial_minute_floors(self):
        trigger = self.START - timedelta(minutes=4, seconds=59)
        assert minutes_between(self.START, trigger) == 4

    def test_missing_values(self):
        assert minutes_between(None, self.START) == 0
        assert minutes_between(self.START, None) == 0


# ---------------------------------------------------------------------------
# Basic decoding
# ---------------------------------------------------------------------------


class TestDecodeEvents:
    def test_simple_utc_event(self):
        result = decode(wrap_vcalendar(make_vevent("u1", "Standup")))
        assert len(result.events) == 1
        ev = result.events[0]
        assert ev.uid == "u1"
        assert ev.summary == "Standup"
        assert ev.start == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert ev.end == datetime(2026, 3, 1, 11, 0, tzinfo=timezone.utc)
        assert ev.start_tz == "UTC"
        assert ev.end_tz == "UTC"
        assert not ev.all_day
        assert result.warnings == []

    def test_events_keep_document_order(self):
        text = wrap_vcalendar(make_vevent("a", "First"), make_vevent("b", "Second"))
        assert [e.summary for e in decode(text).events] == ["First", "Second"]

    def test_text_fields_unescaped(self):
        vevent = make_vevent(
            "u1",
            "Dinner\\, drinks\\; fun",
            extra=("DESCRIPTION:line1\\nline2", "LOCATION:Caf\\\\e"),
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.summary == "Dinner, drinks; fun"
        assert ev.description == "line1\nline2"
        assert ev.location == "Caf\\e"

    def test_folded_lines_unfolded(self):
        text = wrap_vcalendar(make_vevent("u1", "A very long\r\n  summary"))
        assert decode(text).events[0].summary == "A very long summary"

    def test_rrule_copied_verbatim(self):
        vevent = make_vevent("u1", extra=("RRULE:FREQ=WEEKLY;BYDAY=MO,WE;COUNT=6 ",))
        assert decode(wrap_vcalendar(vevent)).events[0].rrule == "FREQ=WEEKLY;BYDAY=MO,WE;COUNT=6"

    def test_properties_outside_events_ignored(self):
        text = wrap_vcalendar(make_vevent("u1"), header=("SUMMARY:not an event",))
        result = decode(text)
        assert len(result.events) == 1
        assert result.events[0].summary == "Test Event"

    def test_vtimezone_block_does_not_leak_into_events(self):
        header = (
            "BEGIN:VTIMEZONE",
            "TZID:Europe/Amsterdam",
            "BEGIN:STANDARD",
            "DTSTART:19701025T030000",
            "TZOFFSETFROM:+0200",
            "TZOFFSETTO:+0100",
            "END:STANDARD",
            "END:VTIMEZONE",
        )
        result = decode(wrap_vcalendar(make_vevent("u1"), header=header))
        assert len(result.events) == 1
        assert result.warnings == []

    def test_calendar_name_captured(self):
        result = decode(wrap_vcalendar(make_vevent("u1"), header=("X-WR-CALNAME:Team\\, shared",)))
        assert result.name == "Team, shared"

    def test_empty_input(self):
        result = decode("")
        assert result.events == []
        assert result.warnings == []


# ---------------------------------------------------------------------------
# Timestamps and zones
# ---------------------------------------------------------------------------


class TestTimestamps:
    def test_tzid_wall_clock(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART;TZID=Europe/Amsterdam:20260301T100000",
            dtend="DTEND;TZID=Europe/Amsterdam:20260301T113000",
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.start == datetime(2026, 3, 1, 10, 0, tzinfo=AMS)
        assert ev.start.astimezone(timezone.utc).hour == 9
        assert ev.start_tz == "Europe/Amsterdam"
        assert ev.end_tz == "Europe/Amsterdam"

    def test_dtend_inherits_start_zone(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART;TZID=America/New_York:20260301T100000",
            dtend="DTEND:20260301T110000",
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.end == datetime(2026, 3, 1, 11, 0, tzinfo=ZoneInfo("America/New_York"))
        assert ev.end_tz == "America/New_York"

    def test_calendar_default_zone_used(self):
        vevent = make_vevent(
            "u1", dtstart="DTSTART:20260301T100000", dtend="DTEND:20260301T110000"
        )
        result = decode(wrap_vcalendar(vevent, header=("X-WR-TIMEZONE:Europe/Amsterdam",)))
        assert result.default_timezone == "Europe/Amsterdam"
        assert result.events[0].start == datetime(2026, 3, 1, 10, 0, tzinfo=AMS)
        assert result.events[0].start_tz == "Europe/Amsterdam"

    def test_first_default_zone_wins(self):
        header = ("X-WR-TIMEZONE:Europe/Amsterdam", "X-WR-TIMEZONE:Asia/Tokyo")
        result = decode(wrap_vcalendar(make_vevent("u1"), header=header))
        assert result.default_timezone == "Europe/Amsterdam"

    def test_all_day_event(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART;VALUE=DATE:20250305",
            dtend="DTEND;VALUE=DATE:20250306",
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.all_day
        assert ev.start.date().isoformat() == "2025-03-05"
        assert ev.end.date().isoformat() == "2025-03-06"

    def test_missing_dtend_defaults_one_day_for_all_day(self):
        vevent = make_vevent("u1", dtstart="DTSTART;VALUE=DATE:20250305", dtend=None)
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.end - ev.start == timedelta(days=1)

    def test_missing_dtend_defaults_one_hour_for_timed(self):
        ev = decode(wrap_vcalendar(make_vevent("u1", dtend=None))).events[0]
        assert ev.end - ev.start == timedelta(hours=1)

    def test_exdate_comma_list(self):
        vevent = make_vevent(
            "u1",
            extra=(
                "RRULE:FREQ=DAILY;COUNT=5",
                "EXDATE:20260302T100000Z,20260303T100000Z",
            ),
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.exdates == [
            datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc),
            datetime(2026, 3, 3, 10, 0, tzinfo=timezone.utc),
        ]


# ---------------------------------------------------------------------------
# Alarms
# ---------------------------------------------------------------------------


class TestAlarms:
    def test_relative_trigger(self):
        vevent = make_vevent("u1", extra=make_valarm("TRIGGER:-PT15M"))
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert len(ev.alarms) == 1
        assert ev.alarms[0].trigger == RelativeTrigger(timedelta(minutes=-15))
        assert ev.reminder_minutes() == [15]

    def test_related_param_does_not_break_trigger(self):
        vevent = make_vevent("u1", extra=make_valarm("TRIGGER;RELATED=START:-PT1H"))
        assert decode(wrap_vcalendar(vevent)).events[0].reminder_minutes() == [60]

    def test_absolute_trigger_converted_to_minutes(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART:20250301T093000Z",
            dtend="DTEND:20250301T103000Z",
            extra=make_valarm("TRIGGER;VALUE=DATE-TIME:20250301T090000Z"),
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert isinstance(ev.alarms[0].trigger, AbsoluteTrigger)
        assert ev.reminder_minutes() == [30]

    def test_absolute_trigger_without_seconds(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART:20250301T093000Z",
            dtend="DTEND:20250301T103000Z",
            extra=make_valarm("TRIGGER;VALUE=DATE-TIME:20250301T0915Z"),
        )
        assert decode(wrap_vcalendar(vevent)).events[0].reminder_minutes() == [15]

    def test_absolute_local_trigger_uses_event_zone(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART;TZID=Europe/Amsterdam:20250301T093000",
            dtend="DTEND;TZID=Europe/Amsterdam:20250301T103000",
            extra=make_valarm("TRIGGER;VALUE=DATE-TIME:20250301T090000"),
        )
        assert decode(wrap_vcalendar(vevent)).events[0].reminder_minutes() == [30]

    def test_absolute_trigger_after_start_dropped(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART:20250301T093000Z",
            dtend="DTEND:20250301T103000Z",
            extra=make_valarm("TRIGGER;VALUE=DATE-TIME:20250301T094500Z"),
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.alarms == []
        assert ev.reminder_minutes() == []

    def test_zero_duration_dropped(self):
        vevent = make_vevent("u1", extra=make_valarm("TRIGGER:PT0S"))
        assert decode(wrap_vcalendar(vevent)).events[0].alarms == []

    def test_multiple_alarms_in_order(self):
        extra = make_valarm("TRIGGER:-PT10M") + make_valarm("TRIGGER:-P1D")
        ev = decode(wrap_vcalendar(make_vevent("u1", extra=extra))).events[0]
        assert ev.reminder_minutes() == [10, 1440]

    def test_alarm_description_does_not_overwrite_event(self):
        vevent = make_vevent(
            "u1", extra=("DESCRIPTION:Event body",) + make_valarm("TRIGGER:-PT5M")
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.description == "Event body"
        assert ev.alarms[0].description == "Reminder"

    def test_last_successful_trigger_wins(self):
        extra = (
            "BEGIN:VALARM",
            "ACTION:DISPLAY",
            "TRIGGER;VALUE=DATE-TIME:20260301T093000Z",
            "TRIGGER:not-a-duration",
            "END:VALARM",
        )
        result = decode(wrap_vcalendar(make_vevent("u1", extra=extra)))
        ev = result.events[0]
        assert ev.reminder_minutes() == [30]
        assert len(result.warnings) == 1
        assert result.warnings[0].property == "TRIGGER"


# ---------------------------------------------------------------------------
# Supplementary properties
# ---------------------------------------------------------------------------


class TestSupplementaryProperties:
    def test_metadata(self):
        vevent = make_vevent(
            "u1",
            extra=(
                "STATUS:tentative",
                "PRIORITY:3",
                "SEQUENCE:2",
                "CATEGORIES:Work,Travel\\, abroad",
                "ATTENDEE;CN=Ann:mailto:ann@example.com",
                "CREATED:20260101T120000Z",
                "LAST-MODIFIED:20260102T120000Z",
            ),
        )
        ev = decode(wrap_vcalendar(vevent)).events[0]
        assert ev.status == "TENTATIVE"
        assert ev.priority == 3
        assert ev.sequence == 2
        assert ev.categories == ["Work", "Travel, abroad"]
        assert ev.attendees == ["ann@example.com"]
        assert ev.created == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert ev.last_modified == datetime(2026, 1, 2, 12, 0, tzinfo=timezone.utc)

    def test_unknown_nested_component_ignored(self):
        """Properties of an unrecognised sub-component do not leak into the event."""
        vevent = make_vevent(
            "u1",
            summary="Real",
            extra=(
                "BEGIN:X-VENDOR",
                "SUMMARY:Inner",
                "BEGIN:X-DEEPER",
                "LOCATION:Nowhere",
                "END:X-DEEPER",
                "DTSTART:20200101T000000Z",
                "END:X-VENDOR",
                "LOCATION:Room 4",
            ),
        )
        result = decode(wrap_vcalendar(vevent))
        (ev,) = result.events
        assert ev.summary == "Real"
        assert ev.location == "Room 4"
        assert ev.start == datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        assert result.warnings == []

    def test_unterminated_nested_component_closed_by_end_vevent(self):
        vevent = make_vevent("u1", extra=("BEGIN:X-VENDOR", "SUMMARY:Inner"))
        second = make_vevent("u2", summary="Second")
        result = decode(wrap_vcalendar(vevent, second))
        assert [ev.summary for ev in result.events] == ["Test Event", "Second"]


# ---------------------------------------------------------------------------
# Soft errors
# ---------------------------------------------------------------------------


class TestSoftErrors:
    def test_malformed_dtend_keeps_event(self):
        vevent = make_vevent("u1", dtend="DTEND:2026-03-01 11:00")
        result = decode(wrap_vcalendar(vevent))
        assert len(result.events) == 1
        assert result.events[0].end - result.events[0].start == timedelta(hours=1)
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.property == "DTEND"
        assert warning.value == "2026-03-01 11:00"
        assert warning.line > 0

    def test_malformed_dtstart_drops_event(self):
        text = wrap_vcalendar(
            make_vevent("bad", dtstart="DTSTART:yesterday"),
            make_vevent("good"),
        )
        result = decode(text)
        assert [e.uid for e in result.events] == ["good"]
        assert {w.property for w in result.warnings} == {"DTSTART", "END"}

    def test_end_before_start_drops_event(self):
        vevent = make_vevent(
            "u1", dtstart="DTSTART:20260301T120000Z", dtend="DTEND:20260301T110000Z"
        )
        result = decode(wrap_vcalendar(vevent))
        assert result.events == []
        assert "dropped" in result.warnings[0].reason

    def test_bad_priority_reported(self):
        result = decode(wrap_vcalendar(make_vevent("u1", extra=("PRIORITY:high",))))
        assert result.events[0].priority == 0
        assert result.warnings[0].property == "PRIORITY"

    def test_unknown_tzid_reported(self):
        vevent = make_vevent(
            "u1",
            dtstart="DTSTART;TZID=Mars/Olympus:20260301T100000",
            dtend="DTEND:20260302T110000Z",
        )
        result = decode(wrap_vcalendar(vevent))
        assert len(result.events) == 1
        assert any("Mars/Olympus" in w.reason for w in result.warnings)

    def test_alarm_without_trigger_reported(self):
        extra = ("BEGIN:VALARM", "ACTION:DISPLAY", "END:VALARM")
        result = decode(wrap_vcalendar(make_vevent("u1", extra=extra)))
        assert result.events[0].alarms == []
        assert result.warnings[0].property == "END"
