"""Tests for record normalization and duration arithmetic."""

from datetime import date

import pytest

from sleepsync.sleep.models import DateWindow, EventKind, RawSleepRecord
from sleepsync.sleep.normalizer import EventNormalizer, compute_duration_hours, record_measurements, round_half_up

WINDOW = DateWindow(date(2024, 3, 14), date(2024, 3, 15))


@pytest.mark.smoke
class TestDuration:
    @pytest.mark.parametrize(
        "sleep, wake, hours",
        [
            ("23:30", "07:00", 7.5),
            ("13:00", "13:45", 0.8),
            ("22:00", "22:00", 0.0),
            ("00:10", "08:40", 8.5),
            ("23:59", "00:05", 0.1),
        ],
    )
    def test_compute_duration_hours(self, sleep, wake, hours):
        assert compute_duration_hours(sleep, wake) == hours

    def test_round_half_up(self):
        assert round_half_up(0.25) == 0.3
        assert round_half_up(0.35) == 0.4
        assert round_half_up(7.533333) == 7.5


class TestEventNormalizer:
    def test_overnight_record(self, clock, epoch):
        record = RawSleepRecord(epoch(2024, 3, 14, 23, 30), epoch(2024, 3, 15, 7, 0), 7.5, source="calendar")
        sleep, wake = EventNormalizer(clock, user_id="ana").normalize(record, WINDOW)

        assert (sleep.kind, sleep.date, sleep.time, sleep.duration_hours) == (EventKind.SLEEP, "2024-03-14", "23:30", None)
        assert (wake.kind, wake.date, wake.time, wake.duration_hours) == (EventKind.WAKE, "2024-03-15", "07:00", 7.5)
        assert wake.user_id == "ana"
        assert wake.source == "calendar"
        assert wake.measurements["Total Sleep"] == 7.5

    def test_endpoint_outside_window_is_dropped(self, clock, epoch):
        record = RawSleepRecord(epoch(2024, 3, 13, 23, 0), epoch(2024, 3, 14, 6, 0), 7.0)
        events = EventNormalizer(clock).normalize(record, DateWindow(date(2024, 3, 14), date(2024, 3, 14)))
        assert [e.kind for e in events] == [EventKind.WAKE]

    def test_record_outside_window(self, clock, epoch):
        record = RawSleepRecord(epoch(2024, 3, 1, 23, 0), epoch(2024, 3, 2, 6, 0))
        assert EventNormalizer(clock).normalize(record, WINDOW) == []

    def test_unknown_duration_stays_unknown(self, clock, epoch):
        record = RawSleepRecord(epoch(2024, 3, 15, 13, 0), epoch(2024, 3, 15, 13, 45))
        _, wake = EventNormalizer(clock).normalize(record, WINDOW)
        assert wake.duration_hours is None

    def test_normalize_all(self, clock, epoch):
        records = [
            RawSleepRecord(epoch(2024, 3, 14, 23, 30), epoch(2024, 3, 15, 7, 0), 7.5),
            RawSleepRecord(epoch(2024, 3, 15, 13, 0), epoch(2024, 3, 15, 13, 45), 0.75),
        ]
        events = EventNormalizer(clock).normalize_all(records, WINDOW)
        assert len(events) == 4
        assert events[-1].duration_hours == 0.8


@pytest.mark.smoke
class TestRecordMeasurements:
    def test_stage_hours(self):
        record = RawSleepRecord(0, 1, stage_hours={"deep": 1.26, "light": 4.0, "rem": 1.55}, sleep_quality=82.0)
        assert record_measurements(record, 7.0) == {
            "Total Sleep": 7.0,
            "Deep Sleep": 1.3,
            "Light Sleep": 4.0,
            "REM Sleep": 1.6,
            "Sleep Quality": 82.0,
        }

    def test_deep_from_percent(self):
        record = RawSleepRecord(0, 1, deep_sleep_percent=40.0)
        assert record_measurements(record, 7.5)["Deep Sleep"] == 3.0

    def test_nothing_known(self):
        assert record_measurements(RawSleepRecord(0, 1), None) == {}
