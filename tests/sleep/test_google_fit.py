"""Tests for the Google Fit source."""

from datetime import UTC, datetime

import pytest

from sleepsync.core.exceptions import DataProcessingError
from sleepsync.sleep.plugins.google_fit import (
    FITNESS_API,
    SLEEP_ACTIVITY_TYPE,
    GoogleFitSource,
    session_to_record,
    stage_name,
)

HOUR_MS = 3_600_000
START_MS = int(datetime(2024, 3, 14, 23, 0, tzinfo=UTC).timestamp() * 1000)


def session(start_ms=START_MS, hours=8, segments=None, quality=None):
    data = {"startTimeMillis": str(start_ms), "endTimeMillis": str(start_ms + hours * HOUR_MS)}
    if segments is not None:
        data["sleepSegments"] = segments
    if quality is not None:
        data["sleepQuality"] = quality
    return data


class FakeClient:
    """Stands in for TokenClient.request_json."""

    def __init__(self, clock, response=None, error=None):
        self.clock = clock
        self.response = response if response is not None else {}
        self.error = error
        self.calls = []

    async def request_json(self, method, url, *, query=None, payload=None):
        self.calls.append({"method": method, "url": url, "query": query, "payload": payload})
        if self.error:
            raise self.error
        return self.response


@pytest.mark.smoke
class TestSessionToRecord:
    def test_stage_names(self):
        assert stage_name("deep") == "deep"
        assert stage_name(5) == "deep"
        assert stage_name("4") == "light"
        assert stage_name(1) is None
        assert stage_name(None) is None

    def test_segments_summed_per_stage(self):
        segments = [
            {"sleepStage": 4, "startTimeMillis": START_MS, "endTimeMillis": START_MS + 2 * HOUR_MS},
            {"sleepStage": 5, "startTimeMillis": START_MS + 2 * HOUR_MS, "endTimeMillis": START_MS + 3 * HOUR_MS},
            {"sleepStage": "light", "startTimeMillis": START_MS + 3 * HOUR_MS, "endTimeMillis": START_MS + 4 * HOUR_MS},
            {"sleepStage": 1, "startTimeMillis": START_MS + 4 * HOUR_MS, "endTimeMillis": START_MS + 5 * HOUR_MS},
        ]
        record = session_to_record(session(segments=segments, quality=80))
        assert record.stage_hours == {"light": 3.0, "deep": 1.0, "rem": 0.0}
        assert record.sleep_duration_hours == 8.0
        assert record.sleep_quality == 80.0
        assert record.start_time == START_MS // 1000

    def test_no_segments(self):
        assert session_to_record(session()).stage_hours == {}

    def test_malformed(self):
        with pytest.raises(DataProcessingError):
            session_to_record({"startTimeMillis": "x"})

    def test_segment_without_times(self):
        with pytest.raises(DataProcessingError, match="segment"):
            session_to_record(session(segments=[{"sleepStage": 5, "startTimeMillis": START_MS}]))


class TestGoogleFitSource:
    @pytest.mark.asyncio
    async def test_fetch_events(self, clock):
        client = FakeClient(clock, {"session": [session(START_MS + 24 * HOUR_MS), session()]})
        source = GoogleFitSource(client)
        records = await source.fetch_events(
            datetime(2024, 3, 14, tzinfo=UTC), datetime(2024, 3, 16, tzinfo=UTC)
        )
        assert [r.start_time for r in records] == sorted(r.start_time for r in records)
        call = client.calls[0]
        assert call["url"] == f"{FITNESS_API}/sessions"
        assert call["query"]["activityType"] == SLEEP_ACTIVITY_TYPE
        assert call["query"]["startTime"] == "2024-03-14T00:00:00Z"

    @pytest.mark.asyncio
    async def test_fetch_empty(self, clock):
        assert await GoogleFitSource(FakeClient(clock, {})).fetch_events(clock.now(), clock.now()) == []

    @pytest.mark.asyncio
    async def test_errors_propagate(self, clock):
        source = GoogleFitSource(FakeClient(clock, error=RuntimeError("boom")))
        with pytest.raises(RuntimeError):
            await source.fetch_events(clock.now(), clock.now())
        assert source.stats["errors"] == 1

    @pytest.mark.asyncio
    async def test_latest_record_looks_back_one_day(self, clock):
        client = FakeClient(clock, {"session": [session(), session(START_MS - 2 * HOUR_MS, hours=1)]})
        latest = await GoogleFitSource(client).latest_record()
        assert latest.start_time == START_MS // 1000
        assert client.calls[0]["query"]["startTime"] == "2024-03-14T08:00:00Z"

    @pytest.mark.asyncio
    async def test_add_sleep_session(self, clock):
        client = FakeClient(clock, {"id": "ok"})
        start = START_MS / 1000
        end = start + 8 * 3600
        result = await GoogleFitSource(client).add_sleep_session(start, end, 85, [("deep", start, start + 3600)])
        call = client.calls[0]
        assert result == {"id": "ok"}
        assert call["method"] == "PUT"
        assert call["url"].endswith(f"/sessions/sleepsync-{START_MS}-{START_MS + 8 * HOUR_MS}")
        assert call["payload"]["activityType"] == SLEEP_ACTIVITY_TYPE
        assert call["payload"]["sleepQuality"] == 85
        assert call["payload"]["sleepSegments"][0]["endTimeMillis"] == START_MS + HOUR_MS

    @pytest.mark.asyncio
    async def test_add_sleep_session_rejects_reversed(self, clock):
        with pytest.raises(ValueError):
            await GoogleFitSource(FakeClient(clock)).add_sleep_session(100, 50)
