"""
Google Fit sleep source.

Reads sleep sessions (activity type 72) from the Fitness REST API and sums
their segments into per-stage hours. Sessions can also be written back,
for manual entries.

All requests go through a :class:`TokenClient`, which spaces them out and
keeps the access token fresh.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger

from sleepsync.core.auth.token_client import TokenClient
from sleepsync.core.exceptions import DataProcessingError

from ..models import RawSleepRecord
from ..source import BaseSource

FITNESS_API = "https://www.googleapis.com/fitness/v1/users/me"
SLEEP_ACTIVITY_TYPE = 72
APPLICATION_PACKAGE = "sleepsync"

# Google sleep stage codes: 1 awake, 2 sleep, 3 out-of-bed, 4 light, 5 deep, 6 REM.
STAGE_CODES = {4: "light", 5: "deep", 6: "rem"}
STAGE_NAMES = ("deep", "light", "rem")


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, timezone.utc).isoformat().replace("+00:00", "Z")


def stage_name(value: Any) -> str | None:
    """``"deep"`` / ``5`` / ``"5"`` -> ``"deep"``; None for stages not tracked."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in STAGE_NAMES:
            return lowered
        if lowered.isdigit():
            return STAGE_CODES.get(int(lowered))
        return None
    if isinstance(value, int):
        return STAGE_CODES.get(value)
    return None


def session_to_record(session: dict[str, Any], source: str = "google_fit") -> RawSleepRecord:
    """Build a record from a Fit session resource."""
    try:
        start_ms = int(session["startTimeMillis"])
        end_ms = int(session["endTimeMillis"])
    except (KeyError, TypeError, ValueError) as e:
        raise DataProcessingError(f"Malformed Google Fit session: {session!r}") from e

    stage_hours: dict[str, float] = {}
    for segment in session.get("sleepSegments") or []:
        name = stage_name(segment.get("sleepStage"))
        if name is None:
            continue
        try:
            hours = (int(segment["endTimeMillis"]) - int(segment["startTimeMillis"])) / 3_600_000
        except (KeyError, TypeError, ValueError) as e:
            raise DataProcessingError(f"Malformed Google Fit sleep segment: {segment!r}") from e
        stage_hours[name] = stage_hours.get(name, 0.0) + hours
    if session.get("sleepSegments"):
        for name in STAGE_NAMES:
            stage_hours.setdefault(name, 0.0)

    quality = session.get("sleepQuality")
    return RawSleepRecord(
        start_time=start_ms // 1000,
        end_time=end_ms // 1000,
        sleep_duration_hours=(end_ms - start_ms) / 3_600_000,
        stage_hours=stage_hours,
        description=session.get("description") or None,
        sleep_quality=float(quality) if quality else None,
        source=source,
    )


class GoogleFitSource(BaseSource):
    """Sleep sessions from the Google Fit REST API."""

    name = "google_fit"

    def __init__(self, client: TokenClient, **config: Any):
        super().__init__(**config)
        self.client = client

    def get_config_schema(self) -> dict[str, Any]:
        return {
            "google.client_id": {"type": "string", "required": True, "secret": True},
            "google.client_secret": {"type": "string", "required": True, "secret": True},
        }

    async def _sessions(self, start_ts: float, end_ts: float) -> list[dict[str, Any]]:
        self.stats["api_calls"] += 1
        try:
            data = await self.client.request_json(
                "GET",
                f"{FITNESS_API}/sessions",
                query={
                    "startTime": _iso(start_ts),
                    "endTime": _iso(end_ts),
                    "activityType": SLEEP_ACTIVITY_TYPE,
                },
            )
        except Exception:
            self.stats["errors"] += 1
            raise
        return list(data.get("session") or []) if isinstance(data, dict) else []

    async def fetch_events(self, window_start: datetime, window_end: datetime) -> list[RawSleepRecord]:
        sessions = await self._sessions(window_start.timestamp(), window_end.timestamp())
        records = [session_to_record(s, source=self.name) for s in sessions]
        records.sort(key=lambda r: r.start_time)
        self.stats["records"] += len(records)
        logger.debug(f"Google Fit returned {len(records)} sleep sessions")
        return records

    async def latest_record(self) -> RawSleepRecord | None:
        """Most recent session that started within the past day."""
        now = self.client.clock.now()
        sessions = await self._sessions((now - timedelta(days=1)).timestamp(), now.timestamp())
        if not sessions:
            return None
        latest = max(sessions, key=lambda s: int(s.get("startTimeMillis", 0)))
        return session_to_record(latest, source=self.name)

    async def add_sleep_session(
        self,
        start_time: float,
        end_time: float,
        sleep_quality: float | None = None,
        segments: list[tuple[str, float, float]] | None = None,
    ) -> dict[str, Any]:
        """Write a sleep session; ``segments`` are ``(stage, start, end)`` in epoch seconds."""
        if end_time <= start_time:
            raise ValueError("Sleep session must end after it starts")

        start_ms = int(start_time * 1000)
        end_ms = int(end_time * 1000)
        session_id = f"{APPLICATION_PACKAGE}-{start_ms}-{end_ms}"
        session: dict[str, Any] = {
            "id": session_id,
            "activityType": SLEEP_ACTIVITY_TYPE,
            "startTimeMillis": start_ms,
            "endTimeMillis": end_ms,
            "name": "Sleep session",
            "description": "Sleep session recorded via sleepsync",
            "application": {"packageName": APPLICATION_PACKAGE},
        }
        if sleep_quality is not None:
            session["sleepQuality"] = sleep_quality
        if segments:
            session["sleepSegments"] = [
                {"sleepStage": stage, "startTimeMillis": int(s * 1000), "endTimeMillis": int(e * 1000)}
                for stage, s, e in segments
            ]

        self.stats["api_calls"] += 1
        response = await self.client.request_json("PUT", f"{FITNESS_API}/sessions/{session_id}", payload=session)
        logger.info(f"Wrote Google Fit sleep session {session_id}")
        return response if isinstance(response, dict) else {}
