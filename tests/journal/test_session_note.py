"""Tests for the per-night sleep note."""

import pytest
import yaml

from sleepsync.journal.session_note import (
    SessionNoteWriter,
    render_session_note,
    session_note_path,
    split_hours,
)
from sleepsync.sleep.models import RawSleepRecord


@pytest.fixture
def record(epoch):
    return RawSleepRecord(
        start_time=epoch(2024, 3, 14, 23, 30),
        end_time=epoch(2024, 3, 15, 7, 0),
        sleep_duration_hours=7.5,
        stage_hours={"deep": 3.0, "light": 4.5},
        deep_sleep_percent=40.0,
        cycles=5,
        efficiency=0.4,
        comment="Woke up once",
        graph="▁▂▃",
    )


def frontmatter(content: str) -> dict:
    return yaml.safe_load(content.split("---\n")[1])


@pytest.mark.smoke
class TestHelpers:
    def test_split_hours(self):
        assert split_hours(7.51) == (7, 31)
        assert split_hours(7.999) == (8, 0)
        assert split_hours(0) == (0, 0)

    def test_path_uses_start_date(self, record, clock):
        assert session_note_path(record, clock) == "Sleep/2024/2024-03/2024-03-14_Sleep.md"


class TestRender:
    def test_frontmatter(self, record, clock):
        data = frontmatter(render_session_note(record, clock))

        assert data["type"] == "sleep"
        assert data["date"] == "2024-03-14"
        assert data["sleepStartTime"] == "23:30"
        assert data["sleepEndTime"] == "07:00"
        assert data["sleepDuration"] == "7:30"
        assert data["sleepDeepPercent"] == "40.0"
        assert data["sleepCycles"] == 5
        assert data["sleepEfficiency"] == "40.0"
        assert data["sleepNoiseLevel"] == "N/A"
        assert data["sleepLocation"] == "N/A"

    def test_body(self, record, clock):
        content = render_session_note(record, clock)

        assert "# Sleep Record for 2024-03-14" in content
        assert "⏱️ Total time in bed: 7h 30m" in content
        assert "🌑 Deep Sleep:  40.0% (180m)" in content
        assert "🌓 Light Sleep: 60.0% (270m)" in content
        assert "```\n▁▂▃\n```" in content
        assert content.endswith("## Notes\nWoke up once\n")

    def test_without_stages(self, clock, epoch):
        bare = RawSleepRecord(start_time=epoch(2024, 3, 14, 23, 0), end_time=epoch(2024, 3, 15, 6, 0))
        content = render_session_note(bare, clock)

        assert "No detailed sleep stage data available." in content
        assert frontmatter(content)["sleepDuration"] == "7:00"


class TestSessionNoteWriter:
    async def test_create_once(self, record, clock, memory_store):
        writer = SessionNoteWriter(memory_store, clock)

        path, created = await writer.create(record)
        first = memory_store.files[path]
        again = await writer.create(record)

        assert created
        assert again == (path, False)
        assert memory_store.files[path] == first
        assert memory_store.count("create", path) == 1
        assert {"Sleep", "Sleep/2024", "Sleep/2024/2024-03"} <= memory_store.folders
