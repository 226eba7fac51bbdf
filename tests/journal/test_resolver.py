"""Tests for document path resolution."""

from datetime import date

import pytest

from sleepsync.journal.config import CategoryConfig
from sleepsync.journal.resolver import DocumentResolver, join_path, with_markdown_suffix

RUNNING_LOG = CategoryConfig(name="running_log", folder="Sleep", subfolder="", name_format="sleep-tracking", per_day=False)


@pytest.mark.smoke
class TestDocumentResolver:
    def test_journal_path(self, clock):
        assert DocumentResolver(clock).resolve("2024-03-15", CategoryConfig()) == "Journal/2024/2024-03/2024-03-15_Fri.md"

    def test_accepts_dates(self, clock):
        assert DocumentResolver(clock).resolve(date(2024, 1, 1), CategoryConfig()) == "Journal/2024/2024-01/2024-01-01_Mon.md"

    def test_no_subfolder(self, clock):
        category = CategoryConfig(folder="Daily", subfolder="", name_format="YYYY-MM-DD")
        assert DocumentResolver(clock).resolve("2024-03-15", category) == "Daily/2024-03-15.md"

    def test_bracketed_literals(self, clock):
        category = CategoryConfig(folder="Notes", subfolder="[Week] YYYY", name_format="[Sleep] MMM D")
        assert DocumentResolver(clock).resolve("2024-03-15", category) == "Notes/Week 2024/Sleep Mar 15.md"

    def test_running_log_ignores_date(self, clock):
        resolver = DocumentResolver(clock)
        assert resolver.resolve("2024-03-14", RUNNING_LOG) == "Sleep/sleep-tracking.md"
        assert resolver.resolve("2025-01-01", RUNNING_LOG) == "Sleep/sleep-tracking.md"

    def test_title(self, clock):
        assert DocumentResolver(clock).title("2024-03-15", CategoryConfig()) == "2024-03-15_Fri"


@pytest.mark.smoke
class TestPathHelpers:
    def test_join_path(self):
        assert join_path("/Journal/", "", "2024/", "a.md") == "Journal/2024/a.md"
        assert join_path("", "a.md") == "a.md"

    def test_markdown_suffix(self):
        assert with_markdown_suffix("a") == "a.md"
        assert with_markdown_suffix("a.md") == "a.md"
