"""Tests for the exception hierarchy."""

import pytest

from sleepsync.core.exceptions import (
    APIError,
    AuthenticationError,
    MaterializationError,
    NoSleepDataError,
    RateLimitError,
    SleepSyncError,
    StorageContentionError,
    TemplateNotSettledError,
)
from sleepsync.core.storage import StorageError, StorageKeyError


@pytest.mark.smoke
class TestHierarchy:
    @pytest.mark.parametrize(
        "cls",
        [APIError, RateLimitError, AuthenticationError, NoSleepDataError, MaterializationError, StorageError],
    )
    def test_all_derive_from_base(self, cls):
        assert issubclass(cls, SleepSyncError)

    def test_materialization_errors_carry_state(self):
        err = TemplateNotSettledError("still {{date}}", state="awaiting_template_settle", path="a.md")
        assert isinstance(err, MaterializationError)
        assert err.state == "awaiting_template_settle"
        assert err.path == "a.md"
        assert issubclass(StorageContentionError, MaterializationError)

    def test_rate_limit_is_api_error_with_status(self):
        err = RateLimitError("slow down", status=429)
        assert isinstance(err, APIError)
        assert err.status == 429

    def test_storage_key_error_message(self):
        err = StorageKeyError("Document not found: a.md")
        assert isinstance(err, KeyError)
        assert str(err) == "Document not found: a.md"
