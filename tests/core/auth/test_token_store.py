"""Tests for the on-disk token file."""

import os
import stat

from sleepsync.core.auth import OAuthToken, TokenStore


class TestTokenStore:
    def test_save_and_load(self, tmp_path):
        store = TokenStore(tmp_path / "data" / "google_token.yaml")
        store.save(OAuthToken("a", "r", 123))
        assert stat.S_IMODE(os.stat(store.path).st_mode) == 0o600
        assert store.load() == OAuthToken("a", "r", 123)

    def test_missing_file(self, tmp_path):
        assert TokenStore(tmp_path / "none.yaml").load() is None

    def test_token_without_refresh_is_ignored(self, tmp_path):
        path = tmp_path / "token.yaml"
        path.write_text("access_token: a\nexpiry: 1\n")
        assert TokenStore(path).load() is None

    def test_saving_cleared_token_removes_file(self, tmp_path):
        store = TokenStore(tmp_path / "token.yaml")
        store.save(OAuthToken("a", "r", 1))
        store.save(OAuthToken())
        assert not store.path.exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "token.yaml"
        path.write_text("access_token: [unclosed")
        assert TokenStore(path).load() is None
