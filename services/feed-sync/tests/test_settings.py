"""Tests for environment-driven engine settings."""

import pytest

from feedsync.exceptions import ConfigurationError
from feedsync.settings import EngineSettings


class TestEngineSettings:
    """Tests for EngineSettings.from_env."""

    def test_defaults(self, monkeypatch):
        for name in ("SYNC_MAX_ATTEMPTS", "SYNC_BACKOFF_BASE_SECONDS", "FEED_BUCKET", "FIELD_CATALOG_VERSION"):
            monkeypatch.delenv(name, raising=False)

        settings = EngineSettings.from_env()

        assert settings.max_attempts == 3
        assert settings.backoff_base_seconds == 5.0
        assert settings.heartbeat_timeout_seconds == 300.0
        assert settings.feed_bucket is None
        assert settings.field_catalog_version is None

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("SYNC_MAX_ATTEMPTS", "5")
        monkeypatch.setenv("SYNC_BACKOFF_BASE_SECONDS", "0.5")
        monkeypatch.setenv("FEED_BUCKET", "feeds")
        monkeypatch.setenv("TITLE_MAX_LENGTH", "100")

        settings = EngineSettings.from_env()

        assert settings.max_attempts == 5
        assert settings.backoff_base_seconds == 0.5
        assert settings.feed_bucket == "feeds"
        assert settings.title_max_length == 100

    def test_bad_number(self, monkeypatch):
        monkeypatch.setenv("SYNC_WORKER_COUNT", "many")

        with pytest.raises(ConfigurationError) as exc_info:
            EngineSettings.from_env()

        assert exc_info.value.config_key == "SYNC_WORKER_COUNT"

    def test_zero_attempts_rejected(self, monkeypatch):
        monkeypatch.setenv("SYNC_MAX_ATTEMPTS", "0")
        with pytest.raises(ConfigurationError):
            EngineSettings.from_env()
