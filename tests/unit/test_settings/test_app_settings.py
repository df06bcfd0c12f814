"""Unit tests for environment settings."""

from pathlib import Path

import pytest

from databinder.fetch.models import RetryPolicy
from databinder.settings import AppSettings, get_settings


class TestAppSettings:
    """Tests for AppSettings."""

    @pytest.mark.unit
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        """Without environment overrides the library defaults apply."""
        monkeypatch.chdir(tmp_path)

        settings = get_settings()

        assert settings.log_level == "INFO"
        assert settings.json_logs is True
        assert settings.default_batch_size == 100
        assert settings.retry_policy() == RetryPolicy()

    @pytest.mark.unit
    def test_environment_overrides(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """DATABINDER_ variables override the defaults."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABINDER_DEFAULT_BATCH_SIZE", "25")
        monkeypatch.setenv("DATABINDER_RETRY_MAX_RETRIES", "5")
        monkeypatch.setenv("DATABINDER_RETRY_JITTER_FACTOR", "0")
        monkeypatch.setenv("DATABINDER_JSON_LOGS", "false")

        settings = AppSettings()
        policy = settings.retry_policy()

        assert settings.default_batch_size == 25
        assert settings.json_logs is False
        assert policy.max_retries == 5
        assert policy.jitter_factor == 0.0

    @pytest.mark.unit
    def test_invalid_value_rejected(
        self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """Out-of-range values fail validation."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("DATABINDER_DEFAULT_BATCH_SIZE", "0")

        with pytest.raises(ValueError):
            AppSettings()
