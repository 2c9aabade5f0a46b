"""Tests for settings loading and validation."""
import pytest
from pydantic import ValidationError

from common_lib.config import Settings, build_settings
from common_lib.retry_config import FeedRetryPolicy


class TestSettings:
    """Settings defaults, overrides and validation."""

    def test_defaults(self):
        settings = build_settings()

        assert settings.nvd_results_per_page == 2000
        assert settings.nvd_rate_limit_cooldown == 30.0
        assert settings.nvd_rate_limit_max_wait is None
        assert settings.nvd_network_retries == 3
        assert settings.nvd_network_retry_delay == 5.0
        assert settings.sync_window_hours == 24
        assert settings.sync_batch_size == 50
        assert settings.sync_interval_seconds == 86400
        assert settings.sync_error_cooldown_seconds == 300

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("NS_SYNC_BATCH_SIZE", "10")
        monkeypatch.setenv("NS_NVD_API_KEY", "secret")

        settings = Settings()

        assert settings.sync_batch_size == 10
        assert settings.nvd_api_key == "secret"

    def test_cors_origins_comma_separated(self):
        settings = build_settings({"cors_origins": "http://a.test, http://b.test"})
        assert settings.cors_origins == ["http://a.test", "http://b.test"]

    @pytest.mark.parametrize(
        "overrides",
        [
            {"sync_batch_size": 0},
            {"sync_window_hours": -1},
            {"nvd_results_per_page": 0},
            {"nvd_network_retries": -1},
            {"log_format": "xml"},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            build_settings(overrides)

    def test_log_format_normalized(self):
        assert build_settings({"log_format": " JSON "}).log_format == "json"

    def test_retry_policy_from_settings(self):
        settings = build_settings({"nvd_rate_limit_max_wait": 120, "nvd_network_retries": 5})

        policy = FeedRetryPolicy.from_settings(settings)

        assert policy.rate_limit_max_wait == 120
        assert policy.network_retries == 5
        assert policy.rate_limit_cooldown == 30.0
