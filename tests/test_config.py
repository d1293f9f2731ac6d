"""Tests for settings loading."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from rpm_billing.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings()

        assert settings.report_max_concurrency == 8
        assert settings.default_timezone == "UTC"
        assert settings.has_api_key is False

    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("RPM_BILLING_REPORT_MAX_CONCURRENCY", "3")
        monkeypatch.setenv("RPM_BILLING_API_KEY", "k")

        settings = Settings()

        assert settings.report_max_concurrency == 3
        assert settings.has_api_key is True

    def test_comma_separated_origins(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("RPM_BILLING_CORS_ORIGINS", "https://a.example, https://b.example")

        assert Settings().cors_origins == ["https://a.example", "https://b.example"]

    def test_json_origins(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("RPM_BILLING_CORS_ORIGINS", '["https://a.example"]')

        assert Settings().cors_origins == ["https://a.example"]

    def test_unknown_timezone_rejected(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("RPM_BILLING_DEFAULT_TIMEZONE", "Atlantis/Central")

        with pytest.raises(PydanticValidationError):
            Settings()

    def test_concurrency_must_be_positive(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("RPM_BILLING_REPORT_MAX_CONCURRENCY", "0")

        with pytest.raises(PydanticValidationError):
            Settings()
