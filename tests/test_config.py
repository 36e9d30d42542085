# tests/test_config.py
"""
Tests for application settings.
"""
import pytest
from pydantic import ValidationError

from microdock.config import Settings


def test_cors_origins_from_comma_separated_string():
    assert Settings(CORS_ORIGINS="http://a.test, http://b.test").CORS_ORIGINS == ["http://a.test", "http://b.test"]
    assert Settings(CORS_ORIGINS=" ").CORS_ORIGINS == ["*"]


def test_view_mode_must_be_known():
    assert Settings(VIEW_MODE="local").VIEW_MODE == "local"
    with pytest.raises(ValidationError):
        Settings(VIEW_MODE="kubernetes")


def test_settings_read_upper_case_environment(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("VIEW_MODE", "local")
    monkeypatch.setenv("poll_interval_seconds", "1")

    settings = Settings()

    assert settings.VIEW_MODE == "local"
    assert settings.POLL_INTERVAL_SECONDS == 10.0
    assert Settings.model_config["env_file"] == ".env"
