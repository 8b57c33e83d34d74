"""Tests for settings and runtime overrides."""

from zoneinfo import ZoneInfo

import pytest

from claimflow.config import (
    Settings,
    apply_overrides,
    get_current_overrides,
    load_overrides,
    save_overrides,
    settings,
)


def test_get_timezone_explicit():
    assert settings.get_timezone() == ZoneInfo("UTC")


def test_get_timezone_auto_prefers_tz_env(monkeypatch):
    monkeypatch.setattr(settings, "timezone", "auto")
    monkeypatch.setenv("TZ", "America/Denver")
    assert settings.get_timezone() == ZoneInfo("America/Denver")


@pytest.mark.parametrize("tz_env", [":/etc/localtime", "Nowhere/Special", "../etc/passwd"])
def test_get_timezone_auto_ignores_unknown_tz_env(monkeypatch, tz_env):
    monkeypatch.setattr(settings, "timezone", "auto")
    monkeypatch.setenv("TZ", tz_env)
    assert isinstance(settings.get_timezone(), ZoneInfo)


def test_get_timezone_unknown_explicit_falls_back_to_utc(monkeypatch, log_messages):
    monkeypatch.setattr(settings, "timezone", "Mars/Olympus")
    assert settings.get_timezone() == ZoneInfo("UTC")
    assert any(level == "WARNING" and "Mars/Olympus" in msg for level, msg in log_messages)


def test_empty_log_level_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "")
    assert Settings().log_level == "DEBUG"


def test_db_path_under_data_dir():
    assert settings.db_path == settings.data_dir / "automations.sqlite"


def test_apply_overrides_ignores_immutable_fields():
    original_port = settings.api_port
    apply_overrides({"timezone": "Europe/Berlin", "api_port": 9999})

    assert settings.timezone == "Europe/Berlin"
    assert settings.api_port == original_port


def test_overrides_round_trip_through_file():
    assert get_current_overrides() == {}

    save_overrides({"timezone": "America/Phoenix"})
    load_overrides()

    assert settings.timezone == "America/Phoenix"
