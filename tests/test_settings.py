"""Tests for settings persistence and overrides."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from bqpreview.services.settings import (
    RateLimitSettings,
    SelectionSettings,
    Settings,
    SettingsStore,
    normalize_settings,
    redact_secret,
    settings_payload,
)


def test_defaults() -> None:
    settings = Settings()

    assert settings.enable_status_bar is True
    assert settings.enable_notifications is False
    assert settings.change_debounce_seconds == 3.0
    assert settings.scan_warning_threshold_bytes == 100 * 1024 * 1024
    assert settings.rate_limits.intervals()["change"] == 10.0
    assert settings.selection == SelectionSettings(0.75, 5, 1.5)


def test_missing_file_loads_defaults(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")

    assert store.load() == normalize_settings(Settings())


def test_save_and_load_round_trip_without_token(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    store = SettingsStore(path)
    settings = Settings(
        project_id="demo",
        access_token="super-secret",
        track_dry_runs=True,
        rate_limits=RateLimitSettings(manual_seconds=2.0),
    )

    store.save(settings)
    raw = json.loads(path.read_text(encoding="utf-8"))
    loaded = store.load()

    assert "access_token" not in raw
    assert raw["version"] == 1
    assert loaded.project_id == "demo"
    assert loaded.access_token == ""
    assert loaded.track_dry_runs is True
    assert loaded.rate_limits.manual_seconds == 2.0


def test_invalid_json_falls_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")

    assert SettingsStore(path).load().project_id == ""


def test_unknown_keys_and_malformed_groups_are_ignored(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(
        json.dumps({"version": 1, "project_id": "p", "bogus": 1, "selection": {"nope": 2}}),
        encoding="utf-8",
    )

    settings = SettingsStore(path).load()

    assert settings.project_id == "p"
    assert settings.selection == SelectionSettings()


def test_environment_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BQPREVIEW_PROJECT_ID", "env-project")
    monkeypatch.setenv("BQPREVIEW_ACCESS_TOKEN", "env-token")
    monkeypatch.setenv("BQPREVIEW_TRACK_DRY_RUNS", "yes")
    monkeypatch.setenv("BQPREVIEW_SCAN_WARNING_THRESHOLD_MB", "250")
    monkeypatch.setenv("BQPREVIEW_REQUEST_TIMEOUT", "not-a-number")

    settings = SettingsStore(tmp_path / "settings.json").load()

    assert settings.project_id == "env-project"
    assert settings.access_token == "env-token"
    assert settings.track_dry_runs is True
    assert settings.scan_warning_threshold_mb == 250.0
    assert settings.request_timeout == 30.0


def test_runtime_overrides_merge_nested_groups(tmp_path: Path) -> None:
    store = SettingsStore(tmp_path / "settings.json")

    settings = store.load(overrides={"selection": {"max_triggers": 3}, "location": "EU"})

    assert settings.selection.max_triggers == 3
    assert settings.selection.stabilize_seconds == 0.75
    assert settings.location == "EU"


@pytest.mark.parametrize(
    ("configured", "expected"),
    [(0.2, 1.0), (3.0, 3.0), (60.0, 15.0)],
)
def test_change_debounce_is_clamped(configured: float, expected: float) -> None:
    assert normalize_settings(Settings(change_debounce_seconds=configured)).change_debounce_seconds == expected


def test_normalize_lowercases_languages_and_suffixes() -> None:
    settings = normalize_settings(Settings(eligible_languages=["SQL"], eligible_extensions=["BQ", ".Sql"]))

    assert settings.eligible_languages == ["sql"]
    assert settings.eligible_extensions == [".bq", ".sql"]


def test_scan_warning_threshold_disabled() -> None:
    assert Settings(show_scan_warnings=False).scan_warning_threshold_bytes is None


def test_channel_check() -> None:
    assert Settings(enable_status_bar=False, enable_notifications=True).any_channel_enabled is True
    assert Settings(enable_status_bar=False, enable_notifications=False).any_channel_enabled is False


def test_payload_redacts_token() -> None:
    payload = settings_payload(Settings(access_token="ya29.abcdef"))

    assert payload["access_token"] == "ya*******ef"
    assert settings_payload(Settings(access_token="abc"), include_secrets=True)["access_token"] == "abc"
    assert redact_secret("") == ""
    assert redact_secret("abcd") == "****"
