"""Settings dataclasses and persistence helpers."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from ..utils.formatters import megabytes_to_bytes

__all__ = [
    "Settings",
    "SettingsStore",
    "RateLimitSettings",
    "SelectionSettings",
    "SaveCloseSettings",
    "CHANGE_DEBOUNCE_RANGE",
    "normalize_settings",
    "redact_secret",
    "settings_payload",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".bqpreview"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_SECRET_FIELDS = frozenset({"access_token"})
_ENV_OVERRIDES: Mapping[str, str] = {
    "BQPREVIEW_PROJECT_ID": "project_id",
    "BQPREVIEW_LOCATION": "location",
    "BQPREVIEW_ACCESS_TOKEN": "access_token",
    "BQPREVIEW_API_BASE_URL": "api_base_url",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "BQPREVIEW_DEBUG_LOGGING": "debug_logging",
    "BQPREVIEW_TRACK_DRY_RUNS": "track_dry_runs",
    "BQPREVIEW_ENABLE_STATUS_BAR": "enable_status_bar",
    "BQPREVIEW_ENABLE_NOTIFICATIONS": "enable_notifications",
    "BQPREVIEW_SHOW_SCAN_WARNINGS": "show_scan_warnings",
}
_FLOAT_ENV_OVERRIDES: Mapping[str, str] = {
    "BQPREVIEW_REQUEST_TIMEOUT": "request_timeout",
    "BQPREVIEW_SCAN_WARNING_THRESHOLD_MB": "scan_warning_threshold_mb",
    "BQPREVIEW_CHANGE_DEBOUNCE_SECONDS": "change_debounce_seconds",
}
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
CHANGE_DEBOUNCE_RANGE: tuple[float, float] = (1.0, 15.0)


@dataclass(slots=True)
class RateLimitSettings:
    """Minimum seconds between dry runs for an unchanged document, per trigger."""

    manual_seconds: float = 5.0
    open_seconds: float = 5.0
    save_seconds: float = 5.0
    change_seconds: float = 10.0
    selection_seconds: float = 5.0

    def intervals(self) -> dict[str, float]:
        return {
            "manual": self.manual_seconds,
            "open": self.open_seconds,
            "save": self.save_seconds,
            "change": self.change_seconds,
            "selection": self.selection_seconds,
        }


@dataclass(slots=True)
class SelectionSettings:
    """Selection stabilization and storm suppression knobs."""

    stabilize_seconds: float = 0.75
    max_triggers: int = 5
    window_seconds: float = 1.5


@dataclass(slots=True)
class SaveCloseSettings:
    """Timing windows of the save-on-close heuristic."""

    will_save_seconds: float = 0.3
    close_grace_seconds: float = 1.0


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    project_id: str = ""
    location: str | None = None
    access_token: str = ""
    api_base_url: str = "https://bigquery.googleapis.com/bigquery/v2"
    request_timeout: float = 30.0
    scan_warning_threshold_mb: float = 100.0
    show_scan_warnings: bool = True
    enable_status_bar: bool = True
    enable_notifications: bool = False
    auto_run_on_open: bool = True
    auto_run_on_save: bool = True
    auto_run_on_change: bool = True
    change_debounce_seconds: float = 3.0
    track_dry_runs: bool = False
    eligible_languages: list[str] = field(default_factory=lambda: ["sql"])
    eligible_extensions: list[str] = field(default_factory=lambda: [".sql"])
    debug_logging: bool = False
    rate_limits: RateLimitSettings = field(default_factory=RateLimitSettings)
    selection: SelectionSettings = field(default_factory=SelectionSettings)
    save_close: SaveCloseSettings = field(default_factory=SaveCloseSettings)

    @property
    def any_channel_enabled(self) -> bool:
        return self.enable_status_bar or self.enable_notifications

    @property
    def scan_warning_threshold_bytes(self) -> int | None:
        """Byte threshold for WARNING results, None when warnings are off."""

        if not self.show_scan_warnings:
            return None
        return megabytes_to_bytes(self.scan_warning_threshold_mb)


_NESTED_GROUPS: Mapping[str, type] = {
    "rate_limits": RateLimitSettings,
    "selection": SelectionSettings,
    "save_close": SaveCloseSettings,
}


def normalize_settings(settings: Settings) -> Settings:
    """Clamp values into their supported ranges."""

    low, high = CHANGE_DEBOUNCE_RANGE
    debounce = min(max(float(settings.change_debounce_seconds), low), high)
    if debounce != settings.change_debounce_seconds:
        LOGGER.warning(
            "change_debounce_seconds=%s outside %s-%s; using %s",
            settings.change_debounce_seconds,
            low,
            high,
            debounce,
        )
    limits = settings.rate_limits
    rate_limits = RateLimitSettings(
        manual_seconds=max(0.0, float(limits.manual_seconds)),
        open_seconds=max(0.0, float(limits.open_seconds)),
        save_seconds=max(0.0, float(limits.save_seconds)),
        change_seconds=max(0.0, float(limits.change_seconds)),
        selection_seconds=max(0.0, float(limits.selection_seconds)),
    )
    selection = SelectionSettings(
        stabilize_seconds=max(0.0, float(settings.selection.stabilize_seconds)),
        max_triggers=max(1, int(settings.selection.max_triggers)),
        window_seconds=max(0.0, float(settings.selection.window_seconds)),
    )
    save_close = SaveCloseSettings(
        will_save_seconds=max(0.0, float(settings.save_close.will_save_seconds)),
        close_grace_seconds=max(0.0, float(settings.save_close.close_grace_seconds)),
    )
    return replace(
        settings,
        change_debounce_seconds=debounce,
        scan_warning_threshold_mb=max(0.0, float(settings.scan_warning_threshold_mb)),
        request_timeout=max(1.0, float(settings.request_timeout)),
        eligible_languages=[str(item).lower() for item in settings.eligible_languages],
        eligible_extensions=[_normalize_suffix(item) for item in settings.eligible_extensions],
        rate_limits=rate_limits,
        selection=selection,
        save_close=save_close,
    )


def settings_payload(settings: Settings, *, include_secrets: bool = False) -> Dict[str, Any]:
    """Return ``settings`` as a JSON-friendly dict, redacting secrets by default."""

    data = asdict(settings)
    for name in _SECRET_FIELDS:
        if include_secrets:
            continue
        value = data.get(name)
        data[name] = redact_secret(value) if isinstance(value, str) else value
    return data


class SettingsStore:
    """Persistence adapter for :class:`Settings`.

    The access token is never written to disk; it comes from the
    ``BQPREVIEW_ACCESS_TOKEN`` environment variable or a runtime override.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH

    @property
    def path(self) -> Path:
        """Return the resolved path backing this store."""

        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, applying CLI/environment overrides when present."""

        payload = self._read_payload()
        settings = Settings()

        if payload:
            data = _filter_fields(payload)
            for name, group in _NESTED_GROUPS.items():
                group_payload = data.get(name)
                if isinstance(group_payload, Mapping):
                    try:
                        data[name] = group(**group_payload)
                    except TypeError:
                        LOGGER.warning("Ignoring malformed '%s' settings group", name)
                        data[name] = group()
                elif name in data:
                    data[name] = group()
            try:
                settings = Settings(**data)
            except TypeError as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()

        if payload and payload.get("version") != _SETTINGS_VERSION:
            LOGGER.debug("Settings version mismatch in %s; rewriting", self._path)
            try:
                self.save(settings)
            except OSError as exc:
                LOGGER.warning("Failed to migrate settings payload: %s", exc)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        settings = self._apply_env_overrides(settings)
        return normalize_settings(settings)

    def save(self, settings: Settings) -> Path:
        """Persist settings to disk with atomic file writes."""

        payload = self._serialize(settings)
        body = json.dumps(payload, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _serialize(self, settings: Settings) -> Dict[str, Any]:
        data = asdict(settings)
        for name in _SECRET_FIELDS:
            data.pop(name, None)
        data["version"] = _SETTINGS_VERSION
        return data

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            text = self._path.read_text(encoding="utf-8")
            payload = json.loads(text)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        if not isinstance(payload, dict):
            LOGGER.warning("Settings file %s does not hold a JSON object", self._path)
            return {}
        return payload

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {field.name for field in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                continue
            group = _NESTED_GROUPS.get(key)
            if group is not None and isinstance(value, Mapping):
                value = replace(getattr(settings, key), **value)
            filtered[key] = value
        if filtered:
            LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
            settings = replace(settings, **filtered)
        return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, field_name in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value
        for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                overrides[field_name] = value.strip().lower() in _TRUE_VALUES
        for env_name, field_name in _FLOAT_ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is None:
                continue
            try:
                overrides[field_name] = float(value)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid float", env_name, value
                )
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {field.name for field in fields(Settings)} - _SECRET_FIELDS
    result: Dict[str, Any] = {}
    for key, value in payload.items():
        if key not in allowed:
            continue
        result[key] = value
    return result


def _normalize_suffix(value: Any) -> str:
    text = str(value).strip().lower()
    if text and not text.startswith("."):
        text = f".{text}"
    return text


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
