"""Command line entry point for bqpreview."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import dataclass, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .analysis.coordinator import AnalysisCoordinator, AnalysisOutcome
from .analysis.result_state import AnalysisPhase, AnalysisResult
from .editor.workspace import EditorWorkspace
from .services.bigquery import BigQueryClientSettings, BigQueryDryRunClient, DryRunEstimator
from .services.settings import Settings, SettingsStore, settings_payload
from .ui.events import EventBus
from .ui.status_presenter import ConsoleStatusSink, StatusPresenter
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


@dataclass(slots=True)
class AnalysisRun:
    """Outcome of one CLI analysis."""

    outcome: AnalysisOutcome
    result: AnalysisResult

    @property
    def exit_code(self) -> int:
        if self.outcome is AnalysisOutcome.RAN and self.result.phase in (
            AnalysisPhase.SUCCESS,
            AnalysisPhase.WARNING,
        ):
            return EXIT_OK
        return EXIT_FAILED


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure structured logging for the application."""

    level = logging.DEBUG if debug else logging.WARNING
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


async def run_analysis(
    settings: Settings,
    path: Path,
    *,
    selection: tuple[int, int] | None = None,
    sink: ConsoleStatusSink | None = None,
    estimator: DryRunEstimator | None = None,
) -> AnalysisRun:
    """Open ``path`` in an in-memory workspace and analyze it once."""

    bus = EventBus()
    workspace = EditorWorkspace(bus)
    active_sink = sink or ConsoleStatusSink()
    presenter = StatusPresenter(active_sink, settings=settings)
    presenter.attach(bus)
    client: BigQueryDryRunClient | None = None
    if estimator is None:
        client = BigQueryDryRunClient(BigQueryClientSettings.from_settings(settings))
        estimator = client
    coordinator = AnalysisCoordinator(estimator, workspace, settings=settings, bus=bus)
    try:
        editor = workspace.open_path(path)
        if selection is not None:
            workspace.select(editor.id, *selection)
        outcome = await coordinator.request_analysis(activate=True)
        if settings.track_dry_runs:
            active_sink.notify(coordinator.dry_run_stats().describe())
        return AnalysisRun(outcome=outcome, result=coordinator.result)
    finally:
        await coordinator.aclose()
        presenter.detach()
        if client is not None:
            await client.aclose()


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `bqpreview` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    debug = args.debug or _env_flag("BQPREVIEW_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("BQPREVIEW_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return EXIT_USAGE

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return EXIT_OK

    if args.command != "analyze":
        parser.print_usage(sys.stderr)
        return EXIT_USAGE

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    path = Path(args.path).expanduser()
    if not path.is_file():
        print(f"No such file: {path}", file=sys.stderr)
        return EXIT_USAGE
    try:
        selection = _parse_selection(args.selection) if args.selection else None
    except ValueError as exc:
        print(f"Invalid --selection: {exc}", file=sys.stderr)
        return EXIT_USAGE

    sink = ConsoleStatusSink(sys.stdout)
    try:
        run = asyncio.run(run_analysis(settings, path, selection=selection, sink=sink))
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
        return EXIT_FAILED

    if run.outcome is AnalysisOutcome.INELIGIBLE:
        print(f"{path} is not a SQL document.", file=sys.stderr)
    if run.result.phase is AnalysisPhase.FAILED and run.result.error_text:
        print(run.result.error_text, file=sys.stderr)
    return run.exit_code


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bqpreview",
        description="Estimate BigQuery scan cost of SQL files with dry runs.",
    )
    _add_common_options(parser)

    subparsers = parser.add_subparsers(dest="command")
    analyze = subparsers.add_parser("analyze", help="Dry-run a SQL file and print the estimated scan size.")
    # Options repeated after the subcommand only override when given
    _add_common_options(analyze, default=argparse.SUPPRESS)
    analyze.add_argument("path", metavar="PATH", help="SQL file to analyze.")
    analyze.add_argument(
        "--selection",
        metavar="START:END",
        help="Analyze only the characters between START and END.",
    )
    return parser


def _add_common_options(parser: argparse.ArgumentParser, *, default: Any = None) -> None:
    suppressed = default is argparse.SUPPRESS
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        default=default if suppressed else False,
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        default=default,
        help="Override the default ~/.bqpreview/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=default if suppressed else [],
        help="Override persisted settings (repeatable; nested keys use dots, e.g. selection.max_triggers=3).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=default if suppressed else False,
        help="Enable debug logging.",
    )


def _parse_selection(value: str) -> tuple[int, int]:
    if ":" not in value:
        raise ValueError("expected START:END")
    start_text, end_text = value.split(":", 1)
    start, end = int(start_text, 10), int(end_text, 10)
    if start < 0 or end < 0:
        raise ValueError("offsets must be non-negative")
    return start, end


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        group_name, _, nested_key = key.partition(".")
        if group_name not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(group_name, fields[group_name].type)
        if not nested_key:
            overrides[key] = _coerce_value(annotation, raw_value.strip())
            continue
        group_type = _resolve_annotation(annotation)
        if not is_dataclass(group_type):
            raise ValueError(f"Setting '{group_name}' has no nested fields.")
        group_fields = group_type.__dataclass_fields__  # type: ignore[union-attr]
        if nested_key not in group_fields:
            raise ValueError(f"Unknown setting '{key}'.")
        group_hints = get_type_hints(group_type)
        nested = overrides.setdefault(group_name, {})
        if not isinstance(nested, dict):
            raise ValueError(f"Setting '{group_name}' was already overridden as a whole.")
        nested[nested_key] = _coerce_value(
            group_hints.get(nested_key, group_fields[nested_key].type), raw_value.strip()
        )
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if type(None) in get_args(annotation) and normalized.lower() in {"none", "null"}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is type(None):
        return None
    if is_dataclass(target):
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dataclass overrides must be valid JSON") from exc
        if isinstance(target, type):
            return target(**payload)
        raise ValueError("Dataclass override target is not instantiable")
    if target is list:
        if normalized.startswith("["):
            try:
                return json.loads(normalized)
            except json.JSONDecodeError as exc:
                raise ValueError("List overrides must be valid JSON arrays") from exc
        return [item.strip() for item in normalized.split(",") if item.strip()]
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": settings_payload(settings), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("BQPREVIEW_"))


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
