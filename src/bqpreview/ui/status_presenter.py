"""Renders analysis results into a status indicator or notifications."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, TextIO

from ..analysis.result_state import AnalysisPhase, AnalysisResult
from ..services.settings import Settings
from ..utils.formatters import format_data_size
from .events import AnalysisStateChanged, EventBus, NoticePosted, SettingsChanged, StatusMessage

__all__ = ["ConsoleStatusSink", "StatusPresenter", "StatusSink", "StatusView", "render_result"]

LOGGER = logging.getLogger(__name__)

_SELECTION_PREFIX = "Selection: "


class StatusSink(Protocol):
    """Output surface for rendered results."""

    def set_status(self, text: str, *, tooltip: str | None = None, level: str = "info") -> None:
        ...  # pragma: no cover - protocol

    def notify(self, message: str, *, level: str = "info") -> None:
        ...  # pragma: no cover - protocol


@dataclass(slots=True, frozen=True)
class StatusView:
    """Short status text plus the long form used for tooltips and notifications."""

    text: str
    detail: str
    level: str = "info"


def render_result(result: AnalysisResult) -> StatusView | None:
    """Return the view for ``result``; None while idle."""

    phase = result.phase
    if phase is AnalysisPhase.IDLE:
        return None
    if phase is AnalysisPhase.ANALYZING:
        return StatusView(text="Analyzing...", detail="Analyzing BigQuery SQL file...")
    if phase is AnalysisPhase.FAILED:
        full = result.error_text or "Unknown error"
        return StatusView(
            text=f"Error: {result.display_error or full}",
            detail=f"Query analysis failed: {full}",
            level="error",
        )

    size = format_data_size(result.scanned_bytes or 0)
    subject = "Selected text analysis" if result.is_selection else "Query analysis"
    prefix = _SELECTION_PREFIX if result.is_selection else ""
    if phase is AnalysisPhase.WARNING and result.threshold_bytes is not None:
        threshold = format_data_size(result.threshold_bytes)
        return StatusView(
            text=f"{prefix}Scan: {size} (> {threshold})",
            detail=(
                f"{subject} successful. Estimated scan size: {size} "
                f"exceeds the threshold of {threshold}."
            ),
            level="warning",
        )
    return StatusView(
        text=f"{prefix}Scan: {size}",
        detail=f"{subject} successful. Estimated scan size: {size}.",
    )


class ConsoleStatusSink:
    """Writes status lines and notices to a text stream; keeps a history."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.statuses: list[tuple[str, str | None, str]] = []
        self.notifications: list[tuple[str, str]] = []

    @property
    def stream(self) -> TextIO:
        return self._stream or sys.stdout

    def set_status(self, text: str, *, tooltip: str | None = None, level: str = "info") -> None:
        self.statuses.append((text, tooltip, level))
        self.stream.write(f"[status] {text}\n")

    def notify(self, message: str, *, level: str = "info") -> None:
        self.notifications.append((message, level))
        self.stream.write(f"[{level}] {message}\n")


class StatusPresenter:
    """Subscribes to result events and renders them into a :class:`StatusSink`.

    The status indicator wins when both channels are enabled; notifications
    are used only when the status indicator is off.
    """

    def __init__(self, sink: StatusSink, *, settings: Settings | None = None) -> None:
        self._sink = sink
        settings = settings or Settings()
        self._status_bar = settings.enable_status_bar
        self._notifications = settings.enable_notifications
        self._bus: EventBus | None = None
        self._last_view: StatusView | None = None

    @property
    def last_view(self) -> StatusView | None:
        return self._last_view

    def attach(self, bus: EventBus) -> None:
        self.detach()
        self._bus = bus
        bus.subscribe(AnalysisStateChanged, self._on_state_changed)
        bus.subscribe(NoticePosted, self._on_notice)
        bus.subscribe(SettingsChanged, self._on_settings_changed)

    def detach(self) -> None:
        if self._bus is None:
            return
        self._bus.unsubscribe(AnalysisStateChanged, self._on_state_changed)
        self._bus.unsubscribe(NoticePosted, self._on_notice)
        self._bus.unsubscribe(SettingsChanged, self._on_settings_changed)
        self._bus = None

    def update_channels(self, *, status_bar: bool, notifications: bool) -> None:
        self._status_bar = status_bar
        self._notifications = notifications

    def present(self, result: AnalysisResult) -> StatusView | None:
        view = render_result(result)
        if view is None:
            return None
        self._last_view = view
        if self._status_bar:
            self._sink.set_status(view.text, tooltip=view.detail, level=view.level)
            if self._bus is not None:
                self._bus.publish(StatusMessage(message=view.text, tooltip=view.detail))
        elif self._notifications:
            self._sink.notify(view.detail, level=view.level)
        else:
            LOGGER.debug("No presentation channel enabled; dropping %s", view.text)
        return view

    def _on_state_changed(self, event: AnalysisStateChanged) -> None:
        self.present(event.result)

    def _on_notice(self, event: NoticePosted) -> None:
        self._sink.notify(event.message, level=event.level)

    def _on_settings_changed(self, event: SettingsChanged) -> None:
        payload: Mapping[str, Any] = event.settings
        self.update_channels(
            status_bar=bool(payload.get("enable_status_bar", self._status_bar)),
            notifications=bool(payload.get("enable_notifications", self._notifications)),
        )
