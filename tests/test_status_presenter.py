"""Tests for rendering analysis results."""

from __future__ import annotations

import io

from bqpreview.analysis.result_state import AnalysisPhase, AnalysisResult
from bqpreview.services.settings import Settings
from bqpreview.ui.events import AnalysisStateChanged, EventBus, NoticePosted, SettingsChanged, StatusMessage
from bqpreview.ui.status_presenter import ConsoleStatusSink, StatusPresenter, render_result

ONE_MB = 1024 * 1024


class TestRenderResult:
    def test_idle_renders_nothing(self) -> None:
        assert render_result(AnalysisResult()) is None

    def test_analyzing(self) -> None:
        view = render_result(AnalysisResult(phase=AnalysisPhase.ANALYZING))

        assert view is not None
        assert view.text == "Analyzing..."

    def test_success(self) -> None:
        view = render_result(AnalysisResult(phase=AnalysisPhase.SUCCESS, scanned_bytes=ONE_MB))

        assert view is not None
        assert view.text == "Scan: 1 MB"
        assert view.detail == "Query analysis successful. Estimated scan size: 1 MB."
        assert view.level == "info"

    def test_selection_success(self) -> None:
        view = render_result(
            AnalysisResult(phase=AnalysisPhase.SUCCESS, scanned_bytes=1536, is_selection=True)
        )

        assert view is not None
        assert view.text == "Selection: Scan: 1.5 KB"
        assert view.detail.startswith("Selected text analysis successful.")

    def test_warning(self) -> None:
        view = render_result(
            AnalysisResult(
                phase=AnalysisPhase.WARNING,
                scanned_bytes=200 * ONE_MB,
                threshold_bytes=100 * ONE_MB,
            )
        )

        assert view is not None
        assert view.text == "Scan: 200 MB (> 100 MB)"
        assert view.detail.endswith("exceeds the threshold of 100 MB.")
        assert view.level == "warning"

    def test_failure_uses_truncated_text_in_status(self) -> None:
        view = render_result(
            AnalysisResult(
                phase=AnalysisPhase.FAILED,
                error_text="Syntax error: a very long explanation",
                display_error="Syntax error...",
            )
        )

        assert view is not None
        assert view.text == "Error: Syntax error..."
        assert view.detail == "Query analysis failed: Syntax error: a very long explanation"
        assert view.level == "error"


class TestStatusPresenter:
    def test_status_bar_wins_over_notifications(self) -> None:
        sink = ConsoleStatusSink(io.StringIO())
        presenter = StatusPresenter(
            sink, settings=Settings(enable_status_bar=True, enable_notifications=True)
        )

        presenter.present(AnalysisResult(phase=AnalysisPhase.SUCCESS, scanned_bytes=10))

        assert sink.statuses == [("Scan: 10 B", "Query analysis successful. Estimated scan size: 10 B.", "info")]
        assert sink.notifications == []

    def test_notifications_when_status_bar_disabled(self) -> None:
        sink = ConsoleStatusSink(io.StringIO())
        presenter = StatusPresenter(
            sink, settings=Settings(enable_status_bar=False, enable_notifications=True)
        )

        presenter.present(AnalysisResult(phase=AnalysisPhase.SUCCESS, scanned_bytes=10))

        assert sink.statuses == []
        assert sink.notifications == [("Query analysis successful. Estimated scan size: 10 B.", "info")]

    def test_no_channel_drops_output(self) -> None:
        sink = ConsoleStatusSink(io.StringIO())
        presenter = StatusPresenter(
            sink, settings=Settings(enable_status_bar=False, enable_notifications=False)
        )

        view = presenter.present(AnalysisResult(phase=AnalysisPhase.SUCCESS, scanned_bytes=10))

        assert view is not None
        assert presenter.last_view == view
        assert sink.statuses == [] and sink.notifications == []

    def test_bus_events_are_rendered(self) -> None:
        stream = io.StringIO()
        sink = ConsoleStatusSink(stream)
        presenter = StatusPresenter(sink)
        bus: EventBus = EventBus()
        messages: list[StatusMessage] = []
        bus.subscribe(StatusMessage, messages.append)
        presenter.attach(bus)

        bus.publish(AnalysisStateChanged(result=AnalysisResult(phase=AnalysisPhase.ANALYZING)))
        bus.publish(NoticePosted(message="Heads up", level="warning"))

        assert stream.getvalue() == "[status] Analyzing...\n[warning] Heads up\n"
        assert messages[0].message == "Analyzing..."

        presenter.detach()
        bus.publish(NoticePosted(message="ignored"))
        assert len(sink.notifications) == 1

    def test_settings_change_switches_channel(self) -> None:
        sink = ConsoleStatusSink(io.StringIO())
        presenter = StatusPresenter(sink)
        bus: EventBus = EventBus()
        presenter.attach(bus)

        bus.publish(SettingsChanged(settings={"enable_status_bar": False, "enable_notifications": True}))
        presenter.present(AnalysisResult(phase=AnalysisPhase.SUCCESS, scanned_bytes=0))

        assert sink.statuses == []
        assert sink.notifications[-1][0].endswith("Estimated scan size: 0 B.")
