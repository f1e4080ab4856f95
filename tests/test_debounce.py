"""Tests for the debouncer and the selection stabilizer."""

from __future__ import annotations

import asyncio

import pytest

from bqpreview.analysis.debounce import Debouncer, SelectionStabilizer
from bqpreview.editor.document_model import DocumentState, SelectionRange, TextEditor
from tests.helpers import FakeClock

DELAY = 0.05


class TestDebouncer:
    @pytest.mark.asyncio
    async def test_rapid_schedules_fire_once_after_last_call(self) -> None:
        debouncer = Debouncer()
        loop = asyncio.get_running_loop()
        fired: list[float] = []

        debouncer.schedule("change", DELAY, lambda: fired.append(loop.time()))
        await asyncio.sleep(DELAY / 2)
        debouncer.schedule("change", DELAY, lambda: fired.append(loop.time()))
        await asyncio.sleep(DELAY / 2)
        last_call = loop.time()
        debouncer.schedule("change", DELAY, lambda: fired.append(loop.time()))

        await asyncio.sleep(DELAY * 3)

        assert len(fired) == 1
        assert fired[0] - last_call >= DELAY * 0.9
        assert debouncer.pending("change") is False

    @pytest.mark.asyncio
    async def test_keys_are_independent(self) -> None:
        debouncer = Debouncer()
        fired: list[str] = []

        debouncer.schedule("a", DELAY, lambda: fired.append("a"))
        debouncer.schedule("b", DELAY, lambda: fired.append("b"))
        await asyncio.sleep(DELAY * 3)

        assert sorted(fired) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_cancel_prevents_callback(self) -> None:
        debouncer = Debouncer()
        fired: list[str] = []

        debouncer.schedule("a", DELAY, lambda: fired.append("a"))
        assert debouncer.cancel("a") is True
        assert debouncer.cancel("a") is False
        await asyncio.sleep(DELAY * 2)

        assert fired == []

    @pytest.mark.asyncio
    async def test_cancel_all_reports_count(self) -> None:
        debouncer = Debouncer()

        debouncer.schedule("a", DELAY, lambda: None)
        debouncer.schedule("b", DELAY, lambda: None)

        assert debouncer.cancel_all() == 2
        assert debouncer.pending("a") is False

    @pytest.mark.asyncio
    async def test_async_callbacks_are_awaited(self) -> None:
        debouncer = Debouncer()
        done = asyncio.Event()

        async def callback() -> None:
            await asyncio.sleep(0)
            done.set()

        debouncer.schedule("a", 0.0, callback)
        await asyncio.wait_for(done.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_callback_errors_are_logged_not_raised(self, caplog: pytest.LogCaptureFixture) -> None:
        debouncer = Debouncer()

        def broken() -> None:
            raise ValueError("bad callback")

        with caplog.at_level("ERROR"):
            debouncer.schedule("a", 0.0, broken)
            await asyncio.sleep(0.02)

        assert any("Debounced callback" in record.message for record in caplog.records)


def _editor(text: str = "select a, b from t", *, key: str = "file:///q.sql") -> TextEditor:
    return TextEditor(document=DocumentState(text=text, key=key))


class _Harness:
    def __init__(self, *, delay: float = DELAY, max_triggers: int = 5, window: float = 1.5) -> None:
        self.clock = FakeClock()
        self.active: TextEditor | None = None
        self.stable: list[TextEditor] = []
        self.stabilizer = SelectionStabilizer(
            on_stable=self.stable.append,
            active_editor=lambda: self.active,
            delay=delay,
            max_triggers=max_triggers,
            window=window,
            clock=self.clock,
        )


class TestSelectionStabilizer:
    @pytest.mark.asyncio
    async def test_empty_selection_never_arms(self) -> None:
        harness = _Harness()
        editor = _editor()
        harness.active = editor

        assert harness.stabilizer.handle(editor) is False
        await asyncio.sleep(DELAY * 2)

        assert harness.stable == []
        assert harness.stabilizer.trigger_count == 0

    @pytest.mark.asyncio
    async def test_stable_selection_fires_once(self) -> None:
        harness = _Harness()
        editor = _editor()
        harness.active = editor
        editor.selection = SelectionRange(0, 6)

        assert harness.stabilizer.handle(editor) is True
        assert harness.stabilizer.pending is True
        await asyncio.sleep(DELAY * 3)

        assert harness.stable == [editor]
        assert harness.stabilizer.pending is False

    @pytest.mark.asyncio
    async def test_clearing_selection_cancels_pending_timer(self) -> None:
        harness = _Harness()
        editor = _editor()
        harness.active = editor
        editor.selection = SelectionRange(0, 6)
        harness.stabilizer.handle(editor)

        editor.selection = SelectionRange(3, 3)
        harness.stabilizer.handle(editor)
        await asyncio.sleep(DELAY * 3)

        assert harness.stable == []

    @pytest.mark.asyncio
    async def test_changed_selection_at_fire_time_is_discarded(self) -> None:
        harness = _Harness()
        editor = _editor()
        harness.active = editor
        editor.selection = SelectionRange(0, 6)
        harness.stabilizer.handle(editor)

        editor.selection = SelectionRange(0, 8)
        await asyncio.sleep(DELAY * 3)

        assert harness.stable == []

    @pytest.mark.asyncio
    async def test_switched_editor_at_fire_time_is_discarded(self) -> None:
        harness = _Harness()
        editor = _editor()
        harness.active = editor
        editor.selection = SelectionRange(0, 6)
        harness.stabilizer.handle(editor)

        harness.active = _editor(key="file:///other.sql")
        await asyncio.sleep(DELAY * 3)

        assert harness.stable == []

    @pytest.mark.asyncio
    async def test_storm_cap_drops_events_until_window_elapses(self, trace_sink) -> None:
        harness = _Harness(max_triggers=5, window=1.5)
        editor = _editor()
        harness.active = editor

        armed = []
        for end in range(1, 9):
            editor.selection = SelectionRange(0, end)
            armed.append(harness.stabilizer.handle(editor))
            harness.clock.advance(0.1)

        assert armed == [True] * 5 + [False] * 3
        assert "analysis.gated" in trace_sink.names()

        harness.clock.advance(1.5)
        editor.selection = SelectionRange(0, 12)
        assert harness.stabilizer.handle(editor) is True
        assert harness.stabilizer.trigger_count == 1

        await asyncio.sleep(DELAY * 3)
        assert harness.stable == [editor]

    @pytest.mark.asyncio
    async def test_cancel_resets_counter_and_timer(self) -> None:
        harness = _Harness()
        editor = _editor()
        harness.active = editor
        editor.selection = SelectionRange(0, 6)
        harness.stabilizer.handle(editor)

        harness.stabilizer.cancel()
        await asyncio.sleep(DELAY * 3)

        assert harness.stable == []
        assert harness.stabilizer.trigger_count == 0
