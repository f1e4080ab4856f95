"""Restartable asyncio timers for edit and selection triggers."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Hashable, Protocol, Set, Union

from ..editor.document_model import SelectionRange, TextEditor
from ..services import telemetry

__all__ = ["Debouncer", "SelectionStabilizer", "DebounceCallback"]

LOGGER = logging.getLogger(__name__)

DebounceCallback = Callable[[], Union[Awaitable[Any], Any]]


class ActiveEditorProvider(Protocol):
    def __call__(self) -> TextEditor | None:  # pragma: no cover - protocol
        ...


class Debouncer:
    """Keeps at most one pending timer per key.

    Scheduling a key that already has a pending timer cancels it, so the
    callback fires once, ``delay`` seconds after the last call. Once a
    timer fires the callback runs to completion; cancelling the key no
    longer affects it.
    """

    def __init__(self) -> None:
        self._pending: Dict[Hashable, asyncio.Task[None]] = {}
        self._firing: Set[asyncio.Task[None]] = set()

    def schedule(self, key: Hashable, delay: float, callback: DebounceCallback) -> None:
        self.cancel(key)
        loop = asyncio.get_running_loop()
        task = loop.create_task(self._runner(key, max(0.0, float(delay)), callback))
        self._pending[key] = task

    def cancel(self, key: Hashable) -> bool:
        """Cancel the pending timer for ``key``; returns True when one existed."""

        task = self._pending.pop(key, None)
        if task is None:
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        keys = list(self._pending)
        for key in keys:
            self.cancel(key)
        return len(keys)

    def pending(self, key: Hashable) -> bool:
        return key in self._pending

    async def aclose(self) -> None:
        """Cancel pending timers and callbacks that are still running."""

        self.cancel_all()
        firing = list(self._firing)
        for task in firing:
            task.cancel()
        for task in firing:
            with contextlib.suppress(asyncio.CancelledError):
                await task

    async def _runner(self, key: Hashable, delay: float, callback: DebounceCallback) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return
        task = asyncio.current_task()
        if self._pending.get(key) is task:
            del self._pending[key]
        if task is not None:
            self._firing.add(task)
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Debounced callback for %r failed", key)
        finally:
            if task is not None:
                self._firing.discard(task)


@dataclass(slots=True, frozen=True)
class _SelectionRecord:
    editor_id: str
    document_key: str
    selection: SelectionRange


class SelectionStabilizer:
    """Debounces selection changes and absorbs drag-select storms.

    Only non-empty selections arm a timer. At most ``max_triggers``
    selections arm timers inside one ``window``; the rest are dropped
    until the window elapses. When a timer fires the active editor is
    re-read and the analysis callback runs only if the same editor still
    shows the same document with the same selection.
    """

    TIMER_KEY = "selection"

    def __init__(
        self,
        *,
        on_stable: Callable[[TextEditor], Union[Awaitable[Any], Any]],
        active_editor: ActiveEditorProvider,
        delay: float = 0.75,
        max_triggers: int = 5,
        window: float = 1.5,
        clock: Callable[[], float] = time.monotonic,
        debouncer: Debouncer | None = None,
    ) -> None:
        self._on_stable = on_stable
        self._active_editor = active_editor
        self._clock = clock
        self._debouncer = debouncer or Debouncer()
        self._delay = delay
        self._max_triggers = max_triggers
        self._window = window
        self._last: _SelectionRecord | None = None
        self._count = 0
        self._window_start: float | None = None

    def configure(self, *, delay: float, max_triggers: int, window: float) -> None:
        self._delay = max(0.0, float(delay))
        self._max_triggers = max(1, int(max_triggers))
        self._window = max(0.0, float(window))

    @property
    def pending(self) -> bool:
        return self._debouncer.pending(self.TIMER_KEY)

    @property
    def trigger_count(self) -> int:
        return self._count

    def handle(self, editor: TextEditor) -> bool:
        """Process a selection change; returns True when a timer was armed."""

        if editor.selection.is_empty:
            self._debouncer.cancel(self.TIMER_KEY)
            self._last = None
            return False

        now = self._clock()
        if self._window_start is None or now - self._window_start > self._window:
            self._window_start = now
            self._count = 0
        if self._count >= self._max_triggers:
            LOGGER.debug(
                "Selection storm: %s triggers within %.2fs, dropping event",
                self._count,
                self._window,
            )
            telemetry.emit(
                telemetry.ANALYSIS_GATED,
                {"reason": "selection_storm", "document": editor.document.key},
            )
            return False

        self._count += 1
        record = _SelectionRecord(
            editor_id=editor.id,
            document_key=editor.document.key,
            selection=editor.selection,
        )
        self._last = record
        self._debouncer.schedule(self.TIMER_KEY, self._delay, lambda: self._fire(record))
        return True

    def cancel(self) -> None:
        """Drop the pending timer, the recorded selection and the storm counter."""

        self._debouncer.cancel(self.TIMER_KEY)
        self._last = None
        self._count = 0
        self._window_start = None

    async def _fire(self, record: _SelectionRecord) -> None:
        if self._last is not record:
            return
        self._last = None
        active = self._active_editor()
        if (
            active is None
            or active.id != record.editor_id
            or active.document.key != record.document_key
            or active.selection != record.selection
        ):
            LOGGER.debug("Discarding stale selection trigger for %s", record.document_key)
            return
        result = self._on_stable(active)
        if inspect.isawaitable(result):
            await result
