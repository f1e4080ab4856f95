"""Turns editor events into gated, debounced, single-flight dry runs.

The coordinator owns every piece of mutable analysis state for one editor
session: the version tracker, the run lock, the pending timers, the
save-on-close heuristic, the last result and the dry-run counter. All of
it is mutated from the asyncio loop thread only, so no locks are used.
The only suspension points are the estimator call and timer waits.

Pipeline for every trigger::

    eligibility -> (save only) save-on-close gate -> busy check
        -> change tracker + rate gate -> presentation channel check
        -> single-flight executor -> estimator -> result state
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from enum import Enum
from typing import Any, Callable, Coroutine, Protocol

from ..editor.document_model import DocumentState, TextEditor, is_eligible_for_analysis
from ..services import telemetry
from ..services.bigquery import DryRunEstimator, DryRunResult
from ..services.settings import Settings, normalize_settings, settings_payload
from ..ui.events import (
    AnalysisStateChanged,
    DocumentClosed,
    DocumentModified,
    DocumentOpened,
    DocumentSaved,
    DocumentWillSave,
    EventBus,
    NoticePosted,
    SelectionChanged,
    SettingsChanged,
)
from .change_tracker import ChangeTracker
from .debounce import Debouncer, SelectionStabilizer
from .rate_gate import RateGate, TriggerKind
from .result_state import AnalysisResult, ResultState
from .save_close import CloseSaveDisambiguator
from .single_flight import SKIPPED, SingleFlightExecutor
from .stats import DryRunSnapshot, DryRunStats

__all__ = [
    "AnalysisCoordinator",
    "AnalysisOutcome",
    "EditorHost",
    "CHANNELS_DISABLED_MESSAGE",
    "NO_EDITOR_MESSAGE",
    "PAUSED_MESSAGE",
]

LOGGER = logging.getLogger(__name__)

NO_EDITOR_MESSAGE = "No active editor found. Please open a .sql file to analyze."
CHANNELS_DISABLED_MESSAGE = (
    "Both status bar and notifications are disabled. Please enable at least one to "
    "receive feedback. Query analysis not performed."
)
PAUSED_MESSAGE = "BigQuery preview is paused. Start it to analyze the current query."
ACTIVATED_MESSAGE = "BigQuery preview is now active. SQL files will be analyzed automatically."
DEACTIVATED_MESSAGE = "BigQuery preview is now paused. No automatic analysis will occur."

# Recheck a deferred save slightly after the will-save window has closed
_SAVE_RECHECK_MARGIN = 0.05
_NOTICE_LEVELS = {"info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}


class AnalysisOutcome(str, Enum):
    """What happened to one analysis attempt."""

    RAN = "ran"
    INACTIVE = "inactive"
    NO_CONTEXT = "no_context"
    INELIGIBLE = "ineligible"
    BUSY = "busy"
    GATED = "gated"
    MISCONFIGURED = "misconfigured"


class EditorHost(Protocol):
    """Read access to the editor host's visible editors."""

    def active_editor(self) -> TextEditor | None:  # pragma: no cover - protocol
        ...

    def find_editor(self, key: str) -> TextEditor | None:  # pragma: no cover - protocol
        ...


class AnalysisCoordinator:
    """One instance per editor session; see the module docstring."""

    def __init__(
        self,
        estimator: DryRunEstimator,
        host: EditorHost,
        *,
        settings: Settings | None = None,
        bus: EventBus | None = None,
        clock: Callable[[], float] = time.monotonic,
        stats_clock: Callable[[], float] = time.time,
        active: bool = False,
    ) -> None:
        self._estimator = estimator
        self._host = host
        self._bus = bus
        self._clock = clock
        self._active = active
        self._settings = normalize_settings(settings or Settings())

        self._tracker = ChangeTracker()
        self._rate_gate = RateGate()
        self._executor = SingleFlightExecutor(clock=clock)
        self._debouncer = Debouncer()
        self._selection = SelectionStabilizer(
            on_stable=self._on_selection_stable,
            active_editor=host.active_editor,
            clock=clock,
            debouncer=self._debouncer,
        )
        self._disambiguator = CloseSaveDisambiguator(change_tracker=self._tracker)
        self._results = ResultState()
        self._results.add_listener(self._publish_result)
        self._stats = DryRunStats(clock=stats_clock)
        self._tasks: set[asyncio.Task[Any]] = set()
        self._subscriptions: list[tuple[type, Callable[[Any], None]]] = []
        self._apply_settings(self._settings)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def active(self) -> bool:
        return self._active

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def result(self) -> AnalysisResult:
        return self._results.current

    @property
    def result_state(self) -> ResultState:
        return self._results

    @property
    def full_error_text(self) -> str | None:
        """Full joined error text of the last failed run."""

        return self._results.full_error_text

    @property
    def change_tracker(self) -> ChangeTracker:
        return self._tracker

    @property
    def executor(self) -> SingleFlightExecutor:
        return self._executor

    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer

    @property
    def selection_stabilizer(self) -> SelectionStabilizer:
        return self._selection

    @property
    def disambiguator(self) -> CloseSaveDisambiguator:
        return self._disambiguator

    def dry_run_stats(self) -> DryRunSnapshot:
        return self._stats.snapshot()

    # ------------------------------------------------------------------
    # Activation
    # ------------------------------------------------------------------
    async def start(self, *, analyze_active: bool = True) -> AnalysisOutcome | None:
        """Activate automatic analysis and optionally analyze the active editor."""

        if not self._active:
            self._active = True
            LOGGER.info("Analysis activated")
            self._notice(ACTIVATED_MESSAGE)
        if not analyze_active:
            return None
        editor = self._host.active_editor()
        if editor is None or not self._is_eligible(editor.document):
            return None
        return await self.analyze(editor.document, editor, TriggerKind.MANUAL)

    def pause(self) -> None:
        """Deactivate automatic analysis and drop pending timers."""

        was_active = self._active
        self._active = False
        cancelled = self._debouncer.cancel_all()
        self._selection.cancel()
        if cancelled:
            LOGGER.debug("Pause cancelled %d pending timer(s)", cancelled)
        if was_active:
            LOGGER.info("Analysis paused")
            self._notice(DEACTIVATED_MESSAGE)

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------
    async def request_analysis(self, *, activate: bool = False) -> AnalysisOutcome:
        """Manual trigger for the active editor.

        Args:
            activate: Start the coordinator first when it is paused. Without
                it a paused coordinator only posts an info notice.
        """

        if not self._active:
            if not activate:
                self._notice(PAUSED_MESSAGE)
                self._trace_gated("inactive", None, TriggerKind.MANUAL)
                return AnalysisOutcome.INACTIVE
            await self.start(analyze_active=False)
        editor = self._host.active_editor()
        if editor is None:
            return await self.analyze(None, None, TriggerKind.MANUAL)
        return await self.analyze(editor.document, editor, TriggerKind.MANUAL)

    async def on_document_opened(self, document: DocumentState) -> AnalysisOutcome | None:
        if not self._active or not self._settings.auto_run_on_open:
            return None
        if not self._is_eligible(document):
            return None
        editor = self._host.find_editor(document.key)
        return await self.analyze(document, editor, TriggerKind.OPEN)

    def on_will_save(self, document: DocumentState) -> None:
        if self._is_eligible(document):
            self._disambiguator.will_save(document.key)

    async def on_document_saved(self, document: DocumentState) -> AnalysisOutcome | None:
        """Analyze a saved document unless it looks like a save-on-close.

        A save that lands while the will-save window is still open is
        deferred until the window has closed and checked again then.
        """

        if not self._active or not self._settings.auto_run_on_save:
            return None
        key = document.key
        if self._disambiguator.is_closing(key):
            self._trace_gated("save_on_close", key, TriggerKind.SAVE)
            return None
        if self._disambiguator.save_pending(key):
            delay = self._settings.save_close.will_save_seconds + _SAVE_RECHECK_MARGIN
            self._debouncer.schedule(("save", key), delay, lambda: self._run_save(document))
            return None
        return await self._run_save(document)

    def on_document_closed(self, document: DocumentState) -> bool:
        """Forget ``document``; returns True when the close looked like a save-on-close."""

        self._debouncer.cancel(("save", document.key))
        return self._disambiguator.did_close(document.key)

    def on_document_changed(self, document: DocumentState) -> bool:
        """(Re)arm the change debounce; returns True when a timer was armed."""

        if not self._active or not self._settings.auto_run_on_change:
            return False
        if not self._is_eligible(document):
            return False
        self._debouncer.schedule(
            TriggerKind.CHANGE,
            self._settings.change_debounce_seconds,
            lambda: self._run_change(document),
        )
        return True

    def on_selection_changed(self, editor: TextEditor) -> bool:
        if not self._active or not self._is_eligible(editor.document):
            return False
        if not self._settings.any_channel_enabled:
            return False
        return self._selection.handle(editor)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------
    async def analyze(
        self,
        document: DocumentState | None,
        editor: TextEditor | None = None,
        trigger: TriggerKind = TriggerKind.MANUAL,
    ) -> AnalysisOutcome:
        if document is None:
            self._notice(NO_EDITOR_MESSAGE, level="error")
            return AnalysisOutcome.NO_CONTEXT
        key = document.key
        if not self._active:
            self._trace_gated("inactive", key, trigger)
            return AnalysisOutcome.INACTIVE
        if not self._is_eligible(document):
            LOGGER.debug("Skipping ineligible document %s", key)
            return AnalysisOutcome.INELIGIBLE
        if self._executor.running:
            LOGGER.info("Analysis already in progress, skipping %s trigger", trigger.value)
            self._trace_gated("busy", key, trigger)
            return AnalysisOutcome.BUSY

        changed = self._tracker.has_changed(document)
        if not self._rate_gate.allows(
            trigger,
            now=self._clock(),
            last_run_time=self._executor.last_run_time,
            changed=changed,
        ):
            self._trace_gated("rate_limited", key, trigger)
            return AnalysisOutcome.GATED

        if not self._settings.any_channel_enabled:
            self._notice(CHANNELS_DISABLED_MESSAGE, level="warning")
            return AnalysisOutcome.MISCONFIGURED

        query, is_selection = self._resolve_query(document, editor)
        result = await self._executor.run(lambda: self._execute(key, query, is_selection, trigger))
        if result is SKIPPED:
            return AnalysisOutcome.BUSY
        # failures come back as results, not exceptions
        self._executor.state.last_error = result.error_text
        return AnalysisOutcome.RAN

    async def _execute(
        self, key: str, query: str, is_selection: bool, trigger: TriggerKind
    ) -> AnalysisResult:
        self._results.begin(key, selection=is_selection)
        if self._settings.track_dry_runs:
            count = self._stats.record()
            snapshot = self._stats.snapshot()
            LOGGER.info("Dry run #%d for %s (%s trigger)", count, key, trigger.value)
            LOGGER.debug("Dry run stats: %s", snapshot.as_dict())
        try:
            outcome = await self._estimator.estimate(query)
        except Exception as exc:
            LOGGER.exception("Dry run estimator failed for %s", key)
            outcome = DryRunResult.failure([str(exc) or exc.__class__.__name__])

        if outcome.errors:
            result = self._results.fail(outcome.errors)
        else:
            result = self._results.succeed(
                outcome.scanned_bytes, self._settings.scan_warning_threshold_bytes
            )
        telemetry.emit(
            telemetry.ANALYSIS_COMPLETED,
            {
                "document": key,
                "trigger": trigger.value,
                "phase": result.phase.value,
                "scanned_bytes": result.scanned_bytes,
                "selection": is_selection,
            },
        )
        return result

    async def _run_save(self, document: DocumentState) -> AnalysisOutcome | None:
        if not self._active:
            return None
        key = document.key
        if self._disambiguator.should_suppress(key):
            self._trace_gated("save_on_close", key, TriggerKind.SAVE)
            return None
        editor = self._host.find_editor(key)
        if editor is None:
            LOGGER.debug("Saved document %s has no visible editor; skipping", key)
            return None
        return await self.analyze(document, editor, TriggerKind.SAVE)

    async def _run_change(self, document: DocumentState) -> AnalysisOutcome | None:
        if not self._active:
            return None
        editor = self._host.find_editor(document.key)
        if editor is None:
            LOGGER.debug("Changed document %s closed before the debounce fired", document.key)
            return None
        return await self.analyze(document, editor, TriggerKind.CHANGE)

    async def _on_selection_stable(self, editor: TextEditor) -> AnalysisOutcome | None:
        if not self._active:
            return None
        return await self.analyze(editor.document, editor, TriggerKind.SELECTION)

    # ------------------------------------------------------------------
    # Configuration & lifecycle
    # ------------------------------------------------------------------
    def update_settings(self, settings: Settings) -> None:
        """Apply new settings; turning tracking on starts the counter from zero."""

        previous = self._settings
        self._settings = normalize_settings(settings)
        self._apply_settings(self._settings)
        if self._settings.track_dry_runs and not previous.track_dry_runs:
            self._stats.reset()
        if not self._settings.auto_run_on_change:
            self._debouncer.cancel(TriggerKind.CHANGE)
        if self._bus is not None:
            self._bus.publish(SettingsChanged(settings=settings_payload(self._settings)))

    def bind(self, bus: EventBus | None = None) -> None:
        """Subscribe to editor events on ``bus`` (or the bus given at construction)."""

        if bus is not None:
            self._bus = bus
        if self._bus is None:
            raise RuntimeError("No event bus to bind to")
        self.unbind()
        handlers: list[tuple[type, Callable[[Any], None]]] = [
            (DocumentOpened, self._handle_opened),
            (DocumentWillSave, self._handle_will_save),
            (DocumentSaved, self._handle_saved),
            (DocumentClosed, self._handle_closed),
            (DocumentModified, self._handle_modified),
            (SelectionChanged, self._handle_selection),
        ]
        for event_type, handler in handlers:
            self._bus.subscribe(event_type, handler)
        self._subscriptions = handlers

    def unbind(self) -> None:
        if self._bus is None:
            return
        for event_type, handler in self._subscriptions:
            self._bus.unsubscribe(event_type, handler)
        self._subscriptions = []

    async def wait_idle(self) -> None:
        """Wait for analyses spawned from bus events to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Deactivate: cancel timers and tasks, clear tracking, statistics and results."""

        self._active = False
        self.unbind()
        self._selection.cancel()
        await self._debouncer.aclose()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()
        self._tracker.clear()
        self._disambiguator.clear()
        self._stats.reset()
        self._executor.reset()
        self._results.reset()

    # ------------------------------------------------------------------
    # Event bus handlers
    # ------------------------------------------------------------------
    def _handle_opened(self, event: DocumentOpened) -> None:
        self._spawn(self.on_document_opened(event.document))

    def _handle_will_save(self, event: DocumentWillSave) -> None:
        self.on_will_save(event.document)

    def _handle_saved(self, event: DocumentSaved) -> None:
        self._spawn(self.on_document_saved(event.document))

    def _handle_closed(self, event: DocumentClosed) -> None:
        self.on_document_closed(event.document)

    def _handle_modified(self, event: DocumentModified) -> None:
        self.on_document_changed(event.document)

    def _handle_selection(self, event: SelectionChanged) -> None:
        self.on_selection_changed(event.editor)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error("Analysis task failed", exc_info=exc)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _apply_settings(self, settings: Settings) -> None:
        self._rate_gate.update(
            {TriggerKind(name): seconds for name, seconds in settings.rate_limits.intervals().items()}
        )
        self._selection.configure(
            delay=settings.selection.stabilize_seconds,
            max_triggers=settings.selection.max_triggers,
            window=settings.selection.window_seconds,
        )
        self._disambiguator.configure(
            save_window=settings.save_close.will_save_seconds,
            close_grace=settings.save_close.close_grace_seconds,
        )

    def _is_eligible(self, document: DocumentState) -> bool:
        return is_eligible_for_analysis(
            document,
            languages=self._settings.eligible_languages,
            suffixes=self._settings.eligible_extensions,
        )

    @staticmethod
    def _resolve_query(document: DocumentState, editor: TextEditor | None) -> tuple[str, bool]:
        if editor is not None and editor.document.key == document.key and not editor.selection.is_empty:
            selected = document.read(editor.selection)
            if selected.strip():
                return selected, True
        return document.text, False

    def _publish_result(self, result: AnalysisResult) -> None:
        if self._bus is not None:
            self._bus.publish(AnalysisStateChanged(result=result))

    def _notice(self, message: str, *, level: str = "info") -> None:
        LOGGER.log(_NOTICE_LEVELS.get(level, logging.INFO), message)
        if self._bus is not None:
            self._bus.publish(NoticePosted(message=message, level=level))

    def _trace_gated(self, reason: str, key: str | None, trigger: TriggerKind) -> None:
        LOGGER.debug("Analysis gated (%s) for %s on %s trigger", reason, key, trigger.value)
        telemetry.emit(
            telemetry.ANALYSIS_GATED,
            {"reason": reason, "document": key, "trigger": trigger.value},
        )
