"""State machine holding the outcome of the most recent dry run."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Iterable, List, Sequence

from ..utils.formatters import truncate_message

__all__ = ["AnalysisPhase", "AnalysisResult", "ResultListener", "ResultState", "ERROR_DISPLAY_LIMIT"]

LOGGER = logging.getLogger(__name__)

ERROR_DISPLAY_LIMIT = 50


class AnalysisPhase(str, Enum):
    """Lifecycle of the latest analysis."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    SUCCESS = "success"
    WARNING = "warning"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AnalysisPhase.SUCCESS, AnalysisPhase.WARNING, AnalysisPhase.FAILED)


@dataclass(slots=True, frozen=True)
class AnalysisResult:
    """Immutable snapshot of :class:`ResultState` after a transition."""

    phase: AnalysisPhase = AnalysisPhase.IDLE
    document_key: str | None = None
    is_selection: bool = False
    scanned_bytes: int | None = None
    threshold_bytes: int | None = None
    errors: tuple[str, ...] = ()
    error_text: str | None = None
    display_error: str | None = None
    updated_at: float = field(default_factory=time.time)

    @property
    def exceeds_threshold(self) -> bool:
        return self.phase is AnalysisPhase.WARNING


ResultListener = Callable[[AnalysisResult], None]


class ResultState:
    """Single "last result" holder; each run overwrites the previous one.

    ``begin`` may be called from any phase. Listeners are notified with
    the new snapshot after every transition.
    """

    def __init__(self, *, error_display_limit: int = ERROR_DISPLAY_LIMIT) -> None:
        self._current = AnalysisResult()
        self._listeners: List[ResultListener] = []
        self._error_display_limit = error_display_limit
        self._last_error_text: str | None = None

    @property
    def current(self) -> AnalysisResult:
        return self._current

    @property
    def phase(self) -> AnalysisPhase:
        return self._current.phase

    @property
    def full_error_text(self) -> str | None:
        """Joined error text of the last failure, kept until a run succeeds."""

        return self._last_error_text

    def add_listener(self, listener: ResultListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: ResultListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def begin(self, document_key: str | None, *, selection: bool = False) -> AnalysisResult:
        return self._transition(
            AnalysisResult(
                phase=AnalysisPhase.ANALYZING,
                document_key=document_key,
                is_selection=selection,
            )
        )

    def succeed(self, scanned_bytes: int, threshold_bytes: int | None = None) -> AnalysisResult:
        """Finish the run, classifying it as WARNING when above ``threshold_bytes``."""

        scanned = max(0, int(scanned_bytes))
        over = threshold_bytes is not None and scanned > threshold_bytes
        self._last_error_text = None
        return self._transition(
            replace(
                self._current,
                phase=AnalysisPhase.WARNING if over else AnalysisPhase.SUCCESS,
                scanned_bytes=scanned,
                threshold_bytes=threshold_bytes,
                errors=(),
                error_text=None,
                display_error=None,
                updated_at=time.time(),
            )
        )

    def fail(self, messages: Sequence[str] | Iterable[str]) -> AnalysisResult:
        errors = tuple(str(message) for message in messages if message)
        if not errors:
            errors = ("Unknown error",)
        full_text = "; ".join(errors)
        self._last_error_text = full_text
        return self._transition(
            replace(
                self._current,
                phase=AnalysisPhase.FAILED,
                scanned_bytes=None,
                threshold_bytes=None,
                errors=errors,
                error_text=full_text,
                display_error=truncate_message(full_text, self._error_display_limit),
                updated_at=time.time(),
            )
        )

    def reset(self) -> AnalysisResult:
        self._last_error_text = None
        return self._transition(AnalysisResult())

    def _transition(self, result: AnalysisResult) -> AnalysisResult:
        previous = self._current.phase
        self._current = result
        LOGGER.debug("Analysis state %s -> %s", previous.value, result.phase.value)
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:  # pragma: no cover - listeners must not break transitions
                LOGGER.exception("Result listener %r failed", listener)
        return result
