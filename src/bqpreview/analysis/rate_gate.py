"""Cool-down gate deciding whether a trigger may issue a new dry run."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping

__all__ = ["DEFAULT_MIN_INTERVALS", "RateGate", "TriggerKind", "should_run"]

LOGGER = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    """Named trigger classes feeding the analysis pipeline."""

    MANUAL = "manual"
    OPEN = "open"
    SAVE = "save"
    CHANGE = "change"
    SELECTION = "selection"


DEFAULT_MIN_INTERVALS: Mapping[TriggerKind, float] = {
    TriggerKind.MANUAL: 5.0,
    TriggerKind.OPEN: 5.0,
    TriggerKind.SAVE: 5.0,
    TriggerKind.CHANGE: 10.0,
    TriggerKind.SELECTION: 5.0,
}


def should_run(now: float, last_run_time: float | None, changed: bool, min_interval: float) -> bool:
    """Return True unless the document is unchanged and still inside the cool-down.

    Args:
        now: Current clock reading in seconds.
        last_run_time: Clock reading of the last successful run, or None.
        changed: Whether the document changed since it was last observed.
        min_interval: Cool-down in seconds for the calling trigger class.
    """

    if last_run_time is None:
        return True
    if changed:
        return True
    return now - last_run_time > min_interval


class RateGate:
    """Applies :func:`should_run` with a per-trigger cool-down."""

    def __init__(self, intervals: Mapping[TriggerKind, float] | None = None) -> None:
        self._intervals: dict[TriggerKind, float] = dict(DEFAULT_MIN_INTERVALS)
        if intervals:
            self.update(intervals)

    def update(self, intervals: Mapping[TriggerKind, float]) -> None:
        for trigger, seconds in intervals.items():
            self._intervals[TriggerKind(trigger)] = max(0.0, float(seconds))

    def interval_for(self, trigger: TriggerKind) -> float:
        return self._intervals[TriggerKind(trigger)]

    def allows(
        self,
        trigger: TriggerKind,
        *,
        now: float,
        last_run_time: float | None,
        changed: bool,
    ) -> bool:
        interval = self.interval_for(trigger)
        allowed = should_run(now, last_run_time, changed, interval)
        if not allowed:
            LOGGER.debug(
                "Rate gate closed for %s trigger (%.2fs since last run, interval %.2fs)",
                trigger.value,
                now - (last_run_time or now),
                interval,
            )
        return allowed
