"""In-memory counter of issued dry runs."""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from ..utils.formatters import format_elapsed

__all__ = ["DryRunSnapshot", "DryRunStats"]


@dataclass(slots=True, frozen=True)
class DryRunSnapshot:
    """Point-in-time view of :class:`DryRunStats`."""

    count: int
    last_run_time: float | None
    time_since_last: float | None
    now: float

    @property
    def time_since_last_text(self) -> str:
        return format_elapsed(self.time_since_last)

    def as_dict(self) -> dict[str, object]:
        return {
            "count": self.count,
            "last_run_time": self.last_run_time,
            "time_since_last": self.time_since_last_text,
            "now": self.now,
        }

    def describe(self) -> str:
        """Multi-line summary used by the CLI stats output."""

        last = _clock_text(self.last_run_time)
        return "\n".join(
            [
                "Dry Run Statistics:",
                f"- Total count: {self.count}",
                f"- Last run: {last}",
                f"- Current time: {_clock_text(self.now)}",
                f"- Time since last run: {self.time_since_last_text}",
            ]
        )


class DryRunStats:
    """Counts dry runs; callers decide whether tracking is enabled."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._count = 0
        self._last_run_time: float | None = None

    @property
    def count(self) -> int:
        return self._count

    @property
    def last_run_time(self) -> float | None:
        return self._last_run_time

    def record(self, now: float | None = None) -> int:
        self._count += 1
        self._last_run_time = self._clock() if now is None else now
        return self._count

    def snapshot(self, now: float | None = None) -> DryRunSnapshot:
        """Compute the snapshot at call time; nothing is cached."""

        current = self._clock() if now is None else now
        since = None if self._last_run_time is None else current - self._last_run_time
        return DryRunSnapshot(
            count=self._count,
            last_run_time=self._last_run_time,
            time_since_last=since,
            now=current,
        )

    def reset(self) -> None:
        self._count = 0
        self._last_run_time = None


def _clock_text(timestamp: float | None) -> str:
    if timestamp is None:
        return "N/A"
    return datetime.fromtimestamp(timestamp).strftime("%H:%M:%S")
