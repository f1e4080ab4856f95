"""Shared test helpers and stub classes.

Import from here instead of duplicating these classes in individual test files.
"""

from __future__ import annotations

import asyncio
from typing import Iterable

from bqpreview.services.bigquery import DryRunResult


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class FakeEstimator:
    """Estimator stub returning queued results and recording queries.

    Set ``gate`` to an :class:`asyncio.Event` to hold calls until it is set.
    """

    def __init__(self, results: Iterable[DryRunResult] | None = None, *, default_bytes: int = 1024) -> None:
        self._results = list(results or [])
        self._default = DryRunResult(scanned_bytes=default_bytes)
        self.queries: list[str] = []
        self.gate: asyncio.Event | None = None
        self.started = asyncio.Event()

    @property
    def calls(self) -> int:
        return len(self.queries)

    async def estimate(self, query: str) -> DryRunResult:
        self.queries.append(query)
        self.started.set()
        if self.gate is not None:
            await self.gate.wait()
        if self._results:
            return self._results.pop(0)
        return self._default


class RaisingEstimator:
    def __init__(self, exc: Exception) -> None:
        self._exc = exc

    async def estimate(self, query: str) -> DryRunResult:
        raise self._exc
