"""At-most-one-in-flight execution of dry-run calls."""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterator, TypeVar, Union

__all__ = ["RunState", "SingleFlightExecutor", "SKIPPED", "Skipped"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class Skipped:
    """Sentinel returned by :meth:`SingleFlightExecutor.run` when busy."""

    _instance: "Skipped | None" = None

    def __new__(cls) -> "Skipped":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "SKIPPED"


SKIPPED = Skipped()


@dataclass(slots=True)
class RunState:
    """Shared run bookkeeping; ``running`` is the only concurrency gate."""

    running: bool = False
    last_run_time: float | None = None
    last_error: str | None = None


class SingleFlightExecutor:
    """Runs one coroutine at a time and drops calls that arrive while busy.

    Late callers are not queued: they get :data:`SKIPPED` back and the
    coroutine factory is never invoked for them.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._state = RunState()

    @property
    def running(self) -> bool:
        return self._state.running

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def last_run_time(self) -> float | None:
        return self._state.last_run_time

    async def run(self, fn: Callable[[], Awaitable[T]]) -> Union[T, Skipped]:
        """Await ``fn()`` unless another call is already in flight."""

        if self._state.running:
            LOGGER.debug("Dry run already in progress; dropping request")
            return SKIPPED
        with self._acquire():
            try:
                result = await fn()
            except BaseException as exc:
                self._state.last_error = str(exc) or exc.__class__.__name__
                raise
            self._state.last_run_time = self._clock()
            self._state.last_error = None
            return result

    def reset(self) -> None:
        """Forget the last run time and error; ``running`` belongs to the active call."""

        self._state.last_run_time = None
        self._state.last_error = None

    @contextmanager
    def _acquire(self) -> Iterator[RunState]:
        self._state.running = True
        try:
            yield self._state
        finally:
            self._state.running = False
