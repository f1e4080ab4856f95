"""In-process trace hooks for the analysis pipeline.

Nothing leaves the process: traces are delivered to registered callbacks
(tests, a debug console, a future metrics exporter) and logged at DEBUG.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Callable, Mapping, Protocol

__all__ = [
    "ANALYSIS_COMPLETED",
    "ANALYSIS_GATED",
    "InMemoryTraceSink",
    "TraceEvent",
    "TraceListener",
    "TraceSink",
    "attach_sink",
    "clear_event_listeners",
    "emit",
    "register_event_listener",
    "unregister_event_listener",
]

LOGGER = logging.getLogger(__name__)

ANALYSIS_GATED = "analysis.gated"
ANALYSIS_COMPLETED = "analysis.completed"

TraceListener = Callable[[dict[str, Any]], None]

_listeners: dict[str, list[TraceListener]] = {}


@dataclass(slots=True)
class TraceEvent:
    name: str
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)


class TraceSink(Protocol):
    def record(self, event: TraceEvent) -> None:  # pragma: no cover - protocol stub
        ...


class InMemoryTraceSink:
    """Bounded buffer of the most recent traces."""

    def __init__(self, capacity: int = 200) -> None:
        self._events: deque[TraceEvent] = deque(maxlen=max(10, capacity))
        self._lock = Lock()

    @property
    def capacity(self) -> int:
        return self._events.maxlen or 0

    def record(self, event: TraceEvent) -> None:
        with self._lock:
            self._events.append(event)

    def tail(self, limit: int | None = None) -> list[TraceEvent]:
        """Return the buffered events, oldest first; ``limit`` keeps the newest ones."""

        with self._lock:
            snapshot = list(self._events)
        if limit is not None and limit < len(snapshot):
            return snapshot[len(snapshot) - limit :]
        return snapshot

    def names(self) -> list[str]:
        return [event.name for event in self.tail()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


def register_event_listener(event_name: str, callback: TraceListener) -> None:
    """Call ``callback`` with the payload whenever ``event_name`` is emitted."""

    if not event_name:
        return
    registered = _listeners.setdefault(event_name, [])
    if callback not in registered:
        registered.append(callback)


def unregister_event_listener(event_name: str, callback: TraceListener) -> None:
    registered = _listeners.get(event_name)
    if registered is None or callback not in registered:
        return
    registered.remove(callback)
    if not registered:
        del _listeners[event_name]


def clear_event_listeners() -> None:
    _listeners.clear()


def attach_sink(sink: TraceSink, *event_names: str) -> Callable[[], None]:
    """Record the named traces into ``sink``; returns a callable that detaches it."""

    def _record(payload: dict[str, Any]) -> None:
        sink.record(TraceEvent(name=str(payload.get("event", "")), payload=payload))

    for name in event_names:
        register_event_listener(name, _record)

    def _detach() -> None:
        for name in event_names:
            unregister_event_listener(name, _record)

    return _detach


def emit(event_name: str, payload: Mapping[str, Any] | None = None) -> None:
    """Deliver a trace to its listeners; listener failures are logged and ignored."""

    if not event_name:
        return
    trace = {"event": event_name, **(payload or {})}
    for callback in tuple(_listeners.get(event_name, ())):
        try:
            callback(dict(trace))
        except Exception:
            LOGGER.debug("Trace listener %r failed for %s", callback, event_name, exc_info=True)
    LOGGER.debug("Trace %s: %s", event_name, trace)
