"""Typed publish/subscribe bus between the editor host, the analysis
coordinator and the presentation layer.

The editor host publishes document and selection events; the coordinator
reacts to them and publishes result and notice events, which the status
presenter renders. Everything runs on the event loop thread.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Generic, List, TypeVar
from weakref import WeakMethod

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from ..analysis.result_state import AnalysisResult
    from ..editor.document_model import DocumentState, TextEditor

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")
Handler = Callable[[E], None]


@dataclass(slots=True)
class Event:
    """Base class for bus events."""


# ---------------------------------------------------------------------------
# Editor events
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class DocumentOpened(Event):
    document: "DocumentState"


@dataclass(slots=True)
class DocumentWillSave(Event):
    """Published right before a document is written.

    A will-save that is directly followed by :class:`DocumentClosed` is how
    a save-on-close looks from the outside.
    """

    document: "DocumentState"


@dataclass(slots=True)
class DocumentSaved(Event):
    document: "DocumentState"


@dataclass(slots=True)
class DocumentClosed(Event):
    document: "DocumentState"


@dataclass(slots=True)
class DocumentModified(Event):
    """Published after every text change; ``version`` is the new version."""

    document: "DocumentState"
    version: int


@dataclass(slots=True)
class SelectionChanged(Event):
    editor: "TextEditor"


@dataclass(slots=True)
class ActiveEditorChanged(Event):
    """Focus moved; ``editor`` is None once the last editor closed."""

    editor: "TextEditor | None"


# ---------------------------------------------------------------------------
# Presentation events
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class AnalysisStateChanged(Event):
    """Snapshot of the result state after a transition."""

    result: "AnalysisResult"


@dataclass(slots=True)
class NoticePosted(Event):
    """User-facing notice; ``level`` is ``info``, ``warning`` or ``error``."""

    message: str
    level: str = "info"


@dataclass(slots=True)
class StatusMessage(Event):
    """Status indicator text; ``timeout_ms=0`` keeps it until replaced."""

    message: str
    tooltip: str | None = None
    timeout_ms: int = 0


@dataclass(slots=True)
class SettingsChanged(Event):
    """Settings were replaced at runtime; ``settings`` is the redacted payload."""

    settings: dict[str, Any]


# Keystrokes and drag-selects publish these in bursts
QUIET_EVENT_TYPES: frozenset[type] = frozenset({DocumentModified, SelectionChanged})


class _Subscription:
    """A registered handler.

    Bound methods are held through :class:`WeakMethod` so a subscriber that
    goes away is dropped on the next publish; plain functions and lambdas
    are held strongly.
    """

    __slots__ = ("_target", "_weak", "name")

    def __init__(self, handler: Handler) -> None:
        self.name = _describe(handler)
        self._weak = False
        self._target: Any = handler
        if hasattr(handler, "__self__") and hasattr(handler, "__func__"):
            try:
                self._target = WeakMethod(handler)  # type: ignore[arg-type]
                self._weak = True
            except TypeError:
                pass

    def resolve(self) -> Handler | None:
        return self._target() if self._weak else self._target

    def matches(self, handler: Handler) -> bool:
        current = self.resolve()
        return current is not None and current == handler


class EventBus(Generic[E]):
    """Dispatches events to handlers registered for their exact type.

    Handlers run synchronously in registration order. A handler that
    raises is logged and the remaining handlers still run. Registering the
    same handler twice delivers the event twice. Not thread-safe.
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: Dict[type, List[_Subscription]] = {}

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        subscription = _Subscription(handler)
        self._subscriptions.setdefault(event_type, []).append(subscription)
        logger.debug("%s subscribed to %s", subscription.name, event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Remove the first registration of ``handler``; unknown handlers are ignored."""

        subscriptions = self._subscriptions.get(event_type, [])
        for index, subscription in enumerate(subscriptions):
            if subscription.matches(handler):
                del subscriptions[index]
                logger.debug("%s unsubscribed from %s", subscription.name, event_type.__name__)
                return

    def publish(self, event: E) -> int:
        """Deliver ``event``; returns how many handlers were invoked."""

        event_type = type(event)
        subscriptions = self._subscriptions.get(event_type)
        if not subscriptions:
            return 0
        if event_type not in QUIET_EVENT_TYPES:
            logger.debug("Publishing %s to %d handler(s)", event_type.__name__, len(subscriptions))

        delivered = 0
        stale: list[_Subscription] = []
        # Handlers may (un)subscribe while we iterate
        for subscription in list(subscriptions):
            handler = subscription.resolve()
            if handler is None:
                stale.append(subscription)
                continue
            delivered += 1
            try:
                handler(event)
            except Exception:
                logger.exception(
                    "Handler %s failed for %s", subscription.name, event_type.__name__
                )
        for subscription in stale:
            if subscription in subscriptions:
                subscriptions.remove(subscription)
        return delivered

    def clear(self) -> None:
        self._subscriptions.clear()

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Registered handlers for ``event_type``, or across all types."""

        if event_type is not None:
            return len(self._subscriptions.get(event_type, ()))
        return sum(len(items) for items in self._subscriptions.values())


def _describe(handler: Handler) -> str:
    owner = getattr(handler, "__self__", None)
    func = getattr(handler, "__func__", None)
    if owner is not None and func is not None:
        return f"{type(owner).__name__}.{func.__name__}"
    return getattr(handler, "__qualname__", None) or repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "QUIET_EVENT_TYPES",
    "DocumentOpened",
    "DocumentWillSave",
    "DocumentSaved",
    "DocumentClosed",
    "DocumentModified",
    "SelectionChanged",
    "ActiveEditorChanged",
    "AnalysisStateChanged",
    "NoticePosted",
    "StatusMessage",
    "SettingsChanged",
]
