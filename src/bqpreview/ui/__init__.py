"""UI package holding the event bus and the status presenter."""

from .events import EventBus

__all__ = ["EventBus"]
