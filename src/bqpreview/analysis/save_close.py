"""Heuristic that tells a plain save apart from a save-on-close."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict

from .change_tracker import ChangeTracker

__all__ = ["CloseSaveDisambiguator"]

LOGGER = logging.getLogger(__name__)


class CloseSaveDisambiguator:
    """Tracks will-save notifications that are quickly followed by a close.

    A will-save arms a short timer. If the document closes while the timer
    is pending, the key is marked as closing for a grace window and the
    save-triggered analysis is suppressed. This is timing based and will
    occasionally suppress a legitimate save or miss a slow close.
    """

    def __init__(
        self,
        *,
        save_window: float = 0.3,
        close_grace: float = 1.0,
        change_tracker: ChangeTracker | None = None,
    ) -> None:
        self._save_window = save_window
        self._close_grace = close_grace
        self._change_tracker = change_tracker
        self._will_save: Dict[str, asyncio.TimerHandle] = {}
        self._closing: Dict[str, asyncio.TimerHandle] = {}

    def configure(self, *, save_window: float, close_grace: float) -> None:
        self._save_window = max(0.0, float(save_window))
        self._close_grace = max(0.0, float(close_grace))

    def will_save(self, key: str) -> None:
        """Arm (or re-arm) the save-suspected timer for ``key``."""

        previous = self._will_save.pop(key, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._will_save[key] = loop.call_later(self._save_window, self._expire_will_save, key)

    def did_close(self, key: str) -> bool:
        """Record a close; returns True when it looked like a save-on-close."""

        if self._change_tracker is not None:
            self._change_tracker.forget(key)
        handle = self._will_save.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        previous = self._closing.pop(key, None)
        if previous is not None:
            previous.cancel()
        loop = asyncio.get_running_loop()
        self._closing[key] = loop.call_later(self._close_grace, self._expire_closing, key)
        LOGGER.debug("Save-on-close detected for %s", key)
        return True

    def should_suppress(self, key: str) -> bool:
        return key in self._closing or key in self._will_save

    def is_closing(self, key: str) -> bool:
        return key in self._closing

    def save_pending(self, key: str) -> bool:
        return key in self._will_save

    def clear(self) -> None:
        for handle in (*self._will_save.values(), *self._closing.values()):
            handle.cancel()
        self._will_save.clear()
        self._closing.clear()

    def __len__(self) -> int:
        return len(self._will_save) + len(self._closing)

    def _expire_will_save(self, key: str) -> None:
        self._will_save.pop(key, None)

    def _expire_closing(self, key: str) -> None:
        self._closing.pop(key, None)
