"""Per-document version bookkeeping used to detect unseen edits."""

from __future__ import annotations

import logging
from typing import Dict, Protocol

__all__ = ["ChangeTracker", "VersionedDocument"]

LOGGER = logging.getLogger(__name__)


class VersionedDocument(Protocol):
    """Minimal document surface the tracker reads."""

    @property
    def key(self) -> str:  # pragma: no cover - protocol
        ...

    @property
    def version(self) -> int:  # pragma: no cover - protocol
        ...


class ChangeTracker:
    """Remembers the last observed version of every open document.

    A document that was never observed counts as changed. Entries must be
    dropped with :meth:`forget` once the document closes, otherwise the
    map grows with every key the host ever hands out.
    """

    def __init__(self) -> None:
        self._versions: Dict[str, int] = {}

    def has_changed(self, document: VersionedDocument) -> bool:
        """Return True and record the version when it differs from the last one seen."""

        key = document.key
        version = document.version
        if self._versions.get(key) == version:
            return False
        self._versions[key] = version
        LOGGER.debug("Observed %s at version %s", key, version)
        return True

    def last_version(self, key: str) -> int | None:
        return self._versions.get(key)

    def forget(self, key: str) -> bool:
        """Drop ``key``; returns True when an entry existed."""

        return self._versions.pop(key, None) is not None

    def clear(self) -> None:
        self._versions.clear()

    def __len__(self) -> int:
        return len(self._versions)

    def __contains__(self, key: object) -> bool:
        return key in self._versions
