"""Dataclasses describing open SQL documents, selections and editors."""

from __future__ import annotations

import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

__all__ = [
    "DocumentMetadata",
    "DocumentState",
    "DocumentVersion",
    "SelectionRange",
    "TextEditor",
    "document_key_for_path",
    "is_eligible_for_analysis",
]

DEFAULT_LANGUAGES: tuple[str, ...] = ("sql",)
DEFAULT_SUFFIXES: tuple[str, ...] = (".sql",)


def _utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def _hash_text(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def document_key_for_path(path: Path | str) -> str:
    """Return the stable key (a ``file://`` URI) for a document on disk."""

    return Path(path).expanduser().resolve().as_uri()


def _untitled_key() -> str:
    return f"untitled:{uuid.uuid4().hex}"


@dataclass(slots=True, frozen=True)
class DocumentVersion:
    """Identity of one document revision: key plus monotonically increasing version."""

    key: str
    version: int
    content_hash: str


@dataclass(slots=True)
class DocumentMetadata:
    """Metadata describing a loaded document."""

    path: Optional[Path] = None
    language: str = "sql"
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass(slots=True, frozen=True)
class SelectionRange:
    """Character offsets of an editor selection; equality is by position."""

    start: int = 0
    end: int = 0

    @property
    def is_empty(self) -> bool:
        return self.start == self.end

    def as_tuple(self) -> tuple[int, int]:
        """Return the selection as a tuple for serialization."""

        return (self.start, self.end)

    def clamp(self, length: int) -> "SelectionRange":
        start = max(0, min(int(self.start), length))
        end = max(0, min(int(self.end), length))
        if end < start:
            start, end = end, start
        return SelectionRange(start, end)


@dataclass(slots=True)
class DocumentState:
    """Text and version of one open document."""

    text: str = ""
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    key: str = ""
    version: int = 1
    content_hash: str = field(default_factory=str)

    def __post_init__(self) -> None:
        if not self.key:
            path = self.metadata.path
            self.key = document_key_for_path(path) if path is not None else _untitled_key()
        if not self.content_hash:
            self.content_hash = _hash_text(self.text)

    @property
    def language(self) -> str:
        return self.metadata.language

    @property
    def path(self) -> Path | None:
        return self.metadata.path

    def update_text(self, new_text: str) -> None:
        """Replace the document text and bump the version."""

        self.text = new_text
        self.metadata.updated_at = _utcnow()
        self.version += 1
        self.content_hash = _hash_text(new_text)

    def read(self, selection: SelectionRange | None = None) -> str:
        """Return the whole text, or the slice covered by ``selection``."""

        if selection is None:
            return self.text
        start, end = selection.clamp(len(self.text)).as_tuple()
        return self.text[start:end]

    def version_info(self) -> DocumentVersion:
        return DocumentVersion(key=self.key, version=self.version, content_hash=self.content_hash)


@dataclass(slots=True)
class TextEditor:
    """An editor view showing one document with a current selection."""

    document: DocumentState
    selection: SelectionRange = field(default_factory=SelectionRange)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def selected_text(self) -> str:
        if self.selection.is_empty:
            return ""
        return self.document.read(self.selection)


def is_eligible_for_analysis(
    document: DocumentState | None,
    *,
    languages: Iterable[str] = DEFAULT_LANGUAGES,
    suffixes: Iterable[str] = DEFAULT_SUFFIXES,
) -> bool:
    """Return True when ``document`` is a SQL document worth estimating."""

    if document is None:
        return False
    language = (document.language or "").strip().lower()
    if language and language in {item.lower() for item in languages}:
        return True
    path = document.path
    if path is None:
        return False
    return path.suffix.lower() in {item.lower() for item in suffixes}
