"""In-memory editor host managing open documents and their editors."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional

from ..ui.events import (
    ActiveEditorChanged,
    DocumentClosed,
    DocumentModified,
    DocumentOpened,
    DocumentSaved,
    DocumentWillSave,
    EventBus,
    SelectionChanged,
)
from .document_model import DocumentMetadata, DocumentState, SelectionRange, TextEditor

__all__ = ["EditorWorkspace", "guess_language"]

LOGGER = logging.getLogger(__name__)

_LANGUAGE_BY_SUFFIX: dict[str, str] = {
    ".sql": "sql",
    ".bq": "sql",
    ".md": "markdown",
    ".txt": "plaintext",
}


def guess_language(path: Path | None) -> str:
    if path is None:
        return "plaintext"
    return _LANGUAGE_BY_SUFFIX.get(path.suffix.lower(), "plaintext")


def _normalize_path(path: Path | str | None) -> Path | None:
    if path is None:
        return None
    return Path(path).expanduser().resolve()


class EditorWorkspace:
    """Tracks open editors, the active one, and publishes editor events.

    Every mutation goes through the workspace so subscribers on the
    :class:`EventBus` see the same sequence an editor host would emit.
    """

    def __init__(self, bus: EventBus | None = None) -> None:
        self._bus = bus or EventBus()
        self._editors: Dict[str, TextEditor] = {}
        self._order: List[str] = []
        self._active_editor_id: str | None = None

    @property
    def bus(self) -> EventBus:
        return self._bus

    # ------------------------------------------------------------------
    # Editor lifecycle helpers
    # ------------------------------------------------------------------
    def open_document(
        self,
        text: str = "",
        *,
        path: Path | str | None = None,
        language: str | None = None,
        make_active: bool = True,
    ) -> TextEditor:
        """Open ``text`` in a new editor and publish :class:`DocumentOpened`."""

        resolved_path = _normalize_path(path)
        metadata = DocumentMetadata(
            path=resolved_path,
            language=language or guess_language(resolved_path),
        )
        editor = TextEditor(document=DocumentState(text=text, metadata=metadata))
        self._editors[editor.id] = editor
        self._order.append(editor.id)
        LOGGER.debug("Opened %s in editor %s", editor.document.key, editor.id)
        if make_active or self._active_editor_id is None:
            self.set_active_editor(editor.id)
        self._bus.publish(DocumentOpened(document=editor.document))
        return editor

    def open_path(self, path: Path | str, *, make_active: bool = True) -> TextEditor:
        """Read ``path`` from disk and open it."""

        resolved = Path(path).expanduser().resolve()
        text = resolved.read_text(encoding="utf-8")
        return self.open_document(text, path=resolved, make_active=make_active)

    def close_document(self, key: str, *, save: bool = False) -> DocumentState:
        """Close every editor showing ``key``.

        With ``save=True`` the host behaves like a save-on-close: the
        will-save notification precedes the close and the save completes
        afterwards.
        """

        editors = [editor for editor in self.iter_editors() if editor.document.key == key]
        if not editors:
            raise KeyError(f"Unknown document: {key}")
        document = editors[0].document
        if save:
            self._bus.publish(DocumentWillSave(document=document))

        active_closed = False
        for editor in editors:
            index = self._order.index(editor.id)
            self._order.pop(index)
            self._editors.pop(editor.id, None)
            if editor.id == self._active_editor_id:
                active_closed = True
        if active_closed:
            self._active_editor_id = self._order[-1] if self._order else None
            self._bus.publish(ActiveEditorChanged(editor=self.active_editor()))

        self._bus.publish(DocumentClosed(document=document))
        if save:
            self._bus.publish(DocumentSaved(document=document))
        return document

    def set_active_editor(self, editor_id: str | None) -> TextEditor | None:
        """Focus ``editor_id`` (or nothing) and notify subscribers."""

        if editor_id is not None and editor_id not in self._editors:
            raise KeyError(f"Unknown editor_id: {editor_id}")
        if self._active_editor_id == editor_id:
            return self.active_editor()
        self._active_editor_id = editor_id
        editor = self.active_editor()
        self._bus.publish(ActiveEditorChanged(editor=editor))
        return editor

    # ------------------------------------------------------------------
    # Document mutations
    # ------------------------------------------------------------------
    def edit(self, key: str, new_text: str) -> DocumentState:
        """Replace a document's text, bumping its version."""

        document = self.require_document(key)
        document.update_text(new_text)
        for editor in self.iter_editors():
            if editor.document.key == key:
                editor.selection = editor.selection.clamp(len(new_text))
        self._bus.publish(DocumentModified(document=document, version=document.version))
        return document

    def select(self, editor_id: str, start: int, end: int) -> TextEditor:
        """Move the selection of ``editor_id`` and publish :class:`SelectionChanged`."""

        editor = self._editors.get(editor_id)
        if editor is None:
            raise KeyError(f"Unknown editor_id: {editor_id}")
        editor.selection = SelectionRange(start, end).clamp(len(editor.document.text))
        self._bus.publish(SelectionChanged(editor=editor))
        return editor

    def save(self, key: str) -> DocumentState:
        """Publish the will-save / saved pair for ``key``.

        Documents with a path are written to disk.
        """

        document = self.require_document(key)
        self._bus.publish(DocumentWillSave(document=document))
        if document.path is not None:
            document.path.write_text(document.text, encoding="utf-8")
        self._bus.publish(DocumentSaved(document=document))
        return document

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------
    def active_editor(self) -> TextEditor | None:
        if self._active_editor_id is None:
            return None
        return self._editors.get(self._active_editor_id)

    def find_editor(self, key: str) -> Optional[TextEditor]:
        """Return the first visible editor showing ``key``, active one first."""

        active = self.active_editor()
        if active is not None and active.document.key == key:
            return active
        for editor in self.iter_editors():
            if editor.document.key == key:
                return editor
        return None

    def require_document(self, key: str) -> DocumentState:
        editor = self.find_editor(key)
        if editor is None:
            raise KeyError(f"Unknown document: {key}")
        return editor.document

    def iter_editors(self) -> Iterator[TextEditor]:
        for editor_id in self._order:
            yield self._editors[editor_id]

    def editor_ids(self) -> Iterable[str]:
        return tuple(self._order)

    def editor_count(self) -> int:
        return len(self._order)
