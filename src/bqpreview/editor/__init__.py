"""Editor package containing document models and the in-memory workspace."""

from .document_model import (
    DocumentMetadata,
    DocumentState,
    DocumentVersion,
    SelectionRange,
    TextEditor,
    document_key_for_path,
    is_eligible_for_analysis,
)
from .workspace import EditorWorkspace

__all__ = [
    "DocumentMetadata",
    "DocumentState",
    "DocumentVersion",
    "EditorWorkspace",
    "SelectionRange",
    "TextEditor",
    "document_key_for_path",
    "is_eligible_for_analysis",
]
