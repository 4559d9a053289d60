"""Data model for notes consumed by the semantic index."""

from __future__ import annotations

import re
from datetime import datetime

from pydantic import BaseModel, Field

from notelens.vector.types import NoteMetadata

_ID_UNSAFE = re.compile(r"[^a-zA-Z0-9_-]")
_FOLDER_UNSAFE = re.compile(r"[^a-zA-Z0-9_/-]")


def generate_note_id(name: str, folder: str | None = None) -> str:
    """Derive a stable note id from its file stem and folder.

    ``generate_note_id("My Note", "Projects/2024")`` -> ``"projects/2024/my_note"``
    """
    clean_name = _ID_UNSAFE.sub("_", name).lower()
    prefix = _FOLDER_UNSAFE.sub("_", folder).lower() + "/" if folder else ""
    return prefix + clean_name


class Note(BaseModel):
    """A markdown note as seen by the indexer.

    Only these fields are read; everything else about a note belongs to the
    note storage layer.
    """

    id: str
    name: str
    content: str = ""
    tags: list[str] = Field(default_factory=list)
    folder: str | None = None
    updated_at: datetime = Field(default_factory=datetime.now)
    word_count: int | None = None

    @property
    def title(self) -> str:
        """Display title: the file name without its ``.md`` extension."""
        return self.name.removesuffix(".md")

    def metadata(self) -> NoteMetadata:
        """Metadata snapshot stored alongside the note's embedding."""
        return NoteMetadata(
            title=self.title,
            tags=list(self.tags),
            folder=self.folder,
            updated_at=self.updated_at,
            word_count=self.word_count,
        )
