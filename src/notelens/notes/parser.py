"""Notes parser — reads a folder of markdown files into ``Note`` records."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import TYPE_CHECKING

import frontmatter

from notelens.notes.models import Note, generate_note_id

if TYPE_CHECKING:
    from pathlib import Path

    from notelens.config import NotesConfig

logger = logging.getLogger(__name__)

TAG_PATTERN = re.compile(r"(?:^|\s)#([a-zA-Z][a-zA-Z0-9_/-]*)", re.MULTILINE)
WORD_PATTERN = re.compile(r"\S+")


class NoteParser:
    """Parses a notes folder into Note objects.

    Ids derive from the file stem and folder, so they are stable across edits
    and change only when a note is renamed or moved.
    """

    def __init__(self, config: NotesConfig) -> None:
        self.config = config
        self.notes_root = config.path

    def iter_notes(self) -> list[Note]:
        """Parse every markdown file under the notes root."""
        notes: list[Note] = []
        for md_file in sorted(self.notes_root.rglob("*.md")):
            if self.is_excluded(md_file):
                continue
            try:
                notes.append(self.parse_file(md_file))
            except Exception:
                logger.exception("Failed to parse %s", md_file)
        logger.info("Parsed %d notes from %s", len(notes), self.notes_root)
        return notes

    def is_excluded(self, path: Path) -> bool:
        try:
            rel = path.relative_to(self.notes_root)
        except ValueError:
            return True
        return any(part in self.config.excluded_folders for part in rel.parts)

    def folder_for(self, path: Path) -> str | None:
        parent = path.relative_to(self.notes_root).parent
        return parent.as_posix() if parent.parts else None

    def note_id_for(self, path: Path) -> str:
        """Id of the note stored at *path* (works for deleted files too)."""
        return generate_note_id(path.stem, self.folder_for(path))

    def parse_file(self, filepath: Path) -> Note:
        """Parse a single markdown file into a Note."""
        with open(filepath, encoding="utf-8") as f:
            post = frontmatter.load(f)

        meta = post.metadata or {}

        # Merge frontmatter tags with inline #tags, keeping first-seen order
        fm_tags = meta.get("tags") or []
        if isinstance(fm_tags, str):
            fm_tags = [t.strip() for t in fm_tags.split(",")]
        inline_tags = TAG_PATTERN.findall(post.content)
        tags = list(dict.fromkeys(str(t).lstrip("#") for t in [*fm_tags, *inline_tags] if t))

        return Note(
            id=self.note_id_for(filepath),
            name=filepath.name,
            content=post.content,
            tags=tags,
            folder=self.folder_for(filepath),
            updated_at=datetime.fromtimestamp(filepath.stat().st_mtime),
            word_count=len(WORD_PATTERN.findall(post.content)),
        )
