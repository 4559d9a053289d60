"""Notes — markdown note records, folder parsing, and change watching."""

from notelens.notes.models import Note, generate_note_id
from notelens.notes.parser import NoteParser
from notelens.notes.watch_handler import AutoIndexHandler
from notelens.notes.watcher import NoteWatcher

__all__ = [
    "AutoIndexHandler",
    "Note",
    "NoteParser",
    "NoteWatcher",
    "generate_note_id",
]
