"""Notes folder watcher — monitors markdown files and reports changes to the event loop."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

if TYPE_CHECKING:
    from notelens.config import NotesConfig

logger = logging.getLogger(__name__)


class _NotesEventHandler(FileSystemEventHandler):
    """Filters file system events down to .md files outside excluded folders."""

    def __init__(
        self,
        notes_root: Path,
        excluded_folders: list[str],
        on_change: Callable[[Path, str], None],
    ) -> None:
        self.notes_root = notes_root
        self.excluded = set(excluded_folders)
        self.on_change = on_change

    def _should_process(self, path: str | bytes) -> bool:
        p = Path(path.decode() if isinstance(path, bytes) else path)
        if p.suffix != ".md":
            return False
        try:
            rel = p.relative_to(self.notes_root)
        except ValueError:
            return False
        return not any(part in self.excluded for part in rel.parts)

    def _emit(self, path: str | bytes, event_type: str) -> None:
        self.on_change(Path(path.decode() if isinstance(path, bytes) else path), event_type)

    def on_created(self, event: FileCreatedEvent) -> None:  # type: ignore[override]
        if not event.is_directory and self._should_process(event.src_path):
            logger.info("Note created: %s", event.src_path)
            self._emit(event.src_path, "created")

    def on_modified(self, event: FileModifiedEvent) -> None:  # type: ignore[override]
        if not event.is_directory and self._should_process(event.src_path):
            logger.debug("Note modified: %s", event.src_path)
            self._emit(event.src_path, "modified")

    def on_deleted(self, event: FileDeletedEvent) -> None:  # type: ignore[override]
        if not event.is_directory and self._should_process(event.src_path):
            logger.info("Note deleted: %s", event.src_path)
            self._emit(event.src_path, "deleted")

    def on_moved(self, event: FileMovedEvent) -> None:  # type: ignore[override]
        # A rename changes the note id: drop the old one, index the new one
        if event.is_directory:
            return
        if self._should_process(event.src_path):
            self._emit(event.src_path, "deleted")
        if self._should_process(event.dest_path):
            self._emit(event.dest_path, "created")


class NoteWatcher:
    """Watches the notes folder for file changes.

    Watchdog delivers events on its own thread; they are handed to
    *on_change* on the event loop that called :meth:`start`.

    Usage:
        watcher = NoteWatcher(config, on_change=handler.handle_change)
        watcher.start()  # non-blocking, call from inside the event loop
        ...
        watcher.stop()
    """

    def __init__(
        self,
        config: NotesConfig,
        on_change: Callable[[Path, str], None],
    ) -> None:
        self.config = config
        self._on_change = on_change
        self._loop: asyncio.AbstractEventLoop | None = None
        self.handler = _NotesEventHandler(
            notes_root=config.path,
            excluded_folders=config.excluded_folders,
            on_change=self._dispatch,
        )
        self._observer: Observer | None = None

    def _dispatch(self, path: Path, event_type: str) -> None:
        if self._loop is None:
            self._on_change(path, event_type)
        else:
            self._loop.call_soon_threadsafe(self._on_change, path, event_type)

    def start(self) -> None:
        """Start watching the notes folder (non-blocking)."""
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None
        self._observer = Observer()
        self._observer.schedule(self.handler, str(self.config.path), recursive=True)
        self._observer.start()
        logger.info("Watching notes at %s", self.config.path)

    def stop(self) -> None:
        """Stop the watcher."""
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Notes watcher stopped")
