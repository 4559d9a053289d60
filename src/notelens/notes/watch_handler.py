"""Auto-indexing watch handler — debounced re-indexing of saved notes.

Bridges file events from ``NoteWatcher`` to the indexing service:

* **Debounce** — editors fire several events per save; each path waits for
  ``debounce_ms`` of silence before it is processed once.
* **Created/modified** — the note is parsed and re-embedded through
  ``update_document``.
* **Deleted** — the note's record is dropped through ``remove_document``.

Failures are logged and kept in :attr:`AutoIndexHandler.last_error`; the
watcher keeps running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from notelens.config import WatchConfig
    from notelens.notes.parser import NoteParser
    from notelens.vector.indexing import VectorIndexingService

logger = logging.getLogger(__name__)


class AutoIndexHandler:
    """Processes note file changes with per-path debounce.

    Call :meth:`handle_change` from the event loop thread (``NoteWatcher``
    takes care of crossing from the watchdog thread).

    Parameters
    ----------
    config:
        Watch-specific settings (debounce window).
    parser:
        Notes parser for reading individual files and deriving note ids.
    indexing:
        Indexing service that owns the vector store writes.
    """

    def __init__(
        self,
        config: WatchConfig,
        parser: NoteParser,
        indexing: VectorIndexingService,
    ) -> None:
        self._config = config
        self._parser = parser
        self._indexing = indexing

        # Debounce state: path → scheduled asyncio.TimerHandle
        self._pending: dict[Path, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

        self.indexed_count = 0
        self.removed_count = 0
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def handle_change(self, path: Path, event_type: str) -> None:
        """Schedule debounced processing of *path* on the running loop."""
        loop = asyncio.get_running_loop()

        if path in self._pending:
            self._pending[path].cancel()

        debounce_s = self._config.debounce_ms / 1000.0
        handle = loop.call_later(debounce_s, self._spawn, path, event_type)
        self._pending[path] = handle

    @property
    def pending_count(self) -> int:
        """Number of paths awaiting debounce resolution."""
        return len(self._pending)

    async def wait_idle(self) -> None:
        """Wait for all processing tasks started so far."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal processing
    # ------------------------------------------------------------------

    def _spawn(self, path: Path, event_type: str) -> None:
        self._pending.pop(path, None)
        if event_type == "deleted":
            coro = self._process_delete(path)
        else:
            coro = self._process_change(path, event_type)
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_change(self, path: Path, event_type: str) -> None:
        if not path.exists():
            logger.debug("File vanished before processing: %s", path)
            return

        try:
            note = await asyncio.to_thread(self._parser.parse_file, path)
        except Exception as exc:
            self.last_error = f"{path.name}: {exc}"
            logger.exception("Failed to parse %s", path)
            return

        try:
            await self._indexing.update_document(note)
        except Exception as exc:
            self.last_error = f"{note.id}: {exc}"
            logger.exception("Failed to index %s", path)
            return

        self.indexed_count += 1
        logger.info("Watch: %s %s", event_type, path.name)

    async def _process_delete(self, path: Path) -> None:
        try:
            note_id = self._parser.note_id_for(path)
        except ValueError:
            logger.warning("Deleted file outside the notes root: %s", path)
            return

        try:
            await self._indexing.remove_document(note_id)
        except Exception as exc:
            self.last_error = f"{note_id}: {exc}"
            logger.exception("Failed to remove index entry for %s", path)
            return

        self.removed_count += 1
        logger.info("Watch: deleted %s", path.name)
