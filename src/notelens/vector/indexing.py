"""Vector indexing service — bulk and incremental indexing of notes into a vector store.

Two paths keep the store in sync with the note collection:

* **Bulk runs** (:meth:`VectorIndexingService.index_all`) embed notes in
  fixed-size batches, flush each batch with one ``batch_put`` and report
  progress after every batch. A run can be aborted cooperatively; the check
  happens between batches, so a dispatched batch always completes.
* **Single-note operations** — a FIFO queue for newly created notes
  (:meth:`index_document`), plus direct :meth:`update_document` /
  :meth:`remove_document` calls for edits and deletions.

Every store mutation goes through one ``asyncio.Lock``, so bulk runs and
single-note operations may be used concurrently without interleaving writes.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Sequence
from typing import TYPE_CHECKING

from notelens.errors import EmbeddingError, IndexingBusyError, ModelLoadError
from notelens.vector.types import (
    EmbeddingItem,
    IndexingProgressCallback,
    IndexingState,
    IndexingStatus,
    IndexRunResult,
)

if TYPE_CHECKING:
    from notelens.notes.models import Note
    from notelens.vector.embedding_service import EmbeddingService
    from notelens.vector.types import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10
_PROGRESS_LOG_EVERY = 50


class VectorIndexingService:
    """Keeps a vector store synchronized with a mutable note collection.

    Instantiate once per process and share it; :meth:`get_status` is the
    process-wide view of indexing activity.

    Parameters
    ----------
    embedding_service:
        Produces note embeddings (with per-note caching).
    store:
        Destination vector store.
    batch_size:
        Default number of notes per bulk batch.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        store: VectorStore,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        self._embedding_service = embedding_service
        self._store = store
        self._batch_size = batch_size

        self._queue: deque[Note] = deque()
        self._bulk_active = False
        self._draining = False
        self._total_processed = 0
        self._last_error: str | None = None
        self._abort_event: asyncio.Event | None = None
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> IndexingState:
        if self._bulk_active:
            return IndexingState.INDEXING
        if self._draining:
            return IndexingState.QUEUE_DRAINING
        return IndexingState.IDLE

    async def index_document(self, note: Note) -> None:
        """Queue a note for indexing; drains the queue now unless work is in flight."""
        self._queue.append(note)
        if not self._bulk_active and not self._draining:
            await self._drain_queue()

    async def index_all(
        self,
        notes: Sequence[Note],
        batch_size: int | None = None,
        force_reindex: bool = False,
        on_progress: IndexingProgressCallback | None = None,
    ) -> IndexRunResult:
        """Index a note collection in batches.

        Without ``force_reindex`` only notes lacking a stored embedding are
        processed. Per-note embedding failures are logged, recorded in
        ``last_error`` and skipped; they still count as processed.

        Raises:
            IndexingBusyError: Another bulk run is active.
            StoreIOError: The store failed as a whole.
        """
        if self._bulk_active:
            raise IndexingBusyError("A bulk indexing run is already in progress")

        size = self._batch_size if batch_size is None else batch_size
        if size < 1:
            raise ValueError(f"batch_size must be positive, got {size}")

        self._bulk_active = True
        self._total_processed = 0
        self._last_error = None
        self._abort_event = asyncio.Event()
        result = IndexRunResult()

        logger.info("Starting indexing of %d notes", len(notes))

        try:
            await self._embedding_service.initialize()

            if force_reindex:
                pending = list(notes)
            else:
                pending = [note for note in notes if not await self._store.has(note.id)]

            result.total = len(pending)
            logger.info("%d notes need indexing", len(pending))

            for i in range(0, len(pending), size):
                if self._abort_event.is_set():
                    logger.info("Indexing aborted after %d notes", result.processed)
                    result.aborted = True
                    break

                batch = pending[i : i + size]
                stored, failed = await self._process_batch(batch)

                self._total_processed += len(batch)
                result.processed += len(batch)
                result.stored += stored
                result.failed.extend(failed)

                if on_progress is not None:
                    on_progress(result.processed, len(pending), batch[-1].name)

                done = i + len(batch)
                if done % _PROGRESS_LOG_EVERY < size or done >= len(pending):
                    logger.info("Indexed %d/%d notes", result.processed, len(pending))

            if not result.aborted:
                logger.info(
                    "Indexing complete: %d stored, %d failed", result.stored, len(result.failed)
                )
        except Exception as exc:
            self._last_error = str(exc)
            logger.error("Indexing failed: %s", exc)
            raise
        finally:
            self._bulk_active = False
            self._abort_event = None

        if self._queue and not self._draining:
            await self._drain_queue()

        return result

    def abort(self) -> None:
        """Stop the active bulk run before its next batch. No-op when idle."""
        if self._abort_event is not None:
            self._abort_event.set()

    async def update_document(self, note: Note) -> None:
        """Re-embed an edited note and replace its stored record. Errors propagate."""
        try:
            embedding = await self._embedding_service.embed_document(note)
            async with self._write_lock:
                await self._store.update(note.id, embedding, note.metadata())
        except Exception:
            logger.error("Failed to update note %s", note.id)
            raise
        logger.debug("Updated embedding for %s", note.id)

    async def remove_document(self, note_id: str) -> None:
        """Delete a note's record. Errors propagate."""
        try:
            async with self._write_lock:
                await self._store.remove(note_id)
        except Exception:
            logger.error("Failed to remove note %s", note_id)
            raise

    def get_status(self) -> IndexingStatus:
        return IndexingStatus(
            is_indexing=self._bulk_active,
            queue_length=len(self._queue),
            total_processed=self._total_processed,
            last_error=self._last_error,
            state=self.state,
        )

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def total_processed(self) -> int:
        return self._total_processed

    def clear_queue(self) -> None:
        self._queue.clear()

    def reset_processed_count(self) -> None:
        self._total_processed = 0

    # ------------------------------------------------------------------
    # Internal processing
    # ------------------------------------------------------------------

    async def _process_batch(self, batch: Sequence[Note]) -> tuple[int, list[str]]:
        """Embed and store one batch. Returns (stored count, failed note ids)."""
        embeddings = await self._embedding_service.batch_embed_documents(batch)

        items = [
            EmbeddingItem(note_id=note.id, embedding=embeddings[note.id], metadata=note.metadata())
            for note in batch
            if note.id in embeddings
        ]
        failed = [note.id for note in batch if note.id not in embeddings]
        if failed:
            self._last_error = f"Failed to embed {len(failed)} note(s): {', '.join(failed)}"

        if not items:
            return 0, failed

        async with self._write_lock:
            outcomes = await self._store.batch_put(items)

        stored = 0
        for outcome in outcomes:
            if outcome.ok:
                stored += 1
            else:
                failed.append(outcome.note_id)
                self._last_error = f"Failed to store {outcome.note_id}: {outcome.error}"
        return stored, failed

    async def _drain_queue(self) -> None:
        """Process queued notes one at a time, in FIFO order.

        Embedding failures skip the note. A store failure puts the note back
        at the head of the queue and propagates; the next drain retries it.
        """
        self._draining = True
        try:
            if not self._embedding_service.is_ready:
                await self._embedding_service.initialize()

            while self._queue:
                note = self._queue.popleft()
                try:
                    embedding = await self._embedding_service.embed_document(note)
                except (EmbeddingError, ModelLoadError) as exc:
                    self._last_error = str(exc)
                    logger.exception("Failed to index note %s", note.id)
                    continue

                try:
                    async with self._write_lock:
                        await self._store.put(note.id, embedding, note.metadata())
                except Exception:
                    self._queue.appendleft(note)
                    raise
                self._total_processed += 1
        except Exception as exc:
            self._last_error = str(exc)
            raise
        finally:
            self._draining = False
