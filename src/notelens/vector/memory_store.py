"""In-memory vector store — same contract as the persistent store, no durability."""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

import numpy as np

from notelens.errors import NotFoundError
from notelens.vector.similarity import cosine_similarities
from notelens.vector.types import (
    EmbeddingItem,
    EmbeddingRecord,
    MetadataFilter,
    NoteMetadata,
    PutOutcome,
    SimilarNote,
    VectorStoreStats,
)

logger = logging.getLogger(__name__)


class MemoryVectorStore:
    """Dict-backed vector store for tests and ephemeral sessions."""

    def __init__(self) -> None:
        self._records: dict[str, EmbeddingRecord] = {}

    async def put(self, note_id: str, embedding: list[float], metadata: NoteMetadata) -> None:
        self._records[note_id] = EmbeddingRecord(
            note_id=note_id,
            embedding=list(embedding),
            metadata=metadata.model_copy(deep=True),
            timestamp=time.time(),
        )

    async def find_similar(
        self,
        query_embedding: Sequence[float],
        limit: int = 10,
        threshold: float = 0.5,
        exclude_ids: Sequence[str] = (),
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SimilarNote]:
        excluded = set(exclude_ids)
        candidates = [
            r
            for r in self._records.values()
            if r.note_id not in excluded and (metadata_filter is None or metadata_filter(r.metadata))
        ]
        if not candidates or limit <= 0:
            return []

        matrix = np.asarray([r.embedding for r in candidates], dtype=np.float64)
        scores = cosine_similarities(query_embedding, matrix)

        results = [
            SimilarNote(
                note_id=r.note_id,
                similarity=float(score),
                metadata=r.metadata.model_copy(deep=True),
            )
            for r, score in zip(candidates, scores, strict=True)
            if score >= threshold
        ]
        results.sort(key=lambda s: s.similarity, reverse=True)
        return results[:limit]

    async def update(
        self,
        note_id: str,
        embedding: list[float],
        metadata: NoteMetadata | None = None,
    ) -> None:
        if metadata is None:
            existing = self._records.get(note_id)
            if existing is None:
                raise NotFoundError(note_id, "metadata required for new embeddings")
            metadata = existing.metadata
        await self.put(note_id, embedding, metadata)

    async def remove(self, note_id: str) -> None:
        self._records.pop(note_id, None)

    async def has(self, note_id: str) -> bool:
        return note_id in self._records

    async def get(self, note_id: str) -> EmbeddingRecord | None:
        return self._records.get(note_id)

    async def batch_put(self, items: Sequence[EmbeddingItem]) -> list[PutOutcome]:
        outcomes: list[PutOutcome] = []
        for item in items:
            await self.put(item.note_id, item.embedding, item.metadata)
            outcomes.append(PutOutcome(note_id=item.note_id, ok=True))
        return outcomes

    async def get_stats(self) -> VectorStoreStats:
        total = len(self._records)
        first = next(iter(self._records.values()), None)
        dimensions = len(first.embedding) if first is not None else 0
        last_updated = max((r.timestamp for r in self._records.values()), default=None)
        return VectorStoreStats(
            total_count=total,
            dimensions=dimensions,
            estimated_storage_bytes=total * dimensions * 8,
            last_updated=last_updated,
        )

    async def clear(self) -> None:
        self._records.clear()
        logger.debug("Cleared in-memory vector store")
