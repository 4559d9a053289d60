"""Persistent vector store — ChromaDB-backed note embeddings with brute-force cosine search."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import TYPE_CHECKING, Any

import chromadb
import numpy as np
from chromadb.config import Settings as ChromaSettings

from notelens.errors import NotFoundError, StoreIOError
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

if TYPE_CHECKING:
    from notelens.config import StoreConfig

logger = logging.getLogger(__name__)

_SCAN_PAGE_SIZE = 512


def _to_chroma_metadata(metadata: NoteMetadata, timestamp: float) -> dict[str, str | int | float]:
    """Flatten metadata into ChromaDB scalar values (no None, no lists; tags as JSON)."""
    flat: dict[str, str | int | float] = {
        "title": metadata.title,
        "tags": json.dumps(metadata.tags),
        "updated_at": metadata.updated_at.isoformat(),
        "timestamp": timestamp,
    }
    if metadata.folder is not None:
        flat["folder"] = metadata.folder
    if metadata.word_count is not None:
        flat["word_count"] = metadata.word_count
    return flat


def _from_chroma_metadata(raw: dict[str, Any]) -> tuple[NoteMetadata, float]:
    tags = json.loads(raw.get("tags") or "[]")
    word_count = raw.get("word_count")
    metadata = NoteMetadata(
        title=str(raw.get("title", "")),
        tags=[str(t) for t in tags],
        folder=raw.get("folder"),
        updated_at=datetime.fromisoformat(str(raw["updated_at"])),
        word_count=int(word_count) if word_count is not None else None,
    )
    return metadata, float(raw.get("timestamp", 0.0))


class ChromaVectorStore:
    """Durable note-embedding store.

    One ``chromadb.PersistentClient`` is opened per instance and reused for
    every read and write. Similarity search is an exact linear scan over the
    stored vectors (paged), not the collection's approximate index, so
    thresholds and exclusions are applied exactly.
    """

    def __init__(self, config: StoreConfig) -> None:
        self.config = config
        try:
            config.persist_dir.mkdir(parents=True, exist_ok=True)
            self._client = chromadb.PersistentClient(
                path=str(config.persist_dir),
                settings=ChromaSettings(anonymized_telemetry=False),
            )
            self._collection = self._open_collection()
        except Exception as exc:
            raise StoreIOError("open", exc) from exc
        logger.info(
            "ChromaDB collection '%s' loaded (%d embeddings)",
            config.collection_name,
            self._collection.count(),
        )

    def _open_collection(self) -> Any:
        return self._client.get_or_create_collection(
            name=self.config.collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    async def _run(
        self, operation: str, fn: Callable[..., Any], /, *args: Any, **kwargs: Any
    ) -> Any:
        """Run a blocking ChromaDB call off the event loop, mapping failures to StoreIOError."""
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as exc:
            raise StoreIOError(operation, exc) from exc

    async def put(self, note_id: str, embedding: list[float], metadata: NoteMetadata) -> None:
        await self._run(
            "put",
            self._collection.upsert,
            ids=[note_id],
            embeddings=[list(embedding)],
            metadatas=[_to_chroma_metadata(metadata, time.time())],
        )

    async def find_similar(
        self,
        query_embedding: Sequence[float],
        limit: int = 10,
        threshold: float = 0.5,
        exclude_ids: Sequence[str] = (),
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SimilarNote]:
        if limit <= 0:
            return []

        excluded = set(exclude_ids)
        results: list[SimilarNote] = []
        offset = 0

        while True:
            page = await self._run(
                "scan",
                self._collection.get,
                limit=_SCAN_PAGE_SIZE,
                offset=offset,
                include=["embeddings", "metadatas"],
            )
            ids: list[str] = page["ids"]
            if not ids:
                break

            keep: list[int] = []
            metas: list[NoteMetadata] = []
            for i, note_id in enumerate(ids):
                if note_id in excluded:
                    continue
                metadata, _ = _from_chroma_metadata(page["metadatas"][i])
                if metadata_filter is not None and not metadata_filter(metadata):
                    continue
                keep.append(i)
                metas.append(metadata)

            if keep:
                matrix = np.asarray(page["embeddings"], dtype=np.float64)[keep]
                scores = cosine_similarities(query_embedding, matrix)
                for idx, metadata, score in zip(keep, metas, scores, strict=True):
                    if score >= threshold:
                        results.append(
                            SimilarNote(note_id=ids[idx], similarity=float(score), metadata=metadata)
                        )

            if len(ids) < _SCAN_PAGE_SIZE:
                break
            offset += len(ids)

        results.sort(key=lambda s: s.similarity, reverse=True)
        return results[:limit]

    async def update(
        self,
        note_id: str,
        embedding: list[float],
        metadata: NoteMetadata | None = None,
    ) -> None:
        if metadata is None:
            existing = await self.get(note_id)
            if existing is None:
                raise NotFoundError(note_id, "metadata required for new embeddings")
            metadata = existing.metadata
        await self.put(note_id, embedding, metadata)

    async def remove(self, note_id: str) -> None:
        await self._run("remove", self._collection.delete, ids=[note_id])
        logger.debug("Removed embedding for %s", note_id)

    async def has(self, note_id: str) -> bool:
        found = await self._run(
            "has", self._collection.get, ids=[note_id], include=["metadatas"]
        )
        return bool(found["ids"])

    async def get(self, note_id: str) -> EmbeddingRecord | None:
        found = await self._run(
            "get",
            self._collection.get,
            ids=[note_id],
            include=["embeddings", "metadatas"],
        )
        if not found["ids"]:
            return None
        metadata, timestamp = _from_chroma_metadata(found["metadatas"][0])
        embedding = np.asarray(found["embeddings"][0], dtype=np.float64).tolist()
        return EmbeddingRecord(
            note_id=note_id,
            embedding=embedding,
            metadata=metadata,
            timestamp=timestamp,
        )

    async def batch_put(self, items: Sequence[EmbeddingItem]) -> list[PutOutcome]:
        """Upsert items in one call; on failure, retry one by one to isolate bad items."""
        if not items:
            return []

        now = time.time()
        try:
            await self._run(
                "batch_put",
                self._collection.upsert,
                ids=[item.note_id for item in items],
                embeddings=[list(item.embedding) for item in items],
                metadatas=[_to_chroma_metadata(item.metadata, now) for item in items],
            )
            return [PutOutcome(note_id=item.note_id, ok=True) for item in items]
        except StoreIOError as exc:
            logger.warning("Batch write of %d items failed (%s), retrying per item", len(items), exc)

        outcomes: list[PutOutcome] = []
        for item in items:
            try:
                await self.put(item.note_id, item.embedding, item.metadata)
                outcomes.append(PutOutcome(note_id=item.note_id, ok=True))
            except StoreIOError as exc:
                logger.error("Failed to store embedding for %s: %s", item.note_id, exc)
                outcomes.append(PutOutcome(note_id=item.note_id, ok=False, error=str(exc)))
        return outcomes

    async def get_stats(self) -> VectorStoreStats:
        total: int = await self._run("stats", self._collection.count)
        if total == 0:
            return VectorStoreStats(
                total_count=0, dimensions=0, estimated_storage_bytes=0, last_updated=None
            )

        sample = await self._run("stats", self._collection.get, limit=1, include=["embeddings"])
        embeddings = sample["embeddings"]
        dimensions = len(embeddings[0]) if embeddings is not None and len(embeddings) else 0

        last_updated: float | None = None
        offset = 0
        while True:
            page = await self._run(
                "stats",
                self._collection.get,
                limit=_SCAN_PAGE_SIZE,
                offset=offset,
                include=["metadatas"],
            )
            for raw in page["metadatas"]:
                ts = float(raw.get("timestamp", 0.0))
                if last_updated is None or ts > last_updated:
                    last_updated = ts
            if len(page["ids"]) < _SCAN_PAGE_SIZE:
                break
            offset += len(page["ids"])

        return VectorStoreStats(
            total_count=total,
            dimensions=dimensions,
            estimated_storage_bytes=total * dimensions * 8,
            last_updated=last_updated,
        )

    async def clear(self) -> None:
        def _reset() -> Any:
            self._client.delete_collection(self.config.collection_name)
            return self._open_collection()

        self._collection = await self._run("clear", _reset)
        logger.info("Cleared collection '%s'", self.config.collection_name)
