"""Core types for vector search: metadata, results, and the embedder/store protocols."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Protocol, TypeAlias, runtime_checkable

from pydantic import BaseModel, Field


class NoteMetadata(BaseModel):
    """Metadata stored with a note's embedding."""

    title: str
    tags: list[str] = Field(default_factory=list)
    folder: str | None = None
    updated_at: datetime
    word_count: int | None = None


@dataclass(frozen=True, slots=True)
class SimilarNote:
    """A stored note similar to a query, with its cosine similarity score."""

    note_id: str
    similarity: float
    metadata: NoteMetadata


@dataclass(frozen=True, slots=True)
class EmbeddingItem:
    """A note embedding to be written to a store."""

    note_id: str
    embedding: list[float]
    metadata: NoteMetadata


@dataclass(frozen=True, slots=True)
class EmbeddingRecord:
    """A note embedding as persisted, with its store-write timestamp."""

    note_id: str
    embedding: list[float]
    metadata: NoteMetadata
    timestamp: float


@dataclass(frozen=True, slots=True)
class PutOutcome:
    """Per-item result of a batch write."""

    note_id: str
    ok: bool
    error: str | None = None


@dataclass(frozen=True, slots=True)
class VectorStoreStats:
    """Store summary. ``estimated_storage_bytes`` is advisory only."""

    total_count: int
    dimensions: int
    estimated_storage_bytes: int
    last_updated: float | None


class IndexingState(StrEnum):
    """What the indexing service is currently doing."""

    IDLE = "idle"
    INDEXING = "indexing"
    QUEUE_DRAINING = "queue-draining"


@dataclass(frozen=True, slots=True)
class IndexingStatus:
    """Read-only snapshot of the indexing service."""

    is_indexing: bool
    queue_length: int
    total_processed: int
    last_error: str | None = None
    state: IndexingState = IndexingState.IDLE


@dataclass(slots=True)
class IndexRunResult:
    """Outcome of one ``index_all`` run."""

    total: int = 0
    processed: int = 0
    stored: int = 0
    failed: list[str] = field(default_factory=list)
    aborted: bool = False


# Callback signature: fn(processed, total, current_note_name) -> None
IndexingProgressCallback: TypeAlias = Callable[[int, int, str | None], None]

# Early filter applied to stored metadata before scoring
MetadataFilter: TypeAlias = Callable[[NoteMetadata], bool]


@runtime_checkable
class Embedder(Protocol):
    """Protocol for text-to-vector backends.

    Implementations own their model handle. ``embed`` must auto-initialize
    and return unit-length vectors of length ``dimensions``.
    """

    @property
    def model_name(self) -> str: ...

    @property
    def dimensions(self) -> int: ...

    @property
    def is_ready(self) -> bool: ...

    async def initialize(self) -> None: ...

    async def embed(self, text: str) -> list[float]: ...

    async def batch_embed(self, texts: Sequence[str]) -> list[list[float]]: ...

    def dispose(self) -> None: ...


class VectorStore(Protocol):
    """Protocol for vector storage backends.

    Implementations:
    - ChromaVectorStore: persistent, on-disk (chromadb)
    - MemoryVectorStore: in-process, for tests and ephemeral use
    """

    async def put(self, note_id: str, embedding: list[float], metadata: NoteMetadata) -> None:
        """Insert or replace the record for ``note_id``."""
        ...

    async def find_similar(
        self,
        query_embedding: Sequence[float],
        limit: int = 10,
        threshold: float = 0.5,
        exclude_ids: Sequence[str] = (),
        metadata_filter: MetadataFilter | None = None,
    ) -> list[SimilarNote]:
        """Brute-force cosine search, descending by similarity."""
        ...

    async def update(
        self,
        note_id: str,
        embedding: list[float],
        metadata: NoteMetadata | None = None,
    ) -> None:
        """Replace the embedding, keeping stored metadata when none is given.

        Raises:
            NotFoundError: No stored record and no metadata supplied.
        """
        ...

    async def remove(self, note_id: str) -> None: ...

    async def has(self, note_id: str) -> bool: ...

    async def get(self, note_id: str) -> EmbeddingRecord | None: ...

    async def batch_put(self, items: Sequence[EmbeddingItem]) -> list[PutOutcome]:
        """Write many records; returns one outcome per item, in input order."""
        ...

    async def get_stats(self) -> VectorStoreStats: ...

    async def clear(self) -> None: ...
