"""Vector search — local embeddings, vector stores, indexing, and similarity search."""

from notelens.vector.embedding_service import EmbeddingService, create_embedder
from notelens.vector.indexing import VectorIndexingService
from notelens.vector.memory_store import MemoryVectorStore
from notelens.vector.search import SemanticSearch, similarity_label
from notelens.vector.similarity import cosine_similarity
from notelens.vector.types import (
    Embedder,
    EmbeddingItem,
    EmbeddingRecord,
    IndexingState,
    IndexingStatus,
    IndexRunResult,
    NoteMetadata,
    PutOutcome,
    SimilarNote,
    VectorStore,
    VectorStoreStats,
)

__all__ = [
    "Embedder",
    "EmbeddingItem",
    "EmbeddingRecord",
    "EmbeddingService",
    "IndexRunResult",
    "IndexingState",
    "IndexingStatus",
    "MemoryVectorStore",
    "NoteMetadata",
    "PutOutcome",
    "SemanticSearch",
    "SimilarNote",
    "VectorIndexingService",
    "VectorStore",
    "VectorStoreStats",
    "cosine_similarity",
    "create_embedder",
    "similarity_label",
]
