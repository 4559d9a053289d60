"""Semantic search facade — query, tag/folder filtering, and related-note lookup."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

from notelens.errors import NotFoundError

if TYPE_CHECKING:
    from notelens.config import SearchConfig
    from notelens.notes.models import Note
    from notelens.vector.embedding_service import EmbeddingService
    from notelens.vector.types import MetadataFilter, NoteMetadata, SimilarNote, VectorStore

logger = logging.getLogger(__name__)

# (minimum score, label), checked top-down
_SIMILARITY_LABELS: list[tuple[float, str]] = [
    (0.8, "Very Similar"),
    (0.6, "Similar"),
    (0.4, "Somewhat Similar"),
]


def similarity_label(score: float) -> str:
    """Human-readable bucket for a similarity score."""
    for minimum, label in _SIMILARITY_LABELS:
        if score >= minimum:
            return label
    return "Loosely Related"


def _build_filter(tags: Sequence[str], folders: Sequence[str]) -> MetadataFilter | None:
    """Match notes carrying any of *tags* and living under any of *folders*."""
    if not tags and not folders:
        return None

    wanted_tags = {t.lower().lstrip("#") for t in tags}
    wanted_folders = [f.strip("/").lower() for f in folders]

    def _matches(meta: NoteMetadata) -> bool:
        if wanted_tags and not wanted_tags.intersection(t.lower() for t in meta.tags):
            return False
        if wanted_folders:
            folder = (meta.folder or "").strip("/").lower()
            if not any(folder == f or folder.startswith(f + "/") for f in wanted_folders):
                return False
        return True

    return _matches


class SemanticSearch:
    """Answers similarity queries against an indexed note collection."""

    def __init__(
        self,
        embedding_service: EmbeddingService,
        store: VectorStore,
        config: SearchConfig,
    ) -> None:
        self._embedding_service = embedding_service
        self._store = store
        self.config = config

    async def search(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
        tags: Sequence[str] = (),
        folders: Sequence[str] = (),
    ) -> list[SimilarNote]:
        """Semantic search over indexed notes.

        Args:
            query: Natural language search query.
            limit: Maximum results (defaults to ``config.limit``).
            threshold: Minimum cosine similarity (defaults to ``config.threshold``).
            tags: Keep only notes carrying at least one of these tags.
            folders: Keep only notes in one of these folders (or below).

        Returns:
            Matches sorted by descending similarity.
        """
        if not query.strip():
            return []

        embedding = await self._embedding_service.embed_query(query)
        results = await self._store.find_similar(
            embedding,
            limit=limit if limit is not None else self.config.limit,
            threshold=threshold if threshold is not None else self.config.threshold,
            metadata_filter=_build_filter(tags, folders),
        )
        logger.debug("Query %r matched %d notes", query, len(results))
        return results

    async def related(
        self,
        note: Note,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SimilarNote]:
        """Notes similar to *note*, excluding the note itself."""
        embedding = await self._embedding_service.embed_document(note)
        return await self._store.find_similar(
            embedding,
            limit=limit if limit is not None else self.config.limit,
            threshold=threshold if threshold is not None else self.config.threshold,
            exclude_ids=[note.id],
        )

    async def related_by_id(
        self,
        note_id: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SimilarNote]:
        """Notes similar to an already indexed note, reusing its stored vector.

        Raises:
            NotFoundError: *note_id* has no stored embedding.
        """
        record = await self._store.get(note_id)
        if record is None:
            raise NotFoundError(note_id, "note is not indexed")
        return await self._store.find_similar(
            record.embedding,
            limit=limit if limit is not None else self.config.limit,
            threshold=threshold if threshold is not None else self.config.threshold,
            exclude_ids=[note_id],
        )
