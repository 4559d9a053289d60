"""Embedding service — note text preparation, per-note caching, and provider selection."""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from notelens.config import EmbeddingConfig
    from notelens.notes.models import Note
    from notelens.vector.types import Embedder

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 3
TAG_WEIGHT = 2

# Markdown cleanup patterns, applied in order
_FENCED_CODE = re.compile(r"```[^\n`]*\n?(.*?)```", re.DOTALL)
_INLINE_CODE = re.compile(r"`([^`]+)`")
_HEADING = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_BOLD = re.compile(r"(\*\*|__)(.+?)\1")
_ITALIC_STAR = re.compile(r"\*([^*\n]+)\*")
_ITALIC_UNDERSCORE = re.compile(r"(?<!\w)_([^_\n]+)_(?!\w)")
_STRIKE = re.compile(r"~~(.+?)~~")
_IMAGE = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_WIKI_IMAGE = re.compile(r"!\[\[[^\]]*\]\]")
_LINK = re.compile(r"\[([^\]]+)\]\([^)]*\)")
_WIKILINK = re.compile(r"\[\[([^\]|]+)(?:\|([^\]]+))?\]\]")
_BLANK_RUNS = re.compile(r"\n{3,}")


def clean_markdown(content: str) -> str:
    """Strip markdown syntax while keeping the readable text."""
    cleaned = _FENCED_CODE.sub(r"\1", content)
    cleaned = _INLINE_CODE.sub(r"\1", cleaned)
    cleaned = _HEADING.sub("", cleaned)
    cleaned = _BOLD.sub(r"\2", cleaned)
    cleaned = _ITALIC_STAR.sub(r"\1", cleaned)
    cleaned = _ITALIC_UNDERSCORE.sub(r"\1", cleaned)
    cleaned = _STRIKE.sub(r"\1", cleaned)
    # Images before links: ![alt](src) would otherwise collapse to "!alt"
    cleaned = _IMAGE.sub("", cleaned)
    cleaned = _WIKI_IMAGE.sub("", cleaned)
    cleaned = _LINK.sub(r"\1", cleaned)
    cleaned = _WIKILINK.sub(lambda m: m.group(2) or m.group(1), cleaned)
    cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
    return cleaned.strip()


def prepare_note_text(note: Note) -> str:
    """Build the weighted text blob that represents a note.

    Title x3, cleaned body x1, tag line x2, folder x1, separated by blank lines.
    """
    parts: list[str] = []

    title = note.title
    if title:
        parts.extend([title] * TITLE_WEIGHT)

    if note.content:
        body = clean_markdown(note.content)
        if body:
            parts.append(body)

    if note.tags:
        tag_text = " ".join(f"#{tag}" for tag in note.tags)
        parts.extend([tag_text] * TAG_WEIGHT)

    if note.folder:
        parts.append(f"folder: {note.folder}")

    return "\n\n".join(parts)


@dataclass(slots=True)
class _CacheEntry:
    embedding: list[float]
    created_at: float


class EmbeddingService:
    """Coordinates embedding generation for notes and queries.

    Note embeddings are cached in-process, keyed by ``(note.id, note.updated_at)``
    so an edited note is a cache miss. Entries expire after ``cache_ttl``
    seconds; expired entries are pruned only once the cache grows past
    ``cache_max_entries``.
    """

    def __init__(
        self,
        embedder: Embedder,
        cache_ttl: float = 24 * 60 * 60,
        cache_max_entries: int = 1000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._embedder = embedder
        self._cache: dict[tuple[str, str], _CacheEntry] = {}
        self._cache_ttl = cache_ttl
        self._cache_max_entries = cache_max_entries
        self._clock = clock

    @classmethod
    def from_config(cls, embedder: Embedder, config: EmbeddingConfig) -> EmbeddingService:
        return cls(
            embedder,
            cache_ttl=config.cache_ttl_seconds,
            cache_max_entries=config.cache_max_entries,
        )

    @property
    def embedder(self) -> Embedder:
        return self._embedder

    @property
    def dimensions(self) -> int:
        return self._embedder.dimensions

    @property
    def is_ready(self) -> bool:
        return self._embedder.is_ready

    async def initialize(self) -> None:
        await self._embedder.initialize()

    async def embed_document(self, note: Note) -> list[float]:
        """Embed a note, reusing the cached vector when the note is unchanged."""
        key = (note.id, note.updated_at.isoformat())
        now = self._clock()

        cached = self._cache.get(key)
        if cached is not None and now - cached.created_at < self._cache_ttl:
            logger.debug("Embedding cache hit for %s", note.id)
            return cached.embedding

        embedding = await self._embedder.embed(prepare_note_text(note))
        self._cache[key] = _CacheEntry(embedding=embedding, created_at=now)

        if len(self._cache) > self._cache_max_entries:
            self._prune_cache(now)

        return embedding

    async def embed_query(self, query: str) -> list[float]:
        """Embed raw query text. Queries are never weighted or cached."""
        return await self._embedder.embed(query)

    async def batch_embed_documents(self, notes: Sequence[Note]) -> dict[str, list[float]]:
        """Embed notes one by one; failures are logged and the note is skipped."""
        results: dict[str, list[float]] = {}
        for note in notes:
            try:
                results[note.id] = await self.embed_document(note)
            except Exception:
                logger.exception("Failed to embed note %s", note.id)
        return results

    def _prune_cache(self, now: float) -> None:
        expired = [k for k, v in self._cache.items() if now - v.created_at >= self._cache_ttl]
        for key in expired:
            del self._cache[key]
        if expired:
            logger.debug("Pruned %d expired cache entries", len(expired))

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, int]:
        """Return cache statistics: size and max_size."""
        return {"size": len(self._cache), "max_size": self._cache_max_entries}


def create_embedder(config: EmbeddingConfig) -> Embedder:
    """Factory: create an embedder for the configured provider.

    Only the local provider exists today; remote providers plug in here
    without touching the store or the indexing service.
    """
    if config.provider == "local":
        from notelens.vector.local_embedder import LocalEmbedder

        return LocalEmbedder.from_config(config)

    raise ValueError(f"Unknown embedding provider: {config.provider}")
