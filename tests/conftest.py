"""Shared test helpers: a deterministic offline embedder and note factory."""

from __future__ import annotations

import asyncio
import hashlib
import math
import re
from collections.abc import Sequence
from datetime import datetime

import pytest

from notelens.errors import EmbeddingError
from notelens.notes.models import Note

DIMS = 384
_WORD = re.compile(r"[a-z0-9]+")


def _trigrams(text: str) -> list[str]:
    grams: list[str] = []
    for word in _WORD.findall(text.lower()):
        if len(word) < 3:
            grams.append(word)
        else:
            grams.extend(word[i : i + 3] for i in range(len(word) - 2))
    return grams


class FakeEmbedder:
    """Character-trigram hashing embedder — deterministic, unit length, no model download.

    Texts containing any substring in ``fail_on`` raise ``EmbeddingError``.
    """

    def __init__(self, dimensions: int = DIMS, delay: float = 0.0) -> None:
        self._dimensions = dimensions
        self._ready = False
        self.delay = delay
        self.fail_on: set[str] = set()
        self.init_calls = 0
        self.embed_calls: list[str] = []

    @property
    def model_name(self) -> str:
        return "fake-trigram"

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def initialize(self) -> None:
        self.init_calls += 1
        self._ready = True

    async def embed(self, text: str) -> list[float]:
        if not self._ready:
            await self.initialize()
        if self.delay:
            await asyncio.sleep(self.delay)
        self.embed_calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise EmbeddingError(f"fake failure for {text[:20]!r}")

        vec = [0.0] * self._dimensions
        for gram in _trigrams(text):
            bucket = int.from_bytes(hashlib.md5(gram.encode()).digest()[:4], "little")
            vec[bucket % self._dimensions] += 1.0
        norm = math.sqrt(sum(v * v for v in vec))
        if norm == 0.0:
            return vec
        return [v / norm for v in vec]

    async def batch_embed(self, texts: Sequence[str]) -> list[list[float]]:
        return [await self.embed(t) for t in texts]

    def dispose(self) -> None:
        self._ready = False


def make_note(
    note_id: str,
    content: str = "",
    name: str | None = None,
    tags: list[str] | None = None,
    folder: str | None = None,
    updated_at: datetime | None = None,
) -> Note:
    return Note(
        id=note_id,
        name=name or f"{note_id}.md",
        content=content,
        tags=tags or [],
        folder=folder,
        updated_at=updated_at or datetime(2024, 5, 1, 12, 0, 0),
        word_count=len(content.split()),
    )


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()
