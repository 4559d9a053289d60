"""Local embedding backend — sentence-transformers, no API key or network at query time.

Default model: sentence-transformers/all-MiniLM-L6-v2
  - 384 dimensions, mean pooling
  - ~90 MB, downloaded once into the Hugging Face cache
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

import numpy as np
from sentence_transformers import SentenceTransformer

from notelens.errors import EmbeddingError, ModelLoadError

if TYPE_CHECKING:
    from notelens.config import EmbeddingConfig

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "sentence-transformers/all-MiniLM-L6-v2"
DEFAULT_DIMENSIONS = 384
DEFAULT_MAX_CHARS = 512 * 4
BATCH_SIZE = 10


class LocalEmbedder:
    """Generates unit-length embeddings with a locally loaded model.

    The model is loaded lazily on first use. Concurrent ``initialize()``
    callers await the same load task, so the weights are read once.
    Inference runs in a worker thread to keep the event loop responsive.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_MODEL,
        dimensions: int = DEFAULT_DIMENSIONS,
        max_chars: int = DEFAULT_MAX_CHARS,
        batch_size: int = BATCH_SIZE,
        device: str | None = None,
    ) -> None:
        self._model_name = model_name
        self._dimensions = dimensions
        self._max_chars = max_chars
        self._batch_size = batch_size
        self._device = device
        self._model: Any = None
        self._load_task: asyncio.Task[None] | None = None
        self._generation = 0

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> LocalEmbedder:
        return cls(
            model_name=config.model,
            dimensions=config.dimensions,
            max_chars=config.max_chars,
            batch_size=config.batch_size,
            device=config.device,
        )

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def is_ready(self) -> bool:
        return self._model is not None

    async def initialize(self) -> None:
        """Load the model once; concurrent callers share the in-flight load."""
        if self._model is not None:
            return
        if self._load_task is None:
            self._load_task = asyncio.get_running_loop().create_task(
                self._load(self._generation)
            )
        task = self._load_task
        try:
            await asyncio.shield(task)
        except ModelLoadError:
            # Allow an explicit retry by the caller
            if self._load_task is task:
                self._load_task = None
            raise

    async def _load(self, generation: int) -> None:
        logger.info("Loading embedding model: %s", self._model_name)
        try:
            model = await asyncio.to_thread(
                SentenceTransformer, self._model_name, device=self._device
            )
        except Exception as exc:
            raise ModelLoadError(self._model_name, exc) from exc

        model_dims = model.get_sentence_embedding_dimension()
        if model_dims is not None and model_dims != self._dimensions:
            raise ModelLoadError(
                self._model_name,
                ValueError(f"model produces {model_dims} dimensions, expected {self._dimensions}"),
            )

        if generation != self._generation:
            raise ModelLoadError(self._model_name, RuntimeError("embedder disposed while loading"))

        self._model = model
        logger.info("Embedding model loaded (%d dimensions)", self._dimensions)

    def _truncate(self, text: str) -> str:
        return text[: self._max_chars] if len(text) > self._max_chars else text

    def _encode(self, texts: list[str]) -> np.ndarray:
        return self._model.encode(
            texts,
            batch_size=self._batch_size,
            convert_to_numpy=True,
            normalize_embeddings=True,
            show_progress_bar=False,
        )

    async def embed(self, text: str) -> list[float]:
        """Embed one text. Input beyond ``max_chars`` is silently dropped."""
        if self._model is None:
            await self.initialize()

        try:
            vectors = await asyncio.to_thread(self._encode, [self._truncate(text)])
        except Exception as exc:
            raise EmbeddingError(f"Failed to generate embedding: {exc}", exc) from exc
        return np.asarray(vectors[0], dtype=np.float64).tolist()

    async def batch_embed(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed texts in sub-batches of ``batch_size``, preserving order.

        A failing sub-batch fails the whole call; the error names the range.
        """
        if not texts:
            return []
        if self._model is None:
            await self.initialize()

        results: list[list[float]] = []
        for i in range(0, len(texts), self._batch_size):
            batch = [self._truncate(t) for t in texts[i : i + self._batch_size]]
            try:
                vectors = await asyncio.to_thread(self._encode, batch)
            except Exception as exc:
                raise EmbeddingError(
                    f"Failed to embed texts {i}-{i + len(batch) - 1}: {exc}", exc
                ) from exc
            results.extend(np.asarray(vectors, dtype=np.float64).tolist())
            logger.debug("Embedded batch %d-%d of %d", i, i + len(batch), len(texts))
        return results

    def dispose(self) -> None:
        """Release the model. The next ``embed`` reloads it.

        A load still in flight is discarded when it finishes.
        """
        if self._model is not None:
            logger.info("Disposing embedding model: %s", self._model_name)
        self._model = None
        self._load_task = None
        self._generation += 1
