"""Error taxonomy for the semantic search subsystem."""

from __future__ import annotations


class NoteLensError(Exception):
    """Base class for all NoteLens errors."""


class ModelLoadError(NoteLensError):
    """The embedding model could not be fetched or instantiated.

    Fatal to the embedder until the caller explicitly retries ``initialize()``.
    """

    def __init__(self, model: str, original: Exception | None = None) -> None:
        detail = f": {original}" if original is not None else ""
        super().__init__(f"Failed to load embedding model '{model}'{detail}")
        self.model = model
        self.original = original


class EmbeddingError(NoteLensError):
    """A loaded model failed to embed a text."""

    def __init__(self, message: str, original: Exception | None = None) -> None:
        super().__init__(message)
        self.original = original


class DimensionMismatchError(NoteLensError, ValueError):
    """Two vectors of unequal length were compared."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Vector dimension mismatch: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class StoreIOError(NoteLensError):
    """The persistent vector store failed to read or write."""

    def __init__(self, operation: str, original: Exception | None = None) -> None:
        detail = f": {original}" if original is not None else ""
        super().__init__(f"Vector store {operation} failed{detail}")
        self.operation = operation
        self.original = original


class NotFoundError(NoteLensError, KeyError):
    """No record exists for the requested note id."""

    def __init__(self, note_id: str, reason: str = "no embedding stored") -> None:
        super().__init__(f"{note_id}: {reason}")
        self.note_id = note_id

    def __str__(self) -> str:
        return str(self.args[0])


class IndexingBusyError(NoteLensError):
    """A bulk indexing run is already in progress."""
