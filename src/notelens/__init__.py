"""NoteLens — local semantic search over markdown notes."""

__version__ = "0.1.0"
