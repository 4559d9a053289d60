"""Configuration management for NoteLens.

Loads from environment variables, .env files, and config/default.toml.

Default base directory: ~/.notelens/
  notes/            — markdown notes root (or symlink to an existing folder)
  data/chromadb/    — persistent vector store
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

NOTELENS_HOME = Path.home() / ".notelens"


class NotesConfig(BaseSettings):
    """Markdown notes source configuration."""

    path: Path = Field(description="Absolute path to the notes root folder")
    excluded_folders: list[str] = Field(default_factory=lambda: [".obsidian", ".git", ".trash"])

    @field_validator("path")
    @classmethod
    def validate_notes_path(cls, v: Path) -> Path:
        v = v.expanduser()
        if not v.exists():
            raise ValueError(f"Notes path does not exist: {v}")
        return v.resolve()


class EmbeddingConfig(BaseSettings):
    """Embedding model and embedding-cache configuration."""

    provider: Literal["local"] = "local"
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int = 384
    max_chars: int = 2048  # ~512 tokens at ~4 chars per token
    batch_size: int = 10
    device: str | None = None
    cache_ttl_seconds: float = 24 * 60 * 60
    cache_max_entries: int = 1000


class StoreConfig(BaseSettings):
    """Persistent vector store configuration."""

    persist_dir: Path = Field(default_factory=lambda: NOTELENS_HOME / "data" / "chromadb")
    collection_name: str = "note_embeddings"

    @field_validator("persist_dir")
    @classmethod
    def expand_persist_dir(cls, v: Path) -> Path:
        return v.expanduser()


class IndexingConfig(BaseSettings):
    """Bulk indexing configuration."""

    batch_size: int = Field(default=10, ge=1)


class SearchConfig(BaseSettings):
    """Default similarity search parameters."""

    limit: int = Field(default=10, ge=1)
    threshold: float = Field(default=0.5, ge=-1.0, le=1.0)


class WatchConfig(BaseSettings):
    """Auto-indexing watch mode configuration."""

    debounce_ms: int = 2000


class Settings(BaseSettings):
    """Root configuration — aggregates all sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="NOTELENS_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    notes: NotesConfig = Field(default_factory=lambda: NotesConfig(path=NOTELENS_HOME / "notes"))
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    watch: WatchConfig = Field(default_factory=WatchConfig)

    @classmethod
    def from_toml(cls, path: Path | None = None) -> Settings:
        """Load settings from TOML file, with env var overrides."""
        config_path = path or Path("config/default.toml")
        if config_path.exists():
            with open(config_path, "rb") as f:
                data = tomllib.load(f)
            return cls(**data)
        return cls()


def load_settings(config_path: Path | None = None) -> Settings:
    """Load and validate settings. Entry point for all config access."""
    return Settings.from_toml(config_path)
