"""Tests for watch mode — event filtering, loop hand-off, debounced auto-indexing."""

from __future__ import annotations

import asyncio
import os
import threading
from pathlib import Path

import pytest
from conftest import FakeEmbedder
from watchdog.events import (
    DirCreatedEvent,
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from notelens.config import NotesConfig, WatchConfig
from notelens.notes.parser import NoteParser
from notelens.notes.watch_handler import AutoIndexHandler
from notelens.notes.watcher import NoteWatcher, _NotesEventHandler
from notelens.vector.embedding_service import EmbeddingService
from notelens.vector.indexing import VectorIndexingService
from notelens.vector.memory_store import MemoryVectorStore

DEBOUNCE_MS = 30

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def notes_config(tmp_path: Path) -> NotesConfig:
    return NotesConfig(path=tmp_path)


@pytest.fixture
def store() -> MemoryVectorStore:
    return MemoryVectorStore()


@pytest.fixture
def handler(
    notes_config: NotesConfig, embedder: FakeEmbedder, store: MemoryVectorStore
) -> AutoIndexHandler:
    indexing = VectorIndexingService(EmbeddingService(embedder), store)
    return AutoIndexHandler(WatchConfig(debounce_ms=DEBOUNCE_MS), NoteParser(notes_config), indexing)


def write_note(root: Path, rel: str, text: str, mtime: float | None = None) -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


async def settle(handler: AutoIndexHandler) -> None:
    await asyncio.sleep(DEBOUNCE_MS / 1000 * 3)
    await handler.wait_idle()


# ---------------------------------------------------------------------------
# Event filtering
# ---------------------------------------------------------------------------


class TestNotesEventHandler:
    @pytest.fixture
    def events(self, notes_config: NotesConfig) -> tuple[_NotesEventHandler, list]:
        received: list[tuple[Path, str]] = []
        h = _NotesEventHandler(
            notes_root=notes_config.path,
            excluded_folders=notes_config.excluded_folders,
            on_change=lambda p, e: received.append((p, e)),
        )
        return h, received

    def test_markdown_events_forwarded(self, events, notes_config: NotesConfig) -> None:
        h, received = events
        path = notes_config.path / "a.md"
        h.on_created(FileCreatedEvent(str(path)))
        h.on_modified(FileModifiedEvent(str(path)))
        h.on_deleted(FileDeletedEvent(str(path)))
        assert received == [(path, "created"), (path, "modified"), (path, "deleted")]

    def test_non_markdown_ignored(self, events, notes_config: NotesConfig) -> None:
        h, received = events
        h.on_created(FileCreatedEvent(str(notes_config.path / "image.png")))
        assert received == []

    def test_excluded_folder_ignored(self, events, notes_config: NotesConfig) -> None:
        h, received = events
        h.on_modified(FileModifiedEvent(str(notes_config.path / ".obsidian" / "ws.md")))
        assert received == []

    def test_outside_root_ignored(self, events, notes_config: NotesConfig) -> None:
        h, received = events
        h.on_created(FileCreatedEvent(str(notes_config.path.parent / "stray.md")))
        assert received == []

    def test_directories_ignored(self, events, notes_config: NotesConfig) -> None:
        h, received = events
        h.on_created(DirCreatedEvent(str(notes_config.path / "folder.md")))
        assert received == []

    def test_move_becomes_delete_and_create(self, events, notes_config: NotesConfig) -> None:
        h, received = events
        src = notes_config.path / "old.md"
        dest = notes_config.path / "sub" / "new.md"
        h.on_moved(FileMovedEvent(str(src), str(dest)))
        assert received == [(src, "deleted"), (dest, "created")]

    def test_move_out_of_excluded_folder(self, events, notes_config: NotesConfig) -> None:
        h, received = events
        src = notes_config.path / ".trash" / "note.md"
        dest = notes_config.path / "note.md"
        h.on_moved(FileMovedEvent(str(src), str(dest)))
        assert received == [(dest, "created")]


class TestNoteWatcher:
    def test_dispatch_without_loop_calls_directly(self, notes_config: NotesConfig) -> None:
        received: list[tuple[Path, str]] = []
        watcher = NoteWatcher(notes_config, on_change=lambda p, e: received.append((p, e)))
        path = notes_config.path / "a.md"
        watcher.handler.on_created(FileCreatedEvent(str(path)))
        assert received == [(path, "created")]

    @pytest.mark.asyncio
    async def test_dispatch_runs_on_loop_thread(self, notes_config: NotesConfig) -> None:
        received: list[tuple[Path, str, int]] = []
        watcher = NoteWatcher(
            notes_config,
            on_change=lambda p, e: received.append((p, e, threading.get_ident())),
        )
        watcher._loop = asyncio.get_running_loop()
        path = notes_config.path / "a.md"

        await asyncio.to_thread(watcher.handler.on_created, FileCreatedEvent(str(path)))
        await asyncio.sleep(0)

        assert received == [(path, "created", threading.get_ident())]

    def test_stop_without_start(self, notes_config: NotesConfig) -> None:
        NoteWatcher(notes_config, on_change=lambda p, e: None).stop()


# ---------------------------------------------------------------------------
# Debounced auto-indexing
# ---------------------------------------------------------------------------


class TestAutoIndexHandler:
    @pytest.mark.asyncio
    async def test_created_note_indexed(
        self, handler: AutoIndexHandler, notes_config: NotesConfig, store: MemoryVectorStore
    ) -> None:
        path = write_note(notes_config.path, "Ideas/New Idea.md", "a fresh thought #idea")
        handler.handle_change(path, "created")
        assert handler.pending_count == 1

        await settle(handler)

        assert handler.pending_count == 0
        assert handler.indexed_count == 1
        record = await store.get("ideas/new_idea")
        assert record is not None
        assert record.metadata.tags == ["idea"]
        assert record.metadata.folder == "Ideas"

    @pytest.mark.asyncio
    async def test_rapid_saves_debounced(
        self,
        handler: AutoIndexHandler,
        notes_config: NotesConfig,
        embedder: FakeEmbedder,
    ) -> None:
        path = write_note(notes_config.path, "Draft.md", "first")
        for _ in range(5):
            handler.handle_change(path, "modified")
        assert handler.pending_count == 1

        await settle(handler)

        assert handler.indexed_count == 1
        assert len(embedder.embed_calls) == 1

    @pytest.mark.asyncio
    async def test_paths_debounced_independently(
        self, handler: AutoIndexHandler, notes_config: NotesConfig, store: MemoryVectorStore
    ) -> None:
        a = write_note(notes_config.path, "A.md", "alpha")
        b = write_note(notes_config.path, "B.md", "beta")
        handler.handle_change(a, "created")
        handler.handle_change(b, "created")
        assert handler.pending_count == 2

        await settle(handler)

        assert handler.indexed_count == 2
        assert await store.has("a")
        assert await store.has("b")

    @pytest.mark.asyncio
    async def test_modified_note_reembedded(
        self, handler: AutoIndexHandler, notes_config: NotesConfig, store: MemoryVectorStore
    ) -> None:
        path = write_note(notes_config.path, "Log.md", "gardening", mtime=1_700_000_000)
        handler.handle_change(path, "created")
        await settle(handler)
        before = await store.get("log")

        write_note(notes_config.path, "Log.md", "quantum physics", mtime=1_700_000_100)
        handler.handle_change(path, "modified")
        await settle(handler)
        after = await store.get("log")

        assert before is not None and after is not None
        assert after.embedding != before.embedding
        assert handler.indexed_count == 2

    @pytest.mark.asyncio
    async def test_deleted_note_removed(
        self, handler: AutoIndexHandler, notes_config: NotesConfig, store: MemoryVectorStore
    ) -> None:
        path = write_note(notes_config.path, "Sub/Gone.md", "bye")
        handler.handle_change(path, "created")
        await settle(handler)
        assert await store.has("sub/gone")

        path.unlink()
        handler.handle_change(path, "deleted")
        await settle(handler)

        assert not await store.has("sub/gone")
        assert handler.removed_count == 1

    @pytest.mark.asyncio
    async def test_create_then_delete_within_window(
        self, handler: AutoIndexHandler, notes_config: NotesConfig, store: MemoryVectorStore
    ) -> None:
        path = write_note(notes_config.path, "Temp.md", "scratch")
        handler.handle_change(path, "created")
        path.unlink()
        handler.handle_change(path, "deleted")

        await settle(handler)

        assert handler.indexed_count == 0
        assert handler.removed_count == 1
        assert not await store.has("temp")

    @pytest.mark.asyncio
    async def test_vanished_file_skipped(
        self, handler: AutoIndexHandler, notes_config: NotesConfig
    ) -> None:
        path = write_note(notes_config.path, "Flash.md", "here and gone")
        handler.handle_change(path, "created")
        path.unlink()

        await settle(handler)

        assert handler.indexed_count == 0
        assert handler.last_error is None

    @pytest.mark.asyncio
    async def test_indexing_failure_recorded(
        self,
        handler: AutoIndexHandler,
        notes_config: NotesConfig,
        embedder: FakeEmbedder,
        store: MemoryVectorStore,
    ) -> None:
        embedder.fail_on = {"poison"}
        path = write_note(notes_config.path, "Bad.md", "poison")
        handler.handle_change(path, "created")

        await settle(handler)

        assert handler.indexed_count == 0
        assert handler.last_error is not None
        assert handler.last_error.startswith("bad:")
        assert not await store.has("bad")

    @pytest.mark.asyncio
    async def test_parse_failure_recorded(
        self, handler: AutoIndexHandler, notes_config: NotesConfig
    ) -> None:
        path = notes_config.path / "Binary.md"
        path.write_bytes(b"\xff\xfe\x80 not utf-8")
        handler.handle_change(path, "modified")

        await settle(handler)

        assert handler.indexed_count == 0
        assert handler.last_error is not None
        assert handler.last_error.startswith("Binary.md:")
