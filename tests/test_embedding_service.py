"""Tests for EmbeddingService — markdown cleanup, weighting, caching, provider factory."""

from __future__ import annotations

import logging
from datetime import datetime

import pytest
from conftest import FakeEmbedder, make_note

from notelens.config import EmbeddingConfig
from notelens.vector.embedding_service import (
    EmbeddingService,
    clean_markdown,
    create_embedder,
    prepare_note_text,
)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(embedder: FakeEmbedder, clock: FakeClock) -> EmbeddingService:
    return EmbeddingService(embedder, cache_ttl=60, cache_max_entries=3, clock=clock)


class TestCleanMarkdown:
    def test_headings_and_emphasis(self) -> None:
        text = "# Title\n\nSome **bold** and *italic* and __strong__ text"
        assert clean_markdown(text) == "Title\n\nSome bold and italic and strong text"

    def test_underscore_italic(self) -> None:
        assert clean_markdown("an _emphasised_ word") == "an emphasised word"

    def test_snake_case_untouched(self) -> None:
        assert clean_markdown("call my_helper_function now") == "call my_helper_function now"

    def test_fenced_code_keeps_content(self) -> None:
        text = "Before\n\n```python\nprint('hi')\n```\n\nAfter"
        cleaned = clean_markdown(text)
        assert "print('hi')" in cleaned
        assert "```" not in cleaned
        assert "python" not in cleaned

    def test_inline_code(self) -> None:
        assert clean_markdown("run `make test` first") == "run make test first"

    def test_strikethrough(self) -> None:
        assert clean_markdown("~~old~~ new") == "old new"

    def test_link_collapses_to_text(self) -> None:
        assert clean_markdown("see [the docs](https://example.com/x)") == "see the docs"

    def test_images_removed(self) -> None:
        assert clean_markdown("a ![diagram](img/arch.png) b") == "a  b"
        assert clean_markdown("a ![[photo.jpg]] b") == "a  b"

    def test_wikilinks(self) -> None:
        assert clean_markdown("see [[Graph Theory]]") == "see Graph Theory"
        assert clean_markdown("see [[graph-theory|Graphs]]") == "see Graphs"

    def test_blank_runs_collapsed(self) -> None:
        assert clean_markdown("a\n\n\n\n\nb") == "a\n\nb"

    def test_strips_outer_whitespace(self) -> None:
        assert clean_markdown("\n\n  body  \n\n") == "body"

    def test_empty(self) -> None:
        assert clean_markdown("") == ""


class TestPrepareNoteText:
    def test_full_weighting(self) -> None:
        note = make_note(
            "n1",
            content="Deep **learning** basics",
            name="Neural Networks.md",
            tags=["ml", "ai"],
            folder="research",
        )
        assert prepare_note_text(note) == (
            "Neural Networks\n\nNeural Networks\n\nNeural Networks\n\n"
            "Deep learning basics\n\n"
            "#ml #ai\n\n#ml #ai\n\n"
            "folder: research"
        )

    def test_title_only(self) -> None:
        note = make_note("n1", name="Inbox.md")
        assert prepare_note_text(note) == "Inbox\n\nInbox\n\nInbox"

    def test_body_that_cleans_to_nothing_is_skipped(self) -> None:
        note = make_note("n1", content="![only](image.png)", name="Pics.md")
        assert prepare_note_text(note) == "Pics\n\nPics\n\nPics"

    def test_no_folder_line_for_root_notes(self) -> None:
        note = make_note("n1", content="text", name="Root.md")
        assert "folder:" not in prepare_note_text(note)


class TestEmbedDocument:
    @pytest.mark.asyncio
    async def test_embeds_prepared_text(
        self, service: EmbeddingService, embedder: FakeEmbedder
    ) -> None:
        note = make_note("n1", content="hello world", name="Greeting.md")
        vec = await service.embed_document(note)
        assert embedder.embed_calls == [prepare_note_text(note)]
        assert len(vec) == embedder.dimensions

    @pytest.mark.asyncio
    async def test_cache_hit(self, service: EmbeddingService, embedder: FakeEmbedder) -> None:
        note = make_note("n1", content="hello")
        first = await service.embed_document(note)
        second = await service.embed_document(note)
        assert first == second
        assert len(embedder.embed_calls) == 1

    @pytest.mark.asyncio
    async def test_edit_is_cache_miss(
        self, service: EmbeddingService, embedder: FakeEmbedder
    ) -> None:
        await service.embed_document(make_note("n1", content="v1"))
        edited = make_note("n1", content="v2", updated_at=datetime(2024, 5, 2, 9, 30))
        await service.embed_document(edited)
        assert len(embedder.embed_calls) == 2

    @pytest.mark.asyncio
    async def test_expired_entry_recomputed(
        self, service: EmbeddingService, embedder: FakeEmbedder, clock: FakeClock
    ) -> None:
        note = make_note("n1", content="hello")
        await service.embed_document(note)
        clock.now += 61
        await service.embed_document(note)
        assert len(embedder.embed_calls) == 2

    @pytest.mark.asyncio
    async def test_entry_valid_within_ttl(
        self, service: EmbeddingService, embedder: FakeEmbedder, clock: FakeClock
    ) -> None:
        note = make_note("n1", content="hello")
        await service.embed_document(note)
        clock.now += 59
        await service.embed_document(note)
        assert len(embedder.embed_calls) == 1

    @pytest.mark.asyncio
    async def test_prunes_expired_past_max(
        self, service: EmbeddingService, clock: FakeClock
    ) -> None:
        for i in range(3):
            await service.embed_document(make_note(f"old{i}"))
        assert service.cache_stats()["size"] == 3

        clock.now += 120
        await service.embed_document(make_note("fresh"))
        assert service.cache_stats() == {"size": 1, "max_size": 3}

    @pytest.mark.asyncio
    async def test_no_prune_when_nothing_expired(self, service: EmbeddingService) -> None:
        for i in range(5):
            await service.embed_document(make_note(f"n{i}"))
        assert service.cache_stats()["size"] == 5

    @pytest.mark.asyncio
    async def test_clear_cache(self, service: EmbeddingService, embedder: FakeEmbedder) -> None:
        note = make_note("n1")
        await service.embed_document(note)
        service.clear_cache()
        assert service.cache_stats()["size"] == 0
        await service.embed_document(note)
        assert len(embedder.embed_calls) == 2


class TestEmbedQuery:
    @pytest.mark.asyncio
    async def test_raw_text_not_cached(
        self, service: EmbeddingService, embedder: FakeEmbedder
    ) -> None:
        await service.embed_query("machine learning")
        await service.embed_query("machine learning")
        assert embedder.embed_calls == ["machine learning", "machine learning"]
        assert service.cache_stats()["size"] == 0


class TestBatchEmbedDocuments:
    @pytest.mark.asyncio
    async def test_all_succeed(self, service: EmbeddingService) -> None:
        notes = [make_note(f"n{i}", content=f"note {i}") for i in range(3)]
        result = await service.batch_embed_documents(notes)
        assert list(result) == ["n0", "n1", "n2"]

    @pytest.mark.asyncio
    async def test_failures_skipped_and_logged(
        self,
        service: EmbeddingService,
        embedder: FakeEmbedder,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        embedder.fail_on = {"broken"}
        notes = [
            make_note("a", content="fine"),
            make_note("b", content="this one is broken"),
            make_note("c", content="also fine"),
        ]
        with caplog.at_level(logging.ERROR, logger="notelens.vector.embedding_service"):
            result = await service.batch_embed_documents(notes)
        assert set(result) == {"a", "c"}
        assert "Failed to embed note b" in caplog.text


class TestServiceProperties:
    @pytest.mark.asyncio
    async def test_delegates_to_embedder(
        self, service: EmbeddingService, embedder: FakeEmbedder
    ) -> None:
        assert service.embedder is embedder
        assert service.dimensions == 384
        assert service.is_ready is False
        await service.initialize()
        assert service.is_ready is True

    def test_from_config(self, embedder: FakeEmbedder) -> None:
        config = EmbeddingConfig(cache_max_entries=42)
        svc = EmbeddingService.from_config(embedder, config)
        assert svc.cache_stats()["max_size"] == 42


class TestCreateEmbedder:
    def test_local_provider(self) -> None:
        from notelens.vector.local_embedder import LocalEmbedder

        embedder = create_embedder(EmbeddingConfig(model="fake/model", dimensions=8))
        assert isinstance(embedder, LocalEmbedder)
        assert embedder.model_name == "fake/model"
        assert embedder.dimensions == 8
        assert embedder.is_ready is False

    def test_unknown_provider(self) -> None:
        config = EmbeddingConfig.model_construct(provider="remote")
        with pytest.raises(ValueError, match="remote"):
            create_embedder(config)
