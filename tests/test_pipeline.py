"""Tests for mdqa.pipeline module — orchestration with fake providers."""

from __future__ import annotations

import asyncio

import pytest

from mdqa.chunk import MarkdownChunker
from mdqa.config import MdqaConfig
from mdqa.exceptions import (
    EmbeddingError,
    EmptyIndexError,
    IndexNotReadyError,
    OperationCancelledError,
    PipelineError,
    PluginError,
)
from mdqa.llm import CancellationToken
from mdqa.pipeline import Pipeline, build_pipeline
from mdqa.registry import ProviderRegistry
from mdqa.store import MemoryStore

# --- Helpers ---


@pytest.fixture
def small_config() -> MdqaConfig:
    """Config that splits the sample guide into one chunk per section."""
    config = MdqaConfig()
    config.chunk.max_words = 40
    config.chunk.overlap_words = 0
    config.chunk.min_chars = 0
    return config


def _pipeline(config: MdqaConfig, embedder, generator=None) -> Pipeline:
    return Pipeline(
        chunker=MarkdownChunker(),
        embedder=embedder,
        store=MemoryStore(),
        config=config,
        generator=generator,
    )


def _indexed(config: MdqaConfig, embedder, text: str, generator=None) -> Pipeline:
    pipeline = _pipeline(config, embedder, generator)
    asyncio.run(pipeline.index_document(text, name="guide.md"))
    return pipeline


class TestIndexDocument:
    def test_not_ready_before_indexing(self, small_config, make_embedder):
        pipeline = _pipeline(small_config, make_embedder())
        assert pipeline.ready is False
        with pytest.raises(IndexNotReadyError):
            asyncio.run(pipeline.search("retries"))

    def test_indexes_all_chunks(self, small_config, make_embedder, sample_markdown):
        pipeline = _pipeline(small_config, make_embedder())
        count = asyncio.run(pipeline.index_document(sample_markdown, name="guide.md"))

        assert count == 3
        assert pipeline.ready is True
        assert pipeline.store.count() == 3
        assert pipeline.document_name == "guide.md"

    def test_batches_in_order(self, small_config, make_embedder, sample_markdown):
        small_config.embedding.batch_size = 2
        embedder = make_embedder()
        progress: list[tuple[int, int]] = []
        pipeline = _pipeline(small_config, embedder)

        def on_progress(done: int, total: int) -> None:
            progress.append((done, total))

        asyncio.run(pipeline.index_document(sample_markdown, on_progress=on_progress))

        assert [len(b) for b in embedder.batches] == [2, 1]
        assert progress == [(2, 3), (3, 3)]
        embedded_texts = [t for batch in embedder.batches for t in batch]
        assert embedded_texts == [c.text for c in pipeline.store.chunks()]

    def test_reindex_replaces_document(self, small_config, make_embedder, sample_markdown):
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)
        asyncio.run(pipeline.index_document("# Other\n\nA completely different file.", name="b.md"))

        assert [c.heading_path for c in pipeline.store.chunks()] == ["Other"]
        assert pipeline.document_name == "b.md"

    def test_empty_document(self, small_config, make_embedder):
        embedder = make_embedder()
        pipeline = _pipeline(small_config, embedder)
        count = asyncio.run(pipeline.index_document("# Only a heading\n"))

        assert count == 0
        assert pipeline.ready is True
        assert embedder.batches == []
        with pytest.raises(EmptyIndexError, match="No content indexed"):
            asyncio.run(pipeline.search("anything"))

    def test_embedding_failure_leaves_not_ready(self, small_config, make_embedder, sample_markdown):
        small_config.embedding.batch_size = 1
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)

        pipeline.embedder = make_embedder(fail_on_batch=1)
        with pytest.raises(EmbeddingError, match="embedding backend crashed"):
            asyncio.run(pipeline.index_document(sample_markdown))

        assert pipeline.ready is False
        assert pipeline.store.count() == 0

    def test_cancelled_between_batches(self, small_config, make_embedder, sample_markdown):
        small_config.embedding.batch_size = 1
        embedder = make_embedder()
        token = CancellationToken()
        pipeline = _pipeline(small_config, embedder)

        with pytest.raises(OperationCancelledError):
            asyncio.run(
                pipeline.index_document(
                    sample_markdown, on_progress=lambda d, t: token.cancel(), token=token
                )
            )

        assert len(embedder.batches) == 1
        assert pipeline.ready is False

    def test_vector_count_mismatch(self, small_config, make_embedder, sample_markdown):
        class ShortEmbedder(make_embedder):
            async def embed(self, texts):
                return (await super().embed(texts))[:-1]

        pipeline = _pipeline(small_config, ShortEmbedder())
        with pytest.raises(EmbeddingError, match="vectors"):
            asyncio.run(pipeline.index_document(sample_markdown))


class TestSearch:
    def test_best_match_first(self, small_config, make_embedder, sample_markdown):
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)
        results = asyncio.run(pipeline.search("retries exponential backoff", k=2))

        assert len(results) == 2
        assert results[0].chunk.heading_path == "Guide > Retries"
        assert results[0].similarity >= results[1].similarity

    def test_default_k_from_config(self, small_config, make_embedder, sample_markdown):
        small_config.retrieval.top_k = 1
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)
        assert len(asyncio.run(pipeline.search("timeout"))) == 1


class TestAsk:
    def test_extractive_answer(self, small_config, make_embedder, sample_markdown):
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)
        answer = asyncio.run(pipeline.ask("How does the client handle retries?"))

        assert answer.mode == "extractive"
        assert "retries" in answer.text.lower()
        assert len(answer.text) <= 600
        assert 0 < len(answer.sources) <= 4
        assert answer.fell_back is False

    def test_blank_question_rejected(self, small_config, make_embedder, sample_markdown):
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)
        with pytest.raises(ValueError, match="empty"):
            asyncio.run(pipeline.ask("   "))

    def test_unknown_mode_rejected(self, small_config, make_embedder, sample_markdown):
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)
        with pytest.raises(PipelineError, match="Unknown answer mode"):
            asyncio.run(pipeline.ask("retries?", mode="poetic"))

    def test_generative_answer(self, small_config, make_embedder, make_generator, sample_markdown):
        generator = make_generator()
        pipeline = _indexed(small_config, make_embedder(), sample_markdown, generator)
        fragments: list[str] = []

        answer = asyncio.run(
            pipeline.ask(
                "How are retries configured?", mode="generative", on_fragment=fragments.append
            )
        )

        assert answer.mode == "generative"
        assert answer.text == "Retries are configured."
        assert fragments == ["Retries ", "are configured."]
        user_prompt = generator.requests[0][1]["content"]
        assert user_prompt.startswith("Question: How are retries configured?")

    def test_generation_failure_falls_back(
        self, small_config, make_embedder, failing_generator, sample_markdown
    ):
        pipeline = _indexed(small_config, make_embedder(), sample_markdown, failing_generator)
        answer = asyncio.run(pipeline.ask("How are retries configured?", mode="generative"))

        assert answer.mode == "extractive"
        assert answer.fell_back is True
        assert "model offline" in answer.fallback_reason
        assert answer.text

    def test_missing_generator_falls_back(self, small_config, make_embedder, sample_markdown):
        pipeline = _indexed(small_config, make_embedder(), sample_markdown)
        answer = asyncio.run(pipeline.ask("retries?", mode="generative"))

        assert answer.mode == "extractive"
        assert "No generative model" in answer.fallback_reason

    def test_cancelled_generation_is_not_fallback(
        self, small_config, make_embedder, make_generator, sample_markdown
    ):
        generator = make_generator(["a", "b", "c"], delay=0.01)
        pipeline = _indexed(small_config, make_embedder(), sample_markdown, generator)
        token = CancellationToken()

        with pytest.raises(OperationCancelledError):
            asyncio.run(
                pipeline.ask(
                    "retries?",
                    mode="generative",
                    on_fragment=lambda _f: token.cancel(),
                    token=token,
                )
            )


class TestBuildPipeline:
    def _registry(self, make_embedder, make_generator) -> ProviderRegistry:
        registry = ProviderRegistry()
        registry.register("embedding", "fake", lambda cfg: make_embedder())
        registry.register("llm", "fake", lambda cfg: make_generator())
        return registry

    def test_extractive_mode_has_no_generator(self, make_embedder, make_generator):
        config = MdqaConfig()
        config.embedding.provider = "fake"
        pipeline = build_pipeline(config, self._registry(make_embedder, make_generator))

        assert pipeline.generator is None
        assert isinstance(pipeline.store, MemoryStore)

    def test_generative_mode_creates_generator(self, make_embedder, make_generator):
        config = MdqaConfig()
        config.embedding.provider = "fake"
        config.llm.provider = "fake"
        config.answer.mode = "generative"
        pipeline = build_pipeline(config, self._registry(make_embedder, make_generator))

        assert pipeline.generator is not None

    def test_unknown_provider(self, make_embedder, make_generator):
        config = MdqaConfig()
        config.embedding.provider = "missing"
        with pytest.raises(PluginError):
            build_pipeline(config, self._registry(make_embedder, make_generator))
