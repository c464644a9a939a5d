"""Pipeline orchestrator for mdqa.

Composes chunker → embedder → store → synthesizer via constructor
injection and owns the readiness of the single loaded document.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from mdqa.answer import ExtractiveSynthesizer, GenerativeSynthesizer
from mdqa.chunk import MarkdownChunker
from mdqa.config import ANSWER_MODES
from mdqa.exceptions import (
    EmbeddingError,
    EmptyIndexError,
    GenerationError,
    IndexNotReadyError,
    MdqaError,
    PipelineError,
)
from mdqa.registry import default_registry
from mdqa.store import MemoryStore
from mdqa.types import Answer, EmbeddedChunk

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from mdqa.chunk.base import BaseChunker
    from mdqa.config import MdqaConfig
    from mdqa.embed.base import BaseEmbedder
    from mdqa.llm.base import BaseGenerator
    from mdqa.llm.stream import CancellationToken
    from mdqa.registry import ProviderRegistry
    from mdqa.store.base import BaseStore
    from mdqa.types import Chunk, ScoredChunk, Vector

__all__ = ["Pipeline", "build_pipeline"]

logger = logging.getLogger(__name__)


class Pipeline:
    """Indexes one markdown document and answers questions about it.

    All collaborators are injected via the constructor, making the pipeline
    fully testable with fake implementations. Indexing replaces the previous
    document; queries are rejected until the new index is complete.

    Usage::

        pipeline = Pipeline(
            chunker=MarkdownChunker(),
            embedder=chromadb_embedder,
            store=MemoryStore(),
            config=config,
        )
        await pipeline.index_document(text, name="guide.md")
        answer = await pipeline.ask("How do I configure retries?")
    """

    def __init__(
        self,
        chunker: BaseChunker,
        embedder: BaseEmbedder,
        store: BaseStore,
        config: MdqaConfig,
        generator: BaseGenerator | None = None,
    ) -> None:
        self.chunker = chunker
        self.embedder = embedder
        self.store = store
        self.config = config
        self.generator = generator
        self.extractive = ExtractiveSynthesizer(
            limit=config.answer.limit,
            fallback_limit=config.answer.fallback_limit,
        )
        self.document_name = ""
        self._ready = False

    @property
    def ready(self) -> bool:
        """True once a document is fully indexed and queryable."""
        return self._ready

    async def index_document(
        self,
        text: str,
        *,
        name: str = "",
        on_progress: Callable[[int, int], None] | None = None,
        token: CancellationToken | None = None,
    ) -> int:
        """Chunk, embed and index a document, replacing the current one.

        Batches are embedded strictly in order; control is yielded to the
        event loop between batches.

        Args:
            text: Raw markdown text.
            name: Display name of the document.
            on_progress: Called with ``(embedded, total)`` after each batch.
            token: Checked between batches to abandon the build.

        Returns:
            Number of chunks indexed (0 for a document without content).

        Raises:
            EmbeddingError: If the embedding provider fails.
            OperationCancelledError: If ``token`` is cancelled.
        """
        self._ready = False
        self.store.clear()
        self.document_name = name

        chunks = self.chunker.chunk(text, self.config)
        if not chunks:
            logger.warning("No content to index in %s", name or "document")
            self._ready = True
            return 0

        vectors = await self._embed_chunks(chunks, on_progress, token)
        count = self.store.replace(
            [EmbeddedChunk(chunk=c, embedding=v) for c, v in zip(chunks, vectors, strict=True)]
        )
        self._ready = True
        logger.info("Indexed %d chunks from %s", count, name or "document")
        return count

    async def _embed_chunks(
        self,
        chunks: Sequence[Chunk],
        on_progress: Callable[[int, int], None] | None,
        token: CancellationToken | None,
    ) -> list[Vector]:
        batch_size = self.config.embedding.batch_size
        total = len(chunks)
        vectors: list[Vector] = []

        for start in range(0, total, batch_size):
            if token is not None:
                token.raise_if_cancelled()

            batch = [c.text for c in chunks[start : start + batch_size]]
            batch_vectors = await self._embed(batch)
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedding provider returned {len(batch_vectors)} vectors "
                    f"for {len(batch)} chunks"
                )
            vectors.extend(batch_vectors)

            if on_progress is not None:
                on_progress(len(vectors), total)
            await asyncio.sleep(0)

        logger.info("Embedded %d chunks in batches of %d", len(vectors), batch_size)
        return vectors

    async def _embed(self, texts: list[str]) -> list[Vector]:
        try:
            return await self.embedder.embed(texts)
        except MdqaError:
            raise
        except Exception as e:
            logger.error("Embedding provider failed: %s", e)
            raise EmbeddingError(f"Embedding provider failed: {e}") from e

    def _check_ready(self) -> None:
        if not self._ready:
            raise IndexNotReadyError("No document is indexed yet. Load a document first.")
        if self.store.count() == 0:
            raise EmptyIndexError("No content indexed: the document produced no chunks.")

    async def search(self, question: str, k: int | None = None) -> list[ScoredChunk]:
        """Return the ``k`` chunks most similar to ``question``.

        Raises:
            IndexNotReadyError: If no index is ready.
            EmptyIndexError: If the loaded document had no content.
            EmbeddingError: If the query cannot be embedded.
        """
        self._check_ready()
        k = self.config.retrieval.top_k if k is None else k

        try:
            query_vector = await self.embedder.embed_query(question)
        except MdqaError:
            raise
        except Exception as e:
            logger.error("Query embedding failed: %s", e)
            raise EmbeddingError(f"Query embedding failed: {e}") from e

        results = self.store.search(query_vector, k)
        logger.debug("Retrieved %d chunks for query", len(results))
        return results

    async def ask(
        self,
        question: str,
        *,
        mode: str | None = None,
        top_k: int | None = None,
        on_fragment: Callable[[str], None] | None = None,
        token: CancellationToken | None = None,
    ) -> Answer:
        """Answer a question about the indexed document.

        In generative mode a failing or missing model degrades to the
        extractive answer, with the reason recorded on the result.

        Raises:
            ValueError: If the question is blank.
            IndexNotReadyError: If no index is ready.
            EmptyIndexError: If the loaded document had no content.
            EmbeddingError: If the query cannot be embedded.
            OperationCancelledError: If ``token`` is cancelled during generation.
            PipelineError: If ``mode`` is not a known answer mode.
        """
        question = question.strip()
        if not question:
            raise ValueError("Question must not be empty")

        mode = mode or self.config.answer.mode
        if mode not in ANSWER_MODES:
            raise PipelineError(
                f"Unknown answer mode {mode!r}; expected one of {sorted(ANSWER_MODES)}"
            )
        results = await self.search(question, top_k)
        sources = tuple(results)
        top_chunks = [r.chunk for r in results]

        if mode == "generative":
            try:
                text = await self._generate(question, top_chunks, on_fragment, token)
            except GenerationError as e:
                logger.warning("Generation unavailable, using extractive answer: %s", e)
                text = self.extractive.synthesize(question, top_chunks)
                return Answer(
                    question=question,
                    text=text,
                    sources=sources,
                    mode="extractive",
                    fallback_reason=str(e),
                )
            return Answer(question=question, text=text, sources=sources, mode="generative")

        text = self.extractive.synthesize(question, top_chunks)
        return Answer(question=question, text=text, sources=sources, mode="extractive")

    async def _generate(
        self,
        question: str,
        chunks: list[Chunk],
        on_fragment: Callable[[str], None] | None,
        token: CancellationToken | None,
    ) -> str:
        if self.generator is None:
            raise GenerationError("No generative model is configured")
        synthesizer = GenerativeSynthesizer(
            self.generator,
            max_context_tokens=self.config.answer.max_context_tokens,
        )
        return await synthesizer.generate(question, chunks, on_fragment=on_fragment, token=token)


def build_pipeline(
    config: MdqaConfig,
    registry: ProviderRegistry = default_registry,
    *,
    with_generator: bool | None = None,
) -> Pipeline:
    """Create a pipeline with providers chosen by ``config``.

    The generative provider is created when ``with_generator`` is true, or
    when it is ``None`` and ``answer.mode`` is ``"generative"``.

    Raises:
        PluginError: If a configured provider is unknown.
        EmbeddingError: If the embedding provider cannot start.
    """
    embedder = registry.create("embedding", config.embedding.provider, config)

    if with_generator is None:
        with_generator = config.answer.mode == "generative"
    generator = registry.create("llm", config.llm.provider, config) if with_generator else None

    return Pipeline(
        chunker=MarkdownChunker(),
        embedder=embedder,
        store=MemoryStore(),
        config=config,
        generator=generator,
    )
