"""ChromaDB built-in embedding provider using ONNX runtime.

Uses the all-MiniLM-L6-v2 model via ONNX — no GPU, no server, no API key.
Model is auto-downloaded on first use (~80MB).
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from chromadb.utils.embedding_functions import DefaultEmbeddingFunction

from mdqa.embed.base import BaseEmbedder, normalize
from mdqa.exceptions import EmbeddingError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdqa.config import MdqaConfig
    from mdqa.types import Vector

__all__ = ["ChromaDBEmbedder"]

logger = logging.getLogger(__name__)


class ChromaDBEmbedder(BaseEmbedder):
    """Embedding provider using ChromaDB's built-in ONNX embedding function.

    Uses ``all-MiniLM-L6-v2`` (384 dimensions) via ONNX runtime. The model
    runs synchronously, so each batch is handed to a worker thread.

    This is the default embedding provider for mdqa.

    Config fields used::

        [embedding]
        provider = "chromadb"
        model = "all-MiniLM-L6-v2"
    """

    _FIXED_MODEL = "all-MiniLM-L6-v2"
    _DIMENSION = 384

    def __init__(self, config: MdqaConfig) -> None:
        if config.embedding.model and config.embedding.model != self._FIXED_MODEL:
            logger.warning(
                "ChromaDB provider only supports %s, ignoring model=%r",
                self._FIXED_MODEL,
                config.embedding.model,
            )

        try:
            self._ef = DefaultEmbeddingFunction()
        except Exception as e:
            raise EmbeddingError(f"Failed to initialize ChromaDB embedding function: {e}") from e

        logger.info("ChromaDBEmbedder initialized (ONNX %s)", self._FIXED_MODEL)

    async def embed(self, texts: Sequence[str]) -> list[Vector]:
        """Generate embeddings for a batch of texts.

        Raises:
            EmbeddingError: If the model fails to load or run.
        """
        if not texts:
            return []

        try:
            raw = await asyncio.to_thread(self._ef, list(texts))
        except Exception as e:
            raise EmbeddingError(f"ChromaDB embedding failed: {e}") from e

        if raw is None or len(raw) != len(texts):
            got = 0 if raw is None else len(raw)
            raise EmbeddingError(f"ChromaDB returned {got} embeddings for {len(texts)} inputs")

        vectors = normalize([[float(v) for v in vec] for vec in raw])
        logger.debug("Embedded %d texts via ChromaDB (ONNX)", len(vectors))
        return vectors

    @property
    def dimension(self) -> int:
        """Return the dimensionality of the embedding vectors (384 for MiniLM)."""
        return self._DIMENSION
