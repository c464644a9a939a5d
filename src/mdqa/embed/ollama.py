"""Ollama embedding provider using the /api/embed endpoint."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import httpx

from mdqa.embed.base import BaseEmbedder, normalize
from mdqa.exceptions import EmbeddingError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdqa.config import MdqaConfig
    from mdqa.types import Vector

__all__ = ["OllamaEmbedder"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaEmbedder(BaseEmbedder):
    """Embedding provider using a local Ollama instance.

    Calls the ``/api/embed`` endpoint with the whole batch in one request.

    Config fields used::

        [embedding]
        provider = "ollama"
        model = "nomic-embed-text"
        base_url = ""           # empty = http://localhost:11434
        timeout = 120.0
    """

    def __init__(
        self,
        config: MdqaConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = config.embedding.model
        self._base_url = (config.embedding.base_url or _DEFAULT_BASE_URL).rstrip("/")
        self._timeout = config.embedding.timeout
        self._transport = transport
        self._dimension = 0

    async def embed(self, texts: Sequence[str]) -> list[Vector]:
        """Generate embeddings for a batch of texts via Ollama.

        Raises:
            EmbeddingError: If Ollama is not reachable or returns an error.
        """
        if not texts:
            return []

        url = f"{self._base_url}/api/embed"
        payload = {"model": self._model, "input": list(texts)}

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise EmbeddingError(
                f"Ollama API error (HTTP {e.response.status_code}): {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingError(
                f"Ollama not reachable at {self._base_url}. Is Ollama running? Error: {e}"
            ) from e
        except ValueError as e:
            raise EmbeddingError(f"Ollama returned invalid JSON from {url}") from e

        embeddings = data.get("embeddings", []) if isinstance(data, dict) else []
        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"Ollama returned {len(embeddings)} embeddings for {len(texts)} inputs"
            )

        vectors = normalize(embeddings)
        if vectors and not self._dimension:
            self._dimension = len(vectors[0])

        logger.debug("Embedded %d texts via Ollama (%s)", len(vectors), self._model)
        return vectors

    @property
    def dimension(self) -> int:
        """Dimensionality seen in the last response, 0 before the first call."""
        return self._dimension
