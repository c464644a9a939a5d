"""OpenAI-compatible embedding provider.

Works with any server implementing the OpenAI /v1/embeddings API:
OpenAI, LiteLLM proxy, vLLM, Ollama (OpenAI-compat mode), etc.
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import httpx

from mdqa.embed.base import BaseEmbedder, normalize
from mdqa.exceptions import EmbeddingError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from mdqa.config import MdqaConfig
    from mdqa.types import Vector

__all__ = ["OpenAICompatEmbedder"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"


class OpenAICompatEmbedder(BaseEmbedder):
    """Embedding provider using any OpenAI-compatible /v1/embeddings endpoint.

    Supports both cloud APIs (with API key) and local servers (without API key).

    Config fields used::

        [embedding]
        provider = "openai"
        model = "text-embedding-3-small"
        api_key_env = "OPENAI_API_KEY"   # env var name; empty = no auth
        base_url = ""                     # empty = https://api.openai.com/v1
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

        self._api_key: str | None = None
        if config.embedding.api_key_env:
            self._api_key = os.environ.get(config.embedding.api_key_env)
            if not self._api_key:
                logger.warning(
                    "API key env var %s is not set; requests may fail",
                    config.embedding.api_key_env,
                )

    async def embed(self, texts: Sequence[str]) -> list[Vector]:
        """Generate embeddings for a batch of texts.

        Raises:
            EmbeddingError: If the API is unreachable or returns an error.
        """
        if not texts:
            return []

        url = f"{self._base_url}/embeddings"
        headers: dict[str, str] = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(
                    url,
                    json={"model": self._model, "input": list(texts)},
                    headers=headers,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise EmbeddingError(
                f"Embedding API error (HTTP {e.response.status_code}): {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise EmbeddingError(
                f"Embedding API not reachable at {self._base_url}. Error: {e}"
            ) from e
        except ValueError as e:
            raise EmbeddingError(f"Embedding API returned invalid JSON from {url}") from e

        # Items carry an "index"; restore input order
        raw_items = data.get("data", []) if isinstance(data, dict) else []
        if raw_items and all("index" in item for item in raw_items):
            raw_items = sorted(raw_items, key=lambda x: x["index"])

        try:
            embeddings = [item["embedding"] for item in raw_items]
        except (KeyError, TypeError) as e:
            raise EmbeddingError(
                f"Unexpected response format from {url}: missing 'embedding' field"
            ) from e

        if len(embeddings) != len(texts):
            raise EmbeddingError(
                f"API returned {len(embeddings)} embeddings for {len(texts)} inputs"
            )

        vectors = normalize(embeddings)
        if vectors and not self._dimension:
            self._dimension = len(vectors[0])

        logger.debug(
            "Embedded %d texts via OpenAI-compatible API (%s)", len(vectors), self._model
        )
        return vectors

    @property
    def dimension(self) -> int:
        """Dimensionality seen in the last response, 0 before the first call."""
        return self._dimension
