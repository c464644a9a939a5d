"""Ollama chat provider using the streaming /api/chat endpoint.

The response body is newline-delimited JSON; each line carries a piece of
``message.content`` and the last one has ``"done": true``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import httpx

from mdqa.exceptions import GenerationError
from mdqa.llm.base import BaseGenerator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mdqa.config import MdqaConfig
    from mdqa.llm.base import Message

__all__ = ["OllamaGenerator"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "http://localhost:11434"


class OllamaGenerator(BaseGenerator):
    """Generative provider backed by a local Ollama instance.

    Config fields used::

        [llm]
        provider = "ollama"
        model = "llama3.2"
        base_url = ""           # empty = http://localhost:11434
        temperature = 0.2
        max_tokens = 512
        timeout = 60.0
    """

    def __init__(
        self,
        config: MdqaConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._model = config.llm.model
        self._base_url = (config.llm.base_url or _DEFAULT_BASE_URL).rstrip("/")
        self._temperature = config.llm.temperature
        self._max_tokens = config.llm.max_tokens
        self._timeout = config.llm.timeout
        self._transport = transport
        self.fragment_timeout = config.llm.timeout

    async def fragments(self, messages: list[Message]) -> AsyncIterator[str]:
        url = f"{self._base_url}/api/chat"
        payload = {
            "model": self._model,
            "messages": messages,
            "stream": True,
            "options": {"temperature": self._temperature, "num_predict": self._max_tokens},
        }
        logger.info("Ollama chat request (model=%s, messages=%d)", self._model, len(messages))

        try:
            async with (
                httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client,
                client.stream("POST", url, json=payload) as response,
            ):
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    data = json.loads(line)
                    if "error" in data:
                        raise GenerationError(f"Ollama generation failed: {data['error']}")
                    content = data.get("message", {}).get("content", "")
                    if content:
                        yield content
                    if data.get("done"):
                        return
        except httpx.HTTPStatusError as e:
            raise GenerationError(
                f"Ollama API error (HTTP {e.response.status_code}): {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise GenerationError(
                f"Ollama not reachable at {self._base_url}. Is Ollama running? Error: {e}"
            ) from e
        except (json.JSONDecodeError, AttributeError) as e:
            raise GenerationError(f"Ollama returned a malformed stream line from {url}") from e
