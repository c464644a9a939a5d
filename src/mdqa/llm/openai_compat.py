"""OpenAI-compatible chat provider using server-sent events.

Works with any server implementing ``/v1/chat/completions`` with
``"stream": true``: OpenAI, LiteLLM proxy, vLLM, llama.cpp server, etc.
"""

from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING

import httpx

from mdqa.exceptions import GenerationError
from mdqa.llm.base import BaseGenerator

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from mdqa.config import MdqaConfig
    from mdqa.llm.base import Message

__all__ = ["OpenAICompatGenerator"]

logger = logging.getLogger(__name__)

_DEFAULT_BASE_URL = "https://api.openai.com/v1"
_DATA_PREFIX = "data:"
_DONE = "[DONE]"


class OpenAICompatGenerator(BaseGenerator):
    """Generative provider for OpenAI-compatible chat completion servers.

    Config fields used::

        [llm]
        provider = "openai"
        model = "gpt-4o-mini"
        api_key_env = "OPENAI_API_KEY"
        base_url = ""                     # empty = https://api.openai.com/v1
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

        self._api_key: str | None = None
        if config.llm.api_key_env:
            self._api_key = os.environ.get(config.llm.api_key_env)
            if not self._api_key:
                logger.warning(
                    "API key env var %s is not set; requests may fail",
                    config.llm.api_key_env,
                )

    async def fragments(self, messages: list[Message]) -> AsyncIterator[str]:
        url = f"{self._base_url}/chat/completions"
        payload = {
            "model": self._model,
            "messages": messages,
            "stream": True,
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        headers: dict[str, str] = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"

        logger.info("Chat completion request (model=%s, messages=%d)", self._model, len(messages))

        try:
            async with (
                httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client,
                client.stream("POST", url, json=payload, headers=headers) as response,
            ):
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.startswith(_DATA_PREFIX):
                        continue
                    data = line[len(_DATA_PREFIX) :].strip()
                    if data == _DONE:
                        return
                    event = json.loads(data)
                    choices = event.get("choices") or [{}]
                    content = (choices[0].get("delta") or {}).get("content") or ""
                    if content:
                        yield content
        except httpx.HTTPStatusError as e:
            raise GenerationError(
                f"Chat API error (HTTP {e.response.status_code}): {e.response.reason_phrase}"
            ) from e
        except httpx.HTTPError as e:
            raise GenerationError(f"Chat API not reachable at {self._base_url}. Error: {e}") from e
        except (json.JSONDecodeError, AttributeError) as e:
            raise GenerationError(f"Chat API returned a malformed event from {url}") from e
