"""Generative answers through an external chat model.

Builds a grounded prompt from the retrieved chunks and streams the
model's reply. Any failure surfaces as ``GenerationError`` so the caller
can fall back to extractive synthesis.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from mdqa.exceptions import GenerationError, MdqaError, OperationCancelledError
from mdqa.text import count_tokens, count_words, encoding_available

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from mdqa.llm.base import BaseGenerator, Message
    from mdqa.llm.stream import CancellationToken
    from mdqa.types import Chunk

__all__ = ["SYSTEM_PROMPT", "GenerativeSynthesizer", "build_messages", "format_context"]

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant. Answer the user's question using ONLY the provided context.\n"
    "If the answer is not in the context, say you don't know. Be concise."
)

_CONTEXT_SEPARATOR = "\n\n---\n\n"


def format_context(chunks: Sequence[Chunk], max_tokens: int | None = None) -> str:
    """Label each chunk with its heading and join them for the prompt.

    With ``max_tokens``, chunks are added in order until the budget is
    spent; the first chunk is always included. Words stand in for tokens
    when the tiktoken encoding cannot be loaded.
    """
    measure = count_tokens
    if max_tokens is not None and not encoding_available():
        measure = count_words
    sections: list[str] = []
    used = 0
    for i, chunk in enumerate(chunks, start=1):
        section = f"Chunk {i} [heading: {chunk.heading_path or 'N/A'}]:\n{chunk.text}"
        if max_tokens is None:
            sections.append(section)
            continue
        cost = measure(section)
        if sections and used + cost > max_tokens:
            logger.debug("Context budget reached after %d of %d chunks", len(sections), len(chunks))
            break
        sections.append(section)
        used += cost
    return _CONTEXT_SEPARATOR.join(sections)


def build_messages(
    question: str,
    chunks: Sequence[Chunk],
    max_context_tokens: int | None = None,
) -> list[Message]:
    """Build the system + user chat messages for a grounded answer."""
    context = format_context(chunks, max_context_tokens)
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": f"Question: {question}\n\nContext:\n{context}"},
    ]


class GenerativeSynthesizer:
    """Answers questions by delegating to a streaming chat model."""

    def __init__(self, generator: BaseGenerator, max_context_tokens: int = 1500) -> None:
        self.generator = generator
        self.max_context_tokens = max_context_tokens

    async def generate(
        self,
        question: str,
        chunks: Sequence[Chunk],
        *,
        on_fragment: Callable[[str], None] | None = None,
        token: CancellationToken | None = None,
    ) -> str:
        """Stream an answer from the model and return it stripped.

        Raises:
            GenerationError: If the model fails or returns nothing.
            OperationCancelledError: If ``token`` was cancelled mid-answer.
        """
        messages = build_messages(question, chunks, self.max_context_tokens)

        try:
            async with self.generator.stream(messages, token=token) as stream:
                text = await stream.collect(on_fragment)
        except MdqaError:
            raise
        except Exception as e:
            logger.error("Generation failed: %s", e)
            raise GenerationError(f"Generation failed: {e}") from e

        if token is not None and token.cancelled:
            raise OperationCancelledError("Answer generation cancelled")

        answer = text.strip()
        if not answer:
            raise GenerationError("The model returned an empty answer")
        return answer
