"""Generative model collaborators — streaming chat providers."""

from mdqa.llm.base import BaseGenerator, Message
from mdqa.llm.ollama import OllamaGenerator
from mdqa.llm.openai_compat import OpenAICompatGenerator
from mdqa.llm.stream import CancellationToken, TextStream
from mdqa.registry import default_registry

__all__ = [
    "BaseGenerator",
    "CancellationToken",
    "Message",
    "OllamaGenerator",
    "OpenAICompatGenerator",
    "TextStream",
]

# Register built-in generative providers
default_registry.register("llm", "ollama", lambda cfg: OllamaGenerator(cfg))
default_registry.register("llm", "openai", lambda cfg: OpenAICompatGenerator(cfg))
