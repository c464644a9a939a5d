"""Embedding engine — abstract provider interface and concrete providers."""

from mdqa.embed.base import BaseEmbedder, normalize
from mdqa.embed.ollama import OllamaEmbedder
from mdqa.embed.openai_compat import OpenAICompatEmbedder
from mdqa.registry import default_registry

__all__ = ["BaseEmbedder", "OllamaEmbedder", "OpenAICompatEmbedder", "normalize"]


def _chromadb_factory(cfg):
    # Deferred: importing chromadb is slow and only this provider needs it
    from mdqa.embed.chromadb_embed import ChromaDBEmbedder

    return ChromaDBEmbedder(cfg)


# Register built-in embedding providers
default_registry.register("embedding", "chromadb", _chromadb_factory)
default_registry.register("embedding", "ollama", lambda cfg: OllamaEmbedder(cfg))
default_registry.register("embedding", "openai", lambda cfg: OpenAICompatEmbedder(cfg))
