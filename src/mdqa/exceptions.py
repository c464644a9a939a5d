"""Custom exception hierarchy for mdqa."""

__all__ = [
    "ChunkError",
    "ConfigError",
    "EmbeddingError",
    "EmptyIndexError",
    "GenerationError",
    "IndexNotReadyError",
    "MdqaError",
    "OperationCancelledError",
    "PipelineError",
    "PluginError",
    "StoreError",
]


class MdqaError(Exception):
    """Base exception for all mdqa errors."""


class ConfigError(MdqaError):
    """Raised when configuration loading or validation fails."""


class ChunkError(MdqaError):
    """Raised when chunking operations fail."""


class EmbeddingError(MdqaError):
    """Raised when the embedding provider is unavailable or fails."""


class StoreError(MdqaError):
    """Raised when the similarity index rejects its input."""


class GenerationError(MdqaError):
    """Raised when the generative model is unavailable or fails.

    Recoverable: the pipeline falls back to extractive synthesis.
    """


class IndexNotReadyError(MdqaError):
    """Raised when a query arrives before the index is built."""


class EmptyIndexError(MdqaError):
    """Raised when a query arrives but the document produced no chunks."""


class OperationCancelledError(MdqaError):
    """Raised when a cancellation token stops indexing or generation."""


class PipelineError(MdqaError):
    """Raised when pipeline orchestration fails."""


class PluginError(MdqaError):
    """Raised when plugin loading or registration fails."""
