"""Configuration system for mdqa.

Reads ``mdqa.toml`` into typed dataclasses with sensible defaults for
every value.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from mdqa.exceptions import ConfigError

if TYPE_CHECKING:
    from pathlib import Path

_T = TypeVar("_T")

__all__ = [
    "ANSWER_MODES",
    "CONFIG_FILE",
    "AnswerConfig",
    "ChunkConfig",
    "EmbeddingConfig",
    "LlmConfig",
    "MdqaConfig",
    "RetrievalConfig",
    "default_config",
    "load_config",
    "save_config",
    "validate_config",
]

logger = logging.getLogger(__name__)

CONFIG_FILE = "mdqa.toml"

ANSWER_MODES: frozenset[str] = frozenset({"extractive", "generative"})


@dataclass
class ChunkConfig:
    """[chunk] section."""

    max_words: int = 350
    overlap_words: int = 40
    max_chars: int = 1200
    min_chars: int = 200
    max_chunks: int = 400


@dataclass
class EmbeddingConfig:
    """[embedding] section."""

    provider: str = "chromadb"
    model: str = "all-MiniLM-L6-v2"
    base_url: str = ""
    api_key_env: str = ""
    batch_size: int = 16
    timeout: float = 120.0


@dataclass
class RetrievalConfig:
    """[retrieval] section."""

    top_k: int = 4


@dataclass
class AnswerConfig:
    """[answer] section."""

    mode: str = "extractive"
    limit: int = 600
    fallback_limit: int = 500
    max_context_tokens: int = 1500


@dataclass
class LlmConfig:
    """[llm] section."""

    provider: str = "ollama"
    model: str = "llama3.2"
    base_url: str = ""
    api_key_env: str = ""
    temperature: float = 0.2
    max_tokens: int = 512
    timeout: float = 60.0


@dataclass
class MdqaConfig:
    """Root configuration combining all sections."""

    chunk: ChunkConfig = field(default_factory=ChunkConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    answer: AnswerConfig = field(default_factory=AnswerConfig)
    llm: LlmConfig = field(default_factory=LlmConfig)


_SECTIONS: dict[str, type] = {
    "chunk": ChunkConfig,
    "embedding": EmbeddingConfig,
    "retrieval": RetrievalConfig,
    "answer": AnswerConfig,
    "llm": LlmConfig,
}


def default_config() -> MdqaConfig:
    """Return a config with all default values."""
    return MdqaConfig()


def _config_to_dict(config: MdqaConfig) -> dict[str, object]:
    """Convert MdqaConfig to a nested dict suitable for TOML serialization."""
    return {name: dict(vars(getattr(config, name))) for name in _SECTIONS}


def save_config(config: MdqaConfig, path: Path) -> None:
    """Save configuration to a TOML file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _config_to_dict(config)
    try:
        with path.open("wb") as f:
            tomli_w.dump(data, f)
        logger.info("Saved config to %s", path)
    except OSError as e:
        logger.error("Failed to save config to %s: %s", path, e)
        raise ConfigError(f"Failed to save config to {path}: {e}") from e


def _load_section(cls: type[_T], data: dict[str, object]) -> _T:
    """Load a dataclass section from a dict, ignoring unknown keys."""
    known_fields = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
    filtered = {k: v for k, v in data.items() if k in known_fields}
    return cls(**filtered)


def validate_config(config: MdqaConfig) -> None:
    """Reject values the pipeline cannot work with.

    Raises:
        ConfigError: On the first invalid value found.
    """
    if config.chunk.max_words < 1:
        raise ConfigError(f"chunk.max_words must be >= 1, got {config.chunk.max_words}")
    if config.chunk.overlap_words < 0:
        raise ConfigError(f"chunk.overlap_words must be >= 0, got {config.chunk.overlap_words}")
    if config.chunk.max_chars < 2:
        raise ConfigError(f"chunk.max_chars must be >= 2, got {config.chunk.max_chars}")
    if config.chunk.max_chunks < 1:
        raise ConfigError(f"chunk.max_chunks must be >= 1, got {config.chunk.max_chunks}")
    if config.embedding.batch_size < 1:
        raise ConfigError(f"embedding.batch_size must be >= 1, got {config.embedding.batch_size}")
    if config.retrieval.top_k < 1:
        raise ConfigError(f"retrieval.top_k must be >= 1, got {config.retrieval.top_k}")
    if config.answer.mode not in ANSWER_MODES:
        raise ConfigError(
            f"answer.mode must be one of {sorted(ANSWER_MODES)}, got {config.answer.mode!r}"
        )


def load_config(path: Path) -> MdqaConfig:
    """Load configuration from a TOML file.

    Missing sections or keys get default values.
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        raw = path.read_bytes()
        data = tomllib.loads(raw.decode("utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        raise ConfigError(f"Failed to load config from {path}: {e}") from e

    config = MdqaConfig()
    for name, cls in _SECTIONS.items():
        section = data.get(name)
        if isinstance(section, dict):
            try:
                setattr(config, name, _load_section(cls, section))
            except TypeError as e:
                raise ConfigError(f"Invalid [{name}] section in {path}: {e}") from e

    validate_config(config)
    logger.info("Loaded config from %s", path)
    return config
