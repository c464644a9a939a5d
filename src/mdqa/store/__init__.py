"""Similarity index — in-memory cosine ranking."""

from mdqa.store.base import BaseStore
from mdqa.store.memory import MemoryStore, rank

__all__ = ["BaseStore", "MemoryStore", "rank"]
