"""Answer synthesis — extractive (default) and generative."""

from mdqa.answer.extractive import ExtractiveSynthesizer, tokenize
from mdqa.answer.generative import GenerativeSynthesizer, build_messages

__all__ = ["ExtractiveSynthesizer", "GenerativeSynthesizer", "build_messages", "tokenize"]
