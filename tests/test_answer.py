"""Tests for mdqa.answer — extractive and generative synthesis."""

from __future__ import annotations

import asyncio
from unittest.mock import patch

import pytest

from mdqa.answer import ExtractiveSynthesizer, GenerativeSynthesizer, build_messages, tokenize
from mdqa.answer.extractive import NO_ANSWER, score_sentence
from mdqa.answer.generative import SYSTEM_PROMPT, format_context
from mdqa.exceptions import GenerationError, OperationCancelledError
from mdqa.llm import CancellationToken
from mdqa.text import ELLIPSIS
from mdqa.types import Chunk

# --- Helpers ---

_UNRELATED = [
    "The weather today is sunny and warm.",
    "Gardens need regular watering during summer.",
    "Cats often sleep for most of the day.",
    "Mountains are covered with snow in winter.",
    "Bread tastes best when freshly baked.",
    "Rivers flow toward the sea over long distances.",
    "Music festivals attract large crowds every year.",
    "Trains depart from the central station hourly.",
    "Coffee beans are roasted before grinding.",
    "Libraries lend books to their members.",
]


def _chunk(i: int, text: str, heading: str = "Doc") -> Chunk:
    return Chunk(id=i, heading_path=heading, text=text)


class TestTokenize:
    def test_lowercases_and_strips_punctuation(self):
        assert tokenize("Configure RETRIES, now!") == ["configure", "retries", "now"]

    def test_drops_stopwords(self):
        assert tokenize("What is the timeout of a request?") == ["timeout", "request"]


class TestScoreSentence:
    def test_exact_match_scores_two(self):
        assert score_sentence(["x", "protocol"], ["x"]) == 2

    def test_prefix_match_scores_one(self):
        assert score_sentence(["retries"], ["retry"]) == 0
        assert score_sentence(["retrying"], ["retry"]) == 1

    def test_length_bonus_needs_overlap(self):
        tokens = ["alpha", "beta", "gamma", "delta", "epsilon"]
        assert score_sentence(tokens, ["zeta"]) == 0
        assert score_sentence(tokens, ["alpha"]) == 3

    def test_no_bonus_for_short_sentence(self):
        assert score_sentence(["alpha", "beta"], ["alpha"]) == 2


class TestExtractiveSynthesizer:
    def test_finds_defining_sentence(self):
        text = " ".join(_UNRELATED[:5] + ["X is a protocol for Y."] + _UNRELATED[5:])
        answer = ExtractiveSynthesizer().synthesize("What is X?", [_chunk(0, text)])
        assert "X is a protocol for Y." in answer
        assert len(answer) <= 600

    def test_fallback_to_first_chunk(self):
        first = "Lorem ipsum dolor sit amet. " * 40
        chunks = [_chunk(0, first), _chunk(1, "Another passage entirely.")]
        answer = ExtractiveSynthesizer().synthesize("zebra quantum", chunks)
        assert answer
        assert len(answer) == 500
        assert answer.endswith(ELLIPSIS)
        assert first.startswith(answer[:-1])

    def test_no_chunks(self):
        assert ExtractiveSynthesizer().synthesize("anything", []) == NO_ANSWER

    def test_at_most_three_sentences_highest_first(self):
        text = (
            "Retries are off. "
            "Timeouts and retries and backoff interact in subtle ways here. "
            "Backoff doubles. "
            "Retries need backoff and timeouts configured together carefully. "
            "Nothing relevant."
        )
        synth = ExtractiveSynthesizer()
        selected = synth.select_sentences("retries backoff timeouts", [_chunk(0, text)])
        assert len(selected) == 3
        assert [s.score for s in selected] == sorted((s.score for s in selected), reverse=True)
        assert selected[0].text.startswith("Timeouts and retries")

    def test_ties_keep_chunk_order(self):
        chunks = [_chunk(0, "Alpha first."), _chunk(1, "Alpha second.")]
        selected = ExtractiveSynthesizer().select_sentences("alpha", chunks)
        assert [s.text for s in selected] == ["Alpha first.", "Alpha second."]

    def test_answer_capped(self):
        long_sentence = "Retries " + "matter a great deal " * 60 + "."
        answer = ExtractiveSynthesizer(limit=100).synthesize("retries", [_chunk(0, long_sentence)])
        assert len(answer) == 100

    def test_deterministic(self):
        chunks = [_chunk(0, " ".join(_UNRELATED)), _chunk(1, "X is a protocol for Y.")]
        synth = ExtractiveSynthesizer()
        assert synth.synthesize("What is X?", chunks) == synth.synthesize("What is X?", chunks)


class TestBuildMessages:
    def test_prompt_shape(self):
        chunks = [_chunk(0, "First text.", "A"), _chunk(1, "Second text.", "A > B")]
        messages = build_messages("How?", chunks)

        assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        user = messages[1]["content"]
        assert user.startswith("Question: How?\n\nContext:\n")
        assert "Chunk 1 [heading: A]:\nFirst text." in user
        assert "\n\n---\n\nChunk 2 [heading: A > B]:\nSecond text." in user

    def test_context_budget_keeps_first_chunk(self):
        chunks = [_chunk(0, "word " * 200), _chunk(1, "other " * 200)]
        context = format_context(chunks, max_tokens=10)
        assert context.startswith("Chunk 1")
        assert "Chunk 2" not in context

    def test_budget_counts_words_without_encoding(self):
        chunks = [_chunk(0, "alpha " * 20), _chunk(1, "beta " * 20), _chunk(2, "gamma " * 20)]
        with patch("mdqa.text._get_encoding", side_effect=OSError("no network")):
            context = format_context(chunks, max_tokens=60)
        assert "Chunk 2" in context
        assert "Chunk 3" not in context


class TestGenerativeSynthesizer:
    def test_streams_and_strips(self, make_generator):
        fragments: list[str] = []
        synth = GenerativeSynthesizer(make_generator(["  Hello", " world  "]))
        answer = asyncio.run(
            synth.generate("q", [_chunk(0, "ctx")], on_fragment=fragments.append)
        )
        assert answer == "Hello world"
        assert fragments == ["  Hello", " world  "]

    def test_empty_answer_raises(self, make_generator):
        synth = GenerativeSynthesizer(make_generator(["   "]))
        with pytest.raises(GenerationError, match="empty answer"):
            asyncio.run(synth.generate("q", [_chunk(0, "ctx")]))

    def test_provider_failure_propagates_as_generation_error(self, make_generator):
        synth = GenerativeSynthesizer(make_generator(["partial"], error=RuntimeError("socket")))
        with pytest.raises(GenerationError, match="socket"):
            asyncio.run(synth.generate("q", [_chunk(0, "ctx")]))

    def test_cancelled_mid_answer(self, make_generator):
        token = CancellationToken()
        generator = make_generator(["one ", "two ", "three "], delay=0.01)
        synth = GenerativeSynthesizer(generator)

        def cancel_after_first(_fragment: str) -> None:
            token.cancel()

        with pytest.raises(OperationCancelledError):
            asyncio.run(
                synth.generate("q", [_chunk(0, "ctx")], on_fragment=cancel_after_first, token=token)
            )
