"""Tests for aligned token/sentence/result types and sentence segmentation."""

from __future__ import annotations

import json

import pytest

from parakeet_tdt import tokenizer
from parakeet_tdt.alignment import (
    AlignedResult,
    AlignedSentence,
    AlignedToken,
    sentences_to_result,
    tokens_to_sentences,
)


def tok(text: str, start: float, duration: float = 0.1, id: int = 0) -> AlignedToken:
    return AlignedToken(id=id, start=start, duration=duration, text=text)


class TestAlignedToken:
    def test_end_is_derived(self):
        token = tok("a", 1.0, 0.5)
        assert token.end == pytest.approx(1.5)

    def test_setting_end_changes_duration_only(self):
        token = tok("a", 1.0, 0.5)
        token.end = 2.0
        assert token.start == 1.0
        assert token.duration == pytest.approx(1.0)

    def test_shifting_start_moves_end(self):
        token = tok("a", 1.0, 0.5)
        token.start += 3.0
        assert token.end == pytest.approx(4.5)


class TestSentenceSegmentation:
    def test_empty_input(self):
        assert tokens_to_sentences([]) == []

    def test_splits_on_terminators(self):
        tokens = [
            tok(" Hi", 0.0),
            tok(".", 0.1),
            tok(" Who", 0.2),
            tok(" are", 0.3),
            tok(" you?", 0.4),
            tok(" Wow", 0.5),
            tok("!", 0.6),
        ]
        sentences = tokens_to_sentences(tokens)

        assert [s.text for s in sentences] == [" Hi.", " Who are you?", " Wow!"]

    def test_trailing_tokens_become_final_sentence(self):
        sentences = tokens_to_sentences([tok(" one", 0.0), tok(".", 0.1), tok(" two", 0.2)])

        assert len(sentences) == 2
        assert sentences[-1].text == " two"

    def test_terminator_inside_token(self):
        sentences = tokens_to_sentences([tok(" e.g", 0.0), tok(" more", 0.1)])
        assert [s.text for s in sentences] == [" e.g", " more"]

    def test_sentence_timing(self):
        sentence = AlignedSentence((tok("a", 1.0, 0.2), tok("b", 1.5, 0.5)))
        assert sentence.start == 1.0
        assert sentence.end == pytest.approx(2.0)
        assert sentence.duration == pytest.approx(1.0)

    def test_empty_sentence_rejected(self):
        with pytest.raises(ValueError):
            AlignedSentence(())


class TestAlignedResult:
    def test_text_and_tokens(self):
        tokens = [tok(" Hi", 0.0), tok(".", 0.1), tok(" Bye", 0.2)]
        result = sentences_to_result(tokens_to_sentences(tokens))

        assert result.text == " Hi.  Bye"
        assert result.tokens == tokens

    def test_empty_result(self):
        result = AlignedResult()
        assert result.text == ""
        assert result.tokens == []

    def test_to_dict_is_json_serialisable(self):
        result = sentences_to_result(tokens_to_sentences([tok(" Hi", 0.0, id=3), tok(".", 0.1234, id=2)]))
        data = json.loads(json.dumps(result.to_dict()))

        assert data["text"] == " Hi."
        assert data["sentences"][0]["tokens"][1] == {
            "id": 2,
            "text": ".",
            "start": 0.123,
            "end": 0.223,
            "duration": 0.1,
        }


class TestTokenizer:
    def test_word_marker_becomes_space(self):
        assert tokenizer.decode([0, 1, 2], ["▁hello", "▁world", "."]) == " hello world."
