"""SentencePiece-style id to text decoding."""

from __future__ import annotations

from collections.abc import Sequence

WORD_MARKER = "▁"


def decode(tokens: Sequence[int], vocabulary: Sequence[str]) -> str:
    """Concatenate vocabulary pieces, turning the word marker into a space."""
    return "".join(vocabulary[token] for token in tokens).replace(WORD_MARKER, " ")
