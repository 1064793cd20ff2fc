"""Time-aligned transcription types.

Tokens carry their start time and duration in seconds. Sentences and results
are built from token lists and never modified afterwards.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

SENTENCE_TERMINATORS = (".", "!", "?")


@dataclass
class AlignedToken:
    """A single decoded vocabulary piece.

    ``end`` is derived from ``start + duration``. Assigning to ``end`` changes
    ``duration`` and leaves ``start`` alone.
    """

    id: int
    start: float
    duration: float
    text: str

    @property
    def end(self) -> float:
        return self.start + self.duration

    @end.setter
    def end(self, value: float) -> None:
        self.duration = value - self.start

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "start": round(self.start, 3),
            "end": round(self.end, 3),
            "duration": round(self.duration, 3),
        }


@dataclass(frozen=True)
class AlignedSentence:
    tokens: tuple[AlignedToken, ...]

    def __post_init__(self) -> None:
        if not self.tokens:
            raise ValueError("AlignedSentence needs at least one token")
        object.__setattr__(self, "tokens", tuple(self.tokens))

    @property
    def start(self) -> float:
        return self.tokens[0].start

    @property
    def end(self) -> float:
        return self.tokens[-1].end

    @property
    def duration(self) -> float:
        return self.end - self.start

    @property
    def text(self) -> str:
        return "".join(token.text for token in self.tokens)

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "start": round(self.start, 3),
            "end": round(self.end, 3),
            "duration": round(self.duration, 3),
            "tokens": [token.to_dict() for token in self.tokens],
        }


@dataclass(frozen=True)
class AlignedResult:
    sentences: tuple[AlignedSentence, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, "sentences", tuple(self.sentences))

    @property
    def text(self) -> str:
        return " ".join(sentence.text for sentence in self.sentences)

    @property
    def tokens(self) -> list[AlignedToken]:
        return [token for sentence in self.sentences for token in sentence.tokens]

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "sentences": [sentence.to_dict() for sentence in self.sentences],
        }


def tokens_to_sentences(tokens: Iterable[AlignedToken]) -> list[AlignedSentence]:
    """Split tokens into sentences at tokens containing ``.``, ``!`` or ``?``.

    A trailing run of tokens with no terminator becomes the last sentence.
    """
    sentences: list[AlignedSentence] = []
    current: list[AlignedToken] = []

    for token in tokens:
        current.append(token)
        if any(mark in token.text for mark in SENTENCE_TERMINATORS):
            sentences.append(AlignedSentence(tuple(current)))
            current = []

    if current:
        sentences.append(AlignedSentence(tuple(current)))

    return sentences


def sentences_to_result(sentences: Iterable[AlignedSentence]) -> AlignedResult:
    return AlignedResult(tuple(sentences))
