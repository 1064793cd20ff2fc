"""Chunked transcription of long audio.

Long recordings are split into overlapping windows that are decoded
independently from a cold decoder state. Window tokens are re-based to
absolute time and stitched with a time-cutoff merge: everything already
accumulated up to ``last.end - overlap`` is kept, and the new window
contributes the tokens starting at or after that cutoff.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING

import torch

from .alignment import AlignedResult, AlignedToken, sentences_to_result, tokens_to_sentences
from .audio import get_logmel
from .config import DecodingConfig

if TYPE_CHECKING:
    from .parakeet_model import ParakeetTDT

logger = logging.getLogger(__name__)


def merge_by_cutoff(
    existing: Sequence[AlignedToken],
    new: Sequence[AlignedToken],
    overlap_duration: float,
) -> list[AlignedToken]:
    """Stitch two token streams at ``existing[-1].end - overlap_duration``.

    Args:
        existing: Tokens accumulated so far, in absolute time
        new: Tokens of the next window, in absolute time
        overlap_duration: Window overlap in seconds

    Returns:
        Accumulated tokens ending at or before the cutoff followed by new
        tokens starting at or after it
    """
    if not existing:
        return list(new)

    cutoff = existing[-1].end - overlap_duration
    kept = [token for token in existing if token.end <= cutoff]
    added = [token for token in new if token.start >= cutoff]
    return kept + added


class ChunkedTranscriber:
    """Decodes audio in overlapping windows with a model.

    Args:
        model: Model providing feature config, ``encode`` and ``decode``
        decoding_config: Options passed to every decode call
    """

    def __init__(self, model: ParakeetTDT, decoding_config: DecodingConfig | None = None):
        self.model = model
        self.decoding_config = decoding_config

    def _decode_window(self, audio: torch.Tensor) -> list[AlignedToken]:
        mel = get_logmel(audio, self.model.preprocess_config)
        features, lengths = self.model.encode(mel)
        hypotheses, _ = self.model.decode(features, lengths, config=self.decoding_config)
        return hypotheses[0]

    def transcribe(
        self,
        audio: torch.Tensor,
        *,
        chunk_duration: float | None = None,
        overlap_duration: float = 15.0,
        chunk_callback: Callable[[int, int], None] | None = None,
    ) -> AlignedResult:
        """Transcribe a mono waveform.

        Args:
            audio: 1-D waveform at the model sample rate
            chunk_duration: Window length in seconds; None decodes in one pass
            overlap_duration: Overlap between consecutive windows in seconds
            chunk_callback: Called with (window_end, total_samples) before each window is decoded

        Returns:
            Sentence-segmented transcription

        Raises:
            ValueError: If the overlap is not shorter than the window.
        """
        sample_rate = self.model.preprocess_config.sample_rate
        hop_length = self.model.preprocess_config.hop_length
        total = audio.size(0)

        if chunk_duration is None or total <= chunk_duration * sample_rate:
            tokens = self._decode_window(audio)
            return sentences_to_result(tokens_to_sentences(tokens))

        chunk_samples = int(chunk_duration * sample_rate)
        overlap_samples = int(overlap_duration * sample_rate)
        if overlap_samples >= chunk_samples:
            raise ValueError(
                f"overlap_duration ({overlap_duration}s) must be shorter than chunk_duration ({chunk_duration}s)"
            )

        tokens: list[AlignedToken] = []
        for start in range(0, total, chunk_samples - overlap_samples):
            end = min(start + chunk_samples, total)

            if chunk_callback is not None:
                chunk_callback(end, total)

            if end - start < hop_length:
                break

            logger.debug("Decoding window [%d, %d) of %d samples", start, end, total)
            window_tokens = self._decode_window(audio[start:end])

            offset = start / sample_rate
            for token in window_tokens:
                token.start += offset

            tokens = merge_by_cutoff(tokens, window_tokens, overlap_duration)

        return sentences_to_result(tokens_to_sentences(tokens))
