"""Streaming transcription session.

Audio is fed incrementally with :meth:`StreamingParakeet.add_audio`. Each call
re-encodes the retained audio tail through per-layer rotating caches and
splits the encoded frames in two:

- clean frames, old enough to have full right context, are decoded once with
  the persistent decoder state and appended to ``clean_tokens`` for good;
- dirty frames, the most recent ``drop_size`` ones, are decoded provisionally
  and replace ``dirty_tokens`` on every call.

Usage:
    with model.transcribe_stream(context_size=(256, 256)) as stream:
        for block in blocks:
            stream.add_audio(block)
            print(stream.result.text)
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

import numpy as np
import torch

from .alignment import AlignedResult, AlignedToken, sentences_to_result, tokens_to_sentences
from .audio import get_logmel
from .cache import RotatingConformerCache
from .config import DecodingConfig
from .errors import ConcurrentAccessError
from .tdt_greedy import DecoderState

if TYPE_CHECKING:
    from .parakeet_model import ParakeetTDT

logger = logging.getLogger(__name__)


def _shifted(tokens: list[AlignedToken], offset: float) -> list[AlignedToken]:
    for token in tokens:
        token.start += offset
    return tokens


class StreamingParakeet:
    """Incremental transcription over a bounded audio/context window.

    Args:
        model: Loaded model
        context_size: (keep_frames, drop_frames) of encoded context
        depth: Multiplier on drop_frames for the unstable tail
        decoding_config: Options passed to every decode call
    """

    def __init__(
        self,
        model: ParakeetTDT,
        context_size: tuple[int, int] = (256, 256),
        depth: int = 1,
        decoding_config: DecodingConfig | None = None,
    ):
        keep_frames, drop_frames = context_size
        if keep_frames <= 0 or drop_frames < 0 or depth < 1:
            raise ValueError(f"Invalid streaming context {context_size} with depth {depth}")

        self.model = model
        self.context_size = (keep_frames, drop_frames)
        self.depth = depth
        self.decoding_config = decoding_config

        self._lock = threading.Lock()
        self._audio = torch.zeros(0)
        self._consumed = 0
        self._state = DecoderState()
        self._clean_tokens: list[AlignedToken] = []
        self._dirty_tokens: list[AlignedToken] = []
        self.cache = [
            RotatingConformerCache(self.keep_size, self.drop_size)
            for _ in range(model.encoder_config.n_layers)
        ]

    @property
    def keep_size(self) -> int:
        return self.context_size[0]

    @property
    def drop_size(self) -> int:
        """Number of most recent encoded frames treated as unstable."""
        return self.context_size[1] * self.depth

    @property
    def clean_tokens(self) -> tuple[AlignedToken, ...]:
        return tuple(self._clean_tokens)

    @property
    def dirty_tokens(self) -> tuple[AlignedToken, ...]:
        return tuple(self._dirty_tokens)

    @property
    def result(self) -> AlignedResult:
        return sentences_to_result(tokens_to_sentences(self._clean_tokens + self._dirty_tokens))

    def __enter__(self) -> StreamingParakeet:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the audio buffer and encoder caches."""
        self._audio = torch.zeros(0)
        self._consumed = 0
        for cache in self.cache:
            cache.reset()

    @property
    def _samples_to_keep(self) -> int:
        return (
            self.drop_size
            * self.model.encoder_config.subsampling_factor
            * self.model.preprocess_config.hop_length
        )

    def add_audio(self, audio: torch.Tensor | np.ndarray) -> None:
        """Append mono samples and update the clean and dirty token lists.

        Raises:
            ConcurrentAccessError: If another call is in progress on this session.
        """
        if not self._lock.acquire(blocking=False):
            raise ConcurrentAccessError()
        try:
            self._add_audio(audio)
        finally:
            self._lock.release()

    def _add_audio(self, audio: torch.Tensor | np.ndarray) -> None:
        if isinstance(audio, np.ndarray):
            audio = torch.from_numpy(np.ascontiguousarray(audio))
        audio = audio.reshape(-1)
        self._audio = torch.cat([self._audio.to(audio.dtype), audio])

        # Stream time of the first retained sample.
        offset = self._consumed / self.model.preprocess_config.sample_rate
        mel = get_logmel(self._audio, self.model.preprocess_config)
        features, lengths = self.model.encode(mel, cache=self.cache)
        length = int(lengths[0])

        keep = self._samples_to_keep
        if self._audio.size(0) > keep:
            self._consumed += self._audio.size(0) - keep
            self._audio = self._audio[self._audio.size(0) - keep :]

        clean_length = max(0, length - self.drop_size)
        decoder = self.model.greedy_decoder

        if clean_length > 0:
            hypotheses, states = decoder.decode_states(
                features[:, :clean_length], [clean_length], [self._state], config=self.decoding_config
            )
            self._state = states[0]
            self._clean_tokens.extend(_shifted(hypotheses[0], offset))

        if length > clean_length:
            hypotheses, _ = decoder.decode_states(
                features[:, clean_length:length],
                [length - clean_length],
                [self._state],
                config=self.decoding_config,
            )
            self._dirty_tokens = _shifted(hypotheses[0], offset + clean_length * self.model.time_ratio)
        else:
            self._dirty_tokens = []

        logger.debug(
            "Streamed %d frames: %d clean, %d dirty tokens",
            length,
            len(self._clean_tokens),
            len(self._dirty_tokens),
        )
