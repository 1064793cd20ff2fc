"""Parakeet-TDT model implementation for ASR.

Combines a Conformer encoder with a TDT prediction network and joint network.
Decoding uses duration predictions to skip multiple frames at once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import torch
import torch.nn as nn

from .alignment import AlignedResult, AlignedToken, sentences_to_result, tokens_to_sentences
from .audio import load_audio
from .cache import ConformerCache
from .config import DecodingConfig, ParakeetTDTConfig
from .conformer_encoder import ConformerEncoder
from .errors import InvalidModelTypeError
from .tdt_greedy import TDTGreedyDecoder
from .tdt_joint import JointNetwork
from .tdt_predictor import HiddenState, PredictNetwork

if TYPE_CHECKING:
    from .streaming import StreamingParakeet

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[int, int], None]


class ParakeetTDT(nn.Module):
    """Full Parakeet-TDT model for ASR.

    Args:
        config: Parsed model configuration

    Attributes:
        encoder: Conformer encoder processing log-mel spectrograms
        decoder: Prediction network (LSTM over emitted tokens)
        joint: Joint network producing token and duration logits
    """

    def __init__(self, config: ParakeetTDTConfig):
        super().__init__()

        if config.decoding.model_type != "tdt":
            raise InvalidModelTypeError(
                f"Model must be a TDT model, got model_type={config.decoding.model_type!r}"
            )

        self.config = config
        self.preprocess_config = config.preprocessor
        self.encoder_config = config.encoder

        self.encoder = ConformerEncoder(config.encoder)
        self.decoder = PredictNetwork(config.decoder)
        self.joint = JointNetwork(config.joint)

    @property
    def vocabulary(self) -> list[str]:
        return self.config.joint.vocabulary

    @property
    def durations(self) -> list[int]:
        return self.config.decoding.durations

    @property
    def max_symbols(self) -> int:
        return self.config.decoding.max_symbols

    @property
    def time_ratio(self) -> float:
        """Seconds covered by one encoded frame."""
        return (
            self.encoder_config.subsampling_factor
            / self.preprocess_config.sample_rate
            * self.preprocess_config.hop_length
        )

    @property
    def greedy_decoder(self) -> TDTGreedyDecoder:
        return TDTGreedyDecoder(
            self.decoder,
            self.joint,
            self.vocabulary,
            self.durations,
            self.time_ratio,
            max_symbols=self.max_symbols,
        )

    @torch.no_grad()
    def encode(
        self,
        mel: torch.Tensor,
        lengths: torch.Tensor | None = None,
        cache: Sequence[ConformerCache] | None = None,
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Encode log-mel features; with ``cache`` the encoder runs incrementally."""
        weight = self.encoder.pre_encode.out.weight
        mel = mel.to(device=weight.device, dtype=weight.dtype)
        return self.encoder(mel, lengths, cache=cache)

    def decode(
        self,
        features: torch.Tensor,
        lengths: torch.Tensor | Sequence[int] | None = None,
        last_token: Sequence[int | None] | None = None,
        hidden_state: Sequence[HiddenState | None] | None = None,
        *,
        config: DecodingConfig | None = None,
    ) -> tuple[list[list[AlignedToken]], list[HiddenState | None]]:
        """Greedy TDT decoding of encoded frames.

        Args:
            features: Encoded frames [B, S, D]
            lengths: Valid frame counts per sequence
            last_token: Optional warm-start last emitted token per sequence
            hidden_state: Optional warm-start prediction network state per sequence
            config: Decoding options

        Returns:
            Tokens per sequence and the committed hidden state per sequence
        """
        return self.greedy_decoder.decode(
            features, lengths, last_token, hidden_state, config=config
        )

    @torch.no_grad()
    def generate(
        self, mel: torch.Tensor, *, decoding_config: DecodingConfig | None = None
    ) -> list[AlignedResult]:
        """Encode and decode a batch of log-mel spectrograms.

        Args:
            mel: [B, frames, n_mels] or [frames, n_mels]

        Returns:
            One result per batch element
        """
        if mel.dim() == 2:
            mel = mel.unsqueeze(0)

        features, lengths = self.encode(mel)
        hypotheses, _ = self.decode(features, lengths, config=decoding_config)

        return [sentences_to_result(tokens_to_sentences(hypothesis)) for hypothesis in hypotheses]

    def transcribe(
        self,
        audio: torch.Tensor | np.ndarray | str | Path,
        *,
        dtype: torch.dtype = torch.float32,
        chunk_duration: float | None = None,
        overlap_duration: float = 15.0,
        chunk_callback: ChunkCallback | None = None,
        decoding_config: DecodingConfig | None = None,
    ) -> AlignedResult:
        """Transcribe audio, optionally in overlapping chunks.

        Args:
            audio: Mono waveform at the model sample rate, or a path to an audio file
            dtype: Dtype the waveform is cast to before feature extraction
            chunk_duration: Window length in seconds; None decodes in one pass
            overlap_duration: Overlap between consecutive windows in seconds
            chunk_callback: Called with (processed_samples, total_samples) per window
            decoding_config: Decoding options

        Returns:
            Sentence-segmented transcription
        """
        from .chunking import ChunkedTranscriber

        if isinstance(audio, (str, Path)):
            audio = load_audio(audio, self.preprocess_config.sample_rate)
        elif isinstance(audio, np.ndarray):
            audio = torch.from_numpy(np.ascontiguousarray(audio))
        audio = audio.to(dtype)

        transcriber = ChunkedTranscriber(self, decoding_config=decoding_config)
        return transcriber.transcribe(
            audio,
            chunk_duration=chunk_duration,
            overlap_duration=overlap_duration,
            chunk_callback=chunk_callback,
        )

    def transcribe_stream(
        self,
        context_size: tuple[int, int] = (256, 256),
        depth: int = 1,
        *,
        decoding_config: DecodingConfig | None = None,
    ) -> StreamingParakeet:
        """Create a streaming session over this model.

        Args:
            context_size: (keep_frames, drop_frames) of encoded context
            depth: Multiplier on drop_frames for the unstable tail

        Returns:
            A new :class:`StreamingParakeet`
        """
        from .streaming import StreamingParakeet

        return StreamingParakeet(self, context_size, depth, decoding_config=decoding_config)

    @classmethod
    def from_pretrained(
        cls,
        path_or_repo: str | Path,
        *,
        dtype: torch.dtype = torch.float32,
        device: str | torch.device = "cpu",
    ) -> ParakeetTDT:
        """Load a model from a local directory or a Hugging Face repo id."""
        from .loader import load_model

        return load_model(path_or_repo, dtype=dtype, device=device)
