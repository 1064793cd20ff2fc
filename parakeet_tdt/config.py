"""Configuration dataclasses for Parakeet TDT (Token-and-Duration Transducer) models.

The field names follow the NeMo ``config.json`` layout shipped with converted
Parakeet checkpoints, so a parsed JSON document can be handed to
:meth:`ParakeetTDTConfig.from_dict` directly.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _known_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - names)
    if unknown:
        logger.debug("Ignoring unknown %s keys: %s", cls.__name__, unknown)
    return {k: v for k, v in data.items() if k in names}


@dataclass
class PreprocessConfig:
    """Log-mel front-end settings.

    Attributes:
        sample_rate: Audio sample rate in Hz.
        normalize: ``"per_feature"``, ``"all_features"`` or anything else for none.
        window_size: STFT window length in seconds.
        window_stride: STFT hop in seconds.
        window: Window function name.
        features: Number of mel bins.
        n_fft: FFT size.
        dither: Training-time dither amount (ignored at inference).
        pad_to: Pad the frame axis to a multiple of this (0 disables).
        pad_value: Value used for ``pad_to`` padding.
        preemph: Pre-emphasis coefficient, or None to skip.
        mag_power: Exponent applied to the STFT magnitude.
    """

    sample_rate: int = 16000
    normalize: str = "per_feature"
    window_size: float = 0.025
    window_stride: float = 0.01
    window: str = "hann"
    features: int = 80
    n_fft: int = 512
    dither: float = 1e-5
    pad_to: int = 0
    pad_value: float = 0.0
    preemph: float | None = 0.97
    mag_power: float = 2.0

    @property
    def win_length(self) -> int:
        return int(self.window_size * self.sample_rate)

    @property
    def hop_length(self) -> int:
        return int(self.window_stride * self.sample_rate)


@dataclass
class ConformerConfig:
    feat_in: int = 80
    n_layers: int = 17
    d_model: int = 512
    n_heads: int = 8
    ff_expansion_factor: int = 4
    subsampling_factor: int = 8
    self_attention_model: str = "rel_pos"
    subsampling: str = "dw_striding"
    conv_kernel_size: int = 9
    subsampling_conv_channels: int = 256
    pos_emb_max_len: int = 5000
    use_bias: bool = True
    xscaling: bool = False
    att_context_size: list[int] | None = None


@dataclass
class PredictConfig:
    """Prediction network (LSTM language model) settings."""

    vocab_size: int = 1024
    blank_as_pad: bool = True
    pred_hidden: int = 640
    pred_rnn_layers: int = 2
    rnn_hidden_size: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PredictConfig:
        prednet = dict(data.get("prednet", {}))
        merged = {**{k: v for k, v in data.items() if k != "prednet"}, **prednet}
        return cls(**_known_fields(cls, merged))


@dataclass
class JointConfig:
    """Joint network settings.

    ``num_extra_outputs`` is the number of duration bins appended after the
    ``num_classes + 1`` token logits (the ``+ 1`` being the blank).
    """

    num_classes: int = 1024
    vocabulary: list[str] = field(default_factory=list)
    joint_hidden: int = 640
    activation: str = "relu"
    encoder_hidden: int = 512
    pred_hidden: int = 640
    num_extra_outputs: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JointConfig:
        jointnet = dict(data.get("jointnet", {}))
        merged = {**{k: v for k, v in data.items() if k != "jointnet"}, **jointnet}
        return cls(**_known_fields(cls, merged))


@dataclass
class TDTDecodingConfig:
    model_type: str = "tdt"
    durations: list[int] = field(default_factory=lambda: [0, 1, 2, 3, 4])
    max_symbols: int = 10

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TDTDecodingConfig:
        greedy = data.get("greedy") or {}
        max_symbols = greedy.get("max_symbols")
        return cls(
            model_type=data.get("model_type", "tdt"),
            durations=list(data.get("durations", [0, 1, 2, 3, 4])),
            max_symbols=10 if max_symbols is None else int(max_symbols),
        )


@dataclass
class ParakeetTDTConfig:
    """Full model configuration: front-end, encoder, prediction, joint and decoding."""

    preprocessor: PreprocessConfig
    encoder: ConformerConfig
    decoder: PredictConfig
    joint: JointConfig
    decoding: TDTDecodingConfig

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ParakeetTDTConfig:
        return cls(
            preprocessor=PreprocessConfig(**_known_fields(PreprocessConfig, data.get("preprocessor", {}))),
            encoder=ConformerConfig(**_known_fields(ConformerConfig, data.get("encoder", {}))),
            decoder=PredictConfig.from_dict(data.get("decoder", {})),
            joint=JointConfig.from_dict(data.get("joint", {})),
            decoding=TDTDecodingConfig.from_dict(data.get("decoding", {})),
        )

    @classmethod
    def from_json(cls, path: str | Path) -> ParakeetTDTConfig:
        with open(path) as f:
            return cls.from_dict(json.load(f))


@dataclass
class DecodingConfig:
    """Per-call decoding options.

    Attributes:
        decoding: Decoding strategy. Only ``"greedy"`` is supported.
        max_symbols: Consecutive zero-duration steps before a forced one-frame
            advance. None uses the model's configured value.
        max_stall: Hard cap on the stall counter; exceeding it abandons the
            rest of the sequence. None uses the decoder default (100).
    """

    decoding: str = "greedy"
    max_symbols: int | None = None
    max_stall: int | None = None
