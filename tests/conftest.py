"""Pytest configuration for Parakeet TDT tests.

Provides a tiny randomly initialised model (two Conformer layers, a six-piece
vocabulary) and scripted prediction/joint stubs that let decoding tests fix
the joint decision per frame. No test needs network access or real weights.

Usage:
    pytest tests/
    pytest tests/ -k streaming
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from typing import Any

import pytest
import torch
import torch.nn as nn

from parakeet_tdt.config import ParakeetTDTConfig
from parakeet_tdt.parakeet_model import ParakeetTDT

VOCABULARY = ["▁hello", "▁world", ".", "▁how", "▁are", "?"]
DURATIONS = [0, 1, 2, 3, 4]

TINY_CONFIG: dict[str, Any] = {
    "preprocessor": {
        "sample_rate": 16000,
        "normalize": "per_feature",
        "window_size": 0.025,
        "window_stride": 0.01,
        "window": "hann",
        "features": 16,
        "n_fft": 512,
        "dither": 1e-5,
        "pad_to": 0,
        "pad_value": 0.0,
    },
    "encoder": {
        "feat_in": 16,
        "n_layers": 2,
        "d_model": 32,
        "n_heads": 4,
        "ff_expansion_factor": 2,
        "subsampling_factor": 8,
        "self_attention_model": "rel_pos",
        "subsampling": "dw_striding",
        "conv_kernel_size": 9,
        "subsampling_conv_channels": 8,
        "pos_emb_max_len": 256,
    },
    "decoder": {
        "blank_as_pad": True,
        "vocab_size": len(VOCABULARY),
        "prednet": {"pred_hidden": 16, "pred_rnn_layers": 1},
    },
    "joint": {
        "num_classes": len(VOCABULARY),
        "vocabulary": VOCABULARY,
        "jointnet": {
            "joint_hidden": 16,
            "activation": "relu",
            "encoder_hidden": 32,
            "pred_hidden": 16,
        },
        "num_extra_outputs": len(DURATIONS),
    },
    "decoding": {
        "model_type": "tdt",
        "durations": DURATIONS,
        "greedy": {"max_symbols": 10},
    },
}


@pytest.fixture
def tiny_config_dict() -> dict[str, Any]:
    return copy.deepcopy(TINY_CONFIG)


@pytest.fixture
def tiny_config(tiny_config_dict) -> ParakeetTDTConfig:
    return ParakeetTDTConfig.from_dict(tiny_config_dict)


@pytest.fixture
def tiny_model(tiny_config) -> ParakeetTDT:
    torch.manual_seed(0)
    model = ParakeetTDT(tiny_config)
    model.eval()
    return model


@pytest.fixture
def sine_audio() -> torch.Tensor:
    """One second of a 440 Hz tone with a little noise at 16 kHz."""
    generator = torch.Generator().manual_seed(0)
    t = torch.arange(16000) / 16000
    return 0.5 * torch.sin(2 * torch.pi * 440 * t) + 0.01 * torch.randn(16000, generator=generator)


# ---------------------------------------------------------------------------
# Scripted decoding stubs
# ---------------------------------------------------------------------------

NAN = "nan"

Decision = tuple[int, int] | str


class StubPredictor:
    """Prediction network stand-in.

    Records every input token and returns a hidden state whose value is the
    1-based number of the call that produced it.
    """

    def __init__(self, hidden: int = 4):
        self.hidden = hidden
        self.inputs: list[int | None] = []
        self.calls = 0

    def __call__(self, tokens, state):
        self.calls += 1
        self.inputs.append(None if tokens is None else int(tokens[0, 0]))
        h = torch.full((1, 1, self.hidden), float(self.calls))
        return torch.zeros(1, 1, self.hidden), (h, h.clone())


class ScriptedJoint(nn.Module):
    """Joint network stand-in whose decision depends on the frame index.

    Encoded frames are expected to carry their index in feature 0 (see
    :func:`indexed_features`). ``script(frame, call)`` returns either a
    ``(class_id, duration_bin)`` pair or :data:`NAN`.
    """

    def __init__(
        self,
        script: Callable[[int, int], Decision],
        vocab_size: int = len(VOCABULARY),
        num_durations: int = len(DURATIONS),
    ):
        super().__init__()
        self.script = script
        self.vocab_size = vocab_size
        self.num_durations = num_durations
        self.calls = 0

    def forward(self, frame: torch.Tensor, pred: torch.Tensor) -> torch.Tensor:
        self.calls += 1
        decision = self.script(int(frame[0, 0, 0]), self.calls)
        logits = torch.zeros(1, 1, 1, self.vocab_size + 1 + self.num_durations)
        if decision == NAN:
            return logits.fill_(float("nan"))
        class_id, duration_bin = decision
        logits[..., class_id] = 10.0
        logits[..., self.vocab_size + 1 + duration_bin] = 10.0
        return logits


def indexed_features(length: int, dim: int = 4, batch: int = 1) -> torch.Tensor:
    """Encoded frames [batch, length, dim] with the frame index in feature 0."""
    features = torch.zeros(batch, length, dim)
    features[:, :, 0] = torch.arange(length, dtype=torch.float32)
    return features


@pytest.fixture
def stub_predictor() -> StubPredictor:
    return StubPredictor()
