"""Relative positional encoding for Conformer ASR models.

Provides sinusoidal embeddings for relative distances between a query frame
and a key frame, ordered from the largest positive distance to the most
negative one (Transformer-XL layout).
"""

from __future__ import annotations

import math

import torch
import torch.nn as nn

from .config import ConformerConfig


class RelativePositionalEncoding(nn.Module):
    """Relative positional encoding for Conformer ASR models.

    Args:
        config: ConformerConfig; uses ``d_model``, ``pos_emb_max_len`` and ``xscaling``.
    """

    def __init__(self, config: ConformerConfig):
        super().__init__()
        assert config.d_model % 2 == 0, "d_model must be even for sinusoidal encoding"

        self.d_model = config.d_model
        self.max_length = config.pos_emb_max_len
        self.xscale = math.sqrt(config.d_model) if config.xscaling else None
        self.register_buffer("pe", self._build(self.max_length), persistent=False)

    def _build(self, length: int) -> torch.Tensor:
        # Distances +(length-1) .. -(length-1): [2 * length - 1, d_model]
        positions = torch.arange(length - 1, -length, -1, dtype=torch.float32).unsqueeze(1)
        div_term = torch.exp(
            torch.arange(0, self.d_model, 2, dtype=torch.float32) * (-math.log(10000.0) / self.d_model)
        )
        pe = torch.zeros(positions.size(0), self.d_model)
        pe[:, 0::2] = torch.sin(positions * div_term)
        pe[:, 1::2] = torch.cos(positions * div_term)
        return pe

    def forward(self, x: torch.Tensor, key_length: int | None = None) -> tuple[torch.Tensor, torch.Tensor]:
        """Scale the input and return embeddings for distances of up to ``key_length - 1``.

        Args:
            x: Input tensor of shape (batch_size, seq_len, d_model)
            key_length: Number of key frames (cached + new); defaults to seq_len

        Returns:
            Tuple of scaled input and positional embeddings
            (1, 2 * key_length - 1, d_model)
        """
        key_length = key_length or x.size(1)
        if key_length > self.max_length:
            self.max_length = key_length
            self.pe = self._build(key_length).to(self.pe.device)

        if self.xscale is not None:
            x = x * self.xscale

        center = self.max_length - 1
        pos_emb = self.pe[center - (key_length - 1) : center + key_length]
        return x, pos_emb.unsqueeze(0).to(x.dtype)
