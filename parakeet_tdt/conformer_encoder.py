"""Conformer encoder for ASR models.

Convolutional subsampling, relative positional encoding and a stack of
Conformer blocks. Given one cache per layer the encoder runs incrementally:
each call only sees the new mel frames, and attention/convolution context from
earlier calls comes from the caches.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import torch
import torch.nn as nn

from .cache import ConformerCache
from .conformer_block import ConformerBlock
from .config import ConformerConfig
from .positional_encoding import RelativePositionalEncoding
from .subsampling import ConvSubsampling

logger = logging.getLogger(__name__)


class ConformerEncoder(nn.Module):
    """Conformer encoder for ASR models.

    Args:
        config: ConformerConfig containing model parameters
    """

    def __init__(self, config: ConformerConfig):
        super().__init__()
        if config.self_attention_model != "rel_pos":
            raise ValueError(f"Unsupported self_attention_model: {config.self_attention_model!r}")
        self.config = config

        self.pre_encode = ConvSubsampling(config)
        self.pos_enc = RelativePositionalEncoding(config)
        self.layers = nn.ModuleList([ConformerBlock(config) for _ in range(config.n_layers)])

    def forward(
        self,
        mel: torch.Tensor,
        lengths: torch.Tensor | None = None,
        cache: Sequence[ConformerCache | None] | None = None,
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Forward pass of ConformerEncoder module.

        Args:
            mel: Input mel spectrogram tensor of shape (batch_size, frames, n_mels)
            lengths: Valid mel frame counts; defaults to the full length
            cache: Optional list with one cache per layer, updated in place

        Returns:
            Tuple containing:
            - Encoded frames (batch_size, subsampled_frames, d_model)
            - Valid encoded frame counts (batch_size,)
        """
        if mel.dim() == 2:
            mel = mel.unsqueeze(0)
        batch_size, frames, _ = mel.shape
        if lengths is None:
            lengths = torch.full((batch_size,), frames, dtype=torch.long, device=mel.device)

        if cache is None:
            cache = [None] * len(self.layers)
        elif len(cache) != len(self.layers):
            raise ValueError(f"Expected {len(self.layers)} caches, got {len(cache)}")

        x, lengths = self.pre_encode(mel, lengths)
        seq_len = x.size(1)

        offset = cache[0].offset if cache[0] is not None else 0
        x, pos_emb = self.pos_enc(x, key_length=offset + seq_len)

        pad_mask = torch.arange(seq_len, device=x.device).unsqueeze(0) < lengths.unsqueeze(1)
        key_mask = torch.cat(
            [torch.ones(batch_size, offset, dtype=torch.bool, device=x.device), pad_mask], dim=1
        )

        logger.debug("Encoding %d mel frames -> %d frames (cached context %d)", frames, seq_len, offset)

        for layer, layer_cache in zip(self.layers, cache):
            x = layer(x, pos_emb, key_mask, pad_mask, layer_cache)

        return x, lengths
