"""Conformer block for ASR models.

Implements a single Conformer block with Macaron-style architecture:
½FFN → MHSA → Conv → ½FFN, each pre-normed with a residual connection,
followed by a final layer normalization.
"""

from __future__ import annotations

import torch
import torch.nn as nn

from .cache import ConformerCache
from .conformer_attention import RelPositionMultiHeadAttention
from .conformer_conv import ConformerConvModule
from .conformer_ffn import ConformerFFN
from .config import ConformerConfig

FFN_RESIDUAL_FACTOR = 0.5


class ConformerBlock(nn.Module):
    """Conformer block module.

    Args:
        config: ConformerConfig containing model parameters
    """

    def __init__(self, config: ConformerConfig):
        super().__init__()
        self.norm_feed_forward1 = nn.LayerNorm(config.d_model)
        self.feed_forward1 = ConformerFFN(config)
        self.norm_self_att = nn.LayerNorm(config.d_model)
        self.self_attn = RelPositionMultiHeadAttention(config)
        self.norm_conv = nn.LayerNorm(config.d_model)
        self.conv = ConformerConvModule(config)
        self.norm_feed_forward2 = nn.LayerNorm(config.d_model)
        self.feed_forward2 = ConformerFFN(config)
        self.norm_out = nn.LayerNorm(config.d_model)

    def forward(
        self,
        x: torch.Tensor,
        pos_emb: torch.Tensor,
        key_mask: torch.Tensor | None = None,
        pad_mask: torch.Tensor | None = None,
        cache: ConformerCache | None = None,
    ) -> torch.Tensor:
        """Forward pass of ConformerBlock module.

        Args:
            x: Input tensor of shape (batch_size, seq_len, d_model)
            pos_emb: Relative positional embeddings (1, 2 * key_len - 1, d_model)
            key_mask: Attention key validity mask (batch_size, key_len)
            pad_mask: Query-frame validity mask (batch_size, seq_len)
            cache: Optional per-layer cache, updated in place

        Returns:
            Output tensor of shape (batch_size, seq_len, d_model)
        """
        x = x + FFN_RESIDUAL_FACTOR * self.feed_forward1(self.norm_feed_forward1(x))
        x = x + self.self_attn(self.norm_self_att(x), pos_emb, key_mask, cache)
        x = x + self.conv(self.norm_conv(x), pad_mask, cache)
        x = x + FFN_RESIDUAL_FACTOR * self.feed_forward2(self.norm_feed_forward2(x))
        return self.norm_out(x)
