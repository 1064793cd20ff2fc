"""Conformer convolution module for ASR models.

Pointwise Conv → GLU → Depthwise Conv → BatchNorm → Swish → Pointwise Conv.
The layer norm in front of the module is owned by the Conformer block.
"""

from __future__ import annotations

import torch
import torch.nn as nn
import torch.nn.functional as F

from .cache import ConformerCache
from .config import ConformerConfig


class ConformerConvModule(nn.Module):
    """Conformer convolution module.

    Args:
        config: ConformerConfig object containing model hyperparameters

    Input shape:
        x: [B, T, C] where B=batch_size, T=sequence_length, C=d_model

    Output shape:
        [B, T, C] with the same dimensions as input
    """

    def __init__(self, config: ConformerConfig) -> None:
        super().__init__()

        assert config.conv_kernel_size % 2 == 1, "conv_kernel_size must be odd"
        self.padding = config.conv_kernel_size // 2
        bias = config.use_bias

        # Expands to 2x d_model for GLU
        self.pointwise_conv1 = nn.Conv1d(config.d_model, config.d_model * 2, kernel_size=1, bias=bias)
        self.depthwise_conv = nn.Conv1d(
            config.d_model,
            config.d_model,
            kernel_size=config.conv_kernel_size,
            padding=self.padding,
            groups=config.d_model,
            bias=bias,
        )
        self.batch_norm = nn.BatchNorm1d(config.d_model)
        self.pointwise_conv2 = nn.Conv1d(config.d_model, config.d_model, kernel_size=1, bias=bias)

    def forward(
        self,
        x: torch.Tensor,
        pad_mask: torch.Tensor | None = None,
        cache: ConformerCache | None = None,
    ) -> torch.Tensor:
        """Forward pass of the Conformer convolution module.

        Args:
            x: Input tensor [B, T, C]
            pad_mask: Valid-frame mask [B, T], True = valid; padded frames are zeroed
                before the depthwise convolution
            cache: Optional per-layer cache providing left context

        Returns:
            Output tensor [B, T, C]
        """
        seq_len = x.size(1)
        x = x.transpose(1, 2)  # [B, C, T]

        x = F.glu(self.pointwise_conv1(x), dim=1)
        if pad_mask is not None:
            x = x.masked_fill(~pad_mask.unsqueeze(1), 0.0)

        if cache is not None:
            x = cache.update_and_fetch_conv(x, self.padding)
        x = self.depthwise_conv(x)[:, :, -seq_len:]

        x = F.silu(self.batch_norm(x))
        x = self.pointwise_conv2(x)

        return x.transpose(1, 2)

    def extra_repr(self) -> str:
        return (
            f"d_model={self.pointwise_conv2.out_channels}, "
            f"kernel_size={self.depthwise_conv.kernel_size[0]}"
        )
