"""Convolutional subsampling module for Conformer ASR models.

Implements log2(subsampling_factor) stride-2 Conv2d stages followed by a
linear projection, as used in Parakeet/FastConformer encoders.
"""

from __future__ import annotations

import math

import torch
import torch.nn as nn

from .config import ConformerConfig

KERNEL_SIZE = 3
STRIDE = 2
PADDING = 1


def subsampled_length(lengths: torch.Tensor | int, num_stages: int) -> torch.Tensor | int:
    """Apply the stride-2 conv length formula ``num_stages`` times."""
    for _ in range(num_stages):
        if isinstance(lengths, torch.Tensor):
            lengths = torch.div(lengths + 2 * PADDING - KERNEL_SIZE, STRIDE, rounding_mode="floor") + 1
        else:
            lengths = (lengths + 2 * PADDING - KERNEL_SIZE) // STRIDE + 1
    return lengths


class ConvSubsampling(nn.Module):
    """Convolutional subsampling for Conformer ASR models.

    ``dw_striding`` uses one full convolution followed by depthwise+pointwise
    pairs; ``striding`` uses full convolutions throughout. Layer indices inside
    ``conv`` match NeMo checkpoints (activations occupy their own slots).
    """

    def __init__(self, config: ConformerConfig):
        super().__init__()

        factor = config.subsampling_factor
        self.num_stages = int(math.log2(factor))
        if 2**self.num_stages != factor:
            raise ValueError(f"subsampling_factor must be a power of 2, got {factor}")
        if config.subsampling not in ("dw_striding", "striding"):
            raise ValueError(f"Unsupported subsampling: {config.subsampling!r}")

        channels = config.subsampling_conv_channels
        layers: list[nn.Module] = [
            nn.Conv2d(1, channels, KERNEL_SIZE, stride=STRIDE, padding=PADDING),
            nn.ReLU(),
        ]
        for _ in range(self.num_stages - 1):
            if config.subsampling == "dw_striding":
                layers += [
                    nn.Conv2d(
                        channels, channels, KERNEL_SIZE, stride=STRIDE, padding=PADDING, groups=channels
                    ),
                    nn.Conv2d(channels, channels, kernel_size=1),
                    nn.ReLU(),
                ]
            else:
                layers += [
                    nn.Conv2d(channels, channels, KERNEL_SIZE, stride=STRIDE, padding=PADDING),
                    nn.ReLU(),
                ]
        self.conv = nn.Sequential(*layers)

        freq_out = subsampled_length(config.feat_in, self.num_stages)
        self.out = nn.Linear(channels * freq_out, config.d_model)

    def forward(self, x: torch.Tensor, lengths: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor]:
        """Forward pass of ConvSubsampling module.

        Args:
            x: Input tensor of shape (batch_size, seq_len, n_mels)
            lengths: Valid frame counts before subsampling

        Returns:
            Tuple containing:
            - Output tensor of shape (batch_size, subsampled_len, d_model)
            - Valid lengths after subsampling
        """
        x = self.conv(x.unsqueeze(1))  # (B, C, T', F')
        b, c, t, f = x.shape
        x = self.out(x.transpose(1, 2).reshape(b, t, c * f))

        new_lengths = subsampled_length(lengths, self.num_stages).clamp(min=0, max=t)
        return x, new_lengths.to(torch.long)
