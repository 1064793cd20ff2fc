"""Conformer Feed-Forward Network module: Linear → Swish → Linear."""

from __future__ import annotations

import torch
import torch.nn as nn
import torch.nn.functional as F

from .config import ConformerConfig


class ConformerFFN(nn.Module):
    def __init__(self, config: ConformerConfig):
        super().__init__()
        hidden = config.d_model * config.ff_expansion_factor
        self.linear1 = nn.Linear(config.d_model, hidden, bias=config.use_bias)
        self.linear2 = nn.Linear(hidden, config.d_model, bias=config.use_bias)

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        return self.linear2(F.silu(self.linear1(x)))
