"""Conformer attention module for ASR models.

Implements multi-head self-attention with relative positional embeddings
(Transformer-XL style ``pos_bias_u``/``pos_bias_v`` terms) as used in the
Conformer architecture, with optional key/value caching for streaming.
"""

from __future__ import annotations

import math

import torch
import torch.nn as nn
import torch.nn.functional as F

from .cache import ConformerCache
from .config import ConformerConfig


class RelPositionMultiHeadAttention(nn.Module):
    """Multi-head self-attention with relative positional encoding.

    Scores combine a content term ``(q + u) k^T`` and a position term
    ``(q + v) p^T`` where ``p`` is the projected embedding of the distance
    between the query and key frames. When a cache is given, queries are the
    new frames only and keys/values are the cached frames followed by the new
    ones, so a query at index ``i`` sits at absolute position ``offset + i``.
    """

    def __init__(self, config: ConformerConfig):
        super().__init__()
        self.d_model = config.d_model
        self.num_heads = config.n_heads
        self.head_dim = self.d_model // self.num_heads

        assert self.head_dim * self.num_heads == self.d_model, (
            "d_model must be divisible by n_heads"
        )

        bias = config.use_bias
        self.linear_q = nn.Linear(self.d_model, self.d_model, bias=bias)
        self.linear_k = nn.Linear(self.d_model, self.d_model, bias=bias)
        self.linear_v = nn.Linear(self.d_model, self.d_model, bias=bias)
        self.linear_out = nn.Linear(self.d_model, self.d_model, bias=bias)
        self.linear_pos = nn.Linear(self.d_model, self.d_model, bias=False)

        self.pos_bias_u = nn.Parameter(torch.zeros(self.num_heads, self.head_dim))
        self.pos_bias_v = nn.Parameter(torch.zeros(self.num_heads, self.head_dim))

        self.scale = 1.0 / math.sqrt(self.head_dim)

        context = config.att_context_size or [-1, -1]
        self.left_context, self.right_context = int(context[0]), int(context[1])

    def _split_heads(self, x: torch.Tensor) -> torch.Tensor:
        b, t, _ = x.shape
        return x.view(b, t, self.num_heads, self.head_dim).transpose(1, 2)

    def forward(
        self,
        x: torch.Tensor,
        pos_emb: torch.Tensor,
        mask: torch.Tensor | None = None,
        cache: ConformerCache | None = None,
    ) -> torch.Tensor:
        """Forward pass.

        Args:
            x: Input tensor of shape (batch_size, seq_len, d_model)
            pos_emb: Relative position embeddings (1, 2 * key_len - 1, d_model)
            mask: Key validity mask (batch_size, key_len), True = attend
            cache: Optional per-layer cache, updated in place

        Returns:
            Output tensor of shape (batch_size, seq_len, d_model)
        """
        batch_size, seq_len, _ = x.shape

        q = self.linear_q(x)
        k = self.linear_k(x)
        v = self.linear_v(x)
        if cache is not None:
            k, v = cache.update_and_fetch_kv(k, v)
        key_len = k.size(1)
        offset = key_len - seq_len

        q = self._split_heads(q)  # (B, H, T, D)
        k = self._split_heads(k)  # (B, H, K, D)
        v = self._split_heads(v)
        p = self._split_heads(self.linear_pos(pos_emb))  # (1, H, 2K-1, D)

        q_u = q + self.pos_bias_u.unsqueeze(1).to(q.dtype)
        q_v = q + self.pos_bias_v.unsqueeze(1).to(q.dtype)

        content = torch.matmul(q_u, k.transpose(-2, -1))  # (B, H, T, K)
        position = torch.matmul(q_v, p.transpose(-2, -1))  # (B, H, T, 2K-1)

        # distance = query_pos - key_pos; column (K-1) - distance in the position table
        query_pos = torch.arange(seq_len, device=x.device).unsqueeze(1) + offset
        key_pos = torch.arange(key_len, device=x.device).unsqueeze(0)
        distance = query_pos - key_pos  # (T, K)
        index = (key_len - 1 - distance).expand(batch_size, self.num_heads, -1, -1)
        position = torch.gather(position, -1, index)

        scores = (content + position) * self.scale

        allowed = torch.ones(seq_len, key_len, dtype=torch.bool, device=x.device)
        if self.left_context >= 0:
            allowed &= distance <= self.left_context
        if self.right_context >= 0:
            allowed &= -distance <= self.right_context
        allowed = allowed.view(1, 1, seq_len, key_len)
        if mask is not None:
            allowed = allowed & mask.view(batch_size, 1, 1, key_len)
        scores = scores.masked_fill(~allowed, torch.finfo(scores.dtype).min)

        attn = F.softmax(scores, dim=-1, dtype=torch.float32).to(q.dtype)
        out = torch.matmul(attn, v)  # (B, H, T, D)
        out = out.transpose(1, 2).contiguous().view(batch_size, seq_len, self.d_model)

        return self.linear_out(out)
