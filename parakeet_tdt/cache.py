"""Per-layer encoder caches for incremental (streaming) encoding.

Each Conformer layer owns one cache. The attention module prepends the cached
keys/values to the ones computed for the new frames, and the convolution
module prepends cached left context. Caches are mutated in place on every
encoder call and must not be shared between streaming sessions.

Usage:
    from parakeet_tdt.cache import RotatingConformerCache

    caches = [RotatingConformerCache(keep_size=256, drop_size=256) for _ in layers]
    features, lengths = encoder(mel, cache=caches)
"""

from __future__ import annotations

import torch


class ConformerCache:
    """Unbounded cache: every frame ever seen stays available as context."""

    def __init__(self) -> None:
        self.keys: torch.Tensor | None = None
        self.values: torch.Tensor | None = None
        self.conv: torch.Tensor | None = None

    @property
    def offset(self) -> int:
        """Number of cached frames placed before the next call's frames."""
        return 0 if self.keys is None else self.keys.size(1)

    def update_and_fetch_kv(
        self, keys: torch.Tensor, values: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        """Append new keys/values [B, T, D] and return the full context."""
        if self.keys is not None:
            keys = torch.cat([self.keys, keys], dim=1)
            values = torch.cat([self.values, values], dim=1)
        self.keys, self.values = keys, values
        return keys, values

    def update_and_fetch_conv(self, x: torch.Tensor, padding: int) -> torch.Tensor:
        """Prepend cached left context to conv input [B, C, T]."""
        if self.conv is not None:
            x = torch.cat([self.conv, x], dim=2)
        self.conv = x[:, :, -padding:] if padding > 0 else None
        return x

    def reset(self) -> None:
        self.keys = None
        self.values = None
        self.conv = None


class RotatingConformerCache(ConformerCache):
    """Fixed-capacity cache keeping the ``keep_size`` most recent stable frames.

    The trailing ``drop_size`` frames of every call are returned as context for
    that call but never stored: the caller re-encodes them on the next call
    once more right context is available.

    Keys and values live in ring buffers of ``keep_size`` slots, indexed by
    absolute frame position modulo ``keep_size``.

    Args:
        keep_size: Maximum number of frames retained as left context.
        drop_size: Number of most recent frames of each call left uncommitted.
    """

    def __init__(self, keep_size: int, drop_size: int = 0) -> None:
        super().__init__()
        if keep_size <= 0:
            raise ValueError(f"keep_size must be positive, got {keep_size}")
        if drop_size < 0:
            raise ValueError(f"drop_size must be non-negative, got {drop_size}")
        self.keep_size = keep_size
        self.drop_size = drop_size
        self.committed = 0

    @property
    def offset(self) -> int:
        return min(self.committed, self.keep_size)

    def _ordered(self, ring: torch.Tensor) -> torch.Tensor:
        # Oldest frame first.
        if self.committed < self.keep_size:
            return ring[:, : self.committed]
        head = self.committed % self.keep_size
        return torch.cat([ring[:, head:], ring[:, :head]], dim=1)

    def _write(self, ring: torch.Tensor, frames: torch.Tensor) -> None:
        skipped = max(0, frames.size(1) - self.keep_size)
        frames = frames[:, skipped:]
        positions = torch.arange(frames.size(1), device=ring.device) + self.committed + skipped
        ring[:, positions % self.keep_size] = frames.to(ring.dtype)

    def update_and_fetch_kv(
        self, keys: torch.Tensor, values: torch.Tensor
    ) -> tuple[torch.Tensor, torch.Tensor]:
        if self.keys is None:
            batch, _, dim = keys.shape
            self.keys = keys.new_zeros(batch, self.keep_size, dim)
            self.values = values.new_zeros(batch, self.keep_size, values.size(-1))

        full_keys = torch.cat([self._ordered(self.keys), keys], dim=1)
        full_values = torch.cat([self._ordered(self.values), values], dim=1)

        stable = max(0, keys.size(1) - self.drop_size)
        if stable > 0:
            self._write(self.keys, keys[:, :stable])
            self._write(self.values, values[:, :stable])
            self.committed += stable

        return full_keys, full_values

    def update_and_fetch_conv(self, x: torch.Tensor, padding: int) -> torch.Tensor:
        new_frames = x.size(2)
        if self.conv is not None:
            x = torch.cat([self.conv, x], dim=2)
        stable = max(0, new_frames - self.drop_size)
        if padding > 0 and stable > 0:
            # Cached context followed by the committed new frames.
            context = x[:, :, : x.size(2) - new_frames + stable]
            self.conv = context[:, :, -padding:]
        return x

    def reset(self) -> None:
        super().reset()
        self.committed = 0
