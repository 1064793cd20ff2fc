"""Audio preprocessing for Parakeet inference.

Provides log-mel spectrogram extraction compatible with NeMo/Parakeet
preprocessing settings and audio file loading.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path

import numpy as np
import torch
import torchaudio
import torchaudio.transforms as T

from .config import PreprocessConfig
from .errors import AudioProcessingError

logger = logging.getLogger(__name__)

LOG_ZERO_GUARD = 2.0**-24
NORMALIZE_EPS = 1e-5

_WINDOWS = {
    "hann": lambda n: torch.hann_window(n, periodic=False),
    "hamming": lambda n: torch.hamming_window(n, periodic=False),
    "blackman": lambda n: torch.blackman_window(n, periodic=False),
    "bartlett": lambda n: torch.bartlett_window(n, periodic=False),
    "none": lambda n: torch.ones(n),
}


@functools.lru_cache(maxsize=8)
def _mel_transform(
    sample_rate: int,
    n_fft: int,
    win_length: int,
    hop_length: int,
    n_mels: int,
    window: str,
    power: float,
) -> T.MelSpectrogram:
    if window not in _WINDOWS:
        raise AudioProcessingError(f"Unsupported window function: {window!r}")
    return T.MelSpectrogram(
        sample_rate=sample_rate,
        n_fft=n_fft,
        win_length=win_length,
        hop_length=hop_length,
        f_min=0.0,
        f_max=sample_rate / 2,
        n_mels=n_mels,
        window_fn=_WINDOWS[window],
        power=power,
        center=True,
        pad_mode="reflect",
        norm="slaney",
        mel_scale="slaney",
    )


def _as_tensor(audio: torch.Tensor | np.ndarray) -> torch.Tensor:
    if isinstance(audio, np.ndarray):
        audio = torch.from_numpy(np.ascontiguousarray(audio))
    if audio.dim() != 1:
        raise AudioProcessingError(f"Expected 1-D audio, got shape {tuple(audio.shape)}")
    if audio.numel() == 0:
        raise AudioProcessingError("Cannot extract features from empty audio")
    return audio


def _normalize(mel: torch.Tensor, mode: str) -> torch.Tensor:
    # mel: [n_mels, frames]
    frames = mel.size(-1)
    correction = 1 if frames > 1 else 0
    if mode == "per_feature":
        mean = mel.mean(dim=-1, keepdim=True)
        std = mel.std(dim=-1, keepdim=True, correction=correction)
        return (mel - mean) / (std + NORMALIZE_EPS)
    if mode == "all_features":
        return (mel - mel.mean()) / (mel.std(correction=correction) + NORMALIZE_EPS)
    return mel


def get_logmel(audio: torch.Tensor | np.ndarray, config: PreprocessConfig) -> torch.Tensor:
    """Compute a normalized log-mel spectrogram.

    Args:
        audio: Mono waveform [samples]
        config: Front-end settings

    Returns:
        Log-mel features [1, frames, config.features]
    """
    audio = _as_tensor(audio)
    dtype = audio.dtype if audio.is_floating_point() else torch.float32
    x = audio.to(torch.float32)

    if config.preemph is not None:
        x = torch.cat([x[:1], x[1:] - config.preemph * x[:-1]])

    # Reflect padding needs more than n_fft // 2 samples.
    min_samples = config.n_fft // 2 + 1
    if x.numel() < min_samples:
        x = torch.nn.functional.pad(x, (0, min_samples - x.numel()))

    transform = _mel_transform(
        config.sample_rate,
        config.n_fft,
        config.win_length,
        config.hop_length,
        config.features,
        config.window,
        config.mag_power,
    ).to(x.device)

    mel = transform(x)  # [n_mels, frames]
    mel = torch.log(mel + LOG_ZERO_GUARD)
    mel = _normalize(mel, config.normalize)

    if config.pad_to > 0:
        remainder = mel.size(-1) % config.pad_to
        if remainder:
            mel = torch.nn.functional.pad(
                mel, (0, config.pad_to - remainder), value=config.pad_value
            )

    return mel.transpose(0, 1).unsqueeze(0).to(dtype)


def load_audio(path: str | Path, sample_rate: int = 16000) -> torch.Tensor:
    """Load an audio file as mono and resample it.

    Args:
        path: Path to audio file
        sample_rate: Target sample rate (default: 16000)

    Returns:
        Waveform tensor [samples]
    """
    try:
        waveform, sr = torchaudio.load(str(path))
    except (RuntimeError, OSError) as e:
        raise AudioProcessingError(f"Failed to load audio from {path}: {e}") from e

    if waveform.size(0) > 1:
        waveform = waveform.mean(dim=0, keepdim=True)

    if sr != sample_rate:
        logger.debug("Resampling %s from %d Hz to %d Hz", path, sr, sample_rate)
        waveform = T.Resample(sr, sample_rate)(waveform)

    return waveform.squeeze(0)
