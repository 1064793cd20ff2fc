"""
Model loader for Parakeet TDT checkpoints.

Reads ``config.json`` and ``model.safetensors`` from a local directory, or
downloads them from the HuggingFace Hub first. Tensor names follow the NeMo
state dict; checkpoints converted for MLX (channel-last convolutions,
``Wx``/``Wh``/``bias`` LSTM tensors) are converted on the fly.

Usage:
    from parakeet_tdt.loader import load_model

    model = load_model("mlx-community/parakeet-tdt-0.6b-v2")
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

import torch

from .config import ParakeetTDTConfig
from .errors import ModelLoadingError
from .parakeet_model import ParakeetTDT

logger = logging.getLogger(__name__)

CONFIG_FILE = "config.json"
WEIGHTS_FILE = "model.safetensors"

_MLX_LSTM_KEY = re.compile(r"^(?P<prefix>.*\.lstm)\.(?P<layer>\d+)\.(?P<name>Wx|Wh|bias)$")
_MLX_LSTM_NAMES = {"Wx": "weight_ih_l{}", "Wh": "weight_hh_l{}", "bias": "bias_ih_l{}"}


def download_model(
    repo_id: str,
    revision: str | None = None,
    token: str | None = None,
) -> Path:
    """
    Download config and weights from HuggingFace Hub.

    Args:
        repo_id: HuggingFace model ID (e.g., "nvidia/parakeet-tdt-0.6b-v2")
        revision: Git revision (branch, tag, or commit)
        token: HuggingFace API token for gated models

    Returns:
        Path to the downloaded snapshot directory
    """
    from huggingface_hub import snapshot_download

    logger.info("Downloading %s from HuggingFace Hub", repo_id)
    path = snapshot_download(
        repo_id=repo_id,
        revision=revision,
        token=token,
        allow_patterns=[CONFIG_FILE, WEIGHTS_FILE],
    )
    return Path(path)


def resolve_model_path(path_or_repo: str | Path, revision: str | None = None) -> Path:
    """Return a local directory for a path or a Hub repo id."""
    path = Path(path_or_repo)
    if path.is_dir():
        return path
    try:
        return download_model(str(path_or_repo), revision=revision)
    except Exception as exc:
        raise ModelLoadingError(f"Could not resolve model {path_or_repo!r}: {exc}") from exc


def _convert_mlx_lstm(weights: dict[str, torch.Tensor]) -> dict[str, torch.Tensor]:
    converted: dict[str, torch.Tensor] = {}
    for key, tensor in weights.items():
        match = _MLX_LSTM_KEY.match(key)
        if match is None:
            converted[key] = tensor
            continue
        layer = int(match["layer"])
        prefix = match["prefix"]
        converted[f"{prefix}.{_MLX_LSTM_NAMES[match['name']].format(layer)}"] = tensor
        if match["name"] == "bias":
            # MLX folds both LSTM biases into one.
            converted[f"{prefix}.bias_hh_l{layer}"] = torch.zeros_like(tensor)
    return converted


def _match_layout(key: str, tensor: torch.Tensor, expected: torch.Size) -> torch.Tensor:
    if tensor.shape == expected:
        return tensor
    # Channel-last convolution weights: [out, (k...), in] -> [out, in, (k...)]
    if tensor.dim() == len(expected) and tensor.dim() in (3, 4):
        permuted = tensor.permute(0, tensor.dim() - 1, *range(1, tensor.dim() - 1))
        if permuted.shape == expected:
            return permuted.contiguous()
    raise ModelLoadingError(
        f"Shape mismatch for {key}: checkpoint {tuple(tensor.shape)}, model {tuple(expected)}"
    )


def load_weights(model: ParakeetTDT, weights: dict[str, torch.Tensor]) -> None:
    """Copy checkpoint tensors into ``model``, converting MLX layouts when needed.

    Raises:
        ModelLoadingError: On missing parameters or incompatible shapes.
    """
    weights = _convert_mlx_lstm(weights)
    state = model.state_dict()

    loaded: dict[str, torch.Tensor] = {}
    for key, expected in state.items():
        if key not in weights:
            continue
        loaded[key] = _match_layout(key, weights[key], expected.shape).to(expected.dtype)

    missing = [k for k in state if k not in loaded and not k.endswith("num_batches_tracked")]
    if missing:
        raise ModelLoadingError(f"Checkpoint is missing {len(missing)} tensors, e.g. {missing[:5]}")

    unexpected = sorted(set(weights) - set(state))
    if unexpected:
        logger.debug("Ignoring %d checkpoint tensors not used by the model: %s", len(unexpected), unexpected[:10])

    model.load_state_dict(loaded, strict=False)


def load_model(
    path_or_repo: str | Path,
    *,
    dtype: torch.dtype = torch.float32,
    device: str | torch.device = "cpu",
    revision: str | None = None,
) -> ParakeetTDT:
    """Load a Parakeet TDT model ready for inference.

    Args:
        path_or_repo: Local directory or HuggingFace repo id
        dtype: Parameter dtype
        device: Target device
        revision: Hub revision when downloading

    Returns:
        Model in eval mode
    """
    from safetensors.torch import load_file

    model_dir = resolve_model_path(path_or_repo, revision=revision)

    config_path = model_dir / CONFIG_FILE
    weights_path = model_dir / WEIGHTS_FILE
    if not config_path.exists():
        raise ModelLoadingError(f"{CONFIG_FILE} not found in {model_dir}")
    if not weights_path.exists():
        raise ModelLoadingError(f"{WEIGHTS_FILE} not found in {model_dir}")

    config = ParakeetTDTConfig.from_json(config_path)
    model = ParakeetTDT(config)

    logger.info("Loading weights from %s", weights_path)
    load_weights(model, load_file(str(weights_path)))

    model.to(device=device, dtype=dtype)
    model.eval()
    return model
