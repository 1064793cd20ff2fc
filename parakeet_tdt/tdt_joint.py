"""TDT joint network for ASR models.

Combines encoder and prediction network outputs into one logit vector per
(frame, label) pair: ``num_classes`` token logits, the blank logit, then
``num_extra_outputs`` duration-bin logits.
"""

from __future__ import annotations

import torch
import torch.nn as nn

from .config import JointConfig

_ACTIVATIONS = {
    "relu": nn.ReLU,
    "tanh": nn.Tanh,
    "sigmoid": nn.Sigmoid,
}


class JointNetwork(nn.Module):
    """TDT joint network combining encoder and predictor outputs.

    Args:
        config: JointConfig object containing model hyperparameters
    """

    def __init__(self, config: JointConfig) -> None:
        super().__init__()

        activation = config.activation.lower()
        if activation not in _ACTIVATIONS:
            raise ValueError(f"Unsupported joint activation: {config.activation!r}")

        self.num_outputs = config.num_classes + 1 + config.num_extra_outputs
        self.enc = nn.Linear(config.encoder_hidden, config.joint_hidden)
        self.pred = nn.Linear(config.pred_hidden, config.joint_hidden)
        # Index layout matches NeMo checkpoints: activation, dropout slot, projection.
        self.joint_net = nn.Sequential(
            _ACTIVATIONS[activation](),
            nn.Identity(),
            nn.Linear(config.joint_hidden, self.num_outputs),
        )

    def forward(self, encoder_out: torch.Tensor, predictor_out: torch.Tensor) -> torch.Tensor:
        """Forward pass of the joint network.

        Args:
            encoder_out: Encoder output tensor [B, T, enc_dim]
            predictor_out: Predictor output tensor [B, U, pred_dim]

        Returns:
            Joint logits [B, T, U, num_classes + 1 + num_extra_outputs]
        """
        enc = self.enc(encoder_out).unsqueeze(2)  # [B, T, 1, H]
        pred = self.pred(predictor_out).unsqueeze(1)  # [B, 1, U, H]
        return self.joint_net(enc + pred)
