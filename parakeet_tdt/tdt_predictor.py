"""TDT prediction network.

The prediction network is an autoregressive LSTM language model over
previously emitted tokens. Its output is combined with encoder frames by the
joint network.
"""

from __future__ import annotations

import torch
import torch.nn as nn

from .config import PredictConfig

HiddenState = tuple[torch.Tensor, torch.Tensor]


class _DecoderRNN(nn.Module):
    def __init__(self, input_size: int, hidden_size: int, num_layers: int):
        super().__init__()
        self.lstm = nn.LSTM(input_size, hidden_size, num_layers=num_layers, batch_first=True)

    def forward(self, x: torch.Tensor, state: HiddenState | None) -> tuple[torch.Tensor, HiddenState]:
        return self.lstm(x, state)


class PredictNetwork(nn.Module):
    """Embedding + multi-layer LSTM prediction network.

    With ``blank_as_pad`` the embedding table has one extra row for the blank
    id, used as a zero padding vector. A ``None`` token input also maps to the
    zero vector (start of sequence).

    Args:
        config: PredictConfig containing predictor architecture parameters.
    """

    def __init__(self, config: PredictConfig):
        super().__init__()
        self.config = config
        self.hidden_size = config.pred_hidden
        self.blank_id = config.vocab_size
        num_embeddings = config.vocab_size + 1 if config.blank_as_pad else config.vocab_size

        self.prediction = nn.ModuleDict(
            {
                "embed": nn.Embedding(
                    num_embeddings,
                    config.pred_hidden,
                    padding_idx=self.blank_id if config.blank_as_pad else None,
                ),
                "dec_rnn": _DecoderRNN(
                    config.pred_hidden,
                    config.rnn_hidden_size or config.pred_hidden,
                    config.pred_rnn_layers,
                ),
            }
        )

    def forward(
        self, tokens: torch.Tensor | None, state: HiddenState | None = None
    ) -> tuple[torch.Tensor, HiddenState]:
        """Forward pass of the predictor.

        Args:
            tokens: Previous token ids [B, 1], or None for the blank/start input.
            state: Optional LSTM state (h, c), each [num_layers, B, hidden].

        Returns:
            A tuple containing:
            - output: [B, 1, hidden]
            - new_state: Updated LSTM state (h, c)
        """
        embed = self.prediction["embed"]
        if tokens is None:
            batch = 1 if state is None else state[0].size(1)
            device = embed.weight.device if state is None else state[0].device
            embedded = torch.zeros(batch, 1, self.hidden_size, dtype=embed.weight.dtype, device=device)
        else:
            embedded = embed(tokens)

        if state is not None:
            state = (state[0].to(embedded.dtype), state[1].to(embedded.dtype))

        return self.prediction["dec_rnn"](embedded, state)
