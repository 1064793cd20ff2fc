"""
TDT Greedy Decoding Implementation.

Token-and-Duration Transducer (TDT) greedy decoding: every step the joint
network predicts a token class and a duration bin together. Non-blank classes
are emitted; the frame pointer then advances by the chosen duration, which
may be zero (several tokens on the same frame).

Termination is guaranteed by two independent counters over consecutive
zero-duration steps: after ``max_symbols`` of them the pointer is forced one
frame forward, and once the counter exceeds ``max_stall`` the sequence is
abandoned.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import torch

from . import tokenizer
from .alignment import AlignedToken
from .config import DecodingConfig
from .errors import JointOutputError, UnsupportedDecodingError
from .tdt_predictor import HiddenState

logger = logging.getLogger(__name__)

DEFAULT_MAX_SYMBOLS = 10
DEFAULT_MAX_STALL = 100


@dataclass(frozen=True)
class DecoderState:
    """Carry-state of one sequence: last emitted token and prediction network state.

    Both fields are None at the start of a sequence and are replaced together
    on every emission.
    """

    last_token: int | None = None
    hidden: HiddenState | None = None

    def emit(self, token: int, hidden: HiddenState) -> DecoderState:
        return DecoderState(token, hidden)


class TDTGreedyDecoder:
    """Greedy TDT decoder over a batch of encoded frame sequences.

    Args:
        predictor: Prediction network, ``(tokens [1, 1] | None, state) -> (out, state)``
        joint: Joint network, ``(frame [1, 1, D], pred [1, 1, H]) -> logits [1, 1, 1, C]``
        vocabulary: Token pieces; ``len(vocabulary)`` is the blank id
        durations: Frame advance for each duration bin
        time_ratio: Seconds per encoded frame
        max_symbols: Zero-duration steps before a forced one-frame advance
        max_stall: Hard cap on the zero-duration counter
    """

    def __init__(
        self,
        predictor,
        joint,
        vocabulary: Sequence[str],
        durations: Sequence[int],
        time_ratio: float,
        max_symbols: int = DEFAULT_MAX_SYMBOLS,
        max_stall: int = DEFAULT_MAX_STALL,
    ):
        if not durations:
            raise ValueError("durations must not be empty")
        if max_symbols < 1:
            raise ValueError(f"max_symbols must be at least 1, got {max_symbols}")
        self.predictor = predictor
        self.joint = joint
        self.vocabulary = list(vocabulary)
        self.durations = list(durations)
        self.time_ratio = time_ratio
        self.max_symbols = max_symbols
        self.max_stall = max_stall

    @property
    def blank_id(self) -> int:
        return len(self.vocabulary)

    def decode(
        self,
        features: torch.Tensor,
        lengths: torch.Tensor | Sequence[int] | None = None,
        last_token: Sequence[int | None] | None = None,
        hidden_state: Sequence[HiddenState | None] | None = None,
        *,
        config: DecodingConfig | None = None,
    ) -> tuple[list[list[AlignedToken]], list[HiddenState | None]]:
        """Greedy-decode a batch.

        Args:
            features: Encoded frames [B, S, D]
            lengths: Valid frame count per sequence (defaults to S)
            last_token: Warm-start last emitted token per sequence
            hidden_state: Warm-start prediction network state per sequence
            config: Decoding options

        Returns:
            Emitted tokens per sequence and the committed hidden state per sequence
        """
        batch = features.size(0)
        last_token = list(last_token) if last_token is not None else [None] * batch
        hidden_state = list(hidden_state) if hidden_state is not None else [None] * batch
        states = [DecoderState(t, h) for t, h in zip(last_token, hidden_state)]

        hypotheses, states = self.decode_states(features, lengths, states, config=config)
        return hypotheses, [state.hidden for state in states]

    @torch.no_grad()
    def decode_states(
        self,
        features: torch.Tensor,
        lengths: torch.Tensor | Sequence[int] | None = None,
        states: Sequence[DecoderState] | None = None,
        *,
        config: DecodingConfig | None = None,
    ) -> tuple[list[list[AlignedToken]], list[DecoderState]]:
        """Like :meth:`decode`, with carry-state passed as :class:`DecoderState` objects."""
        config = config or DecodingConfig()
        if config.decoding != "greedy":
            raise UnsupportedDecodingError(config.decoding)
        max_symbols = config.max_symbols if config.max_symbols is not None else self.max_symbols
        if max_symbols < 1:
            raise ValueError(f"max_symbols must be at least 1, got {max_symbols}")
        max_stall = config.max_stall if config.max_stall is not None else self.max_stall

        batch, frames = features.size(0), features.size(1)
        if lengths is None:
            lengths = [frames] * batch
        elif isinstance(lengths, torch.Tensor):
            lengths = lengths.tolist()
        states = list(states) if states is not None else [DecoderState()] * batch
        if len(lengths) != batch or len(states) != batch:
            raise ValueError(
                f"Batch size {batch} does not match lengths ({len(lengths)}) or states ({len(states)})"
            )

        hypotheses: list[list[AlignedToken]] = []
        final_states: list[DecoderState] = []
        for i in range(batch):
            hypothesis, state = self._decode_sequence(
                features[i : i + 1], min(int(lengths[i]), frames), states[i], max_symbols, max_stall
            )
            hypotheses.append(hypothesis)
            final_states.append(state)

        return hypotheses, final_states

    def _check_joint_output(self, joint_out: torch.Tensor) -> None:
        if joint_out.dim() < 4:
            raise JointOutputError(
                f"Joint output has insufficient dimensions: {tuple(joint_out.shape)}"
            )
        last_dim = joint_out.size(-1)
        if last_dim <= self.blank_id:
            raise JointOutputError(
                f"Joint output last dimension ({last_dim}) is not larger than vocab size ({self.blank_id})"
            )
        if last_dim - (self.blank_id + 1) != len(self.durations):
            raise JointOutputError(
                f"Joint output has {last_dim - (self.blank_id + 1)} duration logits, "
                f"expected {len(self.durations)}"
            )

    def _decode_sequence(
        self,
        feature: torch.Tensor,
        length: int,
        state: DecoderState,
        max_symbols: int,
        max_stall: int,
    ) -> tuple[list[AlignedToken], DecoderState]:
        hypothesis: list[AlignedToken] = []
        blank_id = self.blank_id
        step = 0
        stalled = 0

        while step < length:
            decoder_input = (
                torch.tensor([[state.last_token]], dtype=torch.long, device=feature.device)
                if state.last_token is not None
                else None
            )
            decoder_out, (hidden, cell) = self.predictor(decoder_input, state.hidden)
            decoder_out = decoder_out.to(feature.dtype)
            new_hidden = (hidden.to(feature.dtype), cell.to(feature.dtype))

            joint_out = self.joint(feature[:, step : step + 1], decoder_out)

            if not torch.isfinite(joint_out.max()):
                logger.warning("Non-finite joint output at frame %d; truncating hypothesis", step)
                break

            self._check_joint_output(joint_out)
            logits = joint_out[0, 0, 0]

            token = int(torch.argmax(logits[: blank_id + 1]))
            decision = int(torch.argmax(logits[blank_id + 1 :]))
            duration = self.durations[decision]

            if token != blank_id:
                hypothesis.append(
                    AlignedToken(
                        id=token,
                        start=step * self.time_ratio,
                        duration=duration * self.time_ratio,
                        text=tokenizer.decode([token], self.vocabulary),
                    )
                )
                state = state.emit(token, new_hidden)

            step += duration

            # Prevent getting stuck on one frame
            stalled += 1
            if duration != 0:
                stalled = 0
            elif stalled >= max_symbols:
                step += 1
                stalled = 0

            if stalled > max_stall:
                logger.warning("Stall cap of %d exceeded at frame %d; truncating hypothesis", max_stall, step)
                break

        return hypothesis, state
