"""Tests for the TDT greedy decoder.

Most tests drive the decoder with scripted prediction/joint stubs so the
joint decision at every frame is known in advance.
"""

from __future__ import annotations

import pytest
import torch

from parakeet_tdt.config import DecodingConfig
from parakeet_tdt.errors import JointOutputError, UnsupportedDecodingError
from parakeet_tdt.tdt_greedy import DecoderState, TDTGreedyDecoder

from .conftest import DURATIONS, NAN, VOCABULARY, ScriptedJoint, StubPredictor, indexed_features

TIME_RATIO = 0.08
BLANK = len(VOCABULARY)


def make_decoder(script, predictor=None, **kwargs) -> TDTGreedyDecoder:
    return TDTGreedyDecoder(
        predictor or StubPredictor(),
        ScriptedJoint(script),
        VOCABULARY,
        DURATIONS,
        TIME_RATIO,
        **kwargs,
    )


class TestEmission:
    def test_one_token_per_frame(self):
        decoder = make_decoder(lambda frame, call: (frame % len(VOCABULARY), 1))
        hypotheses, _ = decoder.decode(indexed_features(6))

        tokens = hypotheses[0]
        assert [t.id for t in tokens] == [0, 1, 2, 3, 4, 5]
        assert [t.start for t in tokens] == pytest.approx([i * TIME_RATIO for i in range(6)])
        assert all(t.duration == pytest.approx(TIME_RATIO) for t in tokens)
        assert tokens[0].text == " hello"

    def test_blank_is_never_emitted(self):
        decoder = make_decoder(lambda frame, call: (BLANK, 1))
        hypotheses, hidden = decoder.decode(indexed_features(10))

        assert hypotheses == [[]]
        assert hidden == [None]

    def test_duration_skips_frames(self):
        seen = []

        def script(frame, call):
            seen.append(frame)
            return (0, 3)

        decoder = make_decoder(script)
        hypotheses, _ = decoder.decode(indexed_features(10))

        assert seen == [0, 3, 6, 9]
        assert [t.start for t in hypotheses[0]] == pytest.approx([0.0, 0.24, 0.48, 0.72])
        assert hypotheses[0][0].duration == pytest.approx(3 * TIME_RATIO)

    def test_tokens_are_ordered_by_start(self):
        def script(frame, call):
            return (call % BLANK, call % len(DURATIONS))

        decoder = make_decoder(script)
        tokens = decoder.decode(indexed_features(40))[0][0]

        starts = [t.start for t in tokens]
        assert starts == sorted(starts)
        assert all(0 <= t.id < BLANK for t in tokens)

    def test_lengths_limit_decoding(self):
        decoder = make_decoder(lambda frame, call: (1, 1))
        hypotheses, _ = decoder.decode(indexed_features(8, batch=2), lengths=torch.tensor([8, 3]))

        assert len(hypotheses[0]) == 8
        assert len(hypotheses[1]) == 3


class TestStallControl:
    def test_forced_advance_after_max_symbols(self):
        decoder = make_decoder(lambda frame, call: (0, 0))
        tokens = decoder.decode(indexed_features(50))[0][0]

        assert len(tokens) == 500
        for frame in range(50):
            on_frame = tokens[frame * 10 : (frame + 1) * 10]
            assert all(t.start == pytest.approx(frame * TIME_RATIO) for t in on_frame)
            assert all(t.duration == 0.0 for t in on_frame)

    def test_max_symbols_from_config(self):
        decoder = make_decoder(lambda frame, call: (0, 0))
        tokens = decoder.decode(indexed_features(5), config=DecodingConfig(max_symbols=3))[0][0]

        assert len(tokens) == 15

    def test_zero_max_symbols_rejected(self):
        decoder = make_decoder(lambda frame, call: (0, 0))
        with pytest.raises(ValueError, match="max_symbols"):
            decoder.decode(indexed_features(5), config=DecodingConfig(max_symbols=0))

    def test_hard_cap_truncates(self):
        decoder = make_decoder(lambda frame, call: (0, 0))
        config = DecodingConfig(max_symbols=1000, max_stall=5)
        tokens = decoder.decode(indexed_features(50), config=config)[0][0]

        assert len(tokens) == 6
        assert all(t.start == 0.0 for t in tokens)

    def test_nonzero_duration_resets_counter(self):
        # Nine zero-duration steps then one advance: never forced.
        decoder = make_decoder(lambda frame, call: (0, 0 if call % 10 else 1))
        tokens = decoder.decode(indexed_features(3))[0][0]

        assert len(tokens) == 30
        assert [t.start for t in tokens[::10]] == pytest.approx([0.0, 0.08, 0.16])


class TestNumericDegeneracy:
    def test_nan_truncates_sequence(self):
        decoder = make_decoder(lambda frame, call: NAN if frame == 3 else (1, 1))
        tokens = decoder.decode(indexed_features(10))[0][0]

        assert [t.start for t in tokens] == pytest.approx([0.0, 0.08, 0.16])

    def test_nan_only_truncates_its_own_sequence(self):
        calls = {"n": 0}

        def script(frame, call):
            calls["n"] += 1
            # First sequence hits NaN at frame 2; second decodes normally.
            if calls["n"] <= 3 and frame == 2:
                return NAN
            return (1, 1)

        decoder = make_decoder(script)
        hypotheses, _ = decoder.decode(indexed_features(5, batch=2))

        assert len(hypotheses[0]) == 2
        assert len(hypotheses[1]) == 5


class TestCarryState:
    def test_hidden_state_is_from_last_emission(self):
        # Emit on frame 0 only; later blank steps must not change the state.
        predictor = StubPredictor()
        decoder = make_decoder(lambda frame, call: (2, 1) if frame == 0 else (BLANK, 1), predictor)
        _, hidden = decoder.decode(indexed_features(4))

        assert predictor.calls == 4
        h, c = hidden[0]
        assert float(h.flatten()[0]) == 1.0

    def test_predictor_fed_last_emitted_token(self):
        predictor = StubPredictor()
        decoder = make_decoder(lambda frame, call: (3, 1) if frame == 0 else (BLANK, 1), predictor)
        decoder.decode(indexed_features(3))

        assert predictor.inputs == [None, 3, 3]

    def test_warm_start(self):
        predictor = StubPredictor()
        decoder = make_decoder(lambda frame, call: (BLANK, 1), predictor)
        warm = (torch.zeros(1, 1, 4), torch.zeros(1, 1, 4))
        _, hidden = decoder.decode(indexed_features(2), last_token=[4], hidden_state=[warm])

        assert predictor.inputs == [4, 4]
        assert hidden[0] is warm

    def test_decode_states_round_trip(self):
        decoder = make_decoder(lambda frame, call: (5, 1))
        _, states = decoder.decode_states(indexed_features(3), None, [DecoderState()])

        assert states[0].last_token == 5
        assert states[0].hidden is not None


class TestContractViolations:
    def test_unsupported_decoding(self):
        decoder = make_decoder(lambda frame, call: (0, 1))
        with pytest.raises(UnsupportedDecodingError):
            decoder.decode(indexed_features(2), config=DecodingConfig(decoding="beam"))

    @pytest.mark.parametrize(
        "shape",
        [
            (1, 1, BLANK + 1 + len(DURATIONS)),  # too few dimensions
            (1, 1, 1, BLANK),  # no room for the blank
            (1, 1, 1, BLANK + 1 + 2),  # wrong number of duration bins
        ],
    )
    def test_joint_shape_violation(self, shape):
        class BadJoint:
            def __call__(self, frame, pred):
                return torch.zeros(shape)

        decoder = TDTGreedyDecoder(StubPredictor(), BadJoint(), VOCABULARY, DURATIONS, TIME_RATIO)
        with pytest.raises(JointOutputError):
            decoder.decode(indexed_features(2, batch=2))

    def test_batch_mismatch(self):
        decoder = make_decoder(lambda frame, call: (0, 1))
        with pytest.raises(ValueError):
            decoder.decode(indexed_features(2, batch=2), lengths=[2])

    def test_empty_durations_rejected(self):
        with pytest.raises(ValueError):
            TDTGreedyDecoder(StubPredictor(), None, VOCABULARY, [], TIME_RATIO)


class TestWithNetworks:
    def test_tiny_model_decoder_terminates(self, tiny_model):
        decoder = tiny_model.greedy_decoder
        features = torch.randn(2, 12, tiny_model.encoder_config.d_model)
        hypotheses, hidden = decoder.decode(features, torch.tensor([12, 7]))

        assert len(hypotheses) == 2
        for tokens in hypotheses:
            assert all(0 <= t.id < len(VOCABULARY) for t in tokens)
            # At most max_symbols emissions per frame.
            assert len(tokens) <= 12 * tiny_model.max_symbols
        assert len(hidden) == 2
