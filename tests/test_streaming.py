"""Tests for the streaming transcription session.

The tiny model's joint network is swapped for a scripted one where exact
token counts matter: emitting one token per frame makes the clean/dirty
split directly visible in the token lists.
"""

from __future__ import annotations

import pytest
import torch

from parakeet_tdt.errors import ConcurrentAccessError
from parakeet_tdt.streaming import StreamingParakeet

from .conftest import VOCABULARY, ScriptedJoint

BLANK = len(VOCABULARY)
BLOCK = 8000  # 0.5 s


def blocks(audio: torch.Tensor, size: int = BLOCK):
    for start in range(0, audio.size(0), size):
        yield audio[start : start + size]


@pytest.fixture
def long_audio(sine_audio) -> torch.Tensor:
    return torch.cat([sine_audio, sine_audio.flip(0)])


class TestSessionSetup:
    def test_sizes(self, tiny_model):
        session = StreamingParakeet(tiny_model, context_size=(4, 2), depth=3)
        assert session.keep_size == 4
        assert session.drop_size == 6
        assert len(session.cache) == tiny_model.encoder_config.n_layers
        assert all(cache.drop_size == 6 for cache in session.cache)

    @pytest.mark.parametrize("context_size, depth", [((0, 2), 1), ((4, -1), 1), ((4, 2), 0)])
    def test_invalid_context(self, tiny_model, context_size, depth):
        with pytest.raises(ValueError):
            StreamingParakeet(tiny_model, context_size, depth)

    def test_empty_session(self, tiny_model):
        session = tiny_model.transcribe_stream(context_size=(4, 2))
        assert session.result.text == ""
        assert session.clean_tokens == ()
        assert session.dirty_tokens == ()


class TestCleanDirtySplit:
    def test_one_token_per_frame(self, tiny_model, long_audio):
        tiny_model.joint = ScriptedJoint(lambda frame, call: (1, 1))
        session = tiny_model.transcribe_stream(context_size=(4, 2))

        for block in blocks(long_audio):
            session.add_audio(block)

            clean, dirty = session.clean_tokens, session.dirty_tokens
            assert len(dirty) == session.drop_size
            assert dirty[0].start >= clean[-1].start

        assert len(session.result.tokens) == len(session.clean_tokens) + session.drop_size

    def test_token_times_stay_within_streamed_audio(self, tiny_model):
        tiny_model.joint = ScriptedJoint(lambda frame, call: (1, 1))
        session = tiny_model.transcribe_stream(context_size=(4, 2))
        audio = torch.sin(torch.arange(10 * 16000) * 0.05)
        streamed = 0

        for block in blocks(audio, size=1600):
            session.add_audio(block)
            streamed += block.size(0)
            elapsed = streamed / 16000
            starts = [t.start for t in session.result.tokens]
            assert all(start <= elapsed + 1e-6 for start in starts)
            assert all(b >= a - 1e-6 for a, b in zip(starts, starts[1:]))

        assert session.result.tokens[-1].start > 9.0

    def test_clean_tokens_only_grow(self, tiny_model, long_audio):
        session = tiny_model.transcribe_stream(context_size=(4, 2))
        previous: list[tuple[int, float]] = []

        for block in blocks(long_audio):
            session.add_audio(block)
            current = [(t.id, t.start) for t in session.clean_tokens]
            assert current[: len(previous)] == previous
            previous = current

    def test_result_is_a_pure_read(self, tiny_model, sine_audio):
        session = tiny_model.transcribe_stream(context_size=(4, 2))
        session.add_audio(sine_audio)

        first = session.result.to_dict()
        second = session.result.to_dict()
        assert first == second
        assert session.result.tokens == list(session.clean_tokens + session.dirty_tokens)

    def test_no_drop_region_leaves_dirty_empty(self, tiny_model, sine_audio):
        tiny_model.joint = ScriptedJoint(lambda frame, call: (1, 1))
        session = tiny_model.transcribe_stream(context_size=(4, 0))

        for block in blocks(sine_audio):
            session.add_audio(block)
            assert session.dirty_tokens == ()
        assert len(session.clean_tokens) > 0

    def test_last_token_kept_when_clean_region_is_silent(self, tiny_model, long_audio):
        tiny_model.joint = ScriptedJoint(lambda frame, call: (2, 1) if call <= 3 else (BLANK, 1))
        session = tiny_model.transcribe_stream(context_size=(4, 2))

        for block in blocks(long_audio):
            session.add_audio(block)

        assert [t.id for t in session.clean_tokens] == [2, 2, 2]
        assert session._state.last_token == 2
        assert session._state.hidden is not None


class TestBoundedResources:
    def test_audio_buffer_is_truncated(self, tiny_model, long_audio):
        session = tiny_model.transcribe_stream(context_size=(4, 2))
        limit = 2 * tiny_model.encoder_config.subsampling_factor * tiny_model.preprocess_config.hop_length

        for block in blocks(long_audio):
            session.add_audio(block)
            assert session._audio.size(0) <= limit

    def test_cache_offset_is_bounded(self, tiny_model, long_audio):
        session = tiny_model.transcribe_stream(context_size=(4, 2))
        for block in blocks(long_audio):
            session.add_audio(block)
        assert all(cache.offset <= 4 for cache in session.cache)

    def test_context_manager_releases_state(self, tiny_model, sine_audio):
        with tiny_model.transcribe_stream(context_size=(4, 2)) as session:
            session.add_audio(sine_audio)
            assert session.cache[0].committed > 0

        assert session._audio.numel() == 0
        assert all(cache.committed == 0 for cache in session.cache)

    def test_numpy_blocks(self, tiny_model, sine_audio):
        session = tiny_model.transcribe_stream(context_size=(4, 2))
        session.add_audio(sine_audio.numpy())
        assert session.cache[0].committed > 0


class TestConcurrency:
    def test_concurrent_add_audio_rejected(self, tiny_model, sine_audio):
        session = tiny_model.transcribe_stream(context_size=(4, 2))

        session._lock.acquire()
        try:
            with pytest.raises(ConcurrentAccessError):
                session.add_audio(sine_audio)
        finally:
            session._lock.release()

        session.add_audio(sine_audio)
