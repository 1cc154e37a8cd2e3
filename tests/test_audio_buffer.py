"""
Unit tests for the per-session audio frame buffer.
"""

import numpy as np
import pytest

from tests.fakes import chunk
from tests.fakes import pcm
from tests.fakes import silence
from tests.fakes import tone
from voice_emergency.services.errors import InputError
from voice_emergency.voice.audio_buffer import AudioChunk
from voice_emergency.voice.audio_buffer import AudioFrameBuffer
from voice_emergency.voice.audio_buffer import to_canonical


@pytest.mark.unit
class TestAudioFrameBuffer:
    """Test cases for AudioFrameBuffer."""

    def test_accepts_in_order_chunks(self):
        buffer = AudioFrameBuffer("s1", window_ms=1000)
        for seq in range(3):
            assert buffer.append(chunk("s1", seq, tone(220, 100)))

        assert buffer.last_sequence == 2
        assert buffer.metrics["chunks_accepted"] == 3
        assert buffer.duration_ms == pytest.approx(300)
        assert len(buffer.window()) == 4800

    def test_window_is_trailing(self):
        buffer = AudioFrameBuffer("s1", window_ms=100)
        buffer.append(chunk("s1", 0, silence(100)))
        last = tone(440, 100)
        buffer.append(chunk("s1", 1, last))

        assert np.array_equal(buffer.window(), last)

    def test_out_of_order_chunk_is_dropped_without_changing_window(self):
        buffer = AudioFrameBuffer("s1", window_ms=1000)
        buffer.append(chunk("s1", 5, tone(220, 100)))
        buffer.append(chunk("s1", 6, tone(330, 100)))
        before = buffer.window().copy()

        accepted = buffer.append(chunk("s1", 4, tone(880, 100, amplitude=0.9)))

        assert accepted is False
        assert buffer.metrics["dropped_out_of_order"] == 1
        assert buffer.last_sequence == 6
        assert np.array_equal(buffer.window(), before)

    def test_duplicate_chunk_is_dropped(self):
        buffer = AudioFrameBuffer("s1")
        buffer.append(chunk("s1", 0))

        assert buffer.append(chunk("s1", 0)) is False
        assert buffer.metrics["dropped_duplicate"] == 1
        assert buffer.metrics["chunks_accepted"] == 1

    @pytest.mark.parametrize(
        "data,sample_rate,channels",
        [
            (b"", 16000, 1),
            (b"\x00\x01\x02", 16000, 1),
            (b"\x00\x00" * 3, 16000, 2),
            (b"\x00\x00" * 10, 16000, 3),
            (b"\x00\x00" * 10, 4000, 1),
            (b"\x00\x00" * 10, 96000, 1),
        ],
    )
    def test_invalid_chunks_raise_input_error(self, data, sample_rate, channels):
        buffer = AudioFrameBuffer("s1")
        bad = AudioChunk("s1", 0, sample_rate, channels, data)

        with pytest.raises(InputError):
            buffer.append(bad)
        assert buffer.last_sequence is None

    def test_oversized_chunk_rejected(self):
        buffer = AudioFrameBuffer("s1", max_chunk_bytes=100)
        with pytest.raises(InputError, match="too large"):
            buffer.append(chunk("s1", 0, tone(220, 100)))

    def test_retained_audio_is_bounded(self):
        buffer = AudioFrameBuffer("s1", window_ms=500, max_buffer_ms=1000)
        for seq in range(25):
            buffer.append(chunk("s1", seq, tone(220, 100)))

        assert buffer.duration_ms == pytest.approx(1000)
        assert buffer.pending_ms == pytest.approx(1000)

    def test_drain_pending_returns_new_audio_once(self):
        buffer = AudioFrameBuffer("s1")
        samples = tone(220, 200)
        buffer.append(chunk("s1", 0, samples))

        assert buffer.drain_pending() == pcm(samples)
        assert buffer.pending_ms == 0
        assert buffer.drain_pending() == b""
        # Analysis window is unaffected by draining
        assert buffer.duration_ms == pytest.approx(200)


@pytest.mark.unit
class TestCanonicalConversion:
    """Test cases for format conversion to 16 kHz mono."""

    def test_canonical_input_is_unchanged(self):
        samples = tone(220, 50)
        assert np.array_equal(to_canonical(pcm(samples), 16000, 1), samples)

    def test_stereo_is_downmixed_by_mean(self):
        left = tone(220, 50, amplitude=0.4)
        right = np.zeros_like(left)
        interleaved = np.column_stack([left, right]).reshape(-1)

        mono = to_canonical(pcm(interleaved), 16000, 2)

        assert len(mono) == len(left)
        assert np.allclose(mono, left / 2, atol=1)

    def test_identical_channels_downmix_to_same_signal(self):
        samples = tone(330, 50)
        interleaved = np.column_stack([samples, samples]).reshape(-1)

        assert np.array_equal(to_canonical(pcm(interleaved), 16000, 2), samples)

    @pytest.mark.parametrize("rate", [8000, 22050, 44100, 48000])
    def test_resampled_to_16k(self, rate):
        samples = tone(220, 100, sample_rate=rate)
        out = to_canonical(pcm(samples), rate, 1)
        assert abs(len(out) - 1600) <= 1

    def test_resampling_is_deterministic(self):
        data = pcm(tone(220, 100, sample_rate=44100))
        assert np.array_equal(to_canonical(data, 44100, 1), to_canonical(data, 44100, 1))
