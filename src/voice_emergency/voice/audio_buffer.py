"""
Per-session audio frame buffer.

Accepts raw PCM16 chunks in sequence order, validates them, converts them
to the canonical 16 kHz mono PCM16 format and keeps a bounded trailing
window for analysis.

Invariants:
    - Chunks are accepted in strictly increasing sequence_number order
    - Out-of-order and duplicate chunks are dropped, never reordered
    - Retained audio never exceeds max_buffer_ms
"""

import logging
from collections import deque
from dataclasses import dataclass
from math import gcd

import numpy as np
from scipy.signal import resample_poly

from voice_emergency.services.constants import DEFAULTS
from voice_emergency.services.errors import InputError

logger = logging.getLogger(__name__)

CANONICAL_SAMPLE_RATE = DEFAULTS["canonical_sample_rate"]
BYTES_PER_SAMPLE = 2


@dataclass(frozen=True)
class AudioChunk:
    """One block of raw little-endian PCM16 audio from a live session."""

    session_id: str
    sequence_number: int
    sample_rate: int
    channels: int
    data: bytes
    captured_at_ms: int = 0

    @property
    def duration_ms(self) -> float:
        frames = len(self.data) // (BYTES_PER_SAMPLE * max(self.channels, 1))
        return frames * 1000.0 / self.sample_rate if self.sample_rate else 0.0


def pcm16_to_float(pcm: bytes | np.ndarray) -> np.ndarray:
    """Convert PCM16 bytes or int16 samples to float32 in [-1, 1)."""
    if isinstance(pcm, (bytes, bytearray, memoryview)):
        samples = np.frombuffer(bytes(pcm), dtype="<i2")
    else:
        samples = np.asarray(pcm)
    if samples.dtype.kind == "f":
        return samples.astype(np.float32)
    return samples.astype(np.float32) / 32768.0


def float_to_pcm16(samples: np.ndarray) -> np.ndarray:
    """Convert float samples to int16, clipping to the valid range."""
    scaled = np.round(np.asarray(samples, dtype=np.float64) * 32768.0)
    return np.clip(scaled, -32768, 32767).astype(np.int16)


def validate_chunk(chunk: AudioChunk, max_chunk_bytes: int = DEFAULTS["max_chunk_bytes"]) -> None:
    """
    Validate a chunk before it enters the buffer.

    Raises:
        InputError: If the chunk is empty, misaligned, oversized or in an
            unsupported format
    """
    size = len(chunk.data)
    if size == 0:
        raise InputError("Empty audio chunk", session_id=chunk.session_id)
    if size > max_chunk_bytes:
        raise InputError(
            f"Audio chunk too large: {size} bytes (max: {max_chunk_bytes})",
            session_id=chunk.session_id,
        )
    if not 1 <= chunk.channels <= DEFAULTS["max_channels"]:
        raise InputError(f"Unsupported channel count: {chunk.channels}", session_id=chunk.session_id)
    if not DEFAULTS["min_sample_rate"] <= chunk.sample_rate <= DEFAULTS["max_sample_rate"]:
        raise InputError(f"Unsupported sample rate: {chunk.sample_rate}", session_id=chunk.session_id)
    if size % (BYTES_PER_SAMPLE * chunk.channels) != 0:
        raise InputError(
            f"Audio chunk of {size} bytes is not aligned to {chunk.channels}-channel PCM16 frames",
            session_id=chunk.session_id,
        )
    if chunk.sequence_number < 0:
        raise InputError(f"Negative sequence number: {chunk.sequence_number}", session_id=chunk.session_id)


def to_canonical(data: bytes, sample_rate: int, channels: int) -> np.ndarray:
    """
    Convert interleaved PCM16 to canonical 16 kHz mono int16.

    Stereo is down-mixed by arithmetic mean; other rates are resampled with
    fixed integer polyphase factors so conversion is deterministic.
    """
    samples = np.frombuffer(data, dtype="<i2")
    if channels == 1 and sample_rate == CANONICAL_SAMPLE_RATE:
        return samples.astype(np.int16)

    if channels > 1:
        samples = samples.reshape(-1, channels).astype(np.float32).mean(axis=1)
        samples = samples / 32768.0
    else:
        samples = samples.astype(np.float32) / 32768.0

    if sample_rate != CANONICAL_SAMPLE_RATE:
        g = gcd(sample_rate, CANONICAL_SAMPLE_RATE)
        samples = resample_poly(samples, CANONICAL_SAMPLE_RATE // g, sample_rate // g)

    return float_to_pcm16(samples)


class AudioFrameBuffer:
    """
    Ordered, bounded buffer of canonical audio for one session.

    Owned by the session's worker task; not safe for concurrent writers.
    """

    def __init__(
        self,
        session_id: str,
        window_ms: int = DEFAULTS["window_medium_ms"],
        max_buffer_ms: int = DEFAULTS["max_buffer_ms"],
        max_chunk_bytes: int = DEFAULTS["max_chunk_bytes"],
    ):
        self.session_id = session_id
        self.window_ms = window_ms
        self.max_buffer_ms = max(max_buffer_ms, window_ms)
        self.max_chunk_bytes = max_chunk_bytes
        self.sample_rate = CANONICAL_SAMPLE_RATE

        self.last_sequence: int | None = None
        self._segments: deque[np.ndarray] = deque()
        self._total_samples = 0
        self._pending: deque[np.ndarray] = deque()
        self._pending_samples = 0

        self.metrics = {
            "chunks_accepted": 0,
            "dropped_out_of_order": 0,
            "dropped_duplicate": 0,
            "samples_accepted": 0,
        }

    def append(self, chunk: AudioChunk) -> bool:
        """
        Validate, order-check and store a chunk.

        Args:
            chunk: Incoming audio chunk

        Returns:
            bool: True if the chunk was accepted, False if it was dropped

        Raises:
            InputError: If the chunk is malformed
        """
        validate_chunk(chunk, self.max_chunk_bytes)

        if self.last_sequence is not None and chunk.sequence_number <= self.last_sequence:
            if chunk.sequence_number == self.last_sequence:
                self.metrics["dropped_duplicate"] += 1
                reason = "duplicate"
            else:
                self.metrics["dropped_out_of_order"] += 1
                reason = "out-of-order"
            logger.warning(
                f"Dropped {reason} chunk {chunk.sequence_number} for session {self.session_id} "
                f"(last accepted {self.last_sequence})"
            )
            return False

        samples = to_canonical(chunk.data, chunk.sample_rate, chunk.channels)
        self.last_sequence = chunk.sequence_number

        self._segments.append(samples)
        self._total_samples += len(samples)
        self._pending.append(samples)
        self._pending_samples += len(samples)
        self._trim()

        self.metrics["chunks_accepted"] += 1
        self.metrics["samples_accepted"] += len(samples)
        return True

    def _trim(self) -> None:
        """Drop the oldest audio beyond max_buffer_ms."""
        limit = int(self.max_buffer_ms * self.sample_rate / 1000)
        for segments, attr in ((self._segments, "_total_samples"), (self._pending, "_pending_samples")):
            total = getattr(self, attr)
            while total > limit and segments:
                excess = total - limit
                head = segments[0]
                if len(head) <= excess:
                    segments.popleft()
                    total -= len(head)
                else:
                    segments[0] = head[excess:]
                    total -= excess
            setattr(self, attr, total)

    def window(self, window_ms: int | None = None) -> np.ndarray:
        """
        Return the trailing analysis window as int16 samples.

        Args:
            window_ms: Window length, defaults to the buffer's window_ms
        """
        if not self._segments:
            return np.zeros(0, dtype=np.int16)
        wanted = int((window_ms or self.window_ms) * self.sample_rate / 1000)
        samples = np.concatenate(list(self._segments))
        return samples[-wanted:] if wanted < len(samples) else samples

    @property
    def duration_ms(self) -> float:
        """Duration of retained audio."""
        return self._total_samples * 1000.0 / self.sample_rate

    @property
    def pending_ms(self) -> float:
        """Audio accumulated since the last drain_pending() call."""
        return self._pending_samples * 1000.0 / self.sample_rate

    def drain_pending(self) -> bytes:
        """Return and clear the audio accumulated since the last call, as PCM16 bytes."""
        if not self._pending:
            return b""
        data = np.concatenate(list(self._pending)).astype("<i2").tobytes()
        self._pending.clear()
        self._pending_samples = 0
        return data

    def reset(self) -> None:
        """Clear retained audio, keeping the sequence position."""
        self._segments.clear()
        self._total_samples = 0
        self._pending.clear()
        self._pending_samples = 0
