"""
Test doubles and synthetic audio for the voice emergency pipeline tests.

Provides a controllable clock, fake transcription provider and notifier,
and deterministic PCM16 signal generators.
"""

import asyncio
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Optional

import numpy as np

from voice_emergency.services.interfaces import DeliveryResult
from voice_emergency.services.interfaces import TranscriptionResult
from voice_emergency.voice.audio_buffer import AudioChunk

SAMPLE_RATE = 16000


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeTranscriptionProvider:
    """Returns queued texts in order; can be slowed down or made to fail."""

    def __init__(self, texts=None, delay: float = 0.0, error: Optional[Exception] = None):
        self.texts = list(texts or [])
        self.delay = delay
        self.error = error
        self.calls: list[tuple[int, str]] = []

    async def transcribe(self, audio: bytes, language_hint: str) -> TranscriptionResult:
        self.calls.append((len(audio), language_hint))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        text = self.texts.pop(0) if self.texts else ""
        return TranscriptionResult(text=text, language=language_hint, confidence=0.9)


class FakeNotifier:
    """Records notifications; contacts whose phone is in failing are not delivered."""

    def __init__(self, failing=(), delay: float = 0.0):
        self.failing = set(failing)
        self.delay = delay
        self.calls = []

    async def notify(self, event, contacts):
        self.calls.append((event, list(contacts)))
        if self.delay:
            await asyncio.sleep(self.delay)
        return [
            DeliveryResult(
                contact=c,
                delivered=c.phone not in self.failing,
                error="unreachable" if c.phone in self.failing else None,
            )
            for c in contacts
        ]


def tone(freq: float, duration_ms: int, amplitude: float = 0.5, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Pure sine tone as int16 samples."""
    t = np.arange(int(sample_rate * duration_ms / 1000)) / sample_rate
    return np.round(amplitude * 32767 * np.sin(2 * np.pi * freq * t)).astype(np.int16)


def silence(duration_ms: int, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    return np.zeros(int(sample_rate * duration_ms / 1000), dtype=np.int16)


def syllables(count: int, duration_ms: int, freq: float = 220.0, amplitude: float = 0.5) -> np.ndarray:
    """Tone bursts separated by silence, evenly spread over duration_ms."""
    period_ms = duration_ms // count
    burst = tone(freq, period_ms // 2, amplitude)
    gap = silence(period_ms - period_ms // 2)
    return np.concatenate([np.concatenate([burst, gap]) for _ in range(count)])


def pcm(samples: np.ndarray) -> bytes:
    return samples.astype("<i2").tobytes()


def chunk(
    session_id: str,
    seq: int,
    samples: Optional[np.ndarray] = None,
    sample_rate: int = SAMPLE_RATE,
    channels: int = 1,
) -> AudioChunk:
    if samples is None:
        samples = tone(220, 100, sample_rate=sample_rate)
    return AudioChunk(
        session_id=session_id,
        sequence_number=seq,
        sample_rate=sample_rate,
        channels=channels,
        data=pcm(samples),
    )
