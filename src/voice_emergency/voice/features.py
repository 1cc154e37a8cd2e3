"""
Acoustic feature extraction for emergency detection.

Computes volume, pitch, speech rate, silence ratio, voice quality and a
derived stress score from a window of canonical PCM16 mono audio. All
estimators are deterministic: identical samples always yield an identical
FeatureVector.
"""

import logging
from dataclasses import asdict
from dataclasses import dataclass

import numpy as np
from scipy.signal import find_peaks

from voice_emergency.services.constants import DEFAULTS
from voice_emergency.voice.audio_buffer import pcm16_to_float

logger = logging.getLogger(__name__)

# Amplitude below which a sample counts as silence (1000 on the int16 scale)
SILENCE_AMPLITUDE = 1000 / 32768

# VAD framing
VAD_FRAME_MS = 25
VAD_HOP_MS = 10
VAD_ENERGY_THRESHOLD = 0.02
VAD_ZCR_BAND = (0.02, 0.5)
VAD_MERGE_GAP_MS = 200

# Pitch search range
PITCH_MIN_HZ = 60.0
PITCH_MAX_HZ = 500.0
PITCH_FRAME_MS = 40
PITCH_HOP_MS = 20
PITCH_MIN_CORRELATION = 0.3

# Syllables per word used to turn syllable peaks into words per minute
SYLLABLES_PER_WORD = 1.5
MAX_SPEECH_RATE_WPM = 300.0

# (threshold, weight) for each stress indicator
HIGH_PITCH = (300.0, 0.3)
FAST_SPEECH = (180.0, 0.25)
LOUD_VOLUME = (0.8, 0.2)
LOW_VOICE_QUALITY = (0.5, 0.1)


@dataclass(frozen=True)
class FeatureVector:
    """Acoustic features of one analysis window."""

    volume: float
    pitch_hz: float
    speech_rate_wpm: float
    silence_ratio: float
    voice_quality: float
    stress_score: float

    @property
    def quick_stress(self) -> float:
        """Cheap streaming stress estimate from quality and volume alone."""
        return max(0.0, 1.0 - self.voice_quality) * self.volume

    def to_dict(self) -> dict:
        return asdict(self)


def compute_stress_score(volume: float, pitch_hz: float, speech_rate_wpm: float, voice_quality: float) -> float:
    """Weighted sum of stress indicators, clamped to [0, 1]."""
    score = 0.0
    if pitch_hz > HIGH_PITCH[0]:
        score += HIGH_PITCH[1]
    if speech_rate_wpm > FAST_SPEECH[0]:
        score += FAST_SPEECH[1]
    if volume > LOUD_VOLUME[0]:
        score += LOUD_VOLUME[1]
    if voice_quality < LOW_VOICE_QUALITY[0]:
        score += LOW_VOICE_QUALITY[1]
    return float(min(max(score, 0.0), 1.0))


# Returned whenever a window is too short or analysis fails
NEUTRAL_FEATURES = FeatureVector(
    volume=0.5,
    pitch_hz=150.0,
    speech_rate_wpm=120.0,
    silence_ratio=0.2,
    voice_quality=0.7,
    stress_score=compute_stress_score(0.5, 150.0, 120.0, 0.7),
)


@dataclass(frozen=True)
class VoiceActivity:
    """Voice activity detection result for a window."""

    has_voice: bool
    segments: tuple[tuple[float, float, float], ...]
    silence_ratio: float
    average_energy: float


@dataclass(frozen=True)
class ChunkQuality:
    """Signal quality metrics for an incoming audio chunk."""

    volume: float
    snr_db: float
    clarity: float
    silence_ratio: float
    distortion: float
    label: str

    @property
    def needs_buffering(self) -> bool:
        """Too quiet or unclear to be worth analysing on its own."""
        return self.volume < 0.1 or self.clarity < 0.3


def _frame(samples: np.ndarray, frame_len: int, hop: int) -> np.ndarray:
    """Split samples into overlapping frames (frames x frame_len)."""
    if len(samples) < frame_len:
        return np.empty((0, frame_len), dtype=samples.dtype)
    count = 1 + (len(samples) - frame_len) // hop
    idx = np.arange(frame_len)[None, :] + hop * np.arange(count)[:, None]
    return samples[idx]


def _zero_crossing_rate(frames: np.ndarray) -> np.ndarray:
    if frames.shape[1] < 2:
        return np.zeros(frames.shape[0])
    signs = np.signbit(frames)
    return np.mean(signs[:, 1:] != signs[:, :-1], axis=1)


def assess_chunk_quality(pcm: bytes | np.ndarray) -> ChunkQuality:
    """
    Score the signal quality of a chunk.

    Args:
        pcm: PCM16 bytes or samples at the canonical rate

    Returns:
        ChunkQuality: Metrics and a coarse excellent/good/fair/poor label
    """
    samples = pcm16_to_float(pcm)
    if samples.size == 0:
        return ChunkQuality(0.0, 0.0, 0.0, 1.0, 1.0, "poor")

    rms = float(np.sqrt(np.mean(samples.astype(np.float64) ** 2)))
    peak = float(np.max(np.abs(samples)))
    zcr = float(_zero_crossing_rate(samples[None, :])[0])

    snr = 20 * np.log10(rms / (peak * 0.01)) if peak > 0 and rms > 0 else 0.0
    clarity = min(zcr * 2, 1.0)
    silence_ratio = float(np.mean(np.abs(samples) < 0.01))
    distortion = (peak - 0.95) / 0.05 if peak > 0.95 else 0.0

    score = snr / 40 + clarity + (1 - silence_ratio) - distortion
    if score > 2.0:
        label = "excellent"
    elif score > 1.5:
        label = "good"
    elif score > 1.0:
        label = "fair"
    else:
        label = "poor"

    return ChunkQuality(
        volume=rms,
        snr_db=max(0.0, float(snr)),
        clarity=clarity,
        silence_ratio=silence_ratio,
        distortion=float(min(distortion, 1.0)),
        label=label,
    )


class AcousticFeatureExtractor:
    """
    Deterministic acoustic feature extractor.

    Shared read-only across sessions; holds no per-call state.
    """

    def __init__(self, sample_rate: int = DEFAULTS["canonical_sample_rate"], min_duration_ms: int = DEFAULTS["min_analysis_ms"]):
        self.sample_rate = sample_rate
        self.min_duration_ms = min_duration_ms

    def extract(self, frames: bytes | np.ndarray, sample_rate: int | None = None) -> FeatureVector:
        """
        Compute the feature vector for a window of mono PCM16 audio.

        Args:
            frames: PCM16 bytes or int16 samples
            sample_rate: Sample rate of frames, defaults to the canonical rate

        Returns:
            FeatureVector: Extracted features, or NEUTRAL_FEATURES when the
                window is too short or analysis fails
        """
        rate = sample_rate or self.sample_rate
        try:
            samples = pcm16_to_float(frames).astype(np.float64)
            if samples.size * 1000 / rate < self.min_duration_ms:
                logger.debug(f"Window of {samples.size} samples too short, using neutral features")
                return NEUTRAL_FEATURES

            volume = float(min(np.mean(np.abs(samples)), 1.0))
            silence_ratio = float(np.mean(np.abs(samples) < SILENCE_AMPLITUDE))
            voice_quality = float(min(max(volume * (1 - silence_ratio), 0.0), 1.0))
            pitch_hz = self._estimate_pitch(samples, rate)
            speech_rate = self._estimate_speech_rate(samples, rate)

            return FeatureVector(
                volume=volume,
                pitch_hz=pitch_hz,
                speech_rate_wpm=speech_rate,
                silence_ratio=silence_ratio,
                voice_quality=voice_quality,
                stress_score=compute_stress_score(volume, pitch_hz, speech_rate, voice_quality),
            )
        except Exception as e:
            logger.error(f"Feature extraction failed, using neutral features: {e}")
            return NEUTRAL_FEATURES

    def detect_voice_activity(self, frames: bytes | np.ndarray, sample_rate: int | None = None) -> VoiceActivity:
        """
        Energy and zero-crossing-rate voice activity detection.

        Voiced 25 ms frames (10 ms hop) separated by gaps under 200 ms are
        merged into one segment.
        """
        rate = sample_rate or self.sample_rate
        samples = pcm16_to_float(frames).astype(np.float64)
        frame_len = int(rate * VAD_FRAME_MS / 1000)
        hop = int(rate * VAD_HOP_MS / 1000)
        windows = _frame(samples, frame_len, hop)

        if windows.shape[0] == 0:
            return VoiceActivity(False, (), 1.0, 0.0)

        energy = np.sqrt(np.mean(windows**2, axis=1))
        zcr = _zero_crossing_rate(windows)
        voiced = (energy > VAD_ENERGY_THRESHOLD) & (zcr >= VAD_ZCR_BAND[0]) & (zcr <= VAD_ZCR_BAND[1])

        segments: list[list[float]] = []
        for i in np.flatnonzero(voiced):
            start_ms = i * VAD_HOP_MS
            end_ms = start_ms + VAD_FRAME_MS
            conf = float(min(energy[i] * 10, 1.0))
            if segments and start_ms - segments[-1][1] < VAD_MERGE_GAP_MS:
                seg = segments[-1]
                seg[1] = max(seg[1], end_ms)
                seg[2] += conf
                seg[3] += 1
            else:
                segments.append([float(start_ms), float(end_ms), conf, 1])

        return VoiceActivity(
            has_voice=bool(segments),
            segments=tuple((s[0], s[1], round(s[2] / s[3], 6)) for s in segments),
            silence_ratio=float(1 - np.mean(voiced)),
            average_energy=float(np.mean(energy)),
        )

    def _estimate_pitch(self, samples: np.ndarray, rate: int) -> float:
        """Median autocorrelation pitch over voiced frames, 0.0 when unvoiced."""
        frame_len = int(rate * PITCH_FRAME_MS / 1000)
        hop = int(rate * PITCH_HOP_MS / 1000)
        min_lag = max(1, int(rate / PITCH_MAX_HZ))
        max_lag = min(frame_len - 1, int(rate / PITCH_MIN_HZ))
        if max_lag <= min_lag:
            return 0.0

        estimates = []
        for frame in _frame(samples, frame_len, hop):
            if np.sqrt(np.mean(frame**2)) <= VAD_ENERGY_THRESHOLD:
                continue
            frame = frame - np.mean(frame)
            corr = np.correlate(frame, frame, mode="full")[frame_len - 1:]
            if corr[0] <= 0:
                continue
            corr = corr / corr[0]
            lag = min_lag + int(np.argmax(corr[min_lag:max_lag + 1]))
            if corr[lag] >= PITCH_MIN_CORRELATION:
                estimates.append(rate / lag)

        return float(np.median(estimates)) if estimates else 0.0

    def _estimate_speech_rate(self, samples: np.ndarray, rate: int) -> float:
        """Words per minute from syllable-like peaks in the voiced energy envelope."""
        frame_len = int(rate * VAD_FRAME_MS / 1000)
        hop = int(rate * VAD_HOP_MS / 1000)
        windows = _frame(samples, frame_len, hop)
        if windows.shape[0] < 3:
            return 0.0

        energy = np.sqrt(np.mean(windows**2, axis=1))
        zcr = _zero_crossing_rate(windows)
        gated = np.where((zcr >= VAD_ZCR_BAND[0]) & (zcr <= VAD_ZCR_BAND[1]), energy, 0.0)
        envelope = np.convolve(gated, np.ones(5) / 5, mode="same")

        # Syllable nuclei are at least 100 ms apart
        peaks, _ = find_peaks(envelope, height=VAD_ENERGY_THRESHOLD, distance=10, prominence=VAD_ENERGY_THRESHOLD / 2)
        minutes = len(samples) / rate / 60
        wpm = (len(peaks) / SYLLABLES_PER_WORD) / minutes
        return float(min(wpm, MAX_SPEECH_RATE_WPM))
