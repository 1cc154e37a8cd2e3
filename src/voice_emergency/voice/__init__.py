"""Audio buffering, acoustic features and transcription access."""

from .audio_buffer import AudioChunk
from .audio_buffer import AudioFrameBuffer
from .features import NEUTRAL_FEATURES
from .features import AcousticFeatureExtractor
from .features import FeatureVector
from .features import VoiceActivity
from .transcription import TranscriptionClient

__all__ = [
    "AudioChunk",
    "AudioFrameBuffer",
    "AcousticFeatureExtractor",
    "FeatureVector",
    "VoiceActivity",
    "NEUTRAL_FEATURES",
    "TranscriptionClient",
]
