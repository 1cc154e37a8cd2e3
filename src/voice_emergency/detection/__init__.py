"""Lexical scoring, multimodal fusion and streaming emergency detection."""

from .fusion import EmergencyAssessment
from .fusion import FusionEngine
from .fusion import Recommendation
from .fusion import UrgencyLevel
from .lexicon import DEFAULT_LEXICON
from .lexicon import Lexicon
from .streaming import DetectionState
from .streaming import StreamingDecision
from .streaming import StreamingDetectionController
from .text_scorer import EmotionalTone
from .text_scorer import LexicalEmergencyScorer
from .text_scorer import TextAnalyzer
from .text_scorer import TextSignal

__all__ = [
    "DEFAULT_LEXICON",
    "Lexicon",
    "LexicalEmergencyScorer",
    "TextAnalyzer",
    "TextSignal",
    "EmotionalTone",
    "FusionEngine",
    "EmergencyAssessment",
    "UrgencyLevel",
    "Recommendation",
    "StreamingDetectionController",
    "StreamingDecision",
    "DetectionState",
]
