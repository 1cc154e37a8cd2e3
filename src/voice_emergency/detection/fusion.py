"""
Multimodal fusion of text and audio emergency evidence.

The fused confidence is a convex combination of the lexical confidence and
the acoustic stress score. Urgency and recommendation are monotonic step
functions of that confidence. Category always comes from the text signal.
"""

import logging
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any, Optional

from voice_emergency.core.settings import DetectionSettings
from voice_emergency.core.settings import FusionWeights
from voice_emergency.core.settings import UrgencyThresholds
from voice_emergency.detection.text_scorer import TextSignal
from voice_emergency.voice.features import FeatureVector

logger = logging.getLogger(__name__)


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Recommendation(str, Enum):
    IGNORE = "ignore"
    MONITOR = "monitor"
    ALERT = "alert"
    IMMEDIATE_RESPONSE = "immediate_response"


_RECOMMENDATIONS = {
    UrgencyLevel.LOW: Recommendation.IGNORE,
    UrgencyLevel.MEDIUM: Recommendation.MONITOR,
    UrgencyLevel.HIGH: Recommendation.ALERT,
    UrgencyLevel.CRITICAL: Recommendation.IMMEDIATE_RESPONSE,
}


def urgency_for(confidence: float, thresholds: UrgencyThresholds) -> UrgencyLevel:
    """Map a fused confidence onto an urgency level (strictly greater than)."""
    if confidence > thresholds.critical:
        return UrgencyLevel.CRITICAL
    if confidence > thresholds.high:
        return UrgencyLevel.HIGH
    if confidence > thresholds.medium:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.LOW


def recommendation_for(urgency: UrgencyLevel) -> Recommendation:
    return _RECOMMENDATIONS[urgency]


@dataclass(frozen=True)
class EmergencyAssessment:
    """Fused emergency decision for one evaluation."""

    is_emergency: bool
    category: Optional[str]
    confidence: float
    urgency_level: UrgencyLevel
    recommendation: Recommendation
    contributing_features: dict[str, Any] = field(default_factory=dict)
    degraded: bool = False

    @property
    def dominant_modality(self) -> str:
        return self.contributing_features.get("dominant_modality", "none")


class FusionEngine:
    """Combines a TextSignal and a FeatureVector into an EmergencyAssessment."""

    def __init__(self, settings: Optional[DetectionSettings] = None):
        self.settings = settings or DetectionSettings()

    def fuse(
        self,
        text: Optional[TextSignal],
        audio: FeatureVector,
        weights: Optional[FusionWeights] = None,
    ) -> EmergencyAssessment:
        """
        Fuse text and audio evidence.

        Args:
            text: Lexical signal, or None when no transcript is available yet
            audio: Acoustic features of the trailing window
            weights: Per-session weights, defaults to the configured weights

        Returns:
            EmergencyAssessment: Fused decision. Without a text signal the
                confidence is capped at the audio weight times the stress
                score and the assessment is flagged degraded.
        """
        weights = weights or self.settings.fusion_weights

        stress = min(max(audio.stress_score, 0.0), 1.0)
        audio_part = weights.audio * stress

        if text is None:
            text_confidence = 0.0
            text_part = 0.0
        else:
            text_confidence = min(max(text.confidence, 0.0), 1.0)
            text_part = weights.text * text_confidence

        combined = round(min(max(text_part + audio_part, 0.0), 1.0), 6)
        urgency = urgency_for(combined, self.settings.urgency)
        degraded = text is None or text.degraded

        if text_part == 0 and audio_part == 0:
            dominant = "none"
        else:
            dominant = "text" if text_part >= audio_part else "audio"

        contributing = {
            "text_confidence": text_confidence,
            "text_contribution": round(text_part, 6),
            "audio_stress": stress,
            "audio_contribution": round(audio_part, 6),
            "quick_stress": round(audio.quick_stress, 6),
            "dominant_modality": dominant,
            "text_missing": text is None,
            "matched_keywords": list(text.matched_keywords) if text else [],
            "emotional_tone": text.emotional_tone.value if text else None,
            "weights": {"text": weights.text, "audio": weights.audio},
        }

        return EmergencyAssessment(
            is_emergency=combined > self.settings.emergency_threshold,
            category=text.category if text else None,
            confidence=combined,
            urgency_level=urgency,
            recommendation=recommendation_for(urgency),
            contributing_features=contributing,
            degraded=degraded,
        )
