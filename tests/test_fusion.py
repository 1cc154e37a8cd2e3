"""
Unit tests for multimodal fusion, urgency levels and recommendations.
"""

import pytest

from voice_emergency.core.settings import DetectionSettings
from voice_emergency.core.settings import FusionWeights
from voice_emergency.core.settings import UrgencyThresholds
from voice_emergency.detection.fusion import FusionEngine
from voice_emergency.detection.fusion import Recommendation
from voice_emergency.detection.fusion import UrgencyLevel
from voice_emergency.detection.fusion import recommendation_for
from voice_emergency.detection.fusion import urgency_for
from voice_emergency.detection.text_scorer import EmotionalTone
from voice_emergency.detection.text_scorer import TextSignal
from voice_emergency.voice.features import NEUTRAL_FEATURES
from voice_emergency.voice.features import FeatureVector


def text_signal(confidence: float, category: str = "fire", degraded: bool = False) -> TextSignal:
    return TextSignal(
        language="english",
        is_emergency=confidence > 0.3,
        category=category,
        confidence=confidence,
        matched_keywords=("fire",),
        emotional_tone=EmotionalTone.STRESSED,
        degraded=degraded,
    )


def features(stress: float) -> FeatureVector:
    return FeatureVector(
        volume=0.5,
        pitch_hz=150.0,
        speech_rate_wpm=120.0,
        silence_ratio=0.2,
        voice_quality=0.4,
        stress_score=stress,
    )


@pytest.fixture
def engine():
    return FusionEngine()


@pytest.mark.unit
class TestFusionEngine:
    """Test cases for FusionEngine.fuse."""

    def test_text_half_audio_full_is_high_alert(self, engine):
        assessment = engine.fuse(text_signal(0.5), features(1.0))

        assert assessment.confidence == 0.65
        assert assessment.urgency_level == UrgencyLevel.HIGH
        assert assessment.recommendation == Recommendation.ALERT
        assert assessment.is_emergency is True
        assert assessment.degraded is False

    @pytest.mark.parametrize("t", [0.0, 0.1, 0.3, 0.5, 0.7, 0.9, 1.0])
    @pytest.mark.parametrize("a", [0.0, 0.25, 0.5, 0.85, 1.0])
    def test_confidence_stays_in_range(self, engine, t, a):
        confidence = engine.fuse(text_signal(t), features(a)).confidence
        assert 0.0 <= confidence <= 1.0
        assert confidence == pytest.approx(0.7 * t + 0.3 * a, abs=1e-6)

    def test_monotonic_in_text_confidence(self, engine):
        values = [engine.fuse(text_signal(t / 10), features(0.5)).confidence for t in range(11)]
        assert values == sorted(values)

    def test_monotonic_in_audio_stress(self, engine):
        values = [engine.fuse(text_signal(0.5), features(a / 10)).confidence for a in range(11)]
        assert values == sorted(values)

    def test_out_of_range_inputs_are_clamped(self, engine):
        assessment = engine.fuse(text_signal(1.5), features(2.0))
        assert assessment.confidence == 1.0

    def test_category_comes_from_text(self, engine):
        # Audio dominates but the category is still the lexical one
        assessment = engine.fuse(text_signal(0.1, category="medical"), features(1.0))

        assert assessment.category == "medical"
        assert assessment.dominant_modality == "audio"

    def test_audio_only_is_degraded(self, engine):
        assessment = engine.fuse(None, features(1.0))

        assert assessment.degraded is True
        assert assessment.category is None
        assert assessment.confidence == pytest.approx(0.3)
        assert assessment.contributing_features["text_missing"] is True
        assert assessment.contributing_features["emotional_tone"] is None

    def test_degraded_text_marks_assessment_degraded(self, engine):
        assessment = engine.fuse(text_signal(0.9, degraded=True), features(0.0))
        assert assessment.degraded is True

    def test_no_evidence(self, engine):
        assessment = engine.fuse(text_signal(0.0, category=None), NEUTRAL_FEATURES)

        assert assessment.confidence == 0.0
        assert assessment.urgency_level == UrgencyLevel.LOW
        assert assessment.recommendation == Recommendation.IGNORE
        assert assessment.dominant_modality == "none"
        assert assessment.is_emergency is False

    def test_contributing_features(self, engine):
        assessment = engine.fuse(text_signal(0.8), features(0.5))
        contributing = assessment.contributing_features

        assert contributing["text_contribution"] == pytest.approx(0.56)
        assert contributing["audio_contribution"] == pytest.approx(0.15)
        assert contributing["matched_keywords"] == ["fire"]
        assert contributing["emotional_tone"] == "stressed"
        assert contributing["weights"] == {"text": 0.7, "audio": 0.3}
        assert assessment.dominant_modality == "text"

    def test_per_call_weights(self, engine):
        weights = FusionWeights(text=0.5, audio=0.5)
        assessment = engine.fuse(text_signal(0.5), features(1.0), weights)
        assert assessment.confidence == 0.75

    def test_configured_thresholds(self):
        settings = DetectionSettings(
            urgency=UrgencyThresholds(medium=0.1, high=0.2, critical=0.3),
            emergency_threshold=0.1,
        )
        assessment = FusionEngine(settings).fuse(text_signal(0.5), features(0.0))

        assert assessment.urgency_level == UrgencyLevel.CRITICAL
        assert assessment.recommendation == Recommendation.IMMEDIATE_RESPONSE


@pytest.mark.unit
class TestUrgencyMapping:
    """Test cases for the confidence to urgency step function."""

    @pytest.mark.parametrize(
        "confidence,level",
        [
            (0.0, UrgencyLevel.LOW),
            (0.4, UrgencyLevel.LOW),
            (0.41, UrgencyLevel.MEDIUM),
            (0.6, UrgencyLevel.MEDIUM),
            (0.61, UrgencyLevel.HIGH),
            (0.8, UrgencyLevel.HIGH),
            (0.81, UrgencyLevel.CRITICAL),
            (1.0, UrgencyLevel.CRITICAL),
        ],
    )
    def test_thresholds_are_strict(self, confidence, level):
        assert urgency_for(confidence, UrgencyThresholds()) == level

    def test_urgency_is_monotonic(self):
        order = list(UrgencyLevel)
        levels = [urgency_for(c / 100, UrgencyThresholds()) for c in range(101)]
        ranks = [order.index(level) for level in levels]
        assert ranks == sorted(ranks)

    def test_recommendations(self):
        assert recommendation_for(UrgencyLevel.LOW) == Recommendation.IGNORE
        assert recommendation_for(UrgencyLevel.MEDIUM) == Recommendation.MONITOR
        assert recommendation_for(UrgencyLevel.HIGH) == Recommendation.ALERT
        assert recommendation_for(UrgencyLevel.CRITICAL) == Recommendation.IMMEDIATE_RESPONSE
