"""
Lexical emergency scoring of transcript text.

The keyword scorer is deterministic and works standalone; when an optional
upstream classifier is configured, TextAnalyzer tries it first and falls
back to the keyword scorer on failure.
"""

import logging
import re
from dataclasses import dataclass
from dataclasses import replace
from enum import Enum
from functools import lru_cache
from typing import Optional

from voice_emergency.detection.lexicon import DEFAULT_LEXICON
from voice_emergency.detection.lexicon import Lexicon
from voice_emergency.services.graceful_degradation import DegradationManager
from voice_emergency.services.interfaces import EmergencyClassifier

logger = logging.getLogger(__name__)

KEYWORD_WEIGHT = 0.3
CONTEXT_WEIGHT = 0.2
CONTEXT_CAP = 0.4
URGENCY_WEIGHT = 0.1
URGENCY_CAP = 0.3

_WHITESPACE = re.compile(r"\s+")
_APOSTROPHES = str.maketrans({"’": "'", "‘": "'", "`": "'"})


class EmotionalTone(str, Enum):
    """Coarse emotional tone of an utterance."""

    CALM = "calm"
    STRESSED = "stressed"
    PANICKED = "panicked"
    ANGRY = "angry"


@dataclass(frozen=True)
class TextSignal:
    """Lexical emergency evidence for one piece of text."""

    language: str
    is_emergency: bool
    category: Optional[str]
    confidence: float
    matched_keywords: tuple[str, ...]
    emotional_tone: EmotionalTone
    degraded: bool = False


def normalize_text(text: str) -> str:
    """Lower-case, straighten apostrophes and collapse whitespace."""
    return _WHITESPACE.sub(" ", text.translate(_APOSTROPHES).lower()).strip()


@lru_cache(maxsize=4096)
def _phrase_pattern(phrase: str) -> re.Pattern:
    # Whole-word match so "na" does not fire inside "ina"
    return re.compile(r"(?<!\w)" + re.escape(phrase) + r"(?!\w)")


def _matches(text: str, phrases: tuple[str, ...]) -> list[str]:
    return [p for p in phrases if _phrase_pattern(p).search(text)]


class LexicalEmergencyScorer:
    """Keyword, context and urgency scoring against a read-only Lexicon."""

    def __init__(self, lexicon: Lexicon = DEFAULT_LEXICON, threshold: float = 0.3):
        self.lexicon = lexicon
        self.threshold = threshold

    def score_text(self, text: str, language: str) -> TextSignal:
        """
        Score text for emergency content.

        Args:
            text: Transcript text (partial or final)
            language: Conversation language; unknown languages use English

        Returns:
            TextSignal: Winning category, confidence and emotional tone
        """
        normalized = normalize_text(text or "")
        language = (language or "english").lower()

        best_confidence = 0.0
        best_category = None
        best_keywords: list[str] = []

        if normalized:
            urgency_score = min(len(_matches(normalized, self.lexicon.urgency_words)) * URGENCY_WEIGHT, URGENCY_CAP)

            for category in self.lexicon.categories:
                matched = _matches(normalized, self.lexicon.keywords_for(category, language))
                if not matched:
                    continue

                context_hits = _matches(normalized, self.lexicon.context.get(category, ()))
                context_score = min(len(context_hits) * CONTEXT_WEIGHT, CONTEXT_CAP)
                confidence = round(min(len(matched) * KEYWORD_WEIGHT + context_score + urgency_score, 1.0), 6)

                # Ties keep the earlier category
                if confidence > best_confidence:
                    best_confidence = confidence
                    best_category = category
                    best_keywords = matched

        return TextSignal(
            language=language,
            is_emergency=best_confidence > self.threshold,
            category=best_category,
            confidence=best_confidence,
            matched_keywords=tuple(best_keywords),
            emotional_tone=self.emotional_tone(normalized),
        )

    def emotional_tone(self, normalized_text: str) -> EmotionalTone:
        """Classify tone with priority panicked > angry > stressed > calm."""
        panic = len(_matches(normalized_text, self.lexicon.panic_words))
        anger = len(_matches(normalized_text, self.lexicon.anger_words))
        stress = len(_matches(normalized_text, self.lexicon.stress_words))

        if panic >= 2:
            return EmotionalTone.PANICKED
        if anger >= 2:
            return EmotionalTone.ANGRY
        if stress >= 1 or panic >= 1:
            return EmotionalTone.STRESSED
        return EmotionalTone.CALM


class TextAnalyzer:
    """
    Produces text signals, preferring an optional external classifier.

    The keyword scorer is registered as the classifier's fallback, so a
    failing or missing classifier never leaves the pipeline without a
    text signal.
    """

    COMPONENT = "emergency_classifier"

    def __init__(
        self,
        scorer: Optional[LexicalEmergencyScorer] = None,
        classifier: Optional[EmergencyClassifier] = None,
        degradation: Optional[DegradationManager] = None,
    ):
        self.scorer = scorer or LexicalEmergencyScorer()
        self.classifier = classifier
        self.degradation = degradation or DegradationManager()
        if classifier is not None:
            self.degradation.register_fallback(self.COMPONENT, self._fallback)

    def _fallback(self, text: str, language: str) -> TextSignal:
        return replace(self.scorer.score_text(text, language), degraded=True)

    async def analyze(self, text: str, language: str) -> TextSignal:
        """Score text with the classifier if configured, else the keyword scorer."""
        if self.classifier is None:
            return self.scorer.score_text(text, language)
        return await self.degradation.execute_with_fallback(
            self.COMPONENT, self.classifier.classify, text, language
        )
