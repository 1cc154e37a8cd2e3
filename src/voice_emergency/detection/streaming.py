"""
Streaming emergency detection for a live session.

The controller re-evaluates the trailing audio window and the current
turn's transcript on every event and fires at most one alert per turn.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from voice_emergency.core.logging import get_emergency_logger
from voice_emergency.core.settings import SessionConfig
from voice_emergency.detection.fusion import EmergencyAssessment
from voice_emergency.detection.fusion import FusionEngine
from voice_emergency.detection.text_scorer import TextAnalyzer
from voice_emergency.detection.text_scorer import TextSignal
from voice_emergency.voice.features import NEUTRAL_FEATURES
from voice_emergency.voice.features import AcousticFeatureExtractor
from voice_emergency.voice.features import FeatureVector

logger = logging.getLogger(__name__)
emergency_logger = get_emergency_logger()


class DetectionState(str, Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"
    EVALUATED = "evaluated"
    ALERTED = "alerted"


@dataclass(frozen=True)
class StreamingDecision:
    """Result of one incremental evaluation."""

    assessment: EmergencyAssessment
    features: FeatureVector
    text_signal: Optional[TextSignal]
    should_alert: bool
    state: DetectionState
    latency_ms: float


class StreamingDetectionController:
    """
    Per-session detection state machine.

    States: idle -> accumulating -> evaluated -> (alerted | idle). An alert
    needs the fused confidence above the session's alert threshold and the
    text signal itself flagged as an emergency. Once alerted, the
    controller stays silent until the turn ends.
    """

    def __init__(
        self,
        session_id: str,
        config: SessionConfig,
        fusion: FusionEngine,
        extractor: AcousticFeatureExtractor,
        text_analyzer: TextAnalyzer,
    ):
        self.session_id = session_id
        self.config = config
        self.fusion = fusion
        self.extractor = extractor
        self.text_analyzer = text_analyzer

        self.state = DetectionState.IDLE
        self._text: Optional[TextSignal] = None
        self._features: FeatureVector = NEUTRAL_FEATURES
        self._alerted = False
        self.evaluations = 0
        self.alerts_fired = 0

    @property
    def alerted_this_turn(self) -> bool:
        return self._alerted

    def on_audio(self, window: np.ndarray, sample_rate: Optional[int] = None) -> StreamingDecision:
        """Recompute features over the trailing window and evaluate."""
        started = time.perf_counter()
        self._enter_accumulating()
        self._features = self.extractor.extract(window, sample_rate)
        return self._evaluate(started)

    async def on_transcript(self, text: str, is_final: bool = False) -> StreamingDecision:
        """
        Score a partial or final transcript and evaluate.

        A final transcript closes the turn after evaluation, which re-arms
        alerting.
        """
        started = time.perf_counter()
        self._enter_accumulating()
        self._text = await self.text_analyzer.analyze(text, self.config.language)
        decision = self._evaluate(started)
        if is_final:
            self.reset_turn()
        return decision

    def on_text_unavailable(self) -> None:
        """Drop the turn's text signal after a failed transcription."""
        self._text = None

    def reset_turn(self) -> None:
        """Return to idle for a new turn."""
        if self.state != DetectionState.IDLE:
            logger.debug(f"Session {self.session_id}: turn closed in state {self.state.value}")
        self.state = DetectionState.IDLE
        self._text = None
        self._alerted = False

    def _enter_accumulating(self) -> None:
        if self.state in (DetectionState.IDLE, DetectionState.EVALUATED):
            self.state = DetectionState.ACCUMULATING

    def _evaluate(self, started: float) -> StreamingDecision:
        assessment = self.fusion.fuse(self._text, self._features, self.config.fusion_weights)
        self.evaluations += 1

        should_alert = (
            not self._alerted
            and self._text is not None
            and self._text.is_emergency
            and assessment.confidence > self.config.alert_threshold
        )

        if should_alert:
            self._alerted = True
            self.alerts_fired += 1
            self.state = DetectionState.ALERTED
            emergency_logger.warning(
                f"Alert fired for session {self.session_id}: category={assessment.category} "
                f"confidence={assessment.confidence:.3f} urgency={assessment.urgency_level.value} "
                f"driven_by={assessment.dominant_modality}"
            )
        elif not self._alerted:
            self.state = DetectionState.EVALUATED

        return StreamingDecision(
            assessment=assessment,
            features=self._features,
            text_signal=self._text,
            should_alert=should_alert,
            state=self.state,
            latency_ms=(time.perf_counter() - started) * 1000,
        )
