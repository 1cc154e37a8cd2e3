"""
Session data model.

VoiceSession is mutable and owned by exactly one writer at a time; events,
transcription records and summaries are immutable once created.
"""

import uuid
from dataclasses import asdict
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from enum import Enum
from typing import Any, Optional

from voice_emergency.core.settings import SessionConfig


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionState(str, Enum):
    CREATED = "created"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"
    ERROR = "error"


TERMINAL_STATES = frozenset({SessionState.ENDED, SessionState.ERROR})

ALLOWED_TRANSITIONS = {
    SessionState.CREATED: frozenset({SessionState.ACTIVE, SessionState.ENDED, SessionState.ERROR}),
    SessionState.ACTIVE: frozenset({SessionState.PAUSED, SessionState.ENDED, SessionState.ERROR}),
    SessionState.PAUSED: frozenset({SessionState.ACTIVE, SessionState.ENDED, SessionState.ERROR}),
    SessionState.ENDED: frozenset(),
    SessionState.ERROR: frozenset(),
}


class TerminationReason(str, Enum):
    CLIENT_ENDED = "client_ended"
    MAX_DURATION_EXCEEDED = "max_duration_exceeded"


@dataclass(frozen=True)
class TranscriptionRecord:
    text: str
    confidence: float
    language: str
    timestamp: datetime
    is_final: bool = True


@dataclass(frozen=True)
class EmergencyEvent:
    """A detected emergency. Append-only within its session."""

    id: str
    session_id: str
    category: Optional[str]
    confidence: float
    urgency_level: str
    notifications_sent: int
    occurred_at: datetime
    recommendation: Optional[str] = None
    degraded: bool = False

    @classmethod
    def from_assessment(cls, session_id: str, assessment, occurred_at: datetime) -> "EmergencyEvent":
        """Build an event from an EmergencyAssessment, before any notification."""
        return cls(
            id=str(uuid.uuid4()),
            session_id=session_id,
            category=assessment.category,
            confidence=assessment.confidence,
            urgency_level=assessment.urgency_level.value,
            notifications_sent=0,
            occurred_at=occurred_at,
            recommendation=assessment.recommendation.value,
            degraded=assessment.degraded,
        )


@dataclass(frozen=True)
class RetentionPolicy:
    """Retention deadlines assigned at session creation."""

    audio_retention_days: int
    transcript_retention_days: int
    audio_retention_at: datetime
    transcript_retention_at: datetime

    @classmethod
    def for_config(cls, config: SessionConfig, started_at: datetime) -> "RetentionPolicy":
        return cls(
            audio_retention_days=config.audio_retention_days,
            transcript_retention_days=config.retention_days,
            audio_retention_at=started_at + timedelta(days=config.audio_retention_days),
            transcript_retention_at=started_at + timedelta(days=config.retention_days),
        )


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    user_id: str
    language: str
    started_at: datetime
    ended_at: datetime
    duration_ms: int
    total_transcriptions: int
    emergency_detected: bool
    emergency_events: int
    conversation_summary: str
    action_items: tuple[str, ...]
    termination_reason: TerminationReason

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["ended_at"] = self.ended_at.isoformat()
        data["action_items"] = list(self.action_items)
        data["termination_reason"] = self.termination_reason.value
        return data


@dataclass
class SessionMetrics:
    total_transcriptions: int = 0
    transcription_accuracy: float = 0.0
    emergencies_detected: int = 0
    notifications_sent: int = 0
    audio_chunks: int = 0
    audio_bytes: int = 0
    dropped_out_of_order: int = 0
    dropped_duplicate: int = 0
    dropped_backpressure: int = 0
    input_errors: int = 0
    transcription_failures: int = 0
    degraded_evaluations: int = 0
    slow_evaluations: int = 0
    max_evaluation_ms: float = 0.0

    def record_accuracy(self, confidence: float) -> None:
        """Fold a transcription confidence into the running average."""
        n = self.total_transcriptions
        self.transcription_accuracy = (self.transcription_accuracy * (n - 1) + confidence) / n if n else 0.0


@dataclass
class VoiceSession:
    id: str
    user_id: str
    config: SessionConfig
    started_at: datetime
    audio_retention_at: datetime
    transcript_retention_at: datetime
    state: SessionState = SessionState.CREATED
    transcriptions: list[TranscriptionRecord] = field(default_factory=list)
    emergency_events: list[EmergencyEvent] = field(default_factory=list)
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    termination_reason: Optional[TerminationReason] = None
    summary: Optional[SessionSummary] = None
    persisted_transcriptions: int = 0
    audio_data_deleted: bool = False
    transcript_data_deleted: bool = False

    @property
    def language(self) -> str:
        return self.config.language

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def retention_policy(self) -> RetentionPolicy:
        return RetentionPolicy(
            audio_retention_days=self.config.audio_retention_days,
            transcript_retention_days=self.config.retention_days,
            audio_retention_at=self.audio_retention_at,
            transcript_retention_at=self.transcript_retention_at,
        )

    def elapsed_ms(self, now: datetime) -> int:
        return int((now - self.started_at).total_seconds() * 1000)
