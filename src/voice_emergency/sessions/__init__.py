"""Voice session lifecycle, storage and retention."""

from .manager import CreatedSession
from .manager import VoiceSessionManager
from .models import EmergencyEvent
from .models import RetentionPolicy
from .models import SessionState
from .models import SessionSummary
from .models import TerminationReason
from .models import TranscriptionRecord
from .models import VoiceSession
from .retention import RetentionSweeper
from .retention import SweepReport
from .store import FileEventLog
from .store import InMemoryEventLog
from .store import InMemorySessionStore
from .store import SessionRegistry

__all__ = [
    "VoiceSessionManager",
    "CreatedSession",
    "VoiceSession",
    "SessionState",
    "SessionSummary",
    "TerminationReason",
    "TranscriptionRecord",
    "EmergencyEvent",
    "RetentionPolicy",
    "RetentionSweeper",
    "SweepReport",
    "SessionRegistry",
    "InMemorySessionStore",
    "InMemoryEventLog",
    "FileEventLog",
]
