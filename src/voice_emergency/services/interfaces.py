"""
Interfaces of the external collaborators the pipeline consumes.

Speech-to-text, notification delivery and the optional language-model
classifier live outside this package; they are reached only through the
protocols defined here.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from voice_emergency.detection.text_scorer import TextSignal
    from voice_emergency.sessions.models import EmergencyEvent


@dataclass(frozen=True)
class TranscriptionResult:
    """Text returned by a transcription provider."""

    text: str
    language: str
    confidence: float


@dataclass(frozen=True)
class EmergencyContact:
    """A person to notify when an emergency is detected."""

    name: str
    phone: str
    relationship: str = ""


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of notifying a single contact."""

    contact: EmergencyContact
    delivered: bool
    error: str | None = None


@runtime_checkable
class TranscriptionProvider(Protocol):
    """Speech-to-text service. May fail or time out."""

    async def transcribe(self, audio: bytes, language_hint: str) -> TranscriptionResult: ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Delivers an emergency notification to a list of contacts."""

    async def notify(
        self, event: "EmergencyEvent", contacts: list[EmergencyContact]
    ) -> list[DeliveryResult]: ...


@runtime_checkable
class EmergencyClassifier(Protocol):
    """Optional upstream classifier tried before the keyword scorer."""

    async def classify(self, text: str, language: str) -> "TextSignal": ...
