"""
Transcription client wrapping the external speech-to-text provider.

Every call is bounded by a timeout and protected by a circuit breaker.
Failures never propagate: the caller receives None and treats the text
signal as absent for that utterance.
"""

import asyncio
import logging
from typing import Optional

from voice_emergency.services.circuit_breaker import CircuitBreaker
from voice_emergency.services.circuit_breaker import CircuitBreakerOpenError
from voice_emergency.services.constants import get_timeout
from voice_emergency.services.errors import ProviderTimeout
from voice_emergency.services.interfaces import TranscriptionProvider
from voice_emergency.services.interfaces import TranscriptionResult

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """Timeout- and circuit-breaker-guarded access to a TranscriptionProvider."""

    def __init__(
        self,
        provider: TranscriptionProvider,
        timeout: Optional[float] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self.provider = provider
        self.timeout = timeout if timeout is not None else get_timeout("transcription_timeout")
        self.circuit_breaker = circuit_breaker or CircuitBreaker("transcription")

        self.metrics = {
            "requests": 0,
            "successes": 0,
            "timeouts": 0,
            "failures": 0,
            "rejected_open_circuit": 0,
        }

    async def _call_provider(self, audio: bytes, language_hint: str) -> TranscriptionResult:
        try:
            return await asyncio.wait_for(
                self.provider.transcribe(audio, language_hint), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(f"Transcription provider did not answer within {self.timeout}s") from e

    async def transcribe(self, audio: bytes, language_hint: str) -> Optional[TranscriptionResult]:
        """
        Transcribe audio, returning None when the provider is unavailable.

        Args:
            audio: Canonical PCM16 mono audio
            language_hint: Expected conversation language

        Returns:
            Optional[TranscriptionResult]: The transcription, or None on
                timeout, provider failure or an open circuit
        """
        if not audio:
            return None

        self.metrics["requests"] += 1
        try:
            result = await self.circuit_breaker.execute(self._call_provider, audio, language_hint)
        except CircuitBreakerOpenError:
            self.metrics["rejected_open_circuit"] += 1
            logger.warning("Transcription skipped: provider circuit is open")
            return None
        except ProviderTimeout as e:
            self.metrics["timeouts"] += 1
            logger.warning(str(e))
            return None
        except Exception as e:
            self.metrics["failures"] += 1
            logger.error(f"Transcription provider failed: {e}")
            return None

        self.metrics["successes"] += 1
        if result is None or not result.text.strip():
            return None
        return result
