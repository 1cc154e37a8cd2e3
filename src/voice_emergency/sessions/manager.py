"""
Voice session manager.

Owns the session state machine, transcription and emergency-event logs,
metrics and retention deadlines. All mutations of a session happen under
that session's lock, so there is a single writer per session even when the
ingress worker, alert deliveries and the retention sweeper act on it.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError
from tenacity import AsyncRetrying
from tenacity import before_sleep_log
from tenacity import stop_after_attempt
from tenacity import wait_exponential

from voice_emergency.core.logging import get_emergency_logger
from voice_emergency.core.settings import SessionConfig
from voice_emergency.core.settings import Settings
from voice_emergency.services.errors import InputError
from voice_emergency.services.errors import InvalidSessionState
from voice_emergency.services.errors import RetentionViolation
from voice_emergency.services.errors import SessionNotFound
from voice_emergency.services.errors import SessionPersistenceError
from voice_emergency.sessions.models import ALLOWED_TRANSITIONS
from voice_emergency.sessions.models import EmergencyEvent
from voice_emergency.sessions.models import RetentionPolicy
from voice_emergency.sessions.models import SessionState
from voice_emergency.sessions.models import SessionSummary
from voice_emergency.sessions.models import TerminationReason
from voice_emergency.sessions.models import TranscriptionRecord
from voice_emergency.sessions.models import VoiceSession
from voice_emergency.sessions.models import utc_now
from voice_emergency.sessions.store import EventLog
from voice_emergency.sessions.store import InMemoryEventLog
from voice_emergency.sessions.store import InMemorySessionStore
from voice_emergency.sessions.store import SessionRegistry
from voice_emergency.sessions.store import SessionStore
from voice_emergency.sessions.summarizer import extract_action_items
from voice_emergency.sessions.summarizer import summarize_conversation

logger = logging.getLogger(__name__)
emergency_logger = get_emergency_logger()


@dataclass(frozen=True)
class CreatedSession:
    session_id: str
    retention_policy: RetentionPolicy


class VoiceSessionManager:
    """
    Session lifecycle and per-session records.

    Active sessions live in the registry; every session record, active or
    ended, lives in the store until the retention sweeper deletes it.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[SessionStore] = None,
        event_log: Optional[EventLog] = None,
        registry: Optional[SessionRegistry] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings = settings or Settings()
        self.store = store or InMemorySessionStore()
        self.event_log = event_log or InMemoryEventLog()
        self.registry = registry or SessionRegistry()
        self.clock = clock
        self._locks: dict[str, asyncio.Lock] = {}

    def session_lock(self, session_id: str) -> asyncio.Lock:
        """The lock serializing all writes to one session."""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    async def _audit(self, action: str, session_id: str, **details: Any) -> None:
        try:
            await self.event_log.append(action, session_id, **details)
        except OSError as e:
            logger.error(f"Failed to write audit entry {action} for session {session_id}: {e}")

    async def create_session(
        self, user_id: str, config: SessionConfig | dict[str, Any] | None = None
    ) -> CreatedSession:
        """
        Create a session in the created state.

        Args:
            user_id: Owner of the session
            config: SessionConfig or a dict of options; defaults come from
                the service settings

        Returns:
            CreatedSession: New session id and its retention policy

        Raises:
            InputError: If the configuration is invalid
        """
        if config is None:
            config = self.settings.session_defaults
        elif isinstance(config, dict):
            try:
                base = self.settings.session_defaults.model_dump()
                base.update(config)
                config = SessionConfig(**base)
            except ValidationError as e:
                raise InputError(f"Invalid session configuration: {e}") from e

        started_at = self.clock()
        policy = RetentionPolicy.for_config(config, started_at)
        session = VoiceSession(
            id=str(uuid.uuid4()),
            user_id=user_id,
            config=config,
            started_at=started_at,
            audio_retention_at=policy.audio_retention_at,
            transcript_retention_at=policy.transcript_retention_at,
        )

        await self.store.save(session)
        await self.registry.add(session)
        await self._audit(
            "session_created",
            session.id,
            user_id=user_id,
            language=config.language,
            audio_retention_at=policy.audio_retention_at.isoformat(),
            transcript_retention_at=policy.transcript_retention_at.isoformat(),
        )

        logger.info(f"Voice session {session.id} created for user {user_id} ({config.language})")
        return CreatedSession(session_id=session.id, retention_policy=policy)

    async def get_session(self, session_id: str) -> VoiceSession:
        """Get a session record, active or ended."""
        session = await self.registry.get(session_id)
        if session is None:
            session = await self.store.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def get_active_session(self, session_id: str) -> VoiceSession:
        """Get an active session, raising SessionNotFound if it has ended."""
        session = await self.registry.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    async def get_user_sessions(self, user_id: str) -> list[str]:
        return await self.registry.user_session_ids(user_id)

    async def active_session_ids(self) -> list[str]:
        return await self.registry.session_ids()

    async def stored_session_ids(self) -> list[str]:
        return await self.store.session_ids()

    def _transition(self, session: VoiceSession, new_state: SessionState) -> None:
        if new_state == session.state:
            return
        if new_state not in ALLOWED_TRANSITIONS[session.state]:
            raise InvalidSessionState(
                f"Cannot move session from {session.state.value} to {new_state.value}",
                session_id=session.id,
            )
        session.state = new_state

    async def update_status(self, session_id: str, new_state: SessionState | str) -> VoiceSession:
        """
        Apply a validated state transition.

        Ending goes through end_session so the summary and final batch are
        produced; moving to error removes the session from the registry.
        """
        new_state = SessionState(new_state)
        if new_state == SessionState.ENDED:
            raise InvalidSessionState("Use end_session to end a session", session_id=session_id)

        session = await self.get_active_session(session_id)
        async with self.session_lock(session_id):
            old_state = session.state
            self._transition(session, new_state)
            await self.store.save(session)
            if new_state == SessionState.ERROR:
                await self.registry.remove(session_id)

        if old_state != new_state:
            await self._audit("status_changed", session_id, old=old_state.value, new=new_state.value)
            logger.info(f"Session {session_id} status {old_state.value} -> {new_state.value}")
        return session

    async def activate(self, session_id: str) -> None:
        """Move a created or paused session to active."""
        session = await self.get_active_session(session_id)
        if session.state != SessionState.ACTIVE:
            await self.update_status(session_id, SessionState.ACTIVE)

    async def record_transcription(
        self,
        session_id: str,
        text: str,
        confidence: float,
        language: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        is_final: bool = True,
    ) -> TranscriptionRecord:
        """Append a transcription to an active session."""
        session = await self.get_active_session(session_id)
        async with self.session_lock(session_id):
            if session.is_terminal:
                raise InvalidSessionState(
                    f"Cannot record transcription in {session.state.value} session", session_id=session_id
                )
            record = TranscriptionRecord(
                text=text,
                confidence=confidence,
                language=language or session.language,
                timestamp=timestamp or self.clock(),
                is_final=is_final,
            )
            session.transcriptions.append(record)
            session.metrics.total_transcriptions += 1
            session.metrics.record_accuracy(confidence)

            if session.config.auto_save:
                await self.store.append_transcriptions(session_id, [record])
                session.persisted_transcriptions = len(session.transcriptions)

        logger.debug(f"Session {session_id}: recorded transcription ({len(text)} chars, confidence {confidence:.2f})")
        return record

    async def record_audio(self, session_id: str, data: bytes) -> None:
        """Count accepted audio and, with auto_save, keep the payload."""
        session = await self.get_active_session(session_id)
        async with self.session_lock(session_id):
            session.metrics.audio_chunks += 1
            session.metrics.audio_bytes += len(data)
            if session.config.auto_save and not session.audio_data_deleted:
                await self.store.append_audio(session_id, data)

    async def record_emergency_event(self, session_id: str, event: EmergencyEvent) -> None:
        """Append an emergency event to the session's log."""
        session = await self.get_active_session(session_id)
        async with self.session_lock(session_id):
            if session.is_terminal:
                raise InvalidSessionState(
                    f"Cannot record emergency in {session.state.value} session", session_id=session_id
                )
            session.emergency_events.append(event)
            session.metrics.emergencies_detected += 1
            session.metrics.notifications_sent += event.notifications_sent

        await self._audit(
            "emergency_event",
            session_id,
            event_id=event.id,
            category=event.category,
            confidence=event.confidence,
            urgency_level=event.urgency_level,
            notifications_sent=event.notifications_sent,
        )
        emergency_logger.warning(
            f"Emergency event {event.id} recorded for session {session_id}: category={event.category} "
            f"urgency={event.urgency_level} confidence={event.confidence:.3f} "
            f"notifications_sent={event.notifications_sent}"
        )

    async def end_session(
        self,
        session_id: str,
        reason: TerminationReason = TerminationReason.CLIENT_ENDED,
        ended_at: Optional[datetime] = None,
    ) -> SessionSummary:
        """
        End a session and return its summary.

        Args:
            session_id: Session to end
            reason: Why the session ended
            ended_at: End time, defaults to the manager's clock

        Idempotent: a second call returns the summary produced by the first
        without recomputing duration or persisting again.

        Raises:
            SessionNotFound: If the session does not exist
            InvalidSessionState: If the session already failed
            SessionPersistenceError: If the final batch could not be stored
                after retries; the session is then marked error
        """
        session = await self.get_session(session_id)

        async with self.session_lock(session_id):
            if session.summary is not None:
                return session.summary
            if session.state == SessionState.ERROR:
                raise InvalidSessionState(f"Session {session_id} is in error state", session_id=session_id)

            ended_at = ended_at or self.clock()
            duration_ms = max(session.elapsed_ms(ended_at), 0)

            summary = SessionSummary(
                session_id=session.id,
                user_id=session.user_id,
                language=session.language,
                started_at=session.started_at,
                ended_at=ended_at,
                duration_ms=duration_ms,
                total_transcriptions=len(session.transcriptions),
                emergency_detected=bool(session.emergency_events),
                emergency_events=len(session.emergency_events),
                conversation_summary=summarize_conversation(session.transcriptions),
                action_items=extract_action_items(session.transcriptions),
                termination_reason=reason,
            )

            self._transition(session, SessionState.ENDED)
            session.ended_at = ended_at
            session.duration_ms = duration_ms
            session.termination_reason = reason
            session.summary = summary

            try:
                async for attempt in self._retrying():
                    with attempt:
                        await self._persist_final(session)
            except Exception as e:
                session.state = SessionState.ERROR
                session.summary = None
                await self.registry.remove(session_id)
                logger.critical(f"Failed to persist session {session_id} after retries: {e}")
                await self._audit("session_error", session_id, error=str(e))
                raise SessionPersistenceError(
                    f"Could not persist session {session_id}", session_id=session_id
                ) from e

            await self.registry.remove(session_id)

        await self._audit(
            "session_ended",
            session_id,
            reason=reason.value,
            duration_ms=duration_ms,
            transcriptions=summary.total_transcriptions,
            emergency_events=summary.emergency_events,
        )
        if reason == TerminationReason.MAX_DURATION_EXCEEDED:
            logger.warning(
                f"Session {session_id} force-ended: {reason.value} after {duration_ms}ms "
                f"(max {session.config.max_session_duration_ms}ms)"
            )
        else:
            logger.info(f"Voice session {session_id} ended after {round(duration_ms / 1000)}s")
        return summary

    async def force_end_session(self, session_id: str, ended_at: Optional[datetime] = None) -> SessionSummary:
        """End a session that exceeded its maximum duration."""
        return await self.end_session(
            session_id, reason=TerminationReason.MAX_DURATION_EXCEEDED, ended_at=ended_at
        )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self.settings.end_session_max_retries + 1),
            wait=wait_exponential(multiplier=self.settings.retry_delay_s, max=self.settings.retry_max_delay_s),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )

    async def _persist_final(self, session: VoiceSession) -> None:
        """Persist transcriptions not yet stored, then the session record."""
        pending = session.transcriptions[session.persisted_transcriptions:]
        if pending and not session.transcript_data_deleted:
            await self.store.append_transcriptions(session.id, list(pending))
            session.persisted_transcriptions = len(session.transcriptions)
        await self.store.save(session)

    async def get_transcript(self, session_id: str) -> list[TranscriptionRecord]:
        """
        Get the stored transcript of a session.

        Raises:
            RetentionViolation: If the transcript was purged
        """
        session = await self.get_session(session_id)
        if session.transcript_data_deleted:
            raise RetentionViolation(f"Transcript of session {session_id} was purged", session_id=session_id)
        stored = await self.store.get_transcriptions(session_id)
        return stored or list(session.transcriptions)

    async def get_audio(self, session_id: str) -> list[bytes]:
        """
        Get stored audio payloads of a session.

        Raises:
            RetentionViolation: If the audio was purged
        """
        session = await self.get_session(session_id)
        if session.audio_data_deleted:
            raise RetentionViolation(f"Audio of session {session_id} was purged", session_id=session_id)
        return await self.store.get_audio(session_id)

    async def purge_audio(self, session_id: str) -> bool:
        """Delete audio payloads; returns False if already purged."""
        session = await self.get_session(session_id)
        async with self.session_lock(session_id):
            if session.audio_data_deleted:
                return False
            await self.store.purge_audio(session_id)
            session.audio_data_deleted = True
            await self.store.save(session)
        await self._audit("audio_purged", session_id)
        logger.info(f"Purged audio for session {session_id}")
        return True

    async def purge_transcripts(self, session_id: str) -> bool:
        """Delete transcript content; returns False if already purged."""
        session = await self.get_session(session_id)
        async with self.session_lock(session_id):
            if session.transcript_data_deleted:
                return False
            await self.store.purge_transcriptions(session_id)
            session.transcriptions.clear()
            session.transcript_data_deleted = True
            await self.store.save(session)
        await self._audit("transcript_purged", session_id)
        logger.info(f"Purged transcript for session {session_id}")
        return True

    async def delete_session(self, session_id: str) -> bool:
        """Delete a session record whose audio and transcript are both purged."""
        session = await self.get_session(session_id)
        async with self.session_lock(session_id):
            if not (session.audio_data_deleted and session.transcript_data_deleted):
                raise RetentionViolation(
                    f"Session {session_id} still holds data within its retention window",
                    session_id=session_id,
                )
            await self.registry.remove(session_id)
            deleted = await self.store.delete(session_id)
        self._locks.pop(session_id, None)
        await self._audit("session_deleted", session_id)
        logger.info(f"Deleted session record {session_id}")
        return deleted
