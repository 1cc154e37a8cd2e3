"""
Session ingress and per-session workers.

Each active session gets one SessionWorker: an asyncio task consuming a
bounded queue of audio and transcript events in arrival order. The worker
is the only writer of its session's detection state; transcription and
alert delivery run as side tasks so feature extraction never waits on the
network.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from voice_emergency.core.settings import SessionConfig
from voice_emergency.core.settings import Settings
from voice_emergency.detection.fusion import FusionEngine
from voice_emergency.detection.fusion import Recommendation
from voice_emergency.detection.streaming import DetectionState
from voice_emergency.detection.streaming import StreamingDecision
from voice_emergency.detection.streaming import StreamingDetectionController
from voice_emergency.detection.text_scorer import LexicalEmergencyScorer
from voice_emergency.detection.text_scorer import TextAnalyzer
from voice_emergency.pipeline.alerts import AlertDispatcher
from voice_emergency.services.constants import DEFAULTS
from voice_emergency.services.errors import ErrorHandler
from voice_emergency.services.errors import InputError
from voice_emergency.services.errors import InvalidSessionState
from voice_emergency.services.errors import SessionNotFound
from voice_emergency.services.errors import VoicePipelineError
from voice_emergency.services.interfaces import EmergencyClassifier
from voice_emergency.services.interfaces import EmergencyContact
from voice_emergency.services.interfaces import NotificationDispatcher
from voice_emergency.services.interfaces import TranscriptionProvider
from voice_emergency.sessions.manager import VoiceSessionManager
from voice_emergency.sessions.models import EmergencyEvent
from voice_emergency.sessions.models import SessionState
from voice_emergency.sessions.models import SessionSummary
from voice_emergency.sessions.models import TerminationReason
from voice_emergency.sessions.models import VoiceSession
from voice_emergency.sessions.retention import RetentionSweeper
from voice_emergency.sessions.store import FileEventLog
from voice_emergency.voice.audio_buffer import AudioChunk
from voice_emergency.voice.audio_buffer import AudioFrameBuffer
from voice_emergency.voice.audio_buffer import validate_chunk
from voice_emergency.voice.features import AcousticFeatureExtractor
from voice_emergency.voice.transcription import TranscriptionClient

logger = logging.getLogger(__name__)

# Trailing silence that closes a turn
TURN_SILENCE_MS = 1500

_NOTIFY_ON = (Recommendation.ALERT, Recommendation.IMMEDIATE_RESPONSE)


@dataclass(frozen=True)
class AudioEvent:
    chunk: AudioChunk


@dataclass(frozen=True)
class TranscriptEvent:
    text: str
    is_final: bool
    confidence: float
    language: Optional[str] = None
    from_provider: bool = False


@dataclass(frozen=True)
class TranscriptionFailed:
    """The provider returned nothing for the last utterance."""


SessionEvent = Union[AudioEvent, TranscriptEvent, TranscriptionFailed]


class SessionWorker:
    """Single writer of one session's streaming state."""

    def __init__(
        self,
        session: VoiceSession,
        ingress: "SessionIngress",
        contacts: Optional[list[EmergencyContact]] = None,
    ):
        self.session = session
        self.session_id = session.id
        self.config: SessionConfig = session.config
        self.ingress = ingress
        self.manager = ingress.manager
        self.contacts = list(contacts or [])

        settings = ingress.settings
        self.queue: asyncio.Queue[SessionEvent] = asyncio.Queue(maxsize=settings.queue_size)
        self.buffer = AudioFrameBuffer(self.session_id, window_ms=self.config.analysis_window_ms)
        self.controller = StreamingDetectionController(
            self.session_id, self.config, ingress.fusion, ingress.extractor, ingress.text_analyzer
        )
        self.transcribe_every_ms = settings.transcribe_every_ms
        self.chunk_interval_ms = settings.chunk_interval_ms

        self.task: Optional[asyncio.Task] = None
        self._transcription_task: Optional[asyncio.Task] = None
        self._alert_tasks: set[asyncio.Task] = set()
        self.last_decision: Optional[StreamingDecision] = None

    def start(self) -> None:
        self.task = asyncio.create_task(self._run(), name=f"session-worker-{self.session_id}")

    def offer(self, event: SessionEvent) -> bool:
        """Enqueue without waiting; False when the queue is full."""
        try:
            self.queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            return False

    async def _run(self) -> None:
        while True:
            event = await self.queue.get()
            try:
                await self._handle(event)
            except (SessionNotFound, InvalidSessionState) as e:
                logger.warning(f"Session {self.session_id}: dropping event, session no longer writable: {e}")
            except Exception as e:
                logger.error(f"Session {self.session_id}: error processing {type(event).__name__}: {e}")
            finally:
                self.queue.task_done()

    async def _handle(self, event: SessionEvent) -> None:
        if isinstance(event, AudioEvent):
            await self._handle_audio(event.chunk)
        elif isinstance(event, TranscriptEvent):
            await self._handle_transcript(event)
        elif isinstance(event, TranscriptionFailed):
            self.controller.on_text_unavailable()
            async with self.manager.session_lock(self.session_id):
                self.session.metrics.transcription_failures += 1

    async def _handle_audio(self, chunk: AudioChunk) -> None:
        try:
            accepted = self.buffer.append(chunk)
        except InputError as e:
            logger.warning(f"Session {self.session_id}: rejected chunk {chunk.sequence_number}: {e}")
            async with self.manager.session_lock(self.session_id):
                self.session.metrics.input_errors += 1
            return

        if not accepted:
            async with self.manager.session_lock(self.session_id):
                self.session.metrics.dropped_out_of_order = self.buffer.metrics["dropped_out_of_order"]
                self.session.metrics.dropped_duplicate = self.buffer.metrics["dropped_duplicate"]
            return

        await self.manager.record_audio(self.session_id, chunk.data)

        if self.config.enable_emergency_detection:
            decision = self.controller.on_audio(self.buffer.window(), self.buffer.sample_rate)
            await self._after_decision(decision)
            self._close_turn_on_silence()

        self._maybe_transcribe()

    async def _handle_transcript(self, event: TranscriptEvent) -> None:
        if not event.text.strip():
            return

        if event.is_final or event.from_provider:
            await self.manager.record_transcription(
                self.session_id, event.text, event.confidence, language=event.language
            )

        if self.config.enable_emergency_detection:
            decision = await self.controller.on_transcript(event.text, is_final=event.is_final)
            await self._after_decision(decision)

    def _close_turn_on_silence(self) -> None:
        if self.controller.state == DetectionState.IDLE or self.buffer.duration_ms < TURN_SILENCE_MS:
            return
        tail = self.buffer.window(TURN_SILENCE_MS)
        if not self.ingress.extractor.detect_voice_activity(tail, self.buffer.sample_rate).has_voice:
            self.controller.reset_turn()

    def _maybe_transcribe(self) -> None:
        if not (self.config.real_time_transcription and self.ingress.transcription):
            return
        if self._transcription_task is not None and not self._transcription_task.done():
            return
        if self.buffer.pending_ms < self.transcribe_every_ms:
            return
        audio = self.buffer.drain_pending()
        self._transcription_task = asyncio.create_task(self._transcribe(audio))

    async def _transcribe(self, audio: bytes) -> None:
        result = await self.ingress.transcription.transcribe(audio, self.config.language)
        if result is None:
            event: SessionEvent = TranscriptionFailed()
        else:
            event = TranscriptEvent(
                text=result.text,
                is_final=False,
                confidence=result.confidence,
                language=result.language,
                from_provider=True,
            )
        if not self.offer(event):
            logger.warning(f"Session {self.session_id}: queue full, transcription result dropped")
            async with self.manager.session_lock(self.session_id):
                self.session.metrics.dropped_backpressure += 1

    async def _after_decision(self, decision: StreamingDecision) -> None:
        self.last_decision = decision
        async with self.manager.session_lock(self.session_id):
            metrics = self.session.metrics
            metrics.max_evaluation_ms = max(metrics.max_evaluation_ms, decision.latency_ms)
            if decision.assessment.degraded:
                metrics.degraded_evaluations += 1
            if decision.latency_ms > self.chunk_interval_ms:
                metrics.slow_evaluations += 1
                logger.warning(
                    f"Session {self.session_id}: evaluation took {decision.latency_ms:.0f}ms "
                    f"(chunk interval {self.chunk_interval_ms}ms)"
                )

        if decision.should_alert:
            event = EmergencyEvent.from_assessment(self.session_id, decision.assessment, self.manager.clock())
            task = asyncio.create_task(self._deliver(event))
            self._alert_tasks.add(task)
            task.add_done_callback(self._alert_tasks.discard)

    async def _deliver(self, event: EmergencyEvent) -> None:
        dispatcher = self.ingress.alert_dispatcher
        try:
            if dispatcher is not None and event.recommendation in {r.value for r in _NOTIFY_ON}:
                event, _ = await dispatcher.dispatch(event, self.contacts)
        finally:
            # Recorded even when delivery is cancelled at stop
            try:
                await self.manager.record_emergency_event(self.session_id, event)
            except VoicePipelineError as e:
                logger.error(f"Session {self.session_id}: could not record emergency {event.id}: {e}")

    async def stop(self, drain_timeout: float = DEFAULTS["alert_drain_timeout"]) -> None:
        """Cancel processing, then wait (bounded) for alert deliveries."""
        for task in (self._transcription_task, self.task):
            if task is not None and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        if self._alert_tasks:
            done, pending = await asyncio.wait(set(self._alert_tasks), timeout=drain_timeout)
            for task in pending:
                logger.error(f"Session {self.session_id}: alert delivery did not finish in {drain_timeout}s")
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)


class SessionIngress:
    """
    Entry point used by transport layers.

    Starts sessions, routes pushed audio and transcripts to the session's
    worker, and ends sessions.
    """

    def __init__(
        self,
        manager: Optional[VoiceSessionManager] = None,
        settings: Optional[Settings] = None,
        transcription: Optional[TranscriptionClient] = None,
        alert_dispatcher: Optional[AlertDispatcher] = None,
        text_analyzer: Optional[TextAnalyzer] = None,
        extractor: Optional[AcousticFeatureExtractor] = None,
        fusion: Optional[FusionEngine] = None,
    ):
        self.settings = settings or (manager.settings if manager else Settings())
        self.manager = manager or VoiceSessionManager(settings=self.settings)
        self.transcription = transcription
        self.alert_dispatcher = alert_dispatcher
        self.text_analyzer = text_analyzer or TextAnalyzer(
            LexicalEmergencyScorer(threshold=self.settings.detection.text_threshold)
        )
        self.extractor = extractor or AcousticFeatureExtractor()
        self.fusion = fusion or FusionEngine(self.settings.detection)
        self.error_handler = ErrorHandler()
        self.sweeper = RetentionSweeper(self.manager, terminator=self.force_end_session)
        self._workers: dict[str, SessionWorker] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        provider: Optional[TranscriptionProvider] = None,
        notifier: Optional[NotificationDispatcher] = None,
        classifier: Optional[EmergencyClassifier] = None,
    ) -> "SessionIngress":
        """Wire a pipeline from settings and external collaborators."""
        event_log = FileEventLog(settings.event_log_path) if settings.event_log_path else None
        manager = VoiceSessionManager(settings=settings, event_log=event_log)
        transcription = (
            TranscriptionClient(provider, timeout=settings.transcription_timeout_s) if provider else None
        )
        alerts = (
            AlertDispatcher(
                notifier,
                rate_limit=settings.notification_rate_limit,
                period=settings.notification_period_s,
                timeout=settings.notification_timeout_s,
            )
            if notifier
            else None
        )
        analyzer = TextAnalyzer(
            LexicalEmergencyScorer(threshold=settings.detection.text_threshold), classifier=classifier
        )
        return cls(
            manager=manager,
            settings=settings,
            transcription=transcription,
            alert_dispatcher=alerts,
            text_analyzer=analyzer,
        )

    def get_worker(self, session_id: str) -> SessionWorker:
        worker = self._workers.get(session_id)
        if worker is None:
            raise SessionNotFound(session_id)
        return worker

    async def start(self) -> None:
        """Start background retention sweeping."""
        await self.sweeper.start()

    async def start_session(
        self,
        user_id: str,
        config: SessionConfig | dict[str, Any] | None = None,
        contacts: Optional[list[EmergencyContact]] = None,
    ) -> str:
        """Create a session and its worker; returns the session id."""
        created = await self.manager.create_session(user_id, config)
        session = await self.manager.get_active_session(created.session_id)
        worker = SessionWorker(session, self, contacts)
        self._workers[session.id] = worker
        worker.start()
        return session.id

    async def _accepting(self, session_id: str) -> SessionWorker:
        worker = self.get_worker(session_id)
        session = worker.session
        if session.state == SessionState.CREATED:
            await self.manager.activate(session_id)
        elif session.state != SessionState.ACTIVE:
            raise InvalidSessionState(
                f"Session {session_id} is {session.state.value}, not accepting input", session_id=session_id
            )
        return worker

    async def _enqueue(self, worker: SessionWorker, event: SessionEvent, label: str) -> bool:
        if worker.offer(event):
            return True
        async with self.manager.session_lock(worker.session_id):
            worker.session.metrics.dropped_backpressure += 1
            dropped = worker.session.metrics.dropped_backpressure
        logger.warning(f"Session {worker.session_id}: queue full, dropped {label} (total dropped {dropped})")
        return False

    async def push_audio_chunk(self, session_id: str, chunk: AudioChunk) -> bool:
        """
        Queue an audio chunk for the session's worker.

        Returns:
            bool: False if the chunk was dropped because the queue is full

        Raises:
            SessionNotFound: Unknown or ended session
            InputError: Malformed chunk; the session continues
        """
        worker = self.get_worker(session_id)
        if chunk.session_id != session_id:
            raise InputError(f"Chunk belongs to session {chunk.session_id}", session_id=session_id)
        try:
            validate_chunk(chunk)
        except InputError:
            async with self.manager.session_lock(session_id):
                worker.session.metrics.input_errors += 1
            raise
        worker = await self._accepting(session_id)
        return await self._enqueue(worker, AudioEvent(chunk), f"chunk {chunk.sequence_number}")

    async def push_transcript(
        self,
        session_id: str,
        text: str,
        is_final: bool = False,
        confidence: float = 1.0,
        language: Optional[str] = None,
    ) -> bool:
        """Queue a partial or final transcript for the session's worker."""
        worker = await self._accepting(session_id)
        event = TranscriptEvent(text=text, is_final=is_final, confidence=confidence, language=language)
        return await self._enqueue(worker, event, "final transcript" if is_final else "partial transcript")

    async def drain(self, session_id: str) -> None:
        """Wait until every queued event of a session has been processed."""
        await self.get_worker(session_id).queue.join()

    async def end_session(
        self,
        session_id: str,
        reason: TerminationReason = TerminationReason.CLIENT_ENDED,
        ended_at: Optional[datetime] = None,
    ) -> SessionSummary:
        """Stop the session's worker and end the session. Idempotent."""
        worker = self._workers.pop(session_id, None)
        if worker is not None:
            await worker.stop()
        return await self.manager.end_session(session_id, reason=reason, ended_at=ended_at)

    async def safe_end_session(
        self, session_id: str, reason: TerminationReason = TerminationReason.CLIENT_ENDED
    ) -> dict[str, Any]:
        """
        End a session and build the response returned to the client.

        Failures are rendered by the ErrorHandler, so a persistence failure
        reaches the client as the generic retry message only.

        Returns:
            Dict[str, Any]: ``{"error": False, "summary": ...}`` or an error response
        """
        try:
            summary = await self.end_session(session_id, reason=reason)
        except Exception as e:
            return self.error_handler.handle_error(e, {"operation": "end_session", "session_id": session_id})
        return {"error": False, "summary": summary}

    async def force_end_session(self, session_id: str, ended_at: Optional[datetime] = None) -> SessionSummary:
        return await self.end_session(
            session_id, reason=TerminationReason.MAX_DURATION_EXCEEDED, ended_at=ended_at
        )

    async def shutdown(self) -> None:
        """Stop sweeping and end every session this ingress owns."""
        if self.sweeper.is_running:
            await self.sweeper.stop()
        for session_id in list(self._workers):
            try:
                await self.end_session(session_id)
            except VoicePipelineError as e:
                logger.error(f"Failed to end session {session_id} during shutdown: {e}")
        logger.info("Session ingress shut down")
