"""
Retention sweeper.

Periodically force-ends sessions that ran past their maximum duration and
enforces the two-stage data lifetime: raw audio is purged on its own,
usually shorter, deadline, transcripts on theirs, and a record is deleted
only once both are gone. Every step is idempotent, so an interrupted sweep
can simply be run again.
"""

import asyncio
import logging
from collections.abc import Awaitable
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime
from typing import Optional

from voice_emergency.services.errors import SessionNotFound
from voice_emergency.services.errors import VoicePipelineError
from voice_emergency.sessions.manager import VoiceSessionManager
from voice_emergency.sessions.models import SessionState
from voice_emergency.sessions.models import SessionSummary

logger = logging.getLogger(__name__)

_LIVE_STATES = (SessionState.CREATED, SessionState.ACTIVE, SessionState.PAUSED)


@dataclass
class SweepReport:
    """What one sweep did."""

    force_ended: list[str] = field(default_factory=list)
    audio_purged: list[str] = field(default_factory=list)
    transcripts_purged: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    errors: int = 0

    @property
    def changed(self) -> bool:
        return bool(self.force_ended or self.audio_purged or self.transcripts_purged or self.deleted)


class RetentionSweeper:
    """
    Background retention enforcement over a VoiceSessionManager.

    Args:
        manager: Session manager whose store is swept
        interval: Seconds between sweeps
        terminator: Coroutine called with the session id and the sweep's
            reference time to force-end a session; defaults to the
            manager's force_end_session. Ingress passes its own so the
            session worker is cancelled as well.
    """

    def __init__(
        self,
        manager: VoiceSessionManager,
        interval: Optional[float] = None,
        terminator: Optional[Callable[[str, datetime], Awaitable[SessionSummary]]] = None,
    ):
        self.manager = manager
        self.interval = interval if interval is not None else manager.settings.sweep_interval_s
        self.terminator = terminator or manager.force_end_session
        self.is_running = False
        self.sweep_task: Optional[asyncio.Task] = None
        self.last_report: Optional[SweepReport] = None

    async def start(self) -> None:
        """Start sweeping in the background."""
        if self.is_running:
            logger.warning("Retention sweeper is already running")
            return

        self.is_running = True
        self.sweep_task = asyncio.create_task(self._sweep_loop())
        logger.info(f"Retention sweeper started (interval {self.interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        if not self.is_running:
            logger.warning("Retention sweeper is not running")
            return

        self.is_running = False
        if self.sweep_task:
            self.sweep_task.cancel()
            try:
                await self.sweep_task
            except asyncio.CancelledError:
                pass
            self.sweep_task = None

        logger.info("Retention sweeper stopped")

    async def _sweep_loop(self) -> None:
        while self.is_running:
            try:
                self.last_report = await self.sweep()
            except Exception as e:
                logger.error(f"Error in retention sweep: {str(e)}")

            await asyncio.sleep(self.interval)

    async def sweep(self, now: Optional[datetime] = None) -> SweepReport:
        """
        Run one sweep.

        Args:
            now: Reference time, defaults to the manager's clock

        Returns:
            SweepReport: Sessions force-ended, purged and deleted
        """
        now = now or self.manager.clock()
        report = SweepReport()

        for session_id in await self.manager.active_session_ids():
            try:
                session = await self.manager.get_active_session(session_id)
            except SessionNotFound:
                continue
            if session.state not in _LIVE_STATES:
                continue
            if session.elapsed_ms(now) > session.config.max_session_duration_ms:
                try:
                    await self.terminator(session_id, now)
                    report.force_ended.append(session_id)
                except VoicePipelineError as e:
                    report.errors += 1
                    logger.error(f"Failed to force-end session {session_id}: {e}")

        for session_id in await self.manager.stored_session_ids():
            try:
                await self._apply_retention(session_id, now, report)
            except SessionNotFound:
                continue
            except (VoicePipelineError, OSError) as e:
                report.errors += 1
                logger.error(f"Retention sweep failed for session {session_id}: {e}")

        if report.changed:
            logger.info(
                f"Retention sweep: {len(report.force_ended)} force-ended, "
                f"{len(report.audio_purged)} audio purged, "
                f"{len(report.transcripts_purged)} transcripts purged, {len(report.deleted)} deleted"
            )
        return report

    async def _apply_retention(self, session_id: str, now: datetime, report: SweepReport) -> None:
        session = await self.manager.get_session(session_id)

        if now > session.audio_retention_at and not session.audio_data_deleted:
            if await self.manager.purge_audio(session_id):
                report.audio_purged.append(session_id)

        if now > session.transcript_retention_at and not session.transcript_data_deleted:
            if await self.manager.purge_transcripts(session_id):
                report.transcripts_purged.append(session_id)

        if session.audio_data_deleted and session.transcript_data_deleted:
            if await self.manager.delete_session(session_id):
                report.deleted.append(session_id)
