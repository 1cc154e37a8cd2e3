"""
Unit tests for the retention sweeper: maximum session duration and the
two-stage audio/transcript data lifetime.
"""

import asyncio
from datetime import timedelta

import pytest

from voice_emergency.services.errors import RetentionViolation
from voice_emergency.services.errors import SessionNotFound
from voice_emergency.sessions.manager import VoiceSessionManager
from voice_emergency.sessions.models import SessionState
from voice_emergency.sessions.models import TerminationReason
from voice_emergency.sessions.retention import RetentionSweeper


@pytest.mark.unit
class TestMaxDuration:
    """Test cases for force-ending sessions past their maximum duration."""

    @pytest.mark.asyncio
    async def test_session_past_max_duration_is_force_ended(self, manager, clock):
        sid = (await manager.create_session("user-1", {"max_session_duration_ms": 1000})).session_id
        await manager.activate(sid)
        sweeper = RetentionSweeper(manager)

        clock.advance(milliseconds=1500)
        report = await sweeper.sweep()

        assert report.force_ended == [sid]
        session = await manager.get_session(sid)
        assert session.state == SessionState.ENDED
        assert session.termination_reason == TerminationReason.MAX_DURATION_EXCEEDED
        assert session.summary.duration_ms >= 1000
        assert sid not in await manager.active_session_ids()

    @pytest.mark.asyncio
    async def test_session_within_limit_is_untouched(self, manager, clock):
        sid = (await manager.create_session("user-1", {"max_session_duration_ms": 1000})).session_id
        sweeper = RetentionSweeper(manager)

        clock.advance(milliseconds=1000)
        report = await sweeper.sweep()

        assert report.force_ended == []
        assert report.changed is False
        assert (await manager.get_session(sid)).state == SessionState.CREATED

    @pytest.mark.asyncio
    async def test_custom_terminator(self, manager, clock):
        sid = (await manager.create_session("user-1", {"max_session_duration_ms": 1000})).session_id
        ended = []

        async def terminator(session_id, now):
            ended.append((session_id, now))
            return await manager.force_end_session(session_id, ended_at=now)

        sweeper = RetentionSweeper(manager, terminator=terminator)
        now = clock.advance(seconds=2)
        await sweeper.sweep()

        assert ended == [(sid, now)]

    @pytest.mark.asyncio
    async def test_duration_uses_sweep_reference_time(self, settings, store, event_log):
        manager = VoiceSessionManager(settings=settings, store=store, event_log=event_log)
        sid = (await manager.create_session("user-1", {"max_session_duration_ms": 1000})).session_id
        await manager.activate(sid)
        session = await manager.get_session(sid)
        now = session.started_at + timedelta(seconds=2)

        report = await RetentionSweeper(manager).sweep(now=now)

        session = await manager.get_session(sid)
        assert report.force_ended == [sid]
        assert session.termination_reason == TerminationReason.MAX_DURATION_EXCEEDED
        assert session.ended_at == now
        assert session.summary.duration_ms == 2000

    @pytest.mark.asyncio
    async def test_client_end_after_force_end_returns_same_summary(self, manager, clock):
        sid = (await manager.create_session("user-1", {"max_session_duration_ms": 1000})).session_id
        clock.advance(seconds=2)
        await RetentionSweeper(manager).sweep()

        summary = await manager.end_session(sid)
        assert summary.termination_reason == TerminationReason.MAX_DURATION_EXCEEDED


@pytest.mark.unit
class TestDataRetention:
    """Test cases for staged audio and transcript purging."""

    @pytest.mark.asyncio
    async def test_audio_then_transcript_then_record(self, manager, clock):
        sid = (await manager.create_session("user-1", {"audio_retention_days": 7, "retention_days": 30})).session_id
        await manager.record_audio(sid, b"\x00\x00" * 100)
        await manager.record_transcription(sid, "hello", 0.9)
        await manager.end_session(sid)
        sweeper = RetentionSweeper(manager)

        clock.advance(days=8)
        report = await sweeper.sweep()

        session = await manager.get_session(sid)
        assert report.audio_purged == [sid]
        assert session.audio_data_deleted is True
        assert session.transcript_data_deleted is False
        with pytest.raises(RetentionViolation):
            await manager.get_audio(sid)
        assert [r.text for r in await manager.get_transcript(sid)] == ["hello"]

        clock.advance(days=23)
        report = await sweeper.sweep()

        assert session.audio_data_deleted is True
        assert session.transcript_data_deleted is True
        assert report.transcripts_purged == [sid]
        assert report.deleted == [sid]
        with pytest.raises(SessionNotFound):
            await manager.get_session(sid)

    @pytest.mark.asyncio
    async def test_live_session_is_ended_before_purge(self, manager, clock):
        sid = (await manager.create_session("user-1")).session_id
        await manager.activate(sid)

        clock.advance(days=8)
        report = await RetentionSweeper(manager).sweep()

        assert report.force_ended == [sid]
        assert report.audio_purged == [sid]
        assert (await manager.get_session(sid)).state == SessionState.ENDED

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, manager, clock):
        sid = (await manager.create_session("user-1")).session_id
        await manager.end_session(sid)
        sweeper = RetentionSweeper(manager)

        clock.advance(days=8)
        first = await sweeper.sweep()
        second = await sweeper.sweep()

        assert first.audio_purged == [sid]
        assert second.changed is False
        assert second.errors == 0

    @pytest.mark.asyncio
    async def test_nothing_due(self, manager, clock):
        await manager.create_session("user-1")
        clock.advance(hours=1)

        report = await RetentionSweeper(manager).sweep()

        assert report.changed is False


@pytest.mark.unit
class TestSweeperLifecycle:
    """Test cases for the background sweep task."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, manager, clock):
        sid = (await manager.create_session("user-1", {"max_session_duration_ms": 1000})).session_id
        clock.advance(seconds=2)
        sweeper = RetentionSweeper(manager, interval=0.01)

        await sweeper.start()
        assert sweeper.is_running is True
        for _ in range(50):
            if sweeper.last_report is not None:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert sweeper.is_running is False
        assert sweeper.sweep_task is None
        assert (await manager.get_session(sid)).state == SessionState.ENDED

    @pytest.mark.asyncio
    async def test_double_start_and_stop_are_harmless(self, manager):
        sweeper = RetentionSweeper(manager, interval=10)

        await sweeper.start()
        task = sweeper.sweep_task
        await sweeper.start()
        assert sweeper.sweep_task is task

        await sweeper.stop()
        await sweeper.stop()
        assert sweeper.is_running is False

    def test_interval_defaults_to_settings(self, manager):
        assert RetentionSweeper(manager).interval == manager.settings.sweep_interval_s
