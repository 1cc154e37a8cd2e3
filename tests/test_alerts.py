"""
Unit tests for emergency alert dispatch.
"""

from unittest.mock import AsyncMock

import pytest

from tests.fakes import FakeNotifier
from voice_emergency.pipeline.alerts import AlertDispatcher
from voice_emergency.sessions.models import EmergencyEvent
from voice_emergency.sessions.models import utc_now


@pytest.fixture
def event():
    return EmergencyEvent(
        id="evt-1",
        session_id="s1",
        category="security",
        confidence=0.85,
        urgency_level="critical",
        notifications_sent=0,
        occurred_at=utc_now(),
        recommendation="immediate_response",
    )


@pytest.mark.unit
class TestAlertDispatcher:
    """Test cases for AlertDispatcher.dispatch."""

    @pytest.mark.asyncio
    async def test_all_contacts_notified(self, event, contacts, notifier):
        dispatcher = AlertDispatcher(notifier)

        updated, results = await dispatcher.dispatch(event, contacts)

        assert updated.notifications_sent == 2
        assert updated.id == event.id
        assert event.notifications_sent == 0
        assert all(r.delivered for r in results)
        assert notifier.calls == [(event, contacts)]
        assert dispatcher.metrics == {"dispatched": 1, "delivered": 2, "failed": 0}

    @pytest.mark.asyncio
    async def test_partial_failure(self, event, contacts):
        dispatcher = AlertDispatcher(FakeNotifier(failing={contacts[0].phone}))

        updated, results = await dispatcher.dispatch(event, contacts)

        assert updated.notifications_sent == 1
        assert results[0].error == "unreachable"
        assert dispatcher.metrics["failed"] == 1

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self, event, contacts):
        dispatcher = AlertDispatcher(FakeNotifier(delay=0.5), timeout=0.05)

        updated, results = await dispatcher.dispatch(event, contacts)

        assert updated.notifications_sent == 0
        assert [r.error for r in results] == ["timeout", "timeout"]

    @pytest.mark.asyncio
    async def test_rate_limit_wait_counts_against_timeout(self, event, contacts, notifier):
        dispatcher = AlertDispatcher(notifier, rate_limit=1, period=60, timeout=0.05)

        first, _ = await dispatcher.dispatch(event, contacts)
        second, results = await dispatcher.dispatch(event, contacts)

        assert first.notifications_sent == 2
        assert second.notifications_sent == 0
        assert [r.error for r in results] == ["timeout", "timeout"]
        assert len(notifier.calls) == 1

    @pytest.mark.asyncio
    async def test_notifier_exception_is_contained(self, event, contacts):
        notifier = AsyncMock()
        notifier.notify = AsyncMock(side_effect=RuntimeError("sms gateway down"))
        dispatcher = AlertDispatcher(notifier)

        updated, results = await dispatcher.dispatch(event, contacts)

        assert updated.notifications_sent == 0
        assert all(r.error == "sms gateway down" for r in results)
        assert dispatcher.metrics["failed"] == 2

    @pytest.mark.asyncio
    async def test_no_contacts(self, event, notifier):
        dispatcher = AlertDispatcher(notifier)

        updated, results = await dispatcher.dispatch(event, [])

        assert updated is event
        assert results == []
        assert notifier.calls == []
        assert dispatcher.metrics["dispatched"] == 0
