"""
Emergency alert dispatch.

Fans an EmergencyEvent out to the session's emergency contacts through the
external NotificationDispatcher. Calls are rate-limited across sessions and
bounded by a timeout; delivery failures are recorded per contact and never
raised into the detection pipeline.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Optional

from asyncio_throttle import Throttler

from voice_emergency.core.logging import get_emergency_logger
from voice_emergency.services.constants import DEFAULTS
from voice_emergency.services.constants import get_limit
from voice_emergency.services.constants import get_timeout
from voice_emergency.services.interfaces import DeliveryResult
from voice_emergency.services.interfaces import EmergencyContact
from voice_emergency.services.interfaces import NotificationDispatcher
from voice_emergency.sessions.models import EmergencyEvent

logger = logging.getLogger(__name__)
emergency_logger = get_emergency_logger()


class AlertDispatcher:
    """Rate-limited, timeout-bounded notification fan-out."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        rate_limit: Optional[int] = None,
        period: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.dispatcher = dispatcher
        self.timeout = timeout if timeout is not None else get_timeout("notification_timeout")
        self.throttler = Throttler(
            rate_limit=rate_limit if rate_limit is not None else get_limit("notification_rate_limit"),
            period=period if period is not None else DEFAULTS["notification_period"],
        )
        self.metrics = {"dispatched": 0, "delivered": 0, "failed": 0}

    async def _notify(self, event: EmergencyEvent, contacts: list[EmergencyContact]) -> list[DeliveryResult]:
        # Waiting for a rate-limit slot counts against the timeout
        async with self.throttler:
            return await self.dispatcher.notify(event, contacts)

    async def dispatch(
        self, event: EmergencyEvent, contacts: list[EmergencyContact]
    ) -> tuple[EmergencyEvent, list[DeliveryResult]]:
        """
        Notify contacts about an emergency.

        Args:
            event: The detected emergency
            contacts: People to notify

        Returns:
            The event with notifications_sent set to the number of
            successful deliveries, and the per-contact results
        """
        if not contacts:
            emergency_logger.warning(f"Emergency {event.id} in session {event.session_id} has no contacts to notify")
            return event, []

        self.metrics["dispatched"] += 1
        try:
            results = await asyncio.wait_for(self._notify(event, contacts), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Notification dispatch for emergency {event.id} timed out after {self.timeout}s")
            results = [DeliveryResult(contact=c, delivered=False, error="timeout") for c in contacts]
        except Exception as e:
            logger.error(f"Notification dispatch for emergency {event.id} failed: {e}")
            results = [DeliveryResult(contact=c, delivered=False, error=str(e)) for c in contacts]

        sent = sum(1 for r in results if r.delivered)
        self.metrics["delivered"] += sent
        self.metrics["failed"] += len(results) - sent

        for result in results:
            if result.delivered:
                emergency_logger.info(f"Emergency {event.id}: notified {result.contact.name}")
            else:
                emergency_logger.warning(
                    f"Emergency {event.id}: failed to notify {result.contact.name}: {result.error}"
                )

        return replace(event, notifications_sent=sent), list(results)
