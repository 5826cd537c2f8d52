"""Adaptadores del colaborador de notificaciones."""

import logging
from dataclasses import asdict

import httpx

from app.application.interfaces.notifier import BookingEvent, Notifier

logger = logging.getLogger(__name__)


class LoggingNotifier(Notifier):
    """Default notifier: records the event and keeps it for inspection."""

    def __init__(self) -> None:
        self.events: list[BookingEvent] = []

    async def publish(self, event: BookingEvent) -> None:
        self.events.append(event)
        logger.info(
            "Booking event published",
            extra={
                "event_type": event.event_type,
                "reservation_code": event.reservation_code,
                "correlation_id": event.correlation_id,
                "status": event.status,
            },
        )


class WebhookNotifier(Notifier):
    """
    Posts terminal booking events to the service that delivers email,
    WhatsApp and push messages.

    Raises httpx.HTTPError on delivery failure; the orchestrator logs it and
    moves on.
    """

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self._url = url

    async def publish(self, event: BookingEvent) -> None:
        response = await self._client.post(self._url, json=asdict(event))
        response.raise_for_status()
        logger.info(
            "Booking event delivered",
            extra={"event_type": event.event_type, "correlation_id": event.correlation_id},
        )
