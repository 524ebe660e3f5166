"""Outbound notification events (appeal resolutions)."""

from __future__ import annotations

import httpx
import structlog

from ranking.clients.schemas import NotificationEvent
from ranking.config import Settings, get_settings

logger = structlog.get_logger()


class NotificationPublishError(Exception):
    """The notification service rejected or did not receive an event."""


class NotificationPublisher:
    """POSTs event envelopes to the notification service."""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def publish(self, event: NotificationEvent) -> None:
        """Deliver one event. Raises NotificationPublishError on any failure."""
        url = f"{self.base_url}/internal/events"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(url, json=event.model_dump(mode="json", by_alias=True))
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            raise NotificationPublishError(str(exc)) from exc

        if response.status_code >= 400:
            msg = f"notification_publish_failed status={response.status_code} body={response.text[:200]}"
            raise NotificationPublishError(msg)

        logger.info("notification_published", event_type=event.event_type, event_id=event.event_id)


def build_notification_publisher(settings: Settings) -> NotificationPublisher:
    return NotificationPublisher(settings.notification_service_url, settings.upstream_timeout_seconds)


def get_notification_publisher() -> NotificationPublisher:
    return build_notification_publisher(get_settings())
