import logging
from datetime import datetime, timezone

import httpx

from creator_match.config import get_settings

logger = logging.getLogger(__name__)

INSIGHTS_UPDATED = "insights.updated"
CREATOR_APPLIED = "creator.applied"
CREATOR_INVITED = "creator.invited"
INVITATION_RESPONDED = "invitation.responded"
APPLICATION_ACCEPTED = "application.accepted"
APPLICATION_REJECTED = "application.rejected"
CREATORS_MATCHED = "creators.matched"
REQUEST_DELETED = "request.deleted"


class LoggingEventSink:
    """Default sink: records events in the service log only."""

    async def publish(self, event: str, payload: dict) -> None:
        logger.info("Event %s: %s", event, payload)


class WebhookEventSink:
    """Forward events to the notification dispatcher over HTTP.

    Delivery is best effort. A failed POST is logged and dropped so the
    profile or application write that triggered it still succeeds.
    """

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def publish(self, event: str, payload: dict) -> None:
        body = {
            "event": event,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
            "payload": payload,
        }
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.post(self.url, json=body, timeout=self.timeout)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Failed to deliver event %s to %s: %s", event, self.url, e)


def get_event_sink():
    settings = get_settings()
    if settings.event_webhook_url:
        return WebhookEventSink(settings.event_webhook_url, settings.event_webhook_timeout)
    return LoggingEventSink()
