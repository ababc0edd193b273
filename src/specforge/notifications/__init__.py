"""Outbound notifications: DB outbox publishing and webhook delivery."""

from specforge.notifications.dispatcher import DrainResult, OutboxDispatcher
from specforge.notifications.publisher import publish_event, research_phase_completed
from specforge.notifications.webhooks import WebhookDispatcher, WebhookPayload

__all__ = [
    "DrainResult",
    "OutboxDispatcher",
    "WebhookDispatcher",
    "WebhookPayload",
    "publish_event",
    "research_phase_completed",
]
