"""Webhook delivery for SpecForge outbound events.

Each event is POSTed as JSON to every enabled endpoint. Endpoints with a
secret receive an HMAC-SHA256 signature of the raw body so receivers can
verify authenticity. Failed deliveries are retried with exponential
backoff (1s, 2s, 4s, ...) up to the endpoint's retry count.

Headers:
    X-SpecForge-Event: dotted event name, e.g. "spec_project.approved"
    X-SpecForge-Delivery: outbox event id
    X-SpecForge-Timestamp: unix timestamp of the send
    X-SpecForge-Signature: hex HMAC-SHA256 of the body (when a secret is set)
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field

from specforge.config import WebhookEndpointSettings

logger = structlog.get_logger(__name__)


class WebhookPayload(BaseModel):
    """Structured payload for webhook delivery.

    Attributes:
        event: Dotted event name.
        event_id: Outbox row id, stable across retries.
        timestamp: ISO 8601 timestamp when the event occurred.
        data: Event-specific data payload.
    """

    event: str = Field(..., description="The event type")
    event_id: str = Field(..., description="Outbox event id")
    timestamp: str = Field(..., description="ISO 8601 timestamp of the event")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")


class WebhookDispatcher:
    """Delivers payloads to the configured webhook endpoints.

    Attributes:
        endpoints: Configured webhook endpoints.
        logger: Structured logger for this dispatcher.
    """

    def __init__(
        self,
        endpoints: list[WebhookEndpointSettings] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the webhook dispatcher.

        Args:
            endpoints: Webhook endpoints to send events to. If None, sends
                are no-ops that report success.
            http_client: Optional pre-built client (tests inject a mock
                transport here).
        """
        self.endpoints = endpoints or []
        self.logger = logger.bind(component="webhook_dispatcher")
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient()
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def sign_payload(payload: str, secret: str) -> str:
        """Generate the hex HMAC-SHA256 signature for a payload."""
        return hmac.new(
            secret.encode(),
            payload.encode(),
            hashlib.sha256,
        ).hexdigest()

    def _build_headers(
        self,
        payload: WebhookPayload,
        payload_str: str,
        secret: str | None,
    ) -> dict[str, str]:
        timestamp = str(int(datetime.now(timezone.utc).timestamp()))
        headers = {
            "Content-Type": "application/json",
            "X-SpecForge-Event": payload.event,
            "X-SpecForge-Delivery": payload.event_id,
            "X-SpecForge-Timestamp": timestamp,
        }

        if secret:
            headers["X-SpecForge-Signature"] = self.sign_payload(payload_str, secret)

        return headers

    async def _send_to_endpoint(
        self,
        endpoint: WebhookEndpointSettings,
        payload: WebhookPayload,
    ) -> str | None:
        """Send a payload to one endpoint with retries.

        Returns:
            None on success, otherwise a description of the last error.
        """
        if not endpoint.enabled:
            self.logger.debug(
                "webhook_endpoint_disabled",
                url=endpoint.url,
                event_type=payload.event,
            )
            return None

        payload_str = payload.model_dump_json()
        headers = self._build_headers(payload, payload_str, endpoint.secret)

        client = await self._get_client()
        last_error = "no attempt made"

        for attempt in range(endpoint.retry_count + 1):
            try:
                response = await client.post(
                    endpoint.url,
                    content=payload_str,
                    headers=headers,
                    timeout=endpoint.timeout_seconds,
                )

                if response.is_success:
                    self.logger.info(
                        "webhook_delivered",
                        url=endpoint.url,
                        event_type=payload.event,
                        status_code=response.status_code,
                        attempt=attempt + 1,
                    )
                    return None

                last_error = f"HTTP {response.status_code}"
                self.logger.warning(
                    "webhook_non_success_status",
                    url=endpoint.url,
                    event_type=payload.event,
                    status_code=response.status_code,
                    attempt=attempt + 1,
                )

            except httpx.TimeoutException as e:
                last_error = f"timeout: {e}"
                self.logger.warning(
                    "webhook_timeout",
                    url=endpoint.url,
                    event_type=payload.event,
                    attempt=attempt + 1,
                    error=str(e),
                )

            except httpx.RequestError as e:
                last_error = f"request error: {e}"
                self.logger.warning(
                    "webhook_request_failed",
                    url=endpoint.url,
                    event_type=payload.event,
                    attempt=attempt + 1,
                    error=str(e),
                )

            if attempt < endpoint.retry_count:
                await asyncio.sleep(2**attempt)

        self.logger.error(
            "webhook_delivery_exhausted",
            url=endpoint.url,
            event_type=payload.event,
            retry_count=endpoint.retry_count,
            error=last_error,
        )
        return f"{endpoint.url}: {last_error}"

    async def send(
        self,
        event_type: str,
        event_id: str,
        data: dict[str, Any],
        occurred_at: datetime | None = None,
    ) -> list[str]:
        """Send an event to all configured endpoints concurrently.

        Args:
            event_type: Dotted event name.
            event_id: Outbox row id.
            data: Event-specific data payload.
            occurred_at: When the event was recorded; defaults to now.

        Returns:
            Error descriptions for endpoints that did not accept the event;
            empty when every enabled endpoint succeeded.
        """
        if not self.endpoints:
            self.logger.debug("webhook_no_endpoints", event_type=event_type)
            return []

        payload = WebhookPayload(
            event=event_type,
            event_id=event_id,
            timestamp=(occurred_at or datetime.now(timezone.utc)).isoformat(),
            data=data,
        )

        results = await asyncio.gather(
            *(self._send_to_endpoint(endpoint, payload) for endpoint in self.endpoints),
            return_exceptions=True,
        )

        errors: list[str] = []
        for endpoint, result in zip(self.endpoints, results):
            if isinstance(result, Exception):
                self.logger.error(
                    "webhook_unexpected_error",
                    url=endpoint.url,
                    error=str(result),
                )
                errors.append(f"{endpoint.url}: {result}")
            elif result is not None:
                errors.append(result)
        return errors
