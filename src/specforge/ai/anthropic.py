"""Anthropic Messages API client for SpecForge.

Implements the provider hooks of BaseAIClient over httpx. Transient
failures (timeouts, connection errors, 429, 5xx and 529 overload) are
raised as ProviderUnavailableError so the base client retries them;
other 4xx responses are raised as ProviderRequestError and never retried.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from specforge.ai.client import BaseAIClient, ChatMessage, RawCompletion
from specforge.config import AIConfig
from specforge.errors import ProviderRequestError, ProviderUnavailableError

WEB_SEARCH_TOOL_TYPE = "web_search_20250305"


def format_messages(messages: list[ChatMessage]) -> list[dict[str, str]]:
    """Format context for the Messages API.

    The API requires alternating roles starting with ``user``; consecutive
    messages from the same role are merged and a leading assistant message
    gets a placeholder user turn in front of it.
    """
    formatted: list[dict[str, str]] = []
    for message in messages:
        role = "assistant" if message.role == "assistant" else "user"
        if formatted and formatted[-1]["role"] == role:
            formatted[-1]["content"] += "\n\n" + message.content
        else:
            formatted.append({"role": role, "content": message.content})

    if not formatted or formatted[0]["role"] != "user":
        formatted.insert(0, {"role": "user", "content": "(start of conversation)"})
    return formatted


class AnthropicClient(BaseAIClient):
    """AICapability backed by the Anthropic Messages API.

    Attributes:
        config: AI configuration (api key, base url, models, pricing)
    """

    def __init__(
        self,
        config: AIConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: AI configuration
            http_client: Optional preconfigured httpx client (used in tests)
        """
        super().__init__(config)
        self._client = http_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": self.config.anthropic_version,
            "content-type": "application/json",
        }

    def _body(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        model: str,
        web_search: bool = False,
        stream: bool = False,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": model,
            "max_tokens": self.config.max_tokens,
            "system": system_prompt,
            "messages": format_messages(messages),
        }
        if web_search:
            body["tools"] = [
                {
                    "type": WEB_SEARCH_TOOL_TYPE,
                    "name": "web_search",
                    "max_uses": self.config.web_search_max_uses,
                }
            ]
        if stream:
            body["stream"] = True
        return body

    @staticmethod
    def _raise_for_status(response: httpx.Response, body_text: str) -> None:
        """Map provider HTTP errors onto the SpecForge error taxonomy."""
        status = response.status_code
        if status < 400:
            return

        try:
            message = json.loads(body_text).get("error", {}).get("message", body_text)
        except (json.JSONDecodeError, AttributeError):
            message = body_text or response.reason_phrase

        if status == 429 or status >= 500:
            retry_after: float | None = None
            header = response.headers.get("retry-after")
            if header is not None:
                try:
                    retry_after = float(header)
                except ValueError:
                    retry_after = None
            raise ProviderUnavailableError(
                f"Provider returned {status}: {message}",
                status_code=status,
                retry_after=retry_after,
            )

        raise ProviderRequestError(f"Provider rejected request: {message}", status)

    async def _complete_raw(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        model: str,
        web_search: bool,
    ) -> RawCompletion:
        client = await self._get_client()
        try:
            response = await client.post(
                "/v1/messages",
                json=self._body(messages, system_prompt, model, web_search=web_search),
                headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"Request timed out: {e}") from e
        except httpx.RequestError as e:
            raise ProviderUnavailableError(f"Request failed: {e}") from e

        self._raise_for_status(response, response.text)

        data = response.json()
        # Search-augmented replies interleave tool blocks with text blocks
        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        usage = data.get("usage", {})
        return RawCompletion(
            text=text,
            model=data.get("model", model),
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
        )

    async def _stream_raw(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        model: str,
    ) -> AsyncIterator[str]:
        client = await self._get_client()
        input_tokens = 0
        output_tokens = 0
        try:
            async with client.stream(
                "POST",
                "/v1/messages",
                json=self._body(messages, system_prompt, model, stream=True),
                headers=self._headers(),
            ) as response:
                if response.status_code >= 400:
                    body_text = (await response.aread()).decode("utf-8", "replace")
                    self._raise_for_status(response, body_text)

                async for line in response.aiter_lines():
                    if not line.startswith("data:"):
                        continue
                    payload = line[len("data:"):].strip()
                    if not payload:
                        continue
                    event = json.loads(payload)
                    event_type = event.get("type")
                    if event_type == "content_block_delta":
                        delta = event.get("delta", {})
                        if delta.get("type") == "text_delta":
                            yield delta.get("text", "")
                    elif event_type == "message_start":
                        usage = event.get("message", {}).get("usage", {})
                        input_tokens = usage.get("input_tokens", 0)
                    elif event_type == "message_delta":
                        output_tokens = event.get("usage", {}).get("output_tokens", 0)
                    elif event_type == "error":
                        error = event.get("error", {})
                        raise ProviderUnavailableError(
                            f"Stream error: {error.get('message', 'unknown')}"
                        )
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(f"Stream timed out: {e}") from e
        except httpx.RequestError as e:
            raise ProviderUnavailableError(f"Stream failed: {e}") from e

        self.logger.debug(
            "stream_completed",
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
