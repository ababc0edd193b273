"""AI capability interface and retrying base client for SpecForge.

The pipelines depend only on the ``AICapability`` protocol:

- ``complete_streaming`` yields text chunks for conversational turns.
- ``complete_structured`` returns a validated pydantic model plus cost.

``BaseAIClient`` implements the error policy on top of two provider
hooks (``_complete_raw`` and ``_stream_raw``):

- ProviderUnavailableError is retried with exponential backoff up to
  ``AIConfig.max_retries`` times, then re-raised with the attempt count.
- MalformedOutputError gets exactly one repair retry that shows the model
  its previous output and the parse error; a second failure is fatal.
- Costs of every billed attempt are accumulated into the result.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, Protocol, TypeVar, runtime_checkable

import structlog
from pydantic import BaseModel

from specforge.ai.backoff import ExponentialBackoff
from specforge.ai.parsing import parse_structured
from specforge.ai.prompts import REPAIR_PROMPT, STRUCTURED_OUTPUT_INSTRUCTIONS
from specforge.config import AIConfig
from specforge.errors import MalformedOutputError, ProviderUnavailableError

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)
R = TypeVar("R")


@dataclass(frozen=True)
class ChatMessage:
    """One message of model context.

    Attributes:
        role: "user" or "assistant"
        content: Message text
    """

    role: str
    content: str


@dataclass
class RawCompletion:
    """Unparsed provider response with token usage."""

    text: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass
class StructuredResult(Generic[T]):
    """Validated structured output of one logical AI call.

    Attributes:
        value: Parsed and validated model instance
        cost_usd: Cost of all billed attempts, including a repair retry
        model: Model id that produced the value
        input_tokens: Total input tokens across attempts
        output_tokens: Total output tokens across attempts
        repaired: Whether the value came from the repair retry
    """

    value: T
    cost_usd: float
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    repaired: bool = False


@runtime_checkable
class AICapability(Protocol):
    """Interface the pipelines use to talk to a language model."""

    def complete_streaming(
        self,
        context: list[ChatMessage],
        system_prompt: str,
        *,
        tier: str = "standard",
    ) -> AsyncIterator[str]:
        """Stream a conversational reply as text chunks.

        The sequence is finite and cannot be restarted mid-stream.

        Raises:
            ProviderUnavailableError: If the provider stays unreachable.
        """
        ...

    async def complete_structured(
        self,
        context: list[ChatMessage],
        schema: type[T],
        *,
        system_prompt: str,
        tier: str = "standard",
        web_search: bool = False,
    ) -> StructuredResult[T]:
        """Request output matching ``schema`` and wait for the full result.

        Raises:
            ProviderUnavailableError: If retries are exhausted.
            MalformedOutputError: If the repair retry also fails to parse.
        """
        ...


class BaseAIClient:
    """Retrying AICapability implementation over provider hooks.

    Subclasses implement ``_complete_raw`` and ``_stream_raw`` and raise
    ProviderUnavailableError for transient failures.

    Attributes:
        config: AI configuration (models, pricing, retry policy)
    """

    def __init__(self, config: AIConfig) -> None:
        self.config = config
        self._backoff = ExponentialBackoff(config.backoff)
        self.logger = logger.bind(component=type(self).__name__)

    async def _complete_raw(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        model: str,
        web_search: bool,
    ) -> RawCompletion:
        raise NotImplementedError

    def _stream_raw(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        model: str,
    ) -> AsyncIterator[str]:
        raise NotImplementedError

    async def close(self) -> None:
        """Release provider resources."""

    async def _with_retries(self, call: Callable[[], Awaitable[R]]) -> R:
        """Run ``call``, retrying ProviderUnavailableError with backoff."""
        attempts = self.config.max_retries + 1
        for attempt in range(attempts):
            try:
                return await call()
            except ProviderUnavailableError as e:
                if attempt + 1 >= attempts:
                    self.logger.error(
                        "provider_retries_exhausted",
                        attempts=attempt + 1,
                        error=str(e),
                    )
                    raise ProviderUnavailableError(
                        str(e),
                        attempts=attempt + 1,
                        status_code=e.status_code,
                    ) from e
                self.logger.warning(
                    "provider_unavailable_retrying",
                    attempt=attempt + 1,
                    status_code=e.status_code,
                    error=str(e),
                )
                await self._backoff.wait(attempt, e.retry_after)
        raise AssertionError("unreachable")

    async def complete_streaming(
        self,
        context: list[ChatMessage],
        system_prompt: str,
        *,
        tier: str = "standard",
    ) -> AsyncIterator[str]:
        """Stream a reply, retrying only failures that happen before the first chunk."""
        model = self.config.model_for(tier)
        attempts = self.config.max_retries + 1
        for attempt in range(attempts):
            started = False
            try:
                async for chunk in self._stream_raw(context, system_prompt, model):
                    started = True
                    yield chunk
                return
            except ProviderUnavailableError as e:
                if started or attempt + 1 >= attempts:
                    raise ProviderUnavailableError(
                        str(e), attempts=attempt + 1, status_code=e.status_code
                    ) from e
                self.logger.warning(
                    "provider_stream_unavailable_retrying",
                    attempt=attempt + 1,
                    error=str(e),
                )
                await self._backoff.wait(attempt, e.retry_after)

    async def complete_structured(
        self,
        context: list[ChatMessage],
        schema: type[T],
        *,
        system_prompt: str,
        tier: str = "standard",
        web_search: bool = False,
    ) -> StructuredResult[T]:
        """Request structured output, with one repair retry on malformed output."""
        model = self.config.model_for(tier)
        full_prompt = system_prompt + STRUCTURED_OUTPUT_INSTRUCTIONS.format(
            schema=json.dumps(schema.model_json_schema(), indent=2)
        )
        messages = list(context)

        raw = await self._with_retries(
            lambda: self._complete_raw(messages, full_prompt, model, web_search)
        )
        input_tokens = raw.input_tokens
        output_tokens = raw.output_tokens

        try:
            value = parse_structured(raw.text, schema)
            repaired = False
        except MalformedOutputError as first_error:
            self.logger.warning(
                "malformed_output_repairing",
                schema=schema.__name__,
                error=str(first_error),
            )
            repair_messages = [
                *messages,
                ChatMessage(role="assistant", content=raw.text),
                ChatMessage(role="user", content=REPAIR_PROMPT.format(error=str(first_error))),
            ]
            # Repairs reformat existing output; no new searches needed
            repair = await self._with_retries(
                lambda: self._complete_raw(repair_messages, full_prompt, model, False)
            )
            input_tokens += repair.input_tokens
            output_tokens += repair.output_tokens
            try:
                value = parse_structured(repair.text, schema)
            except MalformedOutputError as second_error:
                self.logger.error(
                    "malformed_output_after_repair",
                    schema=schema.__name__,
                    error=str(second_error),
                )
                raise MalformedOutputError(
                    f"Output still malformed after repair: {second_error}",
                    second_error.raw_output,
                ) from second_error
            repaired = True

        cost = self.config.cost_for(tier, input_tokens, output_tokens)
        self.logger.info(
            "structured_completion_finished",
            schema=schema.__name__,
            model=model,
            tier=tier,
            web_search=web_search,
            repaired=repaired,
            cost_usd=round(cost, 6),
        )
        return StructuredResult(
            value=value,
            cost_usd=cost,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            repaired=repaired,
        )
