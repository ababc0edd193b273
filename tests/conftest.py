"""Shared fixtures: test configuration, a scripted AI client and sample payloads.

``ScriptedAIClient`` subclasses the real BaseAIClient so retries, parsing
and the repair retry run exactly as in production; only the provider
hooks are replaced by queues of canned responses keyed by schema name.
"""

from __future__ import annotations

import copy
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest
from pydantic import BaseModel

from specforge.ai.client import BaseAIClient, ChatMessage, RawCompletion, StructuredResult
from specforge.config import AIConfig, BackoffSettings, SpecForgeConfig

READY_PHRASE = "I have enough context to begin research."


class ScriptedAIClient(BaseAIClient):
    """BaseAIClient whose provider hooks replay scripted responses.

    Structured responses are queued per schema name. Each item is a dict
    (sent as JSON), a raw string, or an exception to raise. The last item
    of a queue is reused once the others are consumed.

    Attributes:
        structured: Schema name to queued responses
        replies: Queued chat replies for streaming calls
        calls: (schema name, messages, system prompt) per provider call
    """

    def __init__(
        self,
        config: AIConfig,
        structured: dict[str, list[Any]] | None = None,
        replies: list[str | Exception] | None = None,
    ) -> None:
        super().__init__(config)
        self.structured = structured or {}
        self.replies = list(replies or [])
        self.calls: list[tuple[str, list[ChatMessage], str]] = []
        self._schema = ""

    def script(self, schema_name: str, *items: Any) -> None:
        self.structured.setdefault(schema_name, []).extend(items)

    def calls_for(self, schema_name: str) -> list[tuple[str, list[ChatMessage], str]]:
        return [call for call in self.calls if call[0] == schema_name]

    async def complete_structured(  # type: ignore[override]
        self,
        context: list[ChatMessage],
        schema: type[BaseModel],
        **kwargs: Any,
    ) -> StructuredResult[Any]:
        self._schema = schema.__name__
        return await super().complete_structured(context, schema, **kwargs)

    async def _complete_raw(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        model: str,
        web_search: bool,
    ) -> RawCompletion:
        self.calls.append((self._schema, list(messages), system_prompt))
        queue = self.structured.get(self._schema)
        if not queue:
            raise AssertionError(f"No scripted response for {self._schema}")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        text = item if isinstance(item, str) else json.dumps(item)
        return RawCompletion(text=text, model=model, input_tokens=1000, output_tokens=500)

    async def _stream_raw(
        self,
        messages: list[ChatMessage],
        system_prompt: str,
        model: str,
    ) -> AsyncIterator[str]:
        self.calls.append(("chat", list(messages), system_prompt))
        if not self.replies:
            raise AssertionError("No scripted chat reply")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        for word in reply.split(" "):
            yield word + " "


@pytest.fixture
def ai_config() -> AIConfig:
    """AI configuration with instant retries."""
    return AIConfig(
        api_key="test-key",
        max_retries=1,
        backoff=BackoffSettings(initial_delay_seconds=0.0, max_delay_seconds=0.0, jitter=False),
    )


@pytest.fixture
def config(ai_config: AIConfig) -> SpecForgeConfig:
    """Root configuration used by controller and API tests."""
    return SpecForgeConfig(ai=ai_config)


@pytest.fixture
def scripted_ai(ai_config: AIConfig) -> ScriptedAIClient:
    return ScriptedAIClient(ai_config)


@pytest.fixture
def domain_analysis() -> dict[str, Any]:
    return {
        "domain_summary": "Appointment booking for independent physiotherapists.",
        "competitor_analysis": [
            {
                "name": "Cliniko",
                "features": ["calendar", "invoicing"],
                "weaknesses": ["expensive for solo practitioners"],
            }
        ],
        "pain_points": ["no-shows"],
        "user_personas": ["solo physiotherapist"],
        "compliance_requirements": ["GDPR"],
    }


@pytest.fixture
def feature_decomposition() -> dict[str, Any]:
    return {
        "feature_areas": [
            {
                "area": "Scheduling",
                "sub_features": [
                    {
                        "name": "Booking",
                        "components": ["calendar view", {"name": "reminder email"}],
                    }
                ],
            }
        ]
    }


@pytest.fixture
def technical_requirements() -> dict[str, Any]:
    return {
        "component_requirements": [
            {"component": "calendar view", "library": "FullCalendar"},
            {"component": "reminder email", "library": "Postmark"},
        ],
        "compliance": {"frameworks": ["GDPR"]},
        "recommended_stack": {"backend": "FastAPI", "database": "PostgreSQL"},
        "estimates": {"build_hours_min": 60, "build_hours_max": 120},
    }


@pytest.fixture
def competitive_gaps() -> dict[str, Any]:
    return {
        "competitive_gaps": ["no solo-practitioner pricing"],
        "unique_angle": "Flat pricing and SMS reminders for solo clinics",
        "mvp_scope": {"must_have": ["calendar view"], "nice_to_have": ["reminder email"]},
    }


@pytest.fixture
def good_draft() -> dict[str, Any]:
    """A document draft that passes every validation check."""
    return {
        "gate_0": {
            "system_name": "PhysioBook",
            "tagline": "Bookings for solo clinics",
            "what_it_is": "Appointment booking",
            "who_it_is_for": "Independent physiotherapists",
            "what_it_is_not": ["an EHR"],
        },
        "gate_1": {
            "entities": [
                {"name": "Client", "owner": "Practitioner", "key_fields": ["email"]},
                {
                    "name": "Booking",
                    "parent": "Client",
                    "states": ["requested", "confirmed", "cancelled"],
                    "initial_state": "requested",
                    "terminal_states": ["cancelled"],
                },
            ]
        },
        "gate_2": {
            "state_changes": [
                {
                    "id": "SC-1",
                    "entity": "Booking",
                    "actor": "Practitioner",
                    "action": "confirm",
                    "from_state": "requested",
                    "to_state": "confirmed",
                    "integrations": ["Postmark"],
                },
                {
                    "id": "SC-2",
                    "entity": "Booking",
                    "actor": "Client",
                    "action": "cancel",
                    "from_state": "confirmed",
                    "to_state": "cancelled",
                },
            ]
        },
        "gate_3": {
            "permissions": [
                {
                    "role": "Practitioner",
                    "entity": "Client",
                    "can_create": True,
                    "can_read": True,
                    "can_update": True,
                },
                {
                    "role": "Client",
                    "entity": "Booking",
                    "can_create": True,
                    "can_read": True,
                    "can_archive": True,
                },
            ]
        },
        "gate_4": {
            "dependencies": [
                {"from_entity": "Client", "to_entity": "Booking", "relationship": "has_many"}
            ]
        },
        "gate_5": {
            "integrations": [
                {
                    "name": "Postmark",
                    "type": "email",
                    "auth_method": "api_key",
                    "endpoints": ["/email"],
                    "error_handling": "retry with backoff",
                }
            ]
        },
        "full_document": "# PhysioBook\n\nCalendar view of bookings; reminder email on confirm.",
    }


@pytest.fixture
def weak_draft(good_draft: dict[str, Any]) -> dict[str, Any]:
    """The good draft with gates 2, 3 and 4 emptied; scores well below 60."""
    draft = copy.deepcopy(good_draft)
    draft["gate_2"] = {"state_changes": []}
    draft["gate_3"] = {"permissions": []}
    draft["gate_4"] = {"dependencies": []}
    draft["gate_5"] = {"integrations": []}
    return draft


@pytest.fixture
def fix_patch(good_draft: dict[str, Any]) -> dict[str, Any]:
    """GatePatch restoring the gates the weak draft lacks."""
    return {
        "gate_2": good_draft["gate_2"],
        "gate_3": good_draft["gate_3"],
        "gate_4": good_draft["gate_4"],
    }


@pytest.fixture
def script_research(
    scripted_ai: ScriptedAIClient,
    domain_analysis: dict[str, Any],
    feature_decomposition: dict[str, Any],
    technical_requirements: dict[str, Any],
    competitive_gaps: dict[str, Any],
) -> Callable[[], ScriptedAIClient]:
    """Queue one valid response per research phase."""

    def _script() -> ScriptedAIClient:
        scripted_ai.script("DomainAnalysis", domain_analysis)
        scripted_ai.script("FeatureDecomposition", feature_decomposition)
        scripted_ai.script("TechnicalRequirements", technical_requirements)
        scripted_ai.script("CompetitiveGaps", competitive_gaps)
        return scripted_ai

    return _script
