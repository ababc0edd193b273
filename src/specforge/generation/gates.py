"""Typed sections ("gates") of a generated specification document.

Gate 0  identity
Gate 1  entities
Gate 2  state changes
Gate 3  permissions
Gate 4  dependencies
Gate 5  integrations

The AI produces a DocumentDraft in one structured call. The auto-fix pass
requests a GatePatch containing only the failing gates and merges it over
the draft with ``apply_patch``.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

GATE_NUMBERS = (0, 1, 2, 3, 4, 5)


class Gate0Identity(BaseModel):
    system_name: str
    tagline: str = ""
    what_it_is: str = ""
    who_it_is_for: str = ""
    what_it_is_not: list[str] = Field(default_factory=list)


class Entity(BaseModel):
    """A persisted entity and its lifecycle."""

    name: str
    owner: str | None = None
    parent: str | None = None
    references: list[str] = Field(default_factory=list)
    states: list[str] = Field(default_factory=list)
    initial_state: str | None = None
    terminal_states: list[str] = Field(default_factory=list)
    source_of_truth: str | None = None
    key_fields: list[str] = Field(default_factory=list)


class Gate1Entities(BaseModel):
    entities: list[Entity] = Field(default_factory=list)


class StateChange(BaseModel):
    """A transition between two states of one entity."""

    id: str
    entity: str
    actor: str = ""
    action: str = ""
    from_state: str | None = None
    to_state: str
    preconditions: list[str] = Field(default_factory=list)
    integrations: list[str] = Field(default_factory=list)


class Gate2StateChanges(BaseModel):
    state_changes: list[StateChange] = Field(default_factory=list)


class Permission(BaseModel):
    """What one role may do to one entity."""

    role: str
    entity: str
    can_create: bool = False
    can_read: bool = False
    can_update: bool = False
    can_archive: bool = False
    special_rules: list[str] = Field(default_factory=list)


class Gate3Permissions(BaseModel):
    permissions: list[Permission] = Field(default_factory=list)


class Dependency(BaseModel):
    """A relationship between two entities."""

    from_entity: str
    to_entity: str
    relationship: Literal["has_one", "has_many", "belongs_to"]
    nullable: bool = False


class Gate4Dependencies(BaseModel):
    dependencies: list[Dependency] = Field(default_factory=list)


class Integration(BaseModel):
    """An external service the system talks to."""

    name: str
    type: str = ""
    auth_method: str | None = None
    endpoints: list[str] = Field(default_factory=list)
    webhooks_in: list[str] = Field(default_factory=list)
    webhooks_out: list[str] = Field(default_factory=list)
    error_handling: str | None = None
    rate_limits: str | None = None
    env_vars: list[str] = Field(default_factory=list)


class Gate5Integrations(BaseModel):
    integrations: list[Integration] = Field(default_factory=list)


class DocumentDraft(BaseModel):
    """Complete generated document before persistence."""

    gate_0: Gate0Identity
    gate_1: Gate1Entities
    gate_2: Gate2StateChanges = Field(default_factory=Gate2StateChanges)
    gate_3: Gate3Permissions = Field(default_factory=Gate3Permissions)
    gate_4: Gate4Dependencies = Field(default_factory=Gate4Dependencies)
    gate_5: Gate5Integrations = Field(default_factory=Gate5Integrations)
    full_document: str = ""
    recommended_stack: dict[str, Any] | None = None

    def gates_dump(self) -> dict[str, dict[str, Any]]:
        """Serialize the six gates for persistence."""
        return {
            f"gate_{n}": getattr(self, f"gate_{n}").model_dump(mode="json")
            for n in GATE_NUMBERS
        }


class GatePatch(BaseModel):
    """Replacement gates returned by the auto-fix pass."""

    gate_0: Gate0Identity | None = None
    gate_1: Gate1Entities | None = None
    gate_2: Gate2StateChanges | None = None
    gate_3: Gate3Permissions | None = None
    gate_4: Gate4Dependencies | None = None
    gate_5: Gate5Integrations | None = None
    full_document: str | None = None


def apply_patch(
    draft: DocumentDraft,
    patch: GatePatch,
    allowed_gates: set[int],
) -> DocumentDraft:
    """Merge patched gates over a draft.

    Only gates in ``allowed_gates`` are taken from the patch; anything else
    the model returned is ignored so passing gates stay untouched.
    """
    updates: dict[str, Any] = {}
    for number in allowed_gates:
        value = getattr(patch, f"gate_{number}")
        if value is not None:
            updates[f"gate_{number}"] = value
    if patch.full_document:
        updates["full_document"] = patch.full_document
    return draft.model_copy(update=updates)
