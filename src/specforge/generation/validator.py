"""Deterministic cross-reference validation of generated documents.

``validate_document`` is a pure function of the draft (and the optional
list of researched components): identical input always yields identical
findings and score. No AI is involved.

Checks (weight):
    entity_model_non_empty (2)       gate 1 declares at least one entity
    crud_coverage (2)                entity can be created, read, and updated or archived
    permissions_record (2)           entity has at least one permission record
    reference_declared (2)           each parent/reference appears in gate 4
    states_reachable (2)             every state reachable from the initial state
    terminal_state (1)               entity with states declares a terminal state
    dependency_targets_exist (1)     gate 4 only names declared entities
    no_orphans (1)                   entity takes part in some dependency
    integration_complete (1)         integration has auth, endpoints and error handling
    state_change_integrations (1)    integrations used by state changes are declared
    component_traceability (1)       researched components appear in the document

Score is floor(100 * passed_weight / total_weight).
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel

from specforge.generation.gates import DocumentDraft, Entity

STRUCTURAL_WEIGHT = 2
ADVISORY_WEIGHT = 1


class ValidationFinding(BaseModel):
    """One failed check.

    Attributes:
        gate: Gate the problem lives in (and that auto-fix regenerates)
        check: Check identifier
        entity: Entity or integration name, if the check is per-item
        message: What is wrong
        severity: error for structural checks, warning otherwise
        suggestion: How to fix it
    """

    gate: int
    check: str
    entity: str | None = None
    message: str
    severity: Literal["error", "warning"]
    suggestion: str


@dataclass
class ValidationReport:
    """Outcome of validating one draft."""

    score: int
    passed_weight: int
    total_weight: int
    findings: list[ValidationFinding] = field(default_factory=list)

    @property
    def failing_gates(self) -> set[int]:
        return {finding.gate for finding in self.findings}

    @property
    def suggestions(self) -> list[str]:
        seen: dict[str, None] = {}
        for finding in self.findings:
            seen.setdefault(finding.suggestion, None)
        return list(seen)

    def findings_dump(self) -> list[dict[str, Any]]:
        return [finding.model_dump(mode="json") for finding in self.findings]


class _Tally:
    def __init__(self) -> None:
        self.passed = 0
        self.total = 0
        self.findings: list[ValidationFinding] = []

    def check(
        self,
        ok: bool,
        *,
        weight: int,
        gate: int,
        check: str,
        entity: str | None,
        message: str,
        suggestion: str,
    ) -> None:
        self.total += weight
        if ok:
            self.passed += weight
            return
        self.findings.append(
            ValidationFinding(
                gate=gate,
                check=check,
                entity=entity,
                message=message,
                severity="error" if weight >= STRUCTURAL_WEIGHT else "warning",
                suggestion=suggestion,
            )
        )


def _key(name: str | None) -> str:
    return (name or "").strip().lower()


def _reachable_states(entity: Entity, edges: list[tuple[str, str]]) -> set[str]:
    start = _key(entity.initial_state or entity.states[0])
    seen = {start}
    frontier = [start]
    while frontier:
        current = frontier.pop()
        for source, target in edges:
            if source == current and target not in seen:
                seen.add(target)
                frontier.append(target)
    return seen


def validate_document(
    draft: DocumentDraft,
    components: Sequence[str] = (),
) -> ValidationReport:
    """Validate a draft's gates against each other.

    Args:
        draft: Generated document draft.
        components: Atomic component names from the feature decomposition.

    Returns:
        ValidationReport with score and findings.
    """
    tally = _Tally()
    entities = draft.gate_1.entities

    tally.check(
        bool(entities),
        weight=STRUCTURAL_WEIGHT,
        gate=1,
        check="entity_model_non_empty",
        entity=None,
        message="No entities are declared",
        suggestion="Declare every persisted entity in gate 1",
    )
    if not entities:
        return ValidationReport(
            score=0, passed_weight=0, total_weight=tally.total, findings=tally.findings
        )

    declared = {_key(entity.name) for entity in entities}
    permissions = draft.gate_3.permissions
    dependencies = draft.gate_4.dependencies
    linked = {
        pair
        for dep in dependencies
        for pair in ((_key(dep.from_entity), _key(dep.to_entity)),
                     (_key(dep.to_entity), _key(dep.from_entity)))
    }
    in_dependency = {_key(dep.from_entity) for dep in dependencies} | {
        _key(dep.to_entity) for dep in dependencies
    }

    for entity in entities:
        name = entity.name
        key = _key(name)
        entity_perms = [p for p in permissions if _key(p.entity) == key]

        tally.check(
            bool(entity_perms),
            weight=STRUCTURAL_WEIGHT,
            gate=3,
            check="permissions_record",
            entity=name,
            message=f"{name} has no permission record",
            suggestion=f"Add at least one role permission for {name} in gate 3",
        )

        can_create = any(p.can_create for p in entity_perms)
        can_read = any(p.can_read for p in entity_perms)
        can_change = any(p.can_update or p.can_archive for p in entity_perms)
        missing = [
            op
            for op, ok in (
                ("create", can_create),
                ("read", can_read),
                ("update or archive", can_change),
            )
            if not ok
        ]
        tally.check(
            not missing,
            weight=STRUCTURAL_WEIGHT,
            gate=3,
            check="crud_coverage",
            entity=name,
            message=f"{name} has no role allowed to {', '.join(missing)}",
            suggestion=f"Grant some role {', '.join(missing)} on {name} in gate 3",
        )

        for ref in [r for r in [entity.parent, *entity.references] if r]:
            tally.check(
                (key, _key(ref)) in linked,
                weight=STRUCTURAL_WEIGHT,
                gate=4,
                check="reference_declared",
                entity=name,
                message=f"{name} references {ref} but gate 4 has no dependency between them",
                suggestion=f"Declare the {name} / {ref} relationship in gate 4",
            )

        if entity.states:
            state_keys = {_key(s) for s in entity.states}
            edges = [
                (_key(sc.from_state), _key(sc.to_state))
                for sc in draft.gate_2.state_changes
                if _key(sc.entity) == key and sc.from_state
            ]
            unreachable = sorted(state_keys - _reachable_states(entity, edges))
            tally.check(
                not unreachable,
                weight=STRUCTURAL_WEIGHT,
                gate=2,
                check="states_reachable",
                entity=name,
                message=f"{name} states not reachable from the initial state: {', '.join(unreachable)}",
                suggestion=f"Add state changes in gate 2 that lead to every {name} state",
            )

            terminals = {_key(s) for s in entity.terminal_states} & state_keys
            tally.check(
                bool(terminals),
                weight=ADVISORY_WEIGHT,
                gate=1,
                check="terminal_state",
                entity=name,
                message=f"{name} has no terminal state",
                suggestion=f"Mark at least one of {name}'s states as terminal in gate 1",
            )

        if len(entities) > 1:
            tally.check(
                key in in_dependency,
                weight=ADVISORY_WEIGHT,
                gate=4,
                check="no_orphans",
                entity=name,
                message=f"{name} is not related to any other entity",
                suggestion=f"Relate {name} to the entities it belongs to in gate 4",
            )

    for dep in dependencies:
        unknown = [
            e for e in (dep.from_entity, dep.to_entity) if _key(e) not in declared
        ]
        tally.check(
            not unknown,
            weight=ADVISORY_WEIGHT,
            gate=4,
            check="dependency_targets_exist",
            entity=dep.from_entity,
            message=f"Dependency names undeclared entities: {', '.join(unknown)}",
            suggestion="Only relate entities that gate 1 declares",
        )

    integrations = draft.gate_5.integrations
    for integration in integrations:
        gaps = [
            label
            for label, ok in (
                ("auth method", bool(integration.auth_method)),
                ("endpoints", bool(integration.endpoints)),
                ("error handling", bool(integration.error_handling)),
            )
            if not ok
        ]
        tally.check(
            not gaps,
            weight=ADVISORY_WEIGHT,
            gate=5,
            check="integration_complete",
            entity=integration.name,
            message=f"Integration {integration.name} is missing {', '.join(gaps)}",
            suggestion=f"Declare {', '.join(gaps)} for {integration.name} in gate 5",
        )

    declared_integrations = {_key(i.name) for i in integrations}
    used = sorted(
        {name for sc in draft.gate_2.state_changes for name in sc.integrations}
    )
    for name in used:
        tally.check(
            _key(name) in declared_integrations,
            weight=ADVISORY_WEIGHT,
            gate=5,
            check="state_change_integrations",
            entity=name,
            message=f"State changes call {name}, which gate 5 does not declare",
            suggestion=f"Add {name} to gate 5 with auth, endpoints and error handling",
        )

    if components:
        haystack = (
            json.dumps(draft.gates_dump(), sort_keys=True) + draft.full_document
        ).lower()
        untraced = [c for c in components if _key(c) and _key(c) not in haystack]
        tally.check(
            not untraced,
            weight=ADVISORY_WEIGHT,
            gate=1,
            check="component_traceability",
            entity=None,
            message=f"Components not traceable in the document: {', '.join(untraced)}",
            suggestion="Map every researched component to an entity field, state change or UI element",
        )

    score = (100 * tally.passed) // tally.total if tally.total else 0
    return ValidationReport(
        score=score,
        passed_weight=tally.passed,
        total_weight=tally.total,
        findings=tally.findings,
    )
