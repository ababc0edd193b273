"""Unit tests for deterministic document validation."""

from __future__ import annotations

import copy
from typing import Any

import pytest

from specforge.generation.engine import complexity_for
from specforge.generation.gates import DocumentDraft, GatePatch, apply_patch
from specforge.generation.validator import validate_document

COMPONENTS = ["calendar view", "reminder email"]


def _checks(draft: dict[str, Any], components: list[str] = COMPONENTS) -> set[str]:
    report = validate_document(DocumentDraft.model_validate(draft), components)
    return {finding.check for finding in report.findings}


class TestScores:
    def test_consistent_document_scores_100(self, good_draft: dict[str, Any]) -> None:
        report = validate_document(DocumentDraft.model_validate(good_draft), COMPONENTS)
        assert report.score == 100
        assert report.findings == []
        assert report.passed_weight == report.total_weight

    def test_weak_document_scores_below_threshold(self, weak_draft: dict[str, Any]) -> None:
        report = validate_document(DocumentDraft.model_validate(weak_draft), COMPONENTS)
        assert report.score == 22
        assert report.failing_gates == {2, 3, 4}

    def test_no_entities_scores_zero(self, good_draft: dict[str, Any]) -> None:
        draft = copy.deepcopy(good_draft)
        draft["gate_1"] = {"entities": []}
        report = validate_document(DocumentDraft.model_validate(draft), COMPONENTS)
        assert report.score == 0
        assert [f.check for f in report.findings] == ["entity_model_non_empty"]
        assert report.findings[0].severity == "error"

    def test_deterministic(self, weak_draft: dict[str, Any]) -> None:
        draft = DocumentDraft.model_validate(weak_draft)
        first = validate_document(draft, COMPONENTS)
        second = validate_document(draft, COMPONENTS)
        assert first.score == second.score
        assert first.findings_dump() == second.findings_dump()

    def test_suggestions_are_unique_and_ordered(self, weak_draft: dict[str, Any]) -> None:
        report = validate_document(DocumentDraft.model_validate(weak_draft), COMPONENTS)
        assert len(report.suggestions) == len(set(report.suggestions))
        assert report.suggestions[0] == report.findings[0].suggestion


class TestChecks:
    def test_undeclared_dependency_target(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_4"]["dependencies"].append(
            {"from_entity": "Booking", "to_entity": "Invoice", "relationship": "has_one"}
        )
        assert _checks(good_draft) == {"dependency_targets_exist"}

    def test_incomplete_integration(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_5"]["integrations"][0]["auth_method"] = None
        report = validate_document(DocumentDraft.model_validate(good_draft), COMPONENTS)
        (finding,) = report.findings
        assert finding.check == "integration_complete"
        assert finding.gate == 5
        assert finding.severity == "warning"
        assert "auth method" in finding.message

    def test_undeclared_state_change_integration(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_2"]["state_changes"][1]["integrations"] = ["Twilio"]
        report = validate_document(DocumentDraft.model_validate(good_draft), COMPONENTS)
        (finding,) = report.findings
        assert finding.check == "state_change_integrations"
        assert finding.entity == "Twilio"

    def test_untraced_component(self, good_draft: dict[str, Any]) -> None:
        report = validate_document(
            DocumentDraft.model_validate(good_draft), [*COMPONENTS, "sms reminder"]
        )
        (finding,) = report.findings
        assert finding.check == "component_traceability"
        assert "sms reminder" in finding.message

    def test_components_optional(self, good_draft: dict[str, Any]) -> None:
        report = validate_document(DocumentDraft.model_validate(good_draft))
        assert report.score == 100

    def test_unreachable_state(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_2"]["state_changes"].pop()
        report = validate_document(DocumentDraft.model_validate(good_draft), COMPONENTS)
        (finding,) = report.findings
        assert finding.check == "states_reachable"
        assert "cancelled" in finding.message

    def test_missing_terminal_state(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_1"]["entities"][1]["terminal_states"] = []
        assert _checks(good_draft) == {"terminal_state"}

    def test_reference_without_dependency(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_1"]["entities"][0]["references"] = ["Booking"]
        good_draft["gate_4"]["dependencies"] = []
        assert _checks(good_draft) == {"reference_declared", "no_orphans"}

    def test_crud_gap(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_3"]["permissions"][0]["can_create"] = False
        report = validate_document(DocumentDraft.model_validate(good_draft), COMPONENTS)
        (finding,) = report.findings
        assert finding.check == "crud_coverage"
        assert finding.entity == "Client"
        assert "create" in finding.message

    def test_names_compare_case_insensitively(self, good_draft: dict[str, Any]) -> None:
        good_draft["gate_3"]["permissions"][0]["entity"] = "client"
        good_draft["gate_4"]["dependencies"][0]["to_entity"] = "BOOKING"
        assert _checks(good_draft) == set()


class TestApplyPatch:
    def test_patch_restores_failing_gates(
        self, weak_draft: dict[str, Any], fix_patch: dict[str, Any]
    ) -> None:
        draft = DocumentDraft.model_validate(weak_draft)
        patched = apply_patch(draft, GatePatch.model_validate(fix_patch), {2, 3, 4})
        report = validate_document(patched, COMPONENTS)
        assert report.score == 95
        assert {f.check for f in report.findings} == {"state_change_integrations"}

    def test_only_allowed_gates_are_taken(
        self, weak_draft: dict[str, Any], fix_patch: dict[str, Any]
    ) -> None:
        draft = DocumentDraft.model_validate(weak_draft)
        patch = GatePatch.model_validate(
            {**fix_patch, "gate_0": {"system_name": "Renamed"}}
        )
        patched = apply_patch(draft, patch, {2})
        assert patched.gate_0.system_name == "PhysioBook"
        assert len(patched.gate_2.state_changes) == 2
        assert patched.gate_3.permissions == []

    def test_original_draft_untouched(
        self, weak_draft: dict[str, Any], fix_patch: dict[str, Any]
    ) -> None:
        draft = DocumentDraft.model_validate(weak_draft)
        apply_patch(draft, GatePatch.model_validate(fix_patch), {2, 3, 4})
        assert draft.gate_2.state_changes == []

    def test_full_document_replaced_when_present(self, weak_draft: dict[str, Any]) -> None:
        draft = DocumentDraft.model_validate(weak_draft)
        patched = apply_patch(draft, GatePatch(full_document="# New"), set())
        assert patched.full_document == "# New"

    def test_gates_dump_has_six_gates(self, good_draft: dict[str, Any]) -> None:
        dumped = DocumentDraft.model_validate(good_draft).gates_dump()
        assert list(dumped) == [f"gate_{n}" for n in range(6)]


@pytest.mark.parametrize(
    "count,rating",
    [(1, "simple"), (3, "simple"), (4, "moderate"), (8, "moderate"), (15, "complex"), (16, "enterprise")],
)
def test_complexity_for(count: int, rating: str) -> None:
    assert complexity_for(count) == rating
