"""Generation engine: research artifact in, validated six-gate document out.

One structured AI call produces the draft. The deterministic validator
scores it; below ``QUALITY_THRESHOLD`` exactly one auto-fix pass asks the
AI to regenerate only the failing gates. The better of the two drafts is
kept, so the final score is never lower than the first one.

Document status flow: generating -> validating -> complete | failed.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.ai.client import AICapability, ChatMessage
from specforge.ai.prompts import GATE_FIX_PROMPT, GENERATION_PROMPT
from specforge.config import AIConfig
from specforge.database.models.document import DocumentStatus
from specforge.database.models.research import ResearchStatus
from specforge.database.queries import conversation as conversation_queries
from specforge.database.queries import document as document_queries
from specforge.database.queries import project as project_queries
from specforge.database.queries import research as research_queries
from specforge.errors import NotReadyError, ValidationBelowThresholdError
from specforge.generation.gates import DocumentDraft, GatePatch, apply_patch
from specforge.generation.validator import ValidationReport, validate_document
from specforge.orchestrator.progress import ProgressChannel, ProgressEvent
from specforge.research.schemas import FeatureDecomposition, TechnicalRequirements

logger = structlog.get_logger(__name__)

QUALITY_THRESHOLD = 60

DEFAULT_BUILD_HOURS = (40, 80)


def complexity_for(entity_count: int) -> str:
    """Complexity rating from the number of declared entities."""
    if entity_count <= 3:
        return "simple"
    if entity_count <= 8:
        return "moderate"
    if entity_count <= 15:
        return "complex"
    return "enterprise"


@dataclass
class GenerationResult:
    """Summary of a successful generation.

    Attributes:
        document_id: Persisted document id
        quality_score: Final validation score
        findings: Remaining validation findings
        entity_count: Gate 1 entity count
        state_change_count: Gate 2 state change count
        complexity_rating: simple, moderate, complex or enterprise
        build_hours_min: Lower build-hour estimate
        build_hours_max: Upper build-hour estimate
        cost_usd: AI cost summed across the generation and fix calls
        fix_attempted: Whether the auto-fix pass ran
    """

    document_id: UUID
    quality_score: int
    entity_count: int
    state_change_count: int
    complexity_rating: str
    build_hours_min: int
    build_hours_max: int
    cost_usd: float
    fix_attempted: bool
    findings: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class _GenerationInputs:
    description: str
    research: dict[str, dict[str, Any] | None]
    components: list[str]
    build_hours: tuple[int, int]
    recommended_stack: dict[str, Any] | None


class GenerationEngine:
    """Turns a completed research artifact into a validated document.

    Attributes:
        session_factory: Async session factory for persistence
        ai: AI capability used for generation and auto-fix
        config: AI configuration used to resolve the generation tier
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ai: AICapability,
        config: AIConfig,
    ) -> None:
        self.session_factory = session_factory
        self.ai = ai
        self.config = config
        self.logger = logger.bind(component="GenerationEngine")

    async def _load(self, project_id: UUID) -> _GenerationInputs:
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            artifact = await research_queries.get_research_artifact(session, project_id)
            if artifact is None or artifact.status != ResearchStatus.complete:
                raise NotReadyError(
                    f"Research for project {project_id} is not complete"
                )
            user_turns = await conversation_queries.list_description_turns(session, project_id)
            parts = [project.description] if project.description else []
            parts.extend(turn.content for turn in user_turns)

            research = {
                "domain_analysis": artifact.domain_analysis,
                "feature_decomposition": artifact.feature_decomposition,
                "technical_requirements": artifact.technical_requirements,
                "competitive_gaps": artifact.competitive_gaps,
            }

        components: list[str] = []
        if research["feature_decomposition"] is not None:
            decomposition = FeatureDecomposition.model_validate(
                research["feature_decomposition"]
            )
            components = [c.name for c in decomposition.components()]

        build_hours = DEFAULT_BUILD_HOURS
        recommended_stack = None
        if research["technical_requirements"] is not None:
            technical = TechnicalRequirements.model_validate(
                research["technical_requirements"]
            )
            estimates = technical.estimates
            if estimates.build_hours_min is not None and estimates.build_hours_max is not None:
                build_hours = (estimates.build_hours_min, estimates.build_hours_max)
            recommended_stack = technical.recommended_stack.model_dump(mode="json")

        return _GenerationInputs(
            description="\n\n".join(parts),
            research=research,
            components=components,
            build_hours=build_hours,
            recommended_stack=recommended_stack,
        )

    def _generation_context(
        self,
        inputs: _GenerationInputs,
        integrations: Sequence[str] | None,
    ) -> list[ChatMessage]:
        sections = [f"## App description\n{inputs.description}"]
        for name, payload in inputs.research.items():
            title = name.replace("_", " ").capitalize()
            if payload is None:
                sections.append(f"## {title}\n(not available: this research phase was skipped)")
            else:
                sections.append(f"## {title}\n```json\n{json.dumps(payload, indent=2)}\n```")
        if integrations:
            sections.append(
                "## Required integrations\n" + "\n".join(f"- {i}" for i in integrations)
            )
        return [ChatMessage(role="user", content="\n\n".join(sections))]

    async def _emit(
        self,
        progress: ProgressChannel | None,
        project_id: UUID,
        status: str,
        message: str,
        percent: int,
        *,
        terminal: bool = False,
        data: dict[str, Any] | None = None,
    ) -> None:
        if progress is None:
            return
        await progress.emit(
            ProgressEvent(
                project_id=str(project_id),
                stage="generation",
                status=status,
                message=message,
                percent=percent,
                terminal=terminal,
                data=data or {},
            )
        )

    async def _fix(
        self,
        draft: DocumentDraft,
        report: ValidationReport,
        tier: str,
    ) -> tuple[DocumentDraft, float]:
        gates = sorted(report.failing_gates)
        findings = "\n".join(
            f"- gate {f.gate} [{f.check}] {f.message}. Suggestion: {f.suggestion}"
            for f in report.findings
        )
        context = [
            ChatMessage(
                role="user",
                content=(
                    "## Current specification\n```json\n"
                    f"{json.dumps(draft.model_dump(mode='json'), indent=2)}\n```"
                ),
            )
        ]
        result = await self.ai.complete_structured(
            context,
            GatePatch,
            system_prompt=GATE_FIX_PROMPT.format(
                gates=", ".join(str(g) for g in gates), findings=findings
            ),
            tier=tier,
        )
        return apply_patch(draft, result.value, set(gates)), result.cost_usd

    async def _mark_failed(self, project_id: UUID, **fields: Any) -> None:
        async with self.session_factory() as session, session.begin():
            document = await document_queries.get_document(session, project_id)
            if document is None:
                return
            if fields:
                await document_queries.save_document_result(session, document, **fields)
            await document_queries.update_document_status(
                session, document, DocumentStatus.failed
            )

    async def generate(
        self,
        project_id: UUID,
        integrations: Sequence[str] | None = None,
        progress: ProgressChannel | None = None,
    ) -> GenerationResult:
        """Generate, validate and persist the project's document.

        Args:
            project_id: Project with completed research.
            integrations: Integrations the user asked for explicitly.
            progress: Optional channel for progress events.

        Returns:
            GenerationResult for the persisted document.

        Raises:
            NotReadyError: If research is not complete.
            ValidationBelowThresholdError: If the best draft still scores
                below QUALITY_THRESHOLD after the auto-fix pass.
            ProviderUnavailableError: If the AI provider stays unavailable.
            MalformedOutputError: If the draft cannot be parsed.
        """
        inputs = await self._load(project_id)
        tier = self.config.tier_for("generation")

        async with self.session_factory() as session, session.begin():
            document = await document_queries.start_document(session, project_id)
            document_id = document.id

        self.logger.info(
            "generation_started",
            project_id=str(project_id),
            document_id=str(document_id),
            tier=tier,
            components=len(inputs.components),
        )
        await self._emit(progress, project_id, "started", "Generating specification", 10)

        try:
            result = await self.ai.complete_structured(
                self._generation_context(inputs, integrations),
                DocumentDraft,
                system_prompt=GENERATION_PROMPT,
                tier=tier,
            )
        except Exception as e:
            await self._mark_failed(project_id)
            self.logger.error(
                "generation_error",
                project_id=str(project_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            await self._emit(
                progress,
                project_id,
                "error",
                f"Generation failed: {e}",
                100,
                terminal=True,
                data={"error_code": getattr(e, "error_code", type(e).__name__)},
            )
            raise

        draft: DocumentDraft = result.value
        cost = result.cost_usd

        async with self.session_factory() as session, session.begin():
            document = await document_queries.get_document(session, project_id)
            await document_queries.update_document_status(
                session, document, DocumentStatus.validating
            )
        await self._emit(progress, project_id, "validating", "Validating cross-references", 50)

        report = validate_document(draft, inputs.components)
        fix_attempted = False

        if report.score < QUALITY_THRESHOLD:
            fix_attempted = True
            self.logger.info(
                "generation_fix_started",
                project_id=str(project_id),
                score=report.score,
                failing_gates=sorted(report.failing_gates),
            )
            await self._emit(
                progress,
                project_id,
                "fixing",
                f"Quality score {report.score}, fixing gates "
                + ", ".join(str(g) for g in sorted(report.failing_gates)),
                75,
                data={"score": report.score},
            )
            try:
                fixed, fix_cost = await self._fix(draft, report, tier)
            except Exception as e:
                # The first draft still stands; its score decides the outcome
                self.logger.warning(
                    "generation_fix_failed",
                    project_id=str(project_id),
                    error_type=type(e).__name__,
                    error=str(e),
                )
            else:
                cost += fix_cost
                fixed_report = validate_document(fixed, inputs.components)
                self.logger.info(
                    "generation_fix_completed",
                    project_id=str(project_id),
                    score_before=report.score,
                    score_after=fixed_report.score,
                )
                if fixed_report.score >= report.score:
                    draft, report = fixed, fixed_report

        entity_count = len(draft.gate_1.entities)
        fields = {
            **draft.gates_dump(),
            "full_document": draft.full_document,
            "recommended_stack": draft.recommended_stack or inputs.recommended_stack,
            "entity_count": entity_count,
            "state_change_count": len(draft.gate_2.state_changes),
            "quality_score": report.score,
            "findings": report.findings_dump(),
            "complexity_rating": complexity_for(entity_count),
            "build_hours_min": inputs.build_hours[0],
            "build_hours_max": inputs.build_hours[1],
            "generation_cost_usd": cost,
            "fix_attempted": fix_attempted,
        }

        if report.score < QUALITY_THRESHOLD:
            await self._mark_failed(project_id, **fields)
            self.logger.warning(
                "generation_below_threshold",
                project_id=str(project_id),
                score=report.score,
                threshold=QUALITY_THRESHOLD,
            )
            await self._emit(
                progress,
                project_id,
                "error",
                f"Quality score {report.score} is below {QUALITY_THRESHOLD}",
                100,
                terminal=True,
                data={"score": report.score},
            )
            raise ValidationBelowThresholdError(
                report.score, report.findings_dump(), report.suggestions
            )

        async with self.session_factory() as session, session.begin():
            document = await document_queries.get_document(session, project_id)
            await document_queries.save_document_result(session, document, **fields)
            await document_queries.update_document_status(
                session, document, DocumentStatus.complete
            )

        self.logger.info(
            "generation_completed",
            project_id=str(project_id),
            document_id=str(document_id),
            score=report.score,
            entity_count=entity_count,
            fix_attempted=fix_attempted,
            cost_usd=round(cost, 6),
        )
        await self._emit(
            progress,
            project_id,
            "complete",
            f"Specification ready, quality score {report.score}",
            100,
            terminal=True,
            data={"score": report.score, "document_id": str(document_id)},
        )
        return GenerationResult(
            document_id=document_id,
            quality_score=report.score,
            entity_count=entity_count,
            state_change_count=fields["state_change_count"],
            complexity_rating=fields["complexity_rating"],
            build_hours_min=inputs.build_hours[0],
            build_hours_max=inputs.build_hours[1],
            cost_usd=cost,
            fix_attempted=fix_attempted,
            findings=fields["findings"],
        )
