"""Four-phase research pipeline for SpecForge.

Phases run strictly in order; each produces one write-once payload on the
project's research artifact:

1. Domain and competitor analysis (search-augmented)
2. Feature decomposition
3. Technical requirements (advanced tier by default)
4. Competitive gaps

``run_next_phase`` executes exactly one phase and takes the user feedback
collected since the previous phase's presentation as an explicit argument.
The pipeline does not verify that feedback exists; collecting it is the
caller's job. Any phase exception marks the artifact ``failed`` and is
re-raised; the caller may then skip the phase or restart the pipeline.

The pipeline never holds a database transaction open across an AI call:
each read and each write happens in its own short transaction.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any
from uuid import UUID

import structlog
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.ai.client import AICapability, ChatMessage, StructuredResult
from specforge.ai.prompts import (
    NOVEL_CATEGORY_NOTE,
    RESEARCH_PHASE_1_PROMPT,
    RESEARCH_PHASE_2_PROMPT,
    RESEARCH_PHASE_3_PROMPT,
    RESEARCH_PHASE_4_PROMPT,
)
from specforge.config import AIConfig
from specforge.database.models.research import ResearchArtifact, ResearchStatus
from specforge.database.queries import conversation as conversation_queries
from specforge.database.queries import project as project_queries
from specforge.database.queries import research as research_queries
from specforge.errors import NotReadyError
from specforge.orchestrator.progress import ProgressChannel, ProgressEvent
from specforge.research.schemas import (
    PHASE_NAMES,
    PHASE_SCHEMAS,
    CompetitiveGaps,
    DomainAnalysis,
    FeatureDecomposition,
    TechnicalRequirements,
)

logger = structlog.get_logger(__name__)

TOTAL_PHASES = 4

_SETTLED_STATUSES = {"completed", "skipped", "complete"}

FeedbackProvider = Callable[[int], Awaitable[Sequence[str]]]
PhaseHook = Callable[["PhaseOutcome"], Awaitable[None]]


@dataclass
class PhaseOutcome:
    """Result of settling one research phase.

    Attributes:
        phase: Phase number (1-4)
        status: "completed" or "skipped"
        message: Human-readable progress message
        payload: Persisted payload (None when skipped)
        cost_usd: AI cost of this phase
        artifact_status: Artifact status after the phase settled
        novel_category: Whether phase 1 found no competitors
    """

    phase: int
    status: str
    message: str
    payload: dict[str, Any] | None
    cost_usd: float
    artifact_status: ResearchStatus
    novel_category: bool

    @property
    def research_complete(self) -> bool:
        return self.artifact_status == ResearchStatus.complete


@dataclass
class _PhaseInputs:
    description: str
    prior: dict[int, dict[str, Any] | None]
    novel_category: bool


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _section(title: str, payload: dict[str, Any] | None) -> str:
    if payload is None:
        return f"## {title}\n(not available: this research phase was skipped)"
    return f"## {title}\n```json\n{json.dumps(payload, indent=2)}\n```"


def phase_message(phase: int, value: BaseModel) -> str:
    """Progress message for a completed phase."""
    if isinstance(value, DomainAnalysis):
        count = len(value.competitor_analysis)
        if count == 0:
            return "No direct competitors found, treating this as a novel category"
        return f"Found {count} competitors"
    if isinstance(value, FeatureDecomposition):
        return (
            f"Identified {len(value.components())} atomic components "
            f"across {len(value.feature_areas)} feature areas"
        )
    if isinstance(value, TechnicalRequirements):
        return (
            f"Mapped technical requirements for "
            f"{len(value.component_requirements)} components"
        )
    if isinstance(value, CompetitiveGaps):
        return "Research complete!"
    return f"Phase {phase} complete"


class ResearchPipeline:
    """Sequences the four research phases against one project's artifact.

    Attributes:
        session_factory: Async session factory for persistence
        ai: AI capability used for every phase
        config: AI configuration used to resolve per-phase tiers
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
        self.logger = logger.bind(component="ResearchPipeline")

    async def _load(self, project_id: UUID) -> tuple[ResearchArtifact, _PhaseInputs]:
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            artifact = await research_queries.get_research_artifact(session, project_id)
            if artifact is None:
                raise NotReadyError(f"Project {project_id} has no research artifact")

            user_turns = await conversation_queries.list_description_turns(session, project_id)
            parts = [project.description] if project.description else []
            parts.extend(turn.content for turn in user_turns)

            inputs = _PhaseInputs(
                description="\n\n".join(parts),
                prior={n: artifact.payload(n) for n in range(1, TOTAL_PHASES + 1)},
                novel_category=artifact.novel_category,
            )
            return artifact, inputs

    def _build_call(
        self,
        phase: int,
        inputs: _PhaseInputs,
        feedback: Sequence[str],
    ) -> tuple[str, list[ChatMessage]]:
        """Build the system prompt and context for a phase."""
        novel_note = NOVEL_CATEGORY_NOTE if inputs.novel_category else ""
        sections = [f"## App description\n{inputs.description}"]

        if phase == 1:
            prompt = RESEARCH_PHASE_1_PROMPT
        elif phase == 2:
            prompt = RESEARCH_PHASE_2_PROMPT.format(novel_note=novel_note)
            sections.append(_section("Domain analysis", inputs.prior[1]))
        elif phase == 3:
            prompt = RESEARCH_PHASE_3_PROMPT.format(novel_note=novel_note)
            sections.append(_section("Feature decomposition", inputs.prior[2]))
            compliance = (inputs.prior[1] or {}).get("compliance_requirements", [])
            flags = ", ".join(compliance) if compliance else "none detected"
            sections.append(f"## Compliance flags\n{flags}")
        else:
            prompt = RESEARCH_PHASE_4_PROMPT.format(novel_note=novel_note)
            sections.append(_section("Domain analysis", inputs.prior[1]))
            sections.append(_section("Feature decomposition", inputs.prior[2]))
            sections.append(_section("Technical requirements", inputs.prior[3]))

        if feedback:
            joined = "\n".join(f"- {item}" for item in feedback)
            sections.append(f"## User feedback on the previous phase\n{joined}")

        return prompt, [ChatMessage(role="user", content="\n\n".join(sections))]

    async def _emit(
        self,
        progress: ProgressChannel | None,
        project_id: UUID,
        phase: int,
        status: str,
        message: str,
        *,
        terminal: bool = False,
        data: dict[str, Any] | None = None,
    ) -> None:
        if progress is None:
            return
        # Percent reflects settled phases only
        settled = phase if status in _SETTLED_STATUSES else phase - 1
        await progress.emit(
            ProgressEvent(
                project_id=str(project_id),
                stage="research",
                phase_number=phase,
                status=status,
                message=message,
                percent=max(settled, 0) * 25,
                terminal=terminal,
                data=data or {},
            )
        )

    async def run_next_phase(
        self,
        project_id: UUID,
        preceding_feedback_turns: Sequence[str] = (),
        progress: ProgressChannel | None = None,
    ) -> PhaseOutcome:
        """Execute the next unsettled research phase.

        Args:
            project_id: Project whose artifact to advance.
            preceding_feedback_turns: User feedback collected after the
                previous phase was presented. Not verified here.
            progress: Optional channel for progress events.

        Returns:
            PhaseOutcome for the settled phase.

        Raises:
            NotReadyError: If the artifact is missing, complete or failed.
            ProviderUnavailableError: If the AI provider stays unavailable.
            MalformedOutputError: If the phase output cannot be parsed.
        """
        artifact, inputs = await self._load(project_id)
        if artifact.status == ResearchStatus.complete:
            raise NotReadyError(f"Research for project {project_id} is already complete")
        if artifact.status == ResearchStatus.failed:
            raise NotReadyError(
                f"Research phase {artifact.failed_phase} failed; "
                "proceed without it or restart the pipeline"
            )

        phase = artifact.settled_phase() + 1
        schema = PHASE_SCHEMAS[phase]
        tier = self.config.tier_for(f"research_phase_{phase}")
        prompt, context = self._build_call(phase, inputs, preceding_feedback_turns)

        self.logger.info(
            "research_phase_started",
            project_id=str(project_id),
            phase=phase,
            tier=tier,
            feedback_turns=len(preceding_feedback_turns),
            novel_category=inputs.novel_category,
        )
        await self._emit(
            progress, project_id, phase, "started", f"Running {PHASE_NAMES[phase]}"
        )

        try:
            result: StructuredResult[Any] = await self.ai.complete_structured(
                context,
                schema,
                system_prompt=prompt,
                tier=tier,
                web_search=phase == 1,
            )
        except Exception as e:
            await self._record_failure(project_id, phase, e)
            await self._emit(
                progress,
                project_id,
                phase,
                "failed",
                f"{PHASE_NAMES[phase].capitalize()} failed: {e}",
                terminal=True,
                data={"error_code": getattr(e, "error_code", type(e).__name__)},
            )
            raise

        payload = _dump(result.value)
        novel = None
        if isinstance(result.value, DomainAnalysis):
            novel = len(result.value.competitor_analysis) == 0

        async with self.session_factory() as session, session.begin():
            artifact = await research_queries.get_research_artifact(session, project_id)
            if artifact is None:
                raise NotReadyError(f"Project {project_id} has no research artifact")
            await research_queries.record_phase(
                session, artifact, phase, payload, result.cost_usd, novel_category=novel
            )
            if phase == TOTAL_PHASES:
                await research_queries.complete_research(session, artifact)
            artifact_status = artifact.status
            novel_category = artifact.novel_category
            total_cost = artifact.total_cost_usd

        message = phase_message(phase, result.value)
        outcome = PhaseOutcome(
            phase=phase,
            status="completed",
            message=message,
            payload=payload,
            cost_usd=result.cost_usd,
            artifact_status=artifact_status,
            novel_category=novel_category,
        )

        self.logger.info(
            "research_phase_completed",
            project_id=str(project_id),
            phase=phase,
            cost_usd=round(result.cost_usd, 6),
            repaired=result.repaired,
        )
        await self._emit(
            progress,
            project_id,
            phase,
            "complete" if outcome.research_complete else "completed",
            message,
            terminal=outcome.research_complete,
            data={
                "novel_category": novel_category,
                "total_cost_usd": round(total_cost, 6),
            },
        )
        return outcome

    async def _record_failure(self, project_id: UUID, phase: int, error: Exception) -> None:
        async with self.session_factory() as session, session.begin():
            artifact = await research_queries.get_research_artifact(session, project_id)
            if artifact is not None:
                await research_queries.mark_research_failed(
                    session, artifact, phase, str(error) or type(error).__name__
                )
        self.logger.error(
            "research_phase_error",
            project_id=str(project_id),
            phase=phase,
            error_type=type(error).__name__,
            error=str(error),
        )

    async def run(
        self,
        project_id: UUID,
        *,
        feedback_provider: FeedbackProvider | None = None,
        after_phase: PhaseHook | None = None,
        cancel_event: asyncio.Event | None = None,
        progress: ProgressChannel | None = None,
    ) -> list[PhaseOutcome]:
        """Run all remaining phases in order.

        Cancellation is cooperative: when ``cancel_event`` is set, no further
        phases are scheduled, and already-persisted payloads stay valid.

        Args:
            project_id: Project whose artifact to advance.
            feedback_provider: Returns feedback for the phase about to run.
            after_phase: Called after each phase settles.
            cancel_event: Stops scheduling further phases when set.
            progress: Optional channel for progress events.

        Returns:
            Outcomes of the phases settled during this call.
        """
        outcomes: list[PhaseOutcome] = []
        while True:
            if cancel_event is not None and cancel_event.is_set():
                self.logger.info(
                    "research_run_cancelled",
                    project_id=str(project_id),
                    phases_settled=len(outcomes),
                )
                if progress is not None:
                    await progress.close()
                break

            async with self.session_factory() as session, session.begin():
                artifact = await research_queries.get_research_artifact(session, project_id)
                if artifact is None:
                    raise NotReadyError(f"Project {project_id} has no research artifact")
                already_complete = artifact.status == ResearchStatus.complete
                next_phase = artifact.settled_phase() + 1

            if already_complete:
                if progress is not None and not progress.closed:
                    await self._emit(
                        progress,
                        project_id,
                        TOTAL_PHASES,
                        "complete",
                        "Research complete!",
                        terminal=True,
                    )
                break

            feedback: Sequence[str] = ()
            if feedback_provider is not None:
                feedback = await feedback_provider(next_phase)

            outcome = await self.run_next_phase(project_id, feedback, progress)
            outcomes.append(outcome)
            if after_phase is not None:
                await after_phase(outcome)
            if outcome.research_complete:
                break

        return outcomes

    async def proceed_without_phase(
        self,
        project_id: UUID,
        progress: ProgressChannel | None = None,
    ) -> PhaseOutcome:
        """Skip the failed phase, leaving its payload empty.

        Raises:
            NotReadyError: If the artifact is not in ``failed`` status.
        """
        async with self.session_factory() as session, session.begin():
            artifact = await research_queries.get_research_artifact(session, project_id)
            if artifact is None:
                raise NotReadyError(f"Project {project_id} has no research artifact")
            phase = await research_queries.skip_failed_phase(session, artifact)
            if phase == TOTAL_PHASES:
                await research_queries.complete_research(session, artifact)
            outcome = PhaseOutcome(
                phase=phase,
                status="skipped",
                message=f"Skipped {PHASE_NAMES[phase]}",
                payload=None,
                cost_usd=0.0,
                artifact_status=artifact.status,
                novel_category=artifact.novel_category,
            )

        await self._emit(
            progress,
            project_id,
            phase,
            "complete" if outcome.research_complete else "skipped",
            outcome.message,
            terminal=outcome.research_complete,
        )
        return outcome

    async def restart(self, project_id: UUID) -> None:
        """Clear every phase payload and return the artifact to ``generating``."""
        async with self.session_factory() as session, session.begin():
            artifact = await research_queries.get_research_artifact(session, project_id)
            if artifact is None:
                raise NotReadyError(f"Project {project_id} has no research artifact")
            await research_queries.clear_artifact(session, artifact)
        self.logger.info("research_restarted", project_id=str(project_id))
