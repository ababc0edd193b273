"""Project lifecycle controller.

The controller is the only writer of ``Project.status``. It owns the
transition table in ``state_machine``, dispatches to the research
pipeline and generation engine, collects user feedback between research
phases, and publishes an outbox event for every status change.

Status flow:
    chatting -> researching -> generating -> review -> complete -> archived
                                    ^  |        |
                                    +--+        +-> chatting (changes requested)

Every persistence step runs in its own short transaction; no transaction
is held open across an AI call. Research and generation requests run
under the wall-clock budgets from PipelineConfig.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Literal, TypeVar
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from specforge.ai.client import AICapability, ChatMessage
from specforge.ai.prompts import CHAT_SYSTEM_PROMPT
from specforge.config import SpecForgeConfig
from specforge.database.models.conversation import ConversationTurn, TurnRole
from specforge.database.models.document import DocumentStatus, GeneratedDocument
from specforge.database.models.project import (
    Project,
    ProjectStatus,
    ResearchProgress,
    SpecProgress,
)
from specforge.database.models.research import ResearchArtifact, ResearchStatus
from specforge.database.queries import conversation as conversation_queries
from specforge.database.queries import document as document_queries
from specforge.database.queries import download as download_queries
from specforge.database.queries import project as project_queries
from specforge.database.queries import research as research_queries
from specforge.errors import (
    BudgetExceededError,
    DocumentLockedError,
    IllegalTransitionError,
    NotOwnerError,
    NotReadyError,
    PhaseAlreadyWrittenError,
    ValidationBelowThresholdError,
)
from specforge.generation.engine import GenerationEngine, GenerationResult
from specforge.logging import bind_project_context, clear_project_context
from specforge.notifications import publisher
from specforge.orchestrator.progress import (
    ProgressChannel,
    ProgressEvent,
    ProgressListener,
)
from specforge.orchestrator.readiness import PhraseReadiness, ReadinessPredicate
from specforge.packaging import PackagedArtifact, Packager, ZipPackager
from specforge.research.pipeline import TOTAL_PHASES, PhaseOutcome, ResearchPipeline

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class ChatEvent:
    """One item of a streamed assistant reply.

    Attributes:
        type: "chunk" for partial text, "done" for the final event
        content: Chunk text, or the full reply on the done event
        ready_for_research: Whether the reply carried the readiness marker
        status: Project status after the turn (done event only)
    """

    type: Literal["chunk", "done"]
    content: str = ""
    ready_for_research: bool = False
    status: str | None = None


@dataclass
class ProjectView:
    """Read model combining a project with its artifacts."""

    project: Project
    research: ResearchArtifact | None = None
    document: GeneratedDocument | None = None
    turns: list[ConversationTurn] = field(default_factory=list)


class LifecycleController:
    """Owns project status transitions and drives both pipelines.

    Attributes:
        session_factory: Async session factory for persistence
        ai: AI capability shared by chat, research and generation
        config: Root configuration
        readiness: Predicate deciding when chat hands off to research
        packager: Builds download archives
        research: Research pipeline instance
        engine: Generation engine instance
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        ai: AICapability,
        config: SpecForgeConfig,
        *,
        readiness: ReadinessPredicate | None = None,
        packager: Packager | None = None,
        progress_listener: ProgressListener | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.ai = ai
        self.config = config
        self.readiness = readiness or PhraseReadiness(config.pipeline.readiness_phrase)
        self.packager = packager or ZipPackager()
        self.progress_listener = progress_listener
        self.research = ResearchPipeline(session_factory, ai, config.ai)
        self.engine = GenerationEngine(session_factory, ai, config.ai)
        self.logger = logger.bind(component="LifecycleController")

    def new_progress_channel(self, project_id: UUID) -> ProgressChannel:
        """Create a progress channel wired to the configured listener."""
        return ProgressChannel(str(project_id), listener=self.progress_listener)

    # ------------------------------------------------------------------
    # Projects
    # ------------------------------------------------------------------

    async def create_project(
        self,
        user_id: str,
        name: str,
        description: str | None = None,
    ) -> Project:
        """Create a project in ``chatting`` status."""
        async with self.session_factory() as session, session.begin():
            project = await project_queries.create_project(
                session, user_id, name, description
            )
            await publisher.publish_event(
                session,
                publisher.PROJECT_CREATED,
                project.id,
                {"user_id": user_id, "name": name},
            )
        return project

    async def get_project_view(self, project_id: UUID) -> ProjectView:
        """Load a project with its research, document and conversation."""
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            return ProjectView(
                project=project,
                research=await research_queries.get_research_artifact(session, project_id),
                document=await document_queries.get_document(session, project_id),
                turns=await conversation_queries.list_turns(session, project_id),
            )

    async def stale_projects(
        self,
        status: ProjectStatus,
        older_than: timedelta,
    ) -> list[Project]:
        """Projects that entered ``status`` more than ``older_than`` ago."""
        cutoff = datetime.now(timezone.utc) - older_than
        async with self.session_factory() as session, session.begin():
            return await project_queries.list_projects_in_status_since(
                session, status, cutoff
            )

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def submit_user_turn(
        self,
        project_id: UUID,
        content: str,
    ) -> AsyncIterator[ChatEvent]:
        """Append a user turn and stream the assistant's reply.

        When the finished reply carries the readiness marker the project
        moves to ``researching`` and its research artifact is created.

        Yields:
            ChatEvent chunks followed by one ``done`` event.

        Raises:
            NotReadyError: If the project is not in ``chatting``.
        """
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            if project.status != ProjectStatus.chatting:
                raise NotReadyError(
                    f"Project {project_id} is {project.status.value}, not chatting"
                )
            await conversation_queries.append_turn(
                session, project_id, TurnRole.user, content
            )
            turns = await conversation_queries.list_turns(session, project_id)
            context = []
            if project.description:
                context.append(
                    ChatMessage(role="user", content=f"App description: {project.description}")
                )
            context.extend(
                ChatMessage(role=turn.role.value, content=turn.content)
                for turn in turns
                if turn.role != TurnRole.system
            )

        system_prompt = CHAT_SYSTEM_PROMPT.format(
            readiness_phrase=self.config.pipeline.readiness_phrase
        )
        parts: list[str] = []
        async for chunk in self.ai.complete_streaming(
            context, system_prompt, tier=self.config.ai.tier_for("chat")
        ):
            parts.append(chunk)
            yield ChatEvent(type="chunk", content=chunk)

        reply = "".join(parts)
        ready = self.readiness.is_ready_for_research(reply)

        async with self.session_factory() as session, session.begin():
            await conversation_queries.append_turn(
                session,
                project_id,
                TurnRole.assistant,
                reply,
                {"ready_for_research": ready} if ready else None,
            )
            project = await project_queries.require_project(session, project_id)
            if ready:
                await self._begin_research(session, project)
            status = project.status.value

        self.logger.info(
            "chat_turn_completed",
            project_id=str(project_id),
            reply_chars=len(reply),
            ready_for_research=ready,
        )
        yield ChatEvent(type="done", content=reply, ready_for_research=ready, status=status)

    async def _begin_research(self, session: AsyncSession, project: Project) -> None:
        await project_queries.update_project_status(
            session, project.id, ProjectStatus.researching
        )
        artifact = await research_queries.get_research_artifact(session, project.id)
        if artifact is None:
            await research_queries.create_research_artifact(session, project.id)
            research_status = ResearchProgress.in_progress
        elif artifact.status == ResearchStatus.complete:
            research_status = ResearchProgress.complete
        else:
            research_status = ResearchProgress.in_progress
        await project_queries.update_project(
            session, project.id, research_status=research_status
        )
        await publisher.publish_event(
            session, publisher.PROJECT_RESEARCH_STARTED, project.id
        )

    # ------------------------------------------------------------------
    # Research
    # ------------------------------------------------------------------

    async def _require_researching(self, project_id: UUID) -> None:
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            if project.status != ProjectStatus.researching:
                raise NotReadyError(
                    f"Project {project_id} is {project.status.value}, not researching"
                )

    async def record_feedback(self, project_id: UUID, content: str) -> ConversationTurn:
        """Record user feedback on the most recently presented research phase."""
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            if project.status != ProjectStatus.researching:
                raise NotReadyError(
                    f"Project {project_id} is {project.status.value}, not researching"
                )
            return await conversation_queries.append_turn(
                session, project_id, TurnRole.user, content, {"research_feedback": True}
            )

    async def _feedback_for(self, project_id: UUID, phase: int) -> list[str]:
        """User turns recorded after the previous phase was presented."""
        if phase <= 1:
            return []
        async with self.session_factory() as session, session.begin():
            presentation = await conversation_queries.find_phase_presentation(
                session, project_id, phase - 1
            )
            if presentation is None:
                return []
            turns = await conversation_queries.user_turns_after(
                session, project_id, presentation.message_order
            )
            return [turn.content for turn in turns]

    async def _present_phase(self, project_id: UUID, outcome: PhaseOutcome) -> None:
        """Log the phase result to the conversation and publish its events."""
        async with self.session_factory() as session, session.begin():
            await conversation_queries.append_turn(
                session,
                project_id,
                TurnRole.system,
                outcome.message,
                {"research_phase": outcome.phase, "status": outcome.status},
            )
            await publisher.publish_event(
                session,
                publisher.research_phase_completed(outcome.phase),
                project_id,
                {"status": outcome.status, "cost_usd": round(outcome.cost_usd, 6)},
            )
            if outcome.status == "skipped":
                await project_queries.update_project(
                    session, project_id, research_status=ResearchProgress.skipped
                )
            if outcome.research_complete:
                project = await project_queries.require_project(session, project_id)
                if project.research_status != ResearchProgress.skipped:
                    await project_queries.update_project(
                        session, project_id, research_status=ResearchProgress.complete
                    )
                await publisher.publish_event(
                    session,
                    publisher.RESEARCH_COMPLETED,
                    project_id,
                    {"novel_category": outcome.novel_category},
                )

    async def _publish_research_failure(self, project_id: UUID, error: Exception) -> None:
        async with self.session_factory() as session, session.begin():
            artifact = await research_queries.get_research_artifact(session, project_id)
            await publisher.publish_event(
                session,
                publisher.RESEARCH_FAILED,
                project_id,
                {
                    "phase": artifact.failed_phase if artifact else None,
                    "error_code": getattr(error, "error_code", type(error).__name__),
                },
            )

    async def _run_research_step(
        self,
        project_id: UUID,
        step: Callable[[], Awaitable[T]],
        progress: ProgressChannel | None,
    ) -> T:
        budget = self.config.pipeline.research_budget_seconds
        bind_project_context(str(project_id), stage="research")
        try:
            async with asyncio.timeout(budget):
                return await step()
        except TimeoutError as e:
            self.logger.warning(
                "research_budget_exceeded",
                project_id=str(project_id),
                budget_seconds=budget,
            )
            if progress is not None and not progress.closed:
                await progress.emit(
                    ProgressEvent(
                        project_id=str(project_id),
                        stage="research",
                        status="error",
                        message=f"Research exceeded its {budget}s budget",
                        terminal=True,
                    )
                )
            raise BudgetExceededError("Research", budget) from e
        except (NotReadyError, IllegalTransitionError, PhaseAlreadyWrittenError):
            raise
        except Exception as e:
            await self._publish_research_failure(project_id, e)
            raise
        finally:
            clear_project_context()

    async def run_research(
        self,
        project_id: UUID,
        progress: ProgressChannel | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[PhaseOutcome]:
        """Run every remaining research phase.

        Feedback recorded after each phase's presentation turn is passed
        to the following phase.

        Raises:
            NotReadyError: If the project is not researching or the
                artifact is failed.
            BudgetExceededError: If the run exceeds research_budget_seconds.
        """
        await self._require_researching(project_id)
        return await self._run_research_step(
            project_id,
            lambda: self.research.run(
                project_id,
                feedback_provider=lambda phase: self._feedback_for(project_id, phase),
                after_phase=lambda outcome: self._present_phase(project_id, outcome),
                cancel_event=cancel_event,
                progress=progress,
            ),
            progress,
        )

    async def run_next_research_phase(
        self,
        project_id: UUID,
        progress: ProgressChannel | None = None,
    ) -> PhaseOutcome:
        """Run exactly one research phase with the feedback collected for it."""
        await self._require_researching(project_id)

        async def step() -> PhaseOutcome:
            async with self.session_factory() as session, session.begin():
                artifact = await research_queries.get_research_artifact(session, project_id)
                if artifact is None:
                    raise NotReadyError(f"Project {project_id} has no research artifact")
                next_phase = min(artifact.settled_phase() + 1, TOTAL_PHASES)
            feedback = await self._feedback_for(project_id, next_phase)
            outcome = await self.research.run_next_phase(project_id, feedback, progress)
            await self._present_phase(project_id, outcome)
            return outcome

        return await self._run_research_step(project_id, step, progress)

    async def proceed_without_phase(
        self,
        project_id: UUID,
        progress: ProgressChannel | None = None,
    ) -> PhaseOutcome:
        """Skip the failed research phase and continue with the next one."""
        await self._require_researching(project_id)
        outcome = await self.research.proceed_without_phase(project_id, progress)
        await self._present_phase(project_id, outcome)
        return outcome

    async def restart_research(self, project_id: UUID) -> None:
        """Clear all research payloads and start the pipeline over."""
        await self._require_researching(project_id)
        await self.research.restart(project_id)
        async with self.session_factory() as session, session.begin():
            await project_queries.update_project(
                session, project_id, research_status=ResearchProgress.in_progress
            )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        project_id: UUID,
        integrations: Sequence[str] | None = None,
        progress: ProgressChannel | None = None,
    ) -> GenerationResult:
        """Generate (or regenerate) the project's document.

        Allowed from ``researching`` with complete research (moves to
        ``generating``), from ``generating`` as a manual retry, and from
        ``review`` as a regeneration. On success a generating project
        moves to ``review``; on failure it stays where it is.

        Raises:
            NotReadyError: If research is incomplete or status disallows it.
            DocumentLockedError: If the document has been downloaded.
            ValidationBelowThresholdError: If the best draft scores below 60.
            BudgetExceededError: If generation exceeds its budget.
        """
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            if await download_queries.count_downloads(session, project_id) > 0:
                raise DocumentLockedError(str(project_id))
            if project.status == ProjectStatus.researching:
                artifact = await research_queries.get_research_artifact(session, project_id)
                if artifact is None or artifact.status != ResearchStatus.complete:
                    raise NotReadyError(f"Research for project {project_id} is not complete")
                await project_queries.update_project_status(
                    session, project_id, ProjectStatus.generating
                )
            elif project.status not in (ProjectStatus.generating, ProjectStatus.review):
                raise NotReadyError(
                    f"Project {project_id} is {project.status.value}; cannot generate"
                )
            await publisher.publish_event(
                session,
                publisher.GENERATION_STARTED,
                project_id,
                {"regeneration": project.status == ProjectStatus.review},
            )

        budget = self.config.pipeline.generation_budget_seconds
        bind_project_context(str(project_id), stage="generation")
        try:
            async with asyncio.timeout(budget):
                result = await self.engine.generate(project_id, integrations, progress)
        except TimeoutError as e:
            await self._abandon_document(project_id)
            await self._publish_generation_failure(project_id, "BUDGET_EXCEEDED")
            raise BudgetExceededError("Generation", budget) from e
        except ValidationBelowThresholdError as e:
            await self._publish_generation_failure(project_id, e.error_code, score=e.score)
            raise
        except (NotReadyError, IllegalTransitionError):
            raise
        except Exception as e:
            await self._publish_generation_failure(
                project_id, getattr(e, "error_code", type(e).__name__)
            )
            raise
        finally:
            clear_project_context()

        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            if project.status == ProjectStatus.generating:
                await project_queries.update_project_status(
                    session, project_id, ProjectStatus.review
                )
                await publisher.publish_event(
                    session, publisher.PROJECT_REVIEW_STARTED, project_id
                )
            await publisher.publish_event(
                session,
                publisher.GENERATION_COMPLETED,
                project_id,
                {
                    "document_id": str(result.document_id),
                    "quality_score": result.quality_score,
                    "complexity_rating": result.complexity_rating,
                },
            )
        return result

    async def _abandon_document(self, project_id: UUID) -> None:
        async with self.session_factory() as session, session.begin():
            document = await document_queries.get_document(session, project_id)
            if document is not None and document.status in (
                DocumentStatus.generating,
                DocumentStatus.validating,
            ):
                await document_queries.update_document_status(
                    session, document, DocumentStatus.failed
                )

    async def _publish_generation_failure(
        self,
        project_id: UUID,
        error_code: str,
        score: int | None = None,
    ) -> None:
        async with self.session_factory() as session, session.begin():
            await publisher.publish_event(
                session,
                publisher.GENERATION_FAILED,
                project_id,
                {"error_code": error_code, "quality_score": score},
            )

    # ------------------------------------------------------------------
    # Review and terminal states
    # ------------------------------------------------------------------

    async def approve(self, project_id: UUID) -> Project:
        """Approve a project in review, moving it to ``complete``."""
        async with self.session_factory() as session, session.begin():
            project = await project_queries.update_project_status(
                session, project_id, ProjectStatus.complete
            )
            document = await document_queries.get_document(session, project_id)
            if document is None or document.status != DocumentStatus.complete:
                raise NotReadyError(
                    f"Project {project_id} has no complete document to approve"
                )
            await project_queries.update_project(
                session, project_id, spec_status=SpecProgress.complete
            )
            await publisher.publish_event(
                session,
                publisher.PROJECT_APPROVED,
                project_id,
                {"quality_score": document.quality_score},
            )
        return project

    async def request_changes(
        self,
        project_id: UUID,
        feedback: str | None = None,
    ) -> Project:
        """Send a project in review back to ``chatting``."""
        async with self.session_factory() as session, session.begin():
            project = await project_queries.update_project_status(
                session, project_id, ProjectStatus.chatting
            )
            if feedback:
                await conversation_queries.append_turn(
                    session,
                    project_id,
                    TurnRole.user,
                    feedback,
                    {"change_request": True},
                )
            await project_queries.update_project(
                session, project_id, spec_status=SpecProgress.draft
            )
            await publisher.publish_event(
                session,
                publisher.PROJECT_CHANGES_REQUESTED,
                project_id,
                {"has_feedback": bool(feedback)},
            )
        return project

    async def archive(self, project_id: UUID, user_id: str | None = None) -> Project:
        """Archive a complete project. Only the owner may archive."""
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            if user_id is not None and user_id != project.user_id:
                raise NotOwnerError(str(project_id), user_id)
            project = await project_queries.update_project_status(
                session, project_id, ProjectStatus.archived
            )
            await publisher.publish_event(session, publisher.PROJECT_ARCHIVED, project_id)
        return project

    async def create_new_version(
        self,
        project_id: UUID,
        user_id: str | None = None,
    ) -> Project:
        """Fork a complete project into a new project in ``review``.

        The fork gets version + 1, a parent link, and copies of the
        conversation, research artifact and document.

        Raises:
            NotOwnerError: If ``user_id`` is given and does not own the source.
            IllegalTransitionError: If the source project is not complete.
        """
        async with self.session_factory() as session, session.begin():
            source = await project_queries.require_project(session, project_id)
            if user_id is not None and user_id != source.user_id:
                raise NotOwnerError(str(project_id), user_id)
            if source.status != ProjectStatus.complete:
                raise IllegalTransitionError(
                    source.status.value, "new_version", str(project_id)
                )
            fork = await project_queries.create_project(
                session,
                source.user_id,
                source.name,
                source.description,
                status=ProjectStatus.review,
                parent_project_id=source.id,
                version=source.version + 1,
            )
            await project_queries.update_project(
                session,
                fork.id,
                research_status=source.research_status,
                spec_status=SpecProgress.draft,
            )
            await conversation_queries.copy_turns(session, source.id, fork.id)
            artifact = await research_queries.get_research_artifact(session, source.id)
            if artifact is not None:
                await research_queries.copy_research_artifact(session, artifact, fork.id)
            document = await document_queries.get_document(session, source.id)
            if document is not None:
                await document_queries.copy_document(session, document, fork.id)
            await publisher.publish_event(
                session,
                publisher.PROJECT_VERSION_CREATED,
                fork.id,
                {"parent_project_id": str(source.id), "version": fork.version},
            )
        return fork

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    async def record_download(
        self,
        project_id: UUID,
        user_id: str | None = None,
    ) -> PackagedArtifact:
        """Package the document and record a download event.

        The event row and the counter increment share one transaction.

        Raises:
            NotReadyError: If the project or its document is not complete.
        """
        async with self.session_factory() as session, session.begin():
            project = await project_queries.require_project(session, project_id)
            if project.status != ProjectStatus.complete:
                raise NotReadyError(
                    f"Project {project_id} is {project.status.value}, not complete"
                )
            document = await document_queries.get_document(session, project_id)
            if document is None or document.status != DocumentStatus.complete:
                raise NotReadyError(f"Project {project_id} has no complete document")
            research = await research_queries.get_research_artifact(session, project_id)

            artifact = self.packager.package(project, document, research)
            event = await download_queries.record_download_event(
                session,
                project_id,
                document.id,
                user_id or project.user_id,
                artifact.size,
                artifact.included_files,
            )
            await publisher.publish_event(
                session,
                publisher.DOWNLOAD_CREATED,
                project_id,
                {
                    "download_id": str(event.id),
                    "archive_size_bytes": artifact.size,
                    "download_count": project.download_count,
                },
            )
        return artifact
