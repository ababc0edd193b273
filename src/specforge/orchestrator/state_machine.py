"""Status state machines for SpecForge.

This module holds the authoritative transition tables for projects,
research artifacts and generated documents, plus the validation helpers
used by the query layer before any status write.

Project lifecycle:
    chatting -> researching -> generating -> review -> complete -> archived
    review -> chatting (changes requested)
    generating -> generating (retry after a below-threshold attempt)

Forking a complete project into a new version does not transition the
source project; the new project is created directly in ``review``.
"""

from __future__ import annotations

from specforge.database.models.document import DocumentStatus
from specforge.database.models.project import ProjectStatus
from specforge.database.models.research import ResearchStatus
from specforge.errors import IllegalTransitionError

PROJECT_TRANSITIONS: dict[ProjectStatus, set[ProjectStatus]] = {
    ProjectStatus.chatting: {ProjectStatus.researching},
    ProjectStatus.researching: {ProjectStatus.generating},
    ProjectStatus.generating: {ProjectStatus.review, ProjectStatus.generating},
    ProjectStatus.review: {ProjectStatus.complete, ProjectStatus.chatting},
    ProjectStatus.complete: {ProjectStatus.archived},
    ProjectStatus.archived: set(),  # Terminal state
}

# Statuses a forked version may be created in
VERSION_SOURCE_STATUSES = {ProjectStatus.complete}
VERSION_INITIAL_STATUS = ProjectStatus.review

RESEARCH_TRANSITIONS: dict[ResearchStatus, set[ResearchStatus]] = {
    ResearchStatus.generating: {ResearchStatus.phase_1, ResearchStatus.failed},
    ResearchStatus.phase_1: {ResearchStatus.phase_2, ResearchStatus.failed},
    ResearchStatus.phase_2: {ResearchStatus.phase_3, ResearchStatus.failed},
    ResearchStatus.phase_3: {ResearchStatus.phase_4, ResearchStatus.failed},
    ResearchStatus.phase_4: {ResearchStatus.complete},
    ResearchStatus.complete: set(),
    # Proceeding without the failed phase settles it as skipped
    ResearchStatus.failed: {
        ResearchStatus.phase_1,
        ResearchStatus.phase_2,
        ResearchStatus.phase_3,
        ResearchStatus.phase_4,
    },
}

DOCUMENT_TRANSITIONS: dict[DocumentStatus, set[DocumentStatus]] = {
    DocumentStatus.generating: {DocumentStatus.validating, DocumentStatus.failed},
    DocumentStatus.validating: {DocumentStatus.complete, DocumentStatus.failed},
    DocumentStatus.complete: set(),
    DocumentStatus.failed: set(),
}


def validate_transition(current: ProjectStatus, target: ProjectStatus) -> bool:
    """Validate if a project status transition is allowed.

    Args:
        current: Current project status.
        target: Target project status.

    Returns:
        True if the transition is valid according to PROJECT_TRANSITIONS.
    """
    return target in PROJECT_TRANSITIONS.get(current, set())


def validate_research_transition(current: ResearchStatus, target: ResearchStatus) -> bool:
    """Validate if a research artifact status transition is allowed."""
    return target in RESEARCH_TRANSITIONS.get(current, set())


def validate_document_transition(current: DocumentStatus, target: DocumentStatus) -> bool:
    """Validate if a generated document status transition is allowed."""
    return target in DOCUMENT_TRANSITIONS.get(current, set())


def ensure_transition(
    current: ProjectStatus | ResearchStatus | DocumentStatus,
    target: ProjectStatus | ResearchStatus | DocumentStatus,
    entity_id: str | None = None,
) -> None:
    """Raise IllegalTransitionError unless current -> target is in its table.

    Args:
        current: Current status of any of the three entity kinds.
        target: Target status of the same kind.
        entity_id: Optional entity identifier for the error message.

    Raises:
        IllegalTransitionError: If the transition is not allowed.
    """
    if isinstance(current, ProjectStatus) and isinstance(target, ProjectStatus):
        allowed = validate_transition(current, target)
    elif isinstance(current, ResearchStatus) and isinstance(target, ResearchStatus):
        allowed = validate_research_transition(current, target)
    elif isinstance(current, DocumentStatus) and isinstance(target, DocumentStatus):
        allowed = validate_document_transition(current, target)
    else:
        allowed = False

    if not allowed:
        raise IllegalTransitionError(current.value, target.value, entity_id)
