"""Project lifecycle orchestration for SpecForge.

This package owns the status transition tables, the readiness predicate
that starts research, the progress event channel, and the lifecycle
controller that dispatches to the research pipeline and generation engine.

The controller lives in ``specforge.orchestrator.lifecycle`` and is not
re-exported here: the query layer imports ``state_machine`` from this
package.
"""

from __future__ import annotations

from specforge.orchestrator.progress import ProgressChannel, ProgressEvent
from specforge.orchestrator.readiness import PhraseReadiness, ReadinessPredicate
from specforge.orchestrator.state_machine import (
    DOCUMENT_TRANSITIONS,
    PROJECT_TRANSITIONS,
    RESEARCH_TRANSITIONS,
    ensure_transition,
    validate_document_transition,
    validate_research_transition,
    validate_transition,
)

__all__ = [
    "DOCUMENT_TRANSITIONS",
    "PROJECT_TRANSITIONS",
    "RESEARCH_TRANSITIONS",
    "PhraseReadiness",
    "ProgressChannel",
    "ProgressEvent",
    "ReadinessPredicate",
    "ensure_transition",
    "validate_document_transition",
    "validate_research_transition",
    "validate_transition",
]
