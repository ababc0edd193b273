"""Database query functions for SpecForge.

This module provides async query functions for all database entities:
- Project lifecycle and status transitions
- Append-only conversation log
- Write-once research artifact phases
- Generated documents
- Download events
- Outbound event outbox
"""

from specforge.database.queries.conversation import (
    append_turn,
    copy_turns,
    find_phase_presentation,
    latest_turn,
    list_description_turns,
    list_turns,
    user_turns_after,
)
from specforge.database.queries.document import (
    copy_document,
    get_document,
    save_document_result,
    start_document,
    update_document_status,
)
from specforge.database.queries.download import (
    count_downloads,
    list_downloads,
    list_first_downloads_before,
    record_download_event,
)
from specforge.database.queries.outbox import (
    enqueue_event,
    get_outbox_stats,
    get_pending_events,
    list_events,
    mark_delivered,
    mark_failed,
)
from specforge.database.queries.project import (
    create_project,
    get_project,
    increment_download_count,
    list_projects,
    list_projects_in_status_since,
    require_project,
    update_project,
    update_project_status,
)
from specforge.database.queries.research import (
    clear_artifact,
    complete_research,
    copy_research_artifact,
    create_research_artifact,
    get_research_artifact,
    mark_research_failed,
    record_phase,
    skip_failed_phase,
)

__all__ = [
    # Project queries
    "create_project",
    "get_project",
    "require_project",
    "list_projects",
    "update_project",
    "update_project_status",
    "increment_download_count",
    "list_projects_in_status_since",
    # Conversation queries
    "append_turn",
    "list_description_turns",
    "list_turns",
    "latest_turn",
    "find_phase_presentation",
    "user_turns_after",
    "copy_turns",
    # Research queries
    "create_research_artifact",
    "get_research_artifact",
    "record_phase",
    "mark_research_failed",
    "skip_failed_phase",
    "complete_research",
    "clear_artifact",
    "copy_research_artifact",
    # Document queries
    "get_document",
    "start_document",
    "update_document_status",
    "save_document_result",
    "copy_document",
    # Download queries
    "record_download_event",
    "count_downloads",
    "list_downloads",
    "list_first_downloads_before",
    # Outbox queries
    "enqueue_event",
    "get_pending_events",
    "list_events",
    "mark_delivered",
    "mark_failed",
    "get_outbox_stats",
]
