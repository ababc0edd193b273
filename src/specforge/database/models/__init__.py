"""SQLAlchemy ORM models for SpecForge.

This module defines the database schema: projects, conversation turns,
research artifacts, generated documents, download events and the
outbound event outbox.

All models use SQLAlchemy 2.0 declarative style with Mapped[] type annotations.
"""

from specforge.database.models.base import Base, JSONType, TimestampMixin
from specforge.database.models.conversation import ConversationTurn, TurnRole
from specforge.database.models.document import DocumentStatus, GeneratedDocument
from specforge.database.models.download import DownloadEvent
from specforge.database.models.outbox import OutboundEvent, OutboundStatus
from specforge.database.models.project import (
    Project,
    ProjectStatus,
    ResearchProgress,
    SpecProgress,
)
from specforge.database.models.research import (
    PHASE_COLUMNS,
    PHASE_STATUSES,
    ResearchArtifact,
    ResearchStatus,
)

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "Project",
    "ProjectStatus",
    "ResearchProgress",
    "SpecProgress",
    "ConversationTurn",
    "TurnRole",
    "ResearchArtifact",
    "ResearchStatus",
    "PHASE_COLUMNS",
    "PHASE_STATUSES",
    "GeneratedDocument",
    "DocumentStatus",
    "DownloadEvent",
    "OutboundEvent",
    "OutboundStatus",
]
