"""Project model for SpecForge.

Defines the Project table and its status enums. A project is the unit of
work: one app description travelling through chat, research, generation,
review and completion. Projects are never hard-deleted; archiving sets
``archived_at`` and the ``archived`` status.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from specforge.database.models.base import Base, TimestampMixin, utcnow


class ProjectStatus(enum.Enum):
    """Lifecycle status for a project.

    States:
        chatting: Collecting the app description through conversation.
        researching: Research pipeline is running or awaiting feedback.
        generating: Spec generation is running or failed validation.
        review: Generated document is awaiting user approval.
        complete: Document approved and available for download.
        archived: Soft-deleted by the owner.
    """

    chatting = "chatting"
    researching = "researching"
    generating = "generating"
    review = "review"
    complete = "complete"
    archived = "archived"


class ResearchProgress(enum.Enum):
    """Coarse research status shown in project listings."""

    pending = "pending"
    in_progress = "in_progress"
    complete = "complete"
    skipped = "skipped"


class SpecProgress(enum.Enum):
    """Coarse spec status shown in project listings."""

    draft = "draft"
    complete = "complete"


class Project(TimestampMixin, Base):
    """A spec project owned by a single user.

    Attributes:
        id: UUID primary key (from TimestampMixin).
        user_id: Owner identifier supplied by the auth layer.
        name: Display name.
        description: Free-text app description.
        slug: URL-friendly name.
        status: Current lifecycle status.
        research_status: Coarse research progress.
        spec_status: Coarse spec progress.
        download_count: Number of recorded downloads.
        version: Version number, incremented for forked versions.
        parent_project_id: Project this version was forked from.
        status_changed_at: When ``status`` last changed.
        archived_at: When the project was archived.
    """

    __tablename__ = "projects"

    user_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[ProjectStatus] = mapped_column(
        default=ProjectStatus.chatting,
        nullable=False,
    )
    research_status: Mapped[ResearchProgress] = mapped_column(
        default=ResearchProgress.pending,
        nullable=False,
    )
    spec_status: Mapped[SpecProgress] = mapped_column(
        default=SpecProgress.draft,
        nullable=False,
    )
    download_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    parent_project_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("projects.id"),
        nullable=True,
    )
    status_changed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
