"""Download event model for SpecForge.

Append-only record of a packaged spec that was served to its owner.
The project's ``download_count`` is incremented in the same transaction
that inserts the event.
"""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from specforge.database.models.base import Base, JSONType, TimestampMixin


class DownloadEvent(TimestampMixin, Base):
    """A completed package-and-serve action.

    Attributes:
        project_id: Downloaded project.
        document_id: Document that was packaged.
        user_id: Requesting user.
        archive_size_bytes: Size of the served archive.
        included_files: Paths inside the archive.
    """

    __tablename__ = "download_events"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id"),
        nullable=False,
        index=True,
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("generated_documents.id"),
        nullable=False,
    )
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    archive_size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    included_files: Mapped[list[str]] = mapped_column(
        JSONType, default=list, nullable=False
    )
