"""Generated document model for SpecForge.

Holds the six gates of a generated spec, its rendered markdown, the
validation result and derived estimates. One per project; replaced on
regeneration until a download event exists for the project.
"""

from __future__ import annotations

import enum
import uuid
from typing import Any

from sqlalchemy import Boolean, Float, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from specforge.database.models.base import Base, JSONType, TimestampMixin


class DocumentStatus(enum.Enum):
    """Generated document state."""

    generating = "generating"
    validating = "validating"
    complete = "complete"
    failed = "failed"


class GeneratedDocument(TimestampMixin, Base):
    """A generated six-gate spec document.

    Attributes:
        project_id: Owning project (one document per project).
        status: Current DocumentStatus.
        gate_0 .. gate_5: Structured gate sections.
        full_document: Rendered markdown.
        recommended_stack: Stack recommendation carried from research.
        entity_count: Number of gate 1 entities.
        state_change_count: Number of gate 2 state changes.
        quality_score: 0-100 validation score.
        findings: Validation findings.
        complexity_rating: simple, moderate, complex or enterprise.
        build_hours_min: Lower build-hour estimate.
        build_hours_max: Upper build-hour estimate.
        generation_cost_usd: AI cost of this generation attempt.
        fix_attempted: Whether an auto-fix pass ran.
    """

    __tablename__ = "generated_documents"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id"),
        nullable=False,
        unique=True,
    )
    status: Mapped[DocumentStatus] = mapped_column(
        default=DocumentStatus.generating,
        nullable=False,
    )
    gate_0: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    gate_1: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    gate_2: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    gate_3: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    gate_4: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    gate_5: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    full_document: Mapped[str | None] = mapped_column(Text, nullable=True)
    recommended_stack: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    entity_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    state_change_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quality_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    findings: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    complexity_rating: Mapped[str | None] = mapped_column(Text, nullable=True)
    build_hours_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    build_hours_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    generation_cost_usd: Mapped[float] = mapped_column(
        Float, default=0.0, nullable=False
    )
    fix_attempted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
