"""Research artifact model for SpecForge.

A project has exactly one research artifact. The four phase payloads are
write-once: the query layer refuses to overwrite a non-null payload, and
only an explicit restart clears them.

Status semantics: ``phase_N`` means phase N has settled (written or
skipped) and phase N+1 is next. ``failed`` records the phase that failed
in ``failed_phase``.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from specforge.database.models.base import Base, JSONType, TimestampMixin


class ResearchStatus(enum.Enum):
    """Research pipeline state.

    States:
        generating: Created, no phase settled yet.
        phase_1 .. phase_4: Phase N settled.
        complete: All phases settled, cost recorded.
        failed: A phase raised during the current attempt.
    """

    generating = "generating"
    phase_1 = "phase_1"
    phase_2 = "phase_2"
    phase_3 = "phase_3"
    phase_4 = "phase_4"
    complete = "complete"
    failed = "failed"


PHASE_STATUSES: dict[int, ResearchStatus] = {
    1: ResearchStatus.phase_1,
    2: ResearchStatus.phase_2,
    3: ResearchStatus.phase_3,
    4: ResearchStatus.phase_4,
}

# Phase number -> payload column
PHASE_COLUMNS: dict[int, str] = {
    1: "domain_analysis",
    2: "feature_decomposition",
    3: "technical_requirements",
    4: "competitive_gaps",
}


class ResearchArtifact(TimestampMixin, Base):
    """Persisted output of the four-phase research pipeline.

    Attributes:
        project_id: Owning project (one artifact per project).
        status: Current ResearchStatus.
        domain_analysis: Phase 1 payload (competitors, pain points, compliance).
        feature_decomposition: Phase 2 payload (feature tree).
        technical_requirements: Phase 3 payload (requirements, stack, estimates).
        competitive_gaps: Phase 4 payload (gaps, unique angle, MVP scope).
        novel_category: Phase 1 found no competitors.
        skipped_phases: Phases the caller chose to proceed without.
        failed_phase: Phase that failed in the current attempt.
        error_message: Failure description for the current attempt.
        total_cost_usd: Accumulated AI cost across phases.
        completed_at: When the artifact reached ``complete``.
    """

    __tablename__ = "research_artifacts"

    project_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("projects.id"),
        nullable=False,
        unique=True,
    )
    status: Mapped[ResearchStatus] = mapped_column(
        default=ResearchStatus.generating,
        nullable=False,
    )
    domain_analysis: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    feature_decomposition: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    technical_requirements: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    competitive_gaps: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    novel_category: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    skipped_phases: Mapped[list[int]] = mapped_column(
        JSONType, default=list, nullable=False
    )
    failed_phase: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    total_cost_usd: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def payload(self, phase: int) -> dict[str, Any] | None:
        """Return the payload for a phase number (1-4)."""
        return getattr(self, PHASE_COLUMNS[phase])

    def settled_phase(self) -> int:
        """Highest settled phase number, 0 if none.

        For a failed artifact this is the phase before ``failed_phase``.
        """
        if self.status == ResearchStatus.complete:
            return 4
        if self.status == ResearchStatus.failed:
            return (self.failed_phase or 1) - 1
        for number, status in PHASE_STATUSES.items():
            if self.status == status:
                return number
        return 0
