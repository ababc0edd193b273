"""Four-phase research pipeline for SpecForge."""

from __future__ import annotations

from specforge.research.pipeline import PhaseOutcome, ResearchPipeline
from specforge.research.schemas import (
    CompetitiveGaps,
    DomainAnalysis,
    FeatureDecomposition,
    TechnicalRequirements,
)

__all__ = [
    "ResearchPipeline",
    "PhaseOutcome",
    "DomainAnalysis",
    "FeatureDecomposition",
    "TechnicalRequirements",
    "CompetitiveGaps",
]
