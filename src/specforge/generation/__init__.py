"""Spec document generation and deterministic validation."""

from specforge.generation.engine import (
    QUALITY_THRESHOLD,
    GenerationEngine,
    GenerationResult,
    complexity_for,
)
from specforge.generation.gates import DocumentDraft, GatePatch, apply_patch
from specforge.generation.validator import (
    ValidationFinding,
    ValidationReport,
    validate_document,
)

__all__ = [
    "QUALITY_THRESHOLD",
    "DocumentDraft",
    "GatePatch",
    "GenerationEngine",
    "GenerationResult",
    "ValidationFinding",
    "ValidationReport",
    "apply_patch",
    "complexity_for",
    "validate_document",
]
