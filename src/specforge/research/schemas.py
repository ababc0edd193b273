"""Typed payloads for the four research phases.

Each phase result is validated on the boundary with these models before
it is persisted, and deserialized back into them when a later phase or
the generation engine consumes it.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Competitor(BaseModel):
    """An existing product found during domain analysis."""

    name: str
    url: str | None = None
    features: list[str] = Field(default_factory=list)
    pricing: str | None = None
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    user_complaints: list[str] = Field(default_factory=list)


class DomainAnalysis(BaseModel):
    """Phase 1 payload: domain narrative, competitors and compliance flags."""

    domain_summary: str
    competitor_analysis: list[Competitor] = Field(default_factory=list)
    pain_points: list[str] = Field(default_factory=list)
    user_personas: list[str] = Field(default_factory=list)
    compliance_requirements: list[str] = Field(default_factory=list)


class AtomicComponent(BaseModel):
    """Smallest buildable unit, tagged with competitor coverage."""

    name: str
    description: str | None = None
    competitor_coverage: dict[str, bool] = Field(default_factory=dict)


class SubFeature(BaseModel):
    """A sub-feature grouping atomic components."""

    name: str
    components: list[AtomicComponent] = Field(default_factory=list)

    @field_validator("components", mode="before")
    @classmethod
    def coerce_components(cls, v: Any) -> Any:
        """Accept bare component names as well as objects."""
        if isinstance(v, list):
            return [{"name": item} if isinstance(item, str) else item for item in v]
        return v


class FeatureArea(BaseModel):
    """Top-level feature area of the decomposition tree."""

    area: str
    sub_features: list[SubFeature] = Field(default_factory=list)


class FeatureDecomposition(BaseModel):
    """Phase 2 payload: feature area -> sub-feature -> atomic component."""

    feature_areas: list[FeatureArea]

    def components(self) -> list[AtomicComponent]:
        """Flatten every atomic component in tree order."""
        return [
            component
            for area in self.feature_areas
            for sub in area.sub_features
            for component in sub.components
        ]


class ComponentRequirement(BaseModel):
    """Technical requirement record for one atomic component."""

    component: str
    library: str | None = None
    data_model: list[str] = Field(default_factory=list)
    edge_cases: list[str] = Field(default_factory=list)
    complexity: str = "medium"


class ComplianceMapping(BaseModel):
    """Compliance frameworks and their concrete requirements."""

    frameworks: list[str] = Field(default_factory=list)
    requirements_per_framework: dict[str, list[str]] = Field(default_factory=dict)


class RecommendedStack(BaseModel):
    """Aggregate stack recommendation."""

    frontend: str | None = None
    backend: str | None = None
    database: str | None = None
    rationale: str | None = None


class HostingCost(BaseModel):
    """Monthly hosting estimates by user count."""

    users_0: str | None = Field(default=None, alias="0_users")
    users_1k: str | None = Field(default=None, alias="1k_users")
    users_10k: str | None = Field(default=None, alias="10k_users")

    model_config = {"populate_by_name": True}


class Estimates(BaseModel):
    """Build-hour and running-cost estimates."""

    build_hours_min: int | None = Field(default=None, ge=0)
    build_hours_max: int | None = Field(default=None, ge=0)
    api_cost_monthly: str | None = None
    hosting_cost: HostingCost = Field(default_factory=HostingCost)


class TechnicalRequirements(BaseModel):
    """Phase 3 payload: per-component requirements, stack and estimates."""

    component_requirements: list[ComponentRequirement]
    compliance: ComplianceMapping = Field(default_factory=ComplianceMapping)
    recommended_stack: RecommendedStack = Field(default_factory=RecommendedStack)
    estimates: Estimates = Field(default_factory=Estimates)


class MvpScope(BaseModel):
    """MVP versus full scope split."""

    must_have: list[str] = Field(default_factory=list)
    nice_to_have: list[str] = Field(default_factory=list)
    future: list[str] = Field(default_factory=list)


class CompetitiveGaps(BaseModel):
    """Phase 4 payload: opportunities, unique angle and scope split."""

    competitive_gaps: list[str] = Field(default_factory=list)
    unique_angle: str
    mvp_scope: MvpScope = Field(default_factory=MvpScope)
    opportunity: str | None = None


PHASE_SCHEMAS: dict[int, type[BaseModel]] = {
    1: DomainAnalysis,
    2: FeatureDecomposition,
    3: TechnicalRequirements,
    4: CompetitiveGaps,
}

PHASE_NAMES: dict[int, str] = {
    1: "domain analysis",
    2: "feature decomposition",
    3: "technical requirements",
    4: "competitive gaps",
}
