"""Response DTOs for API endpoints."""

from pydantic import BaseModel, Field

from .requests import ActionItem


class RecommendationsResponse(BaseModel):
    """Response DTO for recommendation reads and writes."""

    subject_id: str = Field(..., description="The buyer the actions are about")
    actions: list[ActionItem] = Field(default_factory=list, description="Actions in display order")
    cached_at: float = Field(..., description="When the actions were fetched (Unix timestamp)")
    status: str = Field(..., description="'valid' while younger than the TTL, otherwise 'stale'")
    from_cache: bool = Field(..., description="Whether the actions were served from the cache")
    persistence: str | None = Field(
        None,
        description="Durable-tier state: 'writing', 'valid' or 'stale'",
    )


class BudgetBandsResponse(BaseModel):
    """Response DTO for budget band extraction."""

    found: bool = Field(..., description="Whether at least one band has both ends")
    is_budget_artifact: bool = Field(..., description="Whether the text reads like a budget strategy")
    conservative_min: float | None = None
    conservative_max: float | None = None
    target_min: float | None = None
    target_max: float | None = None
    stretch_min: float | None = None
    stretch_max: float | None = None


class AnalysisResponse(BaseModel):
    """Response DTO for a completed analysis."""

    subject_id: str
    text: str = Field(..., description="The full generated text")
    bands: BudgetBandsResponse | None = Field(None, description="Bands extracted from the text, if any")
    artifact_key: str | None = Field(None, description="Storage key, if the artifact was stored")


class HealthCheckResponse(BaseModel):
    """Response DTO for health check."""

    status: str = Field(..., description="Health status: 'healthy' or 'unhealthy'")
    store_healthy: bool = Field(..., description="Whether the durable tier is reachable")
    cached_subjects: int = Field(..., description="Subjects held in the volatile tier", ge=0)
