"""Request DTOs for API endpoints."""

from typing import Any, Literal

from pydantic import BaseModel, Field


class BuyerContextModel(BaseModel):
    """Buyer profile fields rendered into the prompt.

    Every field is optional; missing fields render as "Not specified".
    """

    name: str | None = Field(None, description="Buyer display name")
    current_stage: int | None = Field(None, description="Pipeline stage (0-5)", ge=0, le=5)
    financing_confirmed: bool = Field(False, description="Whether financing is confirmed")
    buyer_type: str | None = Field(None, description="e.g. first-time, investor, relocating")
    market_context: str | None = Field(None, description="Short market description")
    pre_approval_status: str | None = Field(None, description="e.g. 'Pre-Approved', 'In Progress'")
    pre_approval_amount: float | None = Field(
        None,
        description="Only used when pre_approval_status is 'Pre-Approved'",
        ge=0,
    )
    budget_min: float | None = Field(None, ge=0)
    budget_max: float | None = Field(None, ge=0)
    preferred_cities: list[str] = Field(default_factory=list)
    property_types: list[str] = Field(default_factory=list)
    min_beds: int | None = Field(None, ge=0)
    min_baths: float | None = Field(None, ge=0)
    must_haves: str | None = None
    nice_to_haves: str | None = None
    agent_notes: str | None = None
    recent_activity: list[str] = Field(default_factory=list)


class ActionItem(BaseModel):
    """One recommended action."""

    id: str = Field(..., description="Identifier, unique within one recommendation set", min_length=1)
    label: str = Field(..., description="Short button text", min_length=1)
    command: str = Field(..., description="The command sent to the model when the action runs")
    kind: Literal["artifact", "thinking"] = Field("artifact", description="What running the action produces")


class StoreRecommendationsRequest(BaseModel):
    """Request DTO for storing a recommendation set directly."""

    actions: list[ActionItem] = Field(..., description="Actions in display order")


class RecommendRequest(BaseModel):
    """Request DTO for fetching (or refreshing) recommendations."""

    context: BuyerContextModel | None = Field(None, description="Buyer profile for the prompt")
    force_refresh: bool = Field(False, description="Ask the model even if a fresh entry is cached")


class ExtractBudgetBandsRequest(BaseModel):
    """Request DTO for extracting budget bands from artifact text."""

    text: str = Field(..., description="Completed artifact text")


class AnalysisRequestBody(BaseModel):
    """Request DTO for running one analysis."""

    subject_id: str = Field(..., description="The buyer the artifact is about", min_length=1)
    command: str = Field(..., description="The agent's command or question", min_length=1)
    intent: Literal["artifact", "thinking"] = Field("artifact")
    context: BuyerContextModel | None = None
    comparables: list[dict[str, Any]] | None = Field(
        None,
        description="Comparison data (e.g. comparable listings) to include in the prompt",
    )
    needs_comparables: bool = Field(
        False,
        description="Gather comparison data with the configured loader when none is supplied",
    )
    timeout: float | None = Field(None, description="Override the generation timeout in seconds", gt=0)
