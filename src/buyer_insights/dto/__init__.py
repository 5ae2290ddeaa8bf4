"""Data Transfer Objects for API contracts.

These Pydantic models define the external API contract.
They are used for request/response validation and serialization.

Internal domain logic should use entities from the entities package.
"""

from .requests import (
    ActionItem,
    AnalysisRequestBody,
    BuyerContextModel,
    ExtractBudgetBandsRequest,
    RecommendRequest,
    StoreRecommendationsRequest,
)
from .responses import (
    AnalysisResponse,
    BudgetBandsResponse,
    HealthCheckResponse,
    RecommendationsResponse,
)

__all__ = [
    "ActionItem",
    "AnalysisRequestBody",
    "BuyerContextModel",
    "ExtractBudgetBandsRequest",
    "RecommendRequest",
    "StoreRecommendationsRequest",
    "AnalysisResponse",
    "BudgetBandsResponse",
    "HealthCheckResponse",
    "RecommendationsResponse",
]
