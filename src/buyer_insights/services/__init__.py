"""Service layer for business logic.

This layer contains the core business logic and orchestration.
Services depend on protocols (interfaces), not concrete implementations,
making them testable and flexible.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)

Usage:
    ```python
    from buyer_insights.services import RecommendationCache, RecommendationService

    cache = RecommendationCache(store=RedisRecommendationRepository.create())
    service = RecommendationService(cache=cache, gateway=ModelGatewayClient.create())
    ```
"""

from .analysis_orchestrator import (
    AnalysisOrchestrator,
    AnalysisRequest,
    AnalysisResult,
    AnalysisState,
    ContextLoader,
)
from .recommendation_cache import KeyState, ReadPolicy, RecommendationCache, latest_valid_records
from .recommendation_service import FALLBACK_ACTIONS, Recommendations, RecommendationService, parse_actions

__all__ = [
    "AnalysisOrchestrator",
    "AnalysisRequest",
    "AnalysisResult",
    "AnalysisState",
    "ContextLoader",
    "FALLBACK_ACTIONS",
    "KeyState",
    "ReadPolicy",
    "RecommendationCache",
    "RecommendationService",
    "Recommendations",
    "latest_valid_records",
    "parse_actions",
]
