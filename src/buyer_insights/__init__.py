"""Buyer Insights - cached recommendations and streamed analysis for buyer agents.

This package provides a layered architecture:

Layers:
    - protocols: Interface contracts (RecommendationStore, ArtifactStore, ModelGateway)
    - repositories: Data access implementations (Redis, httpx gateway client)
    - services: Business logic (RecommendationCache, RecommendationService, AnalysisOrchestrator)
    - handlers: HTTP endpoint handlers
    - dto: Data transfer objects (API contracts)
    - entities: Domain models (internal)

Pure helpers live at the top level:
    - stream_decoder: event-stream bytes to text fragments
    - extractor: budget bands from artifact prose

Usage:
    ```python
    from buyer_insights.services import RecommendationCache, RecommendationService

    cache = RecommendationCache(store=RedisRecommendationRepository.create())
    await cache.warm()
    service = RecommendationService(cache=cache, gateway=ModelGatewayClient.create())
    ```

For HTTP API:
    ```python
    from buyer_insights.api.app import app
    ```
"""

from buyer_insights.config import get_redis_client, settings
from buyer_insights.entities import BudgetBands, CacheEntry, CacheStatus, RecommendedAction
from buyer_insights.errors import (
    GenerationError,
    GenerationFailed,
    QuotaExhausted,
    RateLimited,
    StreamTransportError,
)
from buyer_insights.extractor import extract_budget_bands, is_budget_bands_artifact
from buyer_insights.protocols import ArtifactStore, ModelGateway, RecommendationStore
from buyer_insights.repositories import (
    ModelGatewayClient,
    RedisArtifactRepository,
    RedisRecommendationRepository,
)
from buyer_insights.services import (
    AnalysisOrchestrator,
    AnalysisRequest,
    AnalysisState,
    RecommendationCache,
    RecommendationService,
)
from buyer_insights.stream_decoder import StreamDecoder

__all__ = [
    # Configuration
    "settings",
    "get_redis_client",
    # Protocols (interfaces)
    "ArtifactStore",
    "ModelGateway",
    "RecommendationStore",
    # Services (business logic)
    "AnalysisOrchestrator",
    "AnalysisRequest",
    "AnalysisState",
    "RecommendationCache",
    "RecommendationService",
    # Repositories (data access)
    "ModelGatewayClient",
    "RedisArtifactRepository",
    "RedisRecommendationRepository",
    # Entities (domain models)
    "BudgetBands",
    "CacheEntry",
    "CacheStatus",
    "RecommendedAction",
    # Errors
    "GenerationError",
    "GenerationFailed",
    "QuotaExhausted",
    "RateLimited",
    "StreamTransportError",
    # Pure helpers
    "StreamDecoder",
    "extract_budget_bands",
    "is_budget_bands_artifact",
]
