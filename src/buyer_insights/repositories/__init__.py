"""Repository layer for data access.

This layer abstracts external dependencies (Redis, the model gateway)
behind protocol-based interfaces. This enables:
- Easy swapping of implementations
- Unit testing with fake implementations
- Clear separation of concerns

The repositories are protocol-based (structural typing), not inheritance-based.
Any class implementing the required methods will satisfy the protocol.
"""

from buyer_insights.protocols import ArtifactStore, ModelGateway, RecommendationStore

from .model_gateway_client import ModelGatewayClient, extract_content
from .redis_artifact_repository import RedisArtifactRepository
from .redis_recommendation_repository import RedisRecommendationRepository

__all__ = [
    "ArtifactStore",
    "ModelGateway",
    "RecommendationStore",
    "ModelGatewayClient",
    "RedisArtifactRepository",
    "RedisRecommendationRepository",
    "extract_content",
]
