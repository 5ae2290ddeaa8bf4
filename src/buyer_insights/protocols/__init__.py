"""Protocol interfaces for swappable implementations.

This package contains protocol definitions using structural typing.
Protocols enable:
- Easy swapping of implementations (Redis → relational table, OpenAI-style → Anthropic, etc.)
- Unit testing with fake implementations
- Clear separation of concerns

Usage:
    ```python
    from buyer_insights.protocols import RecommendationStore

    store: RecommendationStore = RedisRecommendationRepository.create()
    ```
"""

from .artifact_store import ArtifactStore
from .model_gateway import ModelGateway
from .recommendation_store import RecommendationStore

__all__ = [
    "ArtifactStore",
    "ModelGateway",
    "RecommendationStore",
]
