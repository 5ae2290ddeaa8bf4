"""HTTP handlers for recommendation operations.

Handlers convert between DTOs (API contracts) and service calls.
They handle HTTP concerns like status codes, validation, and error handling.
"""

import asyncio

from fastapi import HTTPException, status

from buyer_insights.dto import (
    ActionItem,
    HealthCheckResponse,
    RecommendationsResponse,
    RecommendRequest,
    StoreRecommendationsRequest,
)
from buyer_insights.entities import RecommendedAction
from buyer_insights.errors import GenerationError
from buyer_insights.protocols import RecommendationStore
from buyer_insights.services import Recommendations, RecommendationService

from .http_errors import generation_http_error


def _action_item(action: RecommendedAction) -> ActionItem:
    return ActionItem(**action.to_dict())


class RecommendationHandler:
    """HTTP handlers for recommendation operations.

    This handler delegates business logic to RecommendationService
    and handles HTTP-specific concerns like:
    - Converting entities to DTOs
    - Setting appropriate status codes
    - Error handling and responses

    Example:
        ```python
        handler = RecommendationHandler(service=service, store=repository)

        @app.post("/recommendations/{subject_id}", response_model=RecommendationsResponse)
        async def recommend(subject_id: str, request: RecommendRequest):
            return await handler.recommend(subject_id, request)
        ```
    """

    def __init__(
        self,
        service: RecommendationService,
        store: RecommendationStore | None = None,
    ) -> None:
        """Initialize the recommendation handler.

        Args:
            service: The recommendation service for business logic (required).
            store: The durable tier, used for health checks. Optional.
        """
        self._service = service
        self._store = store

    def _response(self, result: Recommendations) -> RecommendationsResponse:
        state = self._service.cache.state(result.subject_id)
        return RecommendationsResponse(
            subject_id=result.subject_id,
            actions=[_action_item(action) for action in result.actions],
            cached_at=result.cached_at,
            status=result.status.value,
            from_cache=result.from_cache,
            persistence=state.value if state is not None else None,
        )

    async def get_cached(self, subject_id: str) -> RecommendationsResponse:
        """Handle GET /recommendations/{subject_id} requests.

        Reads the cache only; never calls the model.

        Raises:
            HTTPException: 404 if nothing is cached for the subject
        """
        entry = await self._service.cache.lookup(subject_id)
        if entry is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"No cached recommendations for {subject_id}",
            )
        return self._response(Recommendations.from_entry(entry, from_cache=True))

    async def recommend(self, subject_id: str, request: RecommendRequest) -> RecommendationsResponse:
        """Handle POST /recommendations/{subject_id} requests.

        Args:
            subject_id: The buyer to recommend for
            request: Buyer context and refresh flag

        Returns:
            RecommendationsResponse, served from cache when fresh

        Raises:
            HTTPException: 429/402/502 when the model call fails and nothing is cached
        """
        context = request.context.model_dump() if request.context is not None else None
        try:
            result = await self._service.recommend(
                subject_id,
                context=context,
                force_refresh=request.force_refresh,
            )
        except GenerationError as e:
            raise generation_http_error(e) from e
        return self._response(result)

    async def store(self, subject_id: str, request: StoreRecommendationsRequest) -> RecommendationsResponse:
        """Handle PUT /recommendations/{subject_id} requests.

        Raises:
            HTTPException: If an error occurs while caching
        """
        actions = [
            RecommendedAction.from_payload(item.model_dump(), position)
            for position, item in enumerate(request.actions, start=1)
        ]
        try:
            entry = await self._service.cache.put(subject_id, actions)
        except Exception as e:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to store recommendations: {e}",
            ) from e
        return self._response(Recommendations.from_entry(entry, from_cache=False))

    async def invalidate(self, subject_id: str) -> dict:
        """Handle DELETE /recommendations/{subject_id} requests.

        Returns:
            Dict with invalidate operation result
        """
        await self._service.cache.invalidate(subject_id)
        return {
            "success": True,
            "subject_id": subject_id,
            "message": "Recommendations invalidated",
        }

    async def health_check(self) -> HealthCheckResponse:
        """Handle GET /health requests."""
        store_healthy = True
        if self._store is not None:
            store_healthy = await asyncio.to_thread(self._store.health_check)

        return HealthCheckResponse(
            status="healthy" if store_healthy else "unhealthy",
            store_healthy=store_healthy,
            cached_subjects=self._service.cache.size,
        )
