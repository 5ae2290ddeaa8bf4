"""Dependency injection configuration for FastAPI app.

Uses FastAPI's app.state pattern for storing service instances.

Pattern:
    - Services stored in app.state during lifespan
    - Dependency functions retrieve from request.app.state
    - Clean separation, no global mutable state
"""

import logging
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import Depends, FastAPI, Request

from buyer_insights.config import get_redis_client, settings
from buyer_insights.handlers import AnalysisHandler, RecommendationHandler
from buyer_insights.logging_config import setup_logging
from buyer_insights.repositories import (
    ModelGatewayClient,
    RedisArtifactRepository,
    RedisRecommendationRepository,
)
from buyer_insights.services import AnalysisOrchestrator, RecommendationCache, RecommendationService

logger = logging.getLogger(__name__)


def get_recommendation_handler(request: Request) -> RecommendationHandler:
    """Dependency injection for RecommendationHandler from app.state.

    Args:
        request: FastAPI Request object

    Returns:
        The RecommendationHandler instance from app.state

    Raises:
        RuntimeError: If handler is not initialized
    """
    handler = getattr(request.app.state, "recommendation_handler", None)
    if handler is None:
        raise RuntimeError("RecommendationHandler not initialized. Check lifespan setup.")
    return handler


def get_analysis_handler(request: Request) -> AnalysisHandler:
    """Dependency injection for AnalysisHandler from app.state.

    Raises:
        RuntimeError: If handler is not initialized
    """
    handler = getattr(request.app.state, "analysis_handler", None)
    if handler is None:
        raise RuntimeError("AnalysisHandler not initialized. Check lifespan setup.")
    return handler


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app.

    Initializes all layers and stores in app.state:
    1. Repositories (Redis, model gateway) - created explicitly
    2. Cache and services (business logic), cache warmed from Redis
    3. Handlers (HTTP endpoints) - stored in app.state

    A comparison-data loader (see ContextLoader) may be placed on
    app.state.context_loader before startup; requests that set
    needs_comparables use it. Without one the flag is ignored.

    On shutdown, queued durable writes are flushed before the gateway
    client is closed.

    Args:
        app: The FastAPI application instance

    Yields:
        None
    """
    setup_logging(settings.log_level)

    redis_client = get_redis_client()
    recommendation_store = RedisRecommendationRepository(redis_client=redis_client)
    artifact_store = RedisArtifactRepository(redis_client=redis_client)
    gateway = ModelGatewayClient.create()

    cache = RecommendationCache(store=recommendation_store)
    try:
        await cache.warm()
    except Exception:
        # Serve from an empty volatile tier; entries repopulate on demand
        logger.exception("Failed to warm recommendation cache")

    service = RecommendationService(cache=cache, gateway=gateway)

    context_loader = getattr(app.state, "context_loader", None)

    def new_orchestrator() -> AnalysisOrchestrator:
        return AnalysisOrchestrator(
            gateway=gateway,
            artifact_store=artifact_store,
            context_loader=context_loader,
        )

    app.state.recommendation_cache = cache
    app.state.recommendation_service = service
    app.state.gateway = gateway
    app.state.recommendation_handler = RecommendationHandler(service=service, store=recommendation_store)
    app.state.analysis_handler = AnalysisHandler(
        orchestrator_factory=new_orchestrator,
        artifact_store=artifact_store,
    )

    logger.info(
        "Buyer insights service initialized",
        extra={
            "extra_data": {
                "ttl_seconds": cache.ttl,
                "read_policy": cache.read_policy.value,
                "stream_format": gateway.stream_format,
                "context_loader": context_loader is not None,
            }
        },
    )

    yield

    await cache.flush()
    await gateway.close()

    del app.state.analysis_handler
    del app.state.recommendation_handler
    del app.state.gateway
    del app.state.recommendation_service
    del app.state.recommendation_cache
    logger.info("Buyer insights service shut down")


# Type aliases for cleaner dependency injection
RecommendationHandlerDep = Annotated[RecommendationHandler, Depends(get_recommendation_handler)]
AnalysisHandlerDep = Annotated[AnalysisHandler, Depends(get_analysis_handler)]
