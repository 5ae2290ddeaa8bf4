from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from buyer_insights.api.dependencies import AnalysisHandlerDep, RecommendationHandlerDep, lifespan
from buyer_insights.config import settings
from buyer_insights.dto import (
    AnalysisRequestBody,
    AnalysisResponse,
    BudgetBandsResponse,
    ExtractBudgetBandsRequest,
    HealthCheckResponse,
    RecommendationsResponse,
    RecommendRequest,
    StoreRecommendationsRequest,
)

app = FastAPI(
    title="Buyer Insights API",
    description="Cached next-action recommendations and streamed buyer analysis",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,  # type: ignore[arg-type]
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with API information."""
    return {
        "name": "Buyer Insights API",
        "version": "0.1.0",
        "description": "Cached next-action recommendations and streamed buyer analysis",
        "endpoints": {
            "recommendations": "/recommendations/{subject_id}",
            "analysis": "/analysis",
            "analysis_stream": "/analysis/stream",
            "budget_bands": "/budget-bands/extract",
            "health": "/health",
            "docs": "/docs",
        },
    }


@app.get("/health", response_model=HealthCheckResponse)
async def health(handler: RecommendationHandlerDep) -> HealthCheckResponse:
    """Health check endpoint."""
    return await handler.health_check()


@app.get("/recommendations/{subject_id}", response_model=RecommendationsResponse)
async def get_recommendations(subject_id: str, handler: RecommendationHandlerDep) -> RecommendationsResponse:
    """Read cached recommendations without calling the model."""
    return await handler.get_cached(subject_id)


@app.post("/recommendations/{subject_id}", response_model=RecommendationsResponse)
async def recommend(
    subject_id: str,
    request: RecommendRequest,
    handler: RecommendationHandlerDep,
) -> RecommendationsResponse:
    """
    Get recommended next actions, refreshing from the model when stale.

    Args:
        subject_id: The buyer to recommend for.
        request: Buyer context and refresh flag.

    Returns:
        Recommended actions with cache status.
    """
    return await handler.recommend(subject_id, request)


@app.put("/recommendations/{subject_id}", response_model=RecommendationsResponse)
async def store_recommendations(
    subject_id: str,
    request: StoreRecommendationsRequest,
    handler: RecommendationHandlerDep,
) -> RecommendationsResponse:
    """Cache a recommendation set directly."""
    return await handler.store(subject_id, request)


@app.delete("/recommendations/{subject_id}", response_model=dict[str, Any])
async def invalidate_recommendations(subject_id: str, handler: RecommendationHandlerDep) -> dict[str, Any]:
    """Invalidate cached recommendations for a buyer."""
    return await handler.invalidate(subject_id)


@app.post("/analysis", response_model=AnalysisResponse)
async def run_analysis(body: AnalysisRequestBody, handler: AnalysisHandlerDep) -> AnalysisResponse:
    """Generate an analysis and return it once complete."""
    return await handler.run(body)


@app.post("/analysis/stream")
async def stream_analysis(body: AnalysisRequestBody, handler: AnalysisHandlerDep) -> StreamingResponse:
    """Generate an analysis, streaming fragments as server-sent events."""
    return await handler.stream(body)


@app.post("/budget-bands/extract", response_model=BudgetBandsResponse)
async def extract_budget_bands(
    request: ExtractBudgetBandsRequest,
    handler: AnalysisHandlerDep,
) -> BudgetBandsResponse:
    """Extract conservative/target/stretch bands from artifact text."""
    return await handler.extract_budget_bands(request)


@app.get("/artifacts/{artifact_key:path}/budget-bands", response_model=BudgetBandsResponse)
async def artifact_budget_bands(artifact_key: str, handler: AnalysisHandlerDep) -> BudgetBandsResponse:
    """Recompute budget bands from a stored artifact."""
    return await handler.artifact_budget_bands(artifact_key)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "buyer_insights.api.app:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
