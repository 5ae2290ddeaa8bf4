"""Handler layer for HTTP endpoints.

This layer contains the HTTP request/response handlers.
Handlers depend on services (business logic), not directly on repositories.

Architecture:
    Handler -> Service -> Repository
    (HTTP)  -> (Business) -> (Data Access)
"""

from .analysis_handler import AnalysisHandler
from .http_errors import generation_http_error
from .recommendation_handler import RecommendationHandler

__all__ = [
    "AnalysisHandler",
    "RecommendationHandler",
    "generation_http_error",
]
