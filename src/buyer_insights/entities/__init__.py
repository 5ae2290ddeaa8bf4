"""Domain entities for internal representation.

These are pure dataclasses (frozen) used internally by services
and repositories. They are NOT used for API contracts - use DTOs
from the dto package for that.
"""

from .budget_bands import BAND_NAMES, BudgetBands
from .cache_entry import CacheEntry, CacheStatus, RecommendationRecord
from .recommended_action import ActionKind, RecommendedAction

__all__ = [
    "ActionKind",
    "BAND_NAMES",
    "BudgetBands",
    "CacheEntry",
    "CacheStatus",
    "RecommendationRecord",
    "RecommendedAction",
]
