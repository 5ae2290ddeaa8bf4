"""Recommendation cache domain entities."""

from dataclasses import dataclass, replace
from enum import Enum

from .recommended_action import RecommendedAction


class CacheStatus(str, Enum):
    """Freshness of a cached recommendation set."""

    VALID = "valid"
    STALE = "stale"


@dataclass(frozen=True)
class CacheEntry:
    """Recommendation set held in the volatile tier.

    Attributes:
        subject_id: The buyer the actions are about
        actions: The cached actions, in display order
        cached_at: When the actions were fetched (Unix timestamp)
        status: VALID while younger than the TTL, STALE afterwards
    """

    subject_id: str
    actions: tuple[RecommendedAction, ...]
    cached_at: float
    status: CacheStatus = CacheStatus.VALID

    @property
    def is_stale(self) -> bool:
        return self.status is CacheStatus.STALE

    def with_status(self, status: CacheStatus) -> "CacheEntry":
        return replace(self, status=status)


@dataclass(frozen=True)
class RecommendationRecord:
    """A row of the durable tier.

    Attributes:
        subject_id: The buyer the actions are about
        actions: The persisted actions
        created_at: Insert time (Unix timestamp), monotonic per subject
        expires_at: created_at + TTL
        status: VALID for the current row, STALE once superseded or invalidated
        key: Storage key, set when read back from the store
    """

    subject_id: str
    actions: tuple[RecommendedAction, ...]
    created_at: float
    expires_at: float
    status: CacheStatus = CacheStatus.VALID
    key: str | None = None

    def to_entry(self) -> CacheEntry:
        return CacheEntry(
            subject_id=self.subject_id,
            actions=self.actions,
            cached_at=self.created_at,
        )
