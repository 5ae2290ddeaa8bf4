"""Recommendation service: cache-first "what should the agent do next"."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

from buyer_insights.entities import ActionKind, CacheEntry, CacheStatus, RecommendedAction
from buyer_insights.errors import GenerationError
from buyer_insights.prompts import build_messages
from buyer_insights.protocols import ModelGateway
from buyer_insights.repositories import extract_content

from .recommendation_cache import RecommendationCache

logger = logging.getLogger(__name__)

FALLBACK_ACTIONS = (
    RecommendedAction("1", "Draft client update", "Draft update for buyer", ActionKind.ARTIFACT),
    RecommendedAction("2", "Generate market analysis", "Generate market analysis", ActionKind.ARTIFACT),
    RecommendedAction("3", "Review transaction status", "What should I prioritize next?", ActionKind.THINKING),
)

_JSON_ARRAY = re.compile(r"\[[\s\S]*\]")


@dataclass(frozen=True)
class Recommendations:
    """Actions returned to the caller, with where they came from."""

    subject_id: str
    actions: tuple[RecommendedAction, ...]
    cached_at: float
    status: CacheStatus
    from_cache: bool

    @classmethod
    def from_entry(cls, entry: CacheEntry, from_cache: bool) -> "Recommendations":
        return cls(
            subject_id=entry.subject_id,
            actions=entry.actions,
            cached_at=entry.cached_at,
            status=entry.status,
            from_cache=from_cache,
        )


def parse_actions(payload: dict[str, Any]) -> tuple[RecommendedAction, ...]:
    """Read recommended actions from a provider payload.

    Accepts an ``actions`` list, or the first JSON array found in the
    generated text. Falls back to FALLBACK_ACTIONS when neither parses.
    """
    raw = payload.get("actions")
    if not isinstance(raw, list):
        raw = None
        match = _JSON_ARRAY.search(extract_content(payload))
        if match:
            try:
                raw = json.loads(match.group(0))
            except json.JSONDecodeError:
                raw = None

    if not isinstance(raw, list):
        logger.warning("No parseable actions in model output, using fallback actions")
        return FALLBACK_ACTIONS

    actions = tuple(
        RecommendedAction.from_payload(item, position)
        for position, item in enumerate(raw, start=1)
        if isinstance(item, dict)
    )
    return actions or FALLBACK_ACTIONS


class RecommendationService:
    """Serves recommended actions from the cache, refreshing from the model.

    Example:
        ```python
        service = RecommendationService(cache=cache, gateway=ModelGatewayClient.create())
        result = await service.recommend("buyer-1", context={"name": "Dana", "current_stage": 1})
        ```
    """

    def __init__(self, cache: RecommendationCache, gateway: ModelGateway) -> None:
        """Initialize the service.

        Args:
            cache: The recommendation cache (required).
            gateway: The model gateway (required).
        """
        self._cache = cache
        self._gateway = gateway

    async def recommend(
        self,
        subject_id: str,
        context: dict[str, Any] | None = None,
        force_refresh: bool = False,
    ) -> Recommendations:
        """Return recommended actions for a buyer.

        Business logic:
        1. Serve a fresh cache entry unless a refresh is forced
        2. Otherwise ask the model and cache the parsed actions
        3. If the model call fails, serve a stale entry when one exists

        Args:
            subject_id: The buyer to recommend for
            context: Buyer profile fields for the prompt
            force_refresh: Skip a fresh cache entry

        Returns:
            Recommendations with cache provenance

        Raises:
            GenerationError: If the model call fails and nothing is cached
        """
        cached = await self._cache.lookup(subject_id)
        if cached is not None and not cached.is_stale and not force_refresh:
            return Recommendations.from_entry(cached, from_cache=True)

        try:
            payload = await self._gateway.complete(build_messages("", "actions", context))
        except GenerationError as e:
            if cached is None:
                raise
            logger.warning(
                "Serving cached recommendations after refresh failure",
                extra={"extra_data": {"subject_id": subject_id, "error": e.kind}},
            )
            return Recommendations.from_entry(cached, from_cache=True)

        entry = await self._cache.put(subject_id, parse_actions(payload))
        return Recommendations.from_entry(entry, from_cache=False)

    @property
    def cache(self) -> RecommendationCache:
        """Get the underlying cache (for testing)."""
        return self._cache
