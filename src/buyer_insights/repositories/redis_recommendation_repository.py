"""Redis implementation of RecommendationStore.

Rows are Redis hashes indexed with a redisvl search index so the durable
tier can be filtered by subject, status and expiry. Expired rows are not
deleted when they lapse; Redis key expiry only bounds retention.
"""

import json
import logging

import redis
from redisvl.index import SearchIndex
from redisvl.query import FilterQuery
from redisvl.query.filter import Num, Tag

from buyer_insights.config import get_redis_client, settings
from buyer_insights.entities import CacheStatus, RecommendationRecord, RecommendedAction

logger = logging.getLogger(__name__)

RETURN_FIELDS = ["subject_id", "status", "created_at", "expires_at", "actions_json"]


class RedisRecommendationRepository:
    """Redis implementation of the durable recommendation tier.

    This class satisfies the RecommendationStore protocol through
    structural typing - no explicit inheritance needed.

    Index fields:
    - subject_id, status: tag fields for equality filters
    - created_at, expires_at: numeric fields for ordering and expiry
    - actions_json: the serialized action list
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        index_name: str | None = None,
        retention: int | None = None,
        page_size: int = 100,
    ) -> None:
        """Initialize the Redis recommendation repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            index_name: Name of the Redis search index.
            retention: Seconds before Redis drops a row entirely.
            page_size: Rows fetched per search round-trip.
        """
        self._client = redis_client or get_redis_client()
        self._index_name = index_name or settings.recommendation_index_name
        self._retention = retention or settings.recommendation_retention
        self._page_size = page_size
        self._index: SearchIndex | None = None

        self._ensure_index()

    @classmethod
    def create(
        cls,
        index_name: str | None = None,
        retention: int | None = None,
    ) -> "RedisRecommendationRepository":
        """Factory method to create RedisRecommendationRepository with defaults.

        Args:
            index_name: Redis index name. If None, uses settings.
            retention: Row retention in seconds. If None, uses settings.

        Returns:
            Configured RedisRecommendationRepository
        """
        return cls(index_name=index_name, retention=retention)

    def _ensure_index(self) -> None:
        """Ensure the Redis search index exists."""
        if self._index is not None:
            return

        index_schema = {
            "index": {
                "name": self._index_name,
                "prefix": f"{self._index_name}:",
                "storage_type": "hash",
            },
            "fields": [
                {"name": "subject_id", "type": "tag"},
                {"name": "status", "type": "tag"},
                {"name": "created_at", "type": "numeric", "attrs": {"sortable": True}},
                {"name": "expires_at", "type": "numeric"},
                {"name": "actions_json", "type": "text"},
            ],
        }

        self._index = SearchIndex.from_dict(index_schema, redis_client=self._client)

        try:
            self._index.create(overwrite=False)
            logger.info("Created recommendation index: %s", self._index_name)
        except Exception as e:
            if "already exists" in str(e) or "Index already exists" in str(e):
                logger.info("Using existing recommendation index: %s", self._index_name)
            else:
                raise

    def _key(self, record: RecommendationRecord) -> str:
        return f"{self._index_name}:{record.subject_id}:{int(record.created_at * 1_000_000)}"

    def insert(self, record: RecommendationRecord) -> str:
        """Insert a row as a Redis hash.

        Args:
            record: The row to insert

        Returns:
            The storage key for the row
        """
        key = self._key(record)
        actions_json = json.dumps([action.to_dict() for action in record.actions])

        pipe = self._client.pipeline()
        pipe.hset(
            key,
            mapping={
                "subject_id": record.subject_id,
                "status": record.status.value,
                "created_at": str(record.created_at),
                "expires_at": str(record.expires_at),
                "actions_json": actions_json,
            },
        )
        pipe.expire(key, self._retention)
        pipe.execute()

        return key

    def mark_stale(self, subject_id: str) -> int:
        """Demote every valid row of a subject.

        Args:
            subject_id: The subject whose rows are demoted

        Returns:
            Number of rows updated
        """
        query = FilterQuery(
            filter_expression=(Tag("subject_id") == subject_id) & (Tag("status") == CacheStatus.VALID.value),
            return_fields=["status"],
            num_results=self._page_size,
        )
        # Collect ids first: updating status while paging would shift the result window
        keys = [result["id"] for result in self._search(query)]
        if not keys:
            return 0

        pipe = self._client.pipeline()
        for key in keys:
            pipe.hset(key, "status", CacheStatus.STALE.value)
        pipe.execute()

        return len(keys)

    def find_valid(self, now: float) -> list[RecommendationRecord]:
        """Select rows with status = valid AND expires_at > now.

        Args:
            now: Current Unix timestamp

        Returns:
            Matching rows
        """
        return self._find(Tag("status") == CacheStatus.VALID.value, now)

    def find_valid_for_subject(self, subject_id: str, now: float) -> list[RecommendationRecord]:
        """Select valid, unexpired rows of one subject."""
        return self._find(
            (Tag("subject_id") == subject_id) & (Tag("status") == CacheStatus.VALID.value),
            now,
        )

    def _find(self, filter_expression, now: float) -> list[RecommendationRecord]:
        query = FilterQuery(
            filter_expression=filter_expression & (Num("expires_at") > now),
            return_fields=RETURN_FIELDS,
            num_results=self._page_size,
        )

        records = []
        for result in self._search(query):
            record = self._to_record(result)
            if record is not None:
                records.append(record)
        return records

    def _search(self, query: FilterQuery) -> list[dict]:
        if self._index is None:
            return []

        results: list[dict] = []
        for page in self._index.paginate(query, page_size=self._page_size):
            results.extend(page)
        return results

    def _to_record(self, result: dict) -> RecommendationRecord | None:
        try:
            payload = json.loads(result["actions_json"])
        except (KeyError, json.JSONDecodeError):
            logger.warning("Skipping row with unreadable actions: %s", result.get("id"))
            return None

        actions = tuple(
            RecommendedAction.from_payload(item, position)
            for position, item in enumerate(payload, start=1)
            if isinstance(item, dict)
        )
        return RecommendationRecord(
            subject_id=result["subject_id"],
            actions=actions,
            created_at=float(result.get("created_at", 0)),
            expires_at=float(result.get("expires_at", 0)),
            status=CacheStatus(result.get("status", CacheStatus.VALID.value)),
            key=result.get("id"),
        )

    def health_check(self) -> bool:
        """Check if Redis is accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            result = self._client.ping()
            return bool(result)
        except redis.RedisError:
            return False

    @property
    def client(self) -> redis.Redis:
        """Get the Redis client."""
        return self._client
