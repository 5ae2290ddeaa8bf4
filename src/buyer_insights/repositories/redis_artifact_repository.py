"""Redis implementation of ArtifactStore."""

import time

import redis

from buyer_insights.config import get_redis_client, settings


class RedisArtifactRepository:
    """Stores each completed artifact as one Redis hash.

    This class satisfies the ArtifactStore protocol through structural
    typing - no explicit inheritance needed.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        prefix: str | None = None,
    ) -> None:
        """Initialize the artifact repository.

        Args:
            redis_client: Redis client instance. If None, creates default.
            prefix: Key prefix for artifact hashes.
        """
        self._client = redis_client or get_redis_client()
        self._prefix = prefix or settings.artifact_prefix

    @classmethod
    def create(cls, prefix: str | None = None) -> "RedisArtifactRepository":
        """Factory method to create RedisArtifactRepository with defaults."""
        return cls(prefix=prefix)

    def save(self, subject_id: str, text: str, kind: str) -> str:
        """Persist a completed artifact.

        Args:
            subject_id: The buyer the artifact is about
            text: The full generated text
            kind: "artifact" or "thinking"

        Returns:
            The storage key for the artifact
        """
        key = f"{self._prefix}:{subject_id}:{time.time_ns()}"

        self._client.hset(
            key,
            mapping={
                "subject_id": subject_id,
                "kind": kind,
                "text": text,
                "created_at": str(time.time()),
            },
        )
        return key

    def get_text(self, key: str) -> str | None:
        """Read back the text of a stored artifact.

        Args:
            key: The storage key returned by save()

        Returns:
            The artifact text, or None if the key is unknown
        """
        stored = self._client.hget(key, "text")
        if stored is None:
            return None
        if isinstance(stored, bytes):
            return stored.decode()
        return str(stored)
