import os
from dataclasses import dataclass
from functools import lru_cache

import redis
from dotenv import load_dotenv

load_dotenv()

STREAM_FORMATS = ("openai", "anthropic")
READ_POLICIES = ("volatile_only", "read_through")


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    # Redis (durable tier)
    redis_url: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    redis_password: str | None = os.getenv("REDIS_PASSWORD")

    # Recommendation cache
    recommendation_index_name: str = os.getenv("RECOMMENDATION_INDEX_NAME", "buyer_recommendations")
    recommendation_ttl: int = int(os.getenv("RECOMMENDATION_TTL", "3600"))  # 1 hour
    recommendation_retention: int = int(os.getenv("RECOMMENDATION_RETENTION", "604800"))  # 7 days
    recommendation_read_policy: str = os.getenv("RECOMMENDATION_READ_POLICY", "volatile_only")

    # Artifacts
    artifact_prefix: str = os.getenv("ARTIFACT_PREFIX", "buyer_artifact")

    # Model provider
    model_gateway_url: str = os.getenv(
        "MODEL_GATEWAY_URL",
        "https://ai.gateway.lovable.dev/v1/chat/completions",
    )
    model_api_key: str | None = os.getenv("MODEL_API_KEY")
    model_name: str = os.getenv("MODEL_NAME", "google/gemini-3-flash-preview")
    # Envelope layout of streamed frames: "openai" or "anthropic"
    stream_format: str = os.getenv("STREAM_FORMAT", "openai")
    generation_timeout: float = float(os.getenv("GENERATION_TIMEOUT", "120"))
    rate_limit_max_retries: int = int(os.getenv("RATE_LIMIT_MAX_RETRIES", "3"))

    # API
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    api_reload: bool = os.getenv("API_RELOAD", "true").lower() == "true"

    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    @property
    def read_through(self) -> bool:
        """Check if cache misses should consult the durable tier.

        Returns:
            True for the read_through policy, False for volatile_only
        """
        return self.recommendation_read_policy == "read_through"

    def __post_init__(self) -> None:
        """Validate settings after initialization."""
        if self.recommendation_ttl <= 0:
            raise ValueError("RECOMMENDATION_TTL must be a positive number of seconds")

        if self.stream_format not in STREAM_FORMATS:
            raise ValueError(f"STREAM_FORMAT must be one of {list(STREAM_FORMATS)}, got {self.stream_format!r}")

        if self.recommendation_read_policy not in READ_POLICIES:
            raise ValueError(
                f"RECOMMENDATION_READ_POLICY must be one of {list(READ_POLICIES)}, "
                f"got {self.recommendation_read_policy!r}"
            )

        if self.generation_timeout <= 0:
            raise ValueError("GENERATION_TIMEOUT must be positive")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


def get_redis_client() -> redis.Redis:
    """Create a Redis client instance."""
    return redis.from_url(
        settings.redis_url,
        password=settings.redis_password,
        decode_responses=False,
    )
