"""Failure taxonomy for model generation.

Every failure raised by the gateway client, the stream decoder and the
analysis orchestrator is a GenerationError subclass, so UI handlers can
offer a retry affordance with a single except clause.

An extraction miss is not in this module: the budget band extractor
returns None and never raises.
"""

import httpx


class GenerationError(Exception):
    """Base class for model generation failures."""

    kind = "generation_error"
    retryable = True

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StreamTransportError(GenerationError):
    """Network-level failure while talking to the provider."""

    kind = "stream_transport_error"


class RateLimited(GenerationError):
    """Provider answered 429."""

    kind = "rate_limited"

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, status_code=429)
        self.retry_after = retry_after


class QuotaExhausted(GenerationError):
    """Provider answered 402; credits must be added before retrying."""

    kind = "quota_exhausted"
    retryable = False

    def __init__(self, message: str) -> None:
        super().__init__(message, status_code=402)


class GenerationFailed(GenerationError):
    """Any other non-2xx answer, an unusable payload, or a timeout."""

    kind = "generation_failed"


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def error_for_response(response: httpx.Response) -> GenerationError | None:
    """Map a provider response status to the failure taxonomy.

    Args:
        response: The provider response (body need not be read)

    Returns:
        The matching GenerationError, or None for 2xx responses
    """
    if response.is_success:
        return None

    if response.status_code == 429:
        return RateLimited(
            "Rate limit exceeded. Please try again in a moment.",
            retry_after=_retry_after(response),
        )
    if response.status_code == 402:
        return QuotaExhausted("AI credits exhausted. Please add credits.")
    return GenerationFailed(
        f"AI gateway error: {response.status_code}",
        status_code=response.status_code,
    )
