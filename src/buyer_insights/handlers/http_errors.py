"""Map generation failures to HTTP errors."""

from fastapi import HTTPException, status

from buyer_insights.errors import GenerationError, QuotaExhausted, RateLimited


def generation_http_error(error: GenerationError) -> HTTPException:
    """Convert a GenerationError into the HTTPException the client sees.

    Rate limits pass through as 429 and exhausted credits as 402 so the
    client can show the matching message; everything else is a 502.
    """
    if isinstance(error, RateLimited):
        headers = None
        if error.retry_after is not None:
            headers = {"Retry-After": str(int(error.retry_after))}
        return HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=error.message,
            headers=headers,
        )
    if isinstance(error, QuotaExhausted):
        return HTTPException(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=error.message)
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=error.message)
