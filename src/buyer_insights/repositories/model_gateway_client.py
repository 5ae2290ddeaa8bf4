"""HTTP client for the hosted language model.

Talks to either an OpenAI-compatible chat completions gateway or the
Anthropic messages API, both over plain POST:

- non-streaming: one JSON payload, text read by ``extract_content``
- streaming: ``text/event-stream`` body handed to the StreamDecoder

Status codes are mapped to the failure taxonomy before any body byte is
yielded: 429 → RateLimited, 402 → QuotaExhausted, other non-2xx →
GenerationFailed, network errors → StreamTransportError.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from typing import Any

import httpx

from buyer_insights.config import settings
from buyer_insights.errors import GenerationFailed, RateLimited, StreamTransportError, error_for_response

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"


def extract_content(payload: dict[str, Any]) -> str:
    """Read the generated text out of a non-streaming payload.

    Understands the gateway's own ``{"content": "..."}`` shape, OpenAI
    ``choices[0].message.content`` and Anthropic ``content[0].text``.

    Returns:
        The text, or "" if the payload carries none
    """
    content = payload.get("content")
    if isinstance(content, str):
        return content
    if isinstance(content, list) and content and isinstance(content[0], dict):
        return str(content[0].get("text") or "")

    choices = payload.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}
        return str(message.get("content") or "")

    return ""


class ModelGatewayClient:
    """httpx-based implementation of the ModelGateway protocol.

    This class satisfies the ModelGateway protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        client = ModelGatewayClient.create()

        payload = await client.complete([{"role": "user", "content": "Hi"}])
        print(extract_content(payload))

        async for chunk in client.stream([{"role": "user", "content": "Hi"}]):
            decoder.feed(chunk)
        ```
    """

    def __init__(
        self,
        url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        stream_format: str | None = None,
        timeout: float = 60.0,
        max_retries: int | None = None,
        backoff_base: float = 1.0,
        max_tokens: int = 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the gateway client.

        Args:
            url: Endpoint URL. Defaults to settings.model_gateway_url.
            api_key: API key. Defaults to settings.model_api_key.
            model: Model identifier. Defaults to settings.model_name.
            stream_format: "openai" or "anthropic". Defaults to settings.
            timeout: Per-request timeout in seconds.
            max_retries: Retries on 429 for non-streaming calls. Defaults to settings.
            backoff_base: Seconds multiplied by 2 ** (attempt + 1) between retries.
            max_tokens: Completion length limit (Anthropic requires one).
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests).
        """
        self._url = url or settings.model_gateway_url
        self._api_key = api_key if api_key is not None else settings.model_api_key
        self._model = model or settings.model_name
        self._format = stream_format or settings.stream_format
        self._timeout = timeout
        self._max_retries = settings.rate_limit_max_retries if max_retries is None else max_retries
        self._backoff_base = backoff_base
        self._max_tokens = max_tokens
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def create(
        cls,
        url: str | None = None,
        model: str | None = None,
    ) -> "ModelGatewayClient":
        """Factory method to create ModelGatewayClient with defaults.

        Args:
            url: Endpoint URL. If None, uses settings.
            model: Model identifier. If None, uses settings.

        Returns:
            Configured ModelGatewayClient
        """
        return cls(url=url, model=model)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-load the async HTTP client.

        Returns:
            The httpx.AsyncClient instance
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers=self._headers(),
                transport=self._transport,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
            )
        return self._client

    @property
    def stream_format(self) -> str:
        return self._format

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._format == "anthropic":
            headers["anthropic-version"] = ANTHROPIC_VERSION
            if self._api_key:
                headers["x-api-key"] = self._api_key
        elif self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _payload(self, messages: list[dict[str, str]], stream: bool) -> dict[str, Any]:
        if self._format != "anthropic":
            return {"model": self._model, "messages": messages, "stream": stream}

        # Anthropic takes the system prompt as a top-level field
        system = "\n\n".join(m["content"] for m in messages if m["role"] == "system")
        payload: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": [m for m in messages if m["role"] != "system"],
            "stream": stream,
        }
        if system:
            payload["system"] = system
        return payload

    async def complete(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        """Run a non-streaming generation, retrying on rate limits.

        Args:
            messages: Chat messages (role/content dicts)

        Returns:
            The provider's JSON payload

        Raises:
            StreamTransportError: If the gateway is unreachable
            RateLimited: If still rate limited after all retries
            QuotaExhausted: If the account is out of credits
            GenerationFailed: For other non-2xx answers or a non-JSON body
        """
        payload = self._payload(messages, stream=False)

        for attempt in range(self._max_retries + 1):
            try:
                response = await self.client.post(self._url, json=payload)
            except httpx.TransportError as e:
                raise StreamTransportError(f"Model gateway unreachable: {e}") from e

            error = error_for_response(response)
            if error is None:
                try:
                    return response.json()
                except ValueError as e:
                    raise GenerationFailed("Model gateway returned a non-JSON body") from e

            if not isinstance(error, RateLimited) or attempt == self._max_retries:
                logger.error("Model gateway error %s: %.200s", response.status_code, response.text)
                raise error

            delay = error.retry_after if error.retry_after is not None else self._backoff_base * 2 ** (attempt + 1)
            logger.warning(
                "Rate limit hit, retrying",
                extra={"extra_data": {"attempt": attempt + 1, "delay_seconds": delay}},
            )
            await asyncio.sleep(delay)

        raise GenerationFailed("Max retries exceeded")

    async def stream(self, messages: list[dict[str, str]]) -> AsyncGenerator[bytes, None]:
        """Run a streaming generation.

        Args:
            messages: Chat messages (role/content dicts)

        Yields:
            Raw chunks of the event-stream body

        Raises:
            StreamTransportError: On network failure before or during the body
            RateLimited / QuotaExhausted / GenerationFailed: On non-2xx status
        """
        payload = self._payload(messages, stream=True)

        try:
            async with self.client.stream("POST", self._url, json=payload) as response:
                error = error_for_response(response)
                if error is not None:
                    await response.aread()
                    logger.error("Model gateway error %s: %.200s", response.status_code, response.text)
                    raise error

                async for chunk in response.aiter_bytes():
                    yield chunk
        except httpx.TransportError as e:
            raise StreamTransportError(f"Model gateway stream failed: {e}") from e

    async def close(self) -> None:
        """Close the async HTTP client.

        Should be called when shutting down the application.
        """
        if self._client is not None:
            await self._client.aclose()
            self._client = None
