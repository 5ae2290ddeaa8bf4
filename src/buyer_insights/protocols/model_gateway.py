"""Model gateway protocol.

Defines the transport to the hosted language model. The orchestrator and
the recommendation service only depend on this interface, so tests can
replay canned event streams without a network.
"""

from collections.abc import AsyncGenerator
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ModelGateway(Protocol):
    """Protocol for model providers."""

    async def complete(self, messages: list[dict[str, str]]) -> dict[str, Any]:
        """Run a non-streaming generation.

        Args:
            messages: Chat messages (role/content dicts)

        Returns:
            The provider's JSON payload

        Raises:
            GenerationError: On transport, rate-limit, quota or other failures
        """
        ...

    def stream(self, messages: list[dict[str, str]]) -> AsyncGenerator[bytes, None]:
        """Run a streaming generation.

        Args:
            messages: Chat messages (role/content dicts)

        Returns:
            Async generator over the raw event-stream body

        Raises:
            GenerationError: On transport, rate-limit, quota or other failures
        """
        ...
