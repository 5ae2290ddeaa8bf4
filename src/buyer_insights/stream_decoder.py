"""
Server-sent-event decoding for streamed model output.

The provider answers a streaming request with newline-delimited frames:

    : keep-alive comment
    event: content_block_delta
    data: {"choices": [{"delta": {"content": "Hel"}}]}
    data: {"choices": [{"delta": {"content": "lo"}}]}
    data: [DONE]

Bytes arrive in arbitrary chunks, so a frame (or a multi-byte UTF-8
character) can be split across reads. A line is handed to the JSON
parser only once its terminating newline has arrived; until then it
stays buffered and the decoder waits for more bytes. This keeps every
text delta exactly once no matter where the chunk boundaries fall.
"""

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable, Iterable
from enum import Enum
from typing import Any

import httpx

from buyer_insights.config import settings
from buyer_insights.errors import StreamTransportError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
COMMENT_MARKER = ":"
DONE_SENTINEL = "[DONE]"

# Where the text delta lives inside one frame's JSON envelope.
DELTA_PATHS: dict[str, tuple[str | int, ...]] = {
    "openai": ("choices", 0, "delta", "content"),
    "anthropic": ("delta", "text"),
}


class DecoderState(str, Enum):
    """Parse state of the line buffer."""

    AWAITING_LINE = "awaiting_line"  # buffer empty
    HAVE_LINE = "have_line"  # a complete line is being processed
    AWAITING_MORE_BYTES = "awaiting_more_bytes"  # partial line buffered
    DONE = "done"  # sentinel seen or body closed


def _dig(envelope: Any, path: tuple[str | int, ...]) -> Any:
    node = envelope
    for step in path:
        if isinstance(step, int):
            if not isinstance(node, list) or len(node) <= step:
                return None
        elif not isinstance(node, dict) or step not in node:
            return None
        node = node[step]
    return node


class StreamDecoder:
    """Turns an event-stream byte body into ordered text fragments.

    Every emitted fragment is appended to an accumulator (``text``) and
    forwarded to the optional ``on_fragment`` callback.

    Example:
        ```python
        decoder = StreamDecoder(stream_format="openai", on_fragment=print)
        async for fragment in decoder.decode(response.aiter_bytes()):
            ...
        full_text = decoder.text
        ```
    """

    def __init__(
        self,
        stream_format: str | None = None,
        on_fragment: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the decoder.

        Args:
            stream_format: Envelope layout ("openai" or "anthropic"). Defaults to settings.
            on_fragment: Called with each fragment as soon as it is decoded.
        """
        self._format = stream_format or settings.stream_format
        if self._format not in DELTA_PATHS:
            raise ValueError(f"Unknown stream format: {self._format!r}")
        self._path = DELTA_PATHS[self._format]
        self._on_fragment = on_fragment
        self.reset()

    def reset(self) -> None:
        """Drop all buffered bytes and accumulated text."""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._fragments: list[str] = []
        self.state = DecoderState.AWAITING_LINE

    @property
    def stream_format(self) -> str:
        return self._format

    @property
    def fragments(self) -> list[str]:
        return list(self._fragments)

    @property
    def text(self) -> str:
        """Concatenation of every fragment emitted so far."""
        return "".join(self._fragments)

    @property
    def done(self) -> bool:
        return self.state is DecoderState.DONE

    def feed(self, chunk: bytes) -> list[str]:
        """Consume one chunk of the body.

        Args:
            chunk: Raw bytes, split anywhere

        Returns:
            Fragments completed by this chunk, in arrival order
        """
        if self.done:
            return []
        self._buffer += self._utf8.decode(chunk)
        return self._drain()

    def finish(self) -> list[str]:
        """Signal end of body and decode any unterminated final frame."""
        if self.done:
            return []

        self._buffer += self._utf8.decode(b"", final=True)
        emitted = self._drain()

        if not self.done and self._buffer:
            line, self._buffer = self._buffer, ""
            self.state = DecoderState.HAVE_LINE
            fragment = self._handle_line(line)
            if fragment is not None:
                emitted.append(fragment)

        self.state = DecoderState.DONE
        return emitted

    def decode_chunks(self, chunks: Iterable[bytes]) -> list[str]:
        """Decode a complete body given as an iterable of chunks."""
        self.reset()
        emitted: list[str] = []
        for chunk in chunks:
            emitted.extend(self.feed(chunk))
            if self.done:
                break
        emitted.extend(self.finish())
        return emitted

    async def decode(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[str]:
        """Lazily decode a streaming body.

        Each call starts from a clean state. Iteration stops at the
        ``[DONE]`` sentinel or when the byte source is exhausted.

        Args:
            chunks: Async iterable of raw body bytes

        Yields:
            Text fragments in arrival order

        Raises:
            StreamTransportError: If reading the body fails at the network level
        """
        self.reset()
        try:
            async for chunk in chunks:
                for fragment in self.feed(chunk):
                    yield fragment
                if self.done:
                    break
        except httpx.TransportError as e:
            raise StreamTransportError(f"Stream interrupted: {e}") from e

        for fragment in self.finish():
            yield fragment

    def _drain(self) -> list[str]:
        emitted: list[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                self.state = DecoderState.AWAITING_MORE_BYTES if self._buffer else DecoderState.AWAITING_LINE
                break

            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            self.state = DecoderState.HAVE_LINE

            fragment = self._handle_line(line)
            if fragment is not None:
                emitted.append(fragment)

        return emitted

    def _handle_line(self, line: str) -> str | None:
        if line.endswith("\r"):
            line = line[:-1]

        if not line.strip() or line.startswith(COMMENT_MARKER) or not line.startswith(DATA_PREFIX):
            return None

        payload = line[len(DATA_PREFIX) :].strip()
        if payload == DONE_SENTINEL:
            self.state = DecoderState.DONE
            return None

        try:
            envelope = json.loads(payload)
        except json.JSONDecodeError:
            logger.debug("Skipping malformed frame: %.80s", payload)
            return None

        fragment = _dig(envelope, self._path)
        if not isinstance(fragment, str) or not fragment:
            return None

        self._fragments.append(fragment)
        if self._on_fragment is not None:
            self._on_fragment(fragment)
        return fragment
