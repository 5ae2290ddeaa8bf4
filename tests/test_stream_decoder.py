"""
Tests for the event-stream decoder.
"""

import json

import httpx
import pytest

from buyer_insights.errors import StreamTransportError
from buyer_insights.stream_decoder import DecoderState, StreamDecoder

FRAGMENTS = ["## Budget ", "Strategy\n\n", "Conservative band: ", "$450,000 - $520,000", " — café 🏡"]


def openai_body(fragments, done=True) -> bytes:
    lines = [
        "data: " + json.dumps({"choices": [{"delta": {"content": f}}]}, ensure_ascii=False) + "\n"
        for f in fragments
    ]
    if done:
        lines.append("data: [DONE]\n")
    return "".join(lines).encode("utf-8")


def anthropic_body(fragments) -> bytes:
    lines = ["event: message_start\n", 'data: {"type": "message_start"}\n', "\n"]
    for f in fragments:
        lines.append("event: content_block_delta\n")
        envelope = {"type": "content_block_delta", "delta": {"type": "text_delta", "text": f}}
        lines.append("data: " + json.dumps(envelope, ensure_ascii=False) + "\n\n")
    lines.append("event: message_stop\n")
    lines.append('data: {"type": "message_stop"}\n\n')
    return "".join(lines).encode("utf-8")


async def _aiter(chunks):
    for chunk in chunks:
        yield chunk


def test_single_chunk():
    """Whole body in one chunk yields every fragment in order."""
    decoder = StreamDecoder(stream_format="openai")
    fragments = decoder.decode_chunks([openai_body(FRAGMENTS)])

    assert fragments == FRAGMENTS
    assert decoder.text == "".join(FRAGMENTS)
    assert decoder.done


def test_every_split_offset_gives_identical_text():
    """Splitting the body at any byte offset never loses or duplicates a delta."""
    body = openai_body(FRAGMENTS)
    expected = StreamDecoder(stream_format="openai").decode_chunks([body])

    for offset in range(len(body) + 1):
        decoder = StreamDecoder(stream_format="openai")
        assert decoder.decode_chunks([body[:offset], body[offset:]]) == expected, offset


@pytest.mark.parametrize("size", [1, 2, 3, 7, 16, 64])
def test_fixed_size_chunks(size):
    """N-way splits (including single bytes through multi-byte characters) decode the same."""
    body = openai_body(FRAGMENTS)
    chunks = [body[i : i + size] for i in range(0, len(body), size)]

    decoder = StreamDecoder(stream_format="openai")
    decoder.decode_chunks(chunks)

    assert decoder.text == "".join(FRAGMENTS)


def test_partial_line_waits_for_more_bytes():
    """A frame without its newline is buffered, not parsed."""
    body = openai_body(["Hello"], done=False)
    decoder = StreamDecoder(stream_format="openai")

    assert decoder.feed(body[:-10]) == []
    assert decoder.state is DecoderState.AWAITING_MORE_BYTES

    assert decoder.feed(body[-10:]) == ["Hello"]
    assert decoder.state is DecoderState.AWAITING_LINE


def test_done_sentinel_stops_decoding():
    """Frames after [DONE] are ignored and the sentinel emits nothing."""
    body = openai_body(["one"]) + openai_body(["two"], done=False)
    decoder = StreamDecoder(stream_format="openai")

    assert decoder.decode_chunks([body]) == ["one"]
    assert decoder.done


def test_ignored_lines():
    """Blank lines, comments and non-data lines are skipped."""
    body = (
        b": keep-alive\n"
        b"\n"
        b"event: ping\n"
        b"id: 42\n"
        b'data: {"choices": [{"delta": {"content": "ok"}}]}\r\n'
        b"data: [DONE]\n"
    )
    decoder = StreamDecoder(stream_format="openai")

    assert decoder.decode_chunks([body]) == ["ok"]


def test_malformed_frame_is_skipped():
    """A complete but malformed frame does not abort the stream."""
    body = (
        b'data: {"choices": [{"delta": {"content": "before"}}]}\n'
        b"data: {not json\n"
        b'data: {"choices": []}\n'
        b'data: {"choices": [{"delta": {"role": "assistant"}}]}\n'
        b'data: {"choices": [{"delta": {"content": "after"}}]}\n'
        b"data: [DONE]\n"
    )
    decoder = StreamDecoder(stream_format="openai")

    assert decoder.decode_chunks([body]) == ["before", "after"]


def test_unterminated_final_frame_is_decoded_at_end_of_body():
    """A last frame without a trailing newline is parsed once the body closes."""
    body = openai_body(["a", "b"], done=False).rstrip(b"\n")
    decoder = StreamDecoder(stream_format="openai")

    assert decoder.feed(body) == ["a"]
    assert decoder.finish() == ["b"]
    assert decoder.text == "ab"


def test_anthropic_format():
    """Anthropic envelopes carry the delta under delta.text."""
    body = anthropic_body(FRAGMENTS)
    chunks = [body[i : i + 5] for i in range(0, len(body), 5)]

    decoder = StreamDecoder(stream_format="anthropic")
    decoder.decode_chunks(chunks)

    assert decoder.text == "".join(FRAGMENTS)


def test_callback_receives_each_fragment():
    """on_fragment sees every fragment as it is decoded."""
    seen = []
    decoder = StreamDecoder(stream_format="openai", on_fragment=seen.append)
    decoder.decode_chunks([openai_body(FRAGMENTS)])

    assert seen == FRAGMENTS


def test_unknown_format_rejected():
    with pytest.raises(ValueError):
        StreamDecoder(stream_format="xml")


def test_decode_chunks_restarts_each_call():
    """Each call decodes from a clean state."""
    decoder = StreamDecoder(stream_format="openai")
    body = openai_body(FRAGMENTS)

    first = decoder.decode_chunks([body])
    second = decoder.decode_chunks([body[:11], body[11:]])

    assert first == second
    assert decoder.text == "".join(FRAGMENTS)


@pytest.mark.asyncio
async def test_async_decode():
    """decode() lazily yields fragments from an async byte source."""
    body = openai_body(FRAGMENTS)
    chunks = [body[i : i + 9] for i in range(0, len(body), 9)]

    decoder = StreamDecoder(stream_format="openai")
    fragments = [fragment async for fragment in decoder.decode(_aiter(chunks))]

    assert fragments == FRAGMENTS


@pytest.mark.asyncio
async def test_transport_error_is_mapped():
    """A network failure mid-body surfaces as StreamTransportError."""

    async def broken():
        yield openai_body(["partial"], done=False)
        raise httpx.ReadError("connection reset")

    decoder = StreamDecoder(stream_format="openai")
    received = []
    with pytest.raises(StreamTransportError):
        async for fragment in decoder.decode(broken()):
            received.append(fragment)

    assert received == ["partial"]
