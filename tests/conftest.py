"""Shared fixtures: in-memory fakes for the protocols."""

import asyncio
import json
from dataclasses import replace

import pytest

from buyer_insights.entities import CacheStatus, RecommendationRecord


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class InMemoryRecommendationStore:
    """RecommendationStore backed by a list of rows."""

    def __init__(self, rows: list[RecommendationRecord] | None = None) -> None:
        self.rows: list[RecommendationRecord] = list(rows or [])
        self.calls: list[tuple[str, str]] = []
        self.fail_inserts = False
        self.healthy = True

    def insert(self, record: RecommendationRecord) -> str:
        self.calls.append(("insert", record.subject_id))
        if self.fail_inserts:
            raise ConnectionError("durable tier unavailable")
        key = f"row:{len(self.rows)}"
        self.rows.append(replace(record, key=key))
        return key

    def mark_stale(self, subject_id: str) -> int:
        self.calls.append(("mark_stale", subject_id))
        updated = 0
        for i, row in enumerate(self.rows):
            if row.subject_id == subject_id and row.status is CacheStatus.VALID:
                self.rows[i] = replace(row, status=CacheStatus.STALE)
                updated += 1
        return updated

    def find_valid(self, now: float) -> list[RecommendationRecord]:
        return [row for row in self.rows if row.status is CacheStatus.VALID and row.expires_at > now]

    def find_valid_for_subject(self, subject_id: str, now: float) -> list[RecommendationRecord]:
        return [row for row in self.find_valid(now) if row.subject_id == subject_id]

    def health_check(self) -> bool:
        return self.healthy

    def valid_rows(self, subject_id: str) -> list[RecommendationRecord]:
        return [row for row in self.rows if row.subject_id == subject_id and row.status is CacheStatus.VALID]


class InMemoryArtifactStore:
    """ArtifactStore backed by a dict."""

    def __init__(self) -> None:
        self.saved: dict[str, dict] = {}
        self.fail = False

    def save(self, subject_id: str, text: str, kind: str) -> str:
        if self.fail:
            raise ConnectionError("artifact store unavailable")
        key = f"artifact:{subject_id}:{len(self.saved)}"
        self.saved[key] = {"subject_id": subject_id, "text": text, "kind": kind}
        return key

    def get_text(self, key: str) -> str | None:
        artifact = self.saved.get(key)
        return artifact["text"] if artifact else None


def sse_body(*fragments: str, done: bool = True) -> bytes:
    """Build an OpenAI-style event-stream body carrying the given fragments."""
    lines = [f"data: {json.dumps({'choices': [{'delta': {'content': f}}]})}\n" for f in fragments]
    if done:
        lines.append("data: [DONE]\n")
    return "".join(lines).encode("utf-8")


class FakeGateway:
    """ModelGateway replaying canned responses.

    Attributes:
        payload: Returned by complete()
        chunks: Yielded by stream(), in order
        error: Raised by complete() and by stream() before any chunk
        gate: If set, stream() waits on it before yielding the last chunk
    """

    def __init__(self, payload: dict | None = None, chunks: list[bytes] | None = None) -> None:
        self.payload = payload or {}
        self.chunks = list(chunks or [])
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None
        self.complete_calls: list[list[dict[str, str]]] = []
        self.stream_calls: list[list[dict[str, str]]] = []
        self.closed_streams = 0

    async def complete(self, messages: list[dict[str, str]]) -> dict:
        self.complete_calls.append(messages)
        if self.error is not None:
            raise self.error
        return self.payload

    async def stream(self, messages: list[dict[str, str]]):
        self.stream_calls.append(messages)
        if self.error is not None:
            raise self.error
        try:
            for i, chunk in enumerate(self.chunks):
                if self.gate is not None and i == len(self.chunks) - 1:
                    await self.gate.wait()
                yield chunk
                await asyncio.sleep(0)
        finally:
            self.closed_streams += 1


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryRecommendationStore:
    return InMemoryRecommendationStore()


@pytest.fixture
def artifact_store() -> InMemoryArtifactStore:
    return InMemoryArtifactStore()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
