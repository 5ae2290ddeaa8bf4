"""
Tests for the analysis orchestrator.
"""

import asyncio

import pytest
from conftest import FakeGateway, InMemoryArtifactStore, sse_body

from buyer_insights.errors import GenerationFailed, QuotaExhausted, StreamTransportError
from buyer_insights.services import AnalysisOrchestrator, AnalysisRequest, AnalysisState

BUDGET_FRAGMENTS = [
    "## Budget Strategy\n\n",
    "Conservative band: $450,000 - $520,000\n",
    "Target band: $500,000 - $560,000\n",
]
REQUEST = AnalysisRequest(subject_id="buyer-a", command="Build a budget strategy")


def _chunks(body: bytes, size: int = 13) -> list[bytes]:
    return [body[i : i + size] for i in range(0, len(body), size)]


@pytest.mark.asyncio
async def test_run_completes_and_stores_artifact(artifact_store):
    gateway = FakeGateway(chunks=_chunks(sse_body(*BUDGET_FRAGMENTS)))
    orchestrator = AnalysisOrchestrator(gateway=gateway, artifact_store=artifact_store, stream_format="openai")
    seen = []

    result = await orchestrator.run(REQUEST, on_fragment=seen.append)

    assert orchestrator.state is AnalysisState.COMPLETE
    assert result.text == "".join(BUDGET_FRAGMENTS)
    assert orchestrator.text == result.text
    assert seen == BUDGET_FRAGMENTS
    assert result.bands.band("conservative") == (450000, 520000)
    assert result.bands.band("target") == (500000, 560000)
    assert artifact_store.saved[result.artifact_key]["text"] == result.text
    assert artifact_store.saved[result.artifact_key]["kind"] == "artifact"


@pytest.mark.asyncio
async def test_two_runs_give_identical_text():
    """Regeneration starts a fresh buffer and decodes the same stream identically."""
    gateway = FakeGateway(chunks=_chunks(sse_body(*BUDGET_FRAGMENTS), size=5))
    orchestrator = AnalysisOrchestrator(gateway=gateway, stream_format="openai")

    first = await orchestrator.run(REQUEST)
    second = await orchestrator.run(REQUEST)

    assert first.text == second.text
    assert orchestrator.text == second.text
    assert first.artifact_key is None


@pytest.mark.asyncio
async def test_text_without_bands():
    gateway = FakeGateway(chunks=[sse_body("Prices are moving ", "quickly in this area.")])
    orchestrator = AnalysisOrchestrator(gateway=gateway, stream_format="openai")

    result = await orchestrator.run(REQUEST)

    assert result.bands is None
    assert result.text == "Prices are moving quickly in this area."


@pytest.mark.asyncio
async def test_provider_error_sets_error_state():
    gateway = FakeGateway()
    gateway.error = QuotaExhausted("AI credits exhausted. Please add credits.")
    orchestrator = AnalysisOrchestrator(gateway=gateway, stream_format="openai")

    with pytest.raises(QuotaExhausted):
        await orchestrator.run(REQUEST)

    assert orchestrator.state is AnalysisState.ERROR
    assert orchestrator.error.kind == "quota_exhausted"


@pytest.mark.asyncio
async def test_callback_error_sets_error_state():
    """An exception from the fragment callback ends the run in ERROR."""
    gateway = FakeGateway(chunks=[sse_body("first ", "second")])
    orchestrator = AnalysisOrchestrator(gateway=gateway, stream_format="openai")

    def explode(fragment):
        raise ValueError("render failed")

    with pytest.raises(GenerationFailed) as excinfo:
        await orchestrator.run(REQUEST, on_fragment=explode)

    assert isinstance(excinfo.value.__cause__, ValueError)
    assert orchestrator.state is AnalysisState.ERROR
    assert orchestrator.error is excinfo.value


@pytest.mark.asyncio
async def test_regeneration_after_error_starts_empty():
    gateway = FakeGateway(chunks=[sse_body("first ", done=False)])

    async def broken_tail(messages):
        yield sse_body("partial ", done=False)
        raise StreamTransportError("Stream interrupted")

    orchestrator = AnalysisOrchestrator(gateway=gateway, stream_format="openai")
    gateway.stream = broken_tail

    with pytest.raises(StreamTransportError):
        await orchestrator.run(REQUEST)
    assert orchestrator.state is AnalysisState.ERROR
    assert orchestrator.text == "partial "

    del gateway.stream
    result = await orchestrator.run(REQUEST)

    assert orchestrator.state is AnalysisState.COMPLETE
    assert result.text == "first "
    assert orchestrator.text == "first "


@pytest.mark.asyncio
async def test_timeout_is_generation_failed():
    """A stream that never ends is bounded by the caller's timeout."""
    gateway = FakeGateway(chunks=[sse_body("waiting", done=False), b""])
    gateway.gate = asyncio.Event()
    orchestrator = AnalysisOrchestrator(gateway=gateway, stream_format="openai")

    with pytest.raises(GenerationFailed):
        await orchestrator.run(REQUEST, timeout=0.05)

    assert orchestrator.state is AnalysisState.ERROR
    assert gateway.closed_streams == 1


@pytest.mark.asyncio
async def test_cancel_discards_buffer(artifact_store):
    gateway = FakeGateway(chunks=[sse_body("visible ", done=False), sse_body("never")])
    gateway.gate = asyncio.Event()
    orchestrator = AnalysisOrchestrator(gateway=gateway, artifact_store=artifact_store, stream_format="openai")

    task = asyncio.create_task(orchestrator.run(REQUEST))
    for _ in range(20):
        await asyncio.sleep(0)
        if orchestrator.text:
            break
    assert orchestrator.text == "visible "
    assert orchestrator.state is AnalysisState.GENERATING

    orchestrator.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert orchestrator.state is AnalysisState.IDLE
    assert orchestrator.text == ""
    assert artifact_store.saved == {}
    assert gateway.closed_streams == 1


@pytest.mark.asyncio
async def test_new_run_cancels_previous():
    gateway = FakeGateway(chunks=[sse_body("slow ", done=False), sse_body("tail")])
    gateway.gate = asyncio.Event()
    orchestrator = AnalysisOrchestrator(gateway=gateway, stream_format="openai")

    first = asyncio.create_task(orchestrator.run(REQUEST))
    await asyncio.sleep(0.01)

    gateway.gate = None
    gateway.chunks = [sse_body("fresh")]
    result = await orchestrator.run(REQUEST)

    with pytest.raises(asyncio.CancelledError):
        await first
    assert result.text == "fresh"
    assert orchestrator.text == "fresh"
    assert orchestrator.state is AnalysisState.COMPLETE


@pytest.mark.asyncio
async def test_fetches_context_when_needed():
    gateway = FakeGateway(chunks=[sse_body("Comparables reviewed.")])
    states = []

    async def load_comparables(request):
        states.append(orchestrator.state)
        return [{"address": "12 Elm St", "price": 505000}]

    orchestrator = AnalysisOrchestrator(gateway=gateway, context_loader=load_comparables, stream_format="openai")
    request = AnalysisRequest(subject_id="buyer-a", command="Compare listings", needs_comparables=True)

    await orchestrator.run(request)

    assert states == [AnalysisState.FETCHING_CONTEXT]
    assert "12 Elm St" in gateway.stream_calls[0][1]["content"]


@pytest.mark.asyncio
async def test_supplied_comparables_skip_fetch():
    gateway = FakeGateway(chunks=[sse_body("ok")])
    calls = []

    async def load_comparables(request):
        calls.append(request)
        return []

    orchestrator = AnalysisOrchestrator(gateway=gateway, context_loader=load_comparables, stream_format="openai")
    request = AnalysisRequest(
        subject_id="buyer-a",
        command="Compare listings",
        comparables=[{"address": "7 Oak Ave"}],
        needs_comparables=True,
    )

    await orchestrator.run(request)

    assert calls == []
    assert "7 Oak Ave" in gateway.stream_calls[0][1]["content"]


@pytest.mark.asyncio
async def test_context_loader_failure_is_generation_failed():
    async def load_comparables(request):
        raise ConnectionError("listings service down")

    orchestrator = AnalysisOrchestrator(
        gateway=FakeGateway(), context_loader=load_comparables, stream_format="openai"
    )
    request = AnalysisRequest(subject_id="buyer-a", command="Compare listings", needs_comparables=True)

    with pytest.raises(GenerationFailed):
        await orchestrator.run(request)
    assert orchestrator.state is AnalysisState.ERROR


@pytest.mark.asyncio
async def test_artifact_store_failure_still_completes():
    store = InMemoryArtifactStore()
    store.fail = True
    gateway = FakeGateway(chunks=[sse_body(*BUDGET_FRAGMENTS)])
    orchestrator = AnalysisOrchestrator(gateway=gateway, artifact_store=store, stream_format="openai")

    result = await orchestrator.run(REQUEST)

    assert orchestrator.state is AnalysisState.COMPLETE
    assert result.artifact_key is None
    assert result.bands is not None
