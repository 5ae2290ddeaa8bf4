"""Drives one streamed generation from request to stored artifact.

    IDLE → FETCHING_CONTEXT (optional) → GENERATING → COMPLETE
                                                    ↘ ERROR

The visible buffer only ever holds fragments of the current run:
regeneration starts empty, and a cancelled run leaves nothing behind.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass
from enum import Enum
from typing import Any

from buyer_insights.config import settings
from buyer_insights.entities import BudgetBands
from buyer_insights.errors import GenerationError, GenerationFailed
from buyer_insights.extractor import extract_budget_bands
from buyer_insights.prompts import build_messages
from buyer_insights.protocols import ArtifactStore, ModelGateway
from buyer_insights.stream_decoder import StreamDecoder

logger = logging.getLogger(__name__)


class AnalysisState(str, Enum):
    IDLE = "idle"
    FETCHING_CONTEXT = "fetching_context"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class AnalysisRequest:
    """One generation request.

    Attributes:
        subject_id: The buyer the artifact is about
        command: The agent's command or question
        intent: "artifact" or "thinking"
        context: Buyer profile fields
        comparables: Comparison data supplied by the caller
        needs_comparables: Gather comparison data when none was supplied
    """

    subject_id: str
    command: str
    intent: str = "artifact"
    context: dict[str, Any] | None = None
    comparables: list[dict[str, Any]] | None = None
    needs_comparables: bool = False


@dataclass(frozen=True)
class AnalysisResult:
    subject_id: str
    text: str
    bands: BudgetBands | None
    artifact_key: str | None


ContextLoader = Callable[[AnalysisRequest], Awaitable[list[dict[str, Any]]]]


class AnalysisOrchestrator:
    """Streams one analysis into a live buffer and stores the result.

    One orchestrator backs one view. Starting a run while another is in
    flight cancels the earlier run.

    Example:
        ```python
        orchestrator = AnalysisOrchestrator(gateway=client, artifact_store=artifacts)
        result = await orchestrator.run(
            AnalysisRequest(subject_id="buyer-1", command="Build a budget strategy"),
            on_fragment=lambda _: render(orchestrator.text),
        )
        ```
    """

    def __init__(
        self,
        gateway: ModelGateway,
        artifact_store: ArtifactStore | None = None,
        context_loader: ContextLoader | None = None,
        stream_format: str | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            gateway: The model gateway (required).
            artifact_store: Where completed artifacts are saved. Optional.
            context_loader: Gathers comparison data for requests that need it.
            stream_format: Envelope layout of streamed frames. Defaults to settings.
            timeout: Default bound on a whole run in seconds. Defaults to settings.
        """
        self._gateway = gateway
        self._artifact_store = artifact_store
        self._context_loader = context_loader
        self._stream_format = stream_format or settings.stream_format
        self._timeout = timeout or settings.generation_timeout

        self.state = AnalysisState.IDLE
        self.error: GenerationError | None = None
        self._fragments: list[str] = []
        self._run_id = 0
        self._task: asyncio.Task | None = None

    @property
    def text(self) -> str:
        """Everything streamed so far in the current run."""
        return "".join(self._fragments)

    def cancel(self) -> None:
        """Abandon the in-flight run, if any."""
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def run(
        self,
        request: AnalysisRequest,
        on_fragment: Callable[[str], None] | None = None,
        timeout: float | None = None,
    ) -> AnalysisResult:
        """Run one generation end to end.

        Args:
            request: What to generate
            on_fragment: Called with each fragment as it arrives
            timeout: Bound on the whole run in seconds. Defaults to the instance timeout.

        Returns:
            The completed artifact and its extracted budget bands

        Raises:
            StreamTransportError / RateLimited / QuotaExhausted: Provider failures
            GenerationFailed: Other failures, including the timeout
        """
        self.cancel()
        self._run_id += 1
        run_id = self._run_id
        self._task = asyncio.current_task()
        self._fragments = []
        self.error = None

        limit = timeout or self._timeout
        try:
            return await asyncio.wait_for(self._generate(request, run_id, on_fragment), limit)
        except asyncio.TimeoutError as e:
            failure = GenerationFailed(f"Generation timed out after {limit:g}s")
            self._fail(run_id, failure)
            raise failure from e
        except GenerationError as e:
            self._fail(run_id, e)
            raise
        except asyncio.CancelledError:
            if run_id == self._run_id:
                self._fragments = []
                self.state = AnalysisState.IDLE
            raise
        except Exception as e:
            failure = GenerationFailed(f"Generation failed: {e}")
            self._fail(run_id, failure)
            raise failure from e
        finally:
            if run_id == self._run_id:
                self._task = None

    async def _generate(
        self,
        request: AnalysisRequest,
        run_id: int,
        on_fragment: Callable[[str], None] | None,
    ) -> AnalysisResult:
        comparables = request.comparables
        if comparables is None and request.needs_comparables and self._context_loader is not None:
            self._set_state(run_id, AnalysisState.FETCHING_CONTEXT)
            comparables = await self._load_context(request)

        self._set_state(run_id, AnalysisState.GENERATING)
        messages = build_messages(request.command, request.intent, request.context, comparables)

        def forward(fragment: str) -> None:
            if run_id == self._run_id:
                self._fragments.append(fragment)
            if on_fragment is not None:
                on_fragment(fragment)

        decoder = StreamDecoder(stream_format=self._stream_format, on_fragment=forward)
        async with aclosing(self._gateway.stream(messages)) as chunks:
            async for _ in decoder.decode(chunks):
                pass

        text = decoder.text
        bands = extract_budget_bands(text)
        artifact_key = await self._save(request, text)

        self._set_state(run_id, AnalysisState.COMPLETE)
        logger.info(
            "Analysis complete",
            extra={
                "extra_data": {
                    "subject_id": request.subject_id,
                    "characters": len(text),
                    "has_bands": bands is not None,
                }
            },
        )
        return AnalysisResult(
            subject_id=request.subject_id,
            text=text,
            bands=bands,
            artifact_key=artifact_key,
        )

    async def _load_context(self, request: AnalysisRequest) -> list[dict[str, Any]]:
        try:
            return await self._context_loader(request)
        except GenerationError:
            raise
        except Exception as e:
            raise GenerationFailed(f"Failed to gather comparison data: {e}") from e

    async def _save(self, request: AnalysisRequest, text: str) -> str | None:
        if self._artifact_store is None or not text:
            return None
        try:
            return await asyncio.to_thread(
                self._artifact_store.save, request.subject_id, text, request.intent
            )
        except Exception:
            # The text is still returned, without a storage key
            logger.exception(
                "Failed to store artifact",
                extra={"extra_data": {"subject_id": request.subject_id}},
            )
            return None

    def _set_state(self, run_id: int, state: AnalysisState) -> None:
        if run_id == self._run_id:
            self.state = state

    def _fail(self, run_id: int, error: GenerationError) -> None:
        if run_id == self._run_id:
            self.state = AnalysisState.ERROR
            self.error = error
            logger.warning("Analysis failed", extra={"extra_data": {"kind": error.kind}})
