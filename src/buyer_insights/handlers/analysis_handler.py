"""HTTP handlers for streamed analysis and budget band extraction."""

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Callable

from fastapi import HTTPException, status
from fastapi.responses import StreamingResponse

from buyer_insights.dto import (
    AnalysisRequestBody,
    AnalysisResponse,
    BudgetBandsResponse,
    ExtractBudgetBandsRequest,
)
from buyer_insights.entities import BudgetBands
from buyer_insights.errors import GenerationError
from buyer_insights.extractor import extract_budget_bands, is_budget_bands_artifact
from buyer_insights.protocols import ArtifactStore
from buyer_insights.services import AnalysisOrchestrator, AnalysisRequest, AnalysisResult

from .http_errors import generation_http_error

logger = logging.getLogger(__name__)


def bands_response(text: str, bands: BudgetBands | None) -> BudgetBandsResponse:
    values = bands.to_dict() if bands is not None else {}
    return BudgetBandsResponse(
        found=bands is not None,
        is_budget_artifact=is_budget_bands_artifact(text),
        **values,
    )


def _analysis_response(result: AnalysisResult) -> AnalysisResponse:
    return AnalysisResponse(
        subject_id=result.subject_id,
        text=result.text,
        bands=bands_response(result.text, result.bands) if result.bands is not None else None,
        artifact_key=result.artifact_key,
    )


def _sse(data: dict, event: str | None = None) -> str:
    frame = f"event: {event}\n" if event else ""
    return f"{frame}data: {json.dumps(data)}\n\n"


def _to_request(body: AnalysisRequestBody) -> AnalysisRequest:
    return AnalysisRequest(
        subject_id=body.subject_id,
        command=body.command,
        intent=body.intent,
        context=body.context.model_dump() if body.context is not None else None,
        comparables=body.comparables,
        needs_comparables=body.needs_comparables,
    )


class AnalysisHandler:
    """HTTP handlers for analysis generation.

    Each request gets its own orchestrator, so concurrent requests never
    share a buffer.

    Example:
        ```python
        handler = AnalysisHandler(orchestrator_factory=lambda: AnalysisOrchestrator(gateway=client))

        @app.post("/analysis/stream")
        async def stream(body: AnalysisRequestBody):
            return await handler.stream(body)
        ```
    """

    def __init__(
        self,
        orchestrator_factory: Callable[[], AnalysisOrchestrator],
        artifact_store: ArtifactStore | None = None,
    ) -> None:
        """Initialize the analysis handler.

        Args:
            orchestrator_factory: Builds a fresh orchestrator per request (required).
            artifact_store: Stored artifacts, for band lookups by key. Optional.
        """
        self._new_orchestrator = orchestrator_factory
        self._artifact_store = artifact_store

    async def run(self, body: AnalysisRequestBody) -> AnalysisResponse:
        """Handle POST /analysis requests: generate and return the full text.

        Raises:
            HTTPException: 429/402/502 on generation failure
        """
        orchestrator = self._new_orchestrator()
        try:
            result = await orchestrator.run(_to_request(body), timeout=body.timeout)
        except GenerationError as e:
            raise generation_http_error(e) from e
        return _analysis_response(result)

    async def stream(self, body: AnalysisRequestBody) -> StreamingResponse:
        """Handle POST /analysis/stream requests.

        Re-emits fragments as server-sent events:

            data: {"delta": "..."}           one per fragment
            event: done / data: {...}        the completed analysis
            event: error / data: {...}       on generation failure

        The generation is cancelled if the client disconnects.
        """
        orchestrator = self._new_orchestrator()
        request = _to_request(body)
        queue: asyncio.Queue[str | None] = asyncio.Queue()

        async def produce() -> None:
            try:
                result = await orchestrator.run(
                    request,
                    on_fragment=lambda fragment: queue.put_nowait(_sse({"delta": fragment})),
                    timeout=body.timeout,
                )
            except GenerationError as e:
                queue.put_nowait(_sse({"error": e.kind, "message": e.message}, event="error"))
            else:
                queue.put_nowait(_sse(_analysis_response(result).model_dump(), event="done"))
            finally:
                queue.put_nowait(None)

        async def events() -> AsyncIterator[str]:
            task = asyncio.create_task(produce())
            try:
                while True:
                    frame = await queue.get()
                    if frame is None:
                        break
                    yield frame
            finally:
                if not task.done():
                    logger.info(
                        "Client disconnected, cancelling analysis",
                        extra={"extra_data": {"subject_id": request.subject_id}},
                    )
                    task.cancel()

        return StreamingResponse(events(), media_type="text/event-stream")

    async def extract_budget_bands(self, request: ExtractBudgetBandsRequest) -> BudgetBandsResponse:
        """Handle POST /budget-bands/extract requests."""
        return bands_response(request.text, extract_budget_bands(request.text))

    async def artifact_budget_bands(self, artifact_key: str) -> BudgetBandsResponse:
        """Handle GET /artifacts/{artifact_key}/budget-bands requests.

        Bands are always recomputed from the stored text.

        Raises:
            HTTPException: 404 if the artifact is unknown
        """
        text = None
        if self._artifact_store is not None:
            try:
                text = await asyncio.to_thread(self._artifact_store.get_text, artifact_key)
            except Exception as e:
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail=f"Failed to read artifact: {e}",
                ) from e
        if text is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Unknown artifact: {artifact_key}",
            )
        return bands_response(text, extract_budget_bands(text))
