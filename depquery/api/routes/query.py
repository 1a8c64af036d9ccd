"""
Query Endpoints - Ask questions about a repository.

- POST /query          one-shot: waits for the complete answer
- POST /query/stream   server-sent events: one `data:` line per incremental
                       result, the last one has is_final=true

Repository resolution, revision checkout and summary lookup happen before
the question reaches the orchestrator, so those failures surface as normal
HTTP errors even on the streaming endpoint.
"""

import json
import logging
import time
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from depquery.agents.orchestrator import QueryOrchestrator
from depquery.api.middleware.error_handler import AppException
from depquery.core.dependencies import get_orchestrator, get_repo_service, get_summary_store
from depquery.models.requests import QueryRequest
from depquery.models.responses import ErrorResponse, QueryResponse
from depquery.services.query_builder import build_query
from depquery.services.repo_service import RepositoryResolver
from depquery.services.summary_store import SummaryStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/query", tags=["Query"])

_ERROR_RESPONSES = {
    404: {"model": ErrorResponse, "description": "Repository not found"},
    502: {"model": ErrorResponse, "description": "Remote agent service failed"},
    504: {"model": ErrorResponse, "description": "No answer within the time bounds"},
}


@router.post(
    "",
    response_model=QueryResponse,
    summary="Ask a Question",
    description="Ask a question about a repository and wait for the full answer",
    responses=_ERROR_RESPONSES,
)
async def query_repository(
    request: QueryRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
    repo_service: RepositoryResolver = Depends(get_repo_service),
    summary_store: SummaryStore = Depends(get_summary_store),
) -> QueryResponse:
    """
    Answer a question in one call.

    Returns:
        QueryResponse with the answer and the session_id for follow-ups
    """
    start = time.monotonic()
    query = await build_query(request, repo_service, summary_store)
    answer = await orchestrator.query(query, summary_key=request.resolved_summary_key)

    return QueryResponse(
        response=answer.response_text,
        session_id=answer.session_id,
        duration_seconds=round(time.monotonic() - start, 3),
    )


@router.post(
    "/stream",
    summary="Ask a Question (streaming)",
    description="Ask a question and receive the answer as server-sent events",
    responses=_ERROR_RESPONSES,
)
async def query_repository_stream(
    request: QueryRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
    repo_service: RepositoryResolver = Depends(get_repo_service),
    summary_store: SummaryStore = Depends(get_summary_store),
) -> StreamingResponse:
    query = await build_query(request, repo_service, summary_store)
    results = orchestrator.query_stream(query, summary_key=request.resolved_summary_key)
    return StreamingResponse(
        _sse_lines(results),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


async def _sse_lines(results: AsyncIterator) -> AsyncIterator[str]:
    """Encode results as SSE; a failure becomes one final error event."""
    try:
        async for result in results:
            yield f"data: {result.model_dump_json()}\n\n"
    except AppException as e:
        logger.error(f"Streaming query failed: {e.message}")
        payload = {"error": e.message, "error_code": e.error_code, "details": e.details}
        yield f"data: {json.dumps(payload, default=str)}\n\n"
    finally:
        await results.aclose()
