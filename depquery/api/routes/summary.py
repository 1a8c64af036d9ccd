"""
Summary Endpoint - Regenerate a repository's stored summary.

The summary seeds every new session for the repository. It is generated
automatically after the first answer; this endpoint forces a fresh one,
for example after the dependency was upgraded.
"""

import logging
import time

from fastapi import APIRouter, Depends

from depquery.agents.orchestrator import QueryOrchestrator
from depquery.core.dependencies import get_orchestrator, get_repo_service
from depquery.models.requests import SummaryRequest
from depquery.models.responses import ErrorResponse, SummaryResponse
from depquery.services.query_builder import resolve_repository
from depquery.services.repo_service import RepositoryResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/summary", tags=["Summary"])


@router.post(
    "",
    response_model=SummaryResponse,
    summary="Regenerate Repository Summary",
    description="Ask the agent for a new repository summary and store it",
    responses={
        404: {"model": ErrorResponse, "description": "Repository not found"},
        502: {"model": ErrorResponse, "description": "Remote agent service failed"},
        504: {"model": ErrorResponse, "description": "No summary within the time bounds"},
    },
)
async def regenerate_summary(
    request: SummaryRequest,
    orchestrator: QueryOrchestrator = Depends(get_orchestrator),
    repo_service: RepositoryResolver = Depends(get_repo_service),
) -> SummaryResponse:
    start = time.monotonic()
    repository_path = await resolve_repository(request, repo_service)
    summary_key = request.resolved_summary_key

    logger.info(f"Regenerating summary for {summary_key}")
    summary = await orchestrator.regenerate_summary(summary_key, repository_path)

    return SummaryResponse(
        summary_key=summary_key,
        summary=summary,
        duration_seconds=round(time.monotonic() - start, 3),
    )
