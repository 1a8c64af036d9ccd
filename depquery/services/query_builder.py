"""
Query Builder - Turns an outer request into an engine-level Query.

Shared by the HTTP API and the MCP server: resolves the repository,
pins a cloned repository to the requested revision and looks up the
stored repository summary for new sessions.
"""

from depquery.models.requests import QueryRequest, RepositoryRequest
from depquery.models.schemas import ModelSelector, Query
from depquery.services.repo_service import STORAGE_CLONED, RepositoryResolver
from depquery.services.summary_store import SummaryStore


async def resolve_repository(request: RepositoryRequest, repo_service: RepositoryResolver) -> str:
    """
    Locate the repository on disk, checking out the requested revision.

    Raises:
        RepositoryNotFoundError: If the repository can't be located or cloned
    """
    repository_path = await repo_service.resolve_repository_path(
        request.repository,
        request.storage_kind,
        git_url=request.git_url,
    )
    if request.revision and request.storage_kind == STORAGE_CLONED:
        await repo_service.checkout_revision(repository_path, request.revision)
    return repository_path


async def build_query(
    request: QueryRequest,
    repo_service: RepositoryResolver,
    summary_store: SummaryStore,
) -> Query:
    """
    Resolve the repository and assemble the query.

    Raises:
        RepositoryNotFoundError: If the repository can't be located or cloned
    """
    repository_path = await resolve_repository(request, repo_service)

    summary = request.summary
    if summary is None and not request.session_id:
        summary = await summary_store.load_summary(request.resolved_summary_key)

    model = None
    if request.model:
        model = ModelSelector(provider_id=request.model.provider_id, model_id=request.model.model_id)

    return Query(
        repository_path=repository_path,
        question=request.question,
        model=model,
        session_id=request.session_id,
        summary=summary,
        timeout_seconds=request.timeout_seconds,
    )
