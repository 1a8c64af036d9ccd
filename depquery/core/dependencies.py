"""
Dependencies - Dependency injection for services and components.

Provides singleton instances built from Settings. The HTTP API resolves
these through FastAPI's Depends; the MCP server calls them directly.
"""

from functools import lru_cache

from depquery.agents.liveness import LivenessConfig
from depquery.agents.orchestrator import OrchestratorConfig, QueryOrchestrator
from depquery.agents.poller import PollerConfig
from depquery.core.config import Settings, get_settings
from depquery.services.remote_agent import HttpRemoteAgentClient
from depquery.services.repo_service import RepoService, RepoServiceConfig
from depquery.services.summary_store import InMemorySummaryStore, SummaryStore


def build_orchestrator_config(settings: Settings) -> OrchestratorConfig:
    """Translate flat settings into the orchestrator's component configs."""
    return OrchestratorConfig(
        timeout_seconds=settings.agent_timeout_seconds,
        fetch_timeout_seconds=settings.agent_fetch_timeout_seconds,
        summary_timeout_multiplier=settings.summary_timeout_multiplier,
        agent_prompt=settings.agent_prompt,
        poller=PollerConfig(
            poll_interval_seconds=settings.agent_poll_interval_seconds,
            max_attempts=settings.agent_max_poll_attempts,
            fetch_timeout_seconds=settings.agent_fetch_timeout_seconds,
            messages_limit=settings.recent_messages_limit,
        ),
        liveness=LivenessConfig(
            heartbeat_seconds=settings.agent_stream_heartbeat_seconds,
        ),
    )


@lru_cache()
def get_agent_client() -> HttpRemoteAgentClient:
    """Get the shared remote agent client."""
    settings = get_settings()
    return HttpRemoteAgentClient(
        base_url=settings.agent_url,
        fetch_timeout_seconds=settings.agent_fetch_timeout_seconds,
    )


@lru_cache()
def get_summary_store() -> SummaryStore:
    """Get summary store instance."""
    return InMemorySummaryStore()


@lru_cache()
def get_repo_service() -> RepoService:
    """Get repository service instance."""
    settings = get_settings()
    config = RepoServiceConfig(
        storage_path=settings.repo_storage_path,
        clone_timeout_seconds=settings.repo_clone_timeout_seconds,
    )
    return RepoService(config=config)


@lru_cache()
def get_orchestrator() -> QueryOrchestrator:
    """Get query orchestrator instance."""
    return QueryOrchestrator(
        agent=get_agent_client(),
        config=build_orchestrator_config(get_settings()),
        summary_store=get_summary_store(),
    )


async def shutdown_services() -> None:
    """Cancel background work and close the HTTP client, if they were created."""
    if get_orchestrator.cache_info().currsize:
        await get_orchestrator().aclose()
    if get_agent_client.cache_info().currsize:
        await get_agent_client().aclose()
