"""
Services Layer for depquery
===========================

Services handle external integrations:

- HttpRemoteAgentClient: HTTP/SSE client for the remote coding agent
- RepoService: Locates (and clones) the repositories being asked about
- InMemorySummaryStore: Keeps generated repository summaries

DEPENDENCY FLOW:
----------------
    RepoService ──► repository path ──┐
                                      ├──► QueryOrchestrator
    HttpRemoteAgentClient ────────────┤
    SummaryStore ─────────────────────┘
"""

from depquery.services.remote_agent import HttpRemoteAgentClient
from depquery.services.repo_service import RepoService, RepoServiceConfig, RepositoryResolver
from depquery.services.summary_store import InMemorySummaryStore, SummaryStore

__all__ = [
    "HttpRemoteAgentClient",
    "RepoService",
    "RepoServiceConfig",
    "RepositoryResolver",
    "InMemorySummaryStore",
    "SummaryStore",
]
