"""Integration tests for the MCP stdio server's query_dependency tool."""

import json
from unittest.mock import patch

import pytest

import mcp_stdio_server
from depquery.agents.orchestrator import OrchestratorConfig, QueryOrchestrator
from depquery.agents.poller import PollerConfig
from depquery.services.repo_service import RepoService, RepoServiceConfig
from depquery.services.summary_store import InMemorySummaryStore


@pytest.fixture
def wired(agent, tmp_path):
    """Point the server's singletons at the fake agent."""
    orchestrator = QueryOrchestrator(
        agent,
        OrchestratorConfig(timeout_seconds=5.0, poller=PollerConfig(poll_interval_seconds=0, max_attempts=1)),
        summary_store=InMemorySummaryStore(),
    )
    repo_service = RepoService(RepoServiceConfig(storage_path=str(tmp_path / "store")))
    with patch.object(mcp_stdio_server, "get_orchestrator", return_value=orchestrator), \
            patch.object(mcp_stdio_server, "get_repo_service", return_value=repo_service), \
            patch.object(mcp_stdio_server, "get_summary_store", return_value=InMemorySummaryStore()):
        yield orchestrator


class TestQueryDependencyTool:
    @pytest.mark.asyncio
    async def test_returns_response_and_session(self, wired, agent, events, repo_dir):
        agent.reply = events.reply("Use z.object().")

        content = await mcp_stdio_server.handle_query_dependency(
            {"repository": str(repo_dir), "question": "How do I build a schema?"}
        )
        await wired.aclose()

        assert json.loads(content[0].text) == {"response": "Use z.object().", "sessionId": "ses_1"}

    @pytest.mark.asyncio
    async def test_invalid_input(self, wired):
        content = await mcp_stdio_server.handle_query_dependency({"question": "q"})

        assert content[0].text.startswith("Invalid input")

    @pytest.mark.asyncio
    async def test_engine_error_is_reported(self, wired, tmp_path):
        content = await mcp_stdio_server.handle_query_dependency(
            {"repository": str(tmp_path / "missing"), "question": "q"}
        )

        assert content[0].text.startswith("Error querying dependency: Repository not found")

    def test_tool_schema_requires_question(self):
        assert mcp_stdio_server.TOOL_INPUT_SCHEMA["required"] == ["repository", "question"]
        assert mcp_stdio_server.TOOL_NAME == "query_dependency"
