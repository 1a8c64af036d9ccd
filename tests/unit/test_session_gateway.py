"""Tests for depquery.agents.session_gateway and depquery.agents.prompts."""

import pytest

from depquery.agents.prompts import DEFAULT_AGENT_PROMPT, build_system_prompt, session_title
from depquery.agents.session_gateway import SessionGateway
from depquery.api.middleware.error_handler import RemoteAgentError, SessionCreationError


@pytest.fixture
def gateway(agent):
    return SessionGateway(agent, fetch_timeout_seconds=12)


# ── prompts ──────────────────────────────────────────────────────────────────


class TestPrompts:
    def test_title_truncated(self):
        question = "x" * 80
        assert session_title(question) == "Query: " + "x" * 50

    def test_system_prompt_names_repository(self):
        prompt = build_system_prompt("/data/zod")
        assert prompt.startswith(DEFAULT_AGENT_PROMPT)
        assert "located at: /data/zod" in prompt
        assert "cd /data/zod" in prompt

    def test_summary_comes_first(self):
        prompt = build_system_prompt("/data/zod", summary="Schema validation library.")
        assert prompt.startswith("Repository summary (for context):\n\nSchema validation library.")
        assert prompt.index("---") < prompt.index(DEFAULT_AGENT_PROMPT)

    def test_blank_summary_ignored(self):
        assert build_system_prompt("/r", summary="   ") == build_system_prompt("/r")

    def test_custom_persona(self):
        prompt = build_system_prompt("/r", agent_prompt="Be terse.")
        assert prompt.startswith("Be terse.")
        assert DEFAULT_AGENT_PROMPT not in prompt


# ── SessionGateway.ensure_session ────────────────────────────────────────────


class TestEnsureSession:
    @pytest.mark.asyncio
    async def test_existing_session_reused(self, gateway, agent):
        handle = await gateway.ensure_session("/repo", "q", existing_session_id="ses_old")

        assert handle.session_id == "ses_old"
        assert handle.created is False
        assert agent.created == []
        assert agent.sent == []

    @pytest.mark.asyncio
    async def test_new_session_gets_one_system_prompt(self, gateway, agent):
        handle = await gateway.ensure_session("/repo", "How does add work?")

        assert handle.session_id == "ses_1"
        assert handle.created is True
        assert agent.created == [{"title": "Query: How does add work?", "directory": "/repo", "timeout": 12}]
        assert len(agent.system_prompts) == 1
        sent = agent.system_prompts[0]
        assert sent["session_id"] == "ses_1"
        assert sent["timeout"] == 12
        assert "located at: /repo" in sent["parts"][0]["text"]
        assert agent.questions == []

    @pytest.mark.asyncio
    async def test_summary_included_in_system_prompt(self, gateway, agent):
        await gateway.ensure_session("/repo", "q", summary="A math library.")

        assert "A math library." in agent.system_prompts[0]["parts"][0]["text"]

    @pytest.mark.asyncio
    async def test_creation_failure_raises(self, gateway, agent):
        agent.create_error = RemoteAgentError("HTTP 500")

        with pytest.raises(SessionCreationError) as exc_info:
            await gateway.ensure_session("/repo", "q")

        assert exc_info.value.details["repository_path"] == "/repo"
        assert agent.sent == []

    @pytest.mark.asyncio
    async def test_system_prompt_failure_is_not_fatal(self, gateway, agent):
        agent.system_prompt_error = RemoteAgentError("refused")

        handle = await gateway.ensure_session("/repo", "q")

        assert handle.session_id == "ses_1"
        assert handle.created is True
