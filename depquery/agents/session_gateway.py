"""
Session Gateway - Opens or reuses the remote conversation for a query.

A caller-supplied session id is trusted as-is. A new session gets exactly
one hidden system message right after creation; if that delivery fails the
question is still attempted.
"""

import logging
from typing import Optional

from depquery.agents.base import RemoteAgentService, SessionHandle, text_part
from depquery.agents.prompts import build_system_prompt, session_title
from depquery.api.middleware.error_handler import (
    SessionCreationError,
    SystemPromptDeliveryError,
)

logger = logging.getLogger(__name__)


class SessionGateway:
    """Creates sessions and seeds them with the system prompt."""

    def __init__(
        self,
        agent: RemoteAgentService,
        fetch_timeout_seconds: float,
        agent_prompt: Optional[str] = None,
    ):
        self.agent = agent
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self.agent_prompt = agent_prompt

    async def ensure_session(
        self,
        repository_path: str,
        question: str,
        existing_session_id: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> SessionHandle:
        """
        Return the session to ask in.

        Args:
            repository_path: Absolute repository location the session is bound to
            question: The question, used for the session title
            existing_session_id: Session to continue, returned unchanged
            summary: Optional repository summary folded into the system prompt

        Raises:
            SessionCreationError: If the remote service can't open a session
        """
        if existing_session_id:
            logger.info(f"Reusing existing session: {existing_session_id}")
            return SessionHandle(session_id=existing_session_id, created=False)

        title = session_title(question)
        logger.info(f"Creating session with title: {title}")
        try:
            session_id = await self.agent.create_session(
                title=title,
                directory=repository_path,
                timeout=self.fetch_timeout_seconds,
            )
        except SessionCreationError:
            raise
        except Exception as e:
            logger.error(f"Session creation failed for {repository_path}: {e}")
            raise SessionCreationError(str(e), repository_path=repository_path) from e

        if not session_id:
            raise SessionCreationError("no session id returned", repository_path=repository_path)

        logger.info(f"Session created: {session_id}")

        try:
            await self._deliver_system_prompt(session_id, repository_path, summary)
        except SystemPromptDeliveryError as e:
            logger.warning(f"{e.message}; continuing with the question")

        return SessionHandle(session_id=session_id, created=True)

    async def _deliver_system_prompt(
        self,
        session_id: str,
        repository_path: str,
        summary: Optional[str],
    ) -> None:
        prompt = build_system_prompt(
            repository_path,
            agent_prompt=self.agent_prompt,
            summary=summary,
        )
        try:
            await self.agent.send_prompt(
                session_id,
                [text_part(prompt)],
                directory=repository_path,
                no_reply=True,
                timeout=self.fetch_timeout_seconds,
            )
        except Exception as e:
            raise SystemPromptDeliveryError(str(e), session_id=session_id) from e
        logger.info(f"System prompt delivered to session {session_id}")
