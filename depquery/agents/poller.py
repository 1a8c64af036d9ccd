"""
Fallback Poller - Retrieves the final answer when no live stream is used.

Two cases:
1. The send-question reply already carries the answer inline -> use it,
   no fetch at all.
2. Otherwise fetch the latest few messages on a fixed interval until an
   assistant message with text shows up, within a fixed attempt budget.

A fetch that errors is retried. A fetch that times out is not: that means
the remote service itself is slow, not that the answer isn't ready yet.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from depquery.agents.base import MessageRole, RemoteAgentService, extract_text_parts
from depquery.api.middleware.error_handler import FetchTimeoutError, NoAnswerFoundError
from depquery.models.schemas import FinalAnswer

logger = logging.getLogger(__name__)


@dataclass
class PollerConfig:
    """Configuration for the fallback poller."""
    poll_interval_seconds: float = 1.0
    max_attempts: int = 60
    fetch_timeout_seconds: float = 30.0
    messages_limit: int = 5


def answer_from_reply(reply: Optional[Dict[str, Any]]) -> Optional[str]:
    """Return the last text part of an inline reply, if it has any."""
    if not isinstance(reply, dict):
        return None
    texts = extract_text_parts(reply.get("parts"))
    return texts[-1] if texts else None


def find_assistant_answer(messages: List[Dict[str, Any]]) -> Optional[str]:
    """
    Find the answer to the latest question in a page of messages.

    Only the newest assistant message after the most recent user message
    counts, so a follow-up question never picks up the previous answer and
    an intermediate "let me look" message from a tool-using turn is never
    taken for the answer. Returns None while that message is still being
    written (start time but no completion time) or has no text yet.
    """
    start = 0
    for index, message in enumerate(messages):
        if _role(message) == MessageRole.USER.value:
            start = index + 1

    latest = None
    for message in messages[start:]:
        if _role(message) == MessageRole.ASSISTANT.value:
            latest = message

    if latest is None or not _is_complete(latest):
        return None
    texts = extract_text_parts(latest.get("parts"))
    return texts[-1] if texts else None


def _role(message: Any) -> Optional[str]:
    if not isinstance(message, dict):
        return None
    info = message.get("info")
    return info.get("role") if isinstance(info, dict) else None


def _is_complete(message: Dict[str, Any]) -> bool:
    time_info = message.get("info", {}).get("time")
    if isinstance(time_info, dict) and "created" in time_info:
        return bool(time_info.get("completed"))
    return True


class FallbackPoller:
    """Polls a session's recent messages for the assistant's answer."""

    def __init__(self, agent: RemoteAgentService, config: Optional[PollerConfig] = None):
        self.agent = agent
        self.config = config or PollerConfig()

    async def poll_for_answer(
        self,
        session_id: str,
        repository_path: str,
        initial_reply: Optional[Dict[str, Any]] = None,
    ) -> FinalAnswer:
        """
        Get the final answer for the question just sent to a session.

        Args:
            session_id: Session the question was sent to
            repository_path: Working-directory hint for each fetch
            initial_reply: The send-question reply, if there was one

        Returns:
            FinalAnswer with the last assistant text part

        Raises:
            FetchTimeoutError: A single fetch exceeded the fetch timeout
            NoAnswerFoundError: The attempt budget ran out
        """
        inline = answer_from_reply(initial_reply)
        if inline is not None:
            logger.info(f"Received immediate response ({len(inline)} characters)")
            return FinalAnswer(response_text=inline, session_id=session_id)

        logger.info(f"No immediate response, polling session {session_id} for messages...")

        max_attempts = self.config.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(max_attempts):
            try:
                messages = await self.agent.list_messages(
                    session_id,
                    directory=repository_path,
                    limit=self.config.messages_limit,
                    timeout=self.config.fetch_timeout_seconds,
                )
                if not isinstance(messages, list):
                    raise ValueError(
                        f"Invalid messages response: expected list, got {type(messages).__name__}"
                    )
                answer = find_assistant_answer(messages)
                if answer is not None:
                    logger.info(
                        f"Received response from polling ({len(answer)} characters, "
                        f"attempt {attempt + 1})"
                    )
                    return FinalAnswer(response_text=answer, session_id=session_id)
            except FetchTimeoutError:
                raise
            except Exception as e:
                last_error = e
                logger.warning(f"Poll attempt {attempt + 1}/{max_attempts} failed: {e}")

            if attempt < max_attempts - 1:
                await asyncio.sleep(self.config.poll_interval_seconds)

        error = NoAnswerFoundError(max_attempts, session_id=session_id)
        if last_error is not None:
            raise error from last_error
        raise error
