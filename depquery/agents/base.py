"""
Base classes for the query engine.

The remote agent service is a black box reached through the
RemoteAgentService contract below. Everything in depquery.agents talks to
it only through these methods, so tests can substitute a scripted fake.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

from depquery.models.schemas import ModelSelector


class EventType(str, Enum):
    """Event kinds emitted on the remote service's live channel."""
    MESSAGE_UPDATED = "message.updated"
    PART_UPDATED = "message.part.updated"
    SESSION_ERROR = "session.error"
    MESSAGE_ERROR = "message.error"
    SESSION_IDLE = "session.idle"


class PartType(str, Enum):
    """Kinds of message parts the interpreter distinguishes."""
    TEXT = "text"
    REASONING = "reasoning"
    TOOL = "tool"
    FILE = "file"
    FILE_SEARCH = "file_search"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class SessionHandle:
    """Session to ask in, and whether it was opened by this call."""
    session_id: str
    created: bool = False


def text_part(text: str) -> Dict[str, str]:
    """Build a plain text prompt part."""
    return {"type": PartType.TEXT.value, "text": text}


def extract_text_parts(parts: Any) -> List[str]:
    """Return the text of every well-formed text part, in order."""
    if not isinstance(parts, list):
        return []
    return [
        p["text"]
        for p in parts
        if isinstance(p, dict)
        and p.get("type") == PartType.TEXT.value
        and isinstance(p.get("text"), str)
    ]


class RemoteAgentService(ABC):
    """
    Contract for the remote AI coding-agent service.

    Implementations:
    - HttpRemoteAgentClient: talks to the service over HTTP + server-sent events
    - test fakes: scripted events and replies
    """

    @abstractmethod
    async def create_session(
        self,
        title: str,
        directory: str,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Open a new conversation.

        Returns:
            The new session id
        """
        pass

    @abstractmethod
    async def send_prompt(
        self,
        session_id: str,
        parts: List[Dict[str, Any]],
        directory: str,
        model: Optional[ModelSelector] = None,
        no_reply: bool = False,
        timeout: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Send a message to a session.

        Returns:
            The reply payload (a message with "info" and "parts") when the
            service answers inline, otherwise None
        """
        pass

    @abstractmethod
    async def subscribe_events(
        self,
        directory: str,
        timeout: Optional[float] = None,
    ) -> Optional[AsyncIterator[Dict[str, Any]]]:
        """
        Open the live event channel.

        The subscription is established when this returns, so events
        produced after it are not missed. Returns None when the service
        has no event channel. The returned iterator must support aclose().
        """
        pass

    @abstractmethod
    async def list_messages(
        self,
        session_id: str,
        directory: str,
        limit: int,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        """Fetch the most recent `limit` messages of a session, oldest first."""
        pass

    async def aclose(self) -> None:
        """Release any client resources."""
        return None
