"""Shared test fixtures for the depquery test suite."""

import asyncio
import itertools
from typing import Any, Dict, List, Optional

import pytest

from depquery.agents.base import RemoteAgentService

SESSION = "ses_test"
ASSISTANT_MSG = "msg_assistant"
USER_MSG = "msg_user"


class FakeEventStream:
    """
    Scripted event channel.

    Yields the scripted events in order, then either ends or (with
    hold_open=True) stays silent until closed or cancelled.
    """

    def __init__(self, events: List[Dict[str, Any]], hold_open: bool = False, delay: float = 0.0):
        self._events = list(events)
        self.hold_open = hold_open
        self.delay = delay
        self.closed = False
        self.delivered = 0

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.closed:
            raise StopAsyncIteration
        if self._events:
            if self.delay:
                await asyncio.sleep(self.delay)
            self.delivered += 1
            return self._events.pop(0)
        if self.hold_open:
            await asyncio.Event().wait()
        raise StopAsyncIteration

    async def aclose(self):
        self.closed = True


class FakeRemoteAgent(RemoteAgentService):
    """
    In-memory stand-in for the remote agent service.

    Every call is recorded; behaviour is driven by the public attributes.
    """

    def __init__(self):
        self._ids = (f"ses_{n}" for n in itertools.count(1))
        self.created: List[Dict[str, Any]] = []
        self.sent: List[Dict[str, Any]] = []
        self.list_calls: List[Dict[str, Any]] = []
        self.closed = False

        self.create_error: Optional[Exception] = None
        self.system_prompt_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.send_delay: float = 0.0
        self.reply: Optional[Dict[str, Any]] = None
        self.replies: List[Optional[Dict[str, Any]]] = []

        self.events: Optional[List[Dict[str, Any]]] = None
        self.hold_stream_open = False
        self.event_delay = 0.0
        self.streams: List[FakeEventStream] = []

        self.message_pages: List[Any] = []
        self.list_error: Optional[Exception] = None

    async def create_session(self, title, directory, timeout=None):
        self.created.append({"title": title, "directory": directory, "timeout": timeout})
        if self.create_error:
            raise self.create_error
        return next(self._ids)

    async def send_prompt(self, session_id, parts, directory, model=None, no_reply=False, timeout=None):
        self.sent.append({
            "session_id": session_id,
            "parts": parts,
            "directory": directory,
            "model": model,
            "no_reply": no_reply,
            "timeout": timeout,
        })
        if no_reply:
            if self.system_prompt_error:
                raise self.system_prompt_error
            return None
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        if self.send_error:
            raise self.send_error
        if self.replies:
            return self.replies.pop(0)
        return self.reply

    async def subscribe_events(self, directory, timeout=None):
        if self.events is None:
            return None
        stream = FakeEventStream(self.events, hold_open=self.hold_stream_open, delay=self.event_delay)
        self.streams.append(stream)
        return stream

    async def list_messages(self, session_id, directory, limit, timeout=None):
        self.list_calls.append({
            "session_id": session_id,
            "directory": directory,
            "limit": limit,
            "timeout": timeout,
        })
        if self.list_error:
            raise self.list_error
        if not self.message_pages:
            return []
        if len(self.message_pages) > 1:
            page = self.message_pages.pop(0)
        else:
            page = self.message_pages[0]
        if isinstance(page, Exception):
            raise page
        return page

    async def aclose(self):
        self.closed = True

    @property
    def questions(self) -> List[Dict[str, Any]]:
        return [s for s in self.sent if not s["no_reply"]]

    @property
    def system_prompts(self) -> List[Dict[str, Any]]:
        return [s for s in self.sent if s["no_reply"]]


class Events:
    """Builders for the remote service's event and message shapes."""

    @staticmethod
    def message_updated(message_id=ASSISTANT_MSG, role="assistant", session_id=SESSION):
        return {
            "type": "message.updated",
            "properties": {"info": {"id": message_id, "sessionID": session_id, "role": role}},
        }

    @staticmethod
    def part(part_type, message_id=ASSISTANT_MSG, session_id=SESSION, **fields):
        part = {"id": f"prt_{part_type}", "sessionID": session_id, "messageID": message_id, "type": part_type}
        part.update(fields)
        return {"type": "message.part.updated", "properties": {"part": part}}

    @classmethod
    def text(cls, text, message_id=ASSISTANT_MSG, session_id=SESSION, **fields):
        return cls.part("text", message_id=message_id, session_id=session_id, text=text, **fields)

    @classmethod
    def reasoning(cls, text, message_id=ASSISTANT_MSG, session_id=SESSION):
        return cls.part("reasoning", message_id=message_id, session_id=session_id, text=text)

    @classmethod
    def tool(cls, tool, status, file_path=None, message_id=ASSISTANT_MSG, session_id=SESSION):
        state = {"status": status}
        if file_path:
            state["input"] = {"filePath": file_path}
        return cls.part("tool", message_id=message_id, session_id=session_id, tool=tool, state=state)

    @staticmethod
    def idle(session_id=SESSION):
        return {"type": "session.idle", "properties": {"sessionID": session_id}}

    @staticmethod
    def error(message, session_id=SESSION, event_type="session.error"):
        properties = {"error": {"message": message}}
        if session_id:
            properties["sessionID"] = session_id
        return {"type": event_type, "properties": properties}

    @staticmethod
    def message(role, text=None, message_id=None, completed=True):
        info = {"id": message_id or f"msg_{role}", "role": role}
        if role == "assistant":
            info["time"] = {"created": 1, "completed": 2} if completed else {"created": 1}
        parts = [{"type": "text", "text": text}] if text is not None else []
        return {"info": info, "parts": parts}

    @classmethod
    def reply(cls, text):
        return cls.message("assistant", text)


@pytest.fixture
def agent():
    return FakeRemoteAgent()


@pytest.fixture
def events():
    return Events


@pytest.fixture
def repo_dir(tmp_path):
    """A local repository directory with a single source file."""
    repo = tmp_path / "repo"
    repo.mkdir()
    (repo / "math.py").write_text("def add(a, b):\n    return a + b\n")
    return repo
