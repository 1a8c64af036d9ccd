"""
Stream Interpreter - Turns live agent events into incremental answer results.

RESPONSIBILITY:
Consume the heterogeneous event channel for one session and produce a
lazy sequence of IncrementalResult values: appended answer text, a full
reasoning-trace snapshot, and exactly one final marker.

EVENT HANDLING:
===============
    message.updated ──► latch the assistant message id (first one only)
    message.part.updated
        ├─ text       ──► diff full text against what we have, emit suffix
        ├─ reasoning  ──► merge growing / new fragments, emit snapshot
        └─ tool, file ──► synthetic "what the agent is doing" line
    session.error / message.error ──► RemoteAgentError
    session.idle  ──► final result, end of sequence

The service resends the full accumulated text of a part on every update,
never a delta. The merge logic here is what keeps callers from seeing
duplicated or missing text.

A text part's end timestamp is not a completion signal: a turn can end on
a tool call, or continue after one. Only session.idle ends the answer.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from depquery.agents.base import EventType, MessageRole, PartType
from depquery.api.middleware.error_handler import RemoteAgentError
from depquery.models.schemas import IncrementalResult

logger = logging.getLogger(__name__)

REASONING_SEPARATOR = "\n\n"

# Part kinds whose mere presence proves the assistant's turn has started
_ASSISTANT_ONLY_PARTS = {PartType.REASONING.value, PartType.TOOL.value}
_FILE_PARTS = {PartType.FILE.value, PartType.FILE_SEARCH.value}


class StreamInterpreter:
    """
    Stateful interpreter for one answer in one session.

    Create one per question; it is not reusable once finished.
    """

    def __init__(self, session_id: str):
        self.session_id = session_id
        self.answer_text = ""
        self.reasoning_entries: List[str] = []
        self.assistant_message_id: Optional[str] = None
        self.awaiting_assistant = True
        self.finished = False
        self._last_reasoning = ""
        self._last_reasoning_index: Optional[int] = None

    @property
    def reasoning_snapshot(self) -> Optional[str]:
        if not self.reasoning_entries:
            return None
        return REASONING_SEPARATOR.join(self.reasoning_entries)

    async def interpret(
        self,
        events: AsyncIterator[Dict[str, Any]],
    ) -> AsyncIterator[IncrementalResult]:
        """
        Consume events and yield results until the turn completes.

        If the events run out before session.idle but some answer text was
        seen, a final result is synthesized so the sequence still ends
        with exactly one is_final result.

        Raises:
            RemoteAgentError: On an error event for this session
        """
        async for event in events:
            result = self.process(event)
            if result is not None:
                yield result
            if self.finished:
                return

        if not self.finished and self.answer_text:
            logger.warning(
                f"Event stream for session {self.session_id} ended without idle; "
                "synthesizing completion"
            )
            self.finished = True
            yield self._final_result()

    def process(self, event: Dict[str, Any]) -> Optional[IncrementalResult]:
        """Apply one event. Returns the result to emit, if any."""
        if self.finished or not isinstance(event, dict):
            return None

        event_type = event.get("type")
        properties = event.get("properties") or {}
        logger.debug(f"Event type: {event_type}")

        if event_type == EventType.MESSAGE_UPDATED.value:
            self._on_message_updated(properties.get("info"))
            return None

        if event_type == EventType.PART_UPDATED.value:
            return self._on_part(properties.get("part"))

        if event_type in (EventType.SESSION_ERROR.value, EventType.MESSAGE_ERROR.value):
            self._on_error(properties)
            return None

        if event_type == EventType.SESSION_IDLE.value:
            if properties.get("sessionID") == self.session_id:
                logger.info(f"Session {self.session_id} idle, answer complete")
                self.finished = True
                return self._final_result()

        return None

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_message_updated(self, info: Any) -> None:
        if not self.awaiting_assistant or not isinstance(info, dict):
            return
        if (
            info.get("sessionID") == self.session_id
            and info.get("role") == MessageRole.ASSISTANT.value
            and info.get("id")
        ):
            self._latch(info["id"], "message")

    def _on_part(self, part: Any) -> Optional[IncrementalResult]:
        if not isinstance(part, dict) or part.get("sessionID") != self.session_id:
            return None

        part_type = part.get("type")
        message_id = part.get("messageID")

        if self.awaiting_assistant and message_id:
            message_info = part.get("messageInfo")
            role = message_info.get("role") if isinstance(message_info, dict) else None
            if role == MessageRole.ASSISTANT.value:
                self._latch(message_id, "part role")
            elif role == MessageRole.USER.value:
                return None
            elif part_type in _ASSISTANT_ONLY_PARTS:
                self._latch(message_id, f"{part_type} part")

        # Only the tracked turn counts; earlier turns may still be emitting parts
        if not self.assistant_message_id or message_id != self.assistant_message_id:
            return None

        if part_type == PartType.TEXT.value:
            return self._on_text(part.get("text"))
        if part_type == PartType.REASONING.value:
            return self._on_reasoning(part.get("text"))
        if part_type:
            return self._on_activity(part)
        return None

    def _on_text(self, text: Any) -> Optional[IncrementalResult]:
        if not isinstance(text, str):
            return None
        if len(text) <= len(self.answer_text):
            # Stale or repeated update: adopt it but emit nothing
            self.answer_text = text
            return None
        delta = text[len(self.answer_text):]
        self.answer_text = text
        return self._result(delta)

    def _on_reasoning(self, text: Any) -> Optional[IncrementalResult]:
        if not isinstance(text, str) or not text:
            return None
        if self.merge_reasoning(text):
            return self._result("")
        return None

    def _on_activity(self, part: Dict[str, Any]) -> Optional[IncrementalResult]:
        changed = False
        line = self._describe_activity(part)
        if line:
            changed = self._add_entry(line)

        for fragment in _provider_reasoning(part.get("metadata")):
            changed = self._add_entry(fragment) or changed

        return self._result("") if changed else None

    def _on_error(self, properties: Dict[str, Any]) -> None:
        event_session = properties.get("sessionID")
        if event_session and event_session != self.session_id:
            return
        message = _error_message(properties.get("error"))
        logger.error(f"Remote agent reported an error for session {self.session_id}: {message}")
        raise RemoteAgentError(message, session_id=self.session_id)

    # ------------------------------------------------------------------
    # Reasoning bookkeeping
    # ------------------------------------------------------------------

    def merge_reasoning(self, text: str) -> bool:
        """
        Fold one reasoning update into the entries.

        A string that extends the last reasoning seen replaces it in place;
        an exact repeat of any entry is a no-op; anything else is a new
        entry. Returns True if the snapshot changed.
        """
        if (
            self._last_reasoning
            and self._last_reasoning_index is not None
            and text.startswith(self._last_reasoning)
        ):
            unchanged = self.reasoning_entries[self._last_reasoning_index] == text
            self.reasoning_entries[self._last_reasoning_index] = text
            self._last_reasoning = text
            return not unchanged

        if text in self.reasoning_entries:
            self._last_reasoning = text
            self._last_reasoning_index = self.reasoning_entries.index(text)
            return False

        self.reasoning_entries.append(text)
        self._last_reasoning = text
        self._last_reasoning_index = len(self.reasoning_entries) - 1
        return True

    def _add_entry(self, line: str) -> bool:
        if line in self.reasoning_entries:
            return False
        self.reasoning_entries.append(line)
        return True

    @staticmethod
    def _describe_activity(part: Dict[str, Any]) -> Optional[str]:
        if part.get("type") in _FILE_PARTS:
            target = part.get("path") or part.get("filename") or part.get("url") or "unknown"
            return f"File operation: {target}"

        state = part.get("state")
        if not isinstance(state, dict):
            return None
        name = part.get("tool") or part.get("name") or "unknown"
        tool_input = state.get("input")
        file_path = tool_input.get("filePath") if isinstance(tool_input, dict) else None

        status = state.get("status")
        if status == "running":
            line = f"Tool: {name} (running)"
            return f"{line}\n   Reading: {file_path}" if file_path else line
        if status == "completed":
            line = f"Tool: {name} (completed)"
            return f"{line}\n   Read: {file_path}" if file_path else line
        if status == "error":
            return f"Tool: {name} (failed)"
        return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _latch(self, message_id: str, source: str) -> None:
        self.assistant_message_id = message_id
        self.awaiting_assistant = False
        logger.info(f"Found assistant message from {source}: {message_id}")

    def _result(self, delta: str) -> IncrementalResult:
        return IncrementalResult(
            text_delta=delta,
            reasoning_snapshot=self.reasoning_snapshot,
            is_final=False,
            session_id=self.session_id,
        )

    def _final_result(self) -> IncrementalResult:
        return IncrementalResult(
            text_delta="",
            reasoning_snapshot=self.reasoning_snapshot,
            is_final=True,
            session_id=self.session_id,
        )


def _provider_reasoning(metadata: Any) -> List[str]:
    """
    Pull reasoning fragments that providers embed in part metadata.

    Shape: {"<provider>": {"reasoning_details": [{"text": "..."}]}}
    """
    if not isinstance(metadata, dict):
        return []
    fragments = []
    for provider_meta in metadata.values():
        if not isinstance(provider_meta, dict):
            continue
        details = provider_meta.get("reasoning_details")
        if not isinstance(details, list):
            continue
        for detail in details:
            if isinstance(detail, dict) and isinstance(detail.get("text"), str) and detail["text"]:
                fragments.append(detail["text"])
    return fragments


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        if error.get("message"):
            return str(error["message"])
        data = error.get("data")
        if isinstance(data, dict) and data.get("message"):
            return str(data["message"])
        if error.get("name"):
            return str(error["name"])
        return json.dumps(error)
    if error:
        return str(error)
    return "Unknown error"
