"""Tests for depquery.agents.stream_interpreter: event stream to incremental results."""

import pytest

from depquery.agents.stream_interpreter import StreamInterpreter
from depquery.api.middleware.error_handler import RemoteAgentError

SESSION = "ses_test"


async def _aiter(items):
    for item in items:
        yield item


async def _collect(interpreter, items):
    return [r async for r in interpreter.interpret(_aiter(items))]


# ── text accumulation ────────────────────────────────────────────────────────


class TestTextDeltas:
    @pytest.mark.asyncio
    async def test_growing_text_emits_suffixes(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(),
            events.text("The"),
            events.text("The function"),
            events.text("The function adds."),
            events.idle(),
        ])

        assert [r.text_delta for r in results] == ["The", " function", " adds.", ""]
        assert [r.is_final for r in results] == [False, False, False, True]
        assert "".join(r.text_delta for r in results) == "The function adds."
        assert all(r.session_id == SESSION for r in results)

    @pytest.mark.asyncio
    async def test_repeated_update_emits_nothing(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(),
            events.text("Hello"),
            events.text("Hello"),
            events.idle(),
        ])

        assert [r.text_delta for r in results] == ["Hello", ""]

    @pytest.mark.asyncio
    async def test_shorter_update_adopted_silently(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(),
            events.text("Hello world"),
            events.text("Hello"),
            events.text("Hello there"),
            events.idle(),
        ])

        assert [r.text_delta for r in results] == ["Hello world", " there", ""]
        assert interpreter.answer_text == "Hello there"

    @pytest.mark.asyncio
    async def test_text_end_time_is_not_completion(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(),
            events.text("Let me look", time={"start": 1, "end": 2}),
            events.tool("read", "running", file_path="/repo/a.py"),
            events.text("Let me look. Found it.", time={"start": 1, "end": 3}),
            events.idle(),
        ])

        assert sum(r.is_final for r in results) == 1
        assert results[-1].is_final
        assert "".join(r.text_delta for r in results) == "Let me look. Found it."


# ── assistant message tracking ───────────────────────────────────────────────


class TestAssistantTracking:
    @pytest.mark.asyncio
    async def test_parts_before_latch_are_ignored(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.text("What does add do?", message_id="msg_user"),
            events.message_updated(),
            events.text("It adds."),
            events.idle(),
        ])

        assert "".join(r.text_delta for r in results) == "It adds."

    @pytest.mark.asyncio
    async def test_user_message_does_not_latch(self, events):
        interpreter = StreamInterpreter(SESSION)
        interpreter.process(events.message_updated(message_id="msg_user", role="user"))

        assert interpreter.assistant_message_id is None
        assert interpreter.awaiting_assistant is True

    @pytest.mark.asyncio
    async def test_part_role_latches(self, events):
        interpreter = StreamInterpreter(SESSION)
        result = interpreter.process(events.text("Hi", messageInfo={"role": "assistant"}))

        assert interpreter.assistant_message_id == "msg_assistant"
        assert result.text_delta == "Hi"

    @pytest.mark.asyncio
    async def test_reasoning_part_latches(self, events):
        interpreter = StreamInterpreter(SESSION)
        result = interpreter.process(events.reasoning("Thinking"))

        assert interpreter.assistant_message_id == "msg_assistant"
        assert result.reasoning_snapshot == "Thinking"

    @pytest.mark.asyncio
    async def test_only_first_assistant_message_is_tracked(self, events):
        interpreter = StreamInterpreter(SESSION)
        interpreter.process(events.message_updated(message_id="msg_a"))
        interpreter.process(events.message_updated(message_id="msg_b"))

        assert interpreter.assistant_message_id == "msg_a"
        assert interpreter.process(events.text("other", message_id="msg_b")) is None

    @pytest.mark.asyncio
    async def test_other_sessions_ignored(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(session_id="ses_other"),
            events.message_updated(),
            events.text("mine"),
            events.text("theirs", session_id="ses_other"),
            events.idle(session_id="ses_other"),
            events.idle(),
        ])

        assert [r.text_delta for r in results] == ["mine", ""]


# ── reasoning trace ──────────────────────────────────────────────────────────


class TestReasoning:
    @pytest.mark.asyncio
    async def test_growing_reasoning_replaces_entry(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(),
            events.reasoning("Look"),
            events.reasoning("Look at add"),
            events.idle(),
        ])

        assert results[-1].reasoning_snapshot == "Look at add"
        assert interpreter.reasoning_entries == ["Look at add"]

    @pytest.mark.asyncio
    async def test_distinct_fragments_are_joined(self, events):
        interpreter = StreamInterpreter(SESSION)
        await _collect(interpreter, [
            events.message_updated(),
            events.reasoning("First"),
            events.reasoning("Second"),
            events.idle(),
        ])

        assert interpreter.reasoning_snapshot == "First\n\nSecond"

    def test_duplicate_fragment_is_noop(self):
        interpreter = StreamInterpreter(SESSION)
        assert interpreter.merge_reasoning("A") is True
        assert interpreter.merge_reasoning("B") is True
        assert interpreter.merge_reasoning("A") is False
        assert interpreter.reasoning_entries == ["A", "B"]

    def test_growth_after_tool_line_keeps_tool_line(self):
        interpreter = StreamInterpreter(SESSION)
        interpreter.merge_reasoning("Plan")
        interpreter._add_entry("Tool: read (running)")
        interpreter.merge_reasoning("Plan more")

        assert interpreter.reasoning_entries == ["Plan more", "Tool: read (running)"]

    @pytest.mark.asyncio
    async def test_tool_activity_lines(self, events):
        interpreter = StreamInterpreter(SESSION)
        await _collect(interpreter, [
            events.message_updated(),
            events.tool("read", "running", file_path="/repo/math.py"),
            events.tool("read", "completed", file_path="/repo/math.py"),
            events.tool("grep", "error"),
            events.idle(),
        ])

        assert interpreter.reasoning_entries == [
            "Tool: read (running)\n   Reading: /repo/math.py",
            "Tool: read (completed)\n   Read: /repo/math.py",
            "Tool: grep (failed)",
        ]

    @pytest.mark.asyncio
    async def test_repeated_tool_update_emits_nothing(self, events):
        interpreter = StreamInterpreter(SESSION)
        interpreter.process(events.message_updated())
        first = interpreter.process(events.tool("read", "running"))
        second = interpreter.process(events.tool("read", "running"))

        assert first is not None
        assert second is None

    @pytest.mark.asyncio
    async def test_file_part_and_provider_reasoning(self, events):
        interpreter = StreamInterpreter(SESSION)
        interpreter.process(events.message_updated())
        interpreter.process(events.part("file", path="src/math.py"))
        interpreter.process(events.part(
            "step-finish",
            metadata={"openrouter": {"reasoning_details": [{"text": "Checked math.py"}]}},
        ))

        assert interpreter.reasoning_entries == ["File operation: src/math.py", "Checked math.py"]


# ── completion and errors ────────────────────────────────────────────────────


class TestCompletion:
    @pytest.mark.asyncio
    async def test_exactly_one_final_result(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(),
            events.text("Done"),
            events.idle(),
            events.text("Done and more"),
            events.idle(),
        ])

        assert sum(r.is_final for r in results) == 1
        assert results[-1].is_final

    @pytest.mark.asyncio
    async def test_stream_end_with_text_synthesizes_final(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.message_updated(),
            events.text("Partial answer"),
        ])

        assert results[-1].is_final
        assert interpreter.finished is True

    @pytest.mark.asyncio
    async def test_stream_end_without_text_yields_no_final(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [events.message_updated()])

        assert results == []
        assert interpreter.finished is False

    @pytest.mark.asyncio
    async def test_session_error_raises(self, events):
        interpreter = StreamInterpreter(SESSION)
        with pytest.raises(RemoteAgentError, match="rate limited"):
            await _collect(interpreter, [
                events.message_updated(),
                events.error("rate limited"),
            ])

    @pytest.mark.asyncio
    async def test_error_without_session_raises(self, events):
        interpreter = StreamInterpreter(SESSION)
        with pytest.raises(RemoteAgentError, match="boom"):
            await _collect(interpreter, [events.error("boom", session_id=None, event_type="message.error")])

    @pytest.mark.asyncio
    async def test_error_for_other_session_ignored(self, events):
        interpreter = StreamInterpreter(SESSION)
        results = await _collect(interpreter, [
            events.error("not ours", session_id="ses_other"),
            events.message_updated(),
            events.text("ok"),
            events.idle(),
        ])

        assert results[-1].is_final

    def test_malformed_events_ignored(self):
        interpreter = StreamInterpreter(SESSION)
        assert interpreter.process("garbage") is None
        assert interpreter.process({"type": "message.part.updated"}) is None
        assert interpreter.process({"type": "unknown.event", "properties": {}}) is None
