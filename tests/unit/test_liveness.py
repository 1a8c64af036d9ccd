"""Tests for depquery.agents.liveness: heartbeat and deadline supervision."""

import asyncio

import pytest

from depquery.agents.liveness import LivenessConfig, LivenessSupervisor
from depquery.api.middleware.error_handler import OverallTimeoutError, StreamStallError


def _supervisor(heartbeat, timeout, session_id="ses_test"):
    deadline = asyncio.get_running_loop().time() + timeout
    return LivenessSupervisor(
        LivenessConfig(heartbeat_seconds=heartbeat),
        deadline=deadline,
        timeout_seconds=timeout,
        session_id=session_id,
    )


# ── pass-through ─────────────────────────────────────────────────────────────


class TestPassThrough:
    @pytest.mark.asyncio
    async def test_relays_all_events_and_closes(self, agent):
        agent.events = [{"type": "a"}, {"type": "b"}]
        stream = await agent.subscribe_events("/repo")
        supervisor = _supervisor(heartbeat=1.0, timeout=5.0)

        relayed = [e async for e in supervisor.supervise(stream)]

        assert relayed == [{"type": "a"}, {"type": "b"}]
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_events_reset_heartbeat(self, agent):
        # Each gap is under the heartbeat; the total is well over it
        agent.events = [{"n": i} for i in range(5)]
        agent.event_delay = 0.15
        stream = await agent.subscribe_events("/repo")
        supervisor = _supervisor(heartbeat=0.5, timeout=5.0)

        relayed = [e async for e in supervisor.supervise(stream)]

        assert len(relayed) == 5


# ── failures ─────────────────────────────────────────────────────────────────


class TestTimeBounds:
    @pytest.mark.asyncio
    async def test_silence_raises_stall(self, agent):
        agent.events = [{"type": "first"}]
        agent.hold_stream_open = True
        stream = await agent.subscribe_events("/repo")
        supervisor = _supervisor(heartbeat=0.05, timeout=5.0)

        relayed = []
        with pytest.raises(StreamStallError) as exc_info:
            async for event in supervisor.supervise(stream):
                relayed.append(event)

        assert relayed == [{"type": "first"}]
        assert exc_info.value.details["session_id"] == "ses_test"
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_deadline_before_heartbeat_raises_overall_timeout(self, agent):
        agent.events = []
        agent.hold_stream_open = True
        stream = await agent.subscribe_events("/repo")
        supervisor = _supervisor(heartbeat=5.0, timeout=0.05)

        with pytest.raises(OverallTimeoutError):
            async for _ in supervisor.supervise(stream):
                pass

        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_busy_stream_still_hits_deadline(self, agent):
        agent.events = [{"n": i} for i in range(100)]
        agent.event_delay = 0.02
        stream = await agent.subscribe_events("/repo")
        supervisor = _supervisor(heartbeat=1.0, timeout=0.1)

        with pytest.raises(OverallTimeoutError):
            async for _ in supervisor.supervise(stream):
                pass

    @pytest.mark.asyncio
    async def test_expired_deadline_raises_immediately(self, agent):
        agent.events = [{"type": "never seen"}]
        stream = await agent.subscribe_events("/repo")
        supervisor = _supervisor(heartbeat=1.0, timeout=0.0)

        with pytest.raises(OverallTimeoutError):
            async for _ in supervisor.supervise(stream):
                pass

        assert stream.delivered == 0
