"""
Liveness Supervisor - Heartbeat watchdog and overall deadline for a stream.

Live event streams can silently stall. The supervisor wraps the raw event
iterator and turns silence into an explicit failure:

- heartbeat: no event of any kind within the window -> StreamStallError
- deadline:  the whole call ran past its budget      -> OverallTimeoutError

The heartbeat resets on every event, including ones the interpreter ends
up ignoring, which is why it wraps the raw events rather than the results.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Optional, TypeVar

from depquery.api.middleware.error_handler import OverallTimeoutError, StreamStallError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class LivenessConfig:
    """Configuration for stream supervision."""
    heartbeat_seconds: float = 30.0


class LivenessSupervisor:
    """
    Enforces the heartbeat and deadline around one event subscription.

    Usage:
        supervisor = LivenessSupervisor(config, deadline, timeout_seconds, session_id)
        async for event in supervisor.supervise(events):
            ...
    """

    def __init__(
        self,
        config: LivenessConfig,
        deadline: float,
        timeout_seconds: float,
        session_id: Optional[str] = None,
    ):
        """
        Args:
            config: Heartbeat settings
            deadline: Absolute event-loop time (loop.time()) the call must finish by
            timeout_seconds: The overall budget, reported in OverallTimeoutError
            session_id: Reported in errors
        """
        self.config = config
        self.deadline = deadline
        self.timeout_seconds = timeout_seconds
        self.session_id = session_id

    def remaining(self) -> float:
        return self.deadline - asyncio.get_running_loop().time()

    async def supervise(self, events: AsyncIterator[T]) -> AsyncIterator[T]:
        """
        Relay events until the source ends or a time bound fires.

        The source subscription is always closed on exit.
        """
        iterator = events.__aiter__()
        heartbeat = self.config.heartbeat_seconds
        try:
            while True:
                remaining = self.remaining()
                if remaining <= 0:
                    raise self._timeout_error()

                wait = min(heartbeat, remaining)
                try:
                    event = await asyncio.wait_for(iterator.__anext__(), timeout=wait)
                except StopAsyncIteration:
                    return
                except asyncio.TimeoutError:
                    if self.remaining() <= 0 or wait < heartbeat:
                        raise self._timeout_error()
                    logger.error(
                        f"No events for {heartbeat}s on session {self.session_id}; stream stalled"
                    )
                    raise StreamStallError(heartbeat, session_id=self.session_id)

                yield event
        finally:
            await _close_quietly(iterator)

    def _timeout_error(self) -> OverallTimeoutError:
        logger.error(
            f"Session {self.session_id} exceeded its {self.timeout_seconds}s deadline"
        )
        return OverallTimeoutError(self.timeout_seconds, session_id=self.session_id)


async def _close_quietly(iterator) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug(f"Error closing event subscription: {e}")
