"""
Query Orchestrator - Public entry point of the query engine.

COMPLETE FLOW:
==============
1. Query (question + repository path + optional session)
        │
        ▼
2. SESSION GATEWAY
   - Reuse the caller's session, or open one and seed it with the
     hidden system prompt
        │
        ▼
3a. STREAMING (query_stream)                3b. ONE-SHOT (query)
   - Subscribe to events first                - Send question, await reply
   - Send question in the background          - Inline answer? return it
   - LivenessSupervisor(events)               - Otherwise FALLBACK POLLER
       └► StreamInterpreter → results
   - No event channel, or no answer text on
     the tracked message → FALLBACK POLLER
        │
        ▼
4. Answer to the caller
        │
        ▼
5. First answer in a fresh session without a repository summary?
   → detached background task asks for one and stores it
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional, Set

from depquery.agents.base import RemoteAgentService, SessionHandle, text_part
from depquery.agents.liveness import LivenessConfig, LivenessSupervisor
from depquery.agents.poller import FallbackPoller, PollerConfig
from depquery.agents.prompts import SUMMARY_PROMPT
from depquery.agents.session_gateway import SessionGateway
from depquery.agents.stream_interpreter import StreamInterpreter
from depquery.api.middleware.error_handler import (
    AppException,
    OverallTimeoutError,
    RemoteAgentError,
    StreamStallError,
)
from depquery.models.schemas import FinalAnswer, IncrementalResult, Query
from depquery.services.summary_store import SummaryStore

logger = logging.getLogger(__name__)


@dataclass
class OrchestratorConfig:
    """Configuration for the query orchestrator."""
    timeout_seconds: float = 120.0
    fetch_timeout_seconds: float = 30.0
    summary_timeout_multiplier: float = 3.0
    agent_prompt: Optional[str] = None
    poller: PollerConfig = field(default_factory=PollerConfig)
    liveness: LivenessConfig = field(default_factory=LivenessConfig)


class QueryOrchestrator:
    """
    Turns a question about a repository into an answer.

    The orchestrator owns no conversation state; each call creates its
    own interpreter and supervisor. Only the background summary tasks
    outlive a call.
    """

    def __init__(
        self,
        agent: RemoteAgentService,
        config: Optional[OrchestratorConfig] = None,
        summary_store: Optional[SummaryStore] = None,
    ):
        """
        Initialize the orchestrator with its collaborators.

        Args:
            agent: Remote agent service client
            config: Timeouts and polling settings
            summary_store: Where repository summaries are kept; summary
                generation is disabled without one
        """
        self.agent = agent
        self.config = config or OrchestratorConfig()
        self.summary_store = summary_store
        self.gateway = SessionGateway(
            agent,
            fetch_timeout_seconds=self.config.fetch_timeout_seconds,
            agent_prompt=self.config.agent_prompt,
        )
        self.poller = FallbackPoller(agent, self.config.poller)
        self._background: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # One-shot
    # ------------------------------------------------------------------

    async def query(self, query: Query, summary_key: Optional[str] = None) -> FinalAnswer:
        """
        Answer a question in one call.

        Args:
            query: The question and where to ask it
            summary_key: Identifier under which the repository summary is
                stored (defaults to the repository path)

        Raises:
            SessionCreationError, RemoteAgentError, FetchTimeoutError,
            NoAnswerFoundError, OverallTimeoutError
        """
        timeout = self._timeout_for(query)
        _log_query(query)
        opened: Dict[str, str] = {}
        try:
            answer = await asyncio.wait_for(self._query_once(query, opened), timeout=timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Query timed out after {timeout}s")
            raise OverallTimeoutError(
                timeout, session_id=opened.get("session_id", query.session_id)
            ) from e

        self._after_first_answer(query, summary_key)
        return answer

    async def _query_once(self, query: Query, opened: Dict[str, str]) -> FinalAnswer:
        handle = await self.gateway.ensure_session(
            query.repository_path,
            query.question,
            existing_session_id=query.session_id,
            summary=query.summary,
        )
        # Read by query() if the overall deadline cancels us
        opened["session_id"] = handle.session_id

        logger.info(f"Sending question to session {handle.session_id}")
        reply = await self.agent.send_prompt(
            handle.session_id,
            [text_part(query.question)],
            directory=query.repository_path,
            model=query.model,
            timeout=self.config.fetch_timeout_seconds,
        )
        _raise_reply_error(reply, handle.session_id)

        return await self.poller.poll_for_answer(
            handle.session_id,
            query.repository_path,
            initial_reply=reply,
        )

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    async def query_stream(
        self,
        query: Query,
        summary_key: Optional[str] = None,
    ) -> AsyncIterator[IncrementalResult]:
        """
        Answer a question as a sequence of incremental results.

        The last result has is_final=True; every result carries the same
        session id. Falls back to polling when no live stream is available.
        """
        timeout = self._timeout_for(query)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        _log_query(query)

        handle = await self._bounded(
            self.gateway.ensure_session(
                query.repository_path,
                query.question,
                existing_session_id=query.session_id,
                summary=query.summary,
            ),
            deadline,
            timeout,
            query.session_id,
        )
        session_id = handle.session_id

        # Subscribe before sending so early events aren't missed
        events = await self._bounded(
            self.agent.subscribe_events(
                query.repository_path,
                timeout=self.config.fetch_timeout_seconds,
            ),
            deadline,
            timeout,
            session_id,
        )

        if events is None:
            logger.info("No live event channel available, falling back to polling")
            async for result in self._stream_via_polling(query, handle, deadline, timeout):
                yield result
            self._after_first_answer(query, summary_key)
            return

        send_task = self._spawn_send(query, session_id, timeout)
        supervisor = LivenessSupervisor(
            self.config.liveness,
            deadline=deadline,
            timeout_seconds=timeout,
            session_id=session_id,
        )
        interpreter = StreamInterpreter(session_id)
        supervised = supervisor.supervise(events)
        results = interpreter.interpret(supervised)
        emitted = False

        try:
            async for result in results:
                if result.is_final and not interpreter.answer_text:
                    # Tool-first turn: the text landed on a later assistant message
                    break
                emitted = True
                yield result
        except (StreamStallError, OverallTimeoutError) as e:
            send_error = _failed_send(send_task)
            if send_error is not None and not emitted:
                raise RemoteAgentError(
                    f"Failed to send question: {send_error}", session_id=session_id
                ) from e
            raise
        finally:
            await results.aclose()
            await supervised.aclose()
            await _aclose(events)

        if not interpreter.finished or not interpreter.answer_text:
            # No answer text from the tracked message
            send_error = _failed_send(send_task)
            if send_error is not None:
                raise RemoteAgentError(
                    f"Failed to send question: {send_error}", session_id=session_id
                ) from send_error
            logger.info(f"Event stream ended without answer text for {session_id}, polling")
            answer = await self._bounded(
                self.poller.poll_for_answer(session_id, query.repository_path),
                deadline,
                timeout,
                session_id,
            )
            yield IncrementalResult(text_delta=answer.response_text, session_id=session_id)
            yield IncrementalResult(
                text_delta="",
                reasoning_snapshot=interpreter.reasoning_snapshot,
                is_final=True,
                session_id=session_id,
            )

        self._after_first_answer(query, summary_key)

    async def _stream_via_polling(
        self,
        query: Query,
        handle: SessionHandle,
        deadline: float,
        timeout: float,
    ) -> AsyncIterator[IncrementalResult]:
        session_id = handle.session_id
        reply = await self._bounded(
            self.agent.send_prompt(
                session_id,
                [text_part(query.question)],
                directory=query.repository_path,
                model=query.model,
                timeout=self.config.fetch_timeout_seconds,
            ),
            deadline,
            timeout,
            session_id,
        )
        _raise_reply_error(reply, session_id)
        answer = await self._bounded(
            self.poller.poll_for_answer(session_id, query.repository_path, initial_reply=reply),
            deadline,
            timeout,
            session_id,
        )
        yield IncrementalResult(text_delta=answer.response_text, session_id=session_id)
        yield IncrementalResult(text_delta="", is_final=True, session_id=session_id)

    def _spawn_send(self, query: Query, session_id: str, timeout: float) -> asyncio.Task:
        """Send the question without awaiting it; failures are logged by the task."""
        logger.info(f"Sending question to session {session_id}")

        async def send() -> Optional[Dict[str, Any]]:
            try:
                return await self.agent.send_prompt(
                    session_id,
                    [text_part(query.question)],
                    directory=query.repository_path,
                    model=query.model,
                    timeout=timeout,
                )
            except Exception as e:
                logger.error(f"Question send error for session {session_id}: {e}")
                raise

        return self._track(asyncio.create_task(send()))

    # ------------------------------------------------------------------
    # Repository summary
    # ------------------------------------------------------------------

    def schedule_summary(self, identifier: str, repository_path: str) -> Optional[asyncio.Task]:
        """
        Start detached summary generation for a repository.

        The returned task is never awaited on the answer path.
        """
        if self.summary_store is None:
            return None
        logger.info(f"Scheduling repository summary for {identifier}")
        return self._track(
            asyncio.create_task(self.generate_summary_if_needed(identifier, repository_path))
        )

    async def generate_summary_if_needed(self, identifier: str, repository_path: str) -> None:
        """Generate and store a summary if none exists yet. Never raises."""
        if self.summary_store is None:
            return
        try:
            existing = await self.summary_store.load_summary(identifier)
            if existing and existing.strip():
                return
            await self.regenerate_summary(identifier, repository_path)
        except Exception as e:
            logger.error(f"Summary generation failed for {identifier}: {e}")

    async def regenerate_summary(self, identifier: str, repository_path: str) -> str:
        """
        Ask the agent for a fresh repository summary and store it.

        Runs in its own session with the longer summary deadline.
        """
        if self.summary_store is None:
            raise ValueError("No summary store configured")

        timeout = self.config.timeout_seconds * self.config.summary_timeout_multiplier
        logger.info(f"Generating summary for {identifier} (timeout {timeout}s)")
        answer = await self.query(
            Query(
                repository_path=repository_path,
                question=SUMMARY_PROMPT,
                timeout_seconds=timeout,
            ),
            summary_key=None,
        )
        await self.summary_store.save_summary(identifier, answer.response_text)
        logger.info(f"Saved summary for {identifier}")
        return answer.response_text

    def _after_first_answer(self, query: Query, summary_key: Optional[str]) -> None:
        if query.session_id or query.has_summary or summary_key is None:
            return
        self.schedule_summary(summary_key, query.repository_path)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _timeout_for(self, query: Query) -> float:
        return query.timeout_seconds or self.config.timeout_seconds

    async def _bounded(self, awaitable, deadline: float, timeout: float, session_id: Optional[str]):
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            raise OverallTimeoutError(timeout, session_id=session_id)
        try:
            return await asyncio.wait_for(awaitable, timeout=remaining)
        except asyncio.TimeoutError as e:
            raise OverallTimeoutError(timeout, session_id=session_id) from e

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(_consume_exception)
        return task

    @property
    def pending_tasks(self) -> Set[asyncio.Task]:
        return set(self._background)

    async def aclose(self) -> None:
        """Cancel outstanding background tasks (summary generation, sends)."""
        tasks = list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


def _log_query(query: Query) -> None:
    preview = query.question[:100] + ("..." if len(query.question) > 100 else "")
    logger.info(f"Starting query for directory: {query.repository_path}")
    logger.info(f"Query: {preview}")
    if query.model:
        logger.info(f"Using model: {query.model.provider_id}/{query.model.model_id}")


def _raise_reply_error(reply: Optional[Dict[str, Any]], session_id: str) -> None:
    """Surface an error carried on an inline reply."""
    if not isinstance(reply, dict):
        return
    info = reply.get("info")
    error = info.get("error") if isinstance(info, dict) else None
    if not error:
        return
    if isinstance(error, dict):
        data = error.get("data")
        message = error.get("message") or (data.get("message") if isinstance(data, dict) else None)
        message = message or error.get("name") or str(error)
    else:
        message = str(error)
    raise RemoteAgentError(message, session_id=session_id)


def _failed_send(task: asyncio.Task) -> Optional[BaseException]:
    if not task.done() or task.cancelled():
        return None
    return task.exception()


def _consume_exception(task: asyncio.Task) -> None:
    # Detached tasks log their own failures; retrieve to avoid "never retrieved" noise
    if not task.cancelled():
        task.exception()


async def _aclose(events) -> None:
    aclose = getattr(events, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug(f"Error closing event subscription: {e}")
