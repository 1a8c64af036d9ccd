"""
Remote Agent Client - HTTP + server-sent-events client for the coding agent.

ENDPOINTS:
==========
    POST /session                     open a conversation
    POST /session/{id}/message        send a prompt (noReply for hidden context)
    GET  /session/{id}/message        latest messages, oldest first
    GET  /event                       live event channel (text/event-stream)

Every call carries the repository location both as the
x-opencode-directory header and as the directory query parameter.
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from depquery.agents.base import RemoteAgentService
from depquery.api.middleware.error_handler import FetchTimeoutError, RemoteAgentError
from depquery.models.schemas import ModelSelector

logger = logging.getLogger(__name__)

DIRECTORY_HEADER = "x-opencode-directory"


class HttpRemoteAgentClient(RemoteAgentService):
    """
    Talks to the remote agent service over HTTP.

    The underlying httpx.AsyncClient is created on first use and shared by
    all calls until aclose().
    """

    def __init__(
        self,
        base_url: str,
        fetch_timeout_seconds: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.fetch_timeout_seconds = fetch_timeout_seconds
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.fetch_timeout_seconds,
                transport=self._transport,
            )
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    # ------------------------------------------------------------------
    # RemoteAgentService
    # ------------------------------------------------------------------

    async def create_session(
        self,
        title: str,
        directory: str,
        timeout: Optional[float] = None,
    ) -> str:
        data = await self._request(
            "POST", "/session", "create session", directory,
            json_body={"title": title}, timeout=timeout,
        )
        session_id = data.get("id") if isinstance(data, dict) else None
        if not session_id:
            raise RemoteAgentError("Session creation returned no session id")
        logger.info(f"Created session: {session_id}")
        return session_id

    async def send_prompt(
        self,
        session_id: str,
        parts: List[Dict[str, Any]],
        directory: str,
        model: Optional[ModelSelector] = None,
        no_reply: bool = False,
        timeout: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        body: Dict[str, Any] = {"parts": parts}
        if no_reply:
            body["noReply"] = True
        if model is not None:
            body["model"] = model.to_wire()

        data = await self._request(
            "POST", f"/session/{session_id}/message", "send prompt", directory,
            json_body=body, timeout=timeout,
        )
        return data if isinstance(data, dict) else None

    async def subscribe_events(
        self,
        directory: str,
        timeout: Optional[float] = None,
    ) -> Optional[AsyncIterator[Dict[str, Any]]]:
        client = await self._get_client()
        fetch_timeout = timeout or self.fetch_timeout_seconds
        # Silence between events is policed by the liveness supervisor, not httpx
        request = client.build_request(
            "GET",
            "/event",
            params={"directory": directory},
            headers={DIRECTORY_HEADER: directory, "accept": "text/event-stream"},
            timeout=httpx.Timeout(fetch_timeout, read=None),
        )

        try:
            response = await client.send(request, stream=True)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError("subscribe to events", fetch_timeout) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to subscribe to events: {e}")
            raise RemoteAgentError(f"Event subscription failed: {e}") from e

        if response.status_code == 404:
            await response.aclose()
            logger.info("Remote agent service has no event channel")
            return None
        if response.is_error:
            await response.aclose()
            raise RemoteAgentError(f"Event subscription failed: HTTP {response.status_code}")

        logger.debug("Subscribed to event stream")
        return _iter_sse_events(response)

    async def list_messages(
        self,
        session_id: str,
        directory: str,
        limit: int,
        timeout: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        data = await self._request(
            "GET", f"/session/{session_id}/message", "list messages", directory,
            params={"limit": limit}, timeout=timeout,
        )
        if not isinstance(data, list):
            raise RemoteAgentError(
                f"Invalid messages response: expected list, got {type(data).__name__}",
                session_id=session_id,
            )
        return data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        directory: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        client = await self._get_client()
        fetch_timeout = timeout or self.fetch_timeout_seconds
        query = {"directory": directory}
        if params:
            query.update(params)

        try:
            response = await client.request(
                method,
                path,
                json=json_body,
                params=query,
                headers={DIRECTORY_HEADER: directory},
                timeout=fetch_timeout,
            )
        except httpx.TimeoutException as e:
            logger.error(f"Timed out trying to {operation} after {fetch_timeout}s")
            raise FetchTimeoutError(operation, fetch_timeout) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to {operation}: {e}")
            raise RemoteAgentError(f"Failed to {operation}: {e}") from e

        if response.is_error:
            raise RemoteAgentError(
                f"Failed to {operation}: HTTP {response.status_code} {response.text[:200]}"
            )

        if not response.content:
            return None
        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise RemoteAgentError(f"Failed to {operation}: invalid JSON response") from e


async def _iter_sse_events(response: httpx.Response) -> AsyncIterator[Dict[str, Any]]:
    """
    Parse a text/event-stream body into event dicts.

    Each event's data: lines are joined and decoded as JSON. Events wrapped
    as {"payload": {...}} are unwrapped. The response is closed when the
    iterator is.
    """
    data_lines: List[str] = []
    try:
        async for line in response.aiter_lines():
            if line == "":
                event = _decode_event(data_lines)
                data_lines = []
                if event is not None:
                    yield event
                continue
            if line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            if value.startswith(" "):
                value = value[1:]
            if field == "data":
                data_lines.append(value)

        event = _decode_event(data_lines)
        if event is not None:
            yield event
    finally:
        await response.aclose()


def _decode_event(data_lines: List[str]) -> Optional[Dict[str, Any]]:
    if not data_lines:
        return None
    raw = "\n".join(data_lines)
    try:
        event = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug(f"Skipping non-JSON event data: {raw[:100]}")
        return None
    if not isinstance(event, dict):
        return None
    if "type" not in event and isinstance(event.get("payload"), dict):
        return event["payload"]
    return event
