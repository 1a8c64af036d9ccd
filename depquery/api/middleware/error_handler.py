"""
Error Handler Middleware - Exception taxonomy and global exception handling.

The exception classes in this module are raised by the query engine itself
(depquery.agents) and translated into consistent JSON error responses by
the HTTP handlers below.

Every query failure carries enough context in `details` (session id, the
time bound that was hit, the attempt count) for a caller to tell
"remote service is broken" apart from "this call is slow" apart from
"the answer never appeared".
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
from datetime import datetime, timezone
from typing import Optional

from depquery.core.config import get_settings

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base exception for application errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: dict = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class SessionCreationError(AppException):
    """Raised when the remote service refuses to open a session. Never retried."""

    def __init__(self, message: str, repository_path: Optional[str] = None):
        super().__init__(
            message=f"Failed to create agent session: {message}",
            error_code="SESSION_CREATION_FAILED",
            status_code=502,
            details={"repository_path": repository_path} if repository_path else {}
        )


class RemoteAgentError(AppException):
    """Raised when the remote service reports a session or message level error."""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(
            message=f"Remote agent error: {message}",
            error_code="REMOTE_AGENT_ERROR",
            status_code=502,
            details={"session_id": session_id} if session_id else {}
        )


class StreamStallError(AppException):
    """Raised when no event of any kind arrives within the heartbeat window."""

    def __init__(self, heartbeat_seconds: float, session_id: Optional[str] = None):
        super().__init__(
            message=(
                "Event stream appears to have stopped: "
                f"no events received for {heartbeat_seconds}s"
            ),
            error_code="STREAM_STALLED",
            status_code=504,
            details={"session_id": session_id, "heartbeat_seconds": heartbeat_seconds}
        )


class OverallTimeoutError(AppException):
    """Raised when a query exceeds its overall deadline."""

    def __init__(self, timeout_seconds: float, session_id: Optional[str] = None):
        super().__init__(
            message=f"Query timed out after {timeout_seconds}s",
            error_code="QUERY_TIMEOUT",
            status_code=504,
            details={"session_id": session_id, "timeout_seconds": timeout_seconds}
        )


class FetchTimeoutError(AppException):
    """Raised when a single call to the remote service exceeds the fetch timeout."""

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            message=f"{operation} timed out after {timeout_seconds}s",
            error_code="FETCH_TIMEOUT",
            status_code=504,
            details={"operation": operation, "timeout_seconds": timeout_seconds}
        )


class NoAnswerFoundError(AppException):
    """Raised when polling exhausts its attempt budget without an assistant answer."""

    def __init__(self, attempts: int, session_id: Optional[str] = None):
        super().__init__(
            message=f"No assistant message found after {attempts} polling attempts",
            error_code="NO_ANSWER_FOUND",
            status_code=504,
            details={"session_id": session_id, "attempts": attempts}
        )


class SystemPromptDeliveryError(AppException):
    """Raised when the hidden system prompt can't be delivered. Logged, never surfaced."""

    def __init__(self, message: str, session_id: Optional[str] = None):
        super().__init__(
            message=f"Failed to deliver system prompt: {message}",
            error_code="SYSTEM_PROMPT_DELIVERY_FAILED",
            status_code=502,
            details={"session_id": session_id} if session_id else {}
        )


class RepositoryNotFoundError(AppException):
    """Raised when a repository can't be found locally or cloned."""

    def __init__(self, repository: str, reason: Optional[str] = None):
        super().__init__(
            message=f"Repository not found: {repository}" + (f" ({reason})" if reason else ""),
            error_code="REPO_NOT_FOUND",
            status_code=404,
            details={"repository": repository}
        )


def create_error_response(
    message: str,
    error_code: str = "INTERNAL_ERROR",
    status_code: int = 500,
    details: dict = None
) -> JSONResponse:
    """Create a standardized error response."""
    settings = get_settings()

    content = {
        "success": False,
        "error": message,
        "error_code": error_code,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

    # Include details in debug mode
    if details and settings.debug:
        content["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content
    )


async def app_exception_handler(
    request: Request,
    exc: AppException
) -> JSONResponse:
    """Handle application-specific exceptions."""
    return create_error_response(
        message=exc.message,
        error_code=exc.error_code,
        status_code=exc.status_code,
        details=exc.details
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    """Handle HTTP exceptions."""
    return create_error_response(
        message=str(exc.detail),
        error_code="HTTP_ERROR",
        status_code=exc.status_code
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle request validation errors."""
    errors = []
    for error in exc.errors():
        loc = " -> ".join(str(l) for l in error["loc"])
        errors.append(f"{loc}: {error['msg']}")

    return create_error_response(
        message="Validation error",
        error_code="VALIDATION_ERROR",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors}
    )


async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    """Handle unexpected exceptions."""
    settings = get_settings()

    traceback_str = traceback.format_exc()
    logger.error(f"Unexpected error: {traceback_str}")

    details = None
    if settings.debug:
        details = {
            "exception_type": type(exc).__name__,
            "traceback": traceback_str
        }

    return create_error_response(
        message="An unexpected error occurred",
        error_code="INTERNAL_ERROR",
        status_code=500,
        details=details
    )
