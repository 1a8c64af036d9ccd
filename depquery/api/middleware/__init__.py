"""
API Middleware - Exception taxonomy and error response handlers.
"""

from depquery.api.middleware.error_handler import (
    AppException,
    SessionCreationError,
    RemoteAgentError,
    StreamStallError,
    OverallTimeoutError,
    FetchTimeoutError,
    NoAnswerFoundError,
    SystemPromptDeliveryError,
    RepositoryNotFoundError,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)

__all__ = [
    "AppException",
    "SessionCreationError",
    "RemoteAgentError",
    "StreamStallError",
    "OverallTimeoutError",
    "FetchTimeoutError",
    "NoAnswerFoundError",
    "SystemPromptDeliveryError",
    "RepositoryNotFoundError",
    "app_exception_handler",
    "http_exception_handler",
    "validation_exception_handler",
    "generic_exception_handler",
]
