"""
Data Models for Dependency Query
================================

Organized into three categories:
- schemas: Core domain models used by the query engine
- requests: API request validation models
- responses: API response models
"""

from depquery.models.schemas import (
    ModelSelector,
    Query,
    IncrementalResult,
    FinalAnswer,
)

from depquery.models.requests import (
    ModelSelection,
    RepositoryRequest,
    QueryRequest,
    SummaryRequest,
)

from depquery.models.responses import (
    HealthResponse,
    QueryResponse,
    SummaryResponse,
    ErrorResponse,
)

__all__ = [
    # Schemas
    "ModelSelector",
    "Query",
    "IncrementalResult",
    "FinalAnswer",
    # Requests
    "ModelSelection",
    "RepositoryRequest",
    "QueryRequest",
    "SummaryRequest",
    # Responses
    "HealthResponse",
    "QueryResponse",
    "SummaryResponse",
    "ErrorResponse",
]
