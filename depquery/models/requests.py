"""
API Request Models - Pydantic models for request validation.
"""

from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator, model_validator


class ModelSelection(BaseModel):
    """Model to answer with, as exposed to API callers."""
    provider_id: str = Field(..., min_length=1, examples=["anthropic"])
    model_id: str = Field(..., min_length=1, examples=["claude-sonnet-4"])


class RepositoryRequest(BaseModel):
    """Where the repository being asked about lives."""
    repository: str = Field(
        ...,
        min_length=1,
        description="Local repository path (or cache path for cloned repositories)"
    )
    storage_kind: Literal["local", "cloned"] = Field(
        default="local",
        description="'local' for an existing directory, 'cloned' for a git remote"
    )
    git_url: Optional[str] = Field(
        default=None,
        description="Git remote URL, required when storage_kind is 'cloned'"
    )
    revision: Optional[str] = Field(
        default=None,
        description="Tag or branch to check out (cloned repositories only)"
    )
    summary_key: Optional[str] = Field(
        default=None,
        description="Key under which the repository summary is stored (defaults to git_url, then repository)"
    )

    @model_validator(mode="after")
    def check_git_url(self):
        if self.storage_kind == "cloned" and not self.git_url:
            raise ValueError("git_url is required for cloned repositories")
        return self

    @property
    def resolved_summary_key(self) -> str:
        return self.summary_key or self.git_url or self.repository


class QueryRequest(RepositoryRequest):
    """
    Request to ask a question about a repository.

    Example:
        {
            "repository": "/data/packages/fastapi",
            "question": "How does dependency injection work?",
            "session_id": null
        }
    """
    question: str = Field(
        ...,
        min_length=1,
        max_length=20000,
        description="Question about the codebase",
        examples=["What does this function do?"]
    )
    session_id: Optional[str] = Field(
        default=None,
        description="Session ID from a previous answer, for follow-up questions"
    )
    model: Optional[ModelSelection] = None
    summary: Optional[str] = Field(
        default=None,
        description="Repository summary used to seed a new session"
    )
    timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        le=3600,
        description="Overall timeout for this call"
    )

    @field_validator("question")
    @classmethod
    def strip_question(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Question must not be blank")
        return v


class SummaryRequest(RepositoryRequest):
    """
    Request to regenerate the stored summary of a repository.

    Example:
        {
            "repository": "zod",
            "storage_kind": "cloned",
            "git_url": "https://github.com/colinhacks/zod"
        }
    """
