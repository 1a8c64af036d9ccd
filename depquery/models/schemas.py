"""
Core Domain Schemas - Shared data models used across the query engine.

A Query goes in; a sequence of IncrementalResult values (streaming) or a
single FinalAnswer (one-shot) comes out. All of them are created per call
and discarded after the answer is delivered.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ModelSelector(BaseModel):
    """Provider/model pair forwarded to the remote agent service."""
    model_config = ConfigDict(frozen=True)

    provider_id: str = Field(..., min_length=1)
    model_id: str = Field(..., min_length=1)

    def to_wire(self) -> dict:
        return {"providerID": self.provider_id, "modelID": self.model_id}


class Query(BaseModel):
    """
    A question about one repository. Immutable once submitted.

    session_id continues an existing conversation; summary seeds a new
    session with a previously generated repository summary.
    """
    model_config = ConfigDict(frozen=True)

    repository_path: str
    question: str
    model: Optional[ModelSelector] = None
    session_id: Optional[str] = None
    summary: Optional[str] = None
    timeout_seconds: Optional[float] = Field(default=None, gt=0)

    @property
    def has_summary(self) -> bool:
        return bool(self.summary and self.summary.strip())


class IncrementalResult(BaseModel):
    """
    One step of a streamed answer.

    text_delta is only the newly appended text. reasoning_snapshot is a
    full replacement of the reasoning trace, so only the last one seen
    matters. Exactly one result per answer has is_final=True and it is
    always the last.
    """
    model_config = ConfigDict(frozen=True)

    text_delta: str = ""
    reasoning_snapshot: Optional[str] = None
    is_final: bool = False
    session_id: str


class FinalAnswer(BaseModel):
    """Complete answer for one question."""
    model_config = ConfigDict(frozen=True)

    response_text: str
    session_id: str
