"""
Core data models for llmbridge.

Pydantic models for everything that crosses a boundary: model catalog
entries, the selectable choices handed to the workflow editor, block
runner responses and normalized query results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True)
class BlockContext:
    """Opaque per-request context forwarded to the block runner."""

    user_id: str = ""
    job_id: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)


class ModelDescriptor(BaseModel):
    """A model declared by a provider's catalog."""

    name: str
    type: str
    context_size: int
    provider: str
    title: Optional[str] = None
    description: Optional[str] = None

    @field_validator("context_size")
    @classmethod
    def _positive_context(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"context_size must be > 0, got {v}")
        return v


class ModelChoice(BaseModel):
    """Selectable-choice record consumed by the workflow editor."""

    value: str
    title: str
    description: str


class BlockUsage(BaseModel):
    model_config = ConfigDict(extra="allow")

    total_tokens: int = 0


class BlockResponse(BaseModel):
    """Raw response of a block run. Only the fields below are interpreted."""

    model_config = ConfigDict(extra="allow")

    answer_text: str = ""
    function_arguments_string: str = ""
    usage: BlockUsage = Field(default_factory=BlockUsage)
    error: Optional[str] = None

    @field_validator("answer_text", "function_arguments_string", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("usage", mode="before")
    @classmethod
    def _none_to_usage(cls, v: Any) -> Any:
        return {} if v is None else v


class QueryResult(BaseModel):
    """Normalized output of LLMProvider.query."""

    answer_text: str
    answer_json: dict[str, Any] = Field(default_factory=dict)
