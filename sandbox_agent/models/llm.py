"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel


class ContentDelta(BaseModel):
    """Incremental assistant text."""

    type: Literal["content"] = "content"
    text: str


class ToolCallDelta(BaseModel):
    """One fragment of a streamed tool call.

    Fragments sharing an ``index`` belong to the same call. Only the first
    fragment of an index is expected to carry ``id`` and ``name``.
    """

    type: Literal["tool_call"] = "tool_call"
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""


@dataclass
class LLMUsage:
    """Token usage information from the LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


class StopDelta(BaseModel):
    """Final event of a stream."""

    type: Literal["stop"] = "stop"
    stop_reason: str | None = None
    input_tokens: int = 0
    output_tokens: int = 0


CompletionDelta = ContentDelta | ToolCallDelta | StopDelta


class LLMToolDefinition(BaseModel):
    """Complete tool definition for the LLM."""

    name: str
    description: str
    input_schema: dict[str, Any]
