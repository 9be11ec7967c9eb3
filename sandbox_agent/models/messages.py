"""Message and conversation data models."""

import json
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    """A tool call requested by the assistant.

    ``arguments`` holds the raw JSON text exactly as it was streamed.
    """

    id: str
    name: str
    arguments: str = ""

    def parse_arguments(self) -> dict[str, Any]:
        """Parse the raw argument text into a mapping.

        Raises:
            ValueError: If the text is not a JSON object
        """
        if not self.arguments.strip():
            return {}

        parsed = json.loads(self.arguments)
        if not isinstance(parsed, dict):
            raise ValueError(f"Tool arguments must be a JSON object, got {type(parsed).__name__}")
        return parsed


class ConversationMessage(BaseModel):
    """A message in a conversation."""

    role: Literal["user", "assistant", "tool", "system"]
    content: str | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None

    @classmethod
    def user(cls, content: str) -> "ConversationMessage":
        return cls(role="user", content=content)

    @classmethod
    def assistant(cls, content: str | None, tool_calls: list[ToolCall] | None = None) -> "ConversationMessage":
        return cls(role="assistant", content=content, tool_calls=tool_calls or None)


class ToolResult(BaseModel):
    """Outcome of dispatching one tool call: a success payload or a failure."""

    tool_call_id: str
    name: str
    output: Any = None
    error: str | None = None
    error_kind: str | None = None
    is_timeout: bool = False

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def payload(self) -> Any:
        """Return what the model sees for this result."""
        if self.is_error:
            return {"error": self.error, "isTimeout": self.is_timeout}
        return self.output

    def to_message(self) -> ConversationMessage:
        """Build the ``tool`` role message answering the originating call."""
        return ConversationMessage(
            role="tool",
            content=json.dumps(self.payload(), default=str),
            tool_call_id=self.tool_call_id,
        )
