"""Stream events emitted by the agent loop to its caller."""

from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel

ToolCallStatus = Literal["pending", "running", "completed", "error"]


class ThinkingData(BaseModel):
    content: str


class ToolCallData(BaseModel):
    """Display state of one tool invocation."""

    id: str
    type: str
    status: ToolCallStatus
    input: Any = None
    output: Any = None
    error: str | None = None


class MessageData(BaseModel):
    content: str


class ErrorData(BaseModel):
    message: str


class StreamEvent(BaseModel):
    """Tagged event delivered to the caller, one per push."""

    type: Literal["thinking", "tool_call", "message", "error"]
    data: ThinkingData | ToolCallData | MessageData | ErrorData

    @classmethod
    def thinking(cls, content: str) -> "StreamEvent":
        return cls(type="thinking", data=ThinkingData(content=content))

    @classmethod
    def tool_call(cls, data: ToolCallData) -> "StreamEvent":
        return cls(type="tool_call", data=data)

    @classmethod
    def message(cls, content: str) -> "StreamEvent":
        return cls(type="message", data=MessageData(content=content))

    @classmethod
    def error(cls, message: str) -> "StreamEvent":
        return cls(type="error", data=ErrorData(message=message))

    def to_wire(self) -> dict[str, Any]:
        """Return the JSON-ready form sent over the transport."""
        return {"type": self.type, "data": self.data.model_dump(exclude_none=True)}


EventCallback = Callable[[StreamEvent], Awaitable[None]]
