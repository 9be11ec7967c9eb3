"""Terminate tool: ends the turn without touching the sandbox."""

from typing import Any

from pydantic import BaseModel, Field

from sandbox_agent.services.sandbox import SandboxSessionManager
from sandbox_agent.tools.base import ToolDefinition

TERMINATE_TOOL_NAME = "terminate"


class TerminateInput(BaseModel):
    """Input schema for the terminate tool."""

    reason: str = Field(
        ...,
        description="Reason for termination (e.g., 'task completed', 'user request fulfilled')",
    )
    summary: str | None = Field(default=None, description="Brief summary of what was accomplished")


async def terminate(params: TerminateInput, sessions: SandboxSessionManager) -> dict[str, Any]:  # noqa: RUF029
    return {
        "terminated": True,
        "reason": params.reason,
        "summary": params.summary or "Task completed",
    }


def create_terminate_tool() -> ToolDefinition:
    return ToolDefinition(
        name=TERMINATE_TOOL_NAME,
        description="Terminate the conversation when the task is complete or when you want to end the interaction",
        input_schema_class=TerminateInput,
        handler=terminate,
    )
