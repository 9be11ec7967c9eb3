"""Code execution tool."""

from typing import Any

from pydantic import BaseModel, Field

from sandbox_agent.services.sandbox import INTERPRETERS, SandboxSessionManager
from sandbox_agent.tools.base import ToolDefinition


class CodeExecutionInput(BaseModel):
    """Input schema for running a code snippet."""

    language: str = Field(
        ...,
        description="Programming language",
        json_schema_extra={"enum": list(INTERPRETERS)},
    )
    code: str = Field(..., description="Code to execute")
    timeout: float | None = Field(default=None, gt=0, description="Timeout in seconds (optional)")


async def run_code(params: CodeExecutionInput, sessions: SandboxSessionManager) -> dict[str, Any]:
    output = await sessions.execute_code(params.language, params.code, timeout=params.timeout)
    return output.as_payload()


def create_code_execution_tool() -> ToolDefinition:
    return ToolDefinition(
        name="code_execution",
        description="Execute code in various programming languages (python, javascript, bash).",
        input_schema_class=CodeExecutionInput,
        handler=run_code,
    )
