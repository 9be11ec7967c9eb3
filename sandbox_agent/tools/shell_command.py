"""Shell command tool."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sandbox_agent.services.sandbox import SandboxSessionManager
from sandbox_agent.tools.base import ToolDefinition


class ShellCommandInput(BaseModel):
    """Input schema for the shell command tool."""

    model_config = ConfigDict(populate_by_name=True)

    command: str = Field(..., min_length=1, description="The shell command to execute")
    working_directory: str | None = Field(
        default=None,
        alias="workingDirectory",
        description="Working directory (optional, defaults to /home/user)",
    )


async def run_shell_command(params: ShellCommandInput, sessions: SandboxSessionManager) -> dict[str, Any]:
    output = await sessions.execute_command(params.command, cwd=params.working_directory)
    return output.as_payload()


def create_shell_command_tool() -> ToolDefinition:
    return ToolDefinition(
        name="shell_command",
        description="Execute a shell command in the virtual machine and return stdout, stderr and the exit code.",
        input_schema_class=ShellCommandInput,
        handler=run_shell_command,
    )
