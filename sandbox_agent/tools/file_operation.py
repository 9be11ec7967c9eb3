"""File operation tool."""

from typing import Any

from pydantic import BaseModel, Field

from sandbox_agent.services.sandbox import FILE_OPERATIONS, SandboxSessionManager
from sandbox_agent.tools.base import ToolDefinition


class FileOperationInput(BaseModel):
    """Input schema for file operations.

    ``type`` is a plain string: unsupported operations reach the sandbox
    manager and come back to the model as a tool error.
    """

    type: str = Field(
        ...,
        description="Type of file operation. Use 'create' for directories.",
        json_schema_extra={"enum": list(FILE_OPERATIONS)},
    )
    path: str = Field(
        ...,
        description="File or directory path. Directory paths must end with '/' when creating.",
    )
    content: str | None = Field(default=None, description="Content for write and create operations")
    recursive: bool = Field(default=False, description="Recursive for directory operations")


async def run_file_operation(params: FileOperationInput, sessions: SandboxSessionManager) -> dict[str, Any]:
    return await sessions.file_operation(
        params.type,
        params.path,
        content=params.content,
        recursive=params.recursive,
    )


def create_file_operation_tool() -> ToolDefinition:
    return ToolDefinition(
        name="file_operation",
        description=(
            "Perform file operations. "
            "When creating a directory, the path must end with a '/'. "
            "When creating a file in a directory that may not exist, first check if the directory exists. "
            "If not, create the directory (with a trailing '/'), then create the file. "
            "Relative paths are placed under /home/user."
        ),
        input_schema_class=FileOperationInput,
        handler=run_file_operation,
    )
