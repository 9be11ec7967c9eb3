"""Tools registry for managing agent tools."""

from sandbox_agent.errors import UnknownToolError
from sandbox_agent.models.llm import LLMToolDefinition
from sandbox_agent.tools.base import ToolDefinition
from sandbox_agent.tools.code_execution import create_code_execution_tool
from sandbox_agent.tools.file_operation import create_file_operation_tool
from sandbox_agent.tools.shell_command import create_shell_command_tool
from sandbox_agent.tools.terminate import create_terminate_tool


class ToolsRegistry:
    """Registry for managing agent tools."""

    def __init__(self):
        """Initialize tools registry with the default sandbox tools."""
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the fixed set of sandbox tools, in the order the model sees them."""
        tools = [
            create_shell_command_tool(),
            create_file_operation_tool(),
            create_code_execution_tool(),
            create_terminate_tool(),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get(self, name: str) -> ToolDefinition:
        """Look up a tool by name.

        Raises:
            UnknownToolError: If no tool with that name is registered
        """
        try:
            return self._tools[name]
        except KeyError:
            raise UnknownToolError(name) from None

    def get_llm_tools(self) -> list[LLMToolDefinition]:
        """Get tool schemas to send with every model call."""
        return [tool.to_llm_tool() for tool in self._tools.values()]


_tools_registry: ToolsRegistry | None = None


def get_tools_registry() -> ToolsRegistry:
    """Get or create tools registry instance."""
    global _tools_registry

    if _tools_registry is None:
        _tools_registry = ToolsRegistry()

    return _tools_registry
