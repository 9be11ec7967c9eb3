"""Tools the agent can invoke inside the sandbox."""

from sandbox_agent.tools.registry import ToolsRegistry, get_tools_registry

__all__ = ["ToolsRegistry", "get_tools_registry"]
