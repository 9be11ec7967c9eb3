"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

from sandbox_agent.models.llm import LLMToolDefinition

if TYPE_CHECKING:
    from sandbox_agent.services.sandbox import SandboxSessionManager

ToolHandler = Callable[[BaseModel, "SandboxSessionManager"], Awaitable[Any]]


@dataclass
class ToolDefinition:
    """Definition of a tool available to the agent."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    handler: ToolHandler

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input, using wire field names."""
        return self.input_schema_class.model_json_schema(by_alias=True)

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input."""
        return self.input_schema_class.model_validate(raw_input)

    def to_llm_tool(self) -> LLMToolDefinition:
        return LLMToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.get_json_schema(),
        )
