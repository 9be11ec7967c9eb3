"""Agent loop graph and the per-conversation AgentLoop that drives it."""

import os
from dataclasses import dataclass, field
from typing import Any

from langgraph.graph import END, StateGraph

from sandbox_agent.clients.anthropic import AnthropicClient, get_anthropic_client
from sandbox_agent.errors import TurnInProgressError
from sandbox_agent.graphs.edges import route_model_output, route_round_start, route_tool_output
from sandbox_agent.graphs.nodes import finish_node, gate_node, model_node, tools_node
from sandbox_agent.graphs.state import LoopState, TurnState
from sandbox_agent.models.events import EventCallback, StreamEvent
from sandbox_agent.models.messages import ConversationMessage
from sandbox_agent.services.dispatcher import ToolDispatcher
from sandbox_agent.services.sandbox import SandboxSessionManager
from sandbox_agent.services.sanitizer import sanitize_history
from sandbox_agent.tools.registry import ToolsRegistry, get_tools_registry
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class AgentConfig:
    """Configuration for the agent loop."""

    max_iterations: int = field(default_factory=lambda: int(os.getenv("AGENT_MAX_ITERATIONS", "10")))


def create_agent_graph():
    """Create the agent loop graph.

    One turn runs gate -> model -> tools rounds until the model stops calling
    tools, calls ``terminate``, a stop is requested, or the iteration cap is
    reached; every path ends in ``finish``.

    Returns:
        Compiled LangGraph workflow
    """
    logger.info("Creating agent graph")

    workflow = StateGraph(TurnState)

    workflow.add_node("gate", gate_node)
    workflow.add_node("model", model_node)
    workflow.add_node("tools", tools_node)
    workflow.add_node("finish", finish_node)

    workflow.set_entry_point("gate")

    workflow.add_conditional_edges(
        "gate",
        route_round_start,
        {
            "model": "model",
            "finish": "finish",
        },
    )

    workflow.add_conditional_edges(
        "model",
        route_model_output,
        {
            "tools": "tools",
            "finish": "finish",
        },
    )

    workflow.add_conditional_edges(
        "tools",
        route_tool_output,
        {
            "gate": "gate",
            "finish": "finish",
        },
    )

    workflow.add_edge("finish", END)

    compiled = workflow.compile()

    logger.info("Agent graph created successfully")
    return compiled


def get_system_prompt() -> str:
    """Instructions sent with every model round."""
    return """You are an autonomous software agent working inside an isolated Linux virtual machine.

You can act on the machine only through your tools:
- shell_command: run a shell command and read its stdout, stderr and exit code
- file_operation: read, write, create, delete or list files and directories
- code_execution: run a Python, JavaScript or Bash snippet
- terminate: declare the task finished

How to work:
1. Before acting, think briefly about the goal and outline the next few steps.
2. Prefer small, verifiable steps. Check the result of each tool call before moving on.
3. When a command fails, read the error, adjust, and try a different approach instead of repeating it.
4. Relative paths are resolved against /home/user.
5. Keep going until the task is actually done; do not hand work back to the user that you can do yourself.

When the task is complete, or you are certain it cannot be completed, call terminate with a short reason
and a summary of what you did. Always finish a task by calling terminate."""


class AgentLoop:
    """Drives one conversation: its history, its sandbox and its turns.

    The loop is not reentrant. While a turn is running, ``stop`` is the only
    operation it accepts.
    """

    def __init__(
        self,
        sessions: SandboxSessionManager | None = None,
        llm_client: AnthropicClient | None = None,
        registry: ToolsRegistry | None = None,
        config: AgentConfig | None = None,
    ):
        """Initialize agent loop.

        Args:
            sessions: Sandbox session manager (a new one per loop by default)
            llm_client: Model client (defaults to the shared Anthropic client)
            registry: Tool definitions (defaults to the shared registry)
            config: Loop configuration
        """
        self.config = config or AgentConfig()
        self.sessions = sessions or SandboxSessionManager()
        self.registry = registry or get_tools_registry()
        self.dispatcher = ToolDispatcher(self.sessions, self.registry)
        self.history: list[ConversationMessage] = []
        self.state = LoopState.IDLE
        self.stop_requested = False
        self.system_prompt = get_system_prompt()
        self.graph = create_agent_graph()
        self._llm_client = llm_client

    @property
    def llm_client(self) -> AnthropicClient:
        if self._llm_client is None:
            self._llm_client = get_anthropic_client()
        return self._llm_client

    @property
    def is_running(self) -> bool:
        return self.state is not LoopState.IDLE

    async def process_message(self, message: str, emit: EventCallback) -> None:
        """Run one turn for a user message.

        Failures never escape: they are reported as a single ``error`` event
        and the loop returns to idle.

        Raises:
            TurnInProgressError: If a turn is already running
        """
        if self.is_running:
            raise TurnInProgressError("process a message")

        self.state = LoopState.RUNNING
        self.stop_requested = False

        try:
            session_id = await self.sessions.ensure_session()
            logger.info(f"Processing message in sandbox {session_id}: {message[:50]}...")

            self.history.append(ConversationMessage.user(message))

            config: dict[str, Any] = {
                "configurable": {
                    "agent_loop": self,
                    "emit": emit,
                },
                # gate, model and tools per round plus the closing gate and finish
                "recursion_limit": self.config.max_iterations * 3 + 5,
            }
            await self.graph.ainvoke(TurnState().model_dump(), config)

        except Exception as e:
            logger.error(f"Turn failed: {e}", exc_info=True)
            await emit(StreamEvent.error(f"Failed to process message: {e}"))

        finally:
            self.state = LoopState.IDLE

    def stop(self) -> None:
        """Ask the running turn to end at the start of its next round."""
        logger.info("Stop requested")
        self.stop_requested = True

    async def reset(self) -> str:
        """Clear history and replace the sandbox with a fresh one.

        Returns:
            The new session id

        Raises:
            TurnInProgressError: If a turn is running
        """
        if self.is_running:
            raise TurnInProgressError("reset")

        self.history.clear()
        await self.sessions.close_session()
        session_id = await self.sessions.create_session()
        logger.info(f"Conversation reset, new sandbox {session_id}")
        return session_id

    def sanitize_history(self) -> int:
        """Repair tool call pairing in the owned history.

        Raises:
            TurnInProgressError: If a turn is running
        """
        if self.is_running:
            raise TurnInProgressError("sanitize history")

        return sanitize_history(self.history)
