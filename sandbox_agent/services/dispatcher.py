"""Tool dispatch: one tool call in, one ToolResult out."""

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from cuid2 import cuid_wrapper
from pydantic import ValidationError

from sandbox_agent.errors import SessionTimeoutError, ToolInputError
from sandbox_agent.models.events import EventCallback, StreamEvent, ToolCallData
from sandbox_agent.models.messages import ToolCall, ToolResult
from sandbox_agent.services.sandbox import SandboxSessionManager
from sandbox_agent.tools.registry import ToolsRegistry, get_tools_registry
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

T = TypeVar("T")


async def with_session_retry(sessions: SandboxSessionManager, call: Callable[[], Awaitable[T]]) -> T:
    """Run ``call``; on a sandbox timeout resume the session and run it once more.

    A failure on the second attempt propagates unchanged.
    """
    try:
        return await call()
    except SessionTimeoutError as e:
        logger.warning(f"{e}; resuming session and retrying once")
        await sessions.resume_session()
        return await call()


class ToolDispatcher:
    """Maps a tool call onto the sandbox and normalizes the outcome.

    Tool-level failures never escape ``dispatch``: they come back as error
    results so the round can continue.
    """

    def __init__(self, sessions: SandboxSessionManager, registry: ToolsRegistry | None = None):
        """Initialize dispatcher.

        Args:
            sessions: Session manager owned by the agent loop
            registry: Tool definitions (defaults to the shared registry)
        """
        self.sessions = sessions
        self.registry = registry or get_tools_registry()

    async def dispatch(self, tool_call: ToolCall, emit: EventCallback) -> ToolResult:
        """Execute one tool call, emitting running and completed/error events."""
        display_id = cuid()
        tool_input = _input_for_display(tool_call)

        await emit(
            StreamEvent.tool_call(
                ToolCallData(id=display_id, type=tool_call.name, status="running", input=tool_input)
            )
        )

        try:
            output = await self._execute(tool_call)
        except Exception as e:
            timed_out = isinstance(e, SessionTimeoutError)
            message = (
                "Operation timed out. The virtual machine session was resumed but the retried operation also failed."
                if timed_out
                else str(e)
            )
            logger.error(f"Tool {tool_call.name} ({tool_call.id}) failed: {e}")
            await emit(
                StreamEvent.tool_call(
                    ToolCallData(id=display_id, type=tool_call.name, status="error", input=tool_input, error=message)
                )
            )
            return ToolResult(
                tool_call_id=tool_call.id,
                name=tool_call.name,
                error=message,
                error_kind=type(e).__name__,
                is_timeout=timed_out,
            )

        logger.debug(f"Tool {tool_call.name} succeeded: {str(output)[:100]}...")
        await emit(
            StreamEvent.tool_call(
                ToolCallData(
                    id=display_id,
                    type=tool_call.name,
                    status="completed",
                    input=tool_input,
                    output=output,
                )
            )
        )
        return ToolResult(tool_call_id=tool_call.id, name=tool_call.name, output=output)

    async def _execute(self, tool_call: ToolCall) -> Any:
        tool = self.registry.get(tool_call.name)

        try:
            params = tool.parse_input(tool_call.parse_arguments())
        except (ValueError, ValidationError) as e:
            raise ToolInputError(f"Invalid arguments for {tool_call.name}: {e}") from e

        logger.info(f"Dispatching tool {tool_call.name} ({tool_call.id})")
        return await with_session_retry(self.sessions, lambda: tool.handler(params, self.sessions))


def _input_for_display(tool_call: ToolCall) -> Any:
    """Parsed arguments when possible, otherwise the raw text, for event correlation."""
    try:
        return tool_call.parse_arguments()
    except ValueError:
        return tool_call.arguments
