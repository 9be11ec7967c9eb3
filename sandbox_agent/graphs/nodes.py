"""Node implementations for the agent loop graph.

Nodes receive the owning ``AgentLoop`` and the event callback through
``config["configurable"]`` and append to the loop's history directly.
"""

from typing import TYPE_CHECKING, Any

from langchain_core.runnables import RunnableConfig

from sandbox_agent.graphs.state import LoopState, TurnState
from sandbox_agent.graphs.stream import StreamAccumulator
from sandbox_agent.models.events import EventCallback, StreamEvent
from sandbox_agent.models.llm import ContentDelta
from sandbox_agent.models.messages import ConversationMessage
from sandbox_agent.tools.terminate import TERMINATE_TOOL_NAME
from sandbox_agent.utils.logging import get_logger

if TYPE_CHECKING:
    from sandbox_agent.graphs.conversation import AgentLoop

logger = get_logger(__name__)

STOPPED_MESSAGE = "🛑 Thought cycle stopped by user."
MAX_ITERATIONS_MESSAGE = (
    "I've reached the maximum number of iterations. The task may need to be broken down further "
    "or requires manual intervention."
)


def _agent_loop(config: RunnableConfig) -> "AgentLoop":
    return config["configurable"]["agent_loop"]


def _emitter(config: RunnableConfig) -> EventCallback:
    return config["configurable"]["emit"]


async def gate_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Round start: honor a pending stop request and the iteration cap."""
    agent_loop = _agent_loop(config)

    if agent_loop.stop_requested:
        logger.info(f"Stop requested, ending turn after {state.iteration} rounds")
        agent_loop.state = LoopState.STOPPED
        return {"outcome": "stopped"}

    if state.iteration >= agent_loop.config.max_iterations:
        logger.warning(f"Reached max iterations ({agent_loop.config.max_iterations}) without terminate")
        agent_loop.state = LoopState.MAX_ITERATIONS_REACHED
        return {"outcome": "max_iterations"}

    return {"iteration": state.iteration + 1}


async def model_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Stream one model round and record it as a single assistant message.

    Every text fragment is forwarded as a ``thinking`` event as it arrives.
    """
    agent_loop = _agent_loop(config)
    emit = _emitter(config)

    logger.info(f"Model round {state.iteration} with {len(agent_loop.history)} messages in history")

    accumulator = StreamAccumulator()
    stream = agent_loop.llm_client.stream_completion(
        agent_loop.history,
        agent_loop.system_prompt,
        agent_loop.registry.get_llm_tools(),
    )
    async for delta in stream:
        accumulator.add(delta)
        if isinstance(delta, ContentDelta):
            await emit(StreamEvent.thinking(delta.text))

    content = accumulator.content
    tool_calls = accumulator.tool_calls()

    if content is not None or tool_calls:
        agent_loop.history.append(ConversationMessage.assistant(content, tool_calls))

    logger.info(
        f"Round {state.iteration} finished - stop reason: {accumulator.stop_reason}, "
        f"tool calls: {[tc.name for tc in tool_calls]}, "
        f"tokens: {accumulator.usage.total_tokens}"
    )

    update: dict[str, Any] = {"pending_tool_calls": tool_calls, "round_content": content}
    if not tool_calls:
        update["outcome"] = "completed"
    return update


async def tools_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Dispatch the round's tool calls one at a time, in stream order.

    Each result is appended to history right after its call completes.
    """
    agent_loop = _agent_loop(config)
    emit = _emitter(config)

    terminated = False
    for tool_call in state.pending_tool_calls:
        result = await agent_loop.dispatcher.dispatch(tool_call, emit)
        agent_loop.history.append(result.to_message())

        if tool_call.name == TERMINATE_TOOL_NAME:
            logger.info(f"Terminate called: {result.payload()}")
            agent_loop.state = LoopState.TERMINATING
            terminated = True

    update: dict[str, Any] = {"pending_tool_calls": []}
    if terminated:
        update["outcome"] = "terminated"
    return update


async def finish_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Emit the turn's final message for its outcome."""
    emit = _emitter(config)

    if state.outcome == "stopped":
        await emit(StreamEvent.message(STOPPED_MESSAGE))
    elif state.outcome == "max_iterations":
        await emit(StreamEvent.message(MAX_ITERATIONS_MESSAGE))
    elif state.round_content:
        await emit(StreamEvent.message(state.round_content))

    logger.info(f"Turn finished after {state.iteration} rounds: {state.outcome}")
    return {}
