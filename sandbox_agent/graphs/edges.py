"""Edge logic and routing for the agent loop graph."""

from typing import Literal

from sandbox_agent.graphs.state import TurnState
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)


def route_round_start(state: TurnState) -> Literal["model", "finish"]:
    """Route from the gate: start another model round unless the turn is over."""
    if state.outcome:
        logger.debug(f"Turn over before round {state.iteration + 1}: {state.outcome}")
        return "finish"
    return "model"


def route_model_output(state: TurnState) -> Literal["tools", "finish"]:
    """Route from the model node.

    Tool calls go to dispatch; a round without tool calls ends the turn.
    """
    if state.outcome or not state.pending_tool_calls:
        return "finish"
    return "tools"


def route_tool_output(state: TurnState) -> Literal["gate", "finish"]:
    """Route from tool dispatch.

    Returns to the gate for another round unless ``terminate`` ended the turn.
    """
    if state.outcome:
        return "finish"
    return "gate"
