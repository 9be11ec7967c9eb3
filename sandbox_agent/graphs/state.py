"""State definitions for the LangGraph agent loop."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from sandbox_agent.models.messages import ToolCall

TurnOutcome = Literal["completed", "terminated", "stopped", "max_iterations"]


class LoopState(str, Enum):
    """Lifecycle of an agent loop across turns."""

    IDLE = "idle"
    RUNNING = "running"
    TERMINATING = "terminating"
    STOPPED = "stopped"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"


class TurnState(BaseModel):
    """Per-turn state passed through all nodes of the graph.

    The conversation history is not part of it: the agent loop owns the
    history and nodes append to it directly, so a turn that fails halfway
    keeps every message it already produced.
    """

    # Rounds started so far in this turn
    iteration: int = 0

    # Tool calls produced by the latest model round, in stream index order
    pending_tool_calls: list[ToolCall] = Field(default_factory=list)

    # Assistant text of the latest model round
    round_content: str | None = None

    # Set once the turn is over; routes to the finish node
    outcome: TurnOutcome | None = None
