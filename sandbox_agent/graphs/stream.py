"""Reassembly of streamed completion fragments into one assistant message."""

from typing import Any

from cuid2 import cuid_wrapper

from sandbox_agent.models.llm import CompletionDelta, ContentDelta, LLMUsage, StopDelta, ToolCallDelta
from sandbox_agent.models.messages import ToolCall
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()


class StreamAccumulator:
    """Collects the deltas of a single model round.

    Text fragments are concatenated in arrival order. Tool call fragments are
    grouped by their stream index: the first fragment of an index fixes the id
    and name, and argument text is appended in arrival order.
    """

    def __init__(self):
        self._content: list[str] = []
        self._tool_calls: dict[int, dict[str, Any]] = {}
        self.stop_reason: str | None = None
        self.usage = LLMUsage()

    def add(self, delta: CompletionDelta) -> None:
        if isinstance(delta, ContentDelta):
            self._content.append(delta.text)

        elif isinstance(delta, ToolCallDelta):
            call = self._tool_calls.get(delta.index)
            if call is None:
                call = {"id": delta.id, "name": delta.name, "arguments": []}
                self._tool_calls[delta.index] = call
            else:
                call["id"] = call["id"] or delta.id
                call["name"] = call["name"] or delta.name
            call["arguments"].append(delta.arguments)

        elif isinstance(delta, StopDelta):
            self.stop_reason = delta.stop_reason
            self.usage = LLMUsage(input_tokens=delta.input_tokens, output_tokens=delta.output_tokens)

    @property
    def content(self) -> str | None:
        """Round text, or None when the model produced no text at all."""
        text = "".join(self._content)
        return text or None

    def tool_calls(self) -> list[ToolCall]:
        """Finalized tool calls, ordered by stream index."""
        calls = []
        for index in sorted(self._tool_calls):
            call = self._tool_calls[index]
            call_id = call["id"]
            if not call_id:
                call_id = f"call_{cuid()}"
                logger.warning(f"Tool call at index {index} arrived without an id, using {call_id}")
            calls.append(ToolCall(id=call_id, name=call["name"] or "", arguments="".join(call["arguments"])))
        return calls
