"""Conversation history repair after interrupted rounds."""

from sandbox_agent.models.messages import ConversationMessage
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)


def sanitize_history(history: list[ConversationMessage]) -> int:
    """Drop messages that break the tool call / tool result pairing.

    An assistant message survives only if every tool call it carries has an
    answering ``tool`` message; a ``tool`` message survives only if a surviving
    assistant message references its call id. Both id sets are taken from the
    unfiltered history before anything is dropped, so a single pass is already
    a fixed point.

    Args:
        history: Conversation history, filtered in place

    Returns:
        Number of messages removed
    """
    answered = {m.tool_call_id for m in history if m.role == "tool" and m.tool_call_id}

    # Calls of an assistant message that is itself dropped must not keep their results alive
    referenced: set[str] = set()
    for message in history:
        if message.role == "assistant" and message.tool_calls:
            call_ids = {tc.id for tc in message.tool_calls}
            if call_ids <= answered:
                referenced.update(call_ids)

    def keep(message: ConversationMessage) -> bool:
        if message.role == "assistant" and message.tool_calls:
            return all(tc.id in answered for tc in message.tool_calls)
        if message.role == "tool" and message.tool_call_id:
            return message.tool_call_id in referenced
        return True

    kept = [message for message in history if keep(message)]
    removed = len(history) - len(kept)
    history[:] = kept

    if removed:
        logger.warning(f"Sanitized conversation history: removed {removed} unpaired messages")
    else:
        logger.info("Conversation history sanitized: nothing to remove")
    return removed
