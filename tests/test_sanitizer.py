"""Tests for conversation history sanitization."""

from sandbox_agent.models.messages import ConversationMessage, ToolCall
from sandbox_agent.services.sanitizer import sanitize_history


def assistant_with_calls(*call_ids: str) -> ConversationMessage:
    return ConversationMessage.assistant(
        None,
        [ToolCall(id=call_id, name="shell_command", arguments='{"command": "ls"}') for call_id in call_ids],
    )


def tool_result(call_id: str) -> ConversationMessage:
    return ConversationMessage(role="tool", content="{}", tool_call_id=call_id)


def assert_consistent(history: list[ConversationMessage]) -> None:
    call_ids = {tc.id for m in history if m.role == "assistant" for tc in m.tool_calls or []}
    answered = {m.tool_call_id for m in history if m.role == "tool"}
    assert call_ids == answered


class TestSanitizeHistory:
    """Tests for sanitize_history."""

    def test_consistent_history_is_untouched(self):
        history = [
            ConversationMessage.user("list files"),
            assistant_with_calls("a"),
            tool_result("a"),
            ConversationMessage.assistant("Here are the files."),
        ]
        original = list(history)

        assert sanitize_history(history) == 0
        assert history == original

    def test_drops_unanswered_tool_call(self):
        history = [
            ConversationMessage.user("list files"),
            assistant_with_calls("a"),
        ]

        removed = sanitize_history(history)

        assert removed == 1
        assert [m.role for m in history] == ["user"]

    def test_drops_orphaned_tool_result(self):
        history = [
            ConversationMessage.user("hi"),
            tool_result("ghost"),
            ConversationMessage.assistant("hello"),
        ]

        assert sanitize_history(history) == 1
        assert [m.role for m in history] == ["user", "assistant"]

    def test_partially_answered_round_is_dropped_entirely(self):
        history = [
            ConversationMessage.user("do two things"),
            assistant_with_calls("a", "b"),
            tool_result("a"),
        ]

        removed = sanitize_history(history)

        assert removed == 2
        assert_consistent(history)

    def test_mutates_list_in_place(self):
        history = [ConversationMessage.user("hi"), assistant_with_calls("a")]
        same_list = history

        sanitize_history(history)

        assert same_list is history
        assert len(same_list) == 1

    def test_sanitizing_twice_equals_once(self):
        history = [
            ConversationMessage.user("first"),
            assistant_with_calls("a", "b"),
            tool_result("a"),
            tool_result("zombie"),
            ConversationMessage.user("second"),
            assistant_with_calls("c"),
            tool_result("c"),
            assistant_with_calls("d"),
        ]

        sanitize_history(history)
        once = list(history)

        assert sanitize_history(history) == 0
        assert history == once
        assert_consistent(history)
        assert [m.content for m in history if m.role == "user"] == ["first", "second"]

    def test_empty_history(self):
        history: list[ConversationMessage] = []
        assert sanitize_history(history) == 0
