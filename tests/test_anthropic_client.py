"""Tests for the Anthropic streaming client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from anthropic import InternalServerError

from sandbox_agent.clients.anthropic import AnthropicClient, AnthropicConfig, to_anthropic_messages
from sandbox_agent.models.llm import ContentDelta, LLMToolDefinition, StopDelta, ToolCallDelta
from sandbox_agent.models.messages import ConversationMessage, ToolCall


async def aiter_events(events):
    for event in events:
        yield event


def make_client(**config_overrides) -> AnthropicClient:
    """Create AnthropicClient with a character-per-token tokenizer."""
    config = AnthropicConfig(**config_overrides)
    with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}):
        client = AnthropicClient(config=config)
    client.tokenizer = Mock()
    client.tokenizer.encode.side_effect = lambda text: list(text)
    client.rate_limiter = Mock(check_rate_limit=AsyncMock())
    return client


def server_error() -> InternalServerError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return InternalServerError("overloaded", response=httpx.Response(500, request=request), body=None)


class TestClientConfig:
    """Tests for client construction."""

    def test_requires_api_key(self):
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                AnthropicClient()

    def test_model_from_environment(self):
        with patch.dict("os.environ", {"ANTHROPIC_MODEL": "claude-test"}):
            assert AnthropicConfig().model == "claude-test"


class TestMessageConversion:
    """Tests for converting history into Anthropic messages."""

    def test_tool_round_conversion(self):
        history = [
            ConversationMessage.user("list files"),
            ConversationMessage.assistant(
                "Checking.",
                [
                    ToolCall(id="a", name="shell_command", arguments='{"command": "ls"}'),
                    ToolCall(id="b", name="terminate", arguments=""),
                ],
            ),
            ConversationMessage(role="tool", content='{"stdout": "x"}', tool_call_id="a"),
            ConversationMessage(role="tool", content='{"terminated": true}', tool_call_id="b"),
            ConversationMessage.user("thanks"),
        ]

        converted = to_anthropic_messages(history)

        assert converted == [
            {"role": "user", "content": [{"type": "text", "text": "list files"}]},
            {
                "role": "assistant",
                "content": [
                    {"type": "text", "text": "Checking."},
                    {"type": "tool_use", "id": "a", "name": "shell_command", "input": {"command": "ls"}},
                    {"type": "tool_use", "id": "b", "name": "terminate", "input": {}},
                ],
            },
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": "a", "content": '{"stdout": "x"}'},
                    {"type": "tool_result", "tool_use_id": "b", "content": '{"terminated": true}'},
                    {"type": "text", "text": "thanks"},
                ],
            },
        ]

    def test_system_messages_skipped(self):
        history = [ConversationMessage(role="system", content="ignored"), ConversationMessage.user("hi")]

        assert to_anthropic_messages(history) == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]

    def test_malformed_arguments_sent_as_empty_input(self):
        history = [ConversationMessage.assistant(None, [ToolCall(id="a", name="shell_command", arguments="{bad")])]

        (message,) = to_anthropic_messages(history)

        assert message["content"] == [{"type": "tool_use", "id": "a", "name": "shell_command", "input": {}}]


class TestStreamCompletion:
    """Tests for translating raw stream events into deltas."""

    @pytest.mark.asyncio
    async def test_events_translated_to_deltas(self):
        client = make_client()
        events = [
            SimpleNamespace(type="message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=12))),
            SimpleNamespace(type="content_block_start", index=0, content_block=SimpleNamespace(type="text", text="")),
            SimpleNamespace(
                type="content_block_delta", index=0, delta=SimpleNamespace(type="text_delta", text="Let me check.")
            ),
            SimpleNamespace(type="content_block_stop", index=0),
            SimpleNamespace(
                type="content_block_start",
                index=1,
                content_block=SimpleNamespace(type="tool_use", id="toolu_1", name="shell_command"),
            ),
            SimpleNamespace(
                type="content_block_delta",
                index=1,
                delta=SimpleNamespace(type="input_json_delta", partial_json='{"command": '),
            ),
            SimpleNamespace(
                type="content_block_delta",
                index=1,
                delta=SimpleNamespace(type="input_json_delta", partial_json='"ls"}'),
            ),
            SimpleNamespace(type="content_block_stop", index=1),
            SimpleNamespace(
                type="message_delta",
                delta=SimpleNamespace(stop_reason="tool_use"),
                usage=SimpleNamespace(output_tokens=30),
            ),
            SimpleNamespace(type="message_stop"),
        ]
        client.client.messages.create = AsyncMock(return_value=aiter_events(events))

        deltas = [d async for d in client.stream_completion([ConversationMessage.user("ls")], "system")]

        assert deltas == [
            ContentDelta(text="Let me check."),
            ToolCallDelta(index=1, id="toolu_1", name="shell_command"),
            ToolCallDelta(index=1, arguments='{"command": '),
            ToolCallDelta(index=1, arguments='"ls"}'),
            StopDelta(stop_reason="tool_use", input_tokens=12, output_tokens=30),
        ]

    @pytest.mark.asyncio
    async def test_request_parameters(self):
        client = make_client(max_tokens=1024)
        client.client.messages.create = AsyncMock(return_value=aiter_events([]))
        tools = [LLMToolDefinition(name="terminate", description="End", input_schema={"type": "object"})]

        deltas = [d async for d in client.stream_completion([ConversationMessage.user("hi")], "be brief", tools)]

        assert deltas == [StopDelta()]
        params = client.client.messages.create.await_args.kwargs
        assert params["stream"] is True
        assert params["system"] == "be brief"
        assert params["max_tokens"] == 1024
        assert params["tools"] == [{"name": "terminate", "description": "End", "input_schema": {"type": "object"}}]
        assert params["messages"] == [{"role": "user", "content": [{"type": "text", "text": "hi"}]}]
        client.rate_limiter.check_rate_limit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_server_error_retried_once(self):
        client = make_client(retry_delay=0)
        client.client.messages.create = AsyncMock(side_effect=[server_error(), aiter_events([])])

        deltas = [d async for d in client.stream_completion([ConversationMessage.user("hi")], "system")]

        assert deltas == [StopDelta()]
        assert client.client.messages.create.await_count == 2

    @pytest.mark.asyncio
    async def test_persistent_error_propagates_after_one_retry(self):
        client = make_client(retry_delay=0)
        client.client.messages.create = AsyncMock(side_effect=[server_error(), server_error(), aiter_events([])])

        with pytest.raises(InternalServerError):
            [d async for d in client.stream_completion([ConversationMessage.user("hi")], "system")]

        assert client.client.messages.create.await_count == 2


class TestTokenValidation:
    """Tests for message token validation."""

    def test_validate_message_tokens_within_limit(self):
        client = make_client(max_message_tokens=10)
        client.validate_message_tokens("short")

    def test_validate_message_tokens_exceeds_limit(self):
        client = make_client(max_message_tokens=10)

        with pytest.raises(ValueError, match="Message exceeds token limit"):
            client.validate_message_tokens("definitely more than ten")

    def test_validate_message_tokens_fallback_without_tokenizer(self):
        client = make_client(max_message_tokens=1000)
        client.tokenizer = None

        client.validate_message_tokens("a" * 3000)
        with pytest.raises(ValueError, match="Message exceeds token limit"):
            client.validate_message_tokens("a" * 5000)


class TestConversationTruncation:
    """Tests for conversation truncation at user-message boundaries."""

    def test_within_limit_untouched(self):
        client = make_client(max_conversation_tokens=10000, token_headroom=0)
        messages = [ConversationMessage.user("Message 1"), ConversationMessage.assistant("Response 1")]

        assert client.truncate_conversation(messages, "") == messages

    def test_cut_moves_to_user_boundary(self):
        client = make_client(max_conversation_tokens=600, token_headroom=0)
        messages = [
            ConversationMessage.user("A" * 300),
            ConversationMessage.assistant(None, [ToolCall(id="t1", name="shell_command", arguments='{"command":"ls"}')]),
            ConversationMessage(role="tool", content="B" * 300, tool_call_id="t1"),
            ConversationMessage.user("C" * 100),
            ConversationMessage.assistant("D" * 100),
        ]

        truncated = client.truncate_conversation(messages, "")

        assert truncated == messages[3:]
        assert len(messages) == 5

    def test_oversized_latest_turn_is_kept(self):
        client = make_client(max_conversation_tokens=600, token_headroom=0)
        messages = [ConversationMessage.user("old"), ConversationMessage.user("X" * 1000)]

        assert client.truncate_conversation(messages, "") == messages[1:]
