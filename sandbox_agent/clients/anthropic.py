"""Anthropic API client with streaming, rate limiting and error handling."""

import asyncio
import json
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import tiktoken
from anthropic import APIError, AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter

from sandbox_agent.models.llm import CompletionDelta, ContentDelta, LLMToolDefinition, StopDelta, ToolCallDelta
from sandbox_agent.models.messages import ConversationMessage, ToolCall
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = field(default_factory=lambda: os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"))
    max_tokens: int = 4096
    temperature: float = 0.1
    max_retries: int = 2  # total attempts to open a stream
    retry_delay: float = 1.0

    # Token limits for validation and truncation
    max_message_tokens: int = 4000
    max_conversation_tokens: int = 200000
    token_headroom: int = 4096


class AnthropicRateLimiter:
    """Moving-window rate limiter for requests and tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the rate limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=estimated_tokens):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit: Any, identifier: str, kind: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{kind} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


def to_anthropic_messages(messages: list[ConversationMessage]) -> list[dict[str, Any]]:
    """Convert conversation history into Anthropic message dicts.

    Tool results become ``tool_result`` blocks in a user message, and
    consecutive messages with the same resulting role are merged, since the
    API expects roles to alternate.
    """
    converted: list[dict[str, Any]] = []

    for message in messages:
        if message.role == "system":
            continue

        blocks: list[dict[str, Any]] = []
        if message.role == "tool":
            role = "user"
            blocks.append(
                {
                    "type": "tool_result",
                    "tool_use_id": message.tool_call_id,
                    "content": message.content or "",
                }
            )
        elif message.role == "assistant":
            role = "assistant"
            if message.content:
                blocks.append({"type": "text", "text": message.content})
            for tool_call in message.tool_calls or []:
                blocks.append(
                    {
                        "type": "tool_use",
                        "id": tool_call.id,
                        "name": tool_call.name,
                        "input": _tool_input(tool_call),
                    }
                )
        else:
            role = "user"
            if message.content:
                blocks.append({"type": "text", "text": message.content})

        if not blocks:
            continue

        if converted and converted[-1]["role"] == role:
            converted[-1]["content"].extend(blocks)
        else:
            converted.append({"role": role, "content": blocks})

    return converted


def _tool_input(tool_call: ToolCall) -> dict[str, Any]:
    # Malformed arguments were already answered with an error result
    try:
        return tool_call.parse_arguments()
    except ValueError:
        return {}


class AnthropicClient:
    """Low-level Anthropic API client with rate limiting and error handling."""

    tokenizer: tiktoken.Encoding | None = None
    api_key: str
    client: AsyncAnthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter = AnthropicRateLimiter()

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.api_key = anthropic_api_key

        self.client = AsyncAnthropic(api_key=self.api_key)
        self.config = config or AnthropicConfig()

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def stream_completion(
        self,
        messages: list[ConversationMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
        **kwargs,
    ) -> AsyncIterator[CompletionDelta]:
        """Stream one completion as content and tool call fragments.

        Args:
            messages: Full conversation history
            system_prompt: System instructions
            tools: Tool definitions offered to the model
            **kwargs: Overrides for model, max_tokens or temperature

        Yields:
            ContentDelta and ToolCallDelta fragments in arrival order, then one StopDelta
        """
        truncated_messages = self.truncate_conversation(messages, system_prompt, tools)

        estimated_tokens = self._estimate_tokens(truncated_messages, system_prompt)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": kwargs.get("temperature", self.config.temperature),
            "system": system_prompt,
            "messages": to_anthropic_messages(truncated_messages),
            "stream": True,
        }
        if tools:
            request_params["tools"] = [tool.model_dump() for tool in tools]

        logger.debug(
            f"Opening stream with {len(truncated_messages)} messages, {len(tools) if tools else 0} tools, "
            f"model: {request_params['model']}"
        )
        stream = await self._request_with_retries(lambda: self.client.messages.create(**request_params))

        stop_reason: str | None = None
        input_tokens = 0
        output_tokens = 0

        async for event in stream:
            if event.type == "message_start":
                input_tokens = event.message.usage.input_tokens

            elif event.type == "content_block_start":
                block = event.content_block
                if block.type == "tool_use":
                    yield ToolCallDelta(index=event.index, id=block.id, name=block.name)
                elif block.type == "text" and block.text:
                    yield ContentDelta(text=block.text)

            elif event.type == "content_block_delta":
                delta = event.delta
                if delta.type == "text_delta" and delta.text:
                    yield ContentDelta(text=delta.text)
                elif delta.type == "input_json_delta" and delta.partial_json:
                    yield ToolCallDelta(index=event.index, arguments=delta.partial_json)

            elif event.type == "message_delta":
                stop_reason = event.delta.stop_reason
                if event.usage:
                    output_tokens = event.usage.output_tokens

        logger.debug(f"Stream finished - Stop reason: {stop_reason}, tokens in/out: {input_tokens}/{output_tokens}")
        yield StopDelta(stop_reason=stop_reason, input_tokens=input_tokens, output_tokens=output_tokens)

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Open an Anthropic request, retrying retryable failures."""
        for attempt in range(self.config.max_retries):
            try:
                return await call()

            except APIError as e:
                status_code = getattr(e, "status_code", None)
                if status_code == 429:
                    retry_after = 60
                    response = getattr(e, "response", None)
                    if response is not None and hasattr(response, "headers"):
                        retry_after = int(response.headers.get("retry-after", 60))

                    if retry_after < 120 and attempt < self.config.max_retries - 1:
                        logger.warning(f"Rate limited by Anthropic, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue

                elif status_code is not None and status_code >= 500 and attempt < self.config.max_retries - 1:
                    logger.warning(f"Anthropic server error {status_code}, retrying")
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                raise

            except Exception:
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise

        raise RuntimeError(f"Failed to complete request after {self.config.max_retries} attempts")

    def _message_text(self, message: ConversationMessage) -> str:
        text = message.content or ""
        for tool_call in message.tool_calls or []:
            text += tool_call.name + tool_call.arguments
        return text

    def _estimate_tokens(self, messages: list[ConversationMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt + "".join(self._message_text(message) for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def validate_message_tokens(self, message: str) -> None:
        """Validate that a message doesn't exceed token limits.

        Raises:
            ValueError: If message exceeds token limit
        """
        token_count = self.estimate_message_tokens(message)
        if token_count > self.config.max_message_tokens:
            raise ValueError(
                f"Message exceeds token limit: {token_count} tokens > {self.config.max_message_tokens} limit"
            )

    def truncate_conversation(
        self,
        messages: list[ConversationMessage],
        system_prompt: str,
        tools: list[LLMToolDefinition] | None = None,
    ) -> list[ConversationMessage]:
        """Drop the oldest messages so the request fits within token limits.

        The cut is moved forward to a user message so that no tool result is
        sent without the tool call it answers. The history itself is untouched.
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_message_tokens(system_prompt)

        if tools:
            tool_content = "".join(tool.name + tool.description + json.dumps(tool.input_schema) for tool in tools)
            available_tokens -= self.estimate_message_tokens(tool_content)

        start = len(messages)
        current_tokens = 0
        for index in range(len(messages) - 1, -1, -1):
            message_tokens = self.estimate_message_tokens(self._message_text(messages[index]))
            if current_tokens + message_tokens > available_tokens:
                break
            current_tokens += message_tokens
            start = index

        if start == 0:
            return messages

        while start < len(messages) and messages[start].role != "user":
            start += 1

        if start == len(messages):
            # Nothing fits; keep the turn opened by the latest user message
            user_indexes = [i for i, m in enumerate(messages) if m.role == "user"]
            start = user_indexes[-1] if user_indexes else len(messages) - 1

        truncated = messages[start:]
        logger.warning(
            f"Truncated conversation from {len(messages)} to {len(truncated)} messages "
            f"to fit within {available_tokens} token limit"
        )
        return truncated


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client() -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient()
    return _anthropic_client
