"""Conversation service: one per client connection, driving one agent loop."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

from sandbox_agent.errors import SandboxAgentError, SessionCreateError, TurnInProgressError
from sandbox_agent.graphs.conversation import AgentLoop
from sandbox_agent.models.conversation import (
    ChatRequest,
    ResetRequest,
    ResumeRequest,
    SanitizeRequest,
    StopRequest,
    session_payload,
)
from sandbox_agent.models.events import StreamEvent
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)

SANITIZED_MESSAGE = "Conversation history sanitized. You can try again."
RESUMED_MESSAGE = "Session resumed and conversation history sanitized. You can try again."
GENERIC_ERROR_MESSAGE = "Failed to process message"

Send = Callable[[dict[str, Any]], Awaitable[None]]
ControlRequest = ChatRequest | ResetRequest | SanitizeRequest | StopRequest | ResumeRequest


class ConversationService:
    """Translates control messages into agent loop operations.

    Turns run as a background task so that ``stop`` can be handled while
    one is in progress. Everything the loop emits is forwarded through
    ``send`` as JSON-ready dicts.
    """

    def __init__(self, send: Send, agent_loop: AgentLoop | None = None):
        """Initialize conversation service.

        Args:
            send: Pushes one JSON-ready payload to the client
            agent_loop: Loop owning history and sandbox (a new one by default)
        """
        self._send = send
        self.agent_loop = agent_loop or AgentLoop()
        self._turn_task: asyncio.Task | None = None

    @property
    def turn_running(self) -> bool:
        if self._turn_task is not None and not self._turn_task.done():
            return True
        return self.agent_loop.is_running

    async def connect(self) -> str | None:
        """Make sure a sandbox exists and tell the client which one.

        Returns:
            The session id, or None when the sandbox could not be created
        """
        try:
            session_id = await self.agent_loop.sessions.ensure_session()
        except SessionCreateError as e:
            logger.error(f"Could not create sandbox for new connection: {e}")
            await self.emit(StreamEvent.error(str(e)))
            return None

        await self._send(session_payload(session_id))
        return session_id

    async def handle(self, request: ControlRequest) -> None:
        """Handle one control message. Never raises."""
        logger.debug(f"Handling {request.type} request")
        try:
            if isinstance(request, StopRequest):
                self.agent_loop.stop()
            elif isinstance(request, ChatRequest):
                await self._start_turn(request.message)
            elif isinstance(request, ResetRequest):
                await self._reset()
            elif isinstance(request, SanitizeRequest):
                await self._sanitize()
            elif isinstance(request, ResumeRequest):
                await self._resume(request.session_id)

        except ValueError as e:
            # Token validation errors
            logger.warning(f"Rejected {request.type} request: {e}")
            await self.emit(StreamEvent.error(str(e)))
        except SandboxAgentError as e:
            logger.warning(f"Rejected {request.type} request: {e}")
            await self.emit(StreamEvent.error(str(e)))
        except Exception as e:
            logger.error(f"Failed to handle {request.type} request: {e}", exc_info=True)
            await self.emit(StreamEvent.error(GENERIC_ERROR_MESSAGE))

    async def emit(self, event: StreamEvent) -> None:
        await self._send(event.to_wire())

    async def shutdown(self) -> None:
        """Cancel a running turn. The sandbox is left alive for a later resume."""
        task = self._turn_task
        self._turn_task = None
        if task is None or task.done():
            return

        logger.info("Cancelling running turn on disconnect")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _start_turn(self, message: str) -> None:
        if self.turn_running:
            raise TurnInProgressError("send a message")

        self.agent_loop.llm_client.validate_message_tokens(message)
        self._turn_task = asyncio.create_task(self._run_turn(message))

    async def _run_turn(self, message: str) -> None:
        try:
            await self.agent_loop.process_message(message, self.emit)
        except Exception as e:
            # The client is gone if even the error event could not be sent
            logger.error(f"Turn task ended with an undeliverable failure: {e}", exc_info=True)

    async def _reset(self) -> None:
        self._require_idle("reset")
        session_id = await self.agent_loop.reset()
        await self._send(session_payload(session_id))

    async def _sanitize(self) -> None:
        self._require_idle("sanitize")
        await self.agent_loop.sessions.resume_session()
        self.agent_loop.sanitize_history()
        await self.emit(StreamEvent.message(SANITIZED_MESSAGE))

    async def _resume(self, session_id: str | None) -> None:
        self._require_idle("resume")
        sessions = self.agent_loop.sessions

        resumed = await sessions.resume_session(session_id)
        if resumed is None:
            resumed = await sessions.create_session()

        self.agent_loop.sanitize_history()
        await self._send(session_payload(resumed))
        await self.emit(StreamEvent.message(RESUMED_MESSAGE))

    def _require_idle(self, action: str) -> None:
        if self.turn_running:
            raise TurnInProgressError(action)
