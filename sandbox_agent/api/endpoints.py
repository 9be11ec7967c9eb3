"""API endpoints for the sandbox agent service."""

from datetime import UTC, datetime

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from sandbox_agent import __version__
from sandbox_agent.errors import SessionCreateError
from sandbox_agent.models.conversation import HealthResponse, SessionResponse, parse_control_message
from sandbox_agent.models.events import StreamEvent
from sandbox_agent.services.conversation import ConversationService
from sandbox_agent.services.sandbox import SandboxSessionManager
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def conversation_socket(websocket: WebSocket) -> None:
    """Bidirectional conversation channel.

    Inbound frames are control messages (chat, stop, reset, sanitize, resume);
    outbound frames are session notices and stream events.
    """
    await websocket.accept()
    logger.info("Client connected")

    service = ConversationService(websocket.send_json)
    try:
        await service.connect()

        while True:
            raw = await websocket.receive_text()
            try:
                request = parse_control_message(raw)
            except ValidationError as e:
                logger.warning(f"Unrecognized message: {raw[:100]} ({e.error_count()} errors)")
                await service.emit(StreamEvent.error("Unrecognized message"))
                continue

            await service.handle(request)

    except WebSocketDisconnect:
        logger.info("Client disconnected")
    finally:
        await service.shutdown()


@router.post("/session", response_model=SessionResponse, tags=["Session"])
async def create_session() -> SessionResponse:
    """Create a sandbox ahead of time so a connection can ``resume`` into it."""
    sessions = SandboxSessionManager()
    try:
        session_id = await sessions.create_session()
    except SessionCreateError as e:
        logger.error(f"Session creation failed: {e}")
        raise HTTPException(status_code=500, detail=str(e)) from e

    logger.info(f"Created sandbox session {session_id} via REST")
    return SessionResponse(session_id=session_id)


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
