"""Transport payload models for the chat connection and REST endpoints."""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


class ChatRequest(BaseModel):
    """A user message starting a new turn."""

    type: Literal["chat"] = "chat"
    message: str


class ResetRequest(BaseModel):
    type: Literal["reset"] = "reset"


class SanitizeRequest(BaseModel):
    type: Literal["sanitize"] = "sanitize"


class StopRequest(BaseModel):
    type: Literal["stop"] = "stop"


class ResumeRequest(BaseModel):
    """Reattach to a sandbox, optionally one created earlier through ``POST /session``."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["resume"] = "resume"
    session_id: str | None = Field(default=None, alias="sessionId")


ControlMessage = Annotated[
    ChatRequest | ResetRequest | SanitizeRequest | StopRequest | ResumeRequest,
    Field(discriminator="type"),
]

_control_message_adapter: TypeAdapter[ControlMessage] = TypeAdapter(ControlMessage)


def parse_control_message(raw: Any) -> ChatRequest | ResetRequest | SanitizeRequest | StopRequest | ResumeRequest:
    """Validate an inbound control message, given as JSON text or already decoded.

    Raises:
        pydantic.ValidationError: If the payload is not JSON or matches no known message type
    """
    if isinstance(raw, str | bytes):
        return _control_message_adapter.validate_json(raw)
    return _control_message_adapter.validate_python(raw)


def session_payload(session_id: str) -> dict[str, Any]:
    """Outbound notice of the sandbox session backing the connection."""
    return {"type": "session", "sessionId": session_id}


class SessionResponse(BaseModel):
    """Response model for session creation."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(serialization_alias="sessionId")


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
