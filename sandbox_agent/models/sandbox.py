"""Sandbox session and process output models."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)


class SessionState(str, Enum):
    ABSENT = "absent"
    ACTIVE = "active"


@dataclass
class SandboxSession:
    """Local record of the remote sandbox a manager is attached to."""

    session_id: str
    lifetime: timedelta
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(default_factory=lambda: datetime.now(UTC))
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        if self.expires_at is None:
            self.expires_at = self.created_at + self.lifetime

    def update_activity(self) -> None:
        """Update the last activity timestamp."""
        self.last_activity = datetime.now(UTC)

    def renew(self) -> None:
        """Restart the expiry clock after a successful reattach."""
        now = datetime.now(UTC)
        logger.debug(f"Renewing sandbox session {self.session_id}")
        self.last_activity = now
        self.expires_at = now + self.lifetime

    def is_expired(self) -> bool:
        return self.expires_at is not None and datetime.now(UTC) >= self.expires_at


class ProcessOutput(BaseModel):
    """Output of a finished sandbox process."""

    model_config = ConfigDict(populate_by_name=True)

    stdout: str = ""
    stderr: str = ""
    exit_code: int = Field(default=0, alias="exitCode")

    def as_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
