"""Sandbox session management over e2b remote sandboxes."""

import asyncio
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from cuid2 import cuid_wrapper
from e2b import AsyncSandbox, CommandExitException
from e2b.exceptions import TimeoutException

from sandbox_agent.errors import (
    NoActiveSessionError,
    SessionCreateError,
    SessionReconnectError,
    SessionTimeoutError,
    UnknownOperationError,
    UnsupportedLanguageError,
)
from sandbox_agent.models.sandbox import ProcessOutput, SandboxSession, SessionState
from sandbox_agent.utils.logging import get_logger

logger = get_logger(__name__)

cuid = cuid_wrapper()

FILE_OPERATIONS = ("read", "write", "create", "delete", "list")

# language -> (file extension, command template)
INTERPRETERS: dict[str, tuple[str, str]] = {
    "python": ("py", "python3 {path}"),
    "javascript": ("js", "node {path}"),
    "bash": ("sh", "{path}"),
}


@dataclass
class SandboxConfig:
    """Configuration for remote sandboxes."""

    template: str = field(default_factory=lambda: os.getenv("E2B_TEMPLATE", "base"))
    api_key: str | None = field(default_factory=lambda: os.getenv("E2B_API_KEY"))
    working_root: str = "/home/user"
    temp_dir: str = "/tmp"
    timeout: int = field(default_factory=lambda: int(os.getenv("E2B_SANDBOX_TIMEOUT", "300")))
    command_timeout: float = 300.0
    list_depth: int = 5


def is_session_timeout(error: BaseException) -> bool:
    """Check whether a remote failure means the sandbox itself has expired."""
    return isinstance(error, TimeoutException) or "timed out" in str(error).lower()


def normalize_path(path: str, working_root: str) -> str:
    """Rewrite a path onto the sandbox working root.

    Absolute paths pass through. Leading ``./`` and ``../`` prefixes are dropped,
    however many there are, and the remainder is placed under the working root;
    ``..`` is never resolved against the parent, so ``../../foo.txt`` becomes
    ``<root>/foo.txt``.
    """
    if path.startswith("/"):
        return path

    root = working_root.rstrip("/")
    while path.startswith(("../", "./")):
        path = path.split("/", 1)[1]

    if path in ("", ".", ".."):
        return root or "/"

    return f"{root}/{path}"


class SandboxSessionManager:
    """Owns the lifecycle of one remote sandbox.

    The manager never retries on its own. Remote calls that fail because the
    sandbox expired raise ``SessionTimeoutError``; callers decide whether to
    ``resume_session`` and try again.
    """

    def __init__(self, config: SandboxConfig | None = None):
        """Initialize session manager.

        Args:
            config: Sandbox configuration (defaults read from the environment)
        """
        self.config = config or SandboxConfig()
        self._sandbox: AsyncSandbox | None = None
        self._session: SandboxSession | None = None
        self._lifecycle_lock = asyncio.Lock()

    @property
    def session_id(self) -> str | None:
        return self._session.session_id if self._session else None

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self._sandbox is not None else SessionState.ABSENT

    async def ensure_session(self) -> str:
        """Return the active session id, creating a sandbox if there is none."""
        async with self._lifecycle_lock:
            if self._sandbox is not None and self._session is not None:
                return self._session.session_id
            return await self._create()

    async def create_session(self) -> str:
        """Create a fresh sandbox, replacing any held reference without closing it.

        Raises:
            SessionCreateError: If the remote sandbox could not be created
        """
        async with self._lifecycle_lock:
            return await self._create()

    async def resume_session(self, session_id: str | None = None) -> str | None:
        """Reattach to a previously issued sandbox.

        Args:
            session_id: Sandbox to attach to; defaults to the one last held

        Returns:
            The attached session id, a newly created one if reattaching failed,
            or None when there is nothing to resume
        """
        async with self._lifecycle_lock:
            target = session_id or self.session_id
            if not target:
                logger.debug("No sandbox session to resume")
                return None

            try:
                return await self._reconnect(target)
            except SessionReconnectError as e:
                logger.warning(f"{e}; creating a new sandbox instead")
                return await self._create()

    async def close_session(self) -> None:
        """Kill the active sandbox, if any. Never raises."""
        async with self._lifecycle_lock:
            sandbox, session = self._sandbox, self._session
            self._sandbox = None
            self._session = None

            if sandbox is None:
                return

            session_id = session.session_id if session else "unknown"
            try:
                await sandbox.kill()
                logger.info(f"Closed sandbox session {session_id}")
            except Exception as e:
                logger.warning(f"Failed to close sandbox session {session_id}: {e}")

    async def execute_command(self, command: str, cwd: str | None = None, timeout: float | None = None) -> ProcessOutput:
        """Run a shell command and wait for it to exit.

        Args:
            command: Command line to run
            cwd: Working directory, defaults to the working root
            timeout: Seconds before the command is abandoned

        Returns:
            Process output; non-zero exit codes are returned, not raised
        """
        sandbox = self._require_sandbox("execute_command")
        logger.debug(f"Executing command in {self.session_id}: {command[:100]}")

        with self._remote_call("execute_command"):
            return await self._run(sandbox, command, cwd or self.config.working_root, timeout)

    async def file_operation(
        self,
        op_type: str,
        path: str,
        content: str | None = None,
        recursive: bool = False,
    ) -> dict[str, Any]:
        """Perform a filesystem operation inside the sandbox.

        Raises:
            UnknownOperationError: For an unsupported ``op_type``
        """
        if op_type not in FILE_OPERATIONS:
            raise UnknownOperationError(op_type)

        sandbox = self._require_sandbox("file_operation")
        target = normalize_path(path, self.config.working_root)
        logger.debug(f"File operation {op_type} on {target} in {self.session_id}")

        with self._remote_call("file_operation"):
            if op_type == "read":
                return {"content": await sandbox.files.read(target)}

            if op_type == "write":
                await sandbox.files.write(target, content or "")
                return {"success": True}

            if op_type == "create":
                if target.endswith("/"):
                    await sandbox.files.make_dir(target)
                else:
                    await sandbox.files.write(target, content or "")
                return {"success": True}

            if op_type == "delete":
                await sandbox.files.remove(target)
                return {"success": True}

            if recursive:
                entries = await sandbox.files.list(target, depth=self.config.list_depth)
            else:
                entries = await sandbox.files.list(target)
            return {"files": [_describe_entry(entry) for entry in entries]}

    async def execute_code(self, language: str, code: str, timeout: float | None = None) -> ProcessOutput:
        """Write code to a temporary script, run it, and clean up.

        Raises:
            UnsupportedLanguageError: If no interpreter is mapped for ``language``
        """
        if language not in INTERPRETERS:
            raise UnsupportedLanguageError(language)

        sandbox = self._require_sandbox("execute_code")
        extension, template = INTERPRETERS[language]
        script_path = f"{self.config.temp_dir.rstrip('/')}/script_{cuid()}.{extension}"

        with self._remote_call("execute_code"):
            await sandbox.files.write(script_path, code)
            try:
                if language == "bash":
                    await self._run(sandbox, f"chmod +x {script_path}", self.config.working_root, None)
                return await self._run(
                    sandbox,
                    template.format(path=script_path),
                    self.config.working_root,
                    timeout,
                )
            finally:
                await self._remove_quietly(sandbox, script_path)

    def _require_sandbox(self, operation: str) -> AsyncSandbox:
        if self._sandbox is None or self._session is None:
            raise NoActiveSessionError(operation)

        if self._session.is_expired():
            logger.warning(f"Sandbox session {self._session.session_id} is stale")
            raise SessionTimeoutError(self._session.session_id, "session lifetime elapsed")

        self._session.update_activity()
        return self._sandbox

    @contextmanager
    def _remote_call(self, operation: str) -> Iterator[None]:
        """Translate sandbox expiry into ``SessionTimeoutError``."""
        try:
            yield
        except CommandExitException:
            raise
        except Exception as e:
            if is_session_timeout(e):
                logger.warning(f"{operation} hit a sandbox timeout in {self.session_id}: {e}")
                raise SessionTimeoutError(self.session_id, str(e)) from e
            raise

    async def _run(self, sandbox: AsyncSandbox, command: str, cwd: str, timeout: float | None) -> ProcessOutput:
        deadline = timeout or self.config.command_timeout
        try:
            result = await sandbox.commands.run(command, cwd=cwd, timeout=deadline)
        except CommandExitException as e:
            return ProcessOutput(stdout=e.stdout or "", stderr=e.stderr or "", exit_code=e.exit_code)
        except TimeoutException as e:
            # The command outran its own deadline; the sandbox itself is still alive
            logger.warning(f"Command timed out after {deadline}s in {self.session_id}: {e}")
            return ProcessOutput(stdout="", stderr=f"Command timed out after {deadline}s", exit_code=-1)

        return ProcessOutput(stdout=result.stdout or "", stderr=result.stderr or "", exit_code=result.exit_code)

    async def _remove_quietly(self, sandbox: AsyncSandbox, path: str) -> None:
        try:
            await sandbox.files.remove(path)
        except Exception as e:
            logger.debug(f"Ignoring cleanup failure for {path}: {e}")

    async def _create(self) -> str:
        logger.info(f"Creating sandbox from template {self.config.template}")
        try:
            sandbox = await AsyncSandbox.create(
                template=self.config.template,
                timeout=self.config.timeout,
                api_key=self.config.api_key,
            )
        except Exception as e:
            logger.error(f"Sandbox creation failed: {e}", exc_info=True)
            raise SessionCreateError(f"Failed to create sandbox: {e}") from e

        self._sandbox = sandbox
        self._session = SandboxSession(
            session_id=sandbox.sandbox_id,
            lifetime=timedelta(seconds=self.config.timeout),
        )
        logger.info(f"Created sandbox session {sandbox.sandbox_id}")
        return sandbox.sandbox_id

    async def _reconnect(self, session_id: str) -> str:
        logger.info(f"Reconnecting to sandbox session {session_id}")
        try:
            sandbox = await AsyncSandbox.connect(session_id, api_key=self.config.api_key)
        except Exception as e:
            raise SessionReconnectError(session_id, str(e)) from e

        self._sandbox = sandbox
        if self._session is not None and self._session.session_id == session_id:
            self._session.renew()
        else:
            self._session = SandboxSession(
                session_id=session_id,
                lifetime=timedelta(seconds=self.config.timeout),
            )
        return session_id


def _describe_entry(entry: Any) -> dict[str, Any]:
    entry_type = getattr(entry, "type", None)
    return {
        "name": entry.name,
        "type": getattr(entry_type, "value", entry_type),
        "path": entry.path,
    }
