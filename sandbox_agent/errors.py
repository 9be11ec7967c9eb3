"""Error taxonomy for sandbox sessions, tool dispatch and the agent loop."""


class SandboxAgentError(Exception):
    """Base class for all errors raised by this package."""


class NoActiveSessionError(SandboxAgentError):
    """A sandbox operation was attempted with no active session."""

    def __init__(self, operation: str):
        super().__init__(f"No active session for {operation}")
        self.operation = operation


class SessionTimeoutError(SandboxAgentError):
    """The remote sandbox behind the held session has expired."""

    def __init__(self, session_id: str | None, detail: str = ""):
        message = f"Sandbox session {session_id} timed out"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.session_id = session_id


class SessionCreateError(SandboxAgentError):
    """The remote sandbox could not be provisioned."""


class SessionReconnectError(SandboxAgentError):
    """Reattaching to an existing sandbox failed."""

    def __init__(self, session_id: str, detail: str = ""):
        super().__init__(f"Failed to reconnect to sandbox {session_id}: {detail}")
        self.session_id = session_id


class UnknownToolError(SandboxAgentError):
    """The model requested a tool that is not registered."""

    def __init__(self, name: str):
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class UnknownOperationError(SandboxAgentError):
    """A file operation type the sandbox does not support."""

    def __init__(self, operation: str):
        super().__init__(f"Unknown file operation: {operation}")
        self.operation = operation


class UnsupportedLanguageError(UnknownOperationError):
    """A code execution language with no interpreter mapping."""

    def __init__(self, language: str):
        SandboxAgentError.__init__(self, f"Unsupported language: {language}")
        self.operation = language
        self.language = language


class ToolInputError(SandboxAgentError):
    """Tool arguments were not valid JSON or failed validation."""


class TurnInProgressError(SandboxAgentError):
    """The agent loop is running and cannot accept this request."""

    def __init__(self, action: str):
        super().__init__(f"Cannot {action} while a turn is running")
        self.action = action
