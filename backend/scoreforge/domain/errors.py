"""Error taxonomy shared by the renderer, the session store and the lifecycle controller."""

from __future__ import annotations


class ScoreForgeError(RuntimeError):
    """Base class for every failure reported to API callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ScoreForgeError):
    """Raised when a descriptor or request is malformed, before any I/O."""

    status_code = 400


class PreconditionError(ScoreForgeError):
    """Raised when a lifecycle operation is attempted out of order."""

    status_code = 400


class SessionNotFound(ScoreForgeError):
    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class ConflictError(ScoreForgeError):
    """Raised when a session already runs a lifecycle operation."""

    status_code = 409

    def __init__(self, session_id: str, operation: str) -> None:
        super().__init__(f"Session {session_id} is busy running {operation}")
        self.session_id = session_id
        self.operation = operation


class SpawnError(ScoreForgeError):
    """The external tool could not be started (missing binary, permissions)."""

    status_code = 500


class ExecutionError(ScoreForgeError):
    """The external tool ran and exited with a non-zero code."""

    status_code = 502

    def __init__(self, message: str, *, exit_code: int, stderr: str = "") -> None:
        super().__init__(message)
        self.exit_code = exit_code
        self.stderr = stderr
