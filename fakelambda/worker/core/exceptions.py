"""
Custom exception classes.

Represent the ways a single invocation against a worker can fail.
"""

from typing import Any, Dict, Optional


class WorkerError(Exception):
    """Base exception class for worker invocations."""

    pass


class UnsupportedRuntimeError(WorkerError):
    """Raised when a worker is constructed for a runtime it cannot run."""

    def __init__(self, runtime: str, supported: str):
        self.runtime = runtime
        super().__init__(f"Unsupported runtime {runtime!r} (supported: {supported})")


class MessageParseError(WorkerError):
    """Raised when the text between the message sentinels is not valid JSON."""

    def __init__(self, raw: str, cause: Optional[Exception] = None):
        self.raw = raw
        self.cause = cause
        super().__init__(f"Malformed message from child process: {cause or raw!r}")


class ResultValidationError(WorkerError):
    """Raised when the structured message is not a well-formed result."""

    def __init__(self, detail: str, message: Any = None):
        self.detail = detail
        self.message = message
        super().__init__(f"Invalid result from child process: {detail}")


class ProcessExitError(WorkerError):
    """Raised when the child exits before producing a valid result."""

    def __init__(
        self,
        exit_code: Optional[int],
        error_string: str = "",
        lambda_error: Optional[Dict[str, Any]] = None,
    ):
        self.exit_code = exit_code
        self.error_string = error_string
        self.lambda_error = lambda_error
        super().__init__("Internal Server Error")


class SpawnError(WorkerError):
    """Raised when the interpreter or engine could not be started at all."""

    def __init__(self, command: str, cause: Exception):
        self.command = command
        self.cause = cause
        super().__init__(f"Failed to start {command}: {cause}")


class BootstrapError(WorkerError):
    """Raised when building the container image fails."""

    def __init__(self, image: str, exit_code: int):
        self.image = image
        self.exit_code = exit_code
        super().__init__(f"Container build failed for {image} (exit code {exit_code})")


class TransportError(WorkerError):
    """Raised when every invocation attempt against a container failed."""

    def __init__(self, url: str, attempts: int, cause: Optional[Exception]):
        self.url = url
        self.attempts = attempts
        self.cause = cause
        super().__init__(f"Invocation of {url} failed after {attempts} attempts: {cause}")
