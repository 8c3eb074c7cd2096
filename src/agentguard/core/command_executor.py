"""Command execution abstraction.

Defines the request/result types exchanged with a command executor and the
executor interface itself, so callers stay agnostic of how a command is
isolated.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from agentguard.core.config import (
    DEFAULT_MAX_MEMORY_BYTES,
    DEFAULT_MAX_OUTPUT_BYTES,
    DEFAULT_TIMEOUT_MS,
)
from agentguard.core.exceptions import (
    E_NOT_ALLOWED,
    E_OUTPUT_EXCEEDED,
    E_PROCESS,
    E_TIMEOUT,
    InvalidRequestError,
)


class Violation(Enum):
    """Which limit or policy terminated or rejected an execution."""

    NONE = "none"
    TIMEOUT = "timeout"
    OUTPUT_EXCEEDED = "output_exceeded"
    PROCESS_ERROR = "process_error"
    NOT_ALLOWED = "not_allowed"

    @property
    def error_code(self) -> str | None:
        """Error code matching this violation, None for a clean run."""
        return _VIOLATION_ERROR_CODES.get(self)


_VIOLATION_ERROR_CODES = {
    Violation.TIMEOUT: E_TIMEOUT,
    Violation.OUTPUT_EXCEEDED: E_OUTPUT_EXCEEDED,
    Violation.PROCESS_ERROR: E_PROCESS,
    Violation.NOT_ALLOWED: E_NOT_ALLOWED,
}


@dataclass(frozen=True)
class ExecutionRequest:
    """A command to run plus its resource limits.

    Attributes:
        command: Raw command text (re-validated by the executor)
        working_directory: Absolute, existing directory to run in
        timeout_ms: Wall-clock limit from spawn
        max_memory_bytes: Advisory memory ceiling passed to the child
        max_output_bytes: Ceiling on combined captured stdout + stderr
        env: Child environment (None inherits the current environment)
    """

    command: str
    working_directory: str
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_memory_bytes: int = DEFAULT_MAX_MEMORY_BYTES
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    env: dict[str, str] | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.command, str):
            raise InvalidRequestError("command must be a string", field_name="command")
        if not isinstance(self.working_directory, str) or not self.working_directory:
            raise InvalidRequestError(
                "working_directory must be a non-empty string", field_name="working_directory"
            )
        for name in ("timeout_ms", "max_memory_bytes", "max_output_bytes"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InvalidRequestError(
                    f"{name} must be a positive integer, got {value!r}", field_name=name
                )


@dataclass(frozen=True)
class ExecutionResult:
    """Terminal outcome of one execution request.

    Attributes:
        succeeded: True only for a natural exit with code 0
        exit_code: Process exit code (-1 when no process ran)
        stdout: Captured standard output, truncated to the output limit
        stderr: Captured standard error, truncated to the output limit
        violation: Limit or policy that ended the run, NONE for natural exit
        reason: Human-readable explanation for any failure
        duration_ms: Wall-clock duration of the request
        metadata: Executor-specific details (pid, executable, memory_limit)
    """

    succeeded: bool
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    violation: Violation = Violation.NONE
    reason: str | None = None
    duration_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def rejected(cls, violation: Violation, reason: str, duration_ms: int = 0) -> "ExecutionResult":
        """Result for a request that never produced a running process."""
        return cls(
            succeeded=False,
            exit_code=-1,
            violation=violation,
            reason=reason,
            duration_ms=duration_ms,
        )


class CommandExecutor(ABC):
    """Abstract interface for executing validated commands."""

    @abstractmethod
    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Execute a command request.

        Resource and policy violations are reported in the result's
        ``violation``; only malformed requests raise.
        """
        ...

    @abstractmethod
    def get_name(self) -> str:
        """Get executor name for logging/debugging."""
        ...
