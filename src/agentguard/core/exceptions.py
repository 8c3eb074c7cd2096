"""Exception hierarchy with error codes for AgentGuard.

Policy and resource violations are returned as tagged results, not raised.
Exceptions here signal programming errors (malformed requests), missing
configuration, or fatal steps of a multi-step git operation.
"""

from dataclasses import dataclass, field
from typing import Any

# Standard error codes
E_NOT_ALLOWED = "E_NOT_ALLOWED"
E_TIMEOUT = "E_TIMEOUT"
E_OUTPUT_EXCEEDED = "E_OUTPUT_EXCEEDED"
E_PROCESS = "E_PROCESS"
E_VALIDATION = "E_VALIDATION"
E_BACKEND_UNAVAILABLE = "E_BACKEND_UNAVAILABLE"
E_CONFIRMATION_REQUIRED = "E_CONFIRMATION_REQUIRED"


@dataclass
class AgentGuardException(Exception):  # noqa: N818
    """Base exception for all AgentGuard-specific errors.

    Carries an error code and metadata for consistent reporting.
    """

    message: str
    error_code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Return human-readable error message."""
        return self.message

    def __post_init__(self) -> None:
        """Initialize the exception with the message."""
        super().__init__(self.message)


@dataclass
class InvalidRequestError(AgentGuardException):
    """A request was constructed with invalid fields.

    Raised for non-positive limits, empty secrets and similar caller bugs.
    """

    field_name: str = ""

    def __post_init__(self) -> None:
        if not self.error_code:
            self.error_code = E_VALIDATION
        if self.field_name:
            self.metadata["field"] = self.field_name
        super().__post_init__()


@dataclass
class ConfigurationError(AgentGuardException):
    """Error in system configuration.

    Raised for invalid config values, unreadable config files, or a
    credential that is required but configured nowhere.
    """

    key: str = ""
    reason: str = ""

    def __post_init__(self) -> None:
        """Initialize with configuration-specific metadata."""
        if not self.error_code:
            self.error_code = E_VALIDATION
        if self.key:
            self.metadata["config_key"] = self.key
        if self.reason:
            self.metadata["reason"] = self.reason
        super().__post_init__()


@dataclass
class GitOperationError(AgentGuardException):
    """A fatal step of a confirmed git operation failed."""

    step: str = ""
    stderr: str = ""

    def __post_init__(self) -> None:
        if not self.error_code:
            self.error_code = E_PROCESS
        if self.step:
            self.metadata["step"] = self.step
        if self.stderr:
            self.metadata["stderr"] = self.stderr
        super().__post_init__()


def format_error_for_user(exception: AgentGuardException) -> str:
    """Format exception for user-friendly display.

    Args:
        exception: The agentguard exception to format

    Returns:
        Human-readable error message without internal details
    """
    if isinstance(exception, InvalidRequestError):
        if exception.field_name:
            return f"Invalid request field '{exception.field_name}': {exception.message}"
        return f"Invalid request: {exception.message}"

    if isinstance(exception, ConfigurationError):
        if exception.key:
            return f"Configuration error '{exception.key}': {exception.message}"
        return f"Configuration error: {exception.message}"

    if isinstance(exception, GitOperationError):
        if exception.step:
            return f"Git {exception.step} failed: {exception.message}"
        return f"Git operation failed: {exception.message}"

    return str(exception.message)


def format_error_for_log(exception: AgentGuardException) -> dict[str, Any]:
    """Format exception for structured logging.

    Args:
        exception: The agentguard exception to format

    Returns:
        Dictionary with structured error information for logs
    """
    log_data: dict[str, Any] = {
        "error_type": type(exception).__name__,
        "message": exception.message,
        "error_code": exception.error_code,
    }

    if exception.metadata:
        log_data["metadata"] = exception.metadata

    if isinstance(exception, InvalidRequestError):
        if exception.field_name:
            log_data["field"] = exception.field_name

    elif isinstance(exception, ConfigurationError):
        if exception.key:
            log_data["config_key"] = exception.key
        if exception.reason:
            log_data["reason"] = exception.reason

    elif isinstance(exception, GitOperationError) and exception.step:
        log_data["step"] = exception.step

    return log_data
