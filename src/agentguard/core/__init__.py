"""Core modules for AgentGuard.

Configuration, logging, the exception hierarchy and the command execution
abstraction shared by every component.
"""

from .exceptions import (
    E_BACKEND_UNAVAILABLE,
    E_CONFIRMATION_REQUIRED,
    E_NOT_ALLOWED,
    E_OUTPUT_EXCEEDED,
    E_PROCESS,
    E_TIMEOUT,
    E_VALIDATION,
    AgentGuardException,
    ConfigurationError,
    GitOperationError,
    InvalidRequestError,
    format_error_for_log,
    format_error_for_user,
)

__all__ = [
    # Error codes
    "E_BACKEND_UNAVAILABLE",
    "E_CONFIRMATION_REQUIRED",
    "E_NOT_ALLOWED",
    "E_OUTPUT_EXCEEDED",
    "E_PROCESS",
    "E_TIMEOUT",
    "E_VALIDATION",
    # Exception classes
    "AgentGuardException",
    "ConfigurationError",
    "GitOperationError",
    "InvalidRequestError",
    # Error formatting utilities
    "format_error_for_log",
    "format_error_for_user",
]
