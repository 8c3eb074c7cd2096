"""
AgentGuard

Execution-safety layer for AI coding assistants: command validation,
bounded sandboxed execution, confirmation-gated git actions and secure
API key storage.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from agentguard.core.command_executor import ExecutionRequest, ExecutionResult, Violation
from agentguard.core.config import GuardConfig, load_config
from agentguard.core.exceptions import (
    AgentGuardException,
    ConfigurationError,
    GitOperationError,
    InvalidRequestError,
)
from agentguard.core.executors.process_sandbox import ProcessSandbox
from agentguard.security.command_validator import CommandValidator, ValidationResult
from agentguard.security.confirmation import (
    ActionKind,
    ConfirmableAction,
    ConfirmationGate,
    GateDecision,
)
from agentguard.security.secret_store import SecretStore
from agentguard.tools.git_publish import GitPublisher, PublishResult

__all__ = [
    "__version__",
    # Configuration
    "GuardConfig",
    "load_config",
    # Validation and execution
    "CommandValidator",
    "ValidationResult",
    "ProcessSandbox",
    "ExecutionRequest",
    "ExecutionResult",
    "Violation",
    # Confirmation
    "ActionKind",
    "ConfirmableAction",
    "ConfirmationGate",
    "GateDecision",
    "GitPublisher",
    "PublishResult",
    # Secrets
    "SecretStore",
    # Exceptions
    "AgentGuardException",
    "ConfigurationError",
    "GitOperationError",
    "InvalidRequestError",
]
