"""Security components for AgentGuard.

Provides command validation, the confirmation gate for destructive actions,
and secure credential storage.
"""

from agentguard.security.command_validator import Command, CommandValidator, ValidationResult
from agentguard.security.confirmation import (
    ActionKind,
    ActionPreview,
    ConfirmableAction,
    ConfirmationGate,
    GateDecision,
)
from agentguard.security.secret_store import (
    EnvironmentFallback,
    NativeBackend,
    SecretBackend,
    SecretStore,
)

__all__ = [
    "ActionKind",
    "ActionPreview",
    "Command",
    "CommandValidator",
    "ConfirmableAction",
    "ConfirmationGate",
    "EnvironmentFallback",
    "GateDecision",
    "NativeBackend",
    "SecretBackend",
    "SecretStore",
    "ValidationResult",
]
