"""Unit tests for exception hierarchy and error handling."""

import pytest

from agentguard.core.command_executor import Violation
from agentguard.core.exceptions import (
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


class TestAgentGuardException:
    """Test the base AgentGuardException class."""

    def test_basic_creation(self):
        exc = AgentGuardException("Test error")
        assert exc.message == "Test error"
        assert exc.error_code is None
        assert exc.metadata == {}
        assert str(exc) == "Test error"

    def test_with_error_code_and_metadata(self):
        exc = AgentGuardException("Denied", error_code=E_NOT_ALLOWED, metadata={"cmd": "rm"})
        assert exc.error_code == E_NOT_ALLOWED
        assert exc.metadata == {"cmd": "rm"}

    def test_can_be_raised(self):
        with pytest.raises(AgentGuardException, match="boom"):
            raise AgentGuardException("boom")


class TestInvalidRequestError:
    def test_defaults(self):
        exc = InvalidRequestError("timeout_ms must be positive", field_name="timeout_ms")
        assert exc.error_code == E_VALIDATION
        assert exc.metadata == {"field": "timeout_ms"}
        assert isinstance(exc, AgentGuardException)

    def test_without_field(self):
        exc = InvalidRequestError("bad request")
        assert exc.metadata == {}


class TestConfigurationError:
    def test_key_and_reason(self):
        exc = ConfigurationError("missing", key="OPENAI_API_KEY", reason="missing credential")
        assert exc.error_code == E_VALIDATION
        assert exc.metadata == {"config_key": "OPENAI_API_KEY", "reason": "missing credential"}

    def test_explicit_code_kept(self):
        exc = ConfigurationError("x", error_code="E_CUSTOM")
        assert exc.error_code == "E_CUSTOM"


class TestGitOperationError:
    def test_defaults(self):
        exc = GitOperationError("fatal: not a git repository", step="branch", stderr="fatal")
        assert exc.error_code == E_PROCESS
        assert exc.metadata == {"step": "branch", "stderr": "fatal"}

    def test_timeout_code(self):
        exc = GitOperationError("timed out", error_code=E_TIMEOUT, step="commit")
        assert exc.error_code == E_TIMEOUT


class TestViolationErrorCodes:
    @pytest.mark.parametrize(
        ("violation", "code"),
        [
            (Violation.NONE, None),
            (Violation.TIMEOUT, E_TIMEOUT),
            (Violation.OUTPUT_EXCEEDED, E_OUTPUT_EXCEEDED),
            (Violation.PROCESS_ERROR, E_PROCESS),
            (Violation.NOT_ALLOWED, E_NOT_ALLOWED),
        ],
    )
    def test_mapping(self, violation, code):
        assert violation.error_code == code


class TestFormatErrorForUser:
    def test_invalid_request(self):
        exc = InvalidRequestError("must be positive", field_name="timeout_ms")
        assert format_error_for_user(exc) == "Invalid request field 'timeout_ms': must be positive"

    def test_invalid_request_without_field(self):
        assert format_error_for_user(InvalidRequestError("bad")) == "Invalid request: bad"

    def test_configuration(self):
        exc = ConfigurationError("Invalid SANDBOX_TIMEOUT: x", key="SANDBOX_TIMEOUT")
        assert format_error_for_user(exc) == (
            "Configuration error 'SANDBOX_TIMEOUT': Invalid SANDBOX_TIMEOUT: x"
        )

    def test_git(self):
        exc = GitOperationError("branch exists", step="branch")
        assert format_error_for_user(exc) == "Git branch failed: branch exists"

    def test_base(self):
        assert format_error_for_user(AgentGuardException("plain")) == "plain"


class TestFormatErrorForLog:
    def test_basic(self):
        data = format_error_for_log(AgentGuardException("plain", error_code=E_PROCESS))
        assert data == {
            "error_type": "AgentGuardException",
            "message": "plain",
            "error_code": E_PROCESS,
        }

    def test_configuration(self):
        data = format_error_for_log(ConfigurationError("x", key="k", reason="r"))
        assert data["error_type"] == "ConfigurationError"
        assert data["config_key"] == "k"
        assert data["reason"] == "r"
        assert data["metadata"] == {"config_key": "k", "reason": "r"}

    def test_git_step(self):
        data = format_error_for_log(GitOperationError("x", step="push"))
        assert data["step"] == "push"

    def test_invalid_request_field(self):
        data = format_error_for_log(InvalidRequestError("x", field_name="command"))
        assert data["field"] == "command"
