"""Unit tests for execution request/result types."""

import pytest

from agentguard.core.command_executor import (
    CommandExecutor,
    ExecutionRequest,
    ExecutionResult,
    Violation,
)
from agentguard.core.exceptions import InvalidRequestError


class TestExecutionRequest:
    """Test request validation."""

    def test_defaults(self):
        request = ExecutionRequest(command="git status", working_directory="/repo")

        assert request.timeout_ms == 60_000
        assert request.max_memory_bytes == 512 * 1024 * 1024
        assert request.max_output_bytes == 10 * 1024 * 1024
        assert request.env is None

    @pytest.mark.parametrize("field", ["timeout_ms", "max_memory_bytes", "max_output_bytes"])
    @pytest.mark.parametrize("value", [0, -1, False, 2.5, "10"])
    def test_limits_must_be_positive_integers(self, field, value):
        with pytest.raises(InvalidRequestError) as exc_info:
            ExecutionRequest(command="ls", working_directory="/repo", **{field: value})

        assert exc_info.value.field_name == field

    def test_working_directory_required(self):
        with pytest.raises(InvalidRequestError, match="working_directory"):
            ExecutionRequest(command="ls", working_directory="")

    def test_command_must_be_string(self):
        with pytest.raises(InvalidRequestError, match="command must be a string"):
            ExecutionRequest(command=["ls"], working_directory="/repo")  # type: ignore[arg-type]

    def test_empty_command_is_left_to_the_validator(self):
        assert ExecutionRequest(command="", working_directory="/repo").command == ""


class TestExecutionResult:
    """Test result construction."""

    def test_rejected(self):
        result = ExecutionResult.rejected(Violation.NOT_ALLOWED, "command not allowed: x", 3)

        assert not result.succeeded
        assert result.exit_code == -1
        assert result.stdout == ""
        assert result.stderr == ""
        assert result.violation is Violation.NOT_ALLOWED
        assert result.reason == "command not allowed: x"
        assert result.duration_ms == 3

    def test_frozen(self):
        result = ExecutionResult(succeeded=True, exit_code=0)

        with pytest.raises(AttributeError):
            result.exit_code = 1  # type: ignore[misc]


class TestCommandExecutor:
    def test_is_abstract(self):
        with pytest.raises(TypeError):
            CommandExecutor()  # type: ignore[abstract]
