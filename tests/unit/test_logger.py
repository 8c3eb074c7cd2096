"""Unit tests for structured JSON logging system."""

import json
import logging
from pathlib import PurePosixPath

import pytest

from agentguard.core.logger import GuardLogger, JSONFormatter


@pytest.fixture
def temp_log_dir(tmp_path, monkeypatch):
    """Create temporary log directory with file logging enabled."""
    monkeypatch.delenv("AGENTGUARD_DISABLE_FILE_LOGGING", raising=False)
    monkeypatch.delenv("AGENTGUARD_LOG_LEVEL", raising=False)
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    return log_dir


@pytest.fixture
def file_logger(temp_log_dir):
    return GuardLogger(log_dir=str(temp_log_dir), level="DEBUG")


def read_log_lines(log_file):
    """Read and parse JSON log lines."""
    if not log_file.exists():
        return []

    with log_file.open() as f:
        return [json.loads(line) for line in f if line.strip()]


def test_logger_initialization(temp_log_dir):
    logger = GuardLogger(log_dir=str(temp_log_dir))

    assert logger.log_file == temp_log_dir / "agentguard.log"


def test_logger_default_directory(tmp_path, monkeypatch):
    """Test logger uses default ~/.agentguard/logs directory."""
    monkeypatch.delenv("AGENTGUARD_DISABLE_FILE_LOGGING", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))

    logger = GuardLogger()

    assert logger.log_dir == tmp_path / ".agentguard" / "logs"
    assert logger.log_dir.exists()


def test_file_logging_disabled(tmp_path):
    logger = GuardLogger(log_dir=str(tmp_path / "logs"))

    assert logger.log_file is None
    assert not (tmp_path / "logs").exists()


def test_structured_fields(file_logger):
    file_logger.info("Command finished", executable="git", exit_code=0, violation="none")

    lines = read_log_lines(file_logger.log_file)

    assert len(lines) == 1
    entry = lines[0]
    assert entry["level"] == "INFO"
    assert entry["message"] == "Command finished"
    assert entry["executable"] == "git"
    assert entry["exit_code"] == 0
    assert entry["timestamp"].endswith("Z")


def test_all_levels(file_logger):
    file_logger.debug("d")
    file_logger.info("i")
    file_logger.warn("w")
    file_logger.error("e")

    levels = [line["level"] for line in read_log_lines(file_logger.log_file)]

    assert levels == ["DEBUG", "INFO", "WARNING", "ERROR"]


def test_level_filtering(temp_log_dir):
    logger = GuardLogger(log_dir=str(temp_log_dir), level="WARN")

    logger.info("hidden")
    logger.warn("shown")

    assert [line["message"] for line in read_log_lines(logger.log_file)] == ["shown"]


def test_level_from_environment(temp_log_dir, monkeypatch):
    monkeypatch.setenv("AGENTGUARD_LOG_LEVEL", "ERROR")
    logger = GuardLogger(log_dir=str(temp_log_dir))

    logger.warn("hidden")
    logger.error("shown")

    assert [line["message"] for line in read_log_lines(logger.log_file)] == ["shown"]


def test_non_serializable_values(file_logger):
    file_logger.info("Process started", path=PurePosixPath("/tmp/example"))

    entry = read_log_lines(file_logger.log_file)[0]

    assert entry["path"] == "/tmp/example"


def test_operation_timing(file_logger):
    with file_logger.operation("sandbox_execute", executable="npm"):
        pass

    lines = read_log_lines(file_logger.log_file)

    assert [line["message"] for line in lines] == ["sandbox_execute_start", "sandbox_execute_end"]
    assert lines[1]["executable"] == "npm"
    assert lines[1]["duration_ms"] >= 0


def test_operation_logs_end_on_error(file_logger):
    with pytest.raises(RuntimeError), file_logger.operation("publish"):
        raise RuntimeError("fail")

    messages = [line["message"] for line in read_log_lines(file_logger.log_file)]

    assert messages == ["publish_start", "publish_end"]


def test_reinitialization_replaces_handlers(temp_log_dir):
    GuardLogger(log_dir=str(temp_log_dir))
    GuardLogger(log_dir=str(temp_log_dir))

    assert len(logging.getLogger("agentguard").handlers) == 2


def test_json_formatter_without_extra():
    record = logging.LogRecord(
        "agentguard", logging.INFO, __file__, 1, "hello %s", ("world",), None
    )

    data = json.loads(JSONFormatter().format(record))

    assert data["message"] == "hello world"
    assert data["level"] == "INFO"
    assert set(data) == {"timestamp", "level", "message"}


def test_bind_adds_context(file_logger):
    sandbox_logger = file_logger.bind(component="sandbox")

    sandbox_logger.warn("Command rejected", reason="not in allowlist")
    file_logger.warn("Unbound")

    first, second = read_log_lines(file_logger.log_file)
    assert first["component"] == "sandbox"
    assert first["reason"] == "not in allowlist"
    assert "component" not in second
    assert sandbox_logger.log_file == file_logger.log_file


def test_bind_call_fields_override_context(file_logger):
    file_logger.bind(component="a").info("x", component="b")

    assert read_log_lines(file_logger.log_file)[0]["component"] == "b"


def test_credential_fields_are_masked(file_logger):
    file_logger.info("Stored", api_key="sk-live-123", secret="s3cret", backend="keyring")

    entry = read_log_lines(file_logger.log_file)[0]

    assert entry["api_key"] == "[REDACTED]"
    assert entry["secret"] == "[REDACTED]"
    assert entry["backend"] == "keyring"


def test_unknown_level_defaults_to_info(temp_log_dir):
    logger = GuardLogger(log_dir=str(temp_log_dir), level="verbose")

    logger.debug("hidden")
    logger.info("shown")

    assert [line["message"] for line in read_log_lines(logger.log_file)] == ["shown"]
