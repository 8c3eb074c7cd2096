"""Shared fixtures for AgentGuard tests."""

import pytest

from agentguard.core.logger import GuardLogger


@pytest.fixture(autouse=True)
def _no_file_logging(monkeypatch):
    """Keep tests from writing to ~/.agentguard/logs."""
    monkeypatch.setenv("AGENTGUARD_DISABLE_FILE_LOGGING", "1")


@pytest.fixture
def logger(_no_file_logging):
    return GuardLogger(level="DEBUG")
