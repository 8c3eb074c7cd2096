"""Workflows built on the sandbox and the confirmation gate."""

from agentguard.tools.git_publish import GitPublisher, PublishResult

__all__ = ["GitPublisher", "PublishResult"]
