"""Command executor implementations.

- ProcessSandbox: direct subprocess with timeout, output and advisory memory bounds
"""

from agentguard.core.executors.process_sandbox import ProcessSandbox

__all__ = ["ProcessSandbox"]
