"""Sandboxed subprocess executor with time, output and memory bounds.

Three event sources race to end each execution: the wall-clock timer, the
output readers crossing the byte ceiling, and the natural exit of the child.
They all report into a settle-once slot; the first report wins and every
later one is a no-op. Whatever wins, the child is signalled as needed and
reaped before ``execute`` returns.

Natural exit is the child's own exit. Output still buffered in the pipes is
drained for a short window afterwards; if a background descendant keeps the
pipes open past that window it is killed with the rest of the process group.

The memory ceiling is advisory only. It is passed to the child as a
``NODE_OPTIONS --max-old-space-size`` hint, which only Node.js honours. No
OS-level limit (rlimit, cgroup, job object) is applied.
"""

import asyncio
import os
import signal
import sys
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from agentguard.core.command_executor import (
    CommandExecutor,
    ExecutionRequest,
    ExecutionResult,
    Violation,
)
from agentguard.core.config import GuardConfig
from agentguard.core.exceptions import InvalidRequestError
from agentguard.core.logger import GuardLogger
from agentguard.security.command_validator import CommandValidator

GRACE_PERIOD_S = 5.0
DRAIN_PERIOD_S = 0.5
READ_CHUNK_BYTES = 64 * 1024

SpawnFunction = Callable[[Sequence[str], str, dict[str, str], bool], Awaitable[Any]]
SleepFunction = Callable[[float], Awaitable[None]]


async def spawn_process(
    argv: Sequence[str], cwd: str, env: dict[str, str], new_session: bool
) -> asyncio.subprocess.Process:
    """Start argv directly (no shell) with stdin closed and piped output."""
    return await asyncio.create_subprocess_exec(
        *argv,
        cwd=cwd,
        env=env,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        start_new_session=new_session,
    )


def _drained(exit_watcher: asyncio.Task[bool]) -> bool:
    if not exit_watcher.done() or exit_watcher.cancelled() or exit_watcher.exception():
        return True
    return exit_watcher.result()


class _Settlement:
    """Single-assignment slot for the terminal outcome of one execution."""

    def __init__(self) -> None:
        self._future: asyncio.Future[Violation] = asyncio.get_running_loop().create_future()

    @property
    def settled(self) -> bool:
        return self._future.done()

    @property
    def outcome(self) -> Violation | None:
        return self._future.result() if self._future.done() else None

    def settle(self, violation: Violation) -> bool:
        """Record the outcome. Returns False if another source already won."""
        if self._future.done():
            return False
        self._future.set_result(violation)
        return True

    async def wait(self) -> Violation:
        return await asyncio.shield(self._future)


class _OutputCapture:
    """Byte buffers for stdout and stderr sharing one combined ceiling."""

    def __init__(self, limit: int) -> None:
        self.limit = limit
        self._buffers = {"stdout": bytearray(), "stderr": bytearray()}

    @property
    def total(self) -> int:
        return sum(len(b) for b in self._buffers.values())

    def append(self, stream: str, chunk: bytes) -> bool:
        """Append chunk, truncating at the ceiling. False once it is crossed."""
        room = self.limit - self.total
        if len(chunk) > room:
            self._buffers[stream] += chunk[: max(room, 0)]
            return False
        self._buffers[stream] += chunk
        return True

    def text(self, stream: str) -> str:
        return self.decoded()[stream]

    def decoded(self) -> dict[str, str]:
        """Decode both streams so their UTF-8 size stays within the ceiling.

        Invalid bytes show as U+FFFD while that still fits; U+FFFD is three
        bytes, so when it would not fit, invalid bytes are dropped instead.
        """
        replaced = {
            name: bytes(buf).decode("utf-8", errors="replace")
            for name, buf in self._buffers.items()
        }
        if sum(len(text.encode("utf-8")) for text in replaced.values()) <= self.limit:
            return replaced
        return {
            name: bytes(buf).decode("utf-8", errors="ignore")
            for name, buf in self._buffers.items()
        }


class ProcessSandbox(CommandExecutor):
    """Runs validated commands as isolated, bounded child processes.

    Every request is re-validated; an upstream claim that validation already
    happened is never trusted.

    Example:
        >>> sandbox = ProcessSandbox()
        >>> result = await sandbox.execute(sandbox.request("git status", "/repo"))
        >>> result.violation
        <Violation.NONE: 'none'>
    """

    def __init__(
        self,
        validator: CommandValidator | None = None,
        config: GuardConfig | None = None,
        logger: GuardLogger | None = None,
        *,
        spawn: SpawnFunction = spawn_process,
        sleep: SleepFunction = asyncio.sleep,
        grace_period_s: float = GRACE_PERIOD_S,
        isolate_process_group: bool = True,
    ) -> None:
        """Initialize the sandbox.

        Args:
            validator: Command validator (defaults to the built-in allowlist,
                or the config's allowlist when one is set)
            config: Default limits for requests built with request()
            logger: Structured logger
            spawn: Process factory; replaced by fakes in tests
            sleep: Clock used for the timeout and grace window
            grace_period_s: Wait between graceful and forceful termination
            isolate_process_group: Start each child in its own session and
                signal the whole group (POSIX only)
        """
        self.config = config or GuardConfig()
        self.validator = validator or CommandValidator(self.config.allowlist)
        self.logger = (logger or GuardLogger()).bind(component="sandbox")
        self.grace_period_s = grace_period_s
        self.isolate_process_group = isolate_process_group and sys.platform != "win32"
        self._spawn = spawn
        self._sleep = sleep

    def get_name(self) -> str:
        """Get executor name."""
        return "process_sandbox"

    def request(
        self,
        command: str,
        working_directory: str,
        *,
        timeout_ms: int | None = None,
        max_memory_bytes: int | None = None,
        max_output_bytes: int | None = None,
        env: dict[str, str] | None = None,
    ) -> ExecutionRequest:
        """Build a request, filling unset limits from the configuration."""
        return ExecutionRequest(
            command=command,
            working_directory=working_directory,
            timeout_ms=timeout_ms if timeout_ms is not None else self.config.timeout_ms,
            max_memory_bytes=(
                max_memory_bytes if max_memory_bytes is not None else self.config.max_memory_bytes
            ),
            max_output_bytes=(
                max_output_bytes if max_output_bytes is not None else self.config.max_output_bytes
            ),
            env=env,
        )

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """Validate, spawn and supervise one command.

        Raises:
            InvalidRequestError: If request is not an ExecutionRequest
        """
        if not isinstance(request, ExecutionRequest):
            raise InvalidRequestError(
                f"expected ExecutionRequest, got {type(request).__name__}", field_name="request"
            )

        loop = asyncio.get_running_loop()
        started = loop.time()

        def elapsed_ms() -> int:
            return int((loop.time() - started) * 1000)

        validation = self.validator.validate(request.command)
        if not validation.allowed or validation.command is None:
            reason = validation.reason or "command not allowed"
            self.logger.warn("Command rejected", reason=reason)
            return ExecutionResult.rejected(
                Violation.NOT_ALLOWED, f"command not allowed: {reason}", elapsed_ms()
            )

        command = validation.command
        try:
            process = await self._spawn(
                command.argv,
                request.working_directory,
                self._child_env(request),
                self.isolate_process_group,
            )
        except (OSError, ValueError) as e:
            # ValueError: arguments the OS cannot represent, e.g. an embedded NUL
            self.logger.error(
                "Process creation failed", executable=command.executable, error=str(e)
            )
            return ExecutionResult.rejected(
                Violation.PROCESS_ERROR, f"process error: {e}", elapsed_ms()
            )

        self.logger.debug(
            "Process started",
            executable=command.executable,
            pid=process.pid,
            timeout_ms=request.timeout_ms,
        )

        capture = _OutputCapture(request.max_output_bytes)
        settlement = _Settlement()
        readers = [
            asyncio.create_task(self._pump(process.stdout, "stdout", capture, settlement)),
            asyncio.create_task(self._pump(process.stderr, "stderr", capture, settlement)),
        ]
        timer = asyncio.create_task(self._expire(request.timeout_ms / 1000, settlement))
        exit_watcher = asyncio.create_task(
            self._watch_exit(process, readers, timer, settlement)
        )

        try:
            outcome = await settlement.wait()
        finally:
            await self._cancel([*readers, timer, exit_watcher])
            if settlement.outcome is not Violation.NONE:
                await self._terminate(process)
            elif not _drained(exit_watcher):
                self.logger.warn("Output still open after exit", pid=process.pid)
                if self.isolate_process_group:
                    # A descendant still holds the pipes
                    self._signal(process, force=True)

        result = self._build_result(
            request, command.executable, process, capture, outcome, elapsed_ms()
        )
        log = self.logger.info if outcome is Violation.NONE else self.logger.warn
        log(
            "Command finished",
            executable=command.executable,
            exit_code=result.exit_code,
            violation=outcome.value,
            duration_ms=result.duration_ms,
        )
        return result

    def _child_env(self, request: ExecutionRequest) -> dict[str, str]:
        env = dict(os.environ if request.env is None else request.env)
        heap_mb = max(1, request.max_memory_bytes // (1024 * 1024))
        hint = f"--max-old-space-size={heap_mb}"
        existing = env.get("NODE_OPTIONS")
        env["NODE_OPTIONS"] = f"{existing} {hint}" if existing else hint
        return env

    async def _pump(
        self,
        stream: asyncio.StreamReader | None,
        name: str,
        capture: _OutputCapture,
        settlement: _Settlement,
    ) -> None:
        if stream is None:
            return
        while True:
            chunk = await stream.read(READ_CHUNK_BYTES)
            if not chunk:
                return
            if not capture.append(name, chunk):
                settlement.settle(Violation.OUTPUT_EXCEEDED)
                return

    async def _watch_exit(
        self,
        process: Any,
        readers: list[asyncio.Task[None]],
        timer: asyncio.Task[None],
        settlement: _Settlement,
    ) -> bool:
        """Settle NONE once the child exits. Returns whether the pipes drained."""
        await process.wait()
        timer.cancel()
        drained = await self._drain(readers, DRAIN_PERIOD_S)
        settlement.settle(Violation.NONE)
        return drained

    async def _drain(self, readers: list[asyncio.Task[None]], seconds: float) -> bool:
        pending = [reader for reader in readers if not reader.done()]
        if not pending:
            return True
        finished = asyncio.ensure_future(asyncio.wait(pending))
        window = asyncio.ensure_future(self._sleep(seconds))
        done, _ = await asyncio.wait({finished, window}, return_when=asyncio.FIRST_COMPLETED)
        await self._cancel([window, finished])
        return finished in done

    async def _expire(self, seconds: float, settlement: _Settlement) -> None:
        await self._sleep(seconds)
        settlement.settle(Violation.TIMEOUT)

    async def _cancel(self, tasks: list[asyncio.Task[None]]) -> None:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                self.logger.error("Sandbox watcher failed", error=str(e))

    async def _terminate(self, process: Any) -> None:
        """SIGTERM, wait out the grace window, then SIGKILL and reap."""
        self._signal(process, force=False)
        exited = await self._wait_for_exit(process, self.grace_period_s)
        if not exited:
            self.logger.warn(
                "Process ignored graceful termination, killing",
                pid=process.pid,
                grace_period_s=self.grace_period_s,
            )
        if not exited or self.isolate_process_group:
            # The group sweep also reaches children that outlived the leader
            self._signal(process, force=True)
        await process.wait()

    async def _wait_for_exit(self, process: Any, seconds: float) -> bool:
        if process.returncode is not None:
            return True
        waiter = asyncio.ensure_future(process.wait())
        timer = asyncio.ensure_future(self._sleep(seconds))
        done, _ = await asyncio.wait({waiter, timer}, return_when=asyncio.FIRST_COMPLETED)
        await self._cancel([timer, waiter] if waiter not in done else [timer])
        return waiter in done

    def _signal(self, process: Any, *, force: bool) -> None:
        try:
            if self.isolate_process_group:
                sig = signal.SIGKILL if force else signal.SIGTERM
                os.killpg(process.pid, sig)
            elif force:
                process.kill()
            else:
                process.terminate()
        except ProcessLookupError:
            pass

    def _build_result(
        self,
        request: ExecutionRequest,
        executable: str,
        process: Any,
        capture: _OutputCapture,
        outcome: Violation,
        duration_ms: int,
    ) -> ExecutionResult:
        exit_code = process.returncode if process.returncode is not None else -1
        texts = capture.decoded()

        if outcome is Violation.TIMEOUT:
            reason: str | None = f"command timed out after {request.timeout_ms} ms"
        elif outcome is Violation.OUTPUT_EXCEEDED:
            reason = f"output exceeded {request.max_output_bytes} bytes"
        elif exit_code != 0:
            reason = f"command exited with code {exit_code}"
        else:
            reason = None

        return ExecutionResult(
            succeeded=outcome is Violation.NONE and exit_code == 0,
            exit_code=exit_code,
            stdout=texts["stdout"],
            stderr=texts["stderr"],
            violation=outcome,
            reason=reason,
            duration_ms=duration_ms,
            metadata={
                "pid": process.pid,
                "executable": executable,
                "memory_limit": "advisory",
                "platform": sys.platform,
            },
        )
