"""Branch, commit and push a repository's changes behind the confirmation gate.

Every git invocation goes through the ProcessSandbox, so each one is
re-validated against the allowlist and bounded in time and output.
"""

import re
import shlex
from dataclasses import dataclass, field
from typing import Any

from agentguard.core.command_executor import ExecutionResult
from agentguard.core.exceptions import (
    E_CONFIRMATION_REQUIRED,
    E_NOT_ALLOWED,
    GitOperationError,
    format_error_for_log,
)
from agentguard.core.executors.process_sandbox import ProcessSandbox
from agentguard.core.logger import GuardLogger
from agentguard.security.confirmation import (
    ActionKind,
    ActionPreview,
    ConfirmableAction,
    ConfirmationGate,
)

STAGED_FILES_TIMEOUT_MS = 5_000
LOCAL_STEP_TIMEOUT_MS = 10_000
PUSH_TIMEOUT_MS = 30_000

_BRANCH_NAME = re.compile(r"^[A-Za-z0-9._/-]+$")


@dataclass
class PublishResult:
    """Outcome of a publish request."""

    success: bool
    dry_run: bool
    branch_name: str
    commit_message: str
    pushed: bool = False
    preview: ActionPreview | None = None
    message: str = ""
    failed_step: str | None = None
    error: str | None = None
    error_code: str | None = None
    push_error: str | None = None
    steps: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "dryRun": self.dry_run,
            "branchName": self.branch_name,
            "commitMessage": self.commit_message,
            "pushed": self.pushed,
            "message": self.message,
        }
        if self.preview is not None:
            data["preview"] = self.preview.to_dict()
        if self.failed_step:
            data["failedStep"] = self.failed_step
        if self.error:
            data["error"] = self.error
        if self.error_code:
            data["errorCode"] = self.error_code
        if self.push_error:
            data["pushError"] = self.push_error
        return data


def is_valid_branch_name(name: str) -> bool:
    """Conservative check: plain ref characters, no option-looking names."""
    return (
        bool(_BRANCH_NAME.match(name))
        and not name.startswith(("-", "/"))
        and not name.endswith(("/", ".", ".lock"))
        and ".." not in name
        and "//" not in name
    )


class GitPublisher:
    """Runs branch create -> stage -> commit -> push once the gate allows it."""

    def __init__(
        self,
        sandbox: ProcessSandbox,
        gate: ConfirmationGate,
        logger: GuardLogger | None = None,
    ) -> None:
        self.sandbox = sandbox
        self.gate = gate
        self.logger = (logger or sandbox.logger).bind(component="git_publish")

    async def staged_files(self, repo_path: str) -> list[str]:
        """List currently staged paths. Any failure reads as nothing staged."""
        result = await self.sandbox.execute(
            self.sandbox.request(
                "git diff --cached --name-only",
                repo_path,
                timeout_ms=STAGED_FILES_TIMEOUT_MS,
            )
        )
        if not result.succeeded:
            self.logger.debug("Could not list staged files", reason=result.reason)
            return []
        return [line for line in result.stdout.splitlines() if line.strip()]

    async def publish(
        self,
        repo_path: str,
        branch_name: str,
        commit_message: str,
        confirm: bool = False,
    ) -> PublishResult:
        """Preview or perform the publish sequence.

        Branch creation, staging and commit failures are fatal. A push failure
        leaves the local branch and commit in place and is reported through
        ``pushed`` and ``push_error``.
        """
        if not is_valid_branch_name(branch_name):
            return PublishResult(
                success=False,
                dry_run=False,
                branch_name=branch_name,
                commit_message=commit_message,
                message="Invalid branch name",
                error=f"invalid branch name: {branch_name!r}",
            )

        staged = await self.staged_files(repo_path)
        action = ConfirmableAction(
            kind=ActionKind.COMMIT_PUSH,
            parameters={
                "branch_name": branch_name,
                "commit_message": commit_message,
                "staged_files": staged,
            },
            confirmed=confirm,
        )
        decision = self.gate.evaluate(action)

        if not decision.proceed:
            return PublishResult(
                success=False,
                dry_run=decision.requires_preview,
                branch_name=branch_name,
                commit_message=commit_message,
                preview=decision.preview,
                message=decision.reason or "Action not permitted",
                error_code=E_CONFIRMATION_REQUIRED if decision.requires_preview else None,
            )

        steps = _plan(branch_name, commit_message)
        for step, command in steps:
            validation = self.sandbox.validator.validate(command)
            if not validation.allowed:
                # Nothing runs unless every step would validate
                error = f"command not allowed: {validation.reason}"
                self.logger.warn("Publish refused", step=step, reason=validation.reason)
                return PublishResult(
                    success=False,
                    dry_run=False,
                    branch_name=branch_name,
                    commit_message=commit_message,
                    message=f"Git {step} would be rejected: {error}",
                    failed_step=step,
                    error=error,
                    error_code=E_NOT_ALLOWED,
                )

        result = PublishResult(
            success=False,
            dry_run=False,
            branch_name=branch_name,
            commit_message=commit_message,
        )

        with self.logger.operation("git_publish", branch=branch_name):
            await self._run_sequence(result, dict(steps), repo_path)
        return result

    async def _run_sequence(
        self, result: PublishResult, commands: dict[str, str], repo_path: str
    ) -> None:
        branch_name = result.branch_name
        try:
            for step in ("branch", "stage", "commit"):
                await self._run_step(result, step, commands[step], repo_path)
        except GitOperationError as e:
            self.logger.error("Publish aborted", error=format_error_for_log(e))
            result.failed_step = e.step
            result.error = e.message
            result.error_code = e.error_code
            result.message = f"Git {e.step} failed: {e.message}"
            return

        push = await self._execute(commands["push"], repo_path, PUSH_TIMEOUT_MS)
        result.steps.append(_step_record("push", push))
        result.success = True
        result.pushed = push.succeeded
        if push.succeeded:
            result.message = f"Branch {branch_name} created and pushed."
        else:
            result.push_error = push.reason or push.stderr.strip() or "push failed"
            result.message = f"Branch {branch_name} created locally. Configure remote to push."
            self.logger.warn("Push failed, local commit kept", reason=result.push_error)

    async def _run_step(
        self, result: PublishResult, step: str, command: str, repo_path: str
    ) -> None:
        outcome = await self._execute(command, repo_path, LOCAL_STEP_TIMEOUT_MS)
        result.steps.append(_step_record(step, outcome))
        if not outcome.succeeded:
            detail = outcome.stderr.strip() or outcome.reason or "unknown error"
            raise GitOperationError(
                detail,
                error_code=outcome.violation.error_code,
                step=step,
                stderr=outcome.stderr,
            )

    async def _execute(self, command: str, repo_path: str, timeout_ms: int) -> ExecutionResult:
        return await self.sandbox.execute(
            self.sandbox.request(command, repo_path, timeout_ms=timeout_ms)
        )


def _plan(branch_name: str, commit_message: str) -> list[tuple[str, str]]:
    """The publish steps in order, as (step, command) pairs."""
    return [
        ("branch", f"git checkout -b {branch_name}"),
        ("stage", "git add ."),
        ("commit", f"git commit -m {shlex.quote(commit_message)}"),
        ("push", f"git push -u origin {branch_name}"),
    ]


def _step_record(step: str, outcome: ExecutionResult) -> dict[str, Any]:
    return {
        "step": step,
        "succeeded": outcome.succeeded,
        "exitCode": outcome.exit_code,
        "violation": outcome.violation.value,
    }
