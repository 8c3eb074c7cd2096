"""Confirmation gate for destructive VCS actions.

Destructive actions (branch creation, commit, push) only proceed when dry-run
mode is off and the caller supplied an explicit ``confirmed=True``. Every
other case yields a side-effect-free preview of what would happen.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar

from agentguard.core.logger import GuardLogger

REASON_DRY_RUN = "Dry run mode: no changes were made. Disable dry run and set confirm to execute."
REASON_CONFIRMATION_REQUIRED = "Explicit confirmation required: set confirm to true to execute."


class ActionKind(Enum):
    """Kinds of actions the gate evaluates."""

    COMMIT_PUSH = "commit_push"  # branch create -> stage -> commit -> push
    BRANCH_CREATE = "branch_create"
    COMMIT = "commit"
    PUSH = "push"
    RUN_TESTS = "run_tests"  # read-only, never gated


@dataclass(frozen=True)
class ConfirmableAction:
    """One action awaiting a gate decision.

    Parameters used by the preview: ``branch_name``, ``commit_message`` and
    ``staged_files`` (list of paths currently staged).
    """

    kind: ActionKind
    parameters: dict[str, Any] = field(default_factory=dict)
    confirmed: bool = False


@dataclass(frozen=True)
class ActionPreview:
    """Exactly what a destructive action would do."""

    branch_name: str | None
    commit_message: str | None
    staged_files: list[str]
    operations: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "branchName": self.branch_name,
            "commitMessage": self.commit_message,
            "stagedFiles": list(self.staged_files),
            "operations": list(self.operations),
        }


@dataclass(frozen=True)
class GateDecision:
    """Result of evaluating one action."""

    requires_preview: bool
    proceed: bool
    preview: ActionPreview | None = None
    reason: str | None = None


class ConfirmationGate:
    """Decides whether a destructive action may execute."""

    DESTRUCTIVE_KINDS: ClassVar[frozenset[ActionKind]] = frozenset(
        {
            ActionKind.COMMIT_PUSH,
            ActionKind.BRANCH_CREATE,
            ActionKind.COMMIT,
            ActionKind.PUSH,
        }
    )

    # Parameters each kind cannot be previewed or executed without
    REQUIRED_PARAMETERS: ClassVar[dict[ActionKind, tuple[str, ...]]] = {
        ActionKind.COMMIT_PUSH: ("branch_name", "commit_message"),
        ActionKind.BRANCH_CREATE: ("branch_name",),
        ActionKind.COMMIT: ("commit_message",),
        ActionKind.PUSH: ("branch_name",),
    }

    def __init__(self, dry_run: bool = True, logger: GuardLogger | None = None) -> None:
        """Initialize the gate.

        Args:
            dry_run: Process-wide flag; when True every destructive action is preview-only
            logger: Structured logger
        """
        self.dry_run = dry_run
        self.logger = (logger or GuardLogger()).bind(component="confirmation")

    def is_destructive(self, kind: ActionKind) -> bool:
        return kind in self.DESTRUCTIVE_KINDS

    def evaluate(self, action: ConfirmableAction) -> GateDecision:
        """Evaluate an action. Never raises.

        Returns:
            GateDecision with proceed=True only when the action is not
            destructive, or dry run is off and confirmed is exactly True
        """
        if not isinstance(action, ConfirmableAction) or not isinstance(action.kind, ActionKind):
            return GateDecision(requires_preview=False, proceed=False, reason="invalid action")

        if not self.is_destructive(action.kind):
            return GateDecision(requires_preview=False, proceed=True)

        missing = [
            name
            for name in self.REQUIRED_PARAMETERS.get(action.kind, ())
            if not _text(action.parameters.get(name))
        ]
        if missing:
            return GateDecision(
                requires_preview=False,
                proceed=False,
                reason=f"missing required parameters: {', '.join(missing)}",
            )

        if self.dry_run or action.confirmed is not True:
            reason = REASON_DRY_RUN if self.dry_run else REASON_CONFIRMATION_REQUIRED
            self.logger.info(
                "Destructive action held for preview",
                kind=action.kind.value,
                dry_run=self.dry_run,
                confirmed=action.confirmed is True,
            )
            return GateDecision(
                requires_preview=True,
                proceed=False,
                preview=self.build_preview(action),
                reason=reason,
            )

        self.logger.info("Destructive action confirmed", kind=action.kind.value)
        return GateDecision(requires_preview=False, proceed=True)

    def build_preview(self, action: ConfirmableAction) -> ActionPreview:
        """Describe the ordered operations an action would perform."""
        branch = _text(action.parameters.get("branch_name"))
        message = _text(action.parameters.get("commit_message"))
        staged = [str(p) for p in action.parameters.get("staged_files") or [] if str(p).strip()]

        operations: list[str] = []
        if action.kind in (ActionKind.COMMIT_PUSH, ActionKind.BRANCH_CREATE):
            operations.append(f"Would create branch: {branch}")
        if action.kind in (ActionKind.COMMIT_PUSH, ActionKind.COMMIT):
            operations.append("Would stage working tree changes (git add .)")
            operations.append(f"Would commit with message: {message}")
        if action.kind in (ActionKind.COMMIT_PUSH, ActionKind.PUSH):
            operations.append(f"Would push {branch} to remote (if configured)")

        return ActionPreview(
            branch_name=branch,
            commit_message=message,
            staged_files=staged,
            operations=operations,
        )


def _text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None
