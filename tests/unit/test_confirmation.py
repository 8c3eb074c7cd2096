"""Unit tests for the confirmation gate.

Tests ConfirmationGate, ConfirmableAction and ActionPreview.
"""

import pytest

from agentguard.security.confirmation import (
    REASON_CONFIRMATION_REQUIRED,
    REASON_DRY_RUN,
    ActionKind,
    ActionPreview,
    ConfirmableAction,
    ConfirmationGate,
)


def commit_push(confirmed=False, **overrides):
    parameters = {
        "branch_name": "feature/login",
        "commit_message": "Add login form",
        "staged_files": ["src/login.py", "tests/test_login.py"],
    }
    parameters.update(overrides)
    return ConfirmableAction(ActionKind.COMMIT_PUSH, parameters, confirmed=confirmed)


class TestDestructiveActions:
    """Commit/push style actions need dry run off and explicit confirmation."""

    def test_unconfirmed_returns_preview(self, logger):
        gate = ConfirmationGate(dry_run=False, logger=logger)

        decision = gate.evaluate(commit_push(confirmed=False))

        assert decision.requires_preview
        assert not decision.proceed
        assert decision.reason == REASON_CONFIRMATION_REQUIRED
        assert decision.preview == ActionPreview(
            branch_name="feature/login",
            commit_message="Add login form",
            staged_files=["src/login.py", "tests/test_login.py"],
            operations=[
                "Would create branch: feature/login",
                "Would stage working tree changes (git add .)",
                "Would commit with message: Add login form",
                "Would push feature/login to remote (if configured)",
            ],
        )

    def test_confirmed_proceeds(self, logger):
        gate = ConfirmationGate(dry_run=False, logger=logger)

        decision = gate.evaluate(commit_push(confirmed=True))

        assert decision.proceed
        assert not decision.requires_preview
        assert decision.preview is None

    @pytest.mark.parametrize("confirmed", [True, False])
    def test_dry_run_always_previews(self, logger, confirmed):
        gate = ConfirmationGate(dry_run=True, logger=logger)

        decision = gate.evaluate(commit_push(confirmed=confirmed))

        assert decision.requires_preview
        assert not decision.proceed
        assert decision.reason == REASON_DRY_RUN

    def test_dry_run_is_default(self, logger):
        gate = ConfirmationGate(logger=logger)

        assert gate.dry_run
        assert not gate.evaluate(commit_push(confirmed=True)).proceed

    @pytest.mark.parametrize("confirmed", ["true", 1, "yes"])
    def test_truthy_non_bool_is_not_confirmation(self, logger, confirmed):
        gate = ConfirmationGate(dry_run=False, logger=logger)

        decision = gate.evaluate(commit_push(confirmed=confirmed))

        assert not decision.proceed
        assert decision.requires_preview

    def test_preview_has_no_side_effects_on_parameters(self, logger):
        gate = ConfirmationGate(dry_run=True, logger=logger)
        action = commit_push()

        gate.evaluate(action)
        gate.evaluate(action)

        assert action.parameters["staged_files"] == ["src/login.py", "tests/test_login.py"]

    def test_missing_parameters(self, logger):
        gate = ConfirmationGate(dry_run=False, logger=logger)

        decision = gate.evaluate(commit_push(confirmed=True, branch_name="  ", commit_message=None))

        assert not decision.proceed
        assert not decision.requires_preview
        assert decision.reason == "missing required parameters: branch_name, commit_message"

    def test_preview_without_staged_files(self, logger):
        gate = ConfirmationGate(dry_run=True, logger=logger)

        decision = gate.evaluate(commit_push(staged_files=None))

        assert decision.preview.staged_files == []


class TestPreviewOperations:
    """Each destructive kind lists only its own operations."""

    def test_branch_create(self, logger):
        gate = ConfirmationGate(logger=logger)
        action = ConfirmableAction(ActionKind.BRANCH_CREATE, {"branch_name": "fix/typo"})

        preview = gate.evaluate(action).preview

        assert preview.operations == ["Would create branch: fix/typo"]

    def test_push(self, logger):
        gate = ConfirmationGate(logger=logger)
        action = ConfirmableAction(ActionKind.PUSH, {"branch_name": "fix/typo"})

        preview = gate.evaluate(action).preview

        assert preview.operations == ["Would push fix/typo to remote (if configured)"]

    def test_commit(self, logger):
        gate = ConfirmationGate(logger=logger)
        action = ConfirmableAction(ActionKind.COMMIT, {"commit_message": "wip"})

        preview = gate.evaluate(action).preview

        assert preview.operations == [
            "Would stage working tree changes (git add .)",
            "Would commit with message: wip",
        ]

    def test_to_dict(self, logger):
        preview = ConfirmationGate(logger=logger).evaluate(commit_push()).preview

        data = preview.to_dict()

        assert data["branchName"] == "feature/login"
        assert data["commitMessage"] == "Add login form"
        assert data["stagedFiles"] == ["src/login.py", "tests/test_login.py"]
        assert len(data["operations"]) == 4


class TestNonDestructiveActions:
    """Read-only actions pass straight through."""

    @pytest.mark.parametrize("dry_run", [True, False])
    def test_run_tests_proceeds(self, logger, dry_run):
        gate = ConfirmationGate(dry_run=dry_run, logger=logger)

        decision = gate.evaluate(ConfirmableAction(ActionKind.RUN_TESTS))

        assert decision.proceed
        assert not decision.requires_preview

    def test_is_destructive(self, logger):
        gate = ConfirmationGate(logger=logger)

        assert gate.is_destructive(ActionKind.COMMIT_PUSH)
        assert gate.is_destructive(ActionKind.PUSH)
        assert not gate.is_destructive(ActionKind.RUN_TESTS)


class TestInvalidActions:
    """The gate never raises."""

    def test_not_an_action(self, logger):
        gate = ConfirmationGate(logger=logger)

        decision = gate.evaluate({"kind": "commit_push"})  # type: ignore[arg-type]

        assert not decision.proceed
        assert decision.reason == "invalid action"

    def test_unknown_kind(self, logger):
        action = ConfirmableAction("drop_database", {})  # type: ignore[arg-type]

        decision = ConfirmationGate(dry_run=False, logger=logger).evaluate(action)

        assert not decision.proceed
        assert decision.reason == "invalid action"
