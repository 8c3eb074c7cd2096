"""CLI entry points for AgentGuard.

Implements a click-based CLI over the validator, sandbox, publish workflow
and secret store.
"""

import asyncio
import os
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from agentguard.core.command_executor import ExecutionResult, Violation
from agentguard.core.config import GuardConfig, load_config
from agentguard.core.exceptions import (
    AgentGuardException,
    ConfigurationError,
    format_error_for_user,
)
from agentguard.core.executors.process_sandbox import ProcessSandbox
from agentguard.core.logger import GuardLogger
from agentguard.security.command_validator import CommandValidator
from agentguard.security.confirmation import ConfirmationGate
from agentguard.security.secret_store import SecretStore
from agentguard.tools.git_publish import GitPublisher

# Load .env file from current directory or parent directories
load_dotenv()

console = Console()


def _load_config_or_exit(profile: str) -> GuardConfig:
    try:
        return load_config(profile)
    except ConfigurationError as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(1)


def _print_result(result: ExecutionResult) -> None:
    if result.stdout:
        console.print(result.stdout, end="", markup=False, highlight=False)
    if result.stderr:
        console.print(result.stderr, end="", style="red", markup=False, highlight=False)

    if result.succeeded:
        console.print(
            f"\n[green]✓ exit {result.exit_code}[/green] [dim]({result.duration_ms} ms)[/dim]"
        )
    elif result.violation is Violation.NONE:
        console.print(f"\n[yellow]✗ exit {result.exit_code}[/yellow]")
    else:
        console.print(f"\n[bold red]✗ {result.violation.value}:[/bold red] {result.reason}")


@click.group()
@click.version_option(version="0.1.0", prog_name="agentguard")
def cli() -> None:
    """AgentGuard: execution safety for AI coding assistants."""
    pass


@cli.command()
@click.argument("command")
@click.option("--profile", "-p", default="default", help="Configuration profile")
def validate(command: str, profile: str) -> None:
    """Check whether COMMAND would be allowed to run.

    Examples:
        agentguard validate "git status"
    """
    config = _load_config_or_exit(profile)
    result = CommandValidator(config.allowlist).validate(command)

    if result.allowed:
        console.print(f"[green]✓ allowed:[/green] {result.sanitized_command}")
    else:
        console.print(f"[bold red]✗ denied:[/bold red] {result.reason}")
        sys.exit(1)


@cli.command()
@click.argument("command")
@click.option("--cwd", "-C", default=".", help="Working directory")
@click.option("--profile", "-p", default="default", help="Configuration profile")
@click.option("--timeout-ms", type=int, default=None, help="Wall-clock limit in milliseconds")
@click.option("--max-output-bytes", type=int, default=None, help="Captured output ceiling")
@click.option("--max-memory-bytes", type=int, default=None, help="Advisory memory ceiling")
def run(
    command: str,
    cwd: str,
    profile: str,
    timeout_ms: int | None,
    max_output_bytes: int | None,
    max_memory_bytes: int | None,
) -> None:
    """Run COMMAND inside the sandbox.

    Examples:
        agentguard run "npm test" --cwd ./my-app --timeout-ms 120000
    """
    config = _load_config_or_exit(profile)
    working_directory = Path(cwd).resolve()
    if not working_directory.is_dir():
        console.print(f"[bold red]Error:[/bold red] not a directory: {working_directory}")
        sys.exit(1)

    sandbox = ProcessSandbox(config=config, logger=GuardLogger())
    try:
        request = sandbox.request(
            command,
            str(working_directory),
            timeout_ms=timeout_ms,
            max_output_bytes=max_output_bytes,
            max_memory_bytes=max_memory_bytes,
        )
    except AgentGuardException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(2)

    result = asyncio.run(sandbox.execute(request))
    _print_result(result)
    sys.exit(0 if result.succeeded else 1)


@cli.command()
@click.option("--branch", "-b", "branch_name", required=True, help="Branch to create")
@click.option("--message", "-m", "commit_message", required=True, help="Commit message")
@click.option("--repo", "-r", default=".", help="Repository path")
@click.option("--confirm", is_flag=True, help="Actually create, commit and push")
@click.option("--profile", "-p", default="default", help="Configuration profile")
def publish(branch_name: str, commit_message: str, repo: str, confirm: bool, profile: str) -> None:
    """Create a branch, commit and push (preview unless confirmed).

    Dry-run mode is on unless DRY_RUN=false; in dry-run mode only a preview
    is shown even with --confirm.
    """
    config = _load_config_or_exit(profile)
    repo_path = Path(repo).resolve()
    if not (repo_path / ".git").exists():
        console.print(f"[bold red]Error:[/bold red] not a git repository: {repo_path}")
        sys.exit(1)

    logger = GuardLogger()
    sandbox = ProcessSandbox(config=config, logger=logger)
    publisher = GitPublisher(sandbox, ConfirmationGate(dry_run=config.dry_run, logger=logger))
    result = asyncio.run(publisher.publish(str(repo_path), branch_name, commit_message, confirm))

    if result.preview is not None:
        console.print(f"[yellow]{result.message}[/yellow]\n")
        console.print(f"[bold]Branch:[/bold] {result.preview.branch_name}")
        console.print(f"[bold]Message:[/bold] {result.preview.commit_message}")
        staged = result.preview.staged_files
        console.print(f"[bold]Staged files:[/bold] {len(staged)}")
        for path in staged[:10]:
            console.print(f"[dim]    • {path}[/dim]")
        if len(staged) > 10:
            console.print(f"[dim]    • ... {len(staged) - 10} more[/dim]")
        for operation in result.preview.operations:
            console.print(f"  - {operation}")
        return

    if result.success:
        style = "green" if result.pushed else "yellow"
        console.print(f"[{style}]{result.message}[/{style}]")
        if result.push_error:
            console.print(f"[dim]push: {result.push_error}[/dim]")
        return

    console.print(f"[bold red]Error:[/bold red] {result.message}")
    sys.exit(1)


@cli.group()
def key() -> None:
    """Manage the stored LLM API key."""
    pass


@key.command("set")
def key_set() -> None:
    """Store the API key in the OS keychain."""
    store = SecretStore(logger=GuardLogger())
    secret = click.prompt("API key", hide_input=True)
    try:
        stored = store.store(secret)
    except AgentGuardException as e:
        console.print(f"[bold red]Error:[/bold red] {format_error_for_user(e)}")
        sys.exit(2)

    if stored:
        console.print("[green]✓ API key stored in OS keychain[/green]")
    else:
        console.print("[bold red]Failed to store key:[/bold red] keychain not available")
        console.print(f"[dim]{store.status()['instructions']}[/dim]")
        sys.exit(1)


@key.command("status")
def key_status() -> None:
    """Show whether a keychain is available and a key is present."""
    status = SecretStore(logger=GuardLogger()).status()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_row("Keychain available", "yes" if status["keychainAvailable"] else "no")
    table.add_row("Key present", "yes" if status["hasKey"] else "no")
    console.print(table)
    console.print(f"\n[dim]{status['instructions']}[/dim]")


@key.command("delete")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
def key_delete(yes: bool) -> None:
    """Delete the API key from the OS keychain."""
    if not yes:
        answer = console.input("[yellow]Delete stored API key? (y/N):[/yellow] ")
        if answer.lower() != "y":
            console.print("[dim]Cancelled[/dim]")
            return

    if SecretStore(logger=GuardLogger()).delete():
        console.print("[green]✓ API key deleted from keychain[/green]")
    else:
        console.print("[yellow]No key found in keychain[/yellow]")
        sys.exit(1)


@cli.group()
def config() -> None:
    """Inspect configuration."""
    pass


@config.command("show")
@click.argument("profile_name", default="default")
def config_show(profile_name: str) -> None:
    """Show the effective configuration for a profile."""
    config_data = _load_config_or_exit(profile_name)
    console.print(f"[bold]Profile: {profile_name}[/bold]\n")
    console.print(f"Timeout: {config_data.timeout_ms} ms")
    console.print(f"Max Output: {config_data.max_output_bytes} bytes")
    console.print(f"Max Memory (advisory): {config_data.max_memory_bytes} bytes")
    console.print(f"Dry Run: {config_data.dry_run}")
    allowlist = config_data.allowlist
    console.print(f"Allowlist: {'custom' if allowlist else 'built-in'}")
    if os.environ.get("DRY_RUN") is not None:
        console.print("[dim]DRY_RUN is set in the environment[/dim]")


if __name__ == "__main__":
    cli()
