"""Configuration system for AgentGuard.

Configuration is loaded once at process start and is immutable afterwards.
Precedence:
1. Environment variables (highest)
2. Project config (.agentguard/config.json)
3. User profile (~/.agentguard/profiles/<name>.json)
4. Defaults (lowest)
"""

import json
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from agentguard.core.exceptions import ConfigurationError

DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_MAX_MEMORY_BYTES = 512 * 1024 * 1024  # 512 MiB
DEFAULT_MAX_OUTPUT_BYTES = 10 * 1024 * 1024  # 10 MiB


@dataclass(frozen=True)
class GuardConfig:
    """Process-wide execution limits and policy switches.

    Attributes:
        timeout_ms: Default wall-clock limit per sandboxed command
        max_memory_bytes: Default advisory memory ceiling for child processes
        max_output_bytes: Default ceiling on captured stdout + stderr
        dry_run: When True every destructive action is preview-only
        allowlist: Optional replacement for the built-in command allowlist
    """

    timeout_ms: int = DEFAULT_TIMEOUT_MS
    max_memory_bytes: int = DEFAULT_MAX_MEMORY_BYTES
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    dry_run: bool = True
    allowlist: dict[str, list[str]] | None = None

    def __post_init__(self) -> None:
        """Validate configuration values."""
        for name in ("timeout_ms", "max_memory_bytes", "max_output_bytes"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(
                    f"{name} must be a positive integer, got {value!r}", key=name
                )
        if self.allowlist is not None:
            if not isinstance(self.allowlist, dict):
                raise ConfigurationError("allowlist must be a mapping", key="allowlist")
            for executable, patterns in self.allowlist.items():
                if not isinstance(patterns, list | tuple):
                    raise ConfigurationError(
                        f"allowlist entry for {executable!r} must be a list of patterns",
                        key="allowlist",
                    )

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GuardConfig":
        """Create config from dictionary, ignoring unknown keys."""
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)


def _read_config_file(path: Path, label: str) -> GuardConfig:
    try:
        with path.open() as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {label}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Failed to load {label}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{label} must contain a JSON object")
    return GuardConfig.from_dict(data)


def load_user_config(profile_name: str = "default") -> GuardConfig:
    """Load user configuration from ~/.agentguard/profiles/<name>.json.

    Returns:
        GuardConfig loaded from profile, or default config if not found

    Raises:
        ConfigurationError: If profile file is invalid
    """
    profile_path = Path.home() / ".agentguard" / "profiles" / f"{profile_name}.json"

    if not profile_path.exists():
        return GuardConfig()

    return _read_config_file(profile_path, f"profile {profile_name}")


def load_project_config(project_root: Path | None = None) -> GuardConfig | None:
    """Load project-specific configuration from .agentguard/config.json.

    Args:
        project_root: Directory containing .agentguard/ (default: current directory)

    Returns:
        GuardConfig if config file exists, None otherwise
    """
    if project_root is None:
        project_root = Path.cwd()

    config_path = project_root / ".agentguard" / "config.json"

    if not config_path.exists():
        return None

    return _read_config_file(config_path, "project config")


def _int_env(name: str) -> int | None:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {name}: {raw}", key=name) from e


def load_env_overrides() -> dict[str, Any]:
    """Load configuration overrides from environment variables.

    Supported environment variables:
    - SANDBOX_TIMEOUT: Default command timeout in milliseconds
    - SANDBOX_MAX_MEMORY: Advisory memory ceiling in bytes
    - SANDBOX_MAX_BUFFER: Output capture ceiling in bytes
    - DRY_RUN: Any value other than "false" keeps dry-run mode on

    Returns:
        Dictionary of configuration overrides
    """
    overrides: dict[str, Any] = {}

    for env_name, key in (
        ("SANDBOX_TIMEOUT", "timeout_ms"),
        ("SANDBOX_MAX_MEMORY", "max_memory_bytes"),
        ("SANDBOX_MAX_BUFFER", "max_output_bytes"),
    ):
        value = _int_env(env_name)
        if value is not None:
            overrides[key] = value

    if (dry_run := os.getenv("DRY_RUN")) is not None:
        overrides["dry_run"] = dry_run.strip().lower() != "false"

    return overrides


def merge_configs(
    base: GuardConfig,
    project: GuardConfig | None = None,
    env_overrides: dict[str, Any] | None = None,
) -> GuardConfig:
    """Merge configurations with precedence: env > project > base."""
    merged = base.to_dict()
    defaults = GuardConfig().to_dict()

    if project:
        for key, value in project.to_dict().items():
            if key == "allowlist" and isinstance(value, dict):
                merged_allowlist = dict(merged.get("allowlist") or {})
                merged_allowlist.update(value)
                merged["allowlist"] = merged_allowlist
            elif value != defaults.get(key):
                merged[key] = value

    if env_overrides:
        merged.update(env_overrides)

    return GuardConfig.from_dict(merged)


def load_config(profile_name: str = "default", project_root: Path | None = None) -> GuardConfig:
    """Load and merge all configuration sources.

    Raises:
        ConfigurationError: If any config source is invalid
    """
    base_config = load_user_config(profile_name)
    project_config = load_project_config(project_root)
    env_overrides = load_env_overrides()

    return merge_configs(base_config, project_config, env_overrides)
