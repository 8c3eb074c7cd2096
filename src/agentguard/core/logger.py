"""Structured JSON logging for AgentGuard.

Every component logs through GuardLogger: one JSON object per line, written
to stderr and (unless disabled) to a rotating file under ~/.agentguard/logs.
Secret values are never passed in; fields whose names look like credentials
are masked by the formatter regardless.
"""

import json
import logging
import os
import sys
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

LOGGER_NAME = "agentguard"
LOG_FILE_NAME = "agentguard.log"
DEFAULT_LOG_DIR = "~/.agentguard/logs"
DEFAULT_LEVEL = "WARNING"

REDACTED = "[REDACTED]"
SENSITIVE_FIELDS = frozenset({"secret", "password", "api_key", "apikey", "token", "key"})


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes")


def _level_number(level: str) -> int:
    name = level.strip().upper()
    if name == "WARN":
        name = "WARNING"
    value = logging.getLevelName(name)
    return value if isinstance(value, int) else logging.INFO


class GuardLogger:
    """Structured JSON logger with rotation and operation timing.

    Loggers created with ``bind`` share handlers with their parent and add
    fixed fields to every line they emit.
    """

    log_dir: Path | None
    log_file: Path | None

    def __init__(
        self,
        log_dir: str | None = None,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        level: str | None = None,
    ) -> None:
        """Configure the shared ``agentguard`` logger.

        Re-creating a GuardLogger replaces the handlers of the previous one.

        Args:
            log_dir: Directory for the log file (defaults to ~/.agentguard/logs/)
            max_bytes: File size before rotation
            backup_count: Rotated files to keep
            level: DEBUG/INFO/WARN/ERROR; falls back to AGENTGUARD_LOG_LEVEL, then WARNING
        """
        self._logger = logging.getLogger(LOGGER_NAME)
        self._logger.propagate = False
        self._context: dict[str, Any] = {}

        for handler in list(self._logger.handlers):
            handler.close()
            self._logger.removeHandler(handler)

        formatter = JSONFormatter()

        if _env_flag("AGENTGUARD_DISABLE_FILE_LOGGING"):
            self.log_dir = None
            self.log_file = None
        else:
            self.log_dir = Path(log_dir) if log_dir else Path(DEFAULT_LOG_DIR).expanduser()
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = self.log_dir / LOG_FILE_NAME
            file_handler = RotatingFileHandler(
                self.log_file, maxBytes=max_bytes, backupCount=backup_count
            )
            file_handler.setFormatter(formatter)
            self._logger.addHandler(file_handler)

        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(formatter)
        self._logger.addHandler(stderr_handler)

        self.set_level(level or os.environ.get("AGENTGUARD_LOG_LEVEL", DEFAULT_LEVEL))

    def bind(self, **context: Any) -> "GuardLogger":
        """Return a logger that adds ``context`` to every entry."""
        child = object.__new__(GuardLogger)
        child._logger = self._logger
        child._context = {**self._context, **context}
        child.log_dir = self.log_dir
        child.log_file = self.log_file
        return child

    def set_level(self, level: str) -> None:
        """Set the threshold; WARN is accepted as an alias of WARNING."""
        self._logger.setLevel(_level_number(level))

    def debug(self, msg: str, **kv: Any) -> None:
        self._emit(logging.DEBUG, msg, kv)

    def info(self, msg: str, **kv: Any) -> None:
        self._emit(logging.INFO, msg, kv)

    def warn(self, msg: str, **kv: Any) -> None:
        self._emit(logging.WARNING, msg, kv)

    def error(self, msg: str, **kv: Any) -> None:
        self._emit(logging.ERROR, msg, kv)

    def _emit(self, level: int, msg: str, kv: Mapping[str, Any]) -> None:
        if self._logger.isEnabledFor(level):
            self._logger.log(level, msg, extra={"kv": {**self._context, **kv}})

    @contextmanager
    def operation(self, operation_name: str, **kv: Any) -> Iterator[None]:
        """Log ``<name>_start`` and ``<name>_end`` around a block.

        The end entry carries ``duration_ms`` and is written even when the
        block raises.

        Example:
            with logger.operation("git_publish", branch="feature/x"):
                ...
        """
        started = time.monotonic()
        self.info(f"{operation_name}_start", **kv)
        try:
            yield
        finally:
            duration_ms = round((time.monotonic() - started) * 1000, 3)
            self.info(f"{operation_name}_end", duration_ms=duration_ms, **kv)


class JSONFormatter(logging.Formatter):
    """Formats log records as JSON lines."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=UTC)
        entry: dict[str, Any] = {
            "timestamp": created.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "message": record.getMessage(),
        }

        fields = getattr(record, "kv", None) or {}
        for name, value in fields.items():
            entry[name] = REDACTED if name.lower() in SENSITIVE_FIELDS else value

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)
