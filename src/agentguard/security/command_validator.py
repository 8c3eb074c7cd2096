"""Command validation for sandboxed execution.

Classifies a raw command string as allowed or denied before any process is
created. Checks run in a fixed order and the first failure wins:

1. shell metacharacters (piping, redirection, background, chaining)
2. control characters such as NUL
3. denylist of dangerous patterns
4. allowlist of executables and their argument prefixes

Both rejection layers run before the allowlist, so an allowlist entry can
never rescue a dangerous or chained command.
"""

import re
import shlex
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import ClassVar

REASON_INVALID = "invalid command"
REASON_SHELL_METACHAR = "shell redirection/piping not allowed"
REASON_CHAINING = "command chaining/substitution not allowed"
REASON_CONTROL_CHARS = "control characters not allowed"

# Patterns prefixed with this marker are used as regular expressions verbatim.
REGEX_PATTERN_PREFIX = "re:"

_METACHAR_SPLIT = re.compile(r"[|><&]")
_CHAINING = re.compile(r";|\n|\r|`|\$\(")
# Tab is ordinary whitespace; newline and carriage return count as chaining
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


@dataclass(frozen=True)
class Command:
    """A parsed command: raw text plus its executable and argument string."""

    raw: str
    executable: str
    arguments: str
    argv: tuple[str, ...]

    @classmethod
    def parse(cls, raw: str) -> "Command":
        """Split a command using shell-word rules without expanding anything.

        Raises:
            ValueError: If the command is empty or its quoting is unbalanced
        """
        text = raw.strip()
        tokens = shlex.split(text)
        if not tokens:
            raise ValueError("empty command")
        return cls(
            raw=text,
            executable=tokens[0],
            arguments=" ".join(tokens[1:]),
            argv=tuple(tokens),
        )


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one raw command."""

    allowed: bool
    sanitized_command: str | None = None
    reason: str | None = None
    command: Command | None = None

    @classmethod
    def deny(cls, reason: str) -> "ValidationResult":
        return cls(allowed=False, reason=reason)


# (pattern class, regex) pairs, matched case-insensitively against the raw command
DANGEROUS_PATTERNS: tuple[tuple[str, str], ...] = (
    ("recursive/forced deletion", r"\brm\s+(?:\S+\s+)*?-[a-z]*[rf]"),
    ("recursive/forced deletion", r"\brm\s+(?:\S+\s+)*?--(?:recursive|force)\b"),
    ("recursive/forced deletion", r"\b(?:del|rmdir|rd)\s+(?:\S+\s+)*?/s\b"),
    ("privilege escalation", r"\bsudo\b"),
    ("privilege escalation", r"\bsu\b"),
    ("privilege escalation", r"\bdoas\b"),
    ("privilege escalation", r"\brunas\b"),
    ("system power/format operation", r"\b(?:shutdown|reboot|poweroff|halt)\b"),
    ("system power/format operation", r"\bmkfs\b"),
    ("system power/format operation", r"\bdd\s+if="),
    ("system power/format operation", r"(?:^|\s)format\s+[a-z]:"),
    ("system power/format operation", r"\b(?:fdisk|diskpart)\b"),
    ("pipe to shell interpreter", r"\|\s*(?:sh|bash|zsh|dash|ksh|cmd|powershell|pwsh)\b"),
    ("output redirection to device", r">\s*/dev/"),
    ("remote fetch and execute", r"\b(?:curl|wget)\b.*\|\s*\S*(?:sh|python\d*)\b"),
    ("dynamic code execution", r"\b(?:eval|exec|system)\s*\("),
    ("dynamic code execution", r"^\s*(?:eval|exec)\b"),
    ("permission widening", r"\bchmod\s+(?:-\w+\s+)*0?777\b"),
    ("permission widening", r"\bchown\s+"),
    ("forceful process termination", r"\bkill\s+(?:-9|-kill|-sigkill)\b"),
    ("forceful process termination", r"\b(?:pkill|killall)\b"),
)

DEFAULT_ALLOWLIST: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "git": (
            "status",
            "diff",
            "log",
            "ls-files",
            "diff --cached --name-only",
            "checkout -b",
            "add .",
            "commit -m",
            "push -u origin",
            "branch",
            "remote -v",
            "show",
        ),
        "npm": ("test", "run test"),
        "yarn": ("test",),
        "python": ("-m pytest", "-m unittest"),
        "python3": ("-m pytest", "-m unittest"),
        # Zero-risk utilities: any arguments
        "pytest": (),
        "ls": (),
        "dir": (),
        "pwd": (),
        "echo": (),
    }
)


def _compile_argument_pattern(pattern: str) -> re.Pattern[str]:
    if pattern.startswith(REGEX_PATTERN_PREFIX):
        body = pattern[len(REGEX_PATTERN_PREFIX) :]
    else:
        body = r"\s+".join(re.escape(word) for word in pattern.split())
    return re.compile(rf"^(?:{body})(?:\s|$)", re.IGNORECASE)


class CommandValidator:
    """Validates raw commands against the denylist and allowlist.

    The allowlist is frozen at construction; there is no mutation path.
    """

    DANGEROUS_PATTERNS: ClassVar[tuple[tuple[str, str], ...]] = DANGEROUS_PATTERNS

    def __init__(self, allowlist: Mapping[str, Iterable[str]] | None = None) -> None:
        """Initialize command validator.

        Args:
            allowlist: Executable -> allowed argument prefixes. An empty set of
                prefixes allows any arguments. None uses DEFAULT_ALLOWLIST.
        """
        source = DEFAULT_ALLOWLIST if allowlist is None else allowlist
        self.allowlist: Mapping[str, tuple[str, ...]] = MappingProxyType(
            {exe: tuple(patterns) for exe, patterns in source.items()}
        )
        self._argument_patterns: Mapping[str, tuple[re.Pattern[str], ...]] = MappingProxyType(
            {
                exe: tuple(_compile_argument_pattern(p) for p in patterns)
                for exe, patterns in self.allowlist.items()
            }
        )
        self._denylist = tuple(
            (category, re.compile(pattern, re.IGNORECASE))
            for category, pattern in self.DANGEROUS_PATTERNS
        )

    def validate(self, raw_command: str) -> ValidationResult:
        """Classify a raw command. Never raises.

        Args:
            raw_command: Command text as supplied by the caller

        Returns:
            ValidationResult; when allowed, sanitized_command is the trimmed
            command and command holds its parsed form
        """
        if not raw_command or not isinstance(raw_command, str) or not raw_command.strip():
            return ValidationResult.deny(REASON_INVALID)

        trimmed = raw_command.strip()

        # Everything before the first pipe/redirect/background character
        sanitized = _METACHAR_SPLIT.split(trimmed, maxsplit=1)[0].strip()
        if sanitized != trimmed:
            return ValidationResult.deny(REASON_SHELL_METACHAR)

        if _CHAINING.search(trimmed):
            return ValidationResult.deny(REASON_CHAINING)

        if _CONTROL_CHARS.search(trimmed):
            return ValidationResult.deny(REASON_CONTROL_CHARS)

        category = self.match_denylist(trimmed)
        if category is not None:
            return ValidationResult.deny(f"dangerous pattern detected: {category}")

        try:
            command = Command.parse(trimmed)
        except ValueError as e:
            return ValidationResult.deny(f"could not parse command: {e}")

        reason = self._check_allowlist(command)
        if reason is not None:
            return ValidationResult.deny(reason)

        return ValidationResult(allowed=True, sanitized_command=trimmed, command=command)

    def is_allowed(self, raw_command: str) -> bool:
        """Check if command may run."""
        return self.validate(raw_command).allowed

    def match_denylist(self, raw_command: str) -> str | None:
        """Return the pattern class of the first dangerous match, or None."""
        for category, pattern in self._denylist:
            if pattern.search(raw_command):
                return category
        return None

    def _check_allowlist(self, command: Command) -> str | None:
        patterns = self._argument_patterns.get(command.executable)
        if patterns is None:
            return f"command not in allowlist: {command.executable}"

        if not patterns:
            return None

        if any(p.match(command.arguments) for p in patterns):
            return None

        return f"arguments not allowed for {command.executable}: {command.arguments or '(none)'}"
