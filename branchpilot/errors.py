"""Exception hierarchy shared by the registry, runner and adapter."""
from __future__ import annotations

from typing import Optional, Sequence


class BranchPilotError(Exception):
    """Base class for every error raised by branchpilot."""


class UsageError(BranchPilotError):
    """Configuration or invocation problem. Never retried."""

    exit_code = 2


class DuplicateNameError(UsageError):
    def __init__(self, name: str) -> None:
        super().__init__(f"workflow '{name}' is already registered")
        self.name = name


class UnknownCommandError(UsageError):
    def __init__(self, name: str, known: Sequence[str] = ()) -> None:
        message = f"unknown command '{name}'"
        if known:
            message += f" (available: {', '.join(sorted(known))})"
        super().__init__(message)
        self.name = name


class MissingArgumentError(UsageError):
    def __init__(self, message: str, argument: Optional[str] = None) -> None:
        super().__init__(message)
        self.argument = argument


class InvalidIdentifierError(UsageError):
    def __init__(self, value: str, reason: str) -> None:
        super().__init__(f"invalid identifier {value!r}: {reason}")
        self.value = value
        self.reason = reason


class ExternalToolError(BranchPilotError):
    """An external command (git, gh, test runner) exited non-zero."""

    def __init__(self, command: Sequence[str], returncode: int, output: str = "") -> None:
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        summary = output.strip().splitlines()[-1] if output.strip() else "no output"
        super().__init__(f"`{' '.join(self.command)}` exited with {returncode}: {summary}")


__all__ = [
    "BranchPilotError",
    "UsageError",
    "DuplicateNameError",
    "UnknownCommandError",
    "MissingArgumentError",
    "InvalidIdentifierError",
    "ExternalToolError",
]
