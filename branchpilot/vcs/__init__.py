"""Version-control and PR-hosting boundary."""

from .adapter import AdapterOutcome, VCSAdapter, VCSContext
from .process import CommandExecutor, DryRunExecutor, ProcessResult, SubprocessExecutor

__all__ = [
    "AdapterOutcome",
    "CommandExecutor",
    "DryRunExecutor",
    "ProcessResult",
    "SubprocessExecutor",
    "VCSAdapter",
    "VCSContext",
]
