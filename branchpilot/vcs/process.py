"""Executors that run external commands for the VCS adapter."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional, Protocol, Sequence


@dataclass(slots=True)
class ProcessResult:
    """Exit status and captured output of one external command."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


class CommandExecutor(Protocol):
    """Minimal interface for running a command without a shell."""

    def run(
        self, args: Sequence[str], *, cwd: Path, env: Mapping[str, str]
    ) -> ProcessResult:  # pragma: no cover - protocol definition
        ...


@dataclass(slots=True)
class SubprocessExecutor:
    """Run commands with :func:`subprocess.run`, capturing output."""

    timeout: Optional[float] = None

    def run(self, args: Sequence[str], *, cwd: Path, env: Mapping[str, str]) -> ProcessResult:
        argv = list(args)
        if not Path(cwd).is_dir():
            return ProcessResult(args=argv, returncode=127, stderr=f"working directory does not exist: {cwd}")
        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                env=dict(env),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            return ProcessResult(args=argv, returncode=127, stderr=f"{argv[0]}: command not found ({exc})")
        except PermissionError as exc:
            return ProcessResult(args=argv, returncode=126, stderr=f"{argv[0]}: permission denied, is it executable? ({exc})")
        except OSError as exc:
            return ProcessResult(args=argv, returncode=127, stderr=f"{argv[0]}: could not be started ({exc})")
        except subprocess.TimeoutExpired:
            return ProcessResult(args=argv, returncode=124, stderr=f"timed out after {self.timeout}s")
        return ProcessResult(
            args=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


@dataclass(slots=True)
class DryRunExecutor:
    """Record mutating commands instead of running them. Every command succeeds.

    Read-only queries are not sent here; the adapter routes them to its reader.
    """

    commands: List[List[str]] = field(default_factory=list)

    def run(self, args: Sequence[str], *, cwd: Path, env: Mapping[str, str]) -> ProcessResult:
        argv = list(args)
        self.commands.append(argv)
        return ProcessResult(args=argv, returncode=0)


__all__ = ["CommandExecutor", "DryRunExecutor", "ProcessResult", "SubprocessExecutor"]
