"""Thin wrapper around git, gh and the project's test command."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..config import BranchPilotSettings
from ..errors import ExternalToolError, InvalidIdentifierError
from ..identifiers import BranchName
from .process import CommandExecutor, ProcessResult, SubprocessExecutor


@dataclass(frozen=True)
class VCSContext:
    """Everything the adapter needs from the caller's environment.

    The environment is captured once so that no operation consults
    ``os.environ`` or the process working directory behind the caller's back.
    """

    cwd: Path
    env: Mapping[str, str] = field(default_factory=dict)
    git: str = "git"
    gh: str = "gh"
    remote: str = "origin"
    main_branch: str = "main"
    test_command: Tuple[str, ...] = ("./test.sh",)

    @classmethod
    def from_settings(
        cls,
        settings: BranchPilotSettings,
        *,
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
    ) -> "VCSContext":
        return cls(
            cwd=cwd,
            env=dict(os.environ if env is None else env),
            remote=settings.remote,
            main_branch=settings.main_branch,
            test_command=tuple(settings.test_command),
        )


@dataclass(slots=True)
class AdapterOutcome:
    """Normalized result of one adapter operation."""

    ok: bool
    message: str = ""


class VCSAdapter:
    """One operation per workflow step kind.

    Mutating commands go through ``executor``; read-only queries go through
    ``reader`` (the same executor unless a dry run swaps the former out).
    Any non-zero exit raises :class:`ExternalToolError`.
    """

    def __init__(
        self,
        context: VCSContext,
        *,
        executor: Optional[CommandExecutor] = None,
        reader: Optional[CommandExecutor] = None,
    ) -> None:
        self.context = context
        self._executor = executor or SubprocessExecutor()
        self._reader = reader or self._executor

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def current_branch(self) -> BranchName:
        result = self._query([self.context.git, "rev-parse", "--abbrev-ref", "HEAD"])
        name = result.stdout.strip()
        if name == "HEAD":
            raise InvalidIdentifierError(name, "detached HEAD, check out a branch first")
        return BranchName.parse(name)

    def check_uncommitted(self) -> AdapterOutcome:
        result = self._query([self.context.git, "status", "--porcelain"])
        dirty = [line for line in result.stdout.splitlines() if line.strip()]
        if dirty:
            listing = "\n".join(dirty[:20])
            return AdapterOutcome(ok=False, message=f"{len(dirty)} uncommitted change(s):\n{listing}")
        return AdapterOutcome(ok=True, message="working tree clean")

    def report_status(self, include_pr: bool = False) -> AdapterOutcome:
        sections = [self._query([self.context.git, "status", "--short", "--branch"]).output]
        if include_pr:
            sections.append(self._query([self.context.gh, "pr", "status"]).output)
        return AdapterOutcome(ok=True, message="\n".join(part for part in sections if part))

    # ------------------------------------------------------------------
    # branch operations
    # ------------------------------------------------------------------
    def checkout_branch(self, branch: str) -> AdapterOutcome:
        name = BranchName.parse(branch)
        self._run([self.context.git, "checkout", name])
        return AdapterOutcome(ok=True, message=f"switched to {name}")

    def pull_latest(self, remote: Optional[str] = None, branch: Optional[str] = None) -> AdapterOutcome:
        args = [self.context.git, "pull", "--ff-only"]
        if branch:
            args.extend([BranchName.parse(remote or self.context.remote), BranchName.parse(branch)])
        elif remote:
            args.append(BranchName.parse(remote))
        result = self._run(args)
        return AdapterOutcome(ok=True, message=_last_line(result.output) or "pulled latest changes")

    def create_branch(self, branch: str, start_point: Optional[str] = None) -> AdapterOutcome:
        name = BranchName.parse(branch)
        args = [self.context.git, "checkout", "-b", name]
        if start_point:
            args.append(BranchName.parse(start_point))
        self._run(args)
        return AdapterOutcome(ok=True, message=f"created branch {name}")

    def rebase(self, onto: str) -> AdapterOutcome:
        target = BranchName.parse(onto)
        # Auto-accept commit messages so git never opens an editor.
        result = self._run([self.context.git, "rebase", target], extra_env={"GIT_EDITOR": "true"})
        return AdapterOutcome(ok=True, message=_last_line(result.output) or f"rebased onto {target}")

    # ------------------------------------------------------------------
    # tests and pull requests
    # ------------------------------------------------------------------
    def run_tests(self, command: Optional[Sequence[str]] = None) -> AdapterOutcome:
        argv = list(command or self.context.test_command)
        result = self._run(argv)
        return AdapterOutcome(ok=True, message=_last_line(result.output) or "tests passed")

    def create_pr(
        self,
        title: Optional[str] = None,
        body: Optional[str] = None,
        base: Optional[str] = None,
        draft: bool = False,
    ) -> AdapterOutcome:
        remote = BranchName.parse(self.context.remote)
        self._run([self.context.git, "push", "--set-upstream", remote, "HEAD"])

        args = [self.context.gh, "pr", "create", "--base", BranchName.parse(base or self.context.main_branch)]
        if title:
            args.extend(["--title", title, "--body", body or ""])
        else:
            args.append("--fill")
        if draft:
            args.append("--draft")
        result = self._run(args)
        return AdapterOutcome(ok=True, message=_last_line(result.stdout) or "pull request created")

    def merge_pr(
        self,
        pr: Optional[str] = None,
        method: str = "squash",
        delete_branch: bool = True,
    ) -> AdapterOutcome:
        if method not in {"merge", "squash", "rebase"}:
            raise ValueError(f"unsupported merge method: {method}")
        args = [self.context.gh, "pr", "merge"]
        if pr:
            args.append(pr if pr.isdigit() or pr.startswith("https://") else BranchName.parse(pr))
        args.append(f"--{method}")
        if delete_branch:
            args.append("--delete-branch")
        result = self._run(args)
        return AdapterOutcome(ok=True, message=_last_line(result.output) or "pull request merged")

    # ------------------------------------------------------------------
    def _run(self, args: List[str], *, extra_env: Optional[Dict[str, str]] = None) -> ProcessResult:
        return self._invoke(self._executor, args, extra_env)

    def _query(self, args: List[str]) -> ProcessResult:
        return self._invoke(self._reader, args, None)

    def _invoke(
        self,
        executor: CommandExecutor,
        args: List[str],
        extra_env: Optional[Dict[str, str]],
    ) -> ProcessResult:
        argv = [str(arg) for arg in args]
        env = dict(self.context.env)
        if extra_env:
            env.update(extra_env)
        result = executor.run(argv, cwd=self.context.cwd, env=env)
        if not result.succeeded:
            raise ExternalToolError(argv, result.returncode, result.output)
        return result


def _last_line(text: str) -> str:
    lines = [line for line in text.strip().splitlines() if line.strip()]
    return lines[-1].strip() if lines else ""


__all__ = ["AdapterOutcome", "VCSAdapter", "VCSContext"]
