from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import pytest

from branchpilot.vcs import ProcessResult, VCSAdapter, VCSContext


@dataclass
class RecordingExecutor:
    """Records every command and answers from replies scripted by argv prefix."""

    commands: List[List[str]] = field(default_factory=list)
    envs: List[Dict[str, str]] = field(default_factory=list)
    scripted: List[Tuple[Tuple[str, ...], List[ProcessResult], bool]] = field(default_factory=list)

    def respond(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
        times: Optional[int] = None,
    ) -> None:
        """Script a reply. Replies scripted later win; ``times=None`` never runs out."""
        reply = ProcessResult(args=list(prefix), returncode=returncode, stdout=stdout, stderr=stderr)
        remaining = [reply] * (times or 1)
        self.scripted.insert(0, (tuple(prefix), remaining, times is None))

    def fail(self, *prefix: str, stderr: str = "fatal: boom", returncode: int = 1, times: Optional[int] = None) -> None:
        self.respond(*prefix, stderr=stderr, returncode=returncode, times=times)

    def run(self, args: Sequence[str], *, cwd: Path, env: Mapping[str, str]) -> ProcessResult:
        argv = list(args)
        self.commands.append(argv)
        self.envs.append(dict(env))
        for prefix, remaining, sticky in self.scripted:
            if tuple(argv[: len(prefix)]) != prefix or not remaining:
                continue
            reply = remaining[0] if sticky else remaining.pop(0)
            return ProcessResult(args=argv, returncode=reply.returncode, stdout=reply.stdout, stderr=reply.stderr)
        return ProcessResult(args=argv, returncode=0)

    def ran(self, *prefix: str) -> List[List[str]]:
        return [argv for argv in self.commands if tuple(argv[: len(prefix)]) == prefix]


@pytest.fixture
def executor() -> RecordingExecutor:
    recorder = RecordingExecutor()
    recorder.respond("git", "rev-parse", "--abbrev-ref", "HEAD", stdout="feature/login\n")
    return recorder


@pytest.fixture
def context(tmp_path: Path) -> VCSContext:
    return VCSContext(cwd=tmp_path, env={"PATH": "/usr/bin"}, test_command=("./test.sh", "--quick"))


@pytest.fixture
def adapter(context: VCSContext, executor: RecordingExecutor) -> VCSAdapter:
    return VCSAdapter(context, executor=executor)


def git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True, text=True)
    return completed.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A clone of a local bare remote with one pushed commit on ``main``."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for prefix in ("GIT_AUTHOR", "GIT_COMMITTER"):
        monkeypatch.setenv(f"{prefix}_NAME", "Test User")
        monkeypatch.setenv(f"{prefix}_EMAIL", "test@example.com")

    remote = tmp_path / "remote.git"
    git(tmp_path, "init", "--bare", str(remote))
    git(remote, "symbolic-ref", "HEAD", "refs/heads/main")

    work = tmp_path / "work"
    git(tmp_path, "clone", str(remote), str(work))
    git(work, "symbolic-ref", "HEAD", "refs/heads/main")
    (work / "README.md").write_text("hello\n")
    git(work, "add", "README.md")
    git(work, "commit", "-m", "initial commit")
    git(work, "push", "-u", "origin", "main")
    return work
