"""Runtime configuration helpers for branchpilot."""
from __future__ import annotations

import os
import shlex
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

CONFIG_ENV_VAR = "BRANCHPILOT_CONFIG"

_ENV_OVERRIDES = {
    "BRANCHPILOT_MAIN_BRANCH": "main_branch",
    "BRANCHPILOT_REMOTE": "remote",
    "BRANCHPILOT_TEST_COMMAND": "test_command",
}


def default_config_files() -> List[Path]:
    return [
        Path.cwd() / ".branchpilot.toml",
        Path.home() / ".config" / "branchpilot" / "config.toml",
    ]


class BranchPilotSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    main_branch: str = Field(default="main", description="Branch that features start from and merge into")
    remote: str = Field(default="origin", description="Remote used for pull and push")
    test_command: List[str] = Field(default_factory=lambda: ["./test.sh"], description="Command run by run_tests steps")
    feature_prefix: str = Field(default="feature/", description="Prefix for new-feature branches")
    bugfix_prefix: str = Field(default="bugfix/", description="Prefix for new-bugfix branches")
    merge_method: Literal["merge", "squash", "rebase"] = Field(default="squash", description="gh pr merge strategy")
    delete_branch_on_merge: bool = Field(default=True, description="Delete the head branch after merging")
    max_attempts: int = Field(default=2, ge=1, description="Attempts allowed for idempotent steps")
    use_color: bool = Field(default=True, description="Use Rich colour output")
    workflows_dir: Optional[Path] = Field(default=None, description="Directory holding user workflow JSON files")
    run_log_root: Optional[Path] = Field(default=None, description="Write per-run event logs here when set")

    @field_validator("test_command", mode="before")
    @classmethod
    def _split_command(cls, value: Any) -> Any:
        if isinstance(value, str):
            return shlex.split(value)
        return value

    @model_validator(mode="after")
    def _normalize_paths(self) -> "BranchPilotSettings":
        if not self.test_command:
            raise ValueError("test_command must not be empty")
        if self.workflows_dir is not None:
            self.workflows_dir = self.workflows_dir.expanduser()
        if self.run_log_root is not None:
            self.run_log_root = self.run_log_root.expanduser()
        return self

    def resolved_workflows_dir(self) -> Path:
        if self.workflows_dir is not None:
            return self.workflows_dir
        return Path.home() / ".config" / "branchpilot" / "workflows"

    def to_dict(self) -> Dict[str, Any]:
        data = self.model_dump()
        data["workflows_dir"] = str(self.resolved_workflows_dir())
        data["run_log_root"] = str(self.run_log_root) if self.run_log_root else None
        return data


@dataclass
class ConfigLoadResult:
    settings: BranchPilotSettings
    source: Optional[Path]
    searched: List[Path]


def _load_toml(path: Path) -> Dict[str, Any]:
    with path.open("rb") as fh:
        data = tomllib.load(fh)
    # Allow either a flat file or a [branchpilot] table.
    return data.get("branchpilot", data)


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.getenv(env_name)
        if value:
            overrides[field_name] = value
    return overrides


def load_config(explicit_path: Optional[Path] = None) -> ConfigLoadResult:
    """Load configuration from the first available location, then apply env overrides."""
    candidates: List[Path] = []
    if explicit_path is not None:
        candidates.append(explicit_path.expanduser())
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        candidates.append(Path(env_path).expanduser())
    candidates.extend(default_config_files())

    config_data: Dict[str, Any] = {}
    loaded_from: Optional[Path] = None
    for candidate in candidates:
        if candidate.is_file():
            config_data = _load_toml(candidate)
            loaded_from = candidate
            break

    config_data.update(_env_overrides())
    return ConfigLoadResult(settings=BranchPilotSettings(**config_data), source=loaded_from, searched=candidates)


__all__ = ["BranchPilotSettings", "ConfigLoadResult", "CONFIG_ENV_VAR", "load_config"]
