import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from branchpilot import cli

from conftest import RecordingExecutor


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        f'workflows_dir = "{tmp_path / "workflows"}"\n'
        f'run_log_root = "{tmp_path / "runs"}"\n'
        "use_color = false\n"
    )
    monkeypatch.setenv("BRANCHPILOT_CONFIG", str(config_path))
    return config_path


@pytest.fixture
def recorder(monkeypatch: pytest.MonkeyPatch, executor: RecordingExecutor) -> RecordingExecutor:
    monkeypatch.setattr(cli, "_make_executor", lambda: executor)
    return executor


def test_cli_list(config_file: Path) -> None:
    result = CliRunner().invoke(cli.app, ["list"])

    assert result.exit_code == 0, result.output
    for name in ("new-feature", "new-bugfix", "sync-main", "ship-it", "create-pr"):
        assert name in result.stdout


def test_cli_show(config_file: Path) -> None:
    result = CliRunner().invoke(cli.app, ["show", "new-feature"])

    assert result.exit_code == 0, result.output
    assert "create_branch" in result.stdout
    assert "feature/{name}" in result.stdout


def test_cli_run_completes(config_file: Path, recorder: RecordingExecutor) -> None:
    result = CliRunner().invoke(cli.app, ["run", "new-feature", "login"])

    assert result.exit_code == 0, result.output
    assert ["git", "checkout", "-b", "feature/login"] in recorder.commands
    assert "completed" in result.stdout


def test_cli_run_key_value_arguments(config_file: Path, recorder: RecordingExecutor) -> None:
    result = CliRunner().invoke(cli.app, ["run", "new-bugfix", "base=develop", "crash"])

    assert result.exit_code == 0, result.output
    assert ["git", "checkout", "develop"] in recorder.commands
    assert ["git", "checkout", "-b", "bugfix/crash"] in recorder.commands


def test_cli_run_aborted_exit_code(config_file: Path, recorder: RecordingExecutor) -> None:
    recorder.fail("git", "rebase", stderr="CONFLICT in app.py")

    result = CliRunner().invoke(cli.app, ["run", "sync-main"])

    assert result.exit_code == 1
    assert "aborted" in result.stdout
    assert "CONFLICT" in result.stdout


@pytest.mark.parametrize(
    "args",
    [
        ["run", "deploy"],
        ["run", "new-feature"],
        ["run", "new-feature", "bad;name"],
        ["run", "run-tests", "surplus"],
    ],
)
def test_cli_usage_errors_exit_2(config_file: Path, recorder: RecordingExecutor, args) -> None:
    result = CliRunner().invoke(cli.app, args)

    assert result.exit_code == 2, result.output
    assert "error" in result.stdout
    assert recorder.commands == []


def test_cli_missing_repo_directory_is_a_usage_error(config_file: Path, recorder: RecordingExecutor, tmp_path: Path) -> None:
    result = CliRunner().invoke(cli.app, ["run", "status", "--repo", str(tmp_path / "absent")])

    assert result.exit_code == 2
    assert recorder.commands == []


def test_cli_dry_run_does_not_mutate(config_file: Path, recorder: RecordingExecutor) -> None:
    result = CliRunner().invoke(cli.app, ["run", "ship-it", "42", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert recorder.ran("gh", "pr", "merge") == []
    assert recorder.ran("git", "checkout") == []
    assert "gh pr merge 42 --squash" in result.stdout


def test_cli_run_writes_run_log(config_file: Path, recorder: RecordingExecutor, tmp_path: Path) -> None:
    result = CliRunner().invoke(cli.app, ["run", "status"])

    assert result.exit_code == 0, result.output
    run_dirs = list((tmp_path / "runs").iterdir())
    assert len(run_dirs) == 1
    metadata = json.loads((run_dirs[0] / "run.json").read_text(encoding="utf-8"))
    assert metadata["status"] == "completed"
    assert metadata["steps"][0]["kind"] == "report_status"
    assert "completed" in metadata["report"]


def test_cli_rejected_run_is_logged(config_file: Path, recorder: RecordingExecutor, tmp_path: Path) -> None:
    result = CliRunner().invoke(cli.app, ["run", "new-feature", "bad;name"])

    assert result.exit_code == 2
    (run_dir,) = list((tmp_path / "runs").iterdir())
    metadata = json.loads((run_dir / "run.json").read_text(encoding="utf-8"))
    assert metadata["status"] == "rejected"
    assert "bad;name" in metadata["report"]


def test_cli_add_registers_user_workflow(config_file: Path, recorder: RecordingExecutor, tmp_path: Path) -> None:
    workflow_file = tmp_path / "hotfix.json"
    workflow_file.write_text(
        json.dumps(
            {
                "name": "hotfix",
                "arguments": [{"name": "name", "identifier": True}],
                "steps": [{"kind": "create_branch", "params": {"branch": "hotfix/{name}"}}],
            }
        )
    )
    runner = CliRunner()

    added = runner.invoke(cli.app, ["add", str(workflow_file)])
    assert added.exit_code == 0, added.output
    assert (tmp_path / "workflows" / "hotfix.json").exists()

    ran = runner.invoke(cli.app, ["run", "hotfix", "Boot Loop"])
    assert ran.exit_code == 0, ran.output
    assert recorder.commands == [["git", "checkout", "-b", "hotfix/boot-loop"]]

    again = runner.invoke(cli.app, ["add", str(workflow_file)])
    assert again.exit_code == 2


def test_cli_config_show(config_file: Path) -> None:
    result = CliRunner().invoke(cli.app, ["config", "show"])

    assert result.exit_code == 0, result.output
    assert "configuration" in result.stdout
    assert '"main_branch": "main"' in result.stdout


def test_cli_invalid_config_exit_2(config_file: Path) -> None:
    config_file.write_text('merge_method = "octopus"\n')

    result = CliRunner().invoke(cli.app, ["list"])

    assert result.exit_code == 2


def test_cli_config_path_marks_loaded_file(config_file: Path) -> None:
    result = CliRunner().invoke(cli.app, ["config", "path"])

    assert result.exit_code == 0, result.output
    assert f"* {config_file}" in result.stdout


def test_cli_add_rejects_positional_placeholder(config_file: Path, tmp_path: Path) -> None:
    workflow_file = tmp_path / "broken.json"
    workflow_file.write_text(
        json.dumps({"name": "broken", "steps": [{"kind": "checkout_branch", "params": {"branch": "x{}"}}]})
    )

    result = CliRunner().invoke(cli.app, ["add", str(workflow_file)])

    assert result.exit_code == 2
    assert "plain name" in result.stdout
    assert not (tmp_path / "workflows" / "broken.json").exists()


def test_cli_remove_user_workflow(config_file: Path, tmp_path: Path) -> None:
    workflow_file = tmp_path / "hotfix.json"
    workflow_file.write_text(
        json.dumps({"name": "hotfix", "steps": [{"kind": "checkout_branch", "params": {"branch": "{main}"}}]})
    )
    runner = CliRunner()
    assert runner.invoke(cli.app, ["add", str(workflow_file)]).exit_code == 0

    removed = runner.invoke(cli.app, ["remove", "hotfix"])
    assert removed.exit_code == 0, removed.output
    assert not (tmp_path / "workflows" / "hotfix.json").exists()

    assert runner.invoke(cli.app, ["show", "hotfix"]).exit_code == 2
    assert runner.invoke(cli.app, ["remove", "ship-it"]).exit_code == 2
