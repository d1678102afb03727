"""Entry point for the branchpilot CLI (`bp`)."""
from __future__ import annotations

import json
import shutil
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import BranchPilotSettings, ConfigLoadResult, load_config
from .errors import BranchPilotError, UsageError
from .store.runlog import RunLog
from .vcs import CommandExecutor, DryRunExecutor, SubprocessExecutor, VCSAdapter, VCSContext
from .workflows import (
    CommandRegistry,
    ExecutionResult,
    WorkflowDescriptor,
    WorkflowRepository,
    WorkflowRunner,
    builtin_registry,
)

app = typer.Typer(add_completion=False, rich_markup_mode="rich", no_args_is_help=True)
config_app = typer.Typer(add_completion=False, help="Inspect configuration.")
app.add_typer(config_app, name="config")

USAGE_EXIT_CODE = 2


@dataclass
class CLIState:
    loaded: ConfigLoadResult
    console: Console

    @property
    def settings(self) -> BranchPilotSettings:
        return self.loaded.settings


def _create_console(use_color: bool) -> Console:
    return Console(no_color=not use_color, highlight=use_color)


def _make_executor() -> CommandExecutor:
    return SubprocessExecutor()


def _fail(console: Console, message: str, code: int = USAGE_EXIT_CODE) -> typer.Exit:
    console.print(f"[bold red]error:[/] {escape(message)}", soft_wrap=True)
    return typer.Exit(code=code)


def _state(ctx: typer.Context) -> CLIState:
    return ctx.find_object(CLIState)


@app.callback()
def _root(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file to use",
    ),
    color: Optional[bool] = typer.Option(
        None,
        "--color/--no-color",
        help="Force coloured output on or off.",
    ),
) -> None:
    """Git branch, pull request and test workflows as typed, repeatable commands."""
    console = _create_console(False)
    try:
        loaded = load_config(config_path)
    except (ValidationError, tomllib.TOMLDecodeError, OSError) as exc:
        raise _fail(console, f"could not load configuration: {exc}")

    if color is not None:
        loaded.settings = loaded.settings.model_copy(update={"use_color": color})
    ctx.obj = CLIState(loaded=loaded, console=_create_console(loaded.settings.use_color))


def _build_registry(state: CLIState) -> CommandRegistry:
    settings = state.settings
    registry = builtin_registry(settings)
    repository = WorkflowRepository(directory=settings.resolved_workflows_dir())
    try:
        repository.register_all(registry)
    except (ValueError, UsageError) as exc:
        raise _fail(state.console, str(exc))
    return registry


def _parse_arguments(workflow: WorkflowDescriptor, raw: List[str]) -> Dict[str, str]:
    """Map ``value`` and ``key=value`` tokens onto the workflow's arguments."""
    values: Dict[str, str] = {}
    positional: List[str] = []
    for token in raw:
        key, sep, value = token.partition("=")
        if sep and workflow.argument(key) is not None:
            values[key] = value
        else:
            positional.append(token)

    free = [argument.name for argument in workflow.arguments if argument.name not in values]
    if len(positional) > len(free):
        extra = positional[len(free):]
        raise UsageError(f"{workflow.name} got unexpected argument(s): {' '.join(extra)}")
    for name, value in zip(free, positional):
        values[name] = value
    return values


def _print_event(console: Console, event_type: str, payload: Dict[str, object]) -> None:
    if event_type == "step_started":
        console.print(f"[bold cyan]>[/] {escape(str(payload['name']))}")
    elif event_type == "step_retry":
        console.print(f"  [yellow]retrying[/] after attempt {payload['attempt']}: {escape(str(payload['error']))}")
    elif event_type == "step_finished":
        mark = "[green]ok[/]" if payload["success"] else "[bold red]failed[/]"
        message = escape(str(payload.get("message") or "").strip())
        console.print(f"  {mark} {message}" if message else f"  {mark}")


def _render_result(console: Console, result: ExecutionResult) -> None:
    style = "green" if result.success else "red"
    console.print(Panel(Text(result.report), title=f"{result.workflow} · {result.status.value}", border_style=style))


def _execute(
    runner: WorkflowRunner,
    workflow: WorkflowDescriptor,
    arguments: Dict[str, str],
    run_log: Optional[RunLog],
) -> ExecutionResult:
    if run_log is None:
        return runner.run(workflow, arguments)
    run_log.start_run(workflow.name)
    try:
        result = runner.run(workflow, arguments)
    except UsageError as exc:
        run_log.finish_run(report=str(exc), status="rejected")
        raise
    run_log.finish_run(report=result.report)
    return result


@app.command("run", context_settings={"ignore_unknown_options": True})
def run_command(
    ctx: typer.Context,
    command: str = typer.Argument(..., help="Workflow name, e.g. new-feature"),
    args: Optional[List[str]] = typer.Argument(None, help="Positional values or key=value pairs"),
    repo: Path = typer.Option(
        Path("."), "--repo", "-C", exists=True, file_okay=False, help="Repository working directory"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print mutating commands instead of running them."),
) -> None:
    """Run a workflow. Exit code 0 when completed, 1 when aborted, 2 on usage errors."""
    state = _state(ctx)
    console = state.console
    settings = state.settings
    registry = _build_registry(state)

    executor = _make_executor()
    dry_executor: Optional[DryRunExecutor] = DryRunExecutor() if dry_run else None
    context = VCSContext.from_settings(settings, cwd=repo.expanduser().resolve())
    adapter = VCSAdapter(context, executor=dry_executor or executor, reader=executor)

    run_log = RunLog(settings.run_log_root) if settings.run_log_root is not None else None

    def on_event(event_type: str, payload: Dict[str, object]) -> None:
        _print_event(console, event_type, payload)
        if run_log is not None:
            run_log.append_event(event_type, payload)

    runner = WorkflowRunner(adapter, max_attempts=settings.max_attempts, on_event=on_event)
    try:
        workflow = registry.resolve(command)
        arguments = _parse_arguments(workflow, list(args or []))
        result = _execute(runner, workflow, arguments, run_log)
    except UsageError as exc:
        raise _fail(console, str(exc))

    _render_result(console, result)
    if dry_executor is not None:
        planned = "\n".join(" ".join(argv) for argv in dry_executor.commands) or "(none)"
        console.print(Panel(Text(planned), title="dry run · commands not executed"))
    raise typer.Exit(code=result.exit_code)


@app.command("list")
def list_command(ctx: typer.Context) -> None:
    """List the registered workflows."""
    state = _state(ctx)
    registry = _build_registry(state)
    table = Table(title="workflows")
    table.add_column("name", style="bold", no_wrap=True)
    table.add_column("arguments")
    table.add_column("description")
    for workflow in registry:
        arguments = " ".join(
            f"<{argument.name}>" if argument.required else f"[{argument.name}]" for argument in workflow.arguments
        )
        table.add_row(workflow.name, escape(arguments), escape(workflow.description))
    state.console.print(table)


@app.command("show")
def show_command(ctx: typer.Context, command: str = typer.Argument(..., help="Workflow name")) -> None:
    """Show the arguments and steps of one workflow."""
    state = _state(ctx)
    registry = _build_registry(state)
    try:
        workflow = registry.resolve(command)
    except UsageError as exc:
        raise _fail(state.console, str(exc))

    lines: List[str] = [workflow.description, ""] if workflow.description else []
    if workflow.arguments:
        lines.append("arguments:")
        for argument in workflow.arguments:
            flag = "required" if argument.required else f"default={argument.default!r}"
            lines.append(f"  {argument.name} ({flag}) {argument.description}".rstrip())
        lines.append("")
    lines.append("steps:")
    for index, step in enumerate(workflow.steps, start=1):
        params = ", ".join(f"{key}={value}" for key, value in step.params.items())
        lines.append(f"  {index}. {step.name} [{step.kind.value}]" + (f" {params}" if params else ""))
    state.console.print(Panel(Text("\n".join(lines)), title=workflow.name))


@app.command("add")
def add_command(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Workflow JSON file"),
) -> None:
    """Validate a workflow file and store it with the user workflows."""
    state = _state(ctx)
    directory = state.settings.resolved_workflows_dir()
    repository = WorkflowRepository(directory=directory)
    try:
        workflow = repository.load_from_path(path)
        registry = _build_registry(state)
        registry.register(workflow)
    except (ValueError, json.JSONDecodeError, BranchPilotError) as exc:
        raise _fail(state.console, str(exc))
    destination = repository.save(workflow)
    state.console.print(f"saved workflow [bold]{workflow.name}[/] to {escape(str(destination))}")


@app.command("remove")
def remove_command(ctx: typer.Context, command: str = typer.Argument(..., help="User workflow name")) -> None:
    """Delete a workflow previously stored with `bp add`. Built-ins cannot be removed."""
    state = _state(ctx)
    repository = WorkflowRepository(directory=state.settings.resolved_workflows_dir())
    try:
        removed = repository.remove(command)
    except (ValueError, json.JSONDecodeError, UsageError) as exc:
        raise _fail(state.console, str(exc))
    state.console.print(f"removed workflow [bold]{escape(command)}[/] ({escape(str(removed))})")


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Print the effective configuration."""
    state = _state(ctx)
    payload = json.dumps(state.settings.to_dict(), indent=2, ensure_ascii=False, default=str)
    source = str(state.loaded.source) if state.loaded.source else "defaults"
    state.console.print(Panel(Text(payload), title="configuration", subtitle=escape(source)))


@config_app.command("path")
def config_path(ctx: typer.Context) -> None:
    """List the configuration files searched, in order."""
    state = _state(ctx)
    for candidate in state.loaded.searched:
        marker = "*" if candidate == state.loaded.source else " "
        state.console.print(f"{marker} {candidate}", markup=False, soft_wrap=True)
    if shutil.which("gh") is None:
        state.console.print("note: gh is not on PATH; pull request steps will fail", markup=False)


def entrypoint() -> None:
    """Typer entrypoint for `bp`."""
    app()


if __name__ == "__main__":  # pragma: no cover
    entrypoint()
