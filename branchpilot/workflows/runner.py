"""Sequential workflow execution."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from ..errors import BranchPilotError, ExternalToolError, MissingArgumentError, UsageError
from ..identifiers import BranchName
from ..vcs.adapter import AdapterOutcome, VCSAdapter
from .models import StepKind, WorkflowDescriptor, WorkflowStep

EventSink = Callable[[str, Dict[str, Any]], None]

_BRANCH_PARAMETERS = frozenset({"branch", "start_point", "onto", "remote", "base"})
_BOOL_PARAMETERS = frozenset({"draft", "delete_branch", "include_pr"})
_TRUE = {"true", "1", "yes", "on"}
_FALSE = {"false", "0", "no", "off"}


class RunStatus(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    EXECUTING = "executing"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(slots=True)
class StepOutcome:
    """Result of one executed step."""

    index: int
    step: WorkflowStep
    success: bool
    message: str = ""
    attempts: int = 1
    params: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.step.name,
            "kind": self.step.kind.value,
            "success": self.success,
            "message": self.message,
            "attempts": self.attempts,
            "params": dict(self.params),
        }


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of a whole workflow run."""

    workflow: str
    outcomes: List[StepOutcome] = field(default_factory=list)
    status: RunStatus = RunStatus.ABORTED
    failed_step_index: Optional[int] = None
    report: str = ""
    states: List[RunState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status is RunStatus.COMPLETED

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class WorkflowRunner:
    """Execute workflow steps in order, halting at the first failure.

    Steps whose kind is idempotent are retried on :class:`ExternalToolError`
    up to ``max_attempts`` times; every other step runs at most once. Nothing
    is rolled back when a later step fails.
    """

    def __init__(
        self,
        adapter: VCSAdapter,
        *,
        max_attempts: int = 1,
        variables: Optional[Mapping[str, str]] = None,
        on_event: Optional[EventSink] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._adapter = adapter
        self._max_attempts = max_attempts
        self._variables = {
            "main": adapter.context.main_branch,
            "remote": adapter.context.remote,
            **dict(variables or {}),
        }
        self._on_event = on_event
        self._state = RunState.IDLE

    @property
    def state(self) -> RunState:
        return self._state

    def run(
        self,
        workflow: WorkflowDescriptor,
        args: Optional[Mapping[str, str]] = None,
        *,
        variables: Optional[Mapping[str, str]] = None,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> ExecutionResult:
        result = ExecutionResult(workflow=workflow.name)
        self._transition(result, RunState.IDLE)

        self._transition(result, RunState.VALIDATING)
        try:
            plan = self._validate(workflow, dict(args or {}), dict(variables or {}))
        except UsageError:
            self._transition(result, RunState.ABORTED)
            raise

        self._emit("run_started", {"workflow": workflow.name, "steps": len(plan)})
        self._transition(result, RunState.EXECUTING)
        total = len(plan)

        for index, (step, params) in enumerate(plan):
            if should_abort is not None and should_abort():
                result.report = (
                    f"{workflow.name} cancelled before step {index + 1}/{total} ({step.name})."
                    + _completed_summary(result.outcomes)
                )
                result.status = RunStatus.ABORTED
                break

            self._emit("step_started", {"index": index, "name": step.name, "kind": step.kind.value, "params": params})
            outcome = self._execute_step(index, step, params)
            result.outcomes.append(outcome)
            self._emit("step_finished", outcome.to_dict())

            if not outcome.success:
                result.status = RunStatus.ABORTED
                result.failed_step_index = index
                result.report = (
                    f"{workflow.name} aborted at step {index + 1}/{total} ({step.name}): {outcome.message}"
                    + _completed_summary(result.outcomes[:-1])
                )
                break
        else:
            result.status = RunStatus.COMPLETED
            result.report = f"{workflow.name} completed: {total}/{total} steps succeeded."

        final_state = RunState.COMPLETED if result.success else RunState.ABORTED
        self._transition(result, final_state)
        self._emit(
            "run_finished",
            {"workflow": workflow.name, "status": result.status.value, "failed_step_index": result.failed_step_index},
        )
        return result

    # ------------------------------------------------------------------
    # validation
    # ------------------------------------------------------------------
    def _validate(
        self,
        workflow: WorkflowDescriptor,
        args: Dict[str, str],
        variables: Dict[str, str],
    ) -> List[Tuple[WorkflowStep, Dict[str, str]]]:
        declared = {argument.name for argument in workflow.arguments}
        unexpected = sorted(set(args) - declared)
        if unexpected:
            raise UsageError(f"{workflow.name} does not accept argument(s): {', '.join(unexpected)}")

        try:
            placeholders = workflow.placeholders()
        except ValueError as exc:
            raise UsageError(f"{workflow.name} has a malformed template: {exc}") from exc

        namespace: Dict[str, str] = {**self._variables, **variables}
        if "current_branch" in placeholders and "current_branch" not in namespace:
            namespace["current_branch"] = self._lookup_current_branch()

        for argument in workflow.arguments:
            value = args.get(argument.name)
            if value is None or (argument.required and value == ""):
                if argument.required:
                    raise MissingArgumentError(
                        f"{workflow.name} requires argument '{argument.name}'", argument=argument.name
                    )
                value = _render(argument.default or "", namespace, workflow.name)
            if argument.identifier and value:
                value = BranchName.from_text(value)
            elif argument.ref and value:
                value = BranchName.parse(value)
            namespace[argument.name] = str(value)

        plan: List[Tuple[WorkflowStep, Dict[str, str]]] = []
        for step in workflow.steps:
            params = {key: _render(template, namespace, workflow.name) for key, template in step.params.items()}
            _check_params(step.kind, params)
            plan.append((step, params))
        return plan

    def _lookup_current_branch(self) -> str:
        try:
            return str(self._adapter.current_branch())
        except ExternalToolError as exc:
            raise MissingArgumentError(
                f"could not determine the current branch: {exc}", argument="current_branch"
            ) from exc

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------
    def _execute_step(self, index: int, step: WorkflowStep, params: Dict[str, str]) -> StepOutcome:
        limit = self._max_attempts if step.kind.idempotent else 1
        attempts = 0
        while True:
            attempts += 1
            try:
                adapter_outcome = self._dispatch(step.kind, params)
            except ExternalToolError as exc:
                if attempts < limit:
                    self._emit("step_retry", {"index": index, "name": step.name, "attempt": attempts, "error": str(exc)})
                    continue
                return StepOutcome(index, step, success=False, message=str(exc), attempts=attempts, params=params)
            except BranchPilotError as exc:
                return StepOutcome(index, step, success=False, message=str(exc), attempts=attempts, params=params)
            return StepOutcome(
                index,
                step,
                success=adapter_outcome.ok,
                message=adapter_outcome.message,
                attempts=attempts,
                params=params,
            )

    def _dispatch(self, kind: StepKind, params: Dict[str, str]) -> AdapterOutcome:
        adapter = self._adapter
        if kind is StepKind.CHECK_UNCOMMITTED:
            return adapter.check_uncommitted()
        if kind is StepKind.CHECKOUT_BRANCH:
            return adapter.checkout_branch(params["branch"])
        if kind is StepKind.PULL_LATEST:
            return adapter.pull_latest(remote=params.get("remote") or None, branch=params.get("branch") or None)
        if kind is StepKind.CREATE_BRANCH:
            return adapter.create_branch(params["branch"], start_point=params.get("start_point") or None)
        if kind is StepKind.REBASE:
            return adapter.rebase(params["onto"])
        if kind is StepKind.RUN_TESTS:
            command = params.get("command")
            return adapter.run_tests(shlex.split(command) if command else None)
        if kind is StepKind.CREATE_PR:
            return adapter.create_pr(
                title=params.get("title") or None,
                body=params.get("body") or None,
                base=params.get("base") or None,
                draft=_as_bool(params.get("draft"), default=False),
            )
        if kind is StepKind.MERGE_PR:
            return adapter.merge_pr(
                pr=params.get("pr") or None,
                method=params.get("method") or "squash",
                delete_branch=_as_bool(params.get("delete_branch"), default=True),
            )
        if kind is StepKind.REPORT_STATUS:
            return adapter.report_status(include_pr=_as_bool(params.get("include_pr"), default=False))
        raise ValueError(f"no handler for step kind {kind}")  # pragma: no cover

    # ------------------------------------------------------------------
    def _transition(self, result: ExecutionResult, state: RunState) -> None:
        self._state = state
        result.states.append(state)

    def _emit(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._on_event is not None:
            self._on_event(event_type, payload)


def _render(template: str, namespace: Mapping[str, str], workflow_name: str) -> str:
    try:
        return template.format_map(namespace)
    except KeyError as exc:
        name = exc.args[0]
        raise MissingArgumentError(f"{workflow_name} has no value for '{{{name}}}'", argument=name) from None
    except (ValueError, IndexError, AttributeError, TypeError) as exc:
        raise UsageError(f"{workflow_name} has a malformed template {template!r}: {exc}") from exc


def _check_params(kind: StepKind, params: Dict[str, str]) -> None:
    for key, value in params.items():
        if key in _BRANCH_PARAMETERS and value:
            BranchName.parse(value)
        elif key in _BOOL_PARAMETERS and value and value.lower() not in _TRUE | _FALSE:
            raise UsageError(f"{kind.value}.{key} must be true or false, got {value!r}")
        elif key == "pr" and value and (value.startswith("-") or any(ch.isspace() for ch in value)):
            raise UsageError(f"{kind.value}.pr must be a number, URL or branch, got {value!r}")
        elif key == "method" and value and value not in {"merge", "squash", "rebase"}:
            raise UsageError(f"{kind.value}.method must be merge, squash or rebase, got {value!r}")
    for key in kind.required_parameters:
        if not params.get(key):
            raise MissingArgumentError(f"{kind.value} needs a non-empty '{key}'", argument=key)


def _as_bool(value: Optional[str], *, default: bool) -> bool:
    if not value:
        return default
    return value.lower() in _TRUE


def _completed_summary(outcomes: List[StepOutcome]) -> str:
    done = [outcome.step.name for outcome in outcomes if outcome.success]
    if not done:
        return ""
    return "\nAlready applied, left in place: " + ", ".join(done)


__all__ = ["ExecutionResult", "RunState", "RunStatus", "StepOutcome", "WorkflowRunner"]
