"""Name to workflow mapping and the built-in workflows."""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from ..config import BranchPilotSettings
from ..errors import DuplicateNameError, UnknownCommandError
from .models import ArgumentSpec, StepKind, WorkflowDescriptor, WorkflowStep, descriptor


class CommandRegistry:
    """Holds workflow descriptors keyed by their unique name."""

    def __init__(self) -> None:
        self._descriptors: Dict[str, WorkflowDescriptor] = {}

    def register(self, workflow: WorkflowDescriptor) -> None:
        if workflow.name in self._descriptors:
            raise DuplicateNameError(workflow.name)
        self._descriptors[workflow.name] = workflow

    def resolve(self, name: str) -> WorkflowDescriptor:
        try:
            return self._descriptors[name]
        except KeyError:
            raise UnknownCommandError(name, known=self.names()) from None

    def names(self) -> List[str]:
        return sorted(self._descriptors)

    def descriptors(self) -> List[WorkflowDescriptor]:
        return [self._descriptors[name] for name in self.names()]

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __len__(self) -> int:
        return len(self._descriptors)

    def __iter__(self) -> Iterator[WorkflowDescriptor]:
        return iter(self.descriptors())


def _branch_workflow(name: str, prefix: str, label: str) -> WorkflowDescriptor:
    return descriptor(
        name,
        description=f"Start a {label} branch from an up-to-date base branch",
        arguments=[
            ArgumentSpec("name", description=f"{label.capitalize()} name, e.g. 'login page'", identifier=True),
            ArgumentSpec("base", required=False, default="{main}", description="Branch to start from", ref=True),
        ],
        steps=[
            WorkflowStep.of(StepKind.CHECK_UNCOMMITTED),
            WorkflowStep.of(StepKind.CHECKOUT_BRANCH, branch="{base}"),
            WorkflowStep.of(StepKind.PULL_LATEST, branch="{base}"),
            WorkflowStep.of(StepKind.CREATE_BRANCH, branch=prefix + "{name}"),
            WorkflowStep.of(StepKind.REPORT_STATUS),
        ],
    )


def builtin_workflows(settings: Optional[BranchPilotSettings] = None) -> List[WorkflowDescriptor]:
    settings = settings or BranchPilotSettings()
    return [
        _branch_workflow("new-feature", settings.feature_prefix, "feature"),
        _branch_workflow("new-bugfix", settings.bugfix_prefix, "bugfix"),
        descriptor(
            "sync-main",
            description="Update the main branch and rebase the current branch onto it",
            steps=[
                WorkflowStep.of(StepKind.CHECK_UNCOMMITTED),
                WorkflowStep.of(StepKind.CHECKOUT_BRANCH, branch="{main}"),
                WorkflowStep.of(StepKind.PULL_LATEST, branch="{main}"),
                WorkflowStep.of(StepKind.CHECKOUT_BRANCH, branch="{current_branch}", name="Return to working branch"),
                WorkflowStep.of(StepKind.REBASE, onto="{main}"),
            ],
        ),
        descriptor(
            "create-pr",
            description="Run the tests, push the branch and open a pull request",
            arguments=[
                ArgumentSpec("title", required=False, default="", description="PR title (gh --fill when empty)"),
                ArgumentSpec("body", required=False, default="", description="PR body"),
                ArgumentSpec("draft", required=False, default="false", description="Open as draft (true/false)"),
            ],
            steps=[
                WorkflowStep.of(StepKind.CHECK_UNCOMMITTED),
                WorkflowStep.of(StepKind.RUN_TESTS),
                WorkflowStep.of(StepKind.CREATE_PR, title="{title}", body="{body}", base="{main}", draft="{draft}"),
            ],
        ),
        descriptor(
            "ship-it",
            description="Merge the pull request and bring the main branch up to date",
            arguments=[
                ArgumentSpec("pr", required=False, default="", description="PR number or branch (current branch when empty)"),
            ],
            steps=[
                WorkflowStep.of(
                    StepKind.MERGE_PR,
                    pr="{pr}",
                    method=settings.merge_method,
                    delete_branch=str(settings.delete_branch_on_merge).lower(),
                ),
                WorkflowStep.of(StepKind.CHECKOUT_BRANCH, branch="{main}"),
                WorkflowStep.of(StepKind.PULL_LATEST, branch="{main}"),
                WorkflowStep.of(StepKind.REPORT_STATUS),
            ],
        ),
        descriptor(
            "run-tests",
            description="Run the project's test command",
            steps=[WorkflowStep.of(StepKind.RUN_TESTS)],
        ),
        descriptor(
            "status",
            description="Show working tree and pull request status",
            steps=[WorkflowStep.of(StepKind.REPORT_STATUS, include_pr="true")],
        ),
    ]


def builtin_registry(settings: Optional[BranchPilotSettings] = None) -> CommandRegistry:
    registry = CommandRegistry()
    for workflow in builtin_workflows(settings):
        registry.register(workflow)
    return registry


__all__ = ["CommandRegistry", "builtin_registry", "builtin_workflows"]
