import pytest

from branchpilot.config import BranchPilotSettings
from branchpilot.errors import DuplicateNameError, UnknownCommandError
from branchpilot.workflows import CommandRegistry, StepKind, WorkflowDescriptor, WorkflowStep, builtin_registry


def _workflow(name: str) -> WorkflowDescriptor:
    return WorkflowDescriptor(name=name, steps=(WorkflowStep.of(StepKind.REPORT_STATUS),))


def test_resolve_returns_registered_descriptor():
    registry = CommandRegistry()
    workflow = _workflow("demo")

    registry.register(workflow)

    assert registry.resolve("demo") is workflow
    assert "demo" in registry
    assert len(registry) == 1


def test_resolve_unknown_name_fails():
    registry = CommandRegistry()
    registry.register(_workflow("demo"))

    with pytest.raises(UnknownCommandError) as excinfo:
        registry.resolve("deploy")
    assert "demo" in str(excinfo.value)


def test_register_duplicate_name_fails():
    registry = CommandRegistry()
    registry.register(_workflow("demo"))

    with pytest.raises(DuplicateNameError):
        registry.register(_workflow("demo"))
    assert len(registry) == 1


def test_builtin_registry_contents():
    registry = builtin_registry()

    assert registry.names() == [
        "create-pr",
        "new-bugfix",
        "new-feature",
        "run-tests",
        "ship-it",
        "status",
        "sync-main",
    ]
    ship_it = registry.resolve("ship-it")
    assert [step.kind for step in ship_it.steps][:3] == [
        StepKind.MERGE_PR,
        StepKind.CHECKOUT_BRANCH,
        StepKind.PULL_LATEST,
    ]


def test_builtin_workflows_follow_settings():
    settings = BranchPilotSettings(feature_prefix="feat/", merge_method="rebase", delete_branch_on_merge=False)
    registry = builtin_registry(settings)

    create = [s for s in registry.resolve("new-feature").steps if s.kind is StepKind.CREATE_BRANCH][0]
    assert create.params["branch"] == "feat/{name}"

    merge = registry.resolve("ship-it").steps[0]
    assert merge.params["method"] == "rebase"
    assert merge.params["delete_branch"] == "false"
