"""Workflow descriptors, registry and runner."""

from .models import ArgumentSpec, StepKind, WorkflowDescriptor, WorkflowStep
from .registry import CommandRegistry, builtin_registry, builtin_workflows
from .runner import ExecutionResult, RunState, RunStatus, StepOutcome, WorkflowRunner
from .storage import WorkflowRepository

__all__ = [
    "ArgumentSpec",
    "CommandRegistry",
    "ExecutionResult",
    "RunState",
    "RunStatus",
    "StepKind",
    "StepOutcome",
    "WorkflowDescriptor",
    "WorkflowRepository",
    "WorkflowRunner",
    "WorkflowStep",
    "builtin_registry",
    "builtin_workflows",
]
