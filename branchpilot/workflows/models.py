"""Workflow data model: step kinds, steps, arguments and descriptors."""

from __future__ import annotations

import re
import string
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Tuple


class StepKind(str, Enum):
    CHECK_UNCOMMITTED = "check_uncommitted"
    CHECKOUT_BRANCH = "checkout_branch"
    PULL_LATEST = "pull_latest"
    CREATE_BRANCH = "create_branch"
    REBASE = "rebase"
    RUN_TESTS = "run_tests"
    CREATE_PR = "create_pr"
    MERGE_PR = "merge_pr"
    REPORT_STATUS = "report_status"

    @property
    def parameters(self) -> Tuple[str, ...]:
        return _STEP_PARAMETERS[self]

    @property
    def required_parameters(self) -> Tuple[str, ...]:
        return _REQUIRED_PARAMETERS.get(self, ())

    @property
    def idempotent(self) -> bool:
        """Whether repeating the step after a failure is harmless."""
        return self in _IDEMPOTENT

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").capitalize()


_STEP_PARAMETERS: Dict[StepKind, Tuple[str, ...]] = {
    StepKind.CHECK_UNCOMMITTED: (),
    StepKind.CHECKOUT_BRANCH: ("branch",),
    StepKind.PULL_LATEST: ("remote", "branch"),
    StepKind.CREATE_BRANCH: ("branch", "start_point"),
    StepKind.REBASE: ("onto",),
    StepKind.RUN_TESTS: ("command",),
    StepKind.CREATE_PR: ("title", "body", "base", "draft"),
    StepKind.MERGE_PR: ("pr", "method", "delete_branch"),
    StepKind.REPORT_STATUS: ("include_pr",),
}

_REQUIRED_PARAMETERS: Dict[StepKind, Tuple[str, ...]] = {
    StepKind.CHECKOUT_BRANCH: ("branch",),
    StepKind.CREATE_BRANCH: ("branch",),
    StepKind.REBASE: ("onto",),
}

_IDEMPOTENT = frozenset({StepKind.CHECK_UNCOMMITTED, StepKind.PULL_LATEST, StepKind.REPORT_STATUS})

_WORKFLOW_NAME = re.compile(r"^[a-z0-9][a-z0-9-]*$")
_FORMATTER = string.Formatter()


def template_fields(template: str) -> Set[str]:
    """Return the ``{placeholder}`` names referenced by a parameter template.

    Only bare names are allowed: ``{}``, ``{0}``, ``{name.attr}``, ``{name[0]}``,
    ``{name!r}`` and ``{name:>10}`` raise ``ValueError``, as do unbalanced braces.
    """
    names: Set[str] = set()
    for _, field_name, format_spec, conversion in _FORMATTER.parse(template):
        if field_name is None:
            continue
        if not field_name.isidentifier() or format_spec or conversion:
            raise ValueError(f"placeholder {{{field_name}}} in {template!r} must be a plain name")
        names.add(field_name)
    return names


@dataclass(frozen=True, slots=True)
class WorkflowStep:
    """A single workflow step. Parameter values are templates over arguments."""

    kind: StepKind
    params: Mapping[str, str] = field(default_factory=dict)
    name: Optional[str] = None

    def __post_init__(self) -> None:
        try:
            kind = StepKind(str(getattr(self.kind, "value", self.kind)).lower())
        except ValueError as exc:
            raise ValueError(f"unsupported step kind: {self.kind}") from exc

        params = {str(key): str(value) for key, value in dict(self.params).items()}
        unknown = set(params) - set(kind.parameters)
        if unknown:
            raise ValueError(f"{kind.value} does not accept parameter(s): {', '.join(sorted(unknown))}")
        missing = [name for name in kind.required_parameters if not params.get(name)]
        if missing:
            raise ValueError(f"{kind.value} requires parameter(s): {', '.join(missing)}")
        for template in params.values():
            template_fields(template)  # raises ValueError on malformed placeholders

        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "params", MappingProxyType(params))
        if not self.name:
            object.__setattr__(self, "name", kind.label)

    @classmethod
    def of(cls, kind: StepKind, *, name: Optional[str] = None, **params: str) -> "WorkflowStep":
        return cls(kind=kind, params=params, name=name)

    def placeholders(self) -> Set[str]:
        names: Set[str] = set()
        for template in self.params.values():
            names |= template_fields(template)
        return names

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "name": self.name, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: dict) -> "WorkflowStep":
        return cls(
            kind=data.get("kind", ""),
            params=data.get("params", {}),
            name=data.get("name"),
        )


@dataclass(frozen=True, slots=True)
class ArgumentSpec:
    """Named workflow parameter supplied on the command line.

    ``identifier`` marks free text that becomes part of a new branch name; it is
    slugified, then validated. ``ref`` marks the name of an existing branch or
    ref; it is validated as given, case included.
    """

    name: str
    required: bool = True
    default: Optional[str] = None
    description: str = ""
    identifier: bool = False
    ref: bool = False

    def __post_init__(self) -> None:
        if not self.name.isidentifier():
            raise ValueError(f"argument name must be a valid identifier: {self.name!r}")
        if self.required and self.default is not None:
            raise ValueError(f"required argument '{self.name}' cannot have a default")
        if self.identifier and self.ref:
            raise ValueError(f"argument '{self.name}' cannot be both an identifier and a ref")
        if self.default:
            template_fields(self.default)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "required": self.required,
            "default": self.default,
            "description": self.description,
            "identifier": self.identifier,
            "ref": self.ref,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ArgumentSpec":
        return cls(
            name=data["name"],
            required=bool(data.get("required", True)),
            default=data.get("default"),
            description=data.get("description", ""),
            identifier=bool(data.get("identifier", False)),
            ref=bool(data.get("ref", False)),
        )


@dataclass(frozen=True, slots=True)
class WorkflowDescriptor:
    """Named, ordered sequence of steps plus the arguments it accepts."""

    name: str
    description: str = ""
    arguments: Tuple[ArgumentSpec, ...] = ()
    steps: Tuple[WorkflowStep, ...] = ()

    def __post_init__(self) -> None:
        if not _WORKFLOW_NAME.match(self.name):
            raise ValueError(f"workflow name must be lowercase letters, digits and '-': {self.name!r}")
        object.__setattr__(self, "arguments", tuple(self.arguments))
        object.__setattr__(self, "steps", tuple(self.steps))
        if not self.steps:
            raise ValueError(f"workflow '{self.name}' has no steps")
        seen: Set[str] = set()
        for argument in self.arguments:
            if argument.name in seen:
                raise ValueError(f"workflow '{self.name}' declares argument '{argument.name}' twice")
            seen.add(argument.name)

    def argument(self, name: str) -> Optional[ArgumentSpec]:
        for argument in self.arguments:
            if argument.name == name:
                return argument
        return None

    def placeholders(self) -> Set[str]:
        names: Set[str] = set()
        for step in self.steps:
            names |= step.placeholders()
        return names

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "arguments": [argument.to_dict() for argument in self.arguments],
            "steps": [step.to_dict() for step in self.steps],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowDescriptor":
        return cls(
            name=data.get("name", ""),
            description=data.get("description", ""),
            arguments=tuple(ArgumentSpec.from_dict(item) for item in data.get("arguments", [])),
            steps=tuple(WorkflowStep.from_dict(item) for item in data.get("steps", [])),
        )


def descriptor(
    name: str,
    steps: Iterable[WorkflowStep],
    *,
    description: str = "",
    arguments: Iterable[ArgumentSpec] = (),
) -> WorkflowDescriptor:
    return WorkflowDescriptor(name=name, description=description, arguments=tuple(arguments), steps=tuple(steps))
