"""JSON storage for user-defined workflows."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Tuple

from ..errors import UnknownCommandError
from .models import WorkflowDescriptor
from .registry import CommandRegistry


@dataclass(slots=True)
class WorkflowRepository:
    """User workflows stored as ``<name>.json`` files in one directory.

    Descriptor names are restricted to ``[a-z0-9-]``, so a name always maps to a
    file inside ``directory``. Files are looked up by the name they declare,
    not by their file name.
    """

    directory: Path

    def list(self) -> List[WorkflowDescriptor]:
        return [workflow for _, workflow in self._entries()]

    def save(self, workflow: WorkflowDescriptor) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.directory / f"{workflow.name}.json"
        path.write_text(json.dumps(workflow.to_dict(), ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        return path

    def remove(self, name: str) -> Path:
        """Delete the stored workflow called ``name`` and return its file."""
        known: List[str] = []
        for path, workflow in self._entries():
            if workflow.name == name:
                path.unlink()
                return path
            known.append(workflow.name)
        raise UnknownCommandError(name, known=sorted(known))

    def load_from_path(self, path: Path) -> WorkflowDescriptor:
        data = json.loads(path.read_text(encoding="utf-8"))
        try:
            return WorkflowDescriptor.from_dict(data)
        except (KeyError, ValueError) as exc:
            raise ValueError(f"invalid workflow file {path}: {exc}") from exc

    def register_all(self, registry: CommandRegistry) -> List[str]:
        """Register every stored workflow. A name clash raises ``DuplicateNameError``."""
        names: List[str] = []
        for workflow in self.list():
            registry.register(workflow)
            names.append(workflow.name)
        return names

    def _entries(self) -> Iterator[Tuple[Path, WorkflowDescriptor]]:
        for path in self._iter_files():
            yield path, self.load_from_path(path)

    def _iter_files(self) -> Iterable[Path]:
        if not self.directory.is_dir():
            return []
        return sorted(p for p in self.directory.iterdir() if p.suffix == ".json" and p.is_file())
