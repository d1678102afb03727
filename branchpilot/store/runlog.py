"""Per-run structured event logs."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class RunSummary:
    """What ``run.json`` records about one workflow run, built from its events."""

    workflow: str
    started_at: datetime
    status: str = "unknown"
    steps: List[Dict[str, Any]] = field(default_factory=list)
    retries: int = 0
    failed_step: Optional[str] = None
    event_count: int = 0

    def observe(self, event_type: str, payload: Dict[str, Any]) -> None:
        self.event_count += 1
        if event_type == "step_retry":
            self.retries += 1
        elif event_type == "step_finished":
            self.steps.append(
                {
                    "name": payload.get("name"),
                    "kind": payload.get("kind"),
                    "success": bool(payload.get("success")),
                    "attempts": payload.get("attempts", 1),
                }
            )
            if not payload.get("success") and self.failed_step is None:
                self.failed_step = str(payload.get("name"))
        elif event_type == "run_finished":
            self.status = str(payload.get("status", self.status))

    def to_dict(self, finished_at: datetime, report: str) -> Dict[str, Any]:
        return {
            "workflow": self.workflow,
            "status": self.status,
            "started_at": self.started_at.isoformat(timespec="seconds"),
            "finished_at": finished_at.isoformat(timespec="seconds"),
            "steps": self.steps,
            "retries": self.retries,
            "failed_step": self.failed_step,
            "report": report,
            "event_count": self.event_count,
        }


class RunLog:
    """One directory per workflow run under ``root``.

    Each run gets ``<timestamp>-<workflow>/events.jsonl`` while it executes and
    a ``run.json`` summary when it finishes. Runs rejected during validation are
    recorded with status ``rejected``.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()
        self.root.mkdir(parents=True, exist_ok=True)
        self._run_dir: Optional[Path] = None
        self._summary: Optional[RunSummary] = None

    @property
    def run_dir(self) -> Optional[Path]:
        return self._run_dir

    def start_run(self, workflow: str) -> Path:
        if self._run_dir is not None:
            return self._run_dir

        started_at = datetime.now()
        stem = f"{started_at.strftime('%Y%m%d-%H%M%S')}-{workflow}"
        run_dir = self.root / stem
        suffix = 1
        while run_dir.exists():
            suffix += 1
            run_dir = self.root / f"{stem}-{suffix}"
        run_dir.mkdir(parents=True, exist_ok=False)
        (run_dir / "events.jsonl").touch()

        self._run_dir = run_dir
        self._summary = RunSummary(workflow=workflow, started_at=started_at)
        return run_dir

    def append_event(self, event_type: str, payload: Dict[str, Any]) -> None:
        if self._run_dir is None or self._summary is None:
            return
        record = {
            "timestamp": datetime.now().isoformat(timespec="seconds"),
            "type": event_type,
            "payload": payload,
        }
        with (self._run_dir / "events.jsonl").open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        self._summary.observe(event_type, payload)

    def finish_run(self, report: str = "", status: Optional[str] = None) -> Optional[Path]:
        """Write ``run.json`` for the current run and return its path."""
        if self._run_dir is None or self._summary is None:
            return None
        if status is not None:
            self._summary.status = status
        metadata_path = self._run_dir / "run.json"
        metadata = self._summary.to_dict(datetime.now(), report)
        metadata_path.write_text(json.dumps(metadata, ensure_ascii=False, indent=2) + "\n", encoding="utf-8")
        self._run_dir = None
        self._summary = None
        return metadata_path


__all__ = ["RunLog", "RunSummary"]
