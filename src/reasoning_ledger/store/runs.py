"""Run records and their append-only event logs.

Layout::

    runs/<run_id>.json       one mutable document per run
    events/<run_id>.ndjson   one JSON object per line, append-only

Updates are read-modify-write with no locking; two writers racing on the same
run can lose each other's fields.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from reasoning_ledger.errors import Conflict, InvalidState, NotFound
from reasoning_ledger.models import Event, RunRecord, RunStatus
from reasoning_ledger.workspace import (
    Workspace,
    append_json_line,
    create_json,
    read_json,
    read_json_lines,
    safe_name,
    write_json,
)

logger = logging.getLogger(__name__)

# Run status only moves forward.
_STATUS_ORDER: dict[RunStatus, int] = {RunStatus.RUNNING: 0, RunStatus.COMPLETED: 1}

# Identity fields a partial update may not rewrite.
_IMMUTABLE_RUN_FIELDS = frozenset({"run_id", "workflow_id", "workflow_version_id", "created_at"})


class RunLedger:
    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    def _run_path(self, run_id: str) -> Path:
        return self._workspace.require().runs_dir / f"{safe_name(run_id)}.json"

    def events_path(self, run_id: str) -> Path:
        return self._workspace.require().events_dir / f"{safe_name(run_id)}.ndjson"

    def exists(self, run_id: str) -> bool:
        return self._run_path(run_id).exists()

    def create(self, run: RunRecord) -> RunRecord:
        try:
            create_json(self._run_path(run.run_id), run.to_json())
        except FileExistsError as exc:
            raise Conflict("run", run.run_id) from exc
        logger.info(
            "Run created",
            extra={"run_id": run.run_id, "workflow_id": run.workflow_id},
        )
        return run

    def read(self, run_id: str) -> RunRecord:
        raw = read_json(self._run_path(run_id))
        if raw is None:
            raise NotFound("run", run_id)
        return RunRecord.model_validate(raw)

    def update(self, run_id: str, **updates: Any) -> RunRecord:
        """Merge ``updates`` into the stored run and rewrite it."""

        locked = sorted(_IMMUTABLE_RUN_FIELDS.intersection(updates))
        if locked:
            raise ValueError(f"Run fields cannot be updated: {', '.join(locked)}")

        current = self.read(run_id)
        merged = RunRecord.model_validate({**current.to_json(), **updates})
        if _STATUS_ORDER[merged.status] < _STATUS_ORDER[current.status]:
            raise InvalidState(
                "run", run_id, current.status.value, expected=(RunStatus.RUNNING.value,)
            )
        write_json(self._run_path(run_id), merged.to_json())
        logger.debug("Run updated", extra={"run_id": run_id, "fields": sorted(updates)})
        return merged

    def list(self) -> list[RunRecord]:
        """All runs, newest first."""

        runs_dir = self._workspace.require().runs_dir
        if not runs_dir.exists():
            return []
        runs = [RunRecord.model_validate(read_json(p)) for p in runs_dir.glob("*.json")]
        runs.sort(key=lambda r: r.created_at, reverse=True)
        return runs

    def append_event(self, run_id: str, event: Event) -> Event:
        """Append one event line. The run must already exist."""

        if not self.exists(run_id):
            raise NotFound("run", run_id)
        append_json_line(self.events_path(run_id), event.to_json())
        logger.debug("Event appended", extra={"run_id": run_id, "type": event.type})
        return event

    def read_events(self, run_id: str) -> list[Event]:
        """Events in append order."""

        if not self.exists(run_id):
            raise NotFound("run", run_id)
        return [Event.model_validate(line) for line in read_json_lines(self.events_path(run_id))]
