"""Current result snapshot per (run, node).

Layout: ``node-results/<run_id>/<node_id>.json``. Writes replace the previous
snapshot unconditionally (last write wins, no history).
"""

from __future__ import annotations

import logging
from pathlib import Path

from reasoning_ledger.errors import NotFound
from reasoning_ledger.models import NodeResult
from reasoning_ledger.workspace import Workspace, read_json, safe_name, write_json

logger = logging.getLogger(__name__)


class NodeResultStore:
    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    def _run_dir(self, run_id: str) -> Path:
        return self._workspace.require().node_results_dir / safe_name(run_id)

    def _path(self, run_id: str, node_id: str) -> Path:
        return self._run_dir(run_id) / f"{safe_name(node_id)}.json"

    def write(self, result: NodeResult) -> NodeResult:
        write_json(self._path(result.run_id, result.node_id), result.to_json())
        logger.debug(
            "Node result written",
            extra={
                "run_id": result.run_id,
                "node_id": result.node_id,
                "status": result.status.value,
            },
        )
        return result

    def find(self, run_id: str, node_id: str) -> NodeResult | None:
        raw = read_json(self._path(run_id, node_id))
        return NodeResult.model_validate(raw) if raw is not None else None

    def read(self, run_id: str, node_id: str) -> NodeResult:
        result = self.find(run_id, node_id)
        if result is None:
            raise NotFound("node result", f"{run_id}/{node_id}")
        return result

    def list(self, run_id: str) -> list[NodeResult]:
        """All snapshots for a run, in no particular order."""

        directory = self._run_dir(run_id)
        if not directory.exists():
            return []
        return [NodeResult.model_validate(read_json(p)) for p in directory.glob("*.json")]
