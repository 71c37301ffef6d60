"""Node lifecycle: ``not started -> started -> completed | failed | needs_human``.

Each transition touches up to three documents (collection, node result, event
log) with no cross-file atomicity. ``complete`` runs the collection write first
so a payload that fails validation leaves the node in its prior state.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from reasoning_ledger.errors import InvalidState, NotFound
from reasoning_ledger.models import (
    Event,
    LedgerModel,
    NodeResult,
    NodeResultStatus,
    NodeResultWrite,
    RunRecord,
    RunStatus,
    new_id,
    utc_now_iso,
)
from reasoning_ledger.store.collections import CollectionStore, Provenance
from reasoning_ledger.store.node_results import NodeResultStore
from reasoning_ledger.store.runs import RunLedger
from reasoning_ledger.store.workflows import WorkflowVersionStore

logger = logging.getLogger(__name__)

STEP_STARTED = "step_started"
STEP_COMPLETED = "step_completed"


class CollectionWriteMode(str, Enum):
    APPEND = "append"
    REPLACE = "replace"


class CollectionWrite(LedgerModel):
    """A collection write performed as part of completing a node.

    Without an explicit ``mode`` the payload shape decides: a list replaces the
    kind's items, a single object is appended.
    """

    kind: str
    payload: dict[str, Any] | list[dict[str, Any]]
    item_id: str | None = None
    mode: CollectionWriteMode | None = None

    @property
    def effective_mode(self) -> CollectionWriteMode:
        if self.mode is not None:
            return self.mode
        if isinstance(self.payload, list):
            return CollectionWriteMode.REPLACE
        return CollectionWriteMode.APPEND

    @property
    def items(self) -> list[dict[str, Any]]:
        return self.payload if isinstance(self.payload, list) else [self.payload]


class NodeLifecycle:
    def __init__(
        self,
        workflows: WorkflowVersionStore,
        runs: RunLedger,
        node_results: NodeResultStore,
        collections: CollectionStore,
    ) -> None:
        self._workflows = workflows
        self._runs = runs
        self._node_results = node_results
        self._collections = collections

    def _running_run(self, run_id: str) -> RunRecord:
        run = self._runs.read(run_id)
        if run.status is not RunStatus.RUNNING:
            raise InvalidState("run", run_id, run.status.value, expected=(RunStatus.RUNNING.value,))
        return run

    def _require_node(self, run: RunRecord, node_id: str) -> None:
        version = self._workflows.get_version(run.workflow_id, run.workflow_version_id)
        if version.node(node_id) is None:
            raise NotFound("node", f"{run.workflow_id}@{run.workflow_version_id}/{node_id}")

    def _reject_terminal(self, run_id: str, node_id: str) -> NodeResult | None:
        existing = self._node_results.find(run_id, node_id)
        if existing is not None and existing.status.is_terminal:
            raise InvalidState(
                "node result",
                f"{run_id}/{node_id}",
                existing.status.value,
                expected=(NodeResultStatus.STARTED.value,),
            )
        return existing

    def check_provenance(self, run_id: str, provenance: Provenance) -> None:
        """Require ``provenance`` to name a node of the run's version and its current result.

        Used for collection writes made outside ``complete``; the result may be in
        any status.
        """

        run = self._runs.read(run_id)
        self._require_node(run, provenance.node_id)
        result = self._node_results.find(run_id, provenance.node_id)
        if result is None or result.node_result_id != provenance.node_result_id:
            raise NotFound(
                "node result",
                f"{run_id}/{provenance.node_id}/{provenance.node_result_id}",
            )

    def start(self, run_id: str, node_id: str, by: str) -> str:
        """Mark ``node_id`` started; returns the node result id for ``complete``."""

        run = self._running_run(run_id)
        self._require_node(run, node_id)
        self._reject_terminal(run_id, node_id)

        node_result_id = new_id("nr")
        self._runs.append_event(
            run_id,
            Event(
                type=STEP_STARTED,
                by=by,
                data={"step": node_id, "node_result_id": node_result_id},
            ),
        )
        self._node_results.write(
            NodeResult(
                node_result_id=node_result_id,
                run_id=run_id,
                workflow_id=run.workflow_id,
                workflow_version_id=run.workflow_version_id,
                node_id=node_id,
                status=NodeResultStatus.STARTED,
                started_at=utc_now_iso(),
            )
        )
        logger.info("Node started", extra={"run_id": run_id, "node_id": node_id})
        return node_result_id

    def _write_collection(
        self, run_id: str, write: CollectionWrite, provenance: Provenance
    ) -> NodeResultWrite:
        if write.effective_mode is CollectionWriteMode.REPLACE:
            document = self._collections.replace_all(run_id, write.kind, write.items, provenance)
            item_ids = [str(item["id"]) for item in document.items]
        else:
            ids = [write.item_id] if isinstance(write.payload, dict) else None
            added = self._collections.extend(
                run_id, write.kind, write.items, provenance, item_ids=ids
            )
            item_ids = [str(item["id"]) for item in added]
        return NodeResultWrite(kind=write.kind, item_ids=item_ids)

    def complete(
        self,
        run_id: str,
        node_id: str,
        status: NodeResultStatus | str,
        by: str,
        output: Any | None = None,
        collection_write: CollectionWrite | dict[str, Any] | None = None,
        node_result_id: str | None = None,
    ) -> NodeResult:
        """Record a terminal outcome for ``node_id``, optionally writing a collection."""

        status = NodeResultStatus(status)
        if not status.is_terminal:
            raise ValueError(f"complete requires a terminal status, got {status.value!r}")
        if isinstance(collection_write, dict):
            collection_write = CollectionWrite.model_validate(collection_write)

        run = self._running_run(run_id)
        self._require_node(run, node_id)
        existing = self._reject_terminal(run_id, node_id)

        result_id = node_result_id or (existing.node_result_id if existing else new_id("nr"))
        started_at = existing.started_at if existing else utc_now_iso()

        writes: list[NodeResultWrite] | None = None
        if collection_write is not None:
            provenance = Provenance(node_id=node_id, node_result_id=result_id)
            writes = [self._write_collection(run_id, collection_write, provenance)]

        result = NodeResult(
            node_result_id=result_id,
            run_id=run_id,
            workflow_id=run.workflow_id,
            workflow_version_id=run.workflow_version_id,
            node_id=node_id,
            status=status,
            started_at=started_at,
            completed_at=utc_now_iso(),
            output=output,
            writes=writes,
        )
        self._node_results.write(result)

        data: dict[str, Any] = {
            "step": node_id,
            "status": status.value,
            "node_result_id": result_id,
        }
        if writes:
            data["writes"] = [w.to_json() for w in writes]
        self._runs.append_event(run_id, Event(type=STEP_COMPLETED, by=by, data=data))
        logger.info(
            "Node completed",
            extra={"run_id": run_id, "node_id": node_id, "status": status.value},
        )
        return result
