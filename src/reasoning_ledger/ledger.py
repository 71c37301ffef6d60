"""Ledger facade composing the stores and protocols over one workspace."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from reasoning_ledger.config import LedgerSettings
from reasoning_ledger.defaults import (
    DEFAULT_WORKFLOW_DESCRIPTION,
    DEFAULT_WORKFLOW_ID,
    DEFAULT_WORKFLOW_NAME,
    RUN_INPUT_KIND,
    default_workflow_document,
)
from reasoning_ledger.errors import InvalidState
from reasoning_ledger.models import (
    CollectionStoreDocument,
    Event,
    RunRecord,
    RunStatus,
    new_id,
    utc_now_iso,
)
from reasoning_ledger.protocol.lifecycle import NodeLifecycle
from reasoning_ledger.protocol.mutation import MutationProtocol
from reasoning_ledger.protocol.run_engine import NextStep, RunEngine
from reasoning_ledger.store.collections import CollectionStore, Provenance
from reasoning_ledger.store.mutations import MutationStore
from reasoning_ledger.store.node_results import NodeResultStore
from reasoning_ledger.store.runs import RunLedger
from reasoning_ledger.store.schemas import CollectionSchemaRegistry, validate_item
from reasoning_ledger.store.workflows import WorkflowVersionStore
from reasoning_ledger.workspace import Workspace

logger = logging.getLogger(__name__)

RUN_STARTED = "run_started"
RUN_COMPLETED = "run_completed"
ARTIFACT = "artifact"

_EVENT_ENVELOPE_KEYS = ("ts", "type", "by", "data")


class Ledger:
    """Entry point for callers (CLI, RPC) working against one workspace.

    The stores are exposed as attributes for direct use; the methods here are
    the composite run operations that touch several stores at once.
    """

    def __init__(self, workspace: Workspace, settings: LedgerSettings | None = None) -> None:
        """Initialize the ledger.

        Args:
            workspace: Workspace every store reads and writes.
            settings: Settings object. If None, loads from environment.
        """
        self.workspace = workspace
        self.settings = settings or LedgerSettings()

        self.workflows = WorkflowVersionStore(workspace)
        self.runs = RunLedger(workspace)
        self.node_results = NodeResultStore(workspace)
        self.schemas = CollectionSchemaRegistry(workspace)
        self.collections = CollectionStore(workspace, self.runs, self.schemas)
        self.mutations = MutationStore(workspace)

        self.lifecycle = NodeLifecycle(
            self.workflows, self.runs, self.node_results, self.collections
        )
        self.mutation_protocol = MutationProtocol(self.workflows, self.mutations)
        self.engine = RunEngine(self.workflows, self.runs, self.node_results)

    @classmethod
    def from_settings(cls, settings: LedgerSettings | None = None) -> Ledger:
        settings = settings or LedgerSettings()
        return cls(Workspace.from_settings(settings), settings)

    def actor(self, by: str | None) -> str:
        return by or self.settings.default_by

    # --- workspace ---

    def init_workspace(self, *, force: bool = False, gitignore: bool = True) -> None:
        """Create the workspace and seed the default workflow and schema.

        Args:
            force: Write a new default workflow version even when one exists.
            gitignore: Append the runtime-data snippet to ``.gitignore``.
        """
        self.workspace.ensure(gitignore=gitignore)
        self.workflows.initialize_index(DEFAULT_WORKFLOW_ID)

        if force or not self.workflows.list_versions(DEFAULT_WORKFLOW_ID):
            self.workflows.set(
                DEFAULT_WORKFLOW_ID,
                default_workflow_document(),
                name=DEFAULT_WORKFLOW_NAME,
                description=DEFAULT_WORKFLOW_DESCRIPTION,
            )
        self.schemas.read(DEFAULT_WORKFLOW_ID)
        logger.info("Workspace initialized", extra={"root": str(self.workspace.root)})

    # --- runs ---

    def start_run(
        self,
        input: Mapping[str, Any] | None = None,
        *,
        workflow_id: str | None = None,
        name: str | None = None,
        run_id: str | None = None,
        by: str | None = None,
    ) -> RunRecord:
        """Create a run pinned to the workflow's current version.

        The input is also stored as the ``run_input`` collection when the
        workflow's schema declares that kind.
        """
        actor = self.actor(by)
        wf_id = self.workflows.resolve_workflow_id(workflow_id)
        version_id = self.workflows.current_version_id(wf_id)

        schema = self.schemas.read(wf_id)
        seeds_input = RUN_INPUT_KIND in schema.kinds
        if seeds_input:
            validate_item(schema, RUN_INPUT_KIND, dict(input or {}))

        run = self.runs.create(
            RunRecord(
                run_id=run_id or new_id("run"),
                workflow_id=wf_id,
                workflow_version_id=version_id,
                name=name,
                status=RunStatus.RUNNING,
                input=dict(input or {}),
            )
        )
        data: dict[str, Any] = {
            "workflow_id": wf_id,
            "workflow_version_id": version_id,
            "input": run.input,
        }
        if name:
            data["name"] = name
        self.runs.append_event(run.run_id, Event(type=RUN_STARTED, by=actor, data=data))

        if seeds_input:
            self.collections.replace_all(run.run_id, RUN_INPUT_KIND, [run.input], None)
        return run

    def append_event(
        self, run_id: str, event: Mapping[str, Any], by: str | None = None
    ) -> Event:
        """Append a caller-supplied event, filling in missing envelope fields.

        ``ts`` defaults to now, ``type`` to ``artifact`` and ``by`` to the actor.
        Without a ``data`` map, the non-envelope keys become the data.
        """
        data = event.get("data")
        if data is None:
            data = {k: v for k, v in event.items() if k not in _EVENT_ENVELOPE_KEYS}
        normalized = Event(
            ts=str(event.get("ts") or utc_now_iso()),
            type=str(event.get("type") or ARTIFACT),
            by=str(event.get("by") or self.actor(by)),
            data=data,
        )
        return self.runs.append_event(run_id, normalized)

    def complete_run(
        self, run_id: str, final_answer: str | None = None, by: str | None = None
    ) -> RunRecord:
        run = self.runs.read(run_id)
        if run.status is RunStatus.COMPLETED:
            raise InvalidState("run", run_id, run.status.value, expected=(RunStatus.RUNNING.value,))

        updates: dict[str, Any] = {"status": RunStatus.COMPLETED.value}
        if final_answer is not None:
            updates["final_answer"] = final_answer
        updated = self.runs.update(run_id, **updates)

        data = {"final_answer": final_answer} if final_answer is not None else {}
        self.runs.append_event(run_id, Event(type=RUN_COMPLETED, by=self.actor(by), data=data))
        logger.info("Run completed", extra={"run_id": run_id})
        return updated

    def next_step(self, run_id: str) -> NextStep:
        return self.engine.next_step(run_id)

    # --- collections ---

    def append_item(
        self,
        run_id: str,
        kind: str,
        payload: Mapping[str, Any],
        provenance: Provenance | None,
        item_id: str | None = None,
    ) -> dict[str, Any]:
        """Append one item written by a caller rather than by ``complete``.

        The provenance must point at the node's current result in this run.
        """
        if provenance is not None:
            self.lifecycle.check_provenance(run_id, provenance)
        return self.collections.append(run_id, kind, payload, provenance, item_id=item_id)

    def replace_items(
        self,
        run_id: str,
        kind: str,
        items: Iterable[Mapping[str, Any]],
        provenance: Provenance | None,
    ) -> CollectionStoreDocument:
        if provenance is not None:
            self.lifecycle.check_provenance(run_id, provenance)
        return self.collections.replace_all(run_id, kind, items, provenance)
