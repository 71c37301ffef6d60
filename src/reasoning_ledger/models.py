"""Pydantic models for every document the ledger persists.

Open-ended maps (run input, event data, collection payloads, extra node fields)
are kept verbatim; only the fixed envelopes are typed.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def new_id(prefix: str) -> str:
    """Return ``<prefix>_<12 hex chars>``."""

    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class LedgerModel(BaseModel):
    """Base model with the ledger's JSON conventions."""

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Workflows ---


class NodeContract(LedgerModel):
    model_config = ConfigDict(extra="allow")

    input: list[str] = Field(default_factory=list)
    output: list[str] = Field(default_factory=list)


class WorkflowNode(LedgerModel):
    """One step of a workflow version."""

    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    contract: NodeContract
    input_collections: list[str] | None = None
    output_collections: list[str] | None = None
    prompt: str | None = None
    description: str | None = None


class WorkflowEdge(LedgerModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    from_: str = Field(alias="from")
    to: str


class WorkflowVersion(LedgerModel):
    """An immutable, numbered version of a workflow graph."""

    model_config = ConfigDict(extra="allow")

    workflow_id: str
    version_id: str
    name: str | None = None
    description: str | None = None
    created_at: str
    nodes: list[WorkflowNode] = Field(default_factory=list)
    edges: list[WorkflowEdge] = Field(default_factory=list)

    def node(self, node_id: str) -> WorkflowNode | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None


class WorkflowSummary(LedgerModel):
    workflow_id: str
    name: str
    description: str | None = None
    current_version_id: str
    created_at: str = Field(default_factory=utc_now_iso)


class WorkflowIndex(LedgerModel):
    """The pointer document: workflow ids mapped to their current version."""

    current_workflow_id: str
    workflows: list[WorkflowSummary] = Field(default_factory=list)

    def get(self, workflow_id: str) -> WorkflowSummary | None:
        for summary in self.workflows:
            if summary.workflow_id == workflow_id:
                return summary
        return None


# --- Runs and events ---


class RunStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"


class RunRecord(LedgerModel):
    run_id: str
    workflow_id: str
    workflow_version_id: str
    name: str | None = None
    status: RunStatus = RunStatus.RUNNING
    input: dict[str, Any] = Field(default_factory=dict)
    created_at: str = Field(default_factory=utc_now_iso)
    final_answer: str | None = None


class Event(LedgerModel):
    """One immutable line of a run's event log."""

    ts: str = Field(default_factory=utc_now_iso)
    type: str
    by: str
    data: dict[str, Any] = Field(default_factory=dict)


# --- Node results ---


class NodeResultStatus(str, Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"
    NEEDS_HUMAN = "needs_human"

    @property
    def is_terminal(self) -> bool:
        return self is not NodeResultStatus.STARTED


TERMINAL_NODE_STATUSES: frozenset[NodeResultStatus] = frozenset(
    {NodeResultStatus.COMPLETED, NodeResultStatus.FAILED, NodeResultStatus.NEEDS_HUMAN}
)


class NodeResultWrite(LedgerModel):
    kind: str
    item_ids: list[str] = Field(default_factory=list)


class NodeResult(LedgerModel):
    """The current outcome snapshot of one step within one run."""

    node_result_id: str
    run_id: str
    workflow_id: str
    workflow_version_id: str
    node_id: str
    status: NodeResultStatus
    started_at: str
    completed_at: str | None = None
    output: Any | None = None
    writes: list[NodeResultWrite] | None = None


# --- Collections ---


class ReferenceCardinality(str, Enum):
    ONE = "one"
    MANY = "many"


class CollectionFieldReference(LedgerModel):
    kind: str
    cardinality: ReferenceCardinality = ReferenceCardinality.ONE
    label: str | None = None


class CollectionKindSchema(LedgerModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    description: str = ""
    item_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}}
    )
    required: list[str] = Field(default_factory=list)
    references: dict[str, CollectionFieldReference] | None = None
    global_: bool | None = Field(default=None, alias="global")

    @property
    def is_global(self) -> bool:
        return bool(self.global_)


class CollectionSchemaConfig(LedgerModel):
    workflow_id: str
    kinds: dict[str, CollectionKindSchema] = Field(default_factory=dict)


class CollectionStoreDocument(LedgerModel):
    """Per (run, kind) ordered list of items."""

    run_id: str
    kind: str
    updated_at: str = Field(default_factory=utc_now_iso)
    items: list[dict[str, Any]] = Field(default_factory=list)


class GlobalEntityDocument(LedgerModel):
    """Items of a global kind across all runs; each item is tagged with its run_id."""

    kind: str
    updated_at: str = Field(default_factory=utc_now_iso)
    items: list[dict[str, Any]] = Field(default_factory=list)


# --- Mutations ---


class MutationStatus(str, Enum):
    PROPOSED = "proposed"
    APPLIED = "applied"


class MutationTarget(LedgerModel):
    type: Literal["workflow"] = "workflow"
    workflow_id: str
    from_version: str


class Mutation(LedgerModel):
    mutation_id: str
    target: MutationTarget
    patch: list[dict[str, Any]]
    reason: str
    status: MutationStatus = MutationStatus.PROPOSED
    created_by: str
    created_at: str = Field(default_factory=utc_now_iso)
    applied_to_version: str | None = None
