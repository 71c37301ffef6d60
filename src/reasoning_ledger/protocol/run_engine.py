"""Next-step guidance for an agent driving a run."""

from __future__ import annotations

from collections import deque
from enum import Enum

from pydantic import Field

from reasoning_ledger.models import (
    LedgerModel,
    NodeResultStatus,
    RunStatus,
    WorkflowNode,
    WorkflowVersion,
)
from reasoning_ledger.store.node_results import NodeResultStore
from reasoning_ledger.store.runs import RunLedger
from reasoning_ledger.store.workflows import WorkflowVersionStore


class NextStepAction(str, Enum):
    RUN_NODE = "run_node"
    COMPLETE_NODE = "complete_node"
    COMPLETE_RUN = "complete_run"
    DONE = "done"


class NextStep(LedgerModel):
    action: NextStepAction
    node_id: str | None = None
    output_collections: list[str] = Field(default_factory=list)
    collection_kind: str | None = None
    hint: str = ""


def topological_order(version: WorkflowVersion) -> list[WorkflowNode]:
    """Nodes ordered so every edge source precedes its target.

    Declaration order breaks ties. A graph with a cycle keeps declaration order.
    """

    nodes = version.nodes
    successors: dict[str, list[str]] = {n.id: [] for n in nodes}
    in_degree: dict[str, int] = {n.id: 0 for n in nodes}
    for edge in version.edges:
        if edge.from_ in successors and edge.to in in_degree:
            successors[edge.from_].append(edge.to)
            in_degree[edge.to] += 1

    queue = deque(n.id for n in nodes if in_degree[n.id] == 0)
    order: list[str] = []
    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for nxt in successors[node_id]:
            in_degree[nxt] -= 1
            if in_degree[nxt] == 0:
                queue.append(nxt)

    if len(order) != len(nodes):
        return list(nodes)
    by_id = {n.id: n for n in nodes}
    return [by_id[i] for i in order]


def _single_kind(node: WorkflowNode) -> str | None:
    outputs = node.output_collections or []
    return outputs[0] if len(outputs) == 1 else None


class RunEngine:
    def __init__(
        self,
        workflows: WorkflowVersionStore,
        runs: RunLedger,
        node_results: NodeResultStore,
    ) -> None:
        self._workflows = workflows
        self._runs = runs
        self._node_results = node_results

    def next_step(self, run_id: str) -> NextStep:
        run = self._runs.read(run_id)
        if run.status is not RunStatus.RUNNING:
            return NextStep(action=NextStepAction.DONE, hint="Run is not running.")

        version = self._workflows.get_version(run.workflow_id, run.workflow_version_id)
        results = {r.node_id: r for r in self._node_results.list(run_id)}
        ordered = topological_order(version)

        for node in ordered:
            result = results.get(node.id)
            if result is not None and result.status is NodeResultStatus.STARTED:
                return NextStep(
                    action=NextStepAction.COMPLETE_NODE,
                    node_id=node.id,
                    output_collections=list(node.output_collections or []),
                    collection_kind=_single_kind(node),
                    hint=f"Produce output for node {node.id!r}, then complete it.",
                )

        completed = {
            node_id
            for node_id, r in results.items()
            if r.status is NodeResultStatus.COMPLETED
        }
        predecessors: dict[str, set[str]] = {n.id: set() for n in version.nodes}
        for edge in version.edges:
            if edge.to in predecessors:
                predecessors[edge.to].add(edge.from_)

        for node in ordered:
            if node.id in completed or node.id in results:
                continue
            if predecessors[node.id] <= completed:
                return NextStep(
                    action=NextStepAction.RUN_NODE,
                    node_id=node.id,
                    output_collections=list(node.output_collections or []),
                    collection_kind=_single_kind(node),
                    hint=f"Start node {node.id!r} and do its work.",
                )

        if version.nodes and all(n.id in completed for n in version.nodes):
            return NextStep(
                action=NextStepAction.COMPLETE_RUN,
                hint="All nodes completed. Complete the run.",
            )
        return NextStep(
            action=NextStepAction.DONE,
            hint="No runnable node: a node failed, needs a human, or the workflow has no nodes.",
        )
