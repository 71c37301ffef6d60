"""File-backed stores. Each one owns a single subdirectory of the workspace."""

from reasoning_ledger.store.collections import CollectionStore, Provenance
from reasoning_ledger.store.mutations import MutationStore
from reasoning_ledger.store.node_results import NodeResultStore
from reasoning_ledger.store.runs import RunLedger
from reasoning_ledger.store.schemas import CollectionSchemaRegistry
from reasoning_ledger.store.workflows import WorkflowVersionStore

__all__ = [
    "CollectionSchemaRegistry",
    "CollectionStore",
    "MutationStore",
    "NodeResultStore",
    "Provenance",
    "RunLedger",
    "WorkflowVersionStore",
]
