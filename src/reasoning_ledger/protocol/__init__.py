"""Multi-document operations built on the stores.

- node lifecycle (start/complete with an optional collection write)
- workflow mutations (propose/apply)
- next-step guidance for a running run
"""

from reasoning_ledger.protocol.lifecycle import CollectionWrite, CollectionWriteMode, NodeLifecycle
from reasoning_ledger.protocol.mutation import MutationProtocol
from reasoning_ledger.protocol.run_engine import NextStep, NextStepAction, RunEngine

__all__ = [
    "CollectionWrite",
    "CollectionWriteMode",
    "MutationProtocol",
    "NextStep",
    "NextStepAction",
    "NodeLifecycle",
    "RunEngine",
]
