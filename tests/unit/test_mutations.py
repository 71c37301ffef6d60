"""Unit tests for the mutation store and protocol."""

from __future__ import annotations

from typing import Any

import pytest

from reasoning_ledger.defaults import DEFAULT_WORKFLOW_ID
from reasoning_ledger.errors import InvalidState, NotFound, PatchError
from reasoning_ledger.ledger import Ledger
from reasoning_ledger.models import MutationStatus

ADD_REVIEW: list[dict[str, Any]] = [
    {
        "op": "add",
        "path": "/nodes/-",
        "value": {
            "id": "review",
            "type": "TASK",
            "contract": {"input": ["summary"], "output": ["approval"]},
        },
    }
]


def test_propose_captures_current_version(ledger: Ledger) -> None:
    mutation_id = ledger.mutation_protocol.propose(
        None, ADD_REVIEW, reason="add review", by="agent"
    )

    mutation = ledger.mutations.read(mutation_id)
    assert mutation.status is MutationStatus.PROPOSED
    assert mutation.target.workflow_id == DEFAULT_WORKFLOW_ID
    assert mutation.target.from_version == "v1"
    assert mutation.created_by == "agent"
    assert mutation.patch == ADD_REVIEW
    assert mutation.applied_to_version is None


def test_propose_rejects_malformed_patch(ledger: Ledger) -> None:
    with pytest.raises(PatchError):
        ledger.mutation_protocol.propose(None, {"op": "add"}, reason="r", by="agent")
    assert ledger.mutations.list() == []


def test_propose_unknown_workflow(ledger: Ledger) -> None:
    with pytest.raises(NotFound):
        ledger.mutation_protocol.propose("wf_missing", ADD_REVIEW, reason="r", by="agent")


def test_apply_advances_pointer_and_stamps_mutation(ledger: Ledger) -> None:
    mutation_id = ledger.mutation_protocol.propose(None, ADD_REVIEW, reason="r", by="agent")

    version_id = ledger.mutation_protocol.apply(mutation_id, by="agent")

    assert version_id == "v2"
    assert ledger.workflows.current_version_id(DEFAULT_WORKFLOW_ID) == "v2"
    mutation = ledger.mutations.read(mutation_id)
    assert mutation.status is MutationStatus.APPLIED
    assert mutation.applied_to_version == "v2"


def test_apply_at_most_once(ledger: Ledger) -> None:
    mutation_id = ledger.mutation_protocol.propose(None, ADD_REVIEW, reason="r", by="agent")
    ledger.mutation_protocol.apply(mutation_id)

    with pytest.raises(InvalidState) as exc_info:
        ledger.mutation_protocol.apply(mutation_id)
    assert exc_info.value.status == "applied"
    assert ledger.workflows.list_versions(DEFAULT_WORKFLOW_ID) == ["v1", "v2"]


def test_failed_apply_keeps_mutation_proposed(ledger: Ledger) -> None:
    patch = [{"op": "remove", "path": "/nodes/9"}]
    mutation_id = ledger.mutation_protocol.propose(None, patch, reason="r", by="agent")

    with pytest.raises(PatchError):
        ledger.mutation_protocol.apply(mutation_id)

    assert ledger.mutations.read(mutation_id).status is MutationStatus.PROPOSED
    assert ledger.workflows.current_version_id(DEFAULT_WORKFLOW_ID) == "v1"


def test_apply_uses_from_version_not_current(ledger: Ledger) -> None:
    mutation_id = ledger.mutation_protocol.propose(None, ADD_REVIEW, reason="r", by="agent")
    # Another change lands first and removes the last node.
    ledger.workflows.set(
        DEFAULT_WORKFLOW_ID,
        {"nodes": [{"id": "only", "type": "TASK", "contract": {"input": [], "output": []}}]},
    )

    version_id = ledger.mutation_protocol.apply(mutation_id)

    nodes = ledger.workflows.get_version(DEFAULT_WORKFLOW_ID, version_id).nodes
    assert [n.id for n in nodes][-1] == "review"
    assert len(nodes) == 4


def test_apply_missing_mutation(ledger: Ledger) -> None:
    with pytest.raises(NotFound):
        ledger.mutation_protocol.apply("mut_missing")


def test_list_filters_by_workflow(ledger: Ledger) -> None:
    ledger.mutation_protocol.propose(None, ADD_REVIEW, reason="r", by="agent")

    assert len(ledger.mutations.list()) == 1
    assert len(ledger.mutations.list(DEFAULT_WORKFLOW_ID)) == 1
    assert ledger.mutations.list("wf_other") == []
