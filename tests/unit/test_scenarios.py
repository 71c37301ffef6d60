"""End-to-end scenarios across stores and protocols."""

from __future__ import annotations

import pytest

from reasoning_ledger.errors import InvalidState, UnknownKind
from reasoning_ledger.ledger import Ledger
from reasoning_ledger.models import RunStatus
from reasoning_ledger.store.collections import Provenance
from reasoning_ledger.store.schemas import TRACEABILITY_EXCLUDED_KINDS


def test_retrieve_then_synthesize_writes_sources_with_provenance(
    ledger: Ledger, research: str
) -> None:
    run = ledger.start_run({"topic": "x"}, workflow_id=research)
    node_result_id = ledger.lifecycle.start(run.run_id, "retrieve", by="agent")

    ledger.lifecycle.complete(
        run.run_id,
        "retrieve",
        "completed",
        by="agent",
        collection_write={"kind": "sources", "payload": {"url": "http://a"}},
    )

    items = ledger.collections.read(run.run_id, "sources").items
    assert len(items) == 1
    assert items[0]["created_by_node_id"] == "retrieve"
    assert items[0]["created_by_node_result_id"] == node_result_id


def test_mutation_adds_review_node(ledger: Ledger, research: str) -> None:
    patch = [
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
    from_version = ledger.workflows.current_version_id(research)

    mutation_id = ledger.mutation_protocol.propose(research, patch, reason="review", by="agent")
    new_version = ledger.mutation_protocol.apply(mutation_id)

    before = ledger.workflows.get_version(research, from_version)
    after = ledger.workflows.get_version(research, new_version)
    assert len(after.nodes) == len(before.nodes) + 1
    assert ledger.workflows.current_version_id(research) == new_version


def test_append_of_unknown_kind_lists_actual_kinds(ledger: Ledger, research: str) -> None:
    run = ledger.start_run({"topic": "x"}, workflow_id=research)

    with pytest.raises(UnknownKind) as exc_info:
        ledger.collections.append(
            run.run_id, "ideas", {"title": "t"}, Provenance("retrieve", "nr_1")
        )

    known = set(ledger.schemas.read(research).kinds)
    assert set(exc_info.value.known_kinds) == known
    assert "ideas" not in ledger.collections.list_kinds(run.run_id)


def test_run_status_is_monotonic(ledger: Ledger, research: str) -> None:
    run = ledger.start_run({}, workflow_id=research)
    observed = [ledger.runs.read(run.run_id).status]

    ledger.complete_run(run.run_id)
    observed.append(ledger.runs.read(run.run_id).status)
    with pytest.raises(InvalidState):
        ledger.runs.update(run.run_id, status="running")
    observed.append(ledger.runs.read(run.run_id).status)

    assert observed == [RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.COMPLETED]


def test_every_stored_item_has_provenance(ledger: Ledger, research: str) -> None:
    run = ledger.start_run({"topic": "x"}, workflow_id=research)
    ledger.lifecycle.start(run.run_id, "retrieve", by="agent")
    ledger.lifecycle.complete(
        run.run_id,
        "retrieve",
        "completed",
        by="agent",
        collection_write={"kind": "sources", "payload": [{"url": "http://a"}, {"url": "b"}]},
    )
    ledger.lifecycle.complete(
        run.run_id,
        "synthesize",
        "completed",
        by="agent",
        collection_write={"kind": "summary", "payload": {"text": "short"}},
    )

    for kind in ledger.collections.list_kinds(run.run_id):
        if kind in TRACEABILITY_EXCLUDED_KINDS:
            continue
        node_id = "retrieve" if kind == "sources" else "synthesize"
        result = ledger.node_results.read(run.run_id, node_id)
        for item in ledger.collections.read(run.run_id, kind).items:
            assert item["created_by_node_id"] == result.node_id
            assert item["created_by_node_result_id"] == result.node_result_id
