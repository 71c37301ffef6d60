"""Unit tests for the ledger facade's composite run operations."""

from __future__ import annotations

from pathlib import Path

import pytest

from reasoning_ledger.config import LedgerSettings
from reasoning_ledger.defaults import DEFAULT_WORKFLOW_ID
from reasoning_ledger.errors import Conflict, InvalidState, MissingRequiredFields, NotFound
from reasoning_ledger.ledger import Ledger
from reasoning_ledger.models import RunStatus
from reasoning_ledger.store.collections import Provenance


def test_operations_fail_before_init(tmp_path: Path, settings: LedgerSettings) -> None:
    ledger = Ledger.from_settings(settings)

    with pytest.raises(NotFound) as exc_info:
        ledger.start_run({"topic": "x"})
    assert exc_info.value.entity == "workspace"


def test_from_settings_uses_workspace_path(tmp_path: Path, settings: LedgerSettings) -> None:
    ledger = Ledger.from_settings(settings)
    ledger.init_workspace()

    assert ledger.workspace.root == (tmp_path / ".ledger").resolve()
    assert (tmp_path / ".gitignore").exists()


def test_start_run_pins_current_version(ledger: Ledger) -> None:
    run = ledger.start_run({"topic": "x"}, name="first")

    assert run.workflow_id == DEFAULT_WORKFLOW_ID
    assert run.workflow_version_id == "v1"
    assert run.status is RunStatus.RUNNING
    assert run.run_id.startswith("run_")

    event = ledger.runs.read_events(run.run_id)[0]
    assert event.type == "run_started"
    assert event.by == "tester"
    assert event.data["input"] == {"topic": "x"}
    assert event.data["name"] == "first"


def test_start_run_seeds_run_input_collection(ledger: Ledger) -> None:
    run = ledger.start_run({"topic": "x"})

    assert ledger.collections.read(run.run_id, "run_input").items[0]["topic"] == "x"


def test_start_run_skips_seed_when_kind_not_declared(ledger: Ledger) -> None:
    ledger.schemas.write(DEFAULT_WORKFLOW_ID, {"kinds": {"sources": {}}})

    run = ledger.start_run({"topic": "x"})

    assert ledger.collections.list_kinds(run.run_id) == []


def test_start_run_rejects_invalid_input_without_persisting(ledger: Ledger) -> None:
    ledger.schemas.add_kind(DEFAULT_WORKFLOW_ID, "run_input", "Run input", ["topic"])

    with pytest.raises(MissingRequiredFields):
        ledger.start_run({}, run_id="run_x")

    assert not ledger.runs.exists("run_x")
    assert ledger.runs.list() == []


def test_start_run_duplicate_id(ledger: Ledger) -> None:
    ledger.start_run({}, run_id="run_fixed")

    with pytest.raises(Conflict):
        ledger.start_run({}, run_id="run_fixed")


def test_runs_keep_their_version_after_mutation(ledger: Ledger) -> None:
    run = ledger.start_run({})
    mutation_id = ledger.mutation_protocol.propose(
        None, [{"op": "replace", "path": "/name", "value": "v2"}], reason="r", by="t"
    )
    ledger.mutation_protocol.apply(mutation_id)

    assert ledger.runs.read(run.run_id).workflow_version_id == "v1"
    assert ledger.start_run({}).workflow_version_id == "v2"


def test_append_event_normalizes_partial_event(ledger: Ledger) -> None:
    run = ledger.start_run({})

    event = ledger.append_event(run.run_id, {"note": "hello"})

    assert event.type == "artifact"
    assert event.by == "tester"
    assert event.data == {"note": "hello"}
    assert event.ts


def test_append_event_keeps_supplied_envelope(ledger: Ledger) -> None:
    run = ledger.start_run({})

    event = ledger.append_event(
        run.run_id,
        {"ts": "2026-01-01T00:00:00+00:00", "type": "custom", "by": "bot", "data": {"a": 1}},
    )

    assert event.ts == "2026-01-01T00:00:00+00:00"
    assert event.type == "custom"
    assert event.by == "bot"
    assert event.data == {"a": 1}
    assert ledger.runs.read_events(run.run_id)[-1] == event


def test_complete_run(ledger: Ledger) -> None:
    run = ledger.start_run({})

    completed = ledger.complete_run(run.run_id, final_answer="done", by="agent")

    assert completed.status is RunStatus.COMPLETED
    assert completed.final_answer == "done"
    event = ledger.runs.read_events(run.run_id)[-1]
    assert event.type == "run_completed"
    assert event.by == "agent"

    with pytest.raises(InvalidState):
        ledger.complete_run(run.run_id)
    assert ledger.runs.read(run.run_id).status is RunStatus.COMPLETED


def test_append_item_requires_current_node_result(ledger: Ledger) -> None:
    ledger.schemas.add_kind(DEFAULT_WORKFLOW_ID, "sources", "Sources", ["url"])
    run = ledger.start_run({"topic": "x"})
    node_result_id = ledger.lifecycle.start(run.run_id, "retrieve_sources", by="agent")

    with pytest.raises(NotFound):
        ledger.append_item(
            run.run_id, "sources", {"url": "http://a"}, Provenance("ghost", "nr_fake")
        )

    item = ledger.append_item(
        run.run_id,
        "sources",
        {"url": "http://a"},
        Provenance("retrieve_sources", node_result_id),
    )
    assert item["created_by_node_result_id"] == node_result_id
    assert len(ledger.collections.read(run.run_id, "sources").items) == 1

    with pytest.raises(NotFound):
        ledger.replace_items(
            run.run_id, "sources", [{"url": "http://b"}], Provenance("retrieve_sources", "nr_x")
        )
    assert ledger.collections.read(run.run_id, "sources").items == [item]
