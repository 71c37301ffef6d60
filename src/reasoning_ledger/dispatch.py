"""Operation table for command and RPC surfaces.

Each handler takes the :class:`Ledger` and a mapping of already-decoded
arguments and returns a JSON-ready value. Errors propagate unchanged; the
surface decides how to render them (see :meth:`LedgerError.to_dict`).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

from reasoning_ledger.errors import UnknownOperation
from reasoning_ledger.ledger import Ledger
from reasoning_ledger.store.collections import Provenance

logger = logging.getLogger(__name__)

Args = Mapping[str, Any]
Handler = Callable[[Ledger, Args], Any]


def _required(args: Args, name: str) -> Any:
    value = args.get(name)
    if value is None:
        raise ValueError(f"Missing required argument: {name}")
    return value


def _provenance(args: Args) -> Provenance | None:
    node_id = args.get("node_id")
    node_result_id = args.get("node_result_id")
    if node_id and node_result_id:
        return Provenance(node_id=node_id, node_result_id=node_result_id)
    return None


# --- workflows ---


def _workflow_get(ledger: Ledger, args: Args) -> Any:
    workflow_id = ledger.workflows.resolve_workflow_id(args.get("workflow_id"))
    version_id = args.get("version_id")
    if version_id:
        return ledger.workflows.get_version(workflow_id, version_id).to_json()
    return ledger.workflows.get_current(workflow_id).to_json()


def _workflow_set(ledger: Ledger, args: Args) -> Any:
    workflow_id = ledger.workflows.resolve_workflow_id(args.get("workflow_id"))
    version_id = ledger.workflows.set(
        workflow_id,
        _required(args, "workflow"),
        name=args.get("name"),
        description=args.get("description"),
    )
    return {"workflow_id": workflow_id, "version_id": version_id}


def _workflow_versions(ledger: Ledger, args: Args) -> Any:
    workflow_id = ledger.workflows.resolve_workflow_id(args.get("workflow_id"))
    return {
        "workflow_id": workflow_id,
        "current_version_id": ledger.workflows.current_version_id(workflow_id),
        "versions": ledger.workflows.list_versions(workflow_id),
    }


# --- runs and events ---


def _run_start(ledger: Ledger, args: Args) -> Any:
    run = ledger.start_run(
        args.get("input"),
        workflow_id=args.get("workflow_id"),
        name=args.get("name"),
        run_id=args.get("run_id"),
        by=args.get("by"),
    )
    return run.to_json()


def _run_get(ledger: Ledger, args: Args) -> Any:
    return ledger.runs.read(_required(args, "run_id")).to_json()


def _run_list(ledger: Ledger, args: Args) -> Any:
    return [run.to_json() for run in ledger.runs.list()]


def _run_complete(ledger: Ledger, args: Args) -> Any:
    run = ledger.complete_run(
        _required(args, "run_id"),
        final_answer=args.get("final_answer"),
        by=args.get("by"),
    )
    return run.to_json()


def _run_next_step(ledger: Ledger, args: Args) -> Any:
    run_id = _required(args, "run_id")
    step = ledger.next_step(run_id)
    return {
        "run_id": run_id,
        "status": ledger.runs.read(run_id).status.value,
        "next_step": step.to_json(),
    }


def _event_append(ledger: Ledger, args: Args) -> Any:
    event = ledger.append_event(
        _required(args, "run_id"),
        _required(args, "event"),
        by=args.get("by"),
    )
    return event.to_json()


def _event_list(ledger: Ledger, args: Args) -> Any:
    return [event.to_json() for event in ledger.runs.read_events(_required(args, "run_id"))]


# --- node lifecycle ---


def _node_start(ledger: Ledger, args: Args) -> Any:
    node_result_id = ledger.lifecycle.start(
        _required(args, "run_id"),
        _required(args, "node_id"),
        by=ledger.actor(args.get("by")),
    )
    return {"node_result_id": node_result_id}


def _node_complete(ledger: Ledger, args: Args) -> Any:
    result = ledger.lifecycle.complete(
        _required(args, "run_id"),
        _required(args, "node_id"),
        status=args.get("status") or "completed",
        by=ledger.actor(args.get("by")),
        output=args.get("output"),
        collection_write=args.get("collection_write"),
        node_result_id=args.get("node_result_id"),
    )
    return result.to_json()


def _node_results(ledger: Ledger, args: Args) -> Any:
    results = ledger.node_results.list(_required(args, "run_id"))
    results.sort(key=lambda r: r.started_at)
    return [r.to_json() for r in results]


# --- collections ---


def _schema_get(ledger: Ledger, args: Args) -> Any:
    workflow_id = ledger.workflows.resolve_workflow_id(args.get("workflow_id"))
    return ledger.schemas.read(workflow_id).to_json()


def _schema_set(ledger: Ledger, args: Args) -> Any:
    workflow_id = ledger.workflows.resolve_workflow_id(args.get("workflow_id"))
    return ledger.schemas.write(workflow_id, _required(args, "schema")).to_json()


def _schema_add_kind(ledger: Ledger, args: Args) -> Any:
    workflow_id = ledger.workflows.resolve_workflow_id(args.get("workflow_id"))
    schema = ledger.schemas.add_kind(
        workflow_id,
        _required(args, "kind"),
        args.get("description") or "",
        args.get("required") or (),
        args.get("properties"),
        references=args.get("references"),
        global_=args.get("global"),
    )
    return schema.to_json()


def _collection_list(ledger: Ledger, args: Args) -> Any:
    return ledger.collections.list_kinds(_required(args, "run_id"))


def _collection_get(ledger: Ledger, args: Args) -> Any:
    return ledger.collections.read(_required(args, "run_id"), _required(args, "kind")).to_json()


def _collection_set(ledger: Ledger, args: Args) -> Any:
    document = ledger.replace_items(
        _required(args, "run_id"),
        _required(args, "kind"),
        _required(args, "items"),
        _provenance(args),
    )
    return document.to_json()


def _collection_append(ledger: Ledger, args: Args) -> Any:
    return ledger.append_item(
        _required(args, "run_id"),
        _required(args, "kind"),
        _required(args, "payload"),
        _provenance(args),
        item_id=args.get("id"),
    )


# --- mutations ---


def _mutation_propose(ledger: Ledger, args: Args) -> Any:
    mutation_id = ledger.mutation_protocol.propose(
        args.get("workflow_id"),
        _required(args, "patch"),
        reason=args.get("reason") or "",
        by=ledger.actor(args.get("by")),
    )
    return {"mutation_id": mutation_id}


def _mutation_apply(ledger: Ledger, args: Args) -> Any:
    mutation_id = _required(args, "mutation_id")
    version_id = ledger.mutation_protocol.apply(mutation_id, by=ledger.actor(args.get("by")))
    return {"mutation_id": mutation_id, "version_id": version_id}


def _mutation_get(ledger: Ledger, args: Args) -> Any:
    return ledger.mutations.read(_required(args, "mutation_id")).to_json()


OPERATIONS: dict[str, Handler] = {
    "workflow.get": _workflow_get,
    "workflow.set": _workflow_set,
    "workflow.versions": _workflow_versions,
    "run.start": _run_start,
    "run.get": _run_get,
    "run.list": _run_list,
    "run.complete": _run_complete,
    "run.next_step": _run_next_step,
    "event.append": _event_append,
    "event.list": _event_list,
    "node.start": _node_start,
    "node.complete": _node_complete,
    "node.results": _node_results,
    "collection.schema.get": _schema_get,
    "collection.schema.set": _schema_set,
    "collection.schema.add_kind": _schema_add_kind,
    "collection.list": _collection_list,
    "collection.get": _collection_get,
    "collection.set": _collection_set,
    "collection.append": _collection_append,
    "mutation.propose": _mutation_propose,
    "mutation.apply": _mutation_apply,
    "mutation.get": _mutation_get,
}


def dispatch(ledger: Ledger, name: str, args: Args | None = None) -> Any:
    handler = OPERATIONS.get(name)
    if handler is None:
        raise UnknownOperation(name)
    logger.debug("Dispatching operation", extra={"operation": name})
    return handler(ledger, args or {})
