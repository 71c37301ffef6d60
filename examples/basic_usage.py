#!/usr/bin/env python3
"""Programmatic ledger example.

This demonstrates using the ledger components directly:

* load settings from `.env`
* initialize a workspace with the default workflow
* run the first step, writing a `sources` collection item with provenance
* propose and apply a workflow mutation

The workspace directory is passed as an argument (not read from `.env`).
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from reasoning_ledger.config import LedgerSettings
from reasoning_ledger.errors import LedgerError
from reasoning_ledger.ledger import Ledger
from reasoning_ledger.logging import configure_logging
from reasoning_ledger.workspace import Workspace


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Drive one step of a run (programmatic example).")
    parser.add_argument("--workspace", required=True, help="Directory to create the workspace in")
    parser.add_argument("--topic", required=True, help="Run input topic")
    parser.add_argument("--url", default="https://example.com", help="Source URL to record")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = LedgerSettings()
    configure_logging(settings.log_level, store_level=settings.store_log_level)

    ledger = Ledger(Workspace(Path(args.workspace), settings.dir_name), settings)
    ledger.init_workspace()
    ledger.schemas.add_kind(
        "wf_default",
        "sources",
        "Sources opened while researching the topic",
        required=["url"],
    )

    run = ledger.start_run({"topic": args.topic}, name=args.topic)
    node_result_id = ledger.lifecycle.start(run.run_id, "retrieve_sources", by="example")

    try:
        result = ledger.lifecycle.complete(
            run.run_id,
            "retrieve_sources",
            "completed",
            by="example",
            collection_write={"kind": "sources", "payload": {"url": args.url, "title": args.topic}},
            node_result_id=node_result_id,
        )
    except LedgerError as exc:
        print(json.dumps(exc.to_dict(), indent=2))
        return 1

    print(f"Run {run.run_id} wrote: {[w.to_json() for w in result.writes or []]}")
    print(f"Next step: {ledger.next_step(run.run_id).to_json()}")

    mutation_id = ledger.mutation_protocol.propose(
        "wf_default",
        [{"op": "replace", "path": "/nodes/2/type", "value": "TASK"}],
        reason="Review is automated",
        by="example",
    )
    version_id = ledger.mutation_protocol.apply(mutation_id)
    print(f"Applied {mutation_id}; workflow now at {version_id}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
