"""Documents seeded into a fresh workspace."""

from __future__ import annotations

from typing import Any

DEFAULT_WORKFLOW_ID = "wf_default"
DEFAULT_WORKFLOW_NAME = "Default workflow"
DEFAULT_WORKFLOW_DESCRIPTION = "Example workflow: retrieve sources, summarise, human review."

RUN_INPUT_KIND = "run_input"


def default_workflow_document() -> dict[str, Any]:
    """Graph for the default workflow (version id and timestamps are assigned on write)."""

    return {
        "name": "v1",
        "nodes": [
            {
                "id": "retrieve_sources",
                "type": "TASK",
                "contract": {"input": ["topic"], "output": ["sources"]},
                "input_collections": [RUN_INPUT_KIND],
                "output_collections": ["sources"],
                "prompt": (
                    "Retrieve relevant sources for the run input topic. Only record sources "
                    "you actually opened; do not invent URLs."
                ),
            },
            {
                "id": "synthesize_summary",
                "type": "TASK",
                "contract": {"input": ["sources"], "output": ["summary"]},
                "input_collections": ["sources"],
                "output_collections": ["summary"],
                "prompt": (
                    "Synthesize the sources into a concise summary. Use only content present "
                    "in the sources collection."
                ),
            },
            {
                "id": "human_review",
                "type": "HUMAN_IN_THE_LOOP",
                "contract": {"input": ["summary"], "output": ["approved_summary"]},
                "input_collections": ["summary"],
                "output_collections": ["approved_summary"],
                "prompt": (
                    "Review the summary and copy it (edited if needed) into approved_summary."
                ),
            },
        ],
        "edges": [
            {"from": "retrieve_sources", "to": "synthesize_summary"},
            {"from": "synthesize_summary", "to": "human_review"},
        ],
    }


def default_collection_kinds() -> dict[str, Any]:
    """Kinds every new schema starts with. Agents add their own via add_kind/write."""

    return {
        RUN_INPUT_KIND: {
            "description": "Input supplied when the run was started",
            "item_schema": {"type": "object", "properties": {}},
            "required": [],
        }
    }
