"""Test configuration and fixtures."""

from pathlib import Path
from typing import Any

import pytest

from reasoning_ledger.config import LedgerSettings
from reasoning_ledger.ledger import Ledger
from reasoning_ledger.workspace import Workspace

_LEDGER_ENV_VARS = (
    "LEDGER_WORKSPACE",
    "LEDGER_DIR_NAME",
    "LEDGER_DEFAULT_BY",
    "LEDGER_STORE_LOG_LEVEL",
    "LOG_LEVEL",
)

RESEARCH_WORKFLOW_ID = "wf_research"


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove ledger variables inherited from the developer's shell."""
    for name in _LEDGER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def settings(tmp_path: Path, clean_env: None) -> LedgerSettings:
    """Provide settings pointing at a temporary workspace."""
    return LedgerSettings(_env_file=None, workspace_path=tmp_path, default_by="tester")


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """Provide an uninitialized workspace."""
    return Workspace(tmp_path)


@pytest.fixture
def ledger(workspace: Workspace, settings: LedgerSettings) -> Ledger:
    """Provide a ledger over an initialized workspace."""
    ledger = Ledger(workspace, settings)
    ledger.init_workspace(gitignore=False)
    return ledger


def _research_workflow_document() -> dict[str, Any]:
    return {
        "name": "research",
        "nodes": [
            {
                "id": "retrieve",
                "type": "TASK",
                "contract": {"input": ["topic"], "output": ["sources"]},
                "input_collections": ["run_input"],
                "output_collections": ["sources"],
            },
            {
                "id": "synthesize",
                "type": "TASK",
                "contract": {"input": ["sources"], "output": ["summary"]},
                "input_collections": ["sources"],
                "output_collections": ["summary"],
            },
        ],
        "edges": [{"from": "retrieve", "to": "synthesize"}],
    }


@pytest.fixture
def workflow_document() -> dict[str, Any]:
    """Provide a fresh retrieve -> synthesize workflow document."""
    return _research_workflow_document()


@pytest.fixture
def research(ledger: Ledger) -> str:
    """Register a two-step workflow with ``sources`` and ``summary`` kinds."""
    ledger.workflows.set(RESEARCH_WORKFLOW_ID, _research_workflow_document(), name="Research")
    ledger.schemas.write(
        RESEARCH_WORKFLOW_ID,
        {
            "kinds": {
                "run_input": {"description": "Run input"},
                "sources": {
                    "description": "Sources opened",
                    "required": ["url"],
                    "item_schema": {
                        "type": "object",
                        "properties": {"url": {"type": "string"}, "title": {"type": "string"}},
                    },
                },
                "summary": {"description": "Synthesized summary", "required": ["text"]},
            }
        },
    )
    return RESEARCH_WORKFLOW_ID
