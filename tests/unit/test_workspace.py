"""Unit tests for the workspace repository and file helpers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from reasoning_ledger.errors import NotFound
from reasoning_ledger.workspace import (
    GITIGNORE_MARKER,
    Workspace,
    append_json_line,
    create_json,
    read_json,
    read_json_lines,
    safe_name,
    write_json,
)


def test_require_fails_before_init(workspace: Workspace) -> None:
    assert not workspace.exists()
    with pytest.raises(NotFound) as exc_info:
        workspace.require()
    assert exc_info.value.entity == "workspace"


def test_ensure_creates_subareas_and_gitignore(tmp_path: Path) -> None:
    workspace = Workspace(tmp_path)
    paths = workspace.ensure()

    for directory in paths.subareas():
        assert directory.is_dir()
    gitignore = (tmp_path / ".gitignore").read_text(encoding="utf-8")
    assert GITIGNORE_MARKER in gitignore
    assert ".ledger/runs/" in gitignore
    assert ".ledger/workflows/" not in gitignore.splitlines()


def test_ensure_is_idempotent_and_keeps_existing_gitignore(tmp_path: Path) -> None:
    (tmp_path / ".gitignore").write_text("node_modules/\n", encoding="utf-8")
    workspace = Workspace(tmp_path)

    workspace.ensure()
    workspace.ensure()

    content = (tmp_path / ".gitignore").read_text(encoding="utf-8")
    assert content.startswith("node_modules/\n")
    assert content.count(GITIGNORE_MARKER) == 1


def test_workspace_exists_once_index_written(workspace: Workspace) -> None:
    workspace.ensure(gitignore=False)
    assert not workspace.exists()

    write_json(workspace.paths.workflows_index, {"current_workflow_id": "wf", "workflows": []})

    assert workspace.exists()
    assert workspace.require() == workspace.paths


def test_safe_name_replaces_unsafe_characters() -> None:
    assert safe_name("run_1-a") == "run_1-a"
    assert safe_name("../etc/passwd") == "___etc_passwd"
    with pytest.raises(ValueError):
        safe_name("")


def test_write_json_is_indented_with_trailing_newline(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "doc.json"
    write_json(path, {"name": "café"})

    text = path.read_text(encoding="utf-8")
    assert text == '{\n  "name": "café"\n}\n'
    assert read_json(path) == {"name": "café"}
    assert list(path.parent.iterdir()) == [path]


def test_read_json_missing_returns_none_and_corrupt_raises(tmp_path: Path) -> None:
    assert read_json(tmp_path / "missing.json") is None

    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    with pytest.raises(json.JSONDecodeError):
        read_json(broken)


def test_create_json_refuses_to_overwrite(tmp_path: Path) -> None:
    path = tmp_path / "v1.json"
    create_json(path, {"a": 1})

    with pytest.raises(FileExistsError):
        create_json(path, {"a": 2})
    assert read_json(path) == {"a": 1}


def test_json_lines_append_in_order(tmp_path: Path) -> None:
    path = tmp_path / "events.ndjson"
    append_json_line(path, {"n": 1})
    append_json_line(path, {"n": 2})

    assert path.read_text(encoding="utf-8") == '{"n": 1}\n{"n": 2}\n'
    assert read_json_lines(path) == [{"n": 1}, {"n": 2}]
    assert read_json_lines(tmp_path / "none.ndjson") == []
