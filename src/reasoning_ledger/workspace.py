"""Workspace repository: the root directory every store lives under.

The workspace is a plain directory of JSON documents:

- JSON files for workflows, runs, node results, collections and mutations
- NDJSON files for the append-only event logs

Each store owns exactly one subdirectory. This module only resolves paths,
creates the subdirectories and provides the file primitives the stores share.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from reasoning_ledger.config import DEFAULT_DIR_NAME, LedgerSettings
from reasoning_ledger.errors import NotFound

logger = logging.getLogger(__name__)

WORKFLOWS_DIR = "workflows"
WORKFLOWS_INDEX = "index.json"
RUNS_DIR = "runs"
EVENTS_DIR = "events"
NODE_RESULTS_DIR = "node-results"
COLLECTIONS_DIR = "collections"
SCHEMAS_DIR = "schemas"
MUTATIONS_DIR = "mutations"
DATA_DIR = "data"

GITIGNORE_MARKER = "# reasoning-ledger"

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def safe_name(identifier: str) -> str:
    """Map an identifier onto a file-name-safe stem."""

    if not identifier:
        raise ValueError("identifier must be non-empty")
    return _UNSAFE_NAME_CHARS.sub("_", identifier)


@dataclass(frozen=True, slots=True)
class WorkspacePaths:
    root: Path
    workflows_dir: Path
    workflows_index: Path
    runs_dir: Path
    events_dir: Path
    node_results_dir: Path
    collections_dir: Path
    schemas_dir: Path
    mutations_dir: Path
    data_dir: Path

    def subareas(self) -> list[Path]:
        return [
            self.workflows_dir,
            self.runs_dir,
            self.events_dir,
            self.node_results_dir,
            self.collections_dir,
            self.schemas_dir,
            self.mutations_dir,
            self.data_dir,
        ]


class Workspace:
    """Resolves the workspace root and its subareas.

    Paths are derived from the root; directories may not exist until
    :meth:`ensure` is called.
    """

    def __init__(self, base_dir: Path, dir_name: str = DEFAULT_DIR_NAME) -> None:
        self.base_dir = Path(base_dir).resolve()
        self.root = self.base_dir / dir_name
        self.paths = WorkspacePaths(
            root=self.root,
            workflows_dir=self.root / WORKFLOWS_DIR,
            workflows_index=self.root / WORKFLOWS_DIR / WORKFLOWS_INDEX,
            runs_dir=self.root / RUNS_DIR,
            events_dir=self.root / EVENTS_DIR,
            node_results_dir=self.root / NODE_RESULTS_DIR,
            collections_dir=self.root / COLLECTIONS_DIR,
            schemas_dir=self.root / SCHEMAS_DIR,
            mutations_dir=self.root / MUTATIONS_DIR,
            data_dir=self.root / DATA_DIR,
        )

    @classmethod
    def from_settings(cls, settings: LedgerSettings) -> Workspace:
        return cls(settings.workspace_path, settings.dir_name)

    def __repr__(self) -> str:
        return f"Workspace(root={str(self.root)!r})"

    def exists(self) -> bool:
        """True once the workflow index has been written."""

        return self.paths.workflows_index.is_file()

    def require(self) -> WorkspacePaths:
        if not self.exists():
            raise NotFound("workspace", str(self.root))
        return self.paths

    def ensure(self, *, gitignore: bool = True) -> WorkspacePaths:
        """Create every subarea. Idempotent."""

        for directory in [self.root, *self.paths.subareas()]:
            directory.mkdir(parents=True, exist_ok=True)
        if gitignore:
            self._append_gitignore_snippet()
        logger.info("Workspace directories ensured", extra={"root": str(self.root)})
        return self.paths

    def _append_gitignore_snippet(self) -> None:
        gitignore = self.base_dir / ".gitignore"
        content = gitignore.read_text(encoding="utf-8") if gitignore.exists() else ""
        if GITIGNORE_MARKER in content:
            return
        rel = self.root.name
        lines = [
            f"{GITIGNORE_MARKER} (runtime data; commit {rel}/{WORKFLOWS_DIR}/)",
            *(
                f"{rel}/{name}/"
                for name in (
                    RUNS_DIR,
                    EVENTS_DIR,
                    NODE_RESULTS_DIR,
                    COLLECTIONS_DIR,
                    DATA_DIR,
                    MUTATIONS_DIR,
                )
            ),
        ]
        prefix = "\n\n" if content.strip() else ""
        with gitignore.open("a", encoding="utf-8") as f:
            f.write(prefix + "\n".join(lines) + "\n")


def read_json(path: Path) -> Any | None:
    """Load a JSON document, or None when the file does not exist."""

    if not path.exists():
        return None
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Document is not valid JSON", extra={"path": str(path)})
        raise


def _dumps(obj: Any) -> str:
    return json.dumps(obj, indent=2, ensure_ascii=False) + "\n"


def write_json(path: Path, obj: Any) -> None:
    """Replace a document atomically (temp file + rename, no fsync)."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + f".tmp.{os.getpid()}")
    tmp.write_text(_dumps(obj), encoding="utf-8")
    tmp.replace(path)


def create_json(path: Path, obj: Any) -> None:
    """Write a new document; raises FileExistsError rather than overwrite."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("x", encoding="utf-8") as f:
        f.write(_dumps(obj))


def append_json_line(path: Path, obj: Any) -> None:
    """Append one newline-terminated JSON object (open, append, close)."""

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(obj, ensure_ascii=False) + "\n")


def read_json_lines(path: Path) -> list[Any]:
    if not path.exists():
        return []
    out: list[Any] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            out.append(json.loads(line))
    return out
