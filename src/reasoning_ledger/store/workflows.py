"""Versioned workflow storage.

Layout::

    workflows/index.json                     pointer document
    workflows/<workflow_id>/versions/vN.json immutable versions

Versions are written with exclusive-create and never rewritten. The index is
the only mutable document and maps each workflow to its current version.
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import jsonpatch
import jsonpointer
from pydantic import ValidationError

from reasoning_ledger.errors import Conflict, NotFound, PatchError, WorkflowValidationError
from reasoning_ledger.models import (
    WorkflowIndex,
    WorkflowSummary,
    WorkflowVersion,
    utc_now_iso,
)
from reasoning_ledger.workspace import Workspace, create_json, read_json, safe_name, write_json

logger = logging.getLogger(__name__)

VERSIONS_DIR = "versions"
_VERSION_RE = re.compile(r"^v(\d+)$")

# Fields the store stamps on every version; caller-supplied values are replaced.
_STAMPED_FIELDS = ("workflow_id", "version_id", "created_at")


def parse_version_number(version_id: str) -> int | None:
    match = _VERSION_RE.match(version_id)
    return int(match.group(1)) if match else None


def next_version_id(existing: Iterable[str]) -> str:
    """Return ``v<max + 1>``; gaps in the sequence are tolerated."""

    numbers = [n for n in (parse_version_number(v) for v in existing) if n is not None]
    return f"v{max(numbers, default=0) + 1}"


def validate_workflow_document(document: object) -> None:
    """Check the minimal workflow shape.

    Rules:
    - ``nodes`` is a list of objects with unique non-empty ``id``, a ``type`` string
      and a ``contract`` with ``input``/``output`` lists
    - ``edges`` (optional) is a list of ``{from, to}`` referencing existing node ids
    """

    if not isinstance(document, Mapping):
        raise WorkflowValidationError("Workflow must be a JSON object")
    nodes = document.get("nodes")
    if not isinstance(nodes, list):
        raise WorkflowValidationError("nodes must be an array")
    edges = document.get("edges", [])
    if not isinstance(edges, list):
        raise WorkflowValidationError("edges must be an array")

    ids: set[str] = set()
    for i, node in enumerate(nodes):
        if not isinstance(node, Mapping):
            raise WorkflowValidationError(f"nodes[{i}] must be an object")
        node_id = node.get("id")
        if not isinstance(node_id, str) or not node_id:
            raise WorkflowValidationError(
                f"nodes[{i}].id is required and must be a non-empty string"
            )
        if node_id in ids:
            raise WorkflowValidationError(f"Duplicate node id: {node_id}")
        ids.add(node_id)
        node_type = node.get("type")
        if not isinstance(node_type, str) or not node_type:
            raise WorkflowValidationError(f"nodes[{i}].type is required and must be a string")
        contract = node.get("contract")
        if not isinstance(contract, Mapping):
            raise WorkflowValidationError(f"nodes[{i}].contract is required and must be an object")
        for side in ("input", "output"):
            if not isinstance(contract.get(side), list):
                raise WorkflowValidationError(f"nodes[{i}].contract.{side} must be an array")

    for i, edge in enumerate(edges):
        if not isinstance(edge, Mapping):
            raise WorkflowValidationError(f"edges[{i}] must be an object")
        src, dst = edge.get("from"), edge.get("to")
        if not isinstance(src, str) or not isinstance(dst, str):
            raise WorkflowValidationError(f"edges[{i}] must have from and to strings")
        if src not in ids:
            raise WorkflowValidationError(f"edges[{i}].from references unknown node: {src}")
        if dst not in ids:
            raise WorkflowValidationError(f"edges[{i}].to references unknown node: {dst}")


def coerce_patch(patch: object) -> list[dict[str, Any]]:
    if not isinstance(patch, list):
        raise PatchError("patch must be an array of operations")
    for i, op in enumerate(patch):
        if not isinstance(op, Mapping):
            raise PatchError("operation must be an object", op_index=i)
    return [dict(op) for op in patch]


def apply_json_patch(document: Mapping[str, Any], patch: object) -> dict[str, Any]:
    """Apply an RFC 6902 patch to a deep copy of ``document``.

    Operations are applied one at a time so a failure names the offending
    operation. The input document is never modified.
    """

    ops = coerce_patch(patch)
    doc: Any = copy.deepcopy(dict(document))
    for i, op in enumerate(ops):
        try:
            doc = jsonpatch.JsonPatch([op]).apply(doc, in_place=True)
        except (jsonpatch.JsonPatchException, jsonpointer.JsonPointerException) as exc:
            raise PatchError(str(exc), op_index=i) from exc
    if not isinstance(doc, dict):
        raise PatchError("patched workflow must remain a JSON object")
    return doc


class WorkflowVersionStore:
    """Immutable workflow versions plus a mutable current-version pointer."""

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    # --- pointer/index ---

    def _index_path(self) -> Path:
        return self._workspace.require().workflows_index

    def read_index(self) -> WorkflowIndex:
        raw = read_json(self._index_path())
        if raw is None:
            raise NotFound("workflow index", str(self._workspace.paths.workflows_index))
        return WorkflowIndex.model_validate(raw)

    def _write_index(self, index: WorkflowIndex) -> None:
        write_json(self._workspace.paths.workflows_index, index.to_json())

    def initialize_index(self, current_workflow_id: str) -> WorkflowIndex:
        """Write an empty index unless one exists. Used when a workspace is created."""

        path = self._workspace.paths.workflows_index
        existing = read_json(path)
        if existing is not None:
            return WorkflowIndex.model_validate(existing)
        index = WorkflowIndex(current_workflow_id=current_workflow_id, workflows=[])
        write_json(path, index.to_json())
        return index

    def list_workflows(self) -> list[WorkflowSummary]:
        return list(self.read_index().workflows)

    def current_version_id(self, workflow_id: str | None = None) -> str:
        index = self.read_index()
        wf_id = workflow_id or index.current_workflow_id
        summary = index.get(wf_id)
        if summary is None:
            raise NotFound("workflow", wf_id)
        return summary.current_version_id

    def resolve_workflow_id(self, workflow_id: str | None = None) -> str:
        return workflow_id or self.read_index().current_workflow_id

    def set_pointer(self, workflow_id: str, version_id: str) -> None:
        """Advance the workflow's current version. The version must exist."""

        if not self._version_path(workflow_id, version_id).exists():
            raise NotFound("workflow version", f"{workflow_id}@{version_id}")
        index = self.read_index()
        summary = index.get(workflow_id)
        if summary is None:
            raise NotFound("workflow", workflow_id)
        summary.current_version_id = version_id
        self._write_index(index)
        logger.info(
            "Workflow pointer advanced",
            extra={"workflow_id": workflow_id, "version_id": version_id},
        )

    # --- versions ---

    def _versions_dir(self, workflow_id: str) -> Path:
        return self._workspace.paths.workflows_dir / safe_name(workflow_id) / VERSIONS_DIR

    def _version_path(self, workflow_id: str, version_id: str) -> Path:
        return self._versions_dir(workflow_id) / f"{safe_name(version_id)}.json"

    def list_versions(self, workflow_id: str) -> list[str]:
        """Version ids in increasing sequence order."""

        self._workspace.require()
        directory = self._versions_dir(workflow_id)
        if not directory.exists():
            return []
        ids = [
            p.stem for p in directory.glob("v*.json") if parse_version_number(p.stem) is not None
        ]
        return sorted(ids, key=lambda v: parse_version_number(v) or 0)

    def read_version_document(self, workflow_id: str, version_id: str) -> dict[str, Any]:
        self._workspace.require()
        raw = read_json(self._version_path(workflow_id, version_id))
        if raw is None:
            raise NotFound("workflow version", f"{workflow_id}@{version_id}")
        return raw

    def get_version(self, workflow_id: str, version_id: str) -> WorkflowVersion:
        return WorkflowVersion.model_validate(self.read_version_document(workflow_id, version_id))

    def get_current(self, workflow_id: str | None = None) -> WorkflowVersion:
        wf_id = self.resolve_workflow_id(workflow_id)
        return self.get_version(wf_id, self.current_version_id(wf_id))

    def _write_new_version(self, workflow_id: str, document: Mapping[str, Any]) -> str:
        version_id = next_version_id(self.list_versions(workflow_id))
        body = {k: v for k, v in document.items() if k not in _STAMPED_FIELDS}
        stamped = {
            "workflow_id": workflow_id,
            "version_id": version_id,
            "created_at": utc_now_iso(),
            **body,
        }
        try:
            # Round-trip through the model so persisted versions are always readable.
            payload = WorkflowVersion.model_validate(stamped).to_json()
        except ValidationError as exc:
            raise WorkflowValidationError(str(exc)) from exc
        try:
            create_json(self._version_path(workflow_id, version_id), payload)
        except FileExistsError as exc:
            raise Conflict("workflow version", f"{workflow_id}@{version_id}") from exc
        logger.debug(
            "Workflow version written",
            extra={"workflow_id": workflow_id, "version_id": version_id},
        )
        return version_id

    def set(
        self,
        workflow_id: str,
        document: Mapping[str, Any],
        *,
        name: str | None = None,
        description: str | None = None,
    ) -> str:
        """Validate ``document``, write it as the next version and move the pointer.

        Unknown workflow ids are registered in the index.
        """

        validate_workflow_document(document)
        index = self.read_index()
        version_id = self._write_new_version(workflow_id, document)

        summary = index.get(workflow_id)
        if summary is None:
            index.workflows.append(
                WorkflowSummary(
                    workflow_id=workflow_id,
                    name=name or str(document.get("name") or workflow_id),
                    description=description,
                    current_version_id=version_id,
                )
            )
        else:
            summary.current_version_id = version_id
            if name:
                summary.name = name
            if description is not None:
                summary.description = description
        self._write_index(index)
        logger.info(
            "Workflow version set",
            extra={"workflow_id": workflow_id, "version_id": version_id},
        )
        return version_id

    def apply_patch(self, workflow_id: str, from_version_id: str, patch: object) -> str:
        """Write a new version derived from ``from_version_id`` by a JSON patch.

        On any failure nothing is written. The pointer is not moved.
        """

        source = self.read_version_document(workflow_id, from_version_id)
        patched = apply_json_patch(source, patch)
        try:
            validate_workflow_document(patched)
        except WorkflowValidationError as exc:
            raise PatchError(f"resulting workflow is invalid: {exc}") from exc
        try:
            return self._write_new_version(workflow_id, patched)
        except WorkflowValidationError as exc:
            raise PatchError(f"resulting workflow is invalid: {exc}") from exc
