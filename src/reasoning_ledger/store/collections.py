"""Schema-validated collection items with provenance.

Layout::

    collections/<run_id>/<kind>.json   per-run kinds
    data/<kind>.json                   kinds flagged ``global`` in the schema

Every write validates all incoming items before touching disk, so a rejected
call leaves the stored items unchanged. Each write rewrites the whole document.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from reasoning_ledger.errors import Conflict, MissingProvenance, NotFound
from reasoning_ledger.models import (
    CollectionSchemaConfig,
    CollectionStoreDocument,
    GlobalEntityDocument,
    new_id,
    utc_now_iso,
)
from reasoning_ledger.store.runs import RunLedger
from reasoning_ledger.store.schemas import (
    TRACEABILITY_EXCLUDED_KINDS,
    CollectionSchemaRegistry,
    require_kind,
    validate_item,
)
from reasoning_ledger.workspace import Workspace, read_json, safe_name, write_json

logger = logging.getLogger(__name__)

# Keys the store stamps; values supplied in a payload are replaced.
_STAMPED_KEYS = frozenset(
    {"id", "created_at", "created_by_node_id", "created_by_node_result_id", "run_id"}
)


@dataclass(frozen=True, slots=True)
class Provenance:
    """The step and node result responsible for a collection write."""

    node_id: str
    node_result_id: str

    def __post_init__(self) -> None:
        if not self.node_id or not self.node_result_id:
            raise ValueError("Provenance requires node_id and node_result_id")

    def stamp(self) -> dict[str, str]:
        return {
            "created_by_node_id": self.node_id,
            "created_by_node_result_id": self.node_result_id,
        }


class CollectionStore:
    """Per-run, per-kind item lists validated against the run's workflow schema."""

    def __init__(
        self,
        workspace: Workspace,
        runs: RunLedger,
        schemas: CollectionSchemaRegistry,
    ) -> None:
        self._workspace = workspace
        self._runs = runs
        self._schemas = schemas

    # --- paths ---

    def _run_dir(self, run_id: str) -> Path:
        return self._workspace.require().collections_dir / safe_name(run_id)

    def _path(self, run_id: str, kind: str) -> Path:
        return self._run_dir(run_id) / f"{safe_name(kind)}.json"

    def _global_path(self, kind: str) -> Path:
        return self._workspace.require().data_dir / f"{safe_name(kind)}.json"

    # --- helpers ---

    def schema_for_run(self, run_id: str) -> CollectionSchemaConfig:
        run = self._runs.read(run_id)
        return self._schemas.read(run.workflow_id)

    def _is_global(self, schema: CollectionSchemaConfig, kind: str) -> bool:
        kind_schema = schema.kinds.get(kind)
        return kind_schema is not None and kind_schema.is_global

    def _read_global(self, kind: str) -> GlobalEntityDocument:
        raw = read_json(self._global_path(kind))
        if raw is None:
            return GlobalEntityDocument(kind=kind)
        return GlobalEntityDocument.model_validate(raw)

    def _read_run_document(self, run_id: str, kind: str) -> CollectionStoreDocument:
        raw = read_json(self._path(run_id, kind))
        if raw is None:
            return CollectionStoreDocument(run_id=run_id, kind=kind)
        return CollectionStoreDocument.model_validate(raw)

    @staticmethod
    def _check_provenance(kind: str, provenance: Provenance | None) -> None:
        if provenance is None and kind not in TRACEABILITY_EXCLUDED_KINDS:
            raise MissingProvenance(kind)

    @staticmethod
    def _stamp(
        payload: Mapping[str, Any],
        *,
        item_id: str,
        created_at: str,
        provenance: Provenance | None,
        run_id: str | None,
    ) -> dict[str, Any]:
        item: dict[str, Any] = {"id": item_id, "created_at": created_at}
        if provenance is not None:
            item.update(provenance.stamp())
        if run_id is not None:
            item["run_id"] = run_id
        item.update((k, v) for k, v in payload.items() if k not in _STAMPED_KEYS)
        return item

    # --- reads ---

    def list_kinds(self, run_id: str) -> list[str]:
        """Kinds holding at least one item for the run."""

        schema = self.schema_for_run(run_id)
        kinds: list[str] = []
        run_dir = self._run_dir(run_id)
        if run_dir.exists():
            for path in sorted(run_dir.glob("*.json")):
                document = CollectionStoreDocument.model_validate(read_json(path))
                if document.items:
                    kinds.append(document.kind)
        for kind, kind_schema in schema.kinds.items():
            if kind_schema.is_global and kind not in kinds:
                if any(i.get("run_id") == run_id for i in self._read_global(kind).items):
                    kinds.append(kind)
        return kinds

    def read(self, run_id: str, kind: str) -> CollectionStoreDocument:
        """The stored items, or an empty unsaved document if none were written."""

        schema = self.schema_for_run(run_id)
        if self._is_global(schema, kind):
            store = self._read_global(kind)
            return CollectionStoreDocument(
                run_id=run_id,
                kind=kind,
                updated_at=store.updated_at,
                items=[i for i in store.items if i.get("run_id") == run_id],
            )
        return self._read_run_document(run_id, kind)

    def get_item(self, run_id: str, kind: str, item_id: str) -> dict[str, Any]:
        for item in self.read(run_id, kind).items:
            if item.get("id") == item_id:
                return item
        raise NotFound("collection item", f"{run_id}/{kind}/{item_id}")

    # --- writes ---

    def replace_all(
        self,
        run_id: str,
        kind: str,
        items: Iterable[Mapping[str, Any]],
        provenance: Provenance | None,
    ) -> CollectionStoreDocument:
        """Replace the run's items for ``kind``.

        Items without an ``id`` get ``<kind>_<position>`` (1-based), or a fresh
        ``<kind>_<hex>`` for global kinds, whose ids are shared by every run. An
        item's own ``created_at`` is kept.
        """

        items = list(items)
        schema = self.schema_for_run(run_id)
        require_kind(schema, kind)
        self._check_provenance(kind, provenance)
        for item in items:
            validate_item(schema, kind, item)

        is_global = self._is_global(schema, kind)
        now = utc_now_iso()
        stamped: list[dict[str, Any]] = []
        seen: set[str] = set()
        for position, payload in enumerate(items, start=1):
            fallback = new_id(kind) if is_global else f"{kind}_{position}"
            item_id = str(payload.get("id") or fallback)
            if item_id in seen:
                raise Conflict("collection item", f"{kind}/{item_id}")
            seen.add(item_id)
            stamped.append(
                self._stamp(
                    payload,
                    item_id=item_id,
                    created_at=str(payload.get("created_at") or now),
                    provenance=provenance,
                    run_id=run_id if is_global else None,
                )
            )

        if is_global:
            store = self._read_global(kind)
            kept = [i for i in store.items if i.get("run_id") != run_id]
            clash = seen.intersection(str(i.get("id")) for i in kept)
            if clash:
                raise Conflict("collection item", f"{kind}/{sorted(clash)[0]}")
            store.items = kept + stamped
            store.updated_at = now
            write_json(self._global_path(kind), store.to_json())
            document = CollectionStoreDocument(
                run_id=run_id, kind=kind, updated_at=now, items=stamped
            )
        else:
            document = CollectionStoreDocument(
                run_id=run_id, kind=kind, updated_at=now, items=stamped
            )
            write_json(self._path(run_id, kind), document.to_json())

        logger.info(
            "Collection replaced",
            extra={"run_id": run_id, "kind": kind, "count": len(stamped)},
        )
        return document

    def extend(
        self,
        run_id: str,
        kind: str,
        payloads: Iterable[Mapping[str, Any]],
        provenance: Provenance | None,
        item_ids: Iterable[str | None] | None = None,
    ) -> list[dict[str, Any]]:
        """Append several items with a single document rewrite."""

        payloads = list(payloads)
        ids = list(item_ids) if item_ids is not None else [None] * len(payloads)
        if len(ids) != len(payloads):
            raise ValueError("item_ids must match payloads in length")

        schema = self.schema_for_run(run_id)
        require_kind(schema, kind)
        self._check_provenance(kind, provenance)
        for payload in payloads:
            validate_item(schema, kind, payload)

        is_global = self._is_global(schema, kind)
        if is_global:
            global_doc = self._read_global(kind)
            existing = global_doc.items
        else:
            run_doc = self._read_run_document(run_id, kind)
            existing = run_doc.items

        taken = {str(i.get("id")) for i in existing}
        now = utc_now_iso()
        added: list[dict[str, Any]] = []
        for payload, explicit_id in zip(payloads, ids):
            item_id = explicit_id or payload.get("id") or new_id(kind)
            item_id = str(item_id)
            if item_id in taken:
                raise Conflict("collection item", f"{kind}/{item_id}")
            taken.add(item_id)
            added.append(
                self._stamp(
                    payload,
                    item_id=item_id,
                    created_at=now,
                    provenance=provenance,
                    run_id=run_id if is_global else None,
                )
            )

        if is_global:
            global_doc.items = existing + added
            global_doc.updated_at = now
            write_json(self._global_path(kind), global_doc.to_json())
        else:
            run_doc.items = existing + added
            run_doc.updated_at = now
            write_json(self._path(run_id, kind), run_doc.to_json())

        logger.debug(
            "Collection items appended",
            extra={"run_id": run_id, "kind": kind, "count": len(added)},
        )
        return added

    def append(
        self,
        run_id: str,
        kind: str,
        payload: Mapping[str, Any],
        provenance: Provenance | None,
        item_id: str | None = None,
    ) -> dict[str, Any]:
        return self.extend(run_id, kind, [payload], provenance, item_ids=[item_id])[0]
