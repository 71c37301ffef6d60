"""Collection schema registry.

One schema document per workflow (``schemas/<workflow_id>.json``) maps each
collection kind to its structural requirements. Validation runs against the
*effective* item schema: the stored one with the traceability fields
(``citations``, ``derived_from``, ``reasoning``) merged in.

Validation is presence-only: required keys must be present and non-null. Types
are not checked.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from reasoning_ledger.defaults import RUN_INPUT_KIND, default_collection_kinds
from reasoning_ledger.errors import (
    CollectionValidationError,
    MissingRequiredFields,
    SchemaError,
    UnknownKind,
)
from reasoning_ledger.models import CollectionKindSchema, CollectionSchemaConfig
from reasoning_ledger.workspace import Workspace, read_json, safe_name, write_json

logger = logging.getLogger(__name__)

TRACEABILITY_PROPERTIES: dict[str, dict[str, Any]] = {
    "citations": {
        "type": "array",
        "description": (
            "Sources for this item: external (url + title) or internal (item_ref to another "
            "collection item)."
        ),
        "items": {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "External source URL."},
                "title": {"type": "string", "description": "Short title for the source."},
                "excerpt": {"type": "string", "description": "Optional excerpt or quote."},
                "item_ref": {
                    "type": "object",
                    "description": "Reference to another collection item in this run.",
                    "properties": {
                        "kind": {"type": "string"},
                        "item_id": {"type": "string"},
                    },
                    "required": ["kind", "item_id"],
                },
            },
            "additionalProperties": True,
        },
    },
    "derived_from": {
        "type": "array",
        "description": "Collection items this item was derived from (kind + item_id).",
        "items": {
            "type": "object",
            "properties": {
                "kind": {"type": "string"},
                "item_id": {"type": "string"},
            },
            "required": ["kind", "item_id"],
        },
    },
    "reasoning": {
        "type": "string",
        "description": "Short explanation of why this was decided or how it was derived.",
    },
}

# System kinds: no traceability fields, no provenance requirement.
TRACEABILITY_EXCLUDED_KINDS: frozenset[str] = frozenset({RUN_INPUT_KIND})


def base_kind_template() -> dict[str, Any]:
    return {
        "description": "",
        "item_schema": {"type": "object", "properties": {}},
        "required": [],
    }


def merge_traceability(kind: str, item_schema: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``item_schema`` with the traceability properties added.

    Properties the kind already declares are left untouched.
    """

    merged = copy.deepcopy(dict(item_schema))
    if kind in TRACEABILITY_EXCLUDED_KINDS:
        return merged
    if merged.get("type", "object") != "object":
        return merged

    properties = merged.get("properties")
    properties = dict(properties) if isinstance(properties, Mapping) else {}
    for key, prop in TRACEABILITY_PROPERTIES.items():
        properties.setdefault(key, copy.deepcopy(prop))
    merged["type"] = "object"
    merged["properties"] = properties
    return merged


def require_kind(schema: CollectionSchemaConfig, kind: str) -> CollectionKindSchema:
    kind_schema = schema.kinds.get(kind)
    if kind_schema is None:
        raise UnknownKind(kind, tuple(sorted(schema.kinds)))
    return kind_schema


def effective_item_schema(kind: str, schema: CollectionSchemaConfig) -> dict[str, Any]:
    return merge_traceability(kind, require_kind(schema, kind).item_schema)


def required_fields(kind: str, schema: CollectionSchemaConfig) -> list[str]:
    """Kind-level ``required`` plus the effective item schema's ``required``."""

    kind_schema = require_kind(schema, kind)
    nested = effective_item_schema(kind, schema).get("required")
    extra = [k for k in nested if isinstance(k, str)] if isinstance(nested, list) else []
    return list(dict.fromkeys([*kind_schema.required, *extra]))


def validate_item(schema: CollectionSchemaConfig, kind: str, payload: object) -> None:
    required = required_fields(kind, schema)
    if not isinstance(payload, Mapping):
        raise CollectionValidationError(kind)
    missing = [key for key in required if payload.get(key) is None]
    if missing:
        raise MissingRequiredFields(kind, tuple(missing), tuple(required))


def validate_items(schema: CollectionSchemaConfig, kind: str, items: Iterable[object]) -> None:
    for item in items:
        validate_item(schema, kind, item)


def _merge_kind(base: Mapping[str, Any], kind_spec: Mapping[str, Any]) -> dict[str, Any]:
    merged = {**copy.deepcopy(dict(base)), **copy.deepcopy(dict(kind_spec))}
    item_schema = kind_spec.get("item_schema")
    if isinstance(item_schema, Mapping):
        merged["item_schema"] = {**base.get("item_schema", {}), **copy.deepcopy(dict(item_schema))}
    return merged


class CollectionSchemaRegistry:
    """Per-workflow map of collection kinds to their requirements."""

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    def _path(self, workflow_id: str) -> Path:
        return self._workspace.require().schemas_dir / f"{safe_name(workflow_id)}.json"

    def _build(self, workflow_id: str, kinds: Mapping[str, Any]) -> CollectionSchemaConfig:
        try:
            return CollectionSchemaConfig.model_validate(
                {"workflow_id": workflow_id, "kinds": kinds}
            )
        except ValidationError as exc:
            raise SchemaError(f"Invalid collection schema: {exc}") from exc

    def _save(self, schema: CollectionSchemaConfig) -> None:
        write_json(self._path(schema.workflow_id), schema.to_json())

    def read(self, workflow_id: str) -> CollectionSchemaConfig:
        """Return the workflow's schema, persisting the default one on first read."""

        raw = read_json(self._path(workflow_id))
        if raw is None:
            schema = self._build(workflow_id, default_collection_kinds())
            self._save(schema)
            logger.info("Default collection schema created", extra={"workflow_id": workflow_id})
            return schema
        if isinstance(raw, Mapping):
            raw = {**raw, "workflow_id": workflow_id}
        try:
            return CollectionSchemaConfig.model_validate(raw)
        except ValidationError as exc:
            raise SchemaError(f"Stored collection schema is invalid: {exc}") from exc

    def write(self, workflow_id: str, schema: Mapping[str, Any]) -> CollectionSchemaConfig:
        """Replace the schema. Each kind is merged over the base template."""

        kinds = schema.get("kinds") if isinstance(schema, Mapping) else None
        if not isinstance(kinds, Mapping):
            raise SchemaError("schema must have a 'kinds' object")

        merged: dict[str, Any] = {}
        for kind, kind_spec in kinds.items():
            if not isinstance(kind, str) or not kind:
                raise SchemaError("kind names must be non-empty strings")
            if not isinstance(kind_spec, Mapping):
                raise SchemaError(f"kind {kind!r} must be an object")
            merged[kind] = _merge_kind(base_kind_template(), kind_spec)

        config = self._build(workflow_id, merged)
        self._save(config)
        logger.info(
            "Collection schema written",
            extra={"workflow_id": workflow_id, "kinds": sorted(config.kinds)},
        )
        return config

    def add_kind(
        self,
        workflow_id: str,
        kind: str,
        description: str,
        required: Iterable[str] = (),
        properties: Mapping[str, Any] | None = None,
        *,
        references: Mapping[str, Any] | None = None,
        global_: bool | None = None,
    ) -> CollectionSchemaConfig:
        """Add or update one kind; every other kind is left as stored."""

        if not kind:
            raise SchemaError("kind must be a non-empty string")
        current = self.read(workflow_id)
        existing = current.kinds.get(kind)
        kind_spec = existing.to_json() if existing is not None else base_kind_template()

        kind_spec["description"] = description
        kind_spec["required"] = list(dict.fromkeys([*kind_spec.get("required", []), *required]))
        if properties:
            item_schema = dict(kind_spec.get("item_schema") or {"type": "object"})
            item_schema["properties"] = {**(item_schema.get("properties") or {}), **properties}
            kind_spec["item_schema"] = item_schema
        if references:
            kind_spec["references"] = {**(kind_spec.get("references") or {}), **references}
        if global_ is not None:
            kind_spec["global"] = global_

        kinds = {name: k.to_json() for name, k in current.kinds.items()}
        kinds[kind] = kind_spec
        config = self._build(workflow_id, kinds)
        self._save(config)
        logger.info("Collection kind added", extra={"workflow_id": workflow_id, "kind": kind})
        return config
