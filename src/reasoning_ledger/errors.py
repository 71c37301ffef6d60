"""Errors raised by the ledger.

Every error carries the structured fields a caller needs to correct itself
without re-querying the workspace, and renders them via ``to_dict`` for
surfaces that serialise errors into their own envelopes.
"""

from __future__ import annotations

from dataclasses import dataclass, fields


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "ledger_error"

    def to_dict(self) -> dict[str, object]:
        details: dict[str, object] = {}
        if hasattr(self, "__dataclass_fields__"):
            for f in fields(self):  # type: ignore[arg-type]
                value = getattr(self, f.name)
                details[f.name] = list(value) if isinstance(value, tuple) else value
        return {"code": self.code, "message": str(self), "details": details}


@dataclass(eq=False)
class NotFound(LedgerError):
    """A workspace, workflow, version, run, node result or mutation is absent."""

    entity: str
    identifier: str

    code = "not_found"

    def __str__(self) -> str:
        return f"{self.entity.capitalize()} not found: {self.identifier}"


@dataclass(eq=False)
class Conflict(LedgerError):
    """An identifier that must be unique is already taken."""

    entity: str
    identifier: str

    code = "conflict"

    def __str__(self) -> str:
        return f"{self.entity.capitalize()} already exists: {self.identifier}"


@dataclass(eq=False)
class InvalidState(LedgerError):
    """An entity is not in the lifecycle state an operation requires."""

    entity: str
    identifier: str
    status: str
    expected: tuple[str, ...] = ()

    code = "invalid_state"

    def __str__(self) -> str:
        msg = f"{self.entity.capitalize()} {self.identifier!r} is {self.status}"
        if self.expected:
            msg += f" (expected: {', '.join(self.expected)})"
        return msg


@dataclass(eq=False)
class PatchError(LedgerError):
    """A structural patch is malformed or one of its operations failed."""

    message: str
    op_index: int | None = None

    code = "patch_error"

    def __str__(self) -> str:
        if self.op_index is None:
            return f"Patch failed: {self.message}"
        return f"Patch operation {self.op_index} failed: {self.message}"


@dataclass(eq=False)
class WorkflowValidationError(LedgerError):
    """A workflow document does not have the minimal workflow shape."""

    message: str

    code = "invalid_workflow"

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class SchemaError(LedgerError):
    """A collection schema document is malformed."""

    message: str

    code = "invalid_schema"

    def __str__(self) -> str:
        return self.message


@dataclass(eq=False)
class CollectionValidationError(LedgerError):
    """Base class for collection item rejections."""

    kind: str

    code = "invalid_collection_item"

    def __str__(self) -> str:
        return f"Invalid item for kind {self.kind!r}"


@dataclass(eq=False)
class UnknownKind(CollectionValidationError):
    known_kinds: tuple[str, ...]

    code = "unknown_kind"

    def __str__(self) -> str:
        known = ", ".join(self.known_kinds) if self.known_kinds else "(none)"
        return f'Unknown kind "{self.kind}". Known kinds: {known}.'


@dataclass(eq=False)
class MissingRequiredFields(CollectionValidationError):
    missing: tuple[str, ...]
    required: tuple[str, ...]

    code = "missing_required_fields"

    def __str__(self) -> str:
        return (
            f'Kind "{self.kind}" requires: {", ".join(self.required)}. '
            f'Missing: {", ".join(self.missing)}.'
        )


@dataclass(eq=False)
class MissingProvenance(CollectionValidationError):
    code = "missing_provenance"

    def __str__(self) -> str:
        return (
            f'Items of kind "{self.kind}" must carry created_by_node_id and '
            "created_by_node_result_id"
        )


@dataclass(eq=False)
class UnknownOperation(LedgerError):
    name: str

    code = "unknown_operation"

    def __str__(self) -> str:
        return f"Unknown operation: {self.name}"


__all__ = [
    "CollectionValidationError",
    "Conflict",
    "InvalidState",
    "LedgerError",
    "MissingProvenance",
    "MissingRequiredFields",
    "NotFound",
    "PatchError",
    "SchemaError",
    "UnknownKind",
    "UnknownOperation",
    "WorkflowValidationError",
]
