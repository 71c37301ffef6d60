"""Unit tests for error rendering."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator

import pytest

from reasoning_ledger.errors import (
    CollectionValidationError,
    InvalidState,
    LedgerError,
    MissingRequiredFields,
    NotFound,
    PatchError,
    UnknownKind,
)


def test_not_found_message_and_dict() -> None:
    err = NotFound("run", "run_1")

    assert str(err) == "Run not found: run_1"
    assert err.to_dict() == {
        "code": "not_found",
        "message": "Run not found: run_1",
        "details": {"entity": "run", "identifier": "run_1"},
    }


def test_unknown_kind_lists_known_kinds() -> None:
    err = UnknownKind("ideas", ("run_input", "sources"))

    assert isinstance(err, CollectionValidationError)
    assert "run_input, sources" in str(err)
    assert err.to_dict()["details"] == {"kind": "ideas", "known_kinds": ["run_input", "sources"]}


def test_missing_required_fields_details() -> None:
    err = MissingRequiredFields("sources", ("url",), ("url", "title"))

    details = err.to_dict()["details"]
    assert details["missing"] == ["url"]
    assert details["required"] == ["url", "title"]
    assert "Missing: url" in str(err)


def test_invalid_state_mentions_expected() -> None:
    err = InvalidState("mutation", "mut_1", "applied", expected=("proposed",))

    assert "applied" in str(err)
    assert "expected: proposed" in str(err)


def test_patch_error_names_operation() -> None:
    assert str(PatchError("path not found", op_index=2)).startswith("Patch operation 2 failed")
    assert str(PatchError("bad")).startswith("Patch failed")


def test_errors_are_raisable_ledger_errors() -> None:
    with pytest.raises(LedgerError):
        raise NotFound("workspace", "/tmp/x")


@contextlib.contextmanager
def _passthrough() -> Iterator[None]:
    yield


def test_errors_propagate_through_generator_context_managers() -> None:
    with pytest.raises(NotFound) as exc_info:
        with _passthrough():
            raise NotFound("run", "run_1")

    assert exc_info.value.identifier == "run_1"
    assert exc_info.value.__traceback__ is not None


def test_errors_are_hashable_and_compare_by_identity() -> None:
    a = NotFound("run", "run_1")
    b = NotFound("run", "run_1")

    assert a != b
    assert len({a, b}) == 2
