"""Mutation documents: ``mutations/<mutation_id>.json``."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from reasoning_ledger.errors import Conflict, NotFound
from reasoning_ledger.models import Mutation
from reasoning_ledger.workspace import Workspace, create_json, read_json, safe_name, write_json

logger = logging.getLogger(__name__)


class MutationStore:
    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace

    def _path(self, mutation_id: str) -> Path:
        return self._workspace.require().mutations_dir / f"{safe_name(mutation_id)}.json"

    def create(self, mutation: Mutation) -> Mutation:
        try:
            create_json(self._path(mutation.mutation_id), mutation.to_json())
        except FileExistsError as exc:
            raise Conflict("mutation", mutation.mutation_id) from exc
        logger.debug("Mutation written", extra={"mutation_id": mutation.mutation_id})
        return mutation

    def read(self, mutation_id: str) -> Mutation:
        raw = read_json(self._path(mutation_id))
        if raw is None:
            raise NotFound("mutation", mutation_id)
        return Mutation.model_validate(raw)

    def update(self, mutation_id: str, **updates: Any) -> Mutation:
        current = self.read(mutation_id)
        merged = Mutation.model_validate({**current.to_json(), **updates})
        write_json(self._path(mutation_id), merged.to_json())
        return merged

    def list(self, workflow_id: str | None = None) -> list[Mutation]:
        """Mutations oldest first, optionally restricted to one workflow."""

        directory = self._workspace.require().mutations_dir
        if not directory.exists():
            return []
        mutations = [Mutation.model_validate(read_json(p)) for p in directory.glob("*.json")]
        if workflow_id is not None:
            mutations = [m for m in mutations if m.target.workflow_id == workflow_id]
        mutations.sort(key=lambda m: m.created_at)
        return mutations
