"""Mutation protocol: propose a workflow patch, then apply it at most once."""

from __future__ import annotations

import logging

from reasoning_ledger.errors import InvalidState
from reasoning_ledger.models import Mutation, MutationStatus, MutationTarget, new_id
from reasoning_ledger.store.mutations import MutationStore
from reasoning_ledger.store.workflows import WorkflowVersionStore, coerce_patch

logger = logging.getLogger(__name__)


class MutationProtocol:
    def __init__(self, workflows: WorkflowVersionStore, mutations: MutationStore) -> None:
        self._workflows = workflows
        self._mutations = mutations

    def propose(
        self,
        workflow_id: str | None,
        patch: object,
        reason: str,
        by: str,
        mutation_id: str | None = None,
    ) -> str:
        """Record ``patch`` against the workflow's current version.

        The patch is only checked for shape here; it is applied by :meth:`apply`.
        """

        ops = coerce_patch(patch)
        wf_id = self._workflows.resolve_workflow_id(workflow_id)
        from_version = self._workflows.current_version_id(wf_id)
        mutation = Mutation(
            mutation_id=mutation_id or new_id("mut"),
            target=MutationTarget(workflow_id=wf_id, from_version=from_version),
            patch=ops,
            reason=reason,
            created_by=by,
        )
        self._mutations.create(mutation)
        logger.info(
            "Mutation proposed",
            extra={
                "mutation_id": mutation.mutation_id,
                "workflow_id": wf_id,
                "from_version": from_version,
            },
        )
        return mutation.mutation_id

    def apply(self, mutation_id: str, by: str | None = None) -> str:
        """Apply a proposed mutation and advance the workflow pointer.

        Returns the new version id.
        """

        mutation = self._mutations.read(mutation_id)
        if mutation.status is not MutationStatus.PROPOSED:
            raise InvalidState(
                "mutation",
                mutation_id,
                mutation.status.value,
                expected=(MutationStatus.PROPOSED.value,),
            )

        target = mutation.target
        version_id = self._workflows.apply_patch(
            target.workflow_id, target.from_version, mutation.patch
        )
        self._workflows.set_pointer(target.workflow_id, version_id)
        self._mutations.update(
            mutation_id,
            status=MutationStatus.APPLIED.value,
            applied_to_version=version_id,
        )
        logger.info(
            "Mutation applied",
            extra={
                "mutation_id": mutation_id,
                "workflow_id": target.workflow_id,
                "version_id": version_id,
                "by": by,
            },
        )
        return version_id
